#!/usr/bin/env python3
"""
Pytest configuration and fixtures for camera-matrix-proxy tests
"""

import pytest
import tempfile
import shutil
import logging
import time
from pathlib import Path

# Test data and fixtures
import sys
sys.path.insert(0, str(Path(__file__).parent / "src"))

from camera_proxy.core.config import EngineConfig
from camera_proxy.core.engine import CameraMatrixEngine
from camera_proxy.core.profile_store import ProfileStore


@pytest.fixture(scope="session")
def temp_dir():
    """Temporary directory for tests"""
    temp_path = Path(tempfile.mkdtemp(prefix="camera_proxy_test_"))
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture(scope="function")
def clean_temp_dir(temp_dir):
    """Clean temporary directory for each test"""
    test_dir = temp_dir / f"test_{int(time.time() * 1000000)}"
    test_dir.mkdir(parents=True, exist_ok=True)
    yield test_dir
    if test_dir.exists():
        shutil.rmtree(test_dir)


@pytest.fixture(scope="function")
def fast_config():
    """Short stability gate so scenarios settle in a handful of frames"""
    return EngineConfig(min_frames_seen=4, min_consecutive_frames=4, status_log_interval=0)


@pytest.fixture(scope="function")
def profile_path(clean_temp_dir):
    return clean_temp_dir / "profiles.json"


@pytest.fixture(scope="function")
def engine(fast_config):
    """Engine with an in-memory profile store"""
    return CameraMatrixEngine(config=fast_config, profile_store=ProfileStore())


@pytest.fixture(autouse=True)
def setup_logging():
    """Setup logging for tests"""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


# Custom pytest markers and hooks

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: isolated component tests")
    config.addinivalue_line("markers", "integration: engine-level scenario tests")
