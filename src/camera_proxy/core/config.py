#!/usr/bin/env python3
"""
Engine Configuration
Read-only settings for register overrides, FOV bounds, stability thresholds
and probe toggles, loaded from JSON
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .matrix_bank import MatrixSlot

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.config' / 'camera-proxy' / 'config.json'

# Keys accepted from legacy camera_proxy.ini exports
_LEGACY_KEYS = {
    "ViewMatrixRegister": "view_register",
    "ProjMatrixRegister": "projection_register",
    "WorldMatrixRegister": "world_register",
    "MvpMatrixRegister": "mvp_register",
    "MinFOV": "min_fov",
    "MaxFOV": "max_fov",
    "AutoDetectMatrices": "auto_detect",
    "LogAllConstants": "log_all_constants",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return bool(value)


@dataclass
class EngineConfig:
    """Camera extraction configuration"""
    # Forced registers per slot (-1 = auto)
    world_register: int = -1
    view_register: int = -1
    projection_register: int = -1
    mvp_register: int = -1

    # Projection plausibility (radians)
    min_fov: float = 0.1
    max_fov: float = 2.5

    # Temporal stability gate
    min_frames_seen: int = 12
    min_consecutive_frames: int = 4
    variance_threshold: float = 1e-4

    # Layout probing
    probe_transpose: bool = True
    probe_inverse_view: bool = True
    probe_three_row: bool = True

    # Detection policy
    auto_detect: bool = True
    perspective_fallback_identity: bool = True
    extract_camera_from_mvp: bool = False

    # Diagnostics
    log_all_constants: bool = False
    status_log_interval: int = 300
    frame_budget_ms: float = 1.0

    max_registers: int = 256

    def __post_init__(self):
        """Correct out-of-range values"""
        if self.max_registers < 4:
            logger.warning(f"max_registers {self.max_registers} too small, using 256")
            self.max_registers = 256

        if self.min_fov > self.max_fov:
            logger.warning(f"min_fov {self.min_fov} > max_fov {self.max_fov}, swapping")
            self.min_fov, self.max_fov = self.max_fov, self.min_fov

        for name in ("min_frames_seen", "min_consecutive_frames"):
            if getattr(self, name) < 1:
                logger.warning(f"{name} must be >= 1, got {getattr(self, name)}")
                setattr(self, name, 1)

        if self.min_consecutive_frames > self.min_frames_seen:
            logger.warning("min_consecutive_frames exceeds min_frames_seen; "
                           "the frames-seen gate is implied by the streak")

        highest = self.max_registers - 4
        for slot in MatrixSlot:
            name = f"{slot.value}_register"
            value = getattr(self, name)
            if value < -1 or value > highest:
                logger.warning(f"{name} {value} out of range [-1, {highest}], using auto")
                setattr(self, name, -1)

        if self.status_log_interval < 0:
            self.status_log_interval = 0

    def forced_register(self, slot: MatrixSlot) -> int:
        return getattr(self, f"{slot.value}_register")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build from a mapping, ignoring unknown keys"""
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _LEGACY_KEYS.get(key, key)
            if name not in known:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            default = known[name].default
            try:
                if isinstance(default, bool):
                    values[name] = _to_bool(value)
                elif isinstance(default, int):
                    values[name] = int(value)
                elif isinstance(default, float):
                    values[name] = float(value)
                else:
                    values[name] = value
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid value for {key}: {value!r} ({e})")
        return cls(**values)


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """Load configuration from JSON, falling back to defaults"""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.info(f"No config at {config_path}, using defaults")
        return EngineConfig()

    try:
        data = json.loads(config_path.read_text())
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        # Accept both a flat mapping and the legacy [CameraProxy] section
        if isinstance(data.get("CameraProxy"), dict):
            data = data["CameraProxy"]
        config = EngineConfig.from_dict(data)
        logger.info(f"Configuration loaded from {config_path}")
        return config
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load config {config_path}: {e}")
        return EngineConfig()


def save_config(config: EngineConfig, path: Optional[Path] = None) -> bool:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(config.to_dict(), indent=2))
        logger.debug(f"Configuration saved to {config_path}")
        return True
    except OSError as e:
        logger.error(f"Could not save config {config_path}: {e}")
        return False
