#!/usr/bin/env python3
"""
Camera Matrix Proxy
Trace replay entry point for running from a source checkout
"""

import sys
from pathlib import Path

# Add src to Python path BEFORE any imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from camera_proxy.cli import main

if __name__ == "__main__":
    sys.exit(main())
