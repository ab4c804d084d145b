"""
Camera Matrix Proxy - Main Package

Recovers World/View/Projection/MVP matrices from programmable-pipeline shader
constant writes so a fixed-function consumer can be fed the camera state.
"""

# Version information
__version__ = "1.0.0"

from .core import (
    BindingState,
    CameraMatrixEngine,
    EngineConfig,
    MatrixSlot,
    ProfileStore,
    load_config,
)

__all__ = [
    'BindingState',
    'CameraMatrixEngine',
    'EngineConfig',
    'MatrixSlot',
    'ProfileStore',
    'load_config',
    '__version__',
]
