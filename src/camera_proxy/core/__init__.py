"""
Core camera extraction components.

Register tracking, structural classification, candidate stability scoring,
pinned profiles and the cached matrix bank, tied together by the engine.
"""

from .matrix_bank import BindingOrigin, CachedMatrixBank, MatrixReading, MatrixSlot, Provenance
from .structural_classifier import ClassificationVerdict, LayoutKind, StructuralClassifier, classify
from .register_tracker import RegisterStateTracker, ShaderContext
from .candidate_tracker import CandidateKey, CandidateStabilityTracker
from .profile_store import HeuristicProfile, LayoutMode, ProfileStore, compute_bytecode_hash
from .config import EngineConfig, load_config, save_config
from .engine import BindingState, CameraMatrixEngine

__all__ = [
    'BindingOrigin',
    'BindingState',
    'CachedMatrixBank',
    'CameraMatrixEngine',
    'CandidateKey',
    'CandidateStabilityTracker',
    'ClassificationVerdict',
    'EngineConfig',
    'HeuristicProfile',
    'LayoutKind',
    'LayoutMode',
    'MatrixReading',
    'MatrixSlot',
    'ProfileStore',
    'Provenance',
    'RegisterStateTracker',
    'ShaderContext',
    'StructuralClassifier',
    'classify',
    'compute_bytecode_hash',
    'load_config',
    'save_config',
]
