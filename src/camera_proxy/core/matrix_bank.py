#!/usr/bin/env python3
"""
Cached Matrix Bank
Authoritative World/View/Projection/MVP values forwarded to the fixed-function
pipeline, with provenance and identity fallback
"""

import threading
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np

from .matrix_math import identity_matrix

logger = logging.getLogger(__name__)


class MatrixSlot(Enum):
    """Fixed-function transform slots"""
    WORLD = "world"
    VIEW = "view"
    PROJECTION = "projection"
    MVP = "mvp"

    @classmethod
    def parse(cls, value) -> "MatrixSlot":
        """Accept a slot, its value or its name (case-insensitive)"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for slot in cls:
            if slot.value == text:
                return slot
        raise ValueError(f"Unknown matrix slot: {value!r}")


class BindingOrigin(Enum):
    """Where a cached value came from"""
    AUTO = "auto"               # promoted by the stability tracker
    PROFILE = "profile"         # seeded from a pinned profile
    CONFIGURED = "configured"   # forced register from configuration
    MANUAL = "manual"           # user binding or external assignment
    DERIVED = "derived"         # synthesised (MVP split, identity policy)


@dataclass(frozen=True)
class Provenance:
    """Binding that produced a cached value"""
    shader_key: int = 0
    base_register: int = -1
    row_count: int = 4
    transposed: bool = False
    origin: BindingOrigin = BindingOrigin.AUTO
    inverse_view: bool = False

    @property
    def is_manual(self) -> bool:
        return self.origin in (BindingOrigin.MANUAL, BindingOrigin.CONFIGURED)

    def to_dict(self) -> Dict:
        return {
            "shader_key": self.shader_key,
            "base_register": self.base_register,
            "row_count": self.row_count,
            "transposed": self.transposed,
            "inverse_view": self.inverse_view,
            "origin": self.origin.value,
        }


@dataclass(frozen=True)
class MatrixReading:
    """Result of a bank read; value is identity when not valid"""
    value: np.ndarray
    valid: bool
    provenance: Optional[Provenance] = None


@dataclass
class CachedMatrixSlot:
    value: np.ndarray
    valid: bool = False
    provenance: Optional[Provenance] = None


class CachedMatrixBank:
    """
    Four independent matrix slots guarded by one lock

    The render thread stores promoted values while an optional external
    scanner may assign values from another thread; every read returns a copy.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._slots: Dict[MatrixSlot, CachedMatrixSlot] = {
            slot: CachedMatrixSlot(value=identity_matrix()) for slot in MatrixSlot
        }
        self.store_count = 0

    def store(self, slot: MatrixSlot, matrix: np.ndarray, provenance: Provenance):
        """Overwrite a slot unconditionally"""
        value = np.array(matrix, dtype=np.float32).reshape(4, 4)
        with self._lock:
            entry = self._slots[slot]
            entry.value = value
            entry.valid = True
            entry.provenance = provenance
            self.store_count += 1

    def get(self, slot: MatrixSlot) -> MatrixReading:
        with self._lock:
            entry = self._slots[slot]
            if not entry.valid:
                return MatrixReading(value=identity_matrix(), valid=False, provenance=None)
            return MatrixReading(value=entry.value.copy(), valid=True, provenance=entry.provenance)

    def is_valid(self, slot: MatrixSlot) -> bool:
        with self._lock:
            return self._slots[slot].valid

    def clear(self, slot: Optional[MatrixSlot] = None):
        """Invalidate one slot, or all of them"""
        with self._lock:
            targets = [slot] if slot is not None else list(MatrixSlot)
            for target in targets:
                self._slots[target] = CachedMatrixSlot(value=identity_matrix())
        logger.debug(f"Cleared matrix bank slots: {[t.value for t in targets]}")

    def snapshot(self) -> Dict[MatrixSlot, MatrixReading]:
        return {slot: self.get(slot) for slot in MatrixSlot}
