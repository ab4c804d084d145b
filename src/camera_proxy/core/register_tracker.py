#!/usr/bin/env python3
"""
Register State Tracker
Per-shader store of the last written constant registers with change
sequencing and running per-component statistics
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .matrix_bank import MatrixSlot

logger = logging.getLogger(__name__)

MAX_CONSTANT_REGISTERS = 256


@dataclass(frozen=True)
class RegisterSample:
    """Snapshot of one constant register"""
    index: int
    value: np.ndarray
    valid: bool
    mean: np.ndarray
    variance: np.ndarray
    sample_count: int
    last_change_sequence: int


@dataclass
class StableRegister:
    """Longest stable streak seen for a slot within one shader"""
    base_register: int = -1
    streak: int = 0


@dataclass
class RecordedWrite:
    start_register: int
    count: int
    changed: np.ndarray

    @property
    def end_register(self) -> int:
        return self.start_register + self.count

    @property
    def any_changed(self) -> bool:
        return bool(np.any(self.changed))


@dataclass
class ShaderContext:
    """Everything tracked for one shader key during a session"""
    shader_key: int
    order: int
    max_registers: int = MAX_CONSTANT_REGISTERS
    bytecode_hash: Optional[str] = None
    hash_resolved: bool = False
    force_identity_world_view: bool = False
    best_stable: Dict[MatrixSlot, StableRegister] = field(default_factory=dict)

    def __post_init__(self):
        n = self.max_registers
        self.values = np.zeros((n, 4), dtype=np.float32)
        self.valid = np.zeros(n, dtype=bool)
        self.sample_count = np.zeros(n, dtype=np.int64)
        self.mean = np.zeros((n, 4), dtype=np.float64)
        self.m2 = np.zeros((n, 4), dtype=np.float64)
        self.last_change = np.zeros(n, dtype=np.int64)

    def window(self, base_register: int, row_count: int = 4) -> Optional[np.ndarray]:
        """Registers [base, base+rows) when all of them have been written"""
        end = base_register + row_count
        if base_register < 0 or end > self.max_registers:
            return None
        if not np.all(self.valid[base_register:end]):
            return None
        return self.values[base_register:end].copy()

    def variance(self, index: int) -> np.ndarray:
        count = self.sample_count[index]
        if count < 2:
            return np.zeros(4, dtype=np.float64)
        return self.m2[index] / count

    def window_variance(self, base_register: int, row_count: int = 4) -> float:
        """Largest component variance across a window"""
        end = min(base_register + row_count, self.max_registers)
        if base_register < 0 or base_register >= end:
            return 0.0
        counts = self.sample_count[base_register:end]
        if np.any(counts < 2):
            return 0.0
        variances = self.m2[base_register:end] / counts[:, None]
        return float(np.max(variances))

    def sample(self, index: int) -> RegisterSample:
        return RegisterSample(
            index=index,
            value=self.values[index].copy(),
            valid=bool(self.valid[index]),
            mean=self.mean[index].copy(),
            variance=self.variance(index),
            sample_count=int(self.sample_count[index]),
            last_change_sequence=int(self.last_change[index]),
        )

    def note_stable(self, slot: MatrixSlot, base_register: int, streak: int):
        best = self.best_stable.setdefault(slot, StableRegister())
        if streak > best.streak:
            best.base_register = base_register
            best.streak = streak


class RegisterStateTracker:
    """
    Arena of shader contexts keyed by an opaque shader key

    Contexts are appended on first sight and live for the session; reset()
    drops the whole arena.
    """

    def __init__(self, max_registers: int = MAX_CONSTANT_REGISTERS):
        self.max_registers = max_registers
        self._contexts: Dict[int, ShaderContext] = {}
        self._order: List[int] = []
        self.sequence = 0

    def get_context(self, shader_key: int, create: bool = True) -> Optional[ShaderContext]:
        context = self._contexts.get(shader_key)
        if context is None and create:
            context = ShaderContext(shader_key=shader_key, order=len(self._order),
                                    max_registers=self.max_registers)
            self._contexts[shader_key] = context
            self._order.append(shader_key)
            logger.debug(f"New shader context 0x{shader_key:x}")
        return context

    def contexts(self) -> List[ShaderContext]:
        return [self._contexts[key] for key in self._order]

    def shader_keys(self) -> List[int]:
        """Shader keys in first-seen order"""
        return list(self._order)

    def record_write(self, shader_key: int, start_register: int, vectors: np.ndarray) -> RecordedWrite:
        """
        Store a run of 4-component vectors starting at start_register

        Registers past the end of the bank are dropped. Every covered register
        is overwritten and marked valid; byte-exact changes bump the sequence.
        Non-finite vectors are stored but excluded from the running statistics.
        """
        context = self.get_context(shader_key)
        vectors = np.ascontiguousarray(vectors, dtype=np.float32).reshape(-1, 4)
        if start_register < 0 or start_register >= self.max_registers:
            return RecordedWrite(start_register, 0, np.zeros(0, dtype=bool))

        count = min(len(vectors), self.max_registers - start_register)
        end = start_register + count
        incoming = vectors[:count]

        previous = context.values[start_register:end]
        changed = ~context.valid[start_register:end] | np.any(
            previous.view(np.uint32) != incoming.view(np.uint32), axis=1)

        for offset in np.nonzero(changed)[0]:
            self.sequence += 1
            context.last_change[start_register + offset] = self.sequence

        context.values[start_register:end] = incoming
        context.valid[start_register:end] = True
        self._update_statistics(context, start_register, incoming)

        return RecordedWrite(start_register, count, changed)

    @staticmethod
    def _update_statistics(context: ShaderContext, start_register: int, incoming: np.ndarray):
        # Welford update per register component
        for offset, vector in enumerate(incoming):
            if not np.all(np.isfinite(vector)):
                continue
            index = start_register + offset
            context.sample_count[index] += 1
            value = vector.astype(np.float64)
            delta = value - context.mean[index]
            context.mean[index] += delta / context.sample_count[index]
            context.m2[index] += delta * (value - context.mean[index])

    def reset(self):
        self._contexts.clear()
        self._order.clear()
        self.sequence = 0
        logger.info("Register state cleared")
