#!/usr/bin/env python3
"""
Camera Matrix Engine
Session context that turns shader-constant writes and draw calls into
World/View/Projection/MVP state for the fixed-function pipeline

Data flow: writes -> register tracker -> structural classifier -> candidate
tracker -> promotion (profile precedence) -> matrix bank (+ profile store).
Draws feed usage correlation only. All table updates run synchronously on
the thread delivering events; only the matrix bank is shared with an
external writer.
"""

import time
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .candidate_tracker import CandidateKey, CandidateReport, CandidateStabilityTracker
from .config import EngineConfig
from .matrix_bank import BindingOrigin, CachedMatrixBank, MatrixReading, MatrixSlot, Provenance
from .matrix_math import extract_fov, extract_view_from_mvp, identity_matrix, perspective_matrix, window_to_matrix
from .profile_store import HeuristicProfile, LayoutMode, ProfileStore
from .register_tracker import RegisterStateTracker, ShaderContext
from .structural_classifier import LayoutKind, LayoutMatch, StructuralClassifier, passes_magnitude_gate
from ..monitoring.performance_monitor import PerformanceMonitor

HashResolver = Callable[[int], Optional[str]]

CONSTANT_LOG_PERIOD = 60
PINNABLE_SLOTS = (MatrixSlot.VIEW, MatrixSlot.PROJECTION)


class BindingState(Enum):
    """Lifecycle of a (shader, slot) binding"""
    UNSEEN = "unseen"
    CANDIDATE = "candidate"
    STABLE = "stable"
    PROMOTED = "promoted"
    PINNED = "pinned"


@dataclass
class PromotedBinding:
    key: CandidateKey
    origin: BindingOrigin


@dataclass
class ManualBinding:
    """User-selected register window for a slot"""
    slot: MatrixSlot
    shader_key: int
    base_register: int
    layout: LayoutKind


@dataclass(frozen=True)
class RegisterGroup:
    """Four-register group of a shader's constant snapshot"""
    base_register: int
    values: np.ndarray
    valid: np.ndarray
    looks_like_matrix: bool


class CameraMatrixEngine:
    """Matrix classification, stability tracking and promotion for one session"""

    def __init__(self, config: Optional[EngineConfig] = None,
                 profile_store: Optional[ProfileStore] = None,
                 resolve_bytecode_hash: Optional[HashResolver] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.config = config or EngineConfig()
        self.logger = logging.getLogger(__name__)

        self.classifier = StructuralClassifier.from_config(self.config)
        self.registers = RegisterStateTracker(self.config.max_registers)
        self.candidates = CandidateStabilityTracker(
            min_frames_seen=self.config.min_frames_seen,
            min_consecutive_frames=self.config.min_consecutive_frames,
        )
        self.bank = CachedMatrixBank()
        self.monitor = monitor or PerformanceMonitor(self.config.frame_budget_ms)

        self.profiles = profile_store or ProfileStore()
        if not self.profiles.loaded:
            self.profiles.load()

        self._resolve_hash = resolve_bytecode_hash
        self._promoted: Dict[Tuple[int, MatrixSlot], PromotedBinding] = {}
        self._manual: Dict[MatrixSlot, ManualBinding] = {}

        self.frame = 0
        self._constant_log_throttle = 0

        self.logger.info(f"Camera matrix engine created (auto-detect: "
                         f"{'ENABLED' if self.config.auto_detect else 'disabled'}, "
                         f"FOV range {self.config.min_fov:.3f}-{self.config.max_fov:.3f} rad)")

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def on_shader_bind(self, shader_key: int, bytecode_hash: Optional[str] = None) -> ShaderContext:
        """Register a shader and pre-seed its pinned registers"""
        return self._context(shader_key, bytecode_hash)

    def on_constant_write(self, shader_key: int, start_register: int,
                          floats: Sequence[float], vector_count: Optional[int] = None):
        """Process one SetVertexShaderConstantF-style write"""
        started = time.perf_counter()

        vectors = self._to_vectors(floats, vector_count)
        if vectors is None or len(vectors) == 0:
            return

        context = self._context(shader_key)
        write = self.registers.record_write(shader_key, start_register, vectors)
        if write.count == 0:
            self.logger.debug(f"Ignoring write at c{start_register} outside the register bank")
            return
        vectors = vectors[:write.count]

        self._log_constants(start_register, vectors)
        self._apply_configured_registers(context, start_register, vectors)
        if self.config.auto_detect:
            self._detect_candidates(context, start_register, vectors)
        self._refresh_bindings(context, start_register, write.end_register)
        self._apply_manual_bindings(context, start_register, write.end_register)

        self.monitor.record_event("constant_write", (time.perf_counter() - started) * 1000.0)

    def on_draw(self, shader_key: int):
        """Correlate live candidates of the drawing shader with geometry submission"""
        started = time.perf_counter()
        context = self.registers.get_context(shader_key, create=False)
        if context is None:
            return

        for slot in self.candidates.register_shader_draw(shader_key, self.frame):
            self._evaluate_slot(context, slot)

        self.monitor.record_event("draw", (time.perf_counter() - started) * 1000.0)

    def end_frame(self):
        """Advance the frame sequence (Present)"""
        self.frame += 1
        self.monitor.mark_frame()

        if self.config.log_all_constants:
            self._constant_log_throttle = (self._constant_log_throttle + 1) % CONSTANT_LOG_PERIOD

        interval = self.config.status_log_interval
        if interval and self.frame % interval == 0:
            self.logger.info(f"Frame {self.frame} - hasView: {int(self.bank.is_valid(MatrixSlot.VIEW))}, "
                             f"hasProj: {int(self.bank.is_valid(MatrixSlot.PROJECTION))}")

    on_present = end_frame

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    def get_matrix(self, slot) -> MatrixReading:
        """Value, validity and provenance of a slot; identity when unbound"""
        return self.bank.get(MatrixSlot.parse(slot))

    def assign_matrix(self, slot, matrix, shader_key: int = 0, base_register: int = -1):
        """Direct assignment from an external writer; safe from any thread"""
        values = np.asarray(matrix, dtype=np.float32)
        if values.size != 16:
            raise ValueError(f"Expected 16 matrix values, got {values.size}")
        provenance = Provenance(shader_key=shader_key, base_register=base_register,
                                origin=BindingOrigin.MANUAL)
        self.bank.store(MatrixSlot.parse(slot), values.reshape(4, 4), provenance)

    def bind_manual(self, slot, shader_key: int, base_register: int,
                    row_count: int = 4, transposed: bool = False) -> bool:
        """
        Bind a slot to a register window of one shader

        The binding applies on every write covering the window until an
        automatic promotion for the slot replaces it. Returns True when the
        window was already populated and stored immediately.
        """
        slot = MatrixSlot.parse(slot)
        if row_count not in (3, 4):
            raise ValueError(f"row_count must be 3 or 4, got {row_count}")
        if base_register < 0 or base_register + row_count > self.config.max_registers:
            raise ValueError(f"Register window c{base_register}+{row_count} out of range")

        binding = ManualBinding(slot=slot, shader_key=shader_key, base_register=base_register,
                                layout=LayoutKind.from_flags(row_count, transposed))
        self._manual[slot] = binding
        self.logger.info(f"Manual {slot.value} binding: shader 0x{shader_key:x} c{base_register} "
                         f"({row_count} rows{', transposed' if transposed else ''})")

        context = self.registers.get_context(shader_key, create=False)
        return context is not None and self._apply_manual(binding, context)

    def clear_manual(self, slot=None):
        if slot is None:
            self._manual.clear()
        else:
            self._manual.pop(MatrixSlot.parse(slot), None)

    def reset_bindings(self, clear_profiles: bool = False) -> bool:
        """
        Return every slot to Unseen

        Drops candidates, promoted and manual bindings and the bank contents.
        Persisted profiles survive (and re-seed their shaders) unless
        clear_profiles is set, in which case the profiles of every shader seen
        this session are cleared. Returns False if clearing failed to persist.
        """
        self.bank.clear()
        self.candidates.clear()
        self._promoted.clear()
        self._manual.clear()

        ok = True
        for context in self.registers.contexts():
            context.force_identity_world_view = False
            context.best_stable.clear()
            if clear_profiles and context.bytecode_hash is not None:
                ok = self.profiles.clear(context.bytecode_hash) and ok

        if not clear_profiles:
            for context in self.registers.contexts():
                self._seed_from_profile(context)

        self.logger.info(f"Bindings reset{' (profiles cleared)' if clear_profiles else ''}")
        return ok

    def reset(self, clear_profiles: bool = False) -> bool:
        """Reset bindings and drop every shader context"""
        ok = self.reset_bindings(clear_profiles=clear_profiles)
        # Seeds are re-applied when each shader is seen again
        self._promoted.clear()
        self.registers.reset()
        self.frame = 0
        return ok

    def pin_shader(self, shader_key: int) -> bool:
        """Persist the current View/Projection bindings of a hashed shader"""
        context = self.registers.get_context(shader_key, create=False)
        if context is None or context.bytecode_hash is None:
            self.logger.warning(f"Cannot pin shader 0x{shader_key:x}: no bytecode hash")
            return False

        profile = self.profiles.lookup(context.bytecode_hash) or HeuristicProfile()
        pinned_any = False
        for slot in PINNABLE_SLOTS:
            binding = self._promoted.get((shader_key, slot))
            if binding is not None:
                self._record_in_profile(profile, binding.key)
                pinned_any = True
        if not pinned_any:
            self.logger.warning(f"Cannot pin shader 0x{shader_key:x}: nothing promoted")
            return False

        profile.valid = True
        self.logger.info(f"Pinned shader 0x{shader_key:x} ({context.bytecode_hash}): "
                         f"view c{profile.view_base}, proj c{profile.proj_base}")
        return self.profiles.save(context.bytecode_hash, profile)

    def clear_pin(self, shader_key: int) -> bool:
        """Invalidate the stored profile of a shader; competing candidates become eligible"""
        context = self.registers.get_context(shader_key, create=False)
        if context is None or context.bytecode_hash is None:
            return False
        return self.profiles.clear(context.bytecode_hash)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def shader_keys(self) -> List[int]:
        return self.registers.shader_keys()

    def binding_state(self, shader_key: int, slot) -> BindingState:
        slot = MatrixSlot.parse(slot)
        context = self.registers.get_context(shader_key, create=False)
        if context is not None and self._pinned_base(context, slot) is not None:
            return BindingState.PINNED
        if (shader_key, slot) in self._promoted:
            return BindingState.PROMOTED

        keys = self.candidates.candidates(shader_key, slot)
        if any(self.candidates.passes_temporal_stability(self.candidates.stats(k)) for k in keys):
            return BindingState.STABLE
        return BindingState.CANDIDATE if keys else BindingState.UNSEEN

    def promoted_binding(self, shader_key: int, slot) -> Optional[PromotedBinding]:
        return self._promoted.get((shader_key, MatrixSlot.parse(slot)))

    def candidate_reports(self, shader_key: int, slot) -> List[CandidateReport]:
        return self.candidates.reports(shader_key, MatrixSlot.parse(slot))

    def candidate_variance(self, key: CandidateKey) -> float:
        """Largest register component variance across a candidate's window"""
        context = self.registers.get_context(key.shader_key, create=False)
        if context is None:
            return 0.0
        return context.window_variance(key.base_register, key.row_count)

    def is_low_variance(self, key: CandidateKey) -> bool:
        return self.candidate_variance(key) <= self.config.variance_threshold

    def snapshot_matrices(self, shader_key: int, only_detected: bool = False) -> List[RegisterGroup]:
        """Constant registers of a shader grouped as 4-register matrices"""
        context = self.registers.get_context(shader_key, create=False)
        if context is None:
            return []

        groups = []
        for base in range(0, context.max_registers - 3, 4):
            valid = context.valid[base:base + 4].copy()
            if not np.any(valid):
                continue
            values = context.values[base:base + 4].copy()
            looks_like = bool(np.all(valid)) and passes_magnitude_gate(values)
            if only_detected and not looks_like:
                continue
            groups.append(RegisterGroup(base_register=base, values=values, valid=valid,
                                        looks_like_matrix=looks_like))
        return groups

    def status(self) -> Dict[str, Any]:
        bank = self.bank.snapshot()
        return {
            "frame": self.frame,
            "shaders": len(self.registers.shader_keys()),
            "candidates": len(self.candidates),
            "slots": {
                slot.value: {
                    "valid": reading.valid,
                    "provenance": reading.provenance.to_dict() if reading.provenance else None,
                }
                for slot, reading in bank.items()
            },
            "promoted": [
                {"shader_key": key[0], "slot": key[1].value,
                 "base_register": b.key.base_register, "layout": b.key.layout.name,
                 "origin": b.origin.value}
                for key, b in sorted(self._promoted.items(), key=lambda kv: (kv[0][0], kv[0][1].value))
            ],
            "manual": {slot.value: b.base_register for slot, b in self._manual.items()},
            "best_stable": {
                f"0x{context.shader_key:x}": {
                    slot.value: {"base_register": best.base_register, "streak": best.streak}
                    for slot, best in context.best_stable.items()
                }
                for context in self.registers.contexts() if context.best_stable
            },
            "profiles": sum(1 for key in self.profiles.keys() if self.profiles.lookup(key) is not None),
            "performance": self.monitor.get_status(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _to_vectors(self, floats: Sequence[float], vector_count: Optional[int]) -> Optional[np.ndarray]:
        try:
            flat = np.asarray(floats, dtype=np.float32).reshape(-1)
        except (TypeError, ValueError) as e:
            self.logger.debug(f"Ignoring malformed constant data: {e}")
            return None

        if vector_count is not None:
            flat = flat[:max(vector_count, 0) * 4]
        usable = (flat.size // 4) * 4
        if usable != flat.size:
            self.logger.debug(f"Dropping {flat.size - usable} trailing floats of a partial vector")
        return flat[:usable].reshape(-1, 4)

    def _context(self, shader_key: int, bytecode_hash: Optional[str] = None) -> ShaderContext:
        context = self.registers.get_context(shader_key)
        if bytecode_hash is not None and context.bytecode_hash != bytecode_hash:
            context.bytecode_hash = bytecode_hash
            context.hash_resolved = True
            self._seed_from_profile(context)
        elif not context.hash_resolved:
            context.hash_resolved = True
            context.bytecode_hash = self._lookup_hash(shader_key)
            self._seed_from_profile(context)
        return context

    def _lookup_hash(self, shader_key: int) -> Optional[str]:
        if self._resolve_hash is None:
            return None
        try:
            return self._resolve_hash(shader_key)
        except Exception as e:
            self.logger.warning(f"Bytecode hash lookup failed for shader 0x{shader_key:x}: {e}")
            return None

    def _pinned_base(self, context: ShaderContext, slot: MatrixSlot) -> Optional[int]:
        if context.bytecode_hash is None or slot not in PINNABLE_SLOTS:
            return None
        profile = self.profiles.lookup(context.bytecode_hash)
        return profile.pinned_base(slot) if profile is not None else None

    def _seed_from_profile(self, context: ShaderContext):
        profile = self.profiles.lookup(context.bytecode_hash)
        if profile is None:
            return

        if profile.view_base >= 0:
            layout = LayoutKind.from_flags(profile.layout_mode.row_count, profile.transposed,
                                           profile.inverse_view)
            self._seed(context, MatrixSlot.VIEW, profile.view_base, layout)
        # The transposed flag belongs to the view when one is recorded
        if profile.proj_base >= 0 and profile.view_base < 0:
            self._seed(context, MatrixSlot.PROJECTION, profile.proj_base,
                       LayoutKind.from_flags(4, profile.transposed))

    def _seed(self, context: ShaderContext, slot: MatrixSlot, base_register: int, layout: LayoutKind):
        if self.config.forced_register(slot) >= 0:
            return
        if base_register + layout.row_count > self.config.max_registers:
            return
        binding_key = (context.shader_key, slot)
        if binding_key in self._promoted:
            return

        key = CandidateKey(context.shader_key, slot, base_register, layout)
        self._promoted[binding_key] = PromotedBinding(key, BindingOrigin.PROFILE)
        self.logger.info(f"Seeded {key.describe()} from profile {context.bytecode_hash}")
        self._refresh_bindings(context, base_register, base_register + layout.row_count)

    def _log_constants(self, start_register: int, vectors: np.ndarray):
        if not self.config.log_all_constants or self._constant_log_throttle != 0 or len(vectors) < 4:
            return
        self.logger.debug(f"SetVertexShaderConstantF: c{start_register}-{start_register + len(vectors) - 1} "
                         f"({len(vectors)} vectors)")
        for i, v in enumerate(vectors[:4]):
            self.logger.debug(f"  c{start_register + i}: [{v[0]:.3f}, {v[1]:.3f}, {v[2]:.3f}, {v[3]:.3f}]")

    def _provenance(self, key: CandidateKey, origin: BindingOrigin) -> Provenance:
        return Provenance(shader_key=key.shader_key, base_register=key.base_register,
                          row_count=key.row_count, transposed=key.transposed,
                          origin=origin, inverse_view=key.inverse_view)

    def _apply_configured_registers(self, context: ShaderContext, start_register: int, vectors: np.ndarray):
        """Forced registers: store directly when the write covers the whole window"""
        end = start_register + len(vectors)
        for slot in MatrixSlot:
            register = self.config.forced_register(slot)
            if register < 0 or register < start_register or register + 4 > end:
                continue
            window = vectors[register - start_register:register - start_register + 4]
            match = self._match_configured(window, slot)
            if match is None:
                continue

            self.bank.store(slot, match.matrix, Provenance(
                shader_key=context.shader_key, base_register=register, row_count=4,
                transposed=match.layout.transposed, origin=BindingOrigin.CONFIGURED))
            if slot == MatrixSlot.PROJECTION:
                self.logger.debug(f"Extracted PROJECTION matrix from c{register} "
                                  f"(FOV: {np.degrees(extract_fov(match.matrix)):.1f} deg)")
            else:
                self.logger.debug(f"Extracted {slot.name} matrix from c{register}")

            if slot == MatrixSlot.MVP and self.config.extract_camera_from_mvp:
                self._split_mvp(context, match.matrix, register)

    def _match_configured(self, window: np.ndarray, slot: MatrixSlot) -> Optional[LayoutMatch]:
        if slot in (MatrixSlot.WORLD, MatrixSlot.MVP):
            return self.classifier.match_layout(window, slot, LayoutKind.ROWS4_DIRECT)

        for layout in LayoutKind.probe_order(4, self.config.probe_transpose, probe_inverse=False):
            match = self.classifier.match_layout(window, slot, layout)
            if match is not None and not match.perspective_fallback:
                return match
        return None

    def _split_mvp(self, context: ShaderContext, mvp: np.ndarray, register: int):
        """Approximate View from the MVP and pair it with a synthetic projection"""
        derived = Provenance(shader_key=context.shader_key, base_register=register,
                             origin=BindingOrigin.DERIVED)
        if self.config.view_register < 0:
            self.bank.store(MatrixSlot.VIEW, extract_view_from_mvp(mvp), derived)
        if self.config.projection_register < 0:
            self.bank.store(MatrixSlot.PROJECTION, perspective_matrix(), derived)

    def _detect_candidates(self, context: ShaderContext, start_register: int, vectors: np.ndarray):
        """Probe every register window contained in the write"""
        count = len(vectors)
        row_counts = (4, 3) if self.config.probe_three_row else (4,)
        found: List[Tuple[int, LayoutMatch]] = []

        for offset in range(count):
            for rows in row_counts:
                if offset + rows > count:
                    continue
                base = start_register + offset
                for match in self.classifier.probe(vectors[offset:offset + rows], rows):
                    found.append((base, match))

        # World windows must not share registers with a camera matrix of the same write
        camera = np.zeros(count, dtype=bool)
        for base, match in found:
            if match.slot != MatrixSlot.WORLD:
                offset = base - start_register
                camera[offset:offset + match.layout.row_count] = True

        matched = set()
        touched: List[MatrixSlot] = []
        for base, match in found:
            if self.config.forced_register(match.slot) >= 0:
                continue
            offset = base - start_register
            if match.slot == MatrixSlot.WORLD and np.any(camera[offset:offset + 4]):
                continue
            key = CandidateKey(context.shader_key, match.slot, base, match.layout)
            stats = self.candidates.observe_candidate(
                key, match.matrix, self.frame, fov=match.fov,
                perspective_fallback=match.perspective_fallback)
            matched.add(key)
            if self.candidates.passes_temporal_stability(stats):
                context.note_stable(match.slot, base, stats.consecutive_frames)
            if match.slot not in touched:
                touched.append(match.slot)

        self.candidates.mark_stale(context.shader_key, start_register, start_register + count, matched)
        for slot in touched:
            self._evaluate_slot(context, slot)

    def _evaluate_slot(self, context: ShaderContext, slot: MatrixSlot):
        if slot in (MatrixSlot.WORLD, MatrixSlot.VIEW) and context.force_identity_world_view:
            return
        if self.config.forced_register(slot) >= 0:
            return

        best = self.candidates.select_best(context.shader_key, slot, self._pinned_base(context, slot))
        if best is None:
            return
        current = self._promoted.get((context.shader_key, slot))
        if current is not None and current.key == best:
            return
        self._promote(context, best)

    def _promote(self, context: ShaderContext, key: CandidateKey):
        stats = self.candidates.stats(key)
        slot = key.slot
        self._promoted[(context.shader_key, slot)] = PromotedBinding(key, BindingOrigin.AUTO)

        if self._manual.pop(slot, None) is not None:
            self.logger.info(f"Promotion of {key.describe()} replaced the manual {slot.value} binding")

        self.bank.store(slot, stats.last_matrix, self._provenance(key, BindingOrigin.AUTO))
        self.logger.info(f"Promoted {key.describe()} (score {self.candidates.score(stats):.2f}, "
                         f"frames {stats.frames_seen}, streak {stats.best_consecutive_frames})")

        if slot == MatrixSlot.PROJECTION:
            self._apply_fallback_policy(context, stats.perspective_fallback)

        if context.bytecode_hash is not None and slot in PINNABLE_SLOTS:
            profile = self.profiles.lookup(context.bytecode_hash) or HeuristicProfile()
            self._record_in_profile(profile, key)
            profile.valid = True
            if not self.profiles.save(context.bytecode_hash, profile):
                self.logger.warning(f"Profile for {context.bytecode_hash} kept in memory only")

    @staticmethod
    def _record_in_profile(profile: HeuristicProfile, key: CandidateKey):
        if key.slot == MatrixSlot.VIEW:
            profile.view_base = key.base_register
            profile.layout_mode = LayoutMode.from_rows(key.row_count)
            profile.transposed = key.transposed
            profile.inverse_view = key.inverse_view
        elif key.slot == MatrixSlot.PROJECTION:
            profile.proj_base = key.base_register
            if profile.view_base < 0:
                profile.transposed = key.transposed

    def _apply_fallback_policy(self, context: ShaderContext, perspective_fallback: bool):
        """A perspective-like projection outside the FOV bounds forces identity World/View"""
        if perspective_fallback and self.config.perspective_fallback_identity:
            if not context.force_identity_world_view:
                self.logger.info(f"Shader 0x{context.shader_key:x}: perspective-like projection "
                                 f"outside FOV bounds, forcing identity World/View")
            context.force_identity_world_view = True
            for slot in (MatrixSlot.WORLD, MatrixSlot.VIEW):
                self._promoted.pop((context.shader_key, slot), None)
            self._store_identity_world_view(context)
        elif not perspective_fallback:
            context.force_identity_world_view = False

    def _store_identity_world_view(self, context: ShaderContext):
        derived = Provenance(shader_key=context.shader_key, origin=BindingOrigin.DERIVED)
        self.bank.store(MatrixSlot.WORLD, identity_matrix(), derived)
        self.bank.store(MatrixSlot.VIEW, identity_matrix(), derived)

    def _refresh_bindings(self, context: ShaderContext, start_register: int, end_register: int):
        """Push fresh values of promoted bindings whose registers were written"""
        for slot in MatrixSlot:
            binding = self._promoted.get((context.shader_key, slot))
            if binding is None or slot in self._manual:
                continue
            key = binding.key
            if key.base_register >= end_register or key.end_register <= start_register:
                continue

            window = context.window(key.base_register, key.row_count)
            if window is None:
                continue
            match = self.classifier.match_layout(window, slot, key.layout)
            if match is None:
                continue

            self.bank.store(slot, match.matrix, self._provenance(key, binding.origin))
            if slot == MatrixSlot.PROJECTION:
                self._apply_fallback_policy(context, match.perspective_fallback)

    def _apply_manual_bindings(self, context: ShaderContext, start_register: int, end_register: int):
        for binding in list(self._manual.values()):
            if binding.shader_key != context.shader_key:
                continue
            end = binding.base_register + binding.layout.row_count
            if binding.base_register < end_register and end > start_register:
                self._apply_manual(binding, context)

    def _apply_manual(self, binding: ManualBinding, context: ShaderContext) -> bool:
        window = context.window(binding.base_register, binding.layout.row_count)
        if window is None or not np.all(np.isfinite(window)):
            return False
        matrix = window_to_matrix(window, binding.layout.row_count)
        if binding.layout.transposed:
            matrix = matrix.T
        self.bank.store(binding.slot, matrix, Provenance(
            shader_key=binding.shader_key, base_register=binding.base_register,
            row_count=binding.layout.row_count, transposed=binding.layout.transposed,
            origin=BindingOrigin.MANUAL))
        return True
