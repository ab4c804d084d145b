#!/usr/bin/env python3
"""
Structural Matrix Classifier
History-free tests mapping a register window to View / Projection / World
verdicts, plus transpose and rigid-inverse probing over layout variants
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .matrix_bank import MatrixSlot
from .matrix_math import MatrixLike, extract_fov, rigid_inverse, transpose_matrix, window_to_matrix

# Magnitude gate
MIN_ABS_SUM = 0.001
MAX_ABS_SUM = 10000.0

# View-strict tolerances
VIEW_ROW_LENGTH_TOLERANCE = 0.05
VIEW_ORTHOGONALITY_TOLERANCE = 0.05
VIEW_PROJECTIVE_TOLERANCE = 0.01
VIEW_CORNER_TOLERANCE = 0.01
VIEW_DETERMINANT_TOLERANCE = 0.1

# Inverse probing accepts only windows the rigid inverse really inverts
RIGID_INVERSE_TOLERANCE = 0.01

# Projection-strict tolerances
PROJECTION_ZERO_TOLERANCE = 0.01
PROJECTION_MIN_SCALE = 0.01
PROJECTION_PERSPECTIVE_TOLERANCE = 0.05
PROJECTION_CORNER_TOLERANCE = 0.05

# Float rounding allowance on the FOV bounds
FOV_EPSILON = 1e-6

DEFAULT_MIN_FOV = 0.1
DEFAULT_MAX_FOV = 2.5

# Entries that must vanish in a perspective projection (row, column)
_PROJECTION_ZERO_ENTRIES = (
    (0, 1), (0, 2), (0, 3),
    (1, 0), (1, 2), (1, 3),
    (2, 0), (2, 1),
    (3, 0), (3, 1),
)


class LayoutKind(Enum):
    """Closed set of register layouts: {Rows4, Rows3} x {Direct, Transposed} x {Direct, Inverse}"""
    ROWS4_DIRECT = (4, False, False)
    ROWS4_TRANSPOSED = (4, True, False)
    ROWS4_INVERSE = (4, False, True)
    ROWS4_TRANSPOSED_INVERSE = (4, True, True)
    ROWS3_DIRECT = (3, False, False)
    ROWS3_TRANSPOSED = (3, True, False)
    ROWS3_INVERSE = (3, False, True)
    ROWS3_TRANSPOSED_INVERSE = (3, True, True)

    @property
    def row_count(self) -> int:
        return self.value[0]

    @property
    def transposed(self) -> bool:
        return self.value[1]

    @property
    def inverse_view(self) -> bool:
        return self.value[2]

    @classmethod
    def from_flags(cls, row_count: int, transposed: bool, inverse_view: bool = False) -> "LayoutKind":
        return cls((row_count, bool(transposed), bool(inverse_view)))

    @classmethod
    def probe_order(cls, row_count: int, probe_transpose: bool = True,
                    probe_inverse: bool = True) -> List["LayoutKind"]:
        """Layouts tried for a window, direct orientation first"""
        order = [cls.from_flags(row_count, False, False)]
        if probe_transpose:
            order.append(cls.from_flags(row_count, True, False))
        if probe_inverse:
            order.append(cls.from_flags(row_count, False, True))
            if probe_transpose:
                order.append(cls.from_flags(row_count, True, True))
        return order

    def orient(self, matrix: np.ndarray) -> Optional[np.ndarray]:
        """Apply this layout to a raw 4x4 window; None when no exact rigid inverse exists"""
        oriented = transpose_matrix(matrix) if self.transposed else matrix
        if self.inverse_view:
            inverse = rigid_inverse(oriented)
            if inverse is None:
                return None
            # Projective column and corner are dropped by the rigid inverse
            if not np.allclose(inverse @ oriented, np.eye(4), atol=RIGID_INVERSE_TOLERANCE):
                return None
            return inverse
        return oriented


@dataclass(frozen=True)
class ClassificationVerdict:
    """Outcome of classifying one window in one orientation"""
    passes_gate: bool
    is_view_strict: bool = False
    is_projection_strict: bool = False
    is_perspective_like: bool = False
    fov: float = 0.0

    @property
    def is_world(self) -> bool:
        return self.passes_gate and not self.is_view_strict

    @property
    def is_projection_fallback(self) -> bool:
        """Perspective-shaped but outside the configured FOV range"""
        return self.is_perspective_like and not self.is_projection_strict


REJECTED = ClassificationVerdict(passes_gate=False)


@dataclass(frozen=True)
class LayoutMatch:
    """A window accepted for one slot under one layout"""
    slot: MatrixSlot
    layout: LayoutKind
    matrix: np.ndarray
    fov: Optional[float] = None
    perspective_fallback: bool = False


def passes_magnitude_gate(values: np.ndarray) -> bool:
    """All values finite and their absolute sum inside [0.001, 10000]"""
    if not np.all(np.isfinite(values)):
        return False
    total = float(np.sum(np.abs(values)))
    return MIN_ABS_SUM <= total <= MAX_ABS_SUM


def is_view_strict(m: np.ndarray) -> bool:
    """Orthonormal proper rotation, empty projective column, unit corner"""
    if not np.all(np.isfinite(m)):
        return False
    rotation = m[:3, :3]

    lengths = np.linalg.norm(rotation, axis=1)
    if np.any(np.abs(lengths - 1.0) > VIEW_ROW_LENGTH_TOLERANCE):
        return False

    dots = (
        float(rotation[0] @ rotation[1]),
        float(rotation[0] @ rotation[2]),
        float(rotation[1] @ rotation[2]),
    )
    if any(abs(d) > VIEW_ORTHOGONALITY_TOLERANCE for d in dots):
        return False

    if np.any(np.abs(m[:3, 3]) > VIEW_PROJECTIVE_TOLERANCE):
        return False
    if abs(m[3, 3] - 1.0) > VIEW_CORNER_TOLERANCE:
        return False

    # Reflections have determinant -1
    return abs(float(np.linalg.det(rotation)) - 1.0) <= VIEW_DETERMINANT_TOLERANCE


def is_perspective_shaped(m: np.ndarray) -> bool:
    """Projection zero pattern, non-degenerate scales, w = z row, empty corner"""
    if not np.all(np.isfinite(m)):
        return False
    for row, col in _PROJECTION_ZERO_ENTRIES:
        if abs(m[row, col]) > PROJECTION_ZERO_TOLERANCE:
            return False
    if abs(m[0, 0]) < PROJECTION_MIN_SCALE or abs(m[1, 1]) < PROJECTION_MIN_SCALE:
        return False
    if abs(m[2, 3] - 1.0) > PROJECTION_PERSPECTIVE_TOLERANCE:
        return False
    return abs(m[3, 3]) <= PROJECTION_CORNER_TOLERANCE


def fov_in_range(fov: float, min_fov: float, max_fov: float) -> bool:
    return (min_fov - FOV_EPSILON) <= fov <= (max_fov + FOV_EPSILON)


def classify(window: MatrixLike, row_count: int = 4, transposed: bool = False,
             min_fov: float = DEFAULT_MIN_FOV,
             max_fov: float = DEFAULT_MAX_FOV) -> ClassificationVerdict:
    """
    Classify a register window in one orientation

    Pure function of the window contents; identical input always yields an
    identical verdict.
    """
    values = np.asarray(window, dtype=np.float64).reshape(-1)
    if values.size != row_count * 4 or not passes_magnitude_gate(values):
        return REJECTED

    m = window_to_matrix(values, row_count)
    if transposed:
        m = transpose_matrix(m)

    view = is_view_strict(m)
    perspective = is_perspective_shaped(m)
    fov = extract_fov(m) if perspective else 0.0
    projection = perspective and fov_in_range(fov, min_fov, max_fov)

    return ClassificationVerdict(
        passes_gate=True,
        is_view_strict=view,
        is_projection_strict=projection,
        is_perspective_like=perspective,
        fov=fov,
    )


class StructuralClassifier:
    """Configured classifier: FOV bounds and probe toggles"""

    def __init__(self, min_fov: float = DEFAULT_MIN_FOV, max_fov: float = DEFAULT_MAX_FOV,
                 probe_transpose: bool = True, probe_inverse_view: bool = True):
        self.min_fov = min_fov
        self.max_fov = max_fov
        self.probe_transpose = probe_transpose
        self.probe_inverse_view = probe_inverse_view

    @classmethod
    def from_config(cls, config) -> "StructuralClassifier":
        return cls(
            min_fov=config.min_fov,
            max_fov=config.max_fov,
            probe_transpose=config.probe_transpose,
            probe_inverse_view=config.probe_inverse_view,
        )

    def classify(self, window: MatrixLike, row_count: int = 4,
                 transposed: bool = False) -> ClassificationVerdict:
        return classify(window, row_count, transposed, self.min_fov, self.max_fov)

    def probe(self, window: MatrixLike, row_count: int = 4) -> List[LayoutMatch]:
        """
        Every slot the window qualifies for, at most one match per slot

        View tries direct, transposed, then the rigid inverse of each.
        Projection tries direct then transposed, falling back to a
        perspective-like match when only the FOV bound fails. World is a
        gate-passing four-row window that is neither view nor perspective.
        """
        values = np.asarray(window, dtype=np.float64).reshape(-1)
        if values.size != row_count * 4 or not passes_magnitude_gate(values):
            return []

        raw = window_to_matrix(values, row_count)
        orientations = [False, True] if self.probe_transpose else [False]
        verdicts = [(t, self.classify(values, row_count, t)) for t in orientations]
        matches: List[LayoutMatch] = []

        view = self._probe_view(raw, row_count, verdicts)
        if view is not None:
            matches.append(view)

        projection = self._probe_projection(raw, row_count, verdicts)
        if projection is not None:
            matches.append(projection)

        if (row_count == 4 and view is None and projection is None
                and not any(v.is_perspective_like for _, v in verdicts)):
            matches.append(LayoutMatch(
                slot=MatrixSlot.WORLD,
                layout=LayoutKind.ROWS4_DIRECT,
                matrix=raw,
            ))
        return matches

    def _probe_view(self, raw: np.ndarray, row_count: int,
                    verdicts: List[Tuple[bool, ClassificationVerdict]]) -> Optional[LayoutMatch]:
        for transposed, verdict in verdicts:
            if verdict.is_view_strict:
                layout = LayoutKind.from_flags(row_count, transposed)
                return LayoutMatch(MatrixSlot.VIEW, layout, layout.orient(raw))

        if not self.probe_inverse_view:
            return None

        for transposed, _ in verdicts:
            layout = LayoutKind.from_flags(row_count, transposed, inverse_view=True)
            inverse = layout.orient(raw)
            if inverse is not None and is_view_strict(inverse):
                return LayoutMatch(MatrixSlot.VIEW, layout, inverse)
        return None

    def _probe_projection(self, raw: np.ndarray, row_count: int,
                          verdicts: List[Tuple[bool, ClassificationVerdict]]) -> Optional[LayoutMatch]:
        fallback = None
        for transposed, verdict in verdicts:
            layout = LayoutKind.from_flags(row_count, transposed)
            if verdict.is_projection_strict:
                return LayoutMatch(MatrixSlot.PROJECTION, layout, layout.orient(raw), fov=verdict.fov)
            if fallback is None and verdict.is_projection_fallback:
                fallback = LayoutMatch(MatrixSlot.PROJECTION, layout, layout.orient(raw),
                                       fov=verdict.fov, perspective_fallback=True)
        return fallback

    def match_layout(self, window: MatrixLike, slot: MatrixSlot,
                     layout: LayoutKind) -> Optional[LayoutMatch]:
        """Re-test a known binding under its recorded layout"""
        row_count = layout.row_count
        values = np.asarray(window, dtype=np.float64).reshape(-1)
        if values.size != row_count * 4:
            return None

        if slot == MatrixSlot.MVP:
            if not np.all(np.isfinite(values)):
                return None
            raw = window_to_matrix(values, row_count)
            return LayoutMatch(slot, layout, transpose_matrix(raw) if layout.transposed else raw)

        if not passes_magnitude_gate(values):
            return None
        oriented = layout.orient(window_to_matrix(values, row_count))
        if oriented is None:
            return None

        if slot == MatrixSlot.VIEW:
            return LayoutMatch(slot, layout, oriented) if is_view_strict(oriented) else None
        if slot == MatrixSlot.PROJECTION:
            if not is_perspective_shaped(oriented):
                return None
            fov = extract_fov(oriented)
            strict = fov_in_range(fov, self.min_fov, self.max_fov)
            return LayoutMatch(slot, layout, oriented, fov=fov, perspective_fallback=not strict)
        return LayoutMatch(slot, layout, oriented)
