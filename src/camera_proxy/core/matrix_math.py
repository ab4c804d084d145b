#!/usr/bin/env python3
"""
Matrix helpers for shader-constant camera extraction
Row-vector (D3D style) 4x4 matrices: rotation in the upper 3x3 block,
translation in row 4, projective terms in column 4
"""

import math
from typing import Optional, Sequence, Union

import numpy as np

# Singular rotation blocks are skipped during rigid-body inversion
SINGULAR_DETERMINANT = 1e-6

# Synthetic projection used when only a combined MVP is available
DEFAULT_SYNTHETIC_FOV = 1.047
DEFAULT_SYNTHETIC_ASPECT = 16.0 / 9.0
DEFAULT_SYNTHETIC_NEAR = 0.1
DEFAULT_SYNTHETIC_FAR = 10000.0

MatrixLike = Union[np.ndarray, Sequence[float], Sequence[Sequence[float]]]


def identity_matrix() -> np.ndarray:
    """Return a fresh float32 identity"""
    return np.eye(4, dtype=np.float32)


def window_to_matrix(window: MatrixLike, row_count: int = 4) -> np.ndarray:
    """
    Build a 4x4 float64 matrix from a register window

    Each register is one row. Three-register windows (packed 4x3 affine
    uploads) are completed with a homogeneous [0, 0, 0, 1] row.
    """
    rows = np.asarray(window, dtype=np.float64).reshape(row_count, 4)
    if row_count == 4:
        return rows.copy()
    matrix = np.zeros((4, 4), dtype=np.float64)
    matrix[:row_count] = rows
    matrix[3, 3] = 1.0
    return matrix


def transpose_matrix(matrix: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(np.asarray(matrix).T)


def rigid_inverse(matrix: np.ndarray) -> Optional[np.ndarray]:
    """
    Invert a rotation + translation matrix without a general inverse

    The 3x3 block is transposed and the row-4 translation is negated and
    re-projected through the transposed block. Returns None when the rotation
    block is singular or the input is not finite.
    """
    m = np.asarray(matrix, dtype=np.float64)
    if not np.all(np.isfinite(m)):
        return None

    rotation = m[:3, :3]
    if abs(np.linalg.det(rotation)) < SINGULAR_DETERMINANT:
        return None

    rotation_t = rotation.T
    translation = m[3, :3]

    inverse = np.zeros((4, 4), dtype=np.float64)
    inverse[:3, :3] = rotation_t
    inverse[3, :3] = -translation @ rotation_t
    inverse[3, 3] = 1.0
    return inverse


def extract_fov(projection: np.ndarray) -> float:
    """Vertical field of view in radians from the _22 scale term"""
    yscale = float(projection[1, 1])
    if abs(yscale) < 0.001:
        return 0.0
    return 2.0 * math.atan(1.0 / yscale)


def perspective_matrix(fov_y: float = DEFAULT_SYNTHETIC_FOV,
                       aspect: float = DEFAULT_SYNTHETIC_ASPECT,
                       z_near: float = DEFAULT_SYNTHETIC_NEAR,
                       z_far: float = DEFAULT_SYNTHETIC_FAR) -> np.ndarray:
    """Left-handed perspective projection in the fixed-function layout"""
    yscale = 1.0 / math.tan(fov_y / 2.0)
    xscale = yscale / aspect
    out = np.zeros((4, 4), dtype=np.float32)
    out[0, 0] = xscale
    out[1, 1] = yscale
    out[2, 2] = z_far / (z_far - z_near)
    out[2, 3] = 1.0
    out[3, 2] = -z_near * z_far / (z_far - z_near)
    return out


def extract_view_from_mvp(mvp: np.ndarray) -> np.ndarray:
    """
    Approximate a view matrix from a combined MVP

    The upper three rows are normalised to recover the rotation and the
    column-4 terms scaled by the same row lengths become the translation.
    Degenerate rows leave the identity in place.
    """
    m = np.asarray(mvp, dtype=np.float64)
    view = np.eye(4, dtype=np.float64)

    lengths = np.linalg.norm(m[:3, :3], axis=1)
    if np.all(lengths > 0.001):
        view[:3, :3] = m[:3, :3] / lengths[:, None]
        view[3, :3] = m[:3, 3] / lengths

    return view.astype(np.float32)


def mean_abs_delta(a: np.ndarray, b: np.ndarray) -> float:
    """Average per-component absolute difference of two matrices"""
    return float(np.mean(np.abs(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))))
