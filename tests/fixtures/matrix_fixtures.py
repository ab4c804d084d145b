#!/usr/bin/env python3
"""
Matrix builders for camera extraction tests
Row-vector layout: rotation rows first, translation in the last row
"""

import math
from typing import List, Sequence

import numpy as np


def rotation_y(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    m = np.eye(4, dtype=np.float32)
    m[0, 0], m[0, 2] = c, -s
    m[2, 0], m[2, 2] = s, c
    return m


def view_matrix(yaw: float = 0.3, translation: Sequence[float] = (1.5, -2.0, 10.0)) -> np.ndarray:
    """Rigid camera transform with translation in row 4"""
    m = rotation_y(yaw)
    m[3, :3] = translation
    return m


def projection_matrix(fov_y: float = 1.0, aspect: float = 16.0 / 9.0,
                      z_near: float = 0.1, z_far: float = 1000.0) -> np.ndarray:
    yscale = 1.0 / math.tan(fov_y / 2.0)
    m = np.zeros((4, 4), dtype=np.float32)
    m[0, 0] = yscale / aspect
    m[1, 1] = yscale
    m[2, 2] = z_far / (z_far - z_near)
    m[2, 3] = 1.0
    m[3, 2] = -z_near * z_far / (z_far - z_near)
    return m


def world_matrix(scale: float = 2.0, translation: Sequence[float] = (3.0, 0.0, -4.0)) -> np.ndarray:
    """Scaled object transform; never orthonormal so it is not mistaken for a view"""
    m = np.eye(4, dtype=np.float32) * scale
    m[3, :3] = translation
    m[3, 3] = 1.0
    return m


def rigid_inverse_of(m: np.ndarray) -> np.ndarray:
    out = np.eye(4, dtype=np.float32)
    rotation_t = m[:3, :3].T
    out[:3, :3] = rotation_t
    out[3, :3] = -m[3, :3] @ rotation_t
    return out


def flatten(*matrices: np.ndarray) -> List[float]:
    """Register payload for one write covering the given rows in order"""
    return [float(v) for m in matrices for v in np.asarray(m, dtype=np.float32).reshape(-1)]
