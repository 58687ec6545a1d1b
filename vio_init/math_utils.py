#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
VIO Init Math Utilities Module
==============================

Rotation helpers (SO(3) exp/log, right Jacobian), quaternion conversions and
the tangent-plane basis used to perturb gravity on the sphere |g| = g0.

Quaternion Convention:
----------------------
All quaternions use Hamilton convention with [w, x, y, z] ordering:
- w is the scalar (real) part
- [x, y, z] is the vector (imaginary) part

Rotation Convention:
--------------------
Rotation matrices map body-frame vectors into the navigation frame
(R_nav_body). Perturbations are applied on the right:
    R_perturbed = R @ Exp(δθ)

Key Operations:
---------------
- skew_symmetric: 3x3 cross-product matrix
- so3_exp / so3_log: exponential and logarithm maps of SO(3)
- so3_right_jacobian: right Jacobian Jr(θ)
- quat_to_rot / rot_to_quat: [w,x,y,z] <-> rotation matrix
- create_tangent_basis: orthonormal basis of the plane orthogonal to v

Author: VIO project
"""

import numpy as np
from scipy.spatial.transform import Rotation as R_scipy


# Below this angle the first-order expansions of Exp/Jr are used
SMALL_ANGLE = 1e-8

WORLD_AXES = np.eye(3, dtype=np.float64)


# =============================================================================
# Vector Operations
# =============================================================================

def normalize(v: np.ndarray) -> np.ndarray:
    """
    Return v / ||v||.

    Raises:
        ValueError: If v is zero or contains NaN/inf (direction undefined)
    """
    v = np.asarray(v, dtype=float).reshape(3,)
    norm = np.linalg.norm(v)
    if not np.isfinite(norm) or norm < 1e-12:
        raise ValueError(f"Cannot normalize vector with norm {norm}")
    return v / norm


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """
    Create skew-symmetric matrix from 3D vector.
    [v]× such that [v]× @ u = v × u (cross product)

    [v]× = [ 0   -vz   vy ]
           [ vz   0   -vx ]
           [-vy   vx   0  ]
    """
    return np.array([
        [0,      -v[2],  v[1]],
        [v[2],    0,    -v[0]],
        [-v[1],   v[0],   0   ]
    ], dtype=float)


# =============================================================================
# SO(3) Maps
# =============================================================================

def so3_exp(theta_vec: np.ndarray) -> np.ndarray:
    """
    Exponential map of SO(3) (Rodrigues formula).

        Exp(θ) = I + sin(θ)/θ [θ]× + (1-cos(θ))/θ² [θ]×²

    Args:
        theta_vec: Rotation vector (3,) [rad]

    Returns:
        3x3 rotation matrix
    """
    theta_vec = np.asarray(theta_vec, dtype=float).reshape(3,)
    theta = np.linalg.norm(theta_vec)
    if theta < SMALL_ANGLE:
        # Small angle: Exp(θ) ≈ I + [θ]×
        return np.eye(3) + skew_symmetric(theta_vec)
    axis = theta_vec / theta
    skew_axis = skew_symmetric(axis)
    return np.eye(3) + np.sin(theta) * skew_axis + \
        (1 - np.cos(theta)) * (skew_axis @ skew_axis)


def so3_log(R: np.ndarray) -> np.ndarray:
    """
    Logarithm map of SO(3): rotation matrix -> rotation vector (3,).

    Uses scipy for the numerically delicate cases near θ = π.
    """
    return R_scipy.from_matrix(np.asarray(R, dtype=float)).as_rotvec()


def so3_right_jacobian(theta_vec: np.ndarray) -> np.ndarray:
    """
    Right Jacobian of SO(3) for rotation error propagation.

        Jr(θ) = I - (1-cos θ)/θ [a]× + (θ - sin θ)/θ [a]×²,  a = θ/|θ|
    """
    theta_vec = np.asarray(theta_vec, dtype=float).reshape(3,)
    theta = np.linalg.norm(theta_vec)
    if theta < SMALL_ANGLE:
        return np.eye(3) - 0.5 * skew_symmetric(theta_vec)
    axis = theta_vec / theta
    skew_axis = skew_symmetric(axis)
    return np.eye(3) - (1 - np.cos(theta)) / theta * skew_axis + \
        (theta - np.sin(theta)) / theta * (skew_axis @ skew_axis)


# =============================================================================
# Quaternion Conversions ([w, x, y, z] Hamilton convention)
# =============================================================================

def quat_normalize(q: np.ndarray) -> np.ndarray:
    """
    Normalize quaternion to unit length.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        Normalized quaternion with ||q|| = 1
    """
    norm = np.linalg.norm(q)
    if norm < 1e-10:
        return np.array([1.0, 0.0, 0.0, 0.0])
    return q / norm


def quat_to_rot(q: np.ndarray) -> np.ndarray:
    """Convert quaternion [w,x,y,z] to 3x3 rotation matrix."""
    w, x, y, z = quat_normalize(np.asarray(q, dtype=float))
    return np.array([
        [1-2*(y*y+z*z), 2*(x*y-w*z),   2*(x*z+w*y)],
        [2*(x*y+w*z),   1-2*(x*x+z*z), 2*(y*z-w*x)],
        [2*(x*z-w*y),   2*(y*z+w*x),   1-2*(x*x+y*y)]
    ])


def rot_to_quat(R: np.ndarray) -> np.ndarray:
    """Convert 3x3 rotation matrix to quaternion [w,x,y,z] with w >= 0."""
    x, y, z, w = R_scipy.from_matrix(np.asarray(R, dtype=float)).as_quat()
    q = np.array([w, x, y, z])
    if q[0] < 0:
        q = -q
    return quat_normalize(q)


# =============================================================================
# Tangent Basis
# =============================================================================

def create_tangent_basis(v: np.ndarray) -> np.ndarray:
    """
    Orthonormal basis of the plane orthogonal to v.

    The seed axis is the world axis least aligned with v, so the
    Gram-Schmidt step never subtracts two nearly parallel vectors, even for
    axis-aligned v.

        n  = v / |v|
        b1 = normalize(e - (e·n) n)
        b2 = n × b1

    Args:
        v: Nonzero 3-vector (need not be unit length)

    Returns:
        3x2 matrix [b1 b2]

    Raises:
        ValueError: If v is zero or not finite
    """
    n = normalize(v)
    seed = WORLD_AXES[int(np.argmin(np.abs(WORLD_AXES @ n)))]
    b1 = normalize(seed - np.dot(seed, n) * n)
    b2 = np.cross(n, b1)
    return np.column_stack([b1, b2])
