#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Numerical Validation and Tripwire Module
========================================

Checks used at every alignment stage boundary: NaN/inf tripwires with a
diagnostic dump, and conditioning measures for the least-squares systems.
"""

from typing import Optional, Tuple

import numpy as np


def assert_finite(name, M, extra_info=None, raise_on_fail=False):
    """
    Tripwire: Check matrix/vector for inf/nan and dump diagnostics if found.

    Parameters:
    -----------
    name : str
        Descriptive name of the quantity being checked
    M : np.ndarray
        Matrix or vector to validate
    extra_info : dict, optional
        Additional diagnostic information to dump
    raise_on_fail : bool
        If True, raises ValueError on failure. If False, only prints warning.

    Returns:
    --------
    bool : True if finite, False if inf/nan detected
    """
    if M is None:
        print(f"[TRIPWIRE] {name}: is None!")
        return False

    M = np.asarray(M)
    if np.all(np.isfinite(M)):
        return True

    print(f"\n{'='*70}")
    print(f"[TRIPWIRE] NaN/inf DETECTED in {name}")
    print(f"{'='*70}")
    print(f"Matrix shape: {M.shape}")
    print(f"Has NaN: {np.any(np.isnan(M))}")
    print(f"Has inf: {np.any(np.isinf(M))}")

    if M.size <= 100:
        print(f"\nFull matrix:\n{M}")
    else:
        bad_locs = np.argwhere(~np.isfinite(M))
        print(f"\nNon-finite locations (first 10): {bad_locs[:10].tolist()}")

    if extra_info:
        print(f"\nAdditional context:")
        for key, val in extra_info.items():
            if isinstance(val, np.ndarray) and val.size > 10:
                print(f"  {key}: shape={val.shape}, norm={np.linalg.norm(val):.6e}")
            elif isinstance(val, np.ndarray):
                print(f"  {key}: {val.ravel()}")
            else:
                print(f"  {key}: {val}")
    print(f"{'='*70}\n")

    if raise_on_fail:
        raise ValueError(f"NaN/inf detected in {name}")
    return False


def symmetric_eigen_bounds(H: np.ndarray) -> Tuple[float, float]:
    """
    Smallest and largest eigenvalue of a symmetric matrix.

    H is symmetrized first so round-off asymmetry does not leak in.
    """
    eig = np.linalg.eigvalsh((H + H.T) / 2.0)
    return float(eig[0]), float(eig[-1])


def reciprocal_condition(singular_values: np.ndarray) -> float:
    """σ_min / σ_max (0 for an empty or all-zero spectrum)."""
    sv = np.asarray(singular_values, dtype=float)
    if sv.size == 0 or sv[0] <= 0.0:
        return 0.0
    return float(sv[-1] / sv[0])


def solve_least_squares(A: np.ndarray, b: np.ndarray,
                        min_rcond: float) -> Tuple[Optional[np.ndarray], str]:
    """
    Least-squares solve of A x = b with rank and conditioning checks.

    Returns:
        (x, "") on success, (None, reason) when A is rank-deficient,
        ill-conditioned or the solution is not finite.
    """
    n_rows, n_cols = A.shape
    if n_rows < n_cols:
        return None, f"underdetermined system {n_rows}x{n_cols}"
    if not assert_finite("lstsq A", A) or not assert_finite("lstsq b", b):
        return None, "non-finite system"

    x, _residuals, rank, sv = np.linalg.lstsq(A, b, rcond=None)
    if rank < n_cols:
        return None, f"rank {rank} < {n_cols} unknowns"
    rcond = reciprocal_condition(sv)
    if rcond < min_rcond:
        return None, f"rcond {rcond:.3e} < {min_rcond:.1e}"
    if not assert_finite("lstsq x", x):
        return None, "non-finite solution"
    return x, ""
