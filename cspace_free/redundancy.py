"""
Redundant rows of {C·s ≤ d, s_lower ≤ s ≤ s_upper}.

The polytope and the box are aggregated as C̅·s ≤ d̅ with

    C̅ = [C; I; −I],   d̅ = [d; s_upper; −s_lower]

and every row implied by the others is reported, split back into face rows,
lower-bound rows and upper-bound rows. A redundant row needs no Lagrangian
multiplier (it is identically zero in the certificate).
"""
import numpy as np

from .errors import PreconditionError
from .hpolyhedron import HPolyhedron


def find_redundant_inequalities(C, d, s_lower, s_upper, tighten=0.0):
    """
    Returns (C_redundant_indices, s_lower_redundant_indices,
    s_upper_redundant_indices). A positive `tighten` only reports rows that
    stay implied after moving them inward by `tighten`.
    """
    C = np.atleast_2d(np.asarray(C, dtype=float))
    d = np.asarray(d, dtype=float).reshape(-1)
    s_lower = np.asarray(s_lower, dtype=float).reshape(-1)
    s_upper = np.asarray(s_upper, dtype=float).reshape(-1)
    ns = s_lower.shape[0]
    if C.shape[0] != d.shape[0] or C.shape[1] != ns or s_upper.shape[0] != ns:
        raise PreconditionError(
            f"C {C.shape}, d {d.shape}, s_lower {s_lower.shape}, "
            f"s_upper {s_upper.shape} are inconsistent")
    C_bar = np.vstack([C, np.eye(ns), -np.eye(ns)])
    d_bar = np.concatenate([d, s_upper, -s_lower])
    redundant_indices = HPolyhedron(C_bar, d_bar).find_redundant(-tighten)

    C_redundant = set()
    s_lower_redundant = set()
    s_upper_redundant = set()
    for index in sorted(redundant_indices):
        if index < C.shape[0]:
            C_redundant.add(index)
        elif index < C.shape[0] + ns:
            s_upper_redundant.add(index - C.shape[0])
        else:
            s_lower_redundant.add(index - C.shape[0] - ns)
    return C_redundant, s_lower_redundant, s_upper_redundant
