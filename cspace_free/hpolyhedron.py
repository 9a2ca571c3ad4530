"""
Polyhedra {x | A·x ≤ b} and their inscribed ellipsoids.

Redundant rows are found with one LP per row (scipy linprog):

    max  aᵢᵀx   s.t.  A₋ᵢ x ≤ b₋ᵢ,  aᵢᵀx ≤ bᵢ + 1

row i is implied by the others when the optimum is ≤ bᵢ + tol.

The maximum-volume inscribed ellipsoid {B·u + c | |u|₂ ≤ 1} solves

    max log det B   s.t.  |B·aᵢ|₂ + aᵢᵀc ≤ bᵢ
"""
import cvxpy as cp
import numpy as np
from scipy.optimize import linprog

from .errors import PreconditionError


class Hyperellipsoid:
    """The set {x | |A·(x − center)|₂ ≤ 1}."""

    def __init__(self, A, center):
        self.A = np.asarray(A, dtype=float)
        self.center = np.asarray(center, dtype=float)

    def shape_matrix(self):
        """B = A⁻¹, so the ellipsoid is {B·u + center | |u|₂ ≤ 1}."""
        return np.linalg.inv(self.A)


class HPolyhedron:
    def __init__(self, A, b):
        A = np.atleast_2d(np.asarray(A, dtype=float))
        b = np.asarray(b, dtype=float).reshape(-1)
        if A.shape[0] != b.shape[0]:
            raise PreconditionError(
                f"A has {A.shape[0]} rows but b has {b.shape[0]} entries")
        self.A = A
        self.b = b

    def ambient_dimension(self):
        return self.A.shape[1]

    def point_in_set(self, x, tol=1e-9):
        return bool(np.all(self.A @ np.asarray(x, dtype=float) <= self.b + tol))

    def find_redundant(self, tol=0.0):
        """Indices of rows implied by the remaining (non-redundant) rows."""
        redundant = set()
        num_rows = self.A.shape[0]
        bounds = [(None, None)] * self.ambient_dimension()
        for i in range(num_rows):
            kept = [j for j in range(num_rows) if j != i and j not in redundant]
            A_ub = np.vstack([self.A[kept], self.A[i]])
            b_ub = np.concatenate([self.b[kept], [self.b[i] + 1]])
            res = linprog(-self.A[i], A_ub=A_ub, b_ub=b_ub, bounds=bounds,
                          method="highs")
            if res.status == 0 and -res.fun <= self.b[i] + tol:
                redundant.add(i)
        return redundant

    def maximum_volume_inscribed_ellipsoid(self, solver=None):
        n = self.ambient_dimension()
        B = cp.Variable((n, n), PSD=True)
        c = cp.Variable(n)
        constraints = [
            cp.norm(B @ self.A[i], 2) + self.A[i] @ c <= self.b[i]
            for i in range(self.A.shape[0])
        ]
        prob = cp.Problem(cp.Maximize(cp.log_det(B)), constraints)
        prob.solve(solver=solver)
        if prob.status not in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE):
            raise RuntimeError(
                f"maximum volume inscribed ellipsoid failed: {prob.status}")
        return Hyperellipsoid(np.linalg.inv(B.value), c.value)
