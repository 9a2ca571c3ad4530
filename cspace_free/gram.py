"""
Gram matrices and monomial bases for SOS constraints.

A monomial basis array holds [m(s), y₀·m(s), y₁·m(s), y₂·m(s)].

If num_y == 0, the SOS polynomial is
    m(s)ᵀ·X·m(s)
with a single Gram matrix X.

If num_y > 0 and with_cross_y, it is
    ⌈    m(s)⌉ᵀ   ⌈    m(s)⌉
    | y₀·m(s)|  Y | y₀·m(s)|
    |   ...  |    |   ...  |
    ⌊ yₙ·m(s)⌋    ⌊ yₙ·m(s)⌋
with n = num_y − 1 and a single Gram matrix Y.

If num_y > 0 and not with_cross_y, it is
    Σᵢ [m(s); yᵢ·m(s)]ᵀ·Zᵢ·[m(s); yᵢ·m(s)]
with one Gram matrix Zᵢ per yᵢ (cheaper, no y₀·y₁ coupling).

Gram matrices are packed by their lower triangle, column by column, so a
block of n rows takes n(n+1)/2 decision variables.
"""
from dataclasses import dataclass

import cvxpy as cp
import numpy as np

from .errors import PreconditionError
from .polynomial import Polynomial, mul_monomials

# [2X₀₁, X₀₀ − X₁₁] from vec(X) in column-major order (X₀₀, X₁₀, X₀₁, X₁₁).
_ROTATED_LORENTZ = np.array([[0.0, 1.0, 1.0, 0.0], [1.0, 0.0, 0.0, -1.0]])


def gram_lower_size(rows):
    return rows * (rows + 1) // 2


def _block_bases(monomial_basis_array, with_cross_y, num_y):
    m = list(monomial_basis_array[0])
    if num_y == 0:
        return [m]
    if with_cross_y:
        basis = list(m)
        for i in range(num_y):
            basis += list(monomial_basis_array[i + 1])
        return [basis]
    return [m + list(monomial_basis_array[i + 1]) for i in range(num_y)]


def get_gram_var_size(monomial_basis_array, with_cross_y, num_y):
    """Total number of lower-triangular Gram variables for one SOS polynomial."""
    if num_y == 0:
        return gram_lower_size(len(monomial_basis_array[0]))
    if with_cross_y:
        rows = len(monomial_basis_array[0]) + sum(
            len(monomial_basis_array[i + 1]) for i in range(num_y))
        return gram_lower_size(rows)
    return sum(
        gram_lower_size(len(monomial_basis_array[0]) + len(monomial_basis_array[i + 1]))
        for i in range(num_y))


@dataclass(frozen=True)
class GramAndMonomialBasis:
    gram_var_size: int
    # One monomial basis per Gram block.
    monomial_bases: tuple
    nvars: int

    @property
    def block_sizes(self):
        return tuple(len(basis) for basis in self.monomial_bases)


def gram_and_monomial_basis(monomial_basis_array, with_cross_y, num_y):
    if not 0 <= num_y <= len(monomial_basis_array) - 1:
        raise PreconditionError(
            f"num_y={num_y} needs {num_y + 1} monomial bases, "
            f"got {len(monomial_basis_array)}")
    bases = _block_bases(monomial_basis_array, with_cross_y, num_y)
    return GramAndMonomialBasis(
        gram_var_size=get_gram_var_size(monomial_basis_array, with_cross_y, num_y),
        monomial_bases=tuple(tuple(b) for b in bases),
        nvars=len(monomial_basis_array[0][0]),
    )


def _lower_index_matrix(rows):
    idx = np.zeros((rows, rows), dtype=int)
    count = 0
    for j in range(rows):
        for i in range(j, rows):
            idx[i, j] = count
            idx[j, i] = count
            count += 1
    return idx


def symmetric_matrix_from_lower_triangular_part(rows, lower):
    """Unpack a column-major lower triangle (numpy or cvxpy) into a symmetric matrix."""
    if lower.shape[0] != gram_lower_size(rows):
        raise PreconditionError(
            f"{lower.shape[0]} entries cannot fill the lower triangle of a "
            f"{rows}x{rows} matrix")
    idx = _lower_index_matrix(rows)
    if isinstance(lower, cp.Expression):
        return cp.reshape(lower[idx.ravel()], (rows, rows), order="C")
    return np.asarray(lower)[idx]


def add_psd_constraint(prog, X):
    """X ⪰ 0, as a bound for 1x1, a rotated Lorentz cone for 2x2."""
    rows = X.shape[0]
    if X.shape != (rows, rows):
        raise PreconditionError(f"PSD constraint on non-square shape {X.shape}")
    if rows == 1:
        prog.add_constraint(X[0, 0] >= 0)
    elif rows == 2:
        # X₀₀·X₁₁ ≥ X₀₁², X₀₀ ≥ 0, X₁₁ ≥ 0
        v = cp.reshape(X, (4,), order="F")
        prog.add_constraint(cp.norm(_ROTATED_LORENTZ @ v, 2) <= X[0, 0] + X[1, 1])
    else:
        prog.add_constraint(X >> 0)


def calc_polynomial_from_lower_triangular_part(monomial_basis, lower, nvars):
    """The polynomial m(s)ᵀ·X·m(s) where X is packed in `lower`."""
    collected = {}
    count = 0
    rows = len(monomial_basis)
    for j in range(rows):
        for i in range(j, rows):
            m = mul_monomials(monomial_basis[i], monomial_basis[j])
            ks, factors = collected.setdefault(m, ([], []))
            ks.append(count)
            factors.append(1.0 if i == j else 2.0)
            count += 1
    is_expr = isinstance(lower, cp.Expression)
    if not is_expr:
        lower = np.asarray(lower, dtype=float)
    terms = {}
    for m, (ks, factors) in collected.items():
        if is_expr:
            terms[m] = lower[ks] @ np.array(factors)
        else:
            terms[m] = float(np.dot(lower[ks], factors))
    return Polynomial(terms, nvars)


def add_sos(prog, gram_and_basis, gram_lower):
    """
    Constrain every Gram block packed in `gram_lower` to be PSD and return the
    polynomial Σ m_bᵀ·X_b·m_b over the blocks.
    """
    if gram_lower.shape[0] != gram_and_basis.gram_var_size:
        raise PreconditionError(
            f"got {gram_lower.shape[0]} Gram variables, expected "
            f"{gram_and_basis.gram_var_size}")
    poly = Polynomial.zero(gram_and_basis.nvars)
    count = 0
    for basis in gram_and_basis.monomial_bases:
        rows = len(basis)
        size = gram_lower_size(rows)
        lower = gram_lower[count:count + size]
        add_psd_constraint(prog, symmetric_matrix_from_lower_triangular_part(rows, lower))
        poly = poly + calc_polynomial_from_lower_triangular_part(
            basis, lower, gram_and_basis.nvars)
        count += size
    return poly


class GramVariableAllocator:
    """Hands out consecutive slices of one flat vector of Gram variables."""

    def __init__(self, gram_vars):
        self.gram_vars = gram_vars
        self.count = 0

    def add_sos(self, prog, gram_and_basis):
        size = gram_and_basis.gram_var_size
        poly = add_sos(prog, gram_and_basis, self.gram_vars[self.count:self.count + size])
        self.count += size
        return poly
