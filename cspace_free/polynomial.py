"""
Polynomials in the C-space variables s and the slack variables y.

A polynomial is a dict {exponent tuple: coefficient} over the fixed variable
ordering (s₀, …, s_{n−1}, y₀, y₁, y₂), the same representation as the
{(i,j,k): coeff} dicts used for hand-built Putinar certificates, lifted into a
small class so certificates can be written as

    numerator − λᵀ(d − C·s) − λ_lowerᵀ(s − s_lower) − λ_upperᵀ(s_upper − s)

A coefficient is either a number or an affine cvxpy expression. Products are
only allowed when at least one factor is numeric, so every identity built
here stays linear in the decision variables.
"""
import cvxpy as cp
import numpy as np
import sympy as sp

from .errors import PreconditionError

# Number of slack variables y used to certify non-polytopic geometries.
NUM_Y = 3


def mul_monomials(m1, m2):
    return tuple(a + b for a, b in zip(m1, m2))


def unit_monomial(index, nvars):
    e = [0] * nvars
    e[index] = 1
    return tuple(e)


def _is_expression(c):
    return isinstance(c, cp.Expression)


def _normalize(c):
    # Plain floats keep numpy scalars from trying to broadcast over cvxpy
    # expressions.
    return c if _is_expression(c) else float(c)


def _add_coeff(c1, c2):
    if _is_expression(c2) and not _is_expression(c1):
        return c2 + c1
    return c1 + c2


def _mul_coeff(c1, c2):
    if _is_expression(c1):
        if _is_expression(c2):
            raise PreconditionError(
                "product of two decision-variable coefficients is not affine")
        return c1 * c2
    if _is_expression(c2):
        return c2 * c1
    return c1 * c2


def coefficient_value(c):
    """Numeric value of a coefficient, reading cvxpy values after a solve."""
    if _is_expression(c):
        value = c.value
        if value is None:
            raise ValueError("coefficient has no value; solve its program first")
        return float(value)
    return float(c)


class Polynomial:
    """Sparse polynomial with numeric or cvxpy-expression coefficients."""

    __slots__ = ("terms", "nvars")
    # Let numpy scalars defer to our reflected operators.
    __array_ufunc__ = None

    def __init__(self, terms=None, nvars=0):
        self.nvars = nvars
        self.terms = {}
        for m, c in (terms or {}).items():
            m = tuple(m)
            if len(m) != nvars:
                raise PreconditionError(
                    f"monomial {m} has {len(m)} exponents, expected {nvars}")
            self.terms[m] = _normalize(c)

    @classmethod
    def zero(cls, nvars):
        return cls({}, nvars)

    @classmethod
    def constant(cls, c, nvars):
        return cls({(0,) * nvars: c}, nvars)

    @classmethod
    def variable(cls, index, nvars):
        return cls({unit_monomial(index, nvars): 1.0}, nvars)

    def __repr__(self):
        return f"Polynomial({self.terms!r}, nvars={self.nvars})"

    def _coerce(self, other):
        if isinstance(other, Polynomial):
            if other.nvars != self.nvars:
                raise PreconditionError(
                    f"polynomials over {self.nvars} and {other.nvars} variables")
            return other
        return Polynomial.constant(other, self.nvars)

    def __add__(self, other):
        other = self._coerce(other)
        r = dict(self.terms)
        for m, c in other.terms.items():
            r[m] = _add_coeff(r[m], c) if m in r else c
        return Polynomial(r, self.nvars)

    __radd__ = __add__

    def __neg__(self):
        return Polynomial({m: -c for m, c in self.terms.items()}, self.nvars)

    def __sub__(self, other):
        return self + (-self._coerce(other))

    def __rsub__(self, other):
        return (-self) + other

    def __mul__(self, other):
        if isinstance(other, Polynomial):
            other = self._coerce(other)
            r = {}
            for m1, c1 in self.terms.items():
                for m2, c2 in other.terms.items():
                    m = mul_monomials(m1, m2)
                    prod = _mul_coeff(c1, c2)
                    r[m] = _add_coeff(r[m], prod) if m in r else prod
            return Polynomial(r, self.nvars)
        other = _normalize(other)
        return Polynomial(
            {m: _mul_coeff(c, other) for m, c in self.terms.items()}, self.nvars)

    def __rmul__(self, other):
        return self * other

    def is_numeric(self):
        return not any(_is_expression(c) for c in self.terms.values())

    def is_zero(self):
        return all(not _is_expression(c) and c == 0 for c in self.terms.values())

    def _active_monomials(self):
        return [m for m, c in self.terms.items() if _is_expression(c) or c != 0]

    def degree(self):
        return max((sum(m) for m in self._active_monomials()), default=0)

    def num_y(self, num_s):
        """Number of slack variables y that appear in this polynomial."""
        return sum(
            1 for k in range(num_s, self.nvars)
            if any(m[k] > 0 for m in self._active_monomials()))

    def evaluate(self, point):
        point = np.asarray(point, dtype=float)
        if point.shape != (self.nvars,):
            raise PreconditionError(
                f"point has shape {point.shape}, expected ({self.nvars},)")
        total = 0.0
        for m, c in self.terms.items():
            total += coefficient_value(c) * float(np.prod(point ** np.array(m)))
        return total

    def get_solution(self):
        """Numeric copy with every coefficient replaced by its solved value."""
        return Polynomial(
            {m: coefficient_value(c) for m, c in self.terms.items()}, self.nvars)

    def prune(self, tol=0.0):
        """Drop numeric terms with |coefficient| <= tol."""
        return Polynomial(
            {m: c for m, c in self.terms.items()
             if _is_expression(c) or abs(c) > tol}, self.nvars)

    def to_sympy(self, symbols):
        if len(symbols) != self.nvars:
            raise PreconditionError(
                f"got {len(symbols)} symbols for {self.nvars} variables")
        expr = sp.Integer(0)
        for m, c in self.terms.items():
            term = sp.Float(coefficient_value(c))
            for sym, e in zip(symbols, m):
                term *= sym**e
            expr += term
        return expr


def dot(polys1, polys2, nvars):
    """Σᵢ polys1[i]·polys2[i]."""
    if len(polys1) != len(polys2):
        raise PreconditionError(
            f"dot of sequences with lengths {len(polys1)} and {len(polys2)}")
    total = Polynomial.zero(nvars)
    for p, q in zip(polys1, polys2):
        total = total + p * q
    return total


def calc_d_minus_Cs(C, d, num_s, nvars):
    """
    Build the polynomials dᵢ − Cᵢ·s.

    C and d may be numeric arrays or cvxpy variables; the coefficients of the
    result are numbers or cvxpy expressions accordingly.
    """
    if not _is_expression(C):
        C = np.atleast_2d(np.asarray(C, dtype=float))
    if not _is_expression(d):
        d = np.asarray(d, dtype=float).reshape(-1)
    rows, cols = C.shape
    if d.shape[0] != rows or cols != num_s:
        raise PreconditionError(
            f"C has shape {C.shape}, d has shape {d.shape}, s has size {num_s}")
    zero = (0,) * nvars
    d_minus_Cs = []
    for i in range(rows):
        terms = {zero: d[i]}
        for j in range(num_s):
            terms[unit_monomial(j, nvars)] = -C[i, j]
        d_minus_Cs.append(Polynomial(terms, nvars))
    return d_minus_Cs


def calc_s_bounds_polynomials(s_lower, s_upper, nvars):
    """Return the polynomials s − s_lower and s_upper − s."""
    s_lower = np.asarray(s_lower, dtype=float)
    s_upper = np.asarray(s_upper, dtype=float)
    if s_lower.shape != s_upper.shape:
        raise PreconditionError("s_lower and s_upper differ in shape")
    s_minus_s_lower = []
    s_upper_minus_s = []
    for i in range(s_lower.shape[0]):
        s_i = Polynomial.variable(i, nvars)
        s_minus_s_lower.append(s_i - s_lower[i])
        s_upper_minus_s.append(s_upper[i] - s_i)
    return s_minus_s_lower, s_upper_minus_s


class RationalFunction:
    """numerator / denominator, with the denominator positive on the C-space box."""

    __slots__ = ("numerator", "denominator")

    def __init__(self, numerator, denominator):
        self.numerator = numerator
        self.denominator = denominator

    def __repr__(self):
        return f"RationalFunction({self.numerator!r}, {self.denominator!r})"
