"""
Convex programs on top of cvxpy.

A ConvexProgram collects cvxpy variables, constraints and (at most one)
linear cost, and knows which polynomial indeterminates (s, y) are declared,
so that polynomial identities can be imposed coefficient by coefficient:

    p(s, y) == q(s, y)   ⇔   coeff_m(p) == coeff_m(q)  for every monomial m.

solve() never raises on solver trouble: infeasibility and solver errors come
back as an unsuccessful SolveResult.
"""
import logging
from dataclasses import dataclass, field

import cvxpy as cp
import numpy as np

from .errors import PreconditionError
from .polynomial import Polynomial

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = (cp.OPTIMAL, cp.OPTIMAL_INACCURATE)
SOLVER_ERROR = "solver_error"

# Numeric-only coefficient mismatches below this are round-off from an
# earlier solve (e.g. fixed Lagrangians).
_IDENTITY_TOL = 1e-8


@dataclass
class SolverOptions:
    """Solver selection. `solver` is a cvxpy solver name, e.g. "CLARABEL" or
    "MOSEK"; `solver_options` are forwarded to Problem.solve (mosek_params,
    eps, max_iters, ...)."""

    solver: str | None = None
    solver_options: dict = field(default_factory=dict)
    verbose: bool = False


@dataclass
class SolveResult:
    status: str
    optimal_cost: float | None = None

    @property
    def is_success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    def get_solution(self, x):
        """Solved value of a cvxpy expression, a Polynomial, or a list of them."""
        if isinstance(x, Polynomial):
            return x.get_solution()
        if isinstance(x, (list, tuple)):
            return [self.get_solution(e) for e in x]
        if x.value is None:
            raise ValueError(f"{x} has no value in this result")
        value = np.asarray(x.value, dtype=float)
        return float(value) if value.ndim == 0 else value


class ConvexProgram:
    def __init__(self):
        self.indeterminates: list[str] = []
        self.decision_variables: list[cp.Variable] = []
        self.constraints: list[cp.Constraint] = []
        self.linear_costs: list[cp.Expression] = []
        self.trivially_infeasible = False

    def add_indeterminates(self, names):
        for name in names:
            if name not in self.indeterminates:
                self.indeterminates.append(name)

    def new_continuous_variables(self, size, name):
        var = cp.Variable(size, name=name)
        self.decision_variables.append(var)
        return var

    def add_decision_variables(self, var):
        if not any(v is var for v in self.decision_variables):
            self.decision_variables.append(var)

    def add_constraint(self, constraint):
        self.constraints.append(constraint)
        return constraint

    def add_bounding_box_constraint(self, lb, ub, x):
        if np.isfinite(lb):
            self.constraints.append(x >= lb)
        if np.isfinite(ub):
            self.constraints.append(x <= ub)

    def add_linear_cost(self, expr):
        self.linear_costs.append(expr)
        return expr

    def remove_cost(self, cost):
        self.linear_costs = [c for c in self.linear_costs if c is not cost]

    def add_equality_constraint_between_polynomials(self, p1, p2):
        diff = p1 - p2
        num_declared = len(self.indeterminates)
        for m, c in diff.terms.items():
            is_expr = isinstance(c, cp.Expression)
            if not is_expr and abs(c) <= _IDENTITY_TOL:
                continue
            if any(e > 0 for e in m[num_declared:]):
                raise PreconditionError(
                    f"monomial {m} uses an indeterminate beyond the declared "
                    f"{self.indeterminates}")
            if is_expr:
                self.constraints.append(c == 0)
            else:
                self.trivially_infeasible = True


def solve(prog, initial_guess=None, options=None):
    """Solve `prog`. initial_guess maps cvxpy variables to warm-start values."""
    options = options or SolverOptions()
    if prog.trivially_infeasible:
        return SolveResult(status=cp.INFEASIBLE, optimal_cost=np.inf)
    problem = cp.Problem(cp.Minimize(sum(prog.linear_costs)), prog.constraints)
    warm_start = False
    if initial_guess:
        for var, value in initial_guess.items():
            var.value = value
        warm_start = True
    try:
        problem.solve(solver=options.solver, verbose=options.verbose,
                      warm_start=warm_start, **options.solver_options)
    except cp.error.SolverError as e:
        logger.debug("Solver error: %s", e)
        return SolveResult(status=SOLVER_ERROR)
    return SolveResult(status=problem.status, optimal_cost=problem.value)


def solve_with_backoff(prog, backoff_scale, options=None):
    """
    Solve `prog`; if it has a linear cost c(x) and backoff_scale is set, then
    re-solve after replacing the cost by the constraint

        c(x) ≤ (1 + backoff_scale)·c*   if c* > 0
        c(x) ≤ (1 − backoff_scale)·c*   otherwise

    so the returned solution lies in the strict interior of the feasible set
    instead of on the boundary where the optimum c* sits. `prog` is mutated.
    """
    if len(prog.linear_costs) > 1:
        raise PreconditionError("backoff requires at most one linear cost")
    result = solve(prog, None, options)
    if not result.is_success:
        logger.debug("Failed before backoff.")
        return result
    if backoff_scale is not None and prog.linear_costs:
        cost = prog.linear_costs[0]
        cost_val = result.optimal_cost
        cost_upper_bound = ((1 + backoff_scale) * cost_val if cost_val > 0
                            else (1 - backoff_scale) * cost_val)
        prog.add_constraint(cost <= cost_upper_bound)
        prog.remove_cost(cost)
        result = solve(prog, None, options)
        if not result.is_success:
            logger.debug("Failed in backoff.")
    return result
