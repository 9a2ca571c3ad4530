"""Option structs for the certificate, growth, alternation and binary searches."""
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .program import SolverOptions


@dataclass
class CspaceFreePolytopeOptions:
    # One Gram matrix over [m; y₀m; y₁m; y₂m] instead of one per yᵢ.
    with_cross_y: bool = False


@dataclass
class FindSeparationCertificateGivenPolytopeOptions:
    num_threads: int = -1
    # Logs progress and failing pairs; solver_verbose prints the solver output.
    verbose: bool = False
    solver_verbose: bool = False
    terminate_at_failure: bool = True
    backoff_scale: float | None = None
    solver: str | None = None
    solver_options: dict = field(default_factory=dict)
    # Face rows of C·s ≤ d implied by the others get no Lagrangian.
    ignore_redundant_C: bool = False

    def solver_settings(self):
        return SolverOptions(self.solver, dict(self.solver_options), self.solver_verbose)


class EllipsoidMarginCost(Enum):
    SUM = 0
    GEOMETRIC_MEAN = 1


@dataclass
class FindPolytopeGivenLagrangianOptions:
    backoff_scale: float | None = None
    ellipsoid_margin_epsilon: float = 1e-5
    solver: str | None = None
    solver_options: dict = field(default_factory=dict)
    solver_verbose: bool = False
    # Columns are points that must stay inside the polytope.
    s_inner_pts: np.ndarray | None = None
    search_s_bounds_lagrangians: bool = True
    ellipsoid_margin_cost: EllipsoidMarginCost = EllipsoidMarginCost.GEOMETRIC_MEAN

    def solver_settings(self):
        return SolverOptions(self.solver, dict(self.solver_options), self.solver_verbose)


@dataclass
class BilinearAlternationOptions:
    max_iter: int = 10
    convergence_tol: float = 1e-3
    # The ellipsoid is scaled down by this factor before growing around it.
    ellipsoid_scaling: float = 0.99
    find_lagrangian_options: FindSeparationCertificateGivenPolytopeOptions = field(
        default_factory=FindSeparationCertificateGivenPolytopeOptions)
    find_polytope_options: FindPolytopeGivenLagrangianOptions = field(
        default_factory=FindPolytopeGivenLagrangianOptions)


@dataclass
class BinarySearchOptions:
    scale_max: float = 1.0
    scale_min: float = 0.01
    max_iter: int = 10
    convergence_tol: float = 1e-3
    find_lagrangian_options: FindSeparationCertificateGivenPolytopeOptions = field(
        default_factory=FindSeparationCertificateGivenPolytopeOptions)
