"""SOS certificates for collision-free polytopes in a robot's C-space."""
from .certificate import (SeparatingPlaneLagrangians, SeparationCertificate,
                          SeparationCertificateProgram, SeparationCertificateResult)
from .cspace_free_polytope import CspaceFreePolytope, SearchResult
from .errors import CspaceFreeError, MissingCertificateError, PreconditionError
from .geometry import (CapsuleGeometry, GeometryType, PlaneSide, PolytopeGeometry,
                       SphereGeometry)
from .hpolyhedron import HPolyhedron, Hyperellipsoid
from .kinematics import PrismaticChainKinematics, RationalPose
from .options import (BilinearAlternationOptions, BinarySearchOptions,
                      CspaceFreePolytopeOptions, EllipsoidMarginCost,
                      FindPolytopeGivenLagrangianOptions,
                      FindSeparationCertificateGivenPolytopeOptions)
from .polynomial import Polynomial, RationalFunction
from .polytope_growth import FindPolytopeGivenLagrangianResult
from .separating_plane import SeparatingPlaneOrder
