"""Exceptions raised by cspace_free.

Solver infeasibility is not an error here: it is reported as ``None`` (or an
unsuccessful SolveResult) so callers can keep going.
"""


class CspaceFreeError(Exception):
    """Base class for errors raised by this package."""


class PreconditionError(CspaceFreeError, ValueError):
    """Raised when an input violates a documented precondition."""


class MissingCertificateError(CspaceFreeError, LookupError):
    """Raised when a geometry pair has no certificate or no separating plane."""
