"""
Error types raised by the ab_mash pipeline.

Every stage fails immediately with one of these; nothing is retried and no
partial results are returned.
"""


class AbMashError(Exception):
    """Base class for all pipeline errors"""


class InvalidParameter(AbMashError, ValueError):
    """Simulation or estimation input out of range"""


class InsufficientData(AbMashError, ValueError):
    """A group is too small (or empty) to estimate its variance"""


class ShapeMismatch(AbMashError, ValueError):
    """Point-estimate and standard-error matrices are not aligned"""


class ExternalProcedureFailure(AbMashError, RuntimeError):
    """Opaque failure surfaced from the shrinkage procedure"""
