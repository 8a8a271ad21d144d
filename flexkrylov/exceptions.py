"""
Exception and warning types raised by the solvers.

Every error carries the integer ``code`` that the integer call surface
(:func:`flexkrylov.itsolver`) would return for the same failure.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Negative return codes of the integer call surface."""

    SUCCESS = 0
    ERROR_INPUT_PAR = -13
    ERROR_ALLOC_MEM = -20
    ERROR_DATA_STRUCTURE = -21
    ERROR_SOLVER_TYPE = -40
    ERROR_SOLVER_MAXIT = -48
    ERROR_UNKNOWN = -99


class KrylovError(Exception):
    """Base class for all solver errors."""

    code = ErrorCode.ERROR_UNKNOWN


class ConfigurationError(KrylovError, ValueError):
    """Invalid solver parameter (negative tolerance, bad restart, ...)."""

    code = ErrorCode.ERROR_INPUT_PAR


class UnknownSolverTypeError(ConfigurationError):
    code = ErrorCode.ERROR_SOLVER_TYPE


class UnknownStopTypeError(ConfigurationError):
    code = ErrorCode.ERROR_INPUT_PAR


class UnknownMatrixFormatError(ConfigurationError):
    code = ErrorCode.ERROR_DATA_STRUCTURE


class WorkspaceAllocationError(KrylovError, MemoryError):
    """
    Raised when the Krylov workspace cannot be allocated, even after the
    restart length has been shrunk to its floor. This is fatal for the solve.
    """

    code = ErrorCode.ERROR_ALLOC_MEM

    def __init__(self, message, restart=None):
        super().__init__(message)
        self.restart = restart


class RestartReducedWarning(RuntimeWarning):
    """The effective restart length is smaller than the requested one."""
