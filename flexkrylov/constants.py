"""
Enumerations and numeric constants shared by the solvers.
"""

from enum import IntEnum

import numpy as np

from .exceptions import (
    ConfigurationError,
    ErrorCode,
    UnknownMatrixFormatError,
    UnknownSolverTypeError,
    UnknownStopTypeError,
)

# Substitute for a vanishing Givens norm and floor for ||x|| in MOD_REL_RES
SMALLREAL = float(np.finfo(np.float64).eps)

# Restart adaptation (Baker, Jessup & Kolev 2009)
CR_MAX = 0.99      # ~ cos(8 deg)
CR_MIN = 0.174     # ~ cos(80 deg)
RESTART_STEP = 3
RESTART_MIN = 3

# Step used to shrink the restart length when the workspace cannot be allocated
RESTART_SHRINK = 5


def _is_int(value):
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


class _Selector(IntEnum):
    """IntEnum that can be built from a member, its value or its name."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            if key in cls.__members__:
                return cls[key]
        elif _is_int(value) and int(value) in cls._value2member_map_:
            return cls(int(value))
        choices = ", ".join(m.name.lower() for m in cls)
        error = _PARSE_ERRORS.get(cls, ConfigurationError)
        raise error(f"Unknown {cls.__name__}: {value!r}. Available: {choices}")


class StopType(_Selector):
    """Residual metric used to decide convergence."""

    REL_RES = 1        # ||r|| / ||b||
    REL_PRECRES = 2    # sqrt(<M^-1 r, r>) / ||b||
    MOD_REL_RES = 3    # ||r|| / ||x||


class SolverType(_Selector):
    """Krylov method selected by the dispatcher."""

    VFGMRES = 6
    GCR = 8


class MatrixFormat(_Selector):
    """Storage layout of the coefficient operator."""

    CSR = 1
    BSR = 2
    BLC = 6
    MATFREE = 9


class PrintLevel(_Selector):
    """
    Named verbosity thresholds.

    Any non-negative integer is a valid verbosity; output is switched on by
    comparing against these levels, so 3 behaves like ``SOME``.
    """

    NONE = 0
    MIN = 1
    SOME = 2
    MORE = 4
    MOST = 8
    ALL = 10

    @classmethod
    def parse(cls, value):
        """Return the named level for ``value`` if there is one, else the plain int."""
        if _is_int(value) and not isinstance(value, cls):
            level = int(value)
            if level < 0:
                raise ConfigurationError(f"print_level must be non-negative, got {level}")
            return cls._value2member_map_.get(level, level)
        return super().parse(value)


_PARSE_ERRORS = {
    StopType: UnknownStopTypeError,
    SolverType: UnknownSolverTypeError,
    MatrixFormat: UnknownMatrixFormatError,
}
