"""
Parameters for the iterative solvers.
"""

import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Mapping

from .constants import PrintLevel, SolverType, StopType
from .exceptions import ConfigurationError


@dataclass
class SolverParams:
    """
    Parameters of an iterative solve.

    Attributes
    ----------
    solver_type : SolverType
        Krylov method ("vfgmres" or "gcr")
    stop_type : StopType
        Stopping criterion ("rel_res", "rel_precres" or "mod_rel_res")
    tol : float
        Convergence tolerance for the selected stopping criterion
    maxit : int
        Maximal number of iterations. Zero means "do not iterate".
    restart : int
        Requested restart length (upper bound for the adaptive restart)
    print_level : PrintLevel or int
        How much information to report while iterating. Any non-negative
        integer; the named levels are the thresholds at which output starts.
    """
    solver_type: SolverType = SolverType.VFGMRES
    stop_type: StopType = StopType.REL_RES
    tol: float = 1e-6
    maxit: int = 500
    restart: int = 25
    print_level: PrintLevel = PrintLevel.NONE

    def __post_init__(self):
        self.solver_type = SolverType.parse(self.solver_type)
        self.stop_type = StopType.parse(self.stop_type)
        self.print_level = PrintLevel.parse(self.print_level)

    def validate(self) -> "SolverParams":
        """Check numeric parameters; return self so calls can be chained."""
        if not math.isfinite(self.tol) or self.tol < 0:
            raise ConfigurationError(f"tol must be a finite non-negative number, got {self.tol}")
        if self.maxit < 0:
            raise ConfigurationError(f"maxit must be non-negative, got {self.maxit}")
        if self.restart < 1:
            raise ConfigurationError(f"restart must be at least 1, got {self.restart}")
        return self

    def replace(self, **changes) -> "SolverParams":
        """Return a validated copy with some fields overridden."""
        unknown = set(changes) - _FIELDS
        if unknown:
            raise ConfigurationError(f"Unknown solver parameters: {sorted(unknown)}")
        return dataclasses.replace(self, **changes).validate()

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "SolverParams":
        """Build parameters from a plain mapping (e.g. a parsed config file)."""
        unknown = set(mapping) - _FIELDS
        if unknown:
            raise ConfigurationError(f"Unknown solver parameters: {sorted(unknown)}")
        return cls(**dict(mapping)).validate()

    def to_dict(self):
        return {
            "solver_type": self.solver_type.name.lower(),
            "stop_type": self.stop_type.name.lower(),
            "tol": self.tol,
            "maxit": self.maxit,
            "restart": self.restart,
            "print_level": int(self.print_level),
        }


_FIELDS = frozenset(f.name for f in dataclasses.fields(SolverParams))
