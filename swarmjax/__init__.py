"""swarmjax: pairwise agent simulation on JAX with tiled and lattice evaluators."""

from ._typecheck import enable_runtime_typecheck

enable_runtime_typecheck()

from .config import (
    EvaluatorKind,
    IntegratorConfig,
    LatticeConfig,
    SolverConfig,
    TiledConfig,
)
from .errors import (
    CapacityError,
    LatticeDomainError,
    LatticeOverflowError,
    NonFiniteDerivativeError,
    SwarmError,
)
from .hooks import compose_generic_forces, no_generic_force
from .integrator import HeunIntegrator, StepResult
from .logging_config import configure_logging
from .pairwise import LatticeBuild, PairwiseResult
from .points import PointLayout
from .solver import Solver
from .store import PointStore

__all__ = [
    "CapacityError",
    "EvaluatorKind",
    "HeunIntegrator",
    "IntegratorConfig",
    "LatticeBuild",
    "LatticeConfig",
    "LatticeDomainError",
    "LatticeOverflowError",
    "NonFiniteDerivativeError",
    "PairwiseResult",
    "PointLayout",
    "PointStore",
    "Solver",
    "SolverConfig",
    "StepResult",
    "SwarmError",
    "TiledConfig",
    "compose_generic_forces",
    "configure_logging",
    "no_generic_force",
]
