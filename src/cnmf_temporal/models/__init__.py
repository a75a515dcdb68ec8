from .axis import AXIS, Axis
from .params import Parameters
from .types import (
    BetterEnum,
    ConvergenceState,
    Footprints,
    Method,
    Movie,
    Observable,
    Residual,
    Traces,
)

__all__ = [
    "AXIS",
    "Axis",
    "BetterEnum",
    "ConvergenceState",
    "Footprints",
    "Method",
    "Movie",
    "Observable",
    "Parameters",
    "Residual",
    "Traces",
]
