from cnmf_temporal.config import Config, TemporalConfig
from cnmf_temporal.log import setup_logger
from cnmf_temporal.models import ConvergenceState, Method
from cnmf_temporal.temporal import (
    ComponentUpdateError,
    TemporalUpdater,
    TemporalUpdaterParams,
    TemporalUpdateResult,
    update_temporal_components,
)

__all__ = [
    "ComponentUpdateError",
    "Config",
    "ConvergenceState",
    "Method",
    "TemporalConfig",
    "TemporalUpdateResult",
    "TemporalUpdater",
    "TemporalUpdaterParams",
    "setup_logger",
    "update_temporal_components",
]
