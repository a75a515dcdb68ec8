from .bookkeeping import CorrelationBookkeeper, ResidualBookkeeper
from .dispatch import ComponentEstimate, make_update_rule
from .params import MAX_DUAL_CONSTRAINTS, TemporalUpdaterParams
from .partition import PixelPartition, partition_pixels, validate_inputs
from .update import (
    ComponentUpdateError,
    TemporalUpdateResult,
    relative_change,
    update_temporal_components,
)
from .updater import TemporalUpdater

__all__ = [
    "MAX_DUAL_CONSTRAINTS",
    "ComponentEstimate",
    "ComponentUpdateError",
    "CorrelationBookkeeper",
    "PixelPartition",
    "ResidualBookkeeper",
    "TemporalUpdateResult",
    "TemporalUpdater",
    "TemporalUpdaterParams",
    "make_update_rule",
    "partition_pixels",
    "relative_change",
    "update_temporal_components",
    "validate_inputs",
]
