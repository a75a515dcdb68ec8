from dataclasses import dataclass, field
from typing import Self

import numpy as np
import xarray as xr
from river.base import SupervisedTransformer
from sklearn.exceptions import NotFittedError

from cnmf_temporal.models import Footprints, Movie, Residual, Traces
from cnmf_temporal.temporal.params import TemporalUpdaterParams
from cnmf_temporal.temporal.update import TemporalUpdateResult, update_temporal_components


@dataclass
class TemporalUpdater(SupervisedTransformer):
    """Updates temporal traces and the background trace of labeled components.

    Wraps :func:`update_temporal_components` for footprints and movies that
    carry their spatial layout as (height × width) dimensions. The spatial
    dimensions are flattened into pixels in row-major order before the update
    and restored on the residual.
    """

    params: TemporalUpdaterParams
    """Configuration parameters for the update."""

    result_: TemporalUpdateResult = field(init=False, default=None)
    traces_: Traces = field(init=False, default=None)
    background_: Traces = field(init=False, default=None)
    residual_: Residual = field(init=False, default=None)

    is_fitted_: bool = False
    """Indicator whether the transformer has been fitted."""

    def learn_one(
        self,
        footprints: Footprints,
        background: xr.DataArray,
        frames: Movie,
        traces: Traces,
        background_trace: xr.DataArray,
        multipliers: np.ndarray | None = None,
    ) -> Self:
        """Run the block-coordinate update on one batch of frames.

        Args:
            footprints (Footprints): Spatial footprints of the sources.
                Shape: (components × height × width)
            background (xr.DataArray): Spatial background. Shape: (height × width)
            frames (Movie): Raw frames. Shape: (frames × height × width)
            traces (Traces): Current traces of the sources. Shape: (components × frames)
            background_trace (xr.DataArray): Current background trace. Shape: (frames,)
            multipliers (np.ndarray): Lagrange multipliers carried over from a
                previous batch (noise_constrained only).

        Returns:
            Self: The transformer instance for method chaining.
        """
        p = self.params
        frames = frames.transpose(p.frames_dim, *p.spatial_dims)
        traces = traces.transpose(p.component_dim, p.frames_dim)

        A = footprints.transpose(p.component_dim, *p.spatial_dims).values.reshape(
            footprints.sizes[p.component_dim], -1
        )
        b = background.transpose(*p.spatial_dims).values.reshape(-1)
        Y = frames.values.reshape(frames.sizes[p.frames_dim], -1)

        self.result_ = update_temporal_components(
            Y.T,
            A.T,
            b,
            traces.values,
            background_trace.values,
            params=p,
            multipliers=multipliers,
        )

        self.traces_ = Traces(traces.copy(data=self.result_.traces))
        self.background_ = Traces(background_trace.copy(data=self.result_.background))
        self.residual_ = Residual(frames.copy(data=self.result_.residual.T.reshape(frames.shape)))

        self.is_fitted_ = True
        return self

    def transform_one(self, _=None) -> tuple[Traces, Traces, Residual]:
        """Return the updated traces, background trace and residual movie.

        Raises:
            NotFittedError: If the transformer hasn't been fitted yet.
        """
        if not self.is_fitted_:
            raise NotFittedError

        return self.traces_, self.background_, self.residual_
