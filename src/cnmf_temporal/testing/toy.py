from typing import Self

import numpy as np
import xarray as xr
from pydantic import BaseModel, ConfigDict, PrivateAttr, field_validator, model_validator
from scipy.signal import lfilter

from cnmf_temporal.models import AXIS, Footprints, Movie, Traces


class FrameDims(BaseModel):
    width: int
    height: int


class Box(BaseModel):
    """Rectangular cell footprint, upper-left corner plus size."""

    height: int
    width: int
    size: tuple[int, int] = (2, 2)


def simulate_traces(
    n_sources: int,
    n_frames: int,
    kernel: list[float],
    rate: float = 0.1,
    amplitude: float = 1.0,
    seed: int = 0,
) -> np.ndarray:
    """Sparse Bernoulli events filtered through the AR kernel. Shape: (sources × frames)"""
    rng = np.random.default_rng(seed)
    spikes = amplitude * (rng.random((n_sources, n_frames)) < rate)
    spikes[:, 0] = amplitude
    return lfilter([1.0], np.concatenate([[1.0], -np.asarray(kernel, dtype=float)]), spikes, axis=1)


class Toy(BaseModel):
    """
    Ex:

    toy = Toy(
        n_frames=50,
        frame_dims=FrameDims(width=5, height=4),
        cell_boxes=[Box(height=0, width=0), Box(height=0, width=2)],
        cell_traces=list(simulate_traces(2, 50, [0.9])),
    )

    Y = toy.observation  # pixels × frames

    Cells are weighted boxes. Every pixel outside all boxes belongs to the
    background, so footprints and background never overlap.
    """

    n_frames: int
    frame_dims: FrameDims
    cell_boxes: list[Box]
    cell_traces: list[np.ndarray]
    cell_ids: list[str] = None
    """If none, auto populated as cell_{idx}."""
    background_level: float = 1.0
    background_trace: np.ndarray = None
    """If none, a slow positive oscillation."""
    noise_level: float = 0.0
    seed: int = 0

    _footprints: xr.DataArray = PrivateAttr(init=False)
    _traces: xr.DataArray = PrivateAttr(init=False)
    _noise: np.ndarray = PrivateAttr(init=False)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("n_frames", mode="after")
    @classmethod
    def natural_num(cls, value: int) -> int:
        assert value > 0, "n_frames must be positive."
        return value

    @model_validator(mode="before")
    def fill_ids(self) -> Self:
        if self.get("cell_ids", None) is None:
            self["cell_ids"] = [f"cell_{idx}" for idx, _ in enumerate(self["cell_boxes"])]
        return self

    @model_validator(mode="after")
    def consistent_n_frames(self) -> Self:
        assert len(self.cell_boxes) == len(self.cell_traces), (
            f"inconsistent cell counts. "
            f"boxes: {len(self.cell_boxes)}, "
            f"traces: {len(self.cell_traces)}"
        )
        for cell_trace in self.cell_traces:
            assert self.n_frames == len(
                cell_trace
            ), "inconsistent n_frames between n_frames and cell_traces"
        return self

    @model_validator(mode="after")
    def cells_within_bounds(self) -> Self:
        for box in self.cell_boxes:
            assert min(box.height, box.width) >= 0
            assert box.height + box.size[0] <= self.frame_dims.height
            assert box.width + box.size[1] <= self.frame_dims.width
        return self

    def model_post_init(self, __context: None = None) -> None:
        if self.background_trace is None:
            t = np.arange(self.n_frames)
            self.background_trace = 1.0 + 0.5 * np.sin(2 * np.pi * t / self.n_frames)
        self._footprints = self._build_footprints()
        self._traces = self._build_traces()

        rng = np.random.default_rng(self.seed)
        self._noise = self.noise_level * rng.standard_normal(
            (self.n_pixels, self.n_frames)
        )

    @property
    def n_components(self) -> int:
        return len(self.cell_boxes)

    @property
    def n_pixels(self) -> int:
        return self.frame_dims.height * self.frame_dims.width

    def _generate_footprint(self, box: Box, id_: str) -> xr.DataArray:
        footprint = xr.DataArray(
            np.zeros((self.frame_dims.height, self.frame_dims.width)),
            dims=AXIS.spatial_dims,
        )
        n_rows, n_cols = box.size
        weights = np.linspace(1.0, 2.0, n_rows * n_cols).reshape(n_rows, n_cols)
        footprint[
            box.height : box.height + n_rows, box.width : box.width + n_cols
        ] = weights

        return footprint.expand_dims(AXIS.component_dim).assign_coords(
            {AXIS.id_coord: (AXIS.component_dim, [id_])}
        )

    def _build_footprints(self) -> xr.DataArray:
        footprints = [
            self._generate_footprint(box, id_) for box, id_ in zip(self.cell_boxes, self.cell_ids)
        ]
        return xr.concat(footprints, dim=AXIS.component_dim)

    def _build_traces(self) -> xr.DataArray:
        return xr.DataArray(
            np.vstack(self.cell_traces).astype(float),
            dims=(AXIS.component_dim, AXIS.frames_dim),
            coords={
                AXIS.id_coord: (AXIS.component_dim, self.cell_ids),
                AXIS.frame_coord: (AXIS.frames_dim, range(self.n_frames)),
            },
        )

    @property
    def footprints(self) -> Footprints:
        return Footprints(self._footprints)

    @property
    def traces(self) -> Traces:
        return Traces(self._traces)

    @property
    def background(self) -> xr.DataArray:
        covered = (self._footprints > 0).any(dim=AXIS.component_dim)
        return xr.where(covered, 0.0, self.background_level)

    @property
    def background_series(self) -> xr.DataArray:
        return xr.DataArray(self.background_trace, dims=AXIS.frames_dim)

    def make_movie(self) -> Movie:
        movie = self.observation.T.reshape(
            self.n_frames, self.frame_dims.height, self.frame_dims.width
        )
        return Movie(
            xr.DataArray(
                movie,
                dims=(AXIS.frames_dim, *AXIS.spatial_dims),
                coords={AXIS.frame_coord: (AXIS.frames_dim, range(self.n_frames))},
            )
        )

    @property
    def footprint_matrix(self) -> np.ndarray:
        """Shape: (pixels × components)"""
        return self._footprints.values.reshape(self.n_components, -1).T.copy()

    @property
    def background_vector(self) -> np.ndarray:
        return self.background.values.reshape(-1)

    @property
    def trace_matrix(self) -> np.ndarray:
        return self._traces.values.copy()

    @property
    def observation(self) -> np.ndarray:
        """``A C + b f`` plus noise. Shape: (pixels × frames)"""
        return (
            self.footprint_matrix @ self.trace_matrix
            + np.outer(self.background_vector, self.background_trace)
            + self._noise
        )
