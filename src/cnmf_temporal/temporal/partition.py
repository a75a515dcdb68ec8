from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
import scipy.sparse

InterpolationMap = scipy.sparse.spmatrix | Mapping[tuple[int, int], float]


@dataclass
class PixelPartition:
    """
    Observation and spatial data split into the pixels used for fitting and the
    excluded (saturated) pixels, which are only reconstructed afterwards.
    """

    n_pixels: int
    fit_pixels: np.ndarray
    excluded_pixels: np.ndarray

    observation: np.ndarray
    footprints: np.ndarray
    background: np.ndarray

    excluded_observation: np.ndarray
    excluded_footprints: np.ndarray
    excluded_background: np.ndarray

    @property
    def n_frames(self) -> int:
        return self.observation.shape[1]

    def merge_residual(
        self, fit_residual: np.ndarray, traces: np.ndarray, background_trace: np.ndarray
    ) -> np.ndarray:
        """
        Place the fit-partition residual back at its pixel indices and fill the
        excluded pixels with ``Y_sat - A_sat C - b_sat f`` using the final traces.
        """
        residual = np.empty((self.n_pixels, self.n_frames), dtype=fit_residual.dtype)
        residual[self.fit_pixels] = fit_residual
        residual[self.excluded_pixels] = (
            self.excluded_observation
            - self.excluded_footprints @ traces
            - np.outer(self.excluded_background, background_trace)
        )
        return residual


def validate_inputs(
    observation: np.ndarray,
    footprints: np.ndarray,
    background: np.ndarray,
    traces: np.ndarray,
    background_trace: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Coerce the inputs to (pixels × frames), (pixels × sources), (pixels,),
    (sources × frames) and (frames,) float arrays.

    Raises:
        ValueError: if any dimension is inconsistent.
    """
    observation = np.asarray(observation, dtype=float)
    if observation.ndim != 2:
        raise ValueError(f"Observation must be (pixels × frames), got shape {observation.shape}.")
    n_pixels, n_frames = observation.shape

    footprints = np.asarray(footprints, dtype=float)
    if footprints.ndim == 1:
        footprints = footprints[:, None]
    if footprints.ndim != 2 or footprints.shape[0] != n_pixels:
        raise ValueError(
            f"Footprints must be ({n_pixels} pixels × sources), got shape {footprints.shape}."
        )
    n_sources = footprints.shape[1]

    background = np.asarray(background, dtype=float)
    if background.size != n_pixels or (background.ndim == 2 and background.shape[1] != 1):
        raise ValueError(f"Background must have {n_pixels} pixels, got shape {background.shape}.")
    background = background.reshape(n_pixels)

    traces = np.asarray(traces, dtype=float)
    if traces.ndim == 1 and n_sources == 1:
        traces = traces[None, :]
    if traces.shape != (n_sources, n_frames):
        raise ValueError(
            f"Traces must be ({n_sources} sources × {n_frames} frames), got shape {traces.shape}."
        )

    background_trace = np.asarray(background_trace, dtype=float)
    if background_trace.size != n_frames:
        raise ValueError(
            f"Background trace must have {n_frames} frames, got shape {background_trace.shape}."
        )
    background_trace = background_trace.reshape(n_frames)

    return observation, footprints, background, traces, background_trace


def fill_missing(observation: np.ndarray, interpolation_map: InterpolationMap | None) -> np.ndarray:
    """Replace observation entries by their interpolated values. Returns a copy."""
    observation = observation.copy()
    if interpolation_map is None:
        return observation

    if isinstance(interpolation_map, Mapping):
        if not interpolation_map:
            return observation
        rows, cols = np.array(list(interpolation_map.keys())).T
        values = np.array(list(interpolation_map.values()), dtype=float)
    else:
        if interpolation_map.shape != observation.shape:
            raise ValueError(
                f"Interpolation map shape {interpolation_map.shape} "
                f"does not match observation shape {observation.shape}."
            )
        coo = scipy.sparse.coo_matrix(interpolation_map)
        stored = coo.data != 0
        rows, cols, values = coo.row[stored], coo.col[stored], coo.data[stored]

    observation[rows, cols] = values
    return observation


def partition_pixels(
    observation: np.ndarray,
    footprints: np.ndarray,
    background: np.ndarray,
    interpolation_map: InterpolationMap | None = None,
    unsaturated_pixel_indices: np.ndarray | None = None,
) -> PixelPartition:
    """
    Fill missing data, then split the pixels into fitted and excluded sets.

    Args:
        observation (np.ndarray): Shape: (pixels × frames)
        footprints (np.ndarray): Shape: (pixels × sources)
        background (np.ndarray): Shape: (pixels,)
        interpolation_map: Sparse (pixels × frames) matrix whose non-zero entries
            override the observation, or a mapping ``(pixel, frame) -> value``.
        unsaturated_pixel_indices (np.ndarray): Pixels used for fitting. Default: all.
    """
    n_pixels = observation.shape[0]
    observation = fill_missing(observation, interpolation_map)

    if unsaturated_pixel_indices is None:
        fit_pixels = np.arange(n_pixels)
    else:
        fit_pixels = np.unique(np.asarray(unsaturated_pixel_indices, dtype=int))
        if fit_pixels.size and (fit_pixels[0] < 0 or fit_pixels[-1] >= n_pixels):
            raise ValueError(f"Unsaturated pixel indices must lie in [0, {n_pixels}).")
    excluded_pixels = np.setdiff1d(np.arange(n_pixels), fit_pixels)

    return PixelPartition(
        n_pixels=n_pixels,
        fit_pixels=fit_pixels,
        excluded_pixels=excluded_pixels,
        observation=observation[fit_pixels],
        footprints=footprints[fit_pixels],
        background=background[fit_pixels],
        excluded_observation=observation[excluded_pixels],
        excluded_footprints=footprints[excluded_pixels],
        excluded_background=background[excluded_pixels],
    )
