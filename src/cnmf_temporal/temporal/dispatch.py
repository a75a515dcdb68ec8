"""Per-component update rules, one per :class:`~cnmf_temporal.models.Method`."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from cnmf_temporal.deconvolution import (
    BaseDeconvolver,
    ConstrainedFoopsi,
    DeconvolutionResult,
    LagrangianDual,
    MCEMFoopsi,
    PosteriorSampler,
    TraceProjector,
)
from cnmf_temporal.kernel import kernel_for
from cnmf_temporal.models import Method
from cnmf_temporal.temporal.bookkeeping import Bookkeeper, ResidualBookkeeper
from cnmf_temporal.temporal.params import TemporalUpdaterParams
from cnmf_temporal.temporal.partition import PixelPartition


@dataclass
class ComponentEstimate:
    """Side-channel estimates of one source, written by its latest update."""

    kernel: np.ndarray | None = None
    baseline: float | None = None
    initial: float | None = None
    """Amplitude of the initial-condition decay."""
    noise: float | None = None


class UpdateRule(ABC):
    """Fits one real source from its isolated trace."""

    method: Method
    uses_residual: bool = False

    def __init__(self, params: TemporalUpdaterParams, n_sources: int, n_frames: int):
        self.params = params
        self.n_sources = n_sources
        self.n_frames = n_frames
        self.estimates = [ComponentEstimate() for _ in range(n_sources)]

    def kernel(self, index: int) -> np.ndarray | None:
        return kernel_for(self.params.kernel, index)

    def require_kernels(self) -> None:
        for index in range(self.n_sources):
            if kernel_for(self.params.kernel, index) is None:
                raise ValueError(f"No kernel given for source {index}.")

    @abstractmethod
    def fit(self, index: int, isolated: np.ndarray, bookkeeper: Bookkeeper) -> np.ndarray:
        """Return the new trace of source ``index``."""

    def _record(self, index: int, result: DeconvolutionResult) -> None:
        self.estimates[index] = ComponentEstimate(
            kernel=result.kernel,
            baseline=result.baseline,
            initial=result.initial,
            noise=result.noise,
        )


class ProjectionRule(UpdateRule):
    method = Method.project

    def __init__(self, params: TemporalUpdaterParams, n_sources: int, n_frames: int):
        super().__init__(params, n_sources, n_frames)
        self.require_kernels()
        self.deconvolver = TraceProjector()

    def fit(self, index: int, isolated: np.ndarray, bookkeeper: Bookkeeper) -> np.ndarray:
        result = self.deconvolver.deconvolve(isolated, self.kernel(index))
        self.estimates[index] = ComponentEstimate(kernel=result.kernel)
        return result.trace


class DeconvolutionRule(UpdateRule):
    """Rules that hand the isolated trace to a single-trace deconvolver."""

    deconvolver: BaseDeconvolver

    def fit(self, index: int, isolated: np.ndarray, bookkeeper: Bookkeeper) -> np.ndarray:
        result = self.deconvolver.deconvolve(
            isolated, self.kernel(index), self.params.noise_for(index)
        )
        self._record(index, result)
        return result.trace


class ConstrainedRule(DeconvolutionRule):
    method = Method.constrained_foopsi

    def __init__(self, params: TemporalUpdaterParams, n_sources: int, n_frames: int):
        super().__init__(params, n_sources, n_frames)
        if not params.estimates_kernel_from_scratch:
            self.require_kernels()
        self.deconvolver = ConstrainedFoopsi(
            kernel_order=params.kernel_order, fudge_factor=params.fudge_factor
        )

    def kernel(self, index: int) -> np.ndarray | None:
        if self.params.restimate_kernel:
            return None
        return super().kernel(index)

    def kernel_order(self, index: int) -> int | None:
        """Order to re-estimate at, taken from the given kernel unless set explicitly."""
        if self.params.kernel_order is not None:
            return self.params.kernel_order
        given = kernel_for(self.params.kernel, index)
        return None if given is None else len(given)

    def fit(self, index: int, isolated: np.ndarray, bookkeeper: Bookkeeper) -> np.ndarray:
        result = self.deconvolver.deconvolve(
            isolated,
            self.kernel(index),
            self.params.noise_for(index),
            kernel_order=self.kernel_order(index),
        )
        self._record(index, result)
        return result.trace


class MCEMRule(DeconvolutionRule):
    method = Method.MCEM_foopsi

    def __init__(
        self,
        params: TemporalUpdaterParams,
        n_sources: int,
        n_frames: int,
        rng: np.random.Generator,
    ):
        super().__init__(params, n_sources, n_frames)
        self.require_kernels()
        self.deconvolver = MCEMFoopsi(
            fudge_factor=params.fudge_factor, n_iterations=params.mcem_iterations, rng=rng
        )

    def kernel(self, index: int) -> np.ndarray | None:
        latest = self.estimates[index].kernel
        return latest if latest is not None else super().kernel(index)


class SamplerRule(DeconvolutionRule):
    method = Method.MCMC

    def __init__(
        self,
        params: TemporalUpdaterParams,
        n_sources: int,
        n_frames: int,
        rng: np.random.Generator,
    ):
        super().__init__(params, n_sources, n_frames)
        self.require_kernels()
        self.deconvolver = PosteriorSampler(
            n_samples=params.n_samples, burn_in=params.burn_in, rng=rng
        )


class DualRule(UpdateRule):
    """
    Fits each source against the explicit residual on its strongest pixels only.

    Restricting every fit to the ``max_constraints`` pixels with the largest
    footprint weight bounds the per-component cost for large footprints at the
    price of ignoring the weaker pixels.
    """

    method = Method.noise_constrained
    uses_residual = True

    def __init__(
        self,
        params: TemporalUpdaterParams,
        partition: PixelPartition,
        n_sources: int,
        n_frames: int,
        multipliers: np.ndarray | None = None,
    ):
        super().__init__(params, n_sources, n_frames)
        self.require_kernels()

        noise = np.asarray(params.per_pixel_noise, dtype=float).ravel()
        if noise.size != partition.n_pixels:
            raise ValueError(
                f"per_pixel_noise has {noise.size} entries for {partition.n_pixels} pixels."
            )
        self.budget = n_frames * noise[partition.fit_pixels] ** 2
        self.n_constraints = min(partition.fit_pixels.size, params.max_constraints)

        if multipliers is None:
            multipliers = params.initial_multiplier * np.ones((self.n_constraints, n_sources))
        multipliers = np.array(multipliers, dtype=float)
        if multipliers.shape != (self.n_constraints, n_sources):
            raise ValueError(
                f"Lagrange multipliers must be ({self.n_constraints} × {n_sources}), "
                f"got shape {multipliers.shape}."
            )
        self.multipliers = multipliers
        self.solver = LagrangianDual()

    def fit(self, index: int, isolated: np.ndarray, bookkeeper: Bookkeeper) -> np.ndarray:
        if not isinstance(bookkeeper, ResidualBookkeeper):
            raise TypeError("The dual method works on the explicit residual.")

        weights = bookkeeper.footprints[:, index]
        strongest = np.argsort(-weights, kind="stable")[: self.n_constraints]

        trace, self.multipliers[:, index] = self.solver.solve(
            bookkeeper.residual[strongest],
            weights[strongest],
            self.budget[strongest],
            self.kernel(index),
            self.multipliers[:, index],
        )
        self.estimates[index] = ComponentEstimate(kernel=self.kernel(index))
        return trace


def make_update_rule(
    params: TemporalUpdaterParams,
    partition: PixelPartition,
    n_sources: int,
    rng: np.random.Generator,
    multipliers: np.ndarray | None = None,
) -> UpdateRule:
    n_frames = partition.n_frames
    match params.method:
        case Method.project:
            return ProjectionRule(params, n_sources, n_frames)
        case Method.constrained_foopsi:
            return ConstrainedRule(params, n_sources, n_frames)
        case Method.MCEM_foopsi:
            return MCEMRule(params, n_sources, n_frames, rng)
        case Method.MCMC:
            return SamplerRule(params, n_sources, n_frames, rng)
        case Method.noise_constrained:
            return DualRule(params, partition, n_sources, n_frames, multipliers)
    raise ValueError(f"Unknown method: {params.method}")
