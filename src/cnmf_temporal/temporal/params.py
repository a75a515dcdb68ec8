from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from cnmf_temporal.kernel import KernelSpec
from cnmf_temporal.models import Method, Parameters
from cnmf_temporal.temporal.partition import InterpolationMap

if TYPE_CHECKING:
    from cnmf_temporal.config import Config

MAX_DUAL_CONSTRAINTS = 15
"""Number of strongest-weighted pixels each component is fitted against by the dual method."""


@dataclass
class TemporalUpdaterParams(Parameters):
    """Parameters for the block-coordinate temporal update"""

    method: Method | str = Method.constrained_foopsi
    """Per-component update rule."""
    restimate_kernel: bool = True
    """Re-estimate AR coefficients while deconvolving (constrained_foopsi only)."""
    outer_iterations: int = 2
    """Maximum number of sweeps over all components."""
    tolerance: float = 1e-3
    """Relative Frobenius change between sweeps below which the update stops."""

    interpolation_map: InterpolationMap | None = None
    """Sparse (pixels × frames) values replacing missing observations."""
    unsaturated_pixel_indices: np.ndarray | None = None
    """Pixels used for fitting. Default: all."""

    kernel: KernelSpec | None = None
    """AR coefficients shared by all sources, or one set per source."""
    kernel_order: int | None = None
    """AR order used when the kernel is estimated from scratch."""
    fudge_factor: float = 1.0
    """Shrinkage of estimated time constants."""

    per_pixel_noise: np.ndarray | None = None
    """Noise standard deviation of every pixel. Required by noise_constrained."""
    source_noise: float | np.ndarray | None = None
    """Fixed noise level of the isolated traces. Estimated per trace when None."""

    max_constraints: int = MAX_DUAL_CONSTRAINTS
    initial_multiplier: float = 10.0
    """Default Lagrange multiplier when none are carried over."""

    n_samples: int = 400
    burn_in: int = 300
    mcem_iterations: int = 3

    seed: int | None = None
    """Seed of the sweep order and of the Monte-Carlo methods."""
    progress_interval: int = 10

    def validate(self) -> None:
        self.method = Method.parse(self.method)

        if self.outer_iterations < 1:
            raise ValueError("Parameter outer_iterations must be a positive integer.")
        if self.tolerance <= 0:
            raise ValueError("Parameter tolerance must be positive.")
        if self.max_constraints < 1:
            raise ValueError("Parameter max_constraints must be a positive integer.")
        if self.initial_multiplier <= 0:
            raise ValueError("Parameter initial_multiplier must be positive.")
        if self.n_samples < 1 or self.burn_in < 0:
            raise ValueError("Sampler needs at least one sample and a non-negative burn-in.")
        if self.progress_interval < 1:
            raise ValueError("Parameter progress_interval must be a positive integer.")
        if self.kernel_order is not None and self.kernel_order < 0:
            raise ValueError("Parameter kernel_order must be non-negative.")

        if self.kernel is None and not self.estimates_kernel_from_scratch:
            raise ValueError(f"Method '{self.method.value}' requires a kernel.")
        if self.method is Method.noise_constrained and self.per_pixel_noise is None:
            raise ValueError("Method 'noise_constrained' requires per_pixel_noise.")

    @property
    def estimates_kernel_from_scratch(self) -> bool:
        return (
            self.method is Method.constrained_foopsi
            and self.restimate_kernel
            and self.kernel_order is not None
        )

    def noise_for(self, index: int) -> float | None:
        if self.source_noise is None:
            return None
        if np.ndim(self.source_noise) == 0:
            return float(self.source_noise)
        return float(np.asarray(self.source_noise)[index])

    @classmethod
    def from_config(cls, config: "Config", **overrides: Any) -> "TemporalUpdaterParams":
        """Run parameters from the settings' temporal defaults."""
        return cls(**{**config.temporal.model_dump(), **overrides})
