from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np


@dataclass
class DeconvolutionResult:
    """Output of a single-trace deconvolution."""

    trace: np.ndarray
    """Fitted trace, including baseline and the decay of the initial condition."""
    spikes: np.ndarray
    """Deconvolved event train."""
    baseline: float = 0.0
    initial: float = 0.0
    """Amplitude of the initial-condition decay at t=0."""
    kernel: np.ndarray | None = None
    noise: float | None = None


class BaseDeconvolver(ABC):
    """Base class for deconvolution algorithms"""

    @abstractmethod
    def deconvolve(
        self, trace: np.ndarray, kernel: np.ndarray | None = None, noise: float | None = None
    ) -> DeconvolutionResult:
        pass
