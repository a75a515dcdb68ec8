import numpy as np

from cnmf_temporal.deconvolution.base import BaseDeconvolver, DeconvolutionResult
from cnmf_temporal.deconvolution.nnls import PenalizedSystem


class TraceProjector(BaseDeconvolver):
    """
    Projects a trace onto the traces the kernel can generate from non-negative events,

        argmin_c |c - y|^2   s.t.  G c >= 0

    The trace is rescaled to unit peak before projecting and scaled back afterwards.
    """

    def deconvolve(
        self, trace: np.ndarray, kernel: np.ndarray | None = None, noise: float | None = None
    ) -> DeconvolutionResult:
        if kernel is None:
            raise ValueError("Projection requires a kernel.")

        trace = np.asarray(trace, dtype=float)
        scale = np.max(trace)
        if scale <= 0:
            scale = np.max(np.abs(trace))
        if scale == 0:
            return DeconvolutionResult(
                trace=np.zeros_like(trace), spikes=np.zeros_like(trace), kernel=kernel
            )

        system = PenalizedSystem(kernel, trace.size, optimize_baseline=False, optimize_initial=False)
        fit = system.solve(trace / scale)

        return DeconvolutionResult(
            trace=fit.trace * scale, spikes=fit.spikes * scale, kernel=kernel, noise=noise
        )
