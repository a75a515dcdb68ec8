import numpy as np

from cnmf_temporal.deconvolution.base import BaseDeconvolver, DeconvolutionResult
from cnmf_temporal.deconvolution.noise import estimate_parameters
from cnmf_temporal.deconvolution.nnls import PenalizedFit, PenalizedSystem


class ConstrainedFoopsi(BaseDeconvolver):
    """
    Noise constrained sparse non-negative deconvolution.

    Infers the sparsest event train whose fit stays within the noise budget:

        min sum(s)   s.t.  |y - K s - b - c1 d|^2 <= sn^2 T,  s >= 0, c1 >= 0

    The constrained problem is solved through its penalized form, searching the
    penalty by bisection until the residual sum of squares meets the budget.
    Kernel and noise level are estimated from the trace when not given.
    """

    def __init__(
        self,
        kernel_order: int | None = None,
        fudge_factor: float = 1.0,
        noise_range: tuple[float, float] = (0.25, 0.5),
        noise_method: str = "logmexp",
        lags: int = 5,
        bisection_steps: int = 40,
    ):
        self.kernel_order = kernel_order
        self.fudge_factor = fudge_factor
        self.noise_range = noise_range
        self.noise_method = noise_method
        self.lags = lags
        self.bisection_steps = bisection_steps

    def deconvolve(
        self,
        trace: np.ndarray,
        kernel: np.ndarray | None = None,
        noise: float | None = None,
        kernel_order: int | None = None,
    ) -> DeconvolutionResult:
        """``kernel_order`` overrides the instance's order for this trace only."""
        trace = np.asarray(trace, dtype=float)

        if kernel_order is None:
            kernel_order = self.kernel_order
        if kernel is None and kernel_order is None:
            raise ValueError("Either a kernel or the kernel order must be given.")
        kernel, noise = estimate_parameters(
            trace,
            p=kernel_order if kernel is None else len(kernel),
            sn=noise,
            g=kernel,
            noise_range=self.noise_range,
            method=self.noise_method,
            lags=self.lags,
            fudge_factor=self.fudge_factor,
        )

        if len(kernel) == 0 or not np.any(kernel):
            clipped = np.maximum(trace, 0)
            return DeconvolutionResult(
                trace=clipped, spikes=clipped.copy(), kernel=np.zeros(0), noise=noise
            )

        fit = self.fit(trace, kernel, noise)

        return DeconvolutionResult(
            trace=fit.trace,
            spikes=fit.spikes,
            baseline=fit.baseline,
            initial=fit.initial,
            kernel=kernel,
            noise=noise,
        )

    def fit(self, trace: np.ndarray, kernel: np.ndarray, noise: float) -> PenalizedFit:
        system = PenalizedSystem(kernel, trace.size)
        budget = noise**2 * trace.size

        best = system.solve(trace, 0.0)
        if best.rss >= budget:
            return best

        low, high = 0.0, max(system.max_penalty(trace), np.finfo(float).tiny)
        for _ in range(60):
            fit = system.solve(trace, high)
            if fit.rss >= budget:
                break
            best, low = fit, high
            high *= 2
        else:
            return best

        for _ in range(self.bisection_steps):
            mid = (low + high) / 2
            fit = system.solve(trace, mid)
            if fit.rss <= budget:
                best, low = fit, mid
            else:
                high = mid

        return best
