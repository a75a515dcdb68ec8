import numpy as np
import scipy.signal

from cnmf_temporal.deconvolution.base import DeconvolutionResult
from cnmf_temporal.deconvolution.constrained import ConstrainedFoopsi
from cnmf_temporal.deconvolution.noise import estimate_parameters
from cnmf_temporal.deconvolution.nnls import PenalizedFit


class MCEMFoopsi(ConstrainedFoopsi):
    """
    Constrained deconvolution with Monte-Carlo re-estimation of the time constant.

    Alternates between a noise constrained fit with the current kernel (E-step)
    and a random-walk Metropolis-Hastings chain over the kernel's dominant root
    with the event train held fixed (M-step). The new root is the mean of the
    second half of the chain.
    """

    def __init__(
        self,
        kernel_order: int | None = None,
        fudge_factor: float = 1.0,
        n_iterations: int = 3,
        n_proposals: int = 60,
        step_size: float = 0.02,
        rng: np.random.Generator | None = None,
        **kwargs,
    ):
        super().__init__(kernel_order=kernel_order, fudge_factor=fudge_factor, **kwargs)
        self.n_iterations = n_iterations
        self.n_proposals = n_proposals
        self.step_size = step_size
        self.rng = rng if rng is not None else np.random.default_rng()

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
            return super().deconvolve(trace, kernel, noise)

        for _ in range(self.n_iterations):
            fit = self.fit(trace, kernel, noise)
            kernel = self.sample_kernel(trace, fit, kernel, noise)

        fit = self.fit(trace, kernel, noise)
        return DeconvolutionResult(
            trace=fit.trace,
            spikes=fit.spikes,
            baseline=fit.baseline,
            initial=fit.initial,
            kernel=kernel,
            noise=noise,
        )

    def sample_kernel(
        self, trace: np.ndarray, fit: PenalizedFit, kernel: np.ndarray, noise: float
    ) -> np.ndarray:
        roots = np.sort(np.roots(np.concatenate([[1.0], -kernel])).real)[::-1]
        variance = max(noise**2, 1e-12 * max(np.var(trace), 1e-12))

        def log_likelihood(root: float) -> float:
            g = _with_dominant_root(roots, root)
            calcium = scipy.signal.lfilter([1.0], np.concatenate([[1.0], -g]), fit.spikes)
            decay = root ** np.arange(trace.size)
            resid = trace - calcium - fit.baseline - fit.initial * decay
            return -np.sum(resid**2) / (2 * variance)

        current = float(np.clip(roots[0], 1e-3, 1 - 1e-3))
        current_ll = log_likelihood(current)
        chain = []
        for _ in range(self.n_proposals):
            proposal = current + self.step_size * self.rng.standard_normal()
            if 0 < proposal < 1:
                proposal_ll = log_likelihood(proposal)
                if np.log(self.rng.uniform()) < proposal_ll - current_ll:
                    current, current_ll = proposal, proposal_ll
            chain.append(current)

        return _with_dominant_root(roots, float(np.mean(chain[len(chain) // 2 :])))


def _with_dominant_root(roots: np.ndarray, root: float) -> np.ndarray:
    roots = roots.copy()
    roots[0] = root
    return -np.real(np.poly(roots))[1:]
