import numpy as np
import scipy.signal
from scipy.special import ndtr, ndtri

from cnmf_temporal.deconvolution.base import BaseDeconvolver, DeconvolutionResult
from cnmf_temporal.deconvolution.noise import get_noise
from cnmf_temporal.kernel import dominant_root, impulse_response


class PosteriorSampler(BaseDeconvolver):
    """
    Fully Bayesian deconvolution by Gibbs sampling.

    The trace is modelled as AR(1) dynamics driven by non-negative events,

        y_t = b + c1 g^t + sum_k s_k g^(t-k) + e_t,   e_t ~ N(0, sn^2)

    with an exponential prior on the events, a flat prior on the baseline,
    a non-negative initial amplitude, an inverse-gamma prior on the noise
    variance, and a flat prior on the time constant ``tau`` with ``g = exp(-1/tau)``.
    Events, baseline, initial amplitude and noise variance are drawn from their
    conditionals; ``tau`` moves by random-walk Metropolis-Hastings. Higher order
    kernels are reduced to their dominant root.

    All outputs are posterior means over the samples kept after burn-in.
    """

    def __init__(
        self,
        n_samples: int = 400,
        burn_in: int = 300,
        tau_step: float = 0.5,
        prior_shape: float = 0.01,
        rng: np.random.Generator | None = None,
    ):
        self.n_samples = n_samples
        self.burn_in = burn_in
        self.tau_step = tau_step
        self.prior_shape = prior_shape
        self.rng = rng if rng is not None else np.random.default_rng()

    def deconvolve(
        self, trace: np.ndarray, kernel: np.ndarray | None = None, noise: float | None = None
    ) -> DeconvolutionResult:
        y = np.asarray(trace, dtype=float)
        T = y.size

        g = dominant_root(kernel) if kernel is not None else 0.9
        g = float(np.clip(g, 1e-3, 1 - 1e-3))
        tau = -1 / np.log(g)

        scale = max(np.ptp(y), 1e-12)
        rate = 1 / scale
        sn2 = max((noise if noise is not None else get_noise(y)) ** 2, 1e-6 * scale**2)
        prior_rate = self.prior_shape * sn2

        spikes = np.zeros(T)
        baseline = float(np.min(y))
        initial = 0.0
        h = impulse_response([g], T)
        resid = y - baseline

        keep = {"trace": [], "spikes": [], "baseline": [], "initial": [], "sn2": [], "g": []}
        for it in range(self.burn_in + self.n_samples):
            energy = np.cumsum(h**2)[::-1]
            for t in range(T):
                ht = h[: T - t]
                resid[t:] += spikes[t] * ht
                mean = (ht @ resid[t:] - rate * sn2) / energy[t]
                spikes[t] = self._positive_normal(mean, np.sqrt(sn2 / energy[t]))
                resid[t:] -= spikes[t] * ht

            resid += initial * h
            initial = self._positive_normal((h @ resid) / energy[0], np.sqrt(sn2 / energy[0]))
            resid -= initial * h

            resid += baseline
            baseline = float(np.mean(resid) + np.sqrt(sn2 / T) * self.rng.standard_normal())
            resid -= baseline

            shape = self.prior_shape + T / 2
            sn2 = (prior_rate + resid @ resid / 2) / self.rng.gamma(shape)

            tau, h, resid = self._step_tau(y, spikes, baseline, initial, tau, h, resid, sn2)

            if it >= self.burn_in:
                keep["trace"].append(y - resid)
                keep["spikes"].append(spikes.copy())
                keep["baseline"].append(baseline)
                keep["initial"].append(initial)
                keep["sn2"].append(sn2)
                keep["g"].append(h[1] if T > 1 else np.exp(-1 / tau))

        return DeconvolutionResult(
            trace=np.mean(keep["trace"], axis=0),
            spikes=np.mean(keep["spikes"], axis=0),
            baseline=float(np.mean(keep["baseline"])),
            initial=float(np.mean(keep["initial"])),
            kernel=np.array([np.mean(keep["g"])]),
            noise=float(np.sqrt(np.mean(keep["sn2"]))),
        )

    def _step_tau(self, y, spikes, baseline, initial, tau, h, resid, sn2):
        proposal = tau + self.tau_step * self.rng.standard_normal()
        if proposal <= 0:
            return tau, h, resid

        g = np.exp(-1 / proposal)
        h_new = impulse_response([g], y.size)
        calcium = scipy.signal.lfilter([1.0], [1.0, -g], spikes)
        resid_new = y - baseline - initial * h_new - calcium

        log_ratio = (resid @ resid - resid_new @ resid_new) / (2 * sn2)
        if np.log(self.rng.uniform()) < log_ratio:
            return proposal, h_new, resid_new
        return tau, h, resid

    def _positive_normal(self, mean: float, sd: float) -> float:
        """Draw from N(mean, sd^2) truncated to [0, inf)."""
        a = -mean / sd
        tail = ndtr(-a)
        if tail < 1e-300:
            return float(sd * (a + self.rng.exponential() / a) + mean) if a > 0 else 0.0
        return float(mean + sd * -ndtri(self.rng.uniform() * tail))
