"""Noise level and time constant estimates for single fluorescence traces."""

import numpy as np
import scipy.linalg
import scipy.signal

_NOISE_AVERAGES = {
    "mean": lambda psd: np.sqrt(np.mean(psd / 2)),
    "median": lambda psd: np.sqrt(np.median(psd / 2)),
    "logmexp": lambda psd: np.sqrt(np.exp(np.mean(np.log(psd / 2)))),
}


def get_noise(
    trace: np.ndarray, noise_range: tuple[float, float] = (0.25, 0.5), method: str = "logmexp"
) -> float:
    """
    Estimate noise standard deviation from the power spectral density over high frequencies.

    Args:
        trace (np.ndarray): One dimensional trace, one entry per frame.
        noise_range (tuple): Range of frequency (x Nyquist rate) over which the spectrum is averaged.
        method (str): Averaging of the spectrum: 'mean', 'median' or 'logmexp'.

    Returns:
        float: Noise standard deviation.
    """
    if method not in _NOISE_AVERAGES:
        raise ValueError(f"Unknown noise averaging method: {method}")

    trace = np.asarray(trace, dtype=float)
    ff, psd = scipy.signal.welch(trace, nperseg=min(256, trace.size))
    band = (ff > noise_range[0]) & (ff < noise_range[1])
    if not band.any():
        band = ff > 0

    with np.errstate(divide="ignore"):
        return float(_NOISE_AVERAGES[method](psd[band]))


def axcov(data: np.ndarray, maxlag: int = 5) -> np.ndarray:
    """Autocovariance of ``data`` at lags ``-maxlag..maxlag``."""
    data = np.asarray(data, dtype=float) - np.mean(data)
    T = data.size
    n_fft = 2 ** int(np.ceil(np.log2(2 * T - 1)))
    xcov = np.fft.ifft(np.abs(np.fft.fft(data, n_fft)) ** 2)
    xcov = np.concatenate([xcov[-maxlag:], xcov[: maxlag + 1]])
    return np.real(xcov / T)


def estimate_time_constant(
    trace: np.ndarray,
    p: int = 2,
    sn: float | None = None,
    lags: int = 5,
    fudge_factor: float = 1.0,
) -> np.ndarray:
    """
    Estimate AR coefficients from the autocovariance, corrected for white noise.

    Roots of the fitted process are kept inside (0, 1) and shrunk by ``fudge_factor``.
    """
    if p == 0:
        return np.zeros(0)
    if sn is None:
        sn = get_noise(trace)

    lags += p
    if lags >= len(trace):
        raise ValueError(f"Trace of length {len(trace)} is too short for {lags} lags.")

    xc = axcov(trace, lags)
    A = scipy.linalg.toeplitz(xc[lags + np.arange(lags)], xc[lags + np.arange(p)])
    A = A - sn**2 * np.eye(lags, p)
    g = np.linalg.lstsq(A, xc[lags + 1 :], rcond=None)[0]

    roots = np.roots(np.concatenate([[1.0], -g]))
    roots = roots.real
    roots[roots > 1] = 0.95
    roots[roots < 0] = 0.15
    g = -np.poly(fudge_factor * roots)[1:]
    return np.real(g).ravel()


def estimate_parameters(
    trace: np.ndarray,
    p: int = 2,
    sn: float | None = None,
    g: np.ndarray | None = None,
    noise_range: tuple[float, float] = (0.25, 0.5),
    method: str = "logmexp",
    lags: int = 5,
    fudge_factor: float = 1.0,
) -> tuple[np.ndarray, float]:
    """Fill in whichever of the kernel and noise level is missing."""
    if sn is None:
        sn = get_noise(trace, noise_range, method)
    if g is None:
        g = estimate_time_constant(trace, p, sn, lags, fudge_factor)
    return g, sn
