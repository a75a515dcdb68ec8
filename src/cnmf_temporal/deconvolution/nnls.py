from dataclasses import dataclass

import numpy as np

from cnmf_temporal.kernel import convolution_matrix, decay_vector


def nnls_gram(
    KK: np.ndarray, Ky: np.ndarray, tol: float = 1e-9, max_iter: int | None = None
) -> np.ndarray:
    """
    Solve ``argmin_x 1/2 x'KKx - Ky'x`` for ``x >= 0``.

    Active-set method of Lawson and Hanson, working on the Gram matrix ``K'K``
    and the correlation ``K'y`` instead of the design matrix (Bro and De Jong, 1997).
    Rank-deficient Gram matrices are handled with least squares on the passive set.

    Args:
        KK (np.ndarray): Gram matrix of the design, shape (n, n).
        Ky (np.ndarray): Design correlated with the target, shape (n,).
        tol (float): Optimality tolerance on the gradient.
        max_iter (int): Maximum number of outer iterations. Defaults to 3n.

    Returns:
        np.ndarray: Non-negative solution, shape (n,).
    """
    n = len(Ky)
    if max_iter is None:
        max_iter = 3 * n

    x = np.zeros(n)
    passive = np.zeros(n, dtype=bool)
    gradient = Ky.copy()

    for _ in range(max_iter):
        candidates = ~passive & (gradient > tol)
        if not candidates.any():
            break
        passive[np.argmax(np.where(candidates, gradient, -np.inf))] = True

        z = _passive_solution(KK, Ky, passive)
        for _ in range(n):
            blocking = passive & (z <= 0)
            if not blocking.any():
                break
            step = x[blocking] - z[blocking]
            ratios = np.divide(x[blocking], step, out=np.zeros_like(step), where=step > 0)
            x = x + ratios.min() * (z - x)
            passive &= x > tol
            z = _passive_solution(KK, Ky, passive)

        x = np.maximum(z, 0)
        gradient = Ky - KK @ x

    return x


def _passive_solution(KK: np.ndarray, Ky: np.ndarray, passive: np.ndarray) -> np.ndarray:
    z = np.zeros(len(Ky))
    if passive.any():
        z[passive] = np.linalg.lstsq(KK[np.ix_(passive, passive)], Ky[passive], rcond=None)[0]
    return z


@dataclass
class PenalizedFit:
    calcium: np.ndarray
    """Event-driven part of the fit, without baseline or initial decay."""
    spikes: np.ndarray
    baseline: float
    initial: float
    trace: np.ndarray
    rss: float


class PenalizedSystem:
    """
    Sparse non-negative deconvolution with a fixed kernel.

    Solves

        min 1/2 |y - K s - b - c1 d|^2 + lam * sum(s)   s.t. s >= 0, c1 >= 0

    where ``K`` is the kernel's convolution matrix and ``d`` the decay of the
    initial condition. The baseline ``b`` is unconstrained and profiled out by
    centering, so it never enters the active set.
    """

    def __init__(
        self,
        kernel: np.ndarray,
        n_frames: int,
        optimize_baseline: bool = True,
        optimize_initial: bool = True,
    ):
        self.kernel = kernel
        self.n_frames = n_frames
        self.optimize_baseline = optimize_baseline
        self.optimize_initial = optimize_initial

        self.K = convolution_matrix(kernel, n_frames)
        self.decay = decay_vector(kernel, n_frames)

        columns = [self.K]
        weights = [np.ones(n_frames)]
        if optimize_initial:
            columns.append(self.decay[:, None])
            weights.append(np.zeros(1))
        design = np.hstack(columns)
        self.weights = np.concatenate(weights)

        if optimize_baseline:
            self.column_means = design.mean(axis=0)
            design = design - self.column_means
        else:
            self.column_means = np.zeros(design.shape[1])

        self.design = design
        self.KK = design.T @ design

    def solve(self, y: np.ndarray, lam: float = 0.0) -> PenalizedFit:
        y = np.asarray(y, dtype=float)
        target = y - y.mean() if self.optimize_baseline else y
        Ky = self.design.T @ target - lam * self.weights

        x = nnls_gram(self.KK, Ky)

        spikes = x[: self.n_frames]
        initial = float(x[self.n_frames]) if self.optimize_initial else 0.0
        baseline = float(y.mean() - self.column_means @ x) if self.optimize_baseline else 0.0

        calcium = self.K @ spikes
        trace = calcium + baseline + initial * self.decay
        rss = float(np.sum((y - trace) ** 2))

        return PenalizedFit(
            calcium=calcium,
            spikes=spikes,
            baseline=baseline,
            initial=initial,
            trace=trace,
            rss=rss,
        )

    def max_penalty(self, y: np.ndarray) -> float:
        """Penalty above which the spike train is empty when c1 is held at zero."""
        y = np.asarray(y, dtype=float)
        target = y - y.mean() if self.optimize_baseline else y
        return float(max(np.max(self.design[:, : self.n_frames].T @ target), 0.0))
