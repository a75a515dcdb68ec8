import numpy as np

from cnmf_temporal.deconvolution.nnls import PenalizedSystem


class LagrangianDual:
    """
    Noise constrained fit of one component against a handful of pixels.

        min_c sum(G c)   s.t.  G c >= 0,
                               |Y_i - a_i c|^2 <= budget_i   for every pixel i

    For fixed multipliers ``lam`` the primal reduces to a penalized projection
    of the multiplier-weighted pixel average onto ``G c >= 0``. Multipliers are
    updated by multiplicative ascent on the relative constraint violations and
    are returned for warm-starting the next call.
    """

    def __init__(
        self,
        n_iterations: int = 30,
        step_size: float = 0.5,
        tol: float = 1e-3,
        multiplier_bounds: tuple[float, float] = (1e-12, 1e12),
    ):
        self.n_iterations = n_iterations
        self.step_size = step_size
        self.tol = tol
        self.multiplier_bounds = multiplier_bounds

    def solve(
        self,
        residual: np.ndarray,
        weights: np.ndarray,
        budget: np.ndarray,
        kernel: np.ndarray,
        multipliers: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Args:
            residual (np.ndarray): Pixel subset of the residual with this component
                added back. Shape: (constraints × frames)
            weights (np.ndarray): Footprint values on the subset. Shape: (constraints,)
            budget (np.ndarray): Allowed squared error per pixel. Shape: (constraints,)
            kernel (np.ndarray): AR coefficients.
            multipliers (np.ndarray): Warm-start multipliers. Shape: (constraints,)

        Returns:
            tuple[np.ndarray, np.ndarray]: Fitted trace (frames,) and updated multipliers.
        """
        n_frames = residual.shape[1]
        system = PenalizedSystem(kernel, n_frames, optimize_baseline=False, optimize_initial=False)

        floor = 1e-8 * np.maximum(np.sum(residual**2, axis=1), 1e-12)
        budget = np.maximum(np.asarray(budget, dtype=float), floor)
        lam = np.clip(np.asarray(multipliers, dtype=float), *self.multiplier_bounds)

        trace = np.zeros(n_frames)
        for _ in range(self.n_iterations):
            trace = self._primal(system, residual, weights, lam)
            violation = (np.sum((residual - np.outer(weights, trace)) ** 2, axis=1) - budget) / budget
            active = weights != 0
            if not active.any() or np.max(np.abs(violation[active])) < self.tol:
                break
            lam = np.clip(
                lam * np.exp(np.clip(self.step_size * violation, -5, 5)), *self.multiplier_bounds
            )

        return trace, lam

    @staticmethod
    def _primal(
        system: PenalizedSystem, residual: np.ndarray, weights: np.ndarray, lam: np.ndarray
    ) -> np.ndarray:
        precision = np.sum(lam * weights**2)
        if precision <= 0:
            return np.zeros(residual.shape[1])
        target = (lam * weights) @ residual / precision
        return system.solve(target, 1 / (2 * precision)).trace
