"""
Incremental bookkeeping of the mixture during block-coordinate updates.

Both bookkeepers hold the augmented footprints ``[A, b]`` and share one contract:
``isolate`` adds the current contribution of one component back into the
bookkept state and returns its isolated trace, ``reabsorb`` removes the new
fit again. Between the two calls the state describes the mixture without that
component. Callers that read the bookkept state directly pass ``project=False``
to skip computing the isolated trace where that is not free.
"""

import numpy as np


class Bookkeeper:
    def __init__(self, footprints: np.ndarray):
        self.footprints = footprints
        self.squared_norms = np.sum(footprints**2, axis=0)
        self._pending: tuple[int, np.ndarray] | None = None

    @property
    def n_components(self) -> int:
        return self.footprints.shape[1]

    def observable(self, index: int) -> bool:
        return bool(self.squared_norms[index] > 0)

    def _begin(self, index: int, current: np.ndarray) -> None:
        if self._pending is not None:
            raise RuntimeError(f"Component {self._pending[0]} has not been reabsorbed.")
        self._pending = (index, np.array(current, dtype=float))

    def _end(self, index: int) -> np.ndarray:
        if self._pending is None or self._pending[0] != index:
            raise RuntimeError(f"Component {index} was not isolated before reabsorbing.")
        _, previous = self._pending
        self._pending = None
        return previous


class CorrelationBookkeeper(Bookkeeper):
    """
    Keeps ``YrA = Y'[A, b] - [C; f]'([A, b]'[A, b])`` (frames × components).

    Column ``i`` plus ``|a_i|^2 c_i`` is the observation correlated with footprint
    ``i`` after removing every other component. After the initial product,
    isolating costs O(frames) and reabsorbing O(frames × components).
    """

    def __init__(self, observation: np.ndarray, footprints: np.ndarray, traces: np.ndarray):
        super().__init__(footprints)
        self.gram = footprints.T @ footprints
        self.correlation = observation.T @ footprints - traces.T @ self.gram

    def isolate(self, index: int, current: np.ndarray, project: bool = True) -> np.ndarray:
        self._begin(index, current)
        self.correlation[:, index] += self.squared_norms[index] * current
        return self.correlation[:, index] / self.squared_norms[index]

    def reabsorb(self, index: int, new: np.ndarray) -> None:
        previous = self._end(index)
        self.correlation[:, index] -= self.squared_norms[index] * new

        others = np.arange(self.n_components) != index
        self.correlation[:, others] -= np.outer(new - previous, self.gram[index, others])


class ResidualBookkeeper(Bookkeeper):
    """
    Keeps the explicit residual ``Y - [A, b][C; f]`` (pixels × frames).

    Each isolate/reabsorb pair costs one rank-one update of the residual.
    """

    def __init__(self, observation: np.ndarray, footprints: np.ndarray, traces: np.ndarray):
        super().__init__(footprints)
        self.residual = observation - footprints @ traces

    def isolate(
        self, index: int, current: np.ndarray, project: bool = True
    ) -> np.ndarray | None:
        self._begin(index, current)
        footprint = self.footprints[:, index]
        self.residual += np.outer(footprint, current)
        if not project:
            return None
        return footprint @ self.residual / self.squared_norms[index]

    def reabsorb(self, index: int, new: np.ndarray) -> None:
        self._end(index)
        self.residual -= np.outer(self.footprints[:, index], new)
