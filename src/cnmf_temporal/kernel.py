"""Autoregressive kernel helpers.

A kernel of order ``p`` is the coefficient vector ``g`` of the process

    c_t = g_1 c_{t-1} + ... + g_p c_{t-p} + s_t

so that ``G @ c = s`` for the banded lower-triangular operator built by
:func:`make_kernel_matrix`.
"""

from collections.abc import Mapping, Sequence

import numpy as np
import scipy.sparse
import scipy.sparse.linalg
from numba import jit

KernelSpec = np.ndarray | Sequence[np.ndarray] | Mapping[int, np.ndarray]


def as_kernel(g) -> np.ndarray:
    """Coerce coefficients to a flat float array. Empty means order 0."""
    g = np.atleast_1d(np.asarray(g, dtype=float)).ravel()
    if g.size == 1 and g[0] < 0:
        g = np.zeros(1)
    return g


def make_kernel_matrix(g, n_frames: int) -> scipy.sparse.csc_matrix:
    """Sparse lower-triangular AR operator G with ``(G c)_t = c_t - sum_k g_k c_{t-k}``."""
    g = as_kernel(g)[: max(n_frames - 1, 0)]
    diagonals = [np.ones(n_frames)] + [-gk * np.ones(n_frames - k - 1) for k, gk in enumerate(g)]
    offsets = [0] + [-(k + 1) for k in range(len(g))]
    return scipy.sparse.diags(diagonals, offsets, shape=(n_frames, n_frames)).tocsc()


@jit(nopython=True, cache=True)
def _ar_filter(g: np.ndarray, n_frames: int) -> np.ndarray:
    h = np.zeros(n_frames)
    for t in range(n_frames):
        acc = 1.0 if t == 0 else 0.0
        for k in range(g.shape[0]):
            if t - k - 1 >= 0:
                acc += g[k] * h[t - k - 1]
        h[t] = acc
    return h


def impulse_response(g, n_frames: int) -> np.ndarray:
    """Response of the AR process to a unit event at t=0."""
    return _ar_filter(as_kernel(g), n_frames)


def convolution_matrix(g, n_frames: int) -> np.ndarray:
    """Dense inverse of the AR operator: column ``t`` is the response to an event at ``t``."""
    G = make_kernel_matrix(g, n_frames).tocsr()
    return scipy.sparse.linalg.spsolve_triangular(G, np.eye(n_frames), lower=True)


def dominant_root(g) -> float:
    """Largest real root of the characteristic polynomial ``z^p - g_1 z^{p-1} - ... - g_p``."""
    g = as_kernel(g)
    if not np.any(g):
        return 0.0
    roots = np.roots(np.concatenate([[1.0], -g]))
    return float(np.max(roots.real))


def decay_vector(g, n_frames: int) -> np.ndarray:
    """Decay of the initial condition, ``gd ** t``."""
    return dominant_root(g) ** np.arange(n_frames)


def kernel_for(spec: KernelSpec | None, index: int) -> np.ndarray | None:
    """Kernel of one source from a shared array, a per-source sequence, or a mapping."""
    if spec is None:
        return None
    if not is_per_source(spec):
        return as_kernel(spec)
    if isinstance(spec, Mapping):
        return as_kernel(spec[index]) if index in spec else None
    return as_kernel(spec[index]) if index < len(spec) else None


def is_per_source(spec: KernelSpec | None) -> bool:
    if spec is None:
        return False
    if isinstance(spec, Mapping):
        return True
    if isinstance(spec, np.ndarray):
        return spec.dtype == object or spec.ndim > 1
    return isinstance(spec, Sequence) and len(spec) > 0 and np.ndim(spec[0]) > 0
