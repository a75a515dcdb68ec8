import numpy as np
import pytest

from cnmf_temporal.testing import Box, FrameDims, Toy, simulate_traces

KERNEL = [0.9]


@pytest.fixture
def kernel() -> list[float]:
    return KERNEL


@pytest.fixture
def toy() -> Toy:
    """Three disjoint 2 × 2 cells and a background on the remaining pixels of a 4 × 5 field."""
    n_frames = 50
    return Toy(
        n_frames=n_frames,
        frame_dims=FrameDims(width=5, height=4),
        cell_boxes=[Box(height=0, width=0), Box(height=0, width=2), Box(height=2, width=0)],
        cell_traces=list(simulate_traces(3, n_frames, KERNEL, seed=1)),
    )


@pytest.fixture
def noisy_toy() -> Toy:
    n_frames = 80
    return Toy(
        n_frames=n_frames,
        frame_dims=FrameDims(width=5, height=4),
        cell_boxes=[Box(height=0, width=0), Box(height=0, width=2), Box(height=2, width=0)],
        cell_traces=list(simulate_traces(3, n_frames, KERNEL, seed=2)),
        noise_level=0.05,
        seed=3,
    )


@pytest.fixture
def cold_start(toy):
    """Toy inputs with every trace initialized at zero."""
    return (
        toy.observation,
        toy.footprint_matrix,
        toy.background_vector,
        np.zeros_like(toy.trace_matrix),
        np.zeros(toy.n_frames),
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: Gibbs sampling tests")
