import numpy as np
import pytest

from cnmf_temporal.models import Method
from cnmf_temporal.temporal import MAX_DUAL_CONSTRAINTS, TemporalUpdaterParams


def test_defaults():
    params = TemporalUpdaterParams(kernel=[0.9])

    assert params.method is Method.constrained_foopsi
    assert params.restimate_kernel
    assert params.outer_iterations == 2
    assert params.tolerance == 1e-3
    assert params.max_constraints == MAX_DUAL_CONSTRAINTS == 15


@pytest.mark.parametrize(
    "overrides, match",
    [
        (dict(outer_iterations=0), "outer_iterations"),
        (dict(tolerance=0), "tolerance"),
        (dict(max_constraints=0), "max_constraints"),
        (dict(progress_interval=0), "progress_interval"),
        (dict(kernel_order=-1), "kernel_order"),
        (dict(method="noise_constrained"), "per_pixel_noise"),
    ],
)
def test_invalid(overrides, match):
    with pytest.raises(ValueError, match=match):
        TemporalUpdaterParams(kernel=[0.9], **overrides)


def test_method_by_name_or_member():
    assert TemporalUpdaterParams(method=Method.MCMC, kernel=[0.9]).method is Method.MCMC
    assert TemporalUpdaterParams(method="MCEM_foopsi", kernel=[0.9]).method is Method.MCEM_foopsi


def test_noise_for():
    assert TemporalUpdaterParams(kernel=[0.9]).noise_for(0) is None
    assert TemporalUpdaterParams(kernel=[0.9], source_noise=0.2).noise_for(3) == 0.2
    params = TemporalUpdaterParams(kernel=[0.9], source_noise=np.array([0.1, 0.3]))
    assert params.noise_for(1) == 0.3


def test_save_load(tmp_path):
    params = TemporalUpdaterParams(
        method="project", kernel=[0.9], outer_iterations=3, per_pixel_noise=np.ones(3), seed=1
    )
    path = tmp_path / "params.json"

    params.save(path)
    loaded = TemporalUpdaterParams.load(path)

    # arrays are not serialized
    assert loaded.per_pixel_noise is None
    assert loaded.method is Method.project
    assert loaded.outer_iterations == 3
    assert loaded.seed == 1
    assert loaded.kernel == [0.9]


def test_update_revalidates():
    params = TemporalUpdaterParams(kernel=[0.9])

    assert params.update(outer_iterations=5).outer_iterations == 5
    with pytest.raises(ValueError):
        params.update(outer_iterations=0)
