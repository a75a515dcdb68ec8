from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Callable

import numpy as np
import pytest
import tomli_w
import yaml
from pydantic import ValidationError

from cnmf_temporal import Config, TemporalUpdaterParams
from cnmf_temporal.config import _dirs
from cnmf_temporal.models import Method


def _flatten(d, parent_key="", separator="__") -> dict:
    items = []
    for key, value in d.items():
        new_key = parent_key + separator + key if parent_key else key
        if isinstance(value, MutableMapping):
            items.extend(_flatten(value, new_key, separator=separator).items())
        else:
            items.append((new_key, value))
    return dict(items)


@pytest.fixture(scope="module", autouse=True)
def dodge_existing_global_config(tmp_path_factory):
    """
    Suspend any existing global config file during config tests
    """
    tmp_path = tmp_path_factory.mktemp("config_backup")
    global_config_path = Path(_dirs.user_config_dir) / "cnmf_temporal_config.yaml"
    backup_path = tmp_path / "cnmf_temporal_config.yaml.bak"

    if global_config_path.exists():
        global_config_path.rename(backup_path)

    yield

    if backup_path.exists():
        global_config_path.unlink(missing_ok=True)
        backup_path.rename(global_config_path)


@pytest.fixture(autouse=True)
def tmp_cwd(tmp_path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def set_env(monkeypatch) -> Callable[[dict[str, Any]], None]:
    """
    Function fixture to set environment variables using a nested dict
    matching a Config.model_dump()
    """

    def _set_env(config: dict[str, Any]) -> None:
        for key, value in _flatten(config).items():
            monkeypatch.setenv("CNMF_TEMPORAL_" + key.upper(), str(value))

    return _set_env


@pytest.fixture()
def set_dotenv(tmp_cwd) -> Callable[[dict[str, Any]], Path]:
    dotenv_path = tmp_cwd / ".env"

    def _set_dotenv(config: dict[str, Any]) -> Path:
        with open(dotenv_path, "w") as dfile:
            for key, value in _flatten(config).items():
                dfile.write(f"CNMF_TEMPORAL_{key.upper()}={value}\n")
        return dotenv_path

    return _set_dotenv


@pytest.fixture()
def set_pyproject(tmp_cwd) -> Callable[[dict[str, Any]], Path]:
    toml_path = tmp_cwd / "pyproject.toml"

    def _set_pyproject(config: dict[str, Any]) -> Path:
        with open(toml_path, "wb") as tfile:
            tomli_w.dump({"tool": {"cnmf_temporal": {"config": config}}}, tfile)
        return toml_path

    return _set_pyproject


@pytest.fixture()
def set_local_yaml(tmp_cwd) -> Callable[[dict[str, Any]], Path]:
    yaml_path = tmp_cwd / "cnmf_temporal_config.yaml"

    def _set_local_yaml(config: dict[str, Any]) -> Path:
        with open(yaml_path, "w") as yfile:
            yaml.safe_dump(config, yfile)
        return yaml_path

    return _set_local_yaml


@pytest.fixture()
def set_global_yaml() -> Callable[[dict[str, Any]], Path]:
    """
    Function fixture to reversibly set config variables in the global config file
    """
    global_config_path = Path(_dirs.user_config_dir) / "cnmf_temporal_config.yaml"
    global_config_path.parent.mkdir(parents=True, exist_ok=True)

    def _set_global_yaml(config: dict[str, Any]) -> Path:
        with open(global_config_path, "w") as gfile:
            yaml.safe_dump(config, gfile)
        return global_config_path

    try:
        yield _set_global_yaml
    finally:
        global_config_path.unlink(missing_ok=True)


@pytest.mark.parametrize(
    "setter",
    ["set_env", "set_dotenv", "set_pyproject", "set_local_yaml", "set_global_yaml"] * 2,
)
def test_config_sources(setter, request):
    """
    Each of the settings sources in isolation can set values, top-level and nested.

    Run twice so we confirm old settings don't hang out between tests
    """
    fixture_fn = request.getfixturevalue(setter)

    assert Config().log_dir is None
    assert Config().temporal.outer_iterations == 2
    fixture_fn({"log_dir": "meatball", "temporal": {"outer_iterations": 7}})
    assert Config().log_dir == Path("meatball")
    assert Config().temporal.outer_iterations == 7


def test_config_sources_overrides(
    set_env, set_dotenv, set_pyproject, set_local_yaml, set_global_yaml
):
    """
    The various config sources should override one another in order
    """
    set_global_yaml({"log_dir": "0"})
    assert Config().log_dir == Path("0")
    set_pyproject({"log_dir": "1"})
    assert Config().log_dir == Path("1")
    set_local_yaml({"log_dir": "2"})
    assert Config().log_dir == Path("2")
    set_dotenv({"log_dir": "3"})
    assert Config().log_dir == Path("3")
    set_env({"log_dir": "4"})
    assert Config().log_dir == Path("4")
    assert Config(log_dir="5").log_dir == Path("5")

    # order shouldn't matter - highest priority should always be highest
    set_dotenv({"log_dir": "6"})
    assert Config().log_dir == Path("4")
    set_local_yaml({"log_dir": "7"})
    assert Config().log_dir == Path("4")
    set_global_yaml({"log_dir": "8"})
    assert Config().log_dir == Path("4")


def test_config_file_is_absolute(set_local_yaml):
    """
    When the config file is not found relative to cwd,
    make it absolute relative to the global config directory.
    Otherwise, just resolve it.
    """
    default_config_file = Config().config_file
    assert default_config_file.is_absolute()
    assert default_config_file == Path(_dirs.user_config_dir) / "cnmf_temporal_config.yaml"

    set_local_yaml({"log_level": "debug"})
    cwd_config_file = Config().config_file
    assert cwd_config_file == Path("cnmf_temporal_config.yaml").resolve()
    assert cwd_config_file != default_config_file


def test_log_file():
    assert Config().log_file is None
    assert Config(log_dir="logs").log_file == Path("logs") / "cnmf_temporal.log"


def test_log_level_validated(set_env):
    set_env({"log_level": "debug"})
    assert Config().log_level == "DEBUG"

    with pytest.raises(ValidationError):
        Config(log_level="chatty")


def test_temporal_method_validated():
    assert Config(temporal={"method": "MCMC"}).temporal.method == "MCMC"

    with pytest.raises(ValidationError):
        Config(temporal={"method": "foopsi"})
    with pytest.raises(ValidationError):
        Config(temporal={"outer_iterations": 0})


def test_params_from_config(set_local_yaml):
    set_local_yaml({"temporal": {"method": "project", "outer_iterations": 4, "seed": 3}})

    params = TemporalUpdaterParams.from_config(Config(), kernel=[0.9])

    assert params.method is Method.project
    assert params.outer_iterations == 4
    assert params.seed == 3
    np.testing.assert_array_equal(params.kernel, [0.9])
