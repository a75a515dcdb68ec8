from pathlib import Path
from typing import Any

from platformdirs import PlatformDirs
from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    PyprojectTomlConfigSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from cnmf_temporal.models import Method

_dirs = PlatformDirs("cnmf_temporal", "cnmf_temporal")


class TemporalConfig(BaseModel):
    """Scalar defaults for the temporal update."""

    method: str = Method.constrained_foopsi.value
    restimate_kernel: bool = True
    outer_iterations: int = Field(2, ge=1)
    tolerance: float = Field(1e-3, gt=0)
    max_constraints: int = Field(15, ge=1)
    seed: int | None = None
    progress_interval: int = Field(10, ge=1)

    @field_validator("method", mode="after")
    @classmethod
    def known_method(cls, v: str) -> str:
        return Method.parse(v).value


class Config(BaseSettings):
    user_dir: Path = Field(
        Path(_dirs.user_config_dir),
        description="Directory containing cnmf_temporal config files",
    )
    config_file: Path = Field(
        Path("cnmf_temporal_config.yaml"),
        description="Location of global cnmf_temporal config file. "
        "If a relative path that doesn't exist relative to cwd, "
        "interpreted as a relative to ``user_dir``",
    )
    log_dir: Path | None = None
    log_level: str = "INFO"

    temporal: TemporalConfig = Field(default_factory=TemporalConfig)

    model_config = SettingsConfigDict(
        env_prefix="cnmf_temporal_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        nested_model_default_partial_update=True,
        yaml_file="cnmf_temporal_config.yaml",
        pyproject_toml_table_header=("tool", "cnmf_temporal", "config"),
    )

    @property
    def log_file(self) -> Path | None:
        if self.log_dir is None:
            return None
        return self.log_dir / "cnmf_temporal.log"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Read config settings from, in order of priority from high to low, where
        high priorities override lower priorities:

        * in the arguments passed to the class constructor (not user configurable)
        * in environment variables like ``export CNMF_TEMPORAL_LOG_LEVEL=DEBUG``
        * in a ``.env`` file in the working directory
        * in a ``cnmf_temporal_config.yaml`` file in the working directory
        * in the ``tool.cnmf_temporal.config`` table in a ``pyproject.toml`` file
          in the working directory
        * in the global ``cnmf_temporal_config.yaml`` file in the platform-specific
          config directory
        * the default values in the :class:`.Config` model
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            PyprojectTomlConfigSettingsSource(settings_cls),
            _GlobalYamlConfigSource(settings_cls),
        )

    @field_validator("log_level", mode="after")
    @classmethod
    def upper_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    @model_validator(mode="after")
    def config_file_is_absolute(self) -> "Config":
        """
        If ``config_file`` is relative, make it absolute underneath user_dir
        """
        if not self.config_file.is_absolute():
            if self.config_file.exists():
                self.config_file = self.config_file.resolve()
            else:
                self.config_file = self.user_dir / self.config_file
        return self


class _GlobalYamlConfigSource(YamlConfigSettingsSource):
    """Yaml config source that gets the location of the global settings file from the prior sources"""

    def __init__(self, *args: Any, **kwargs: Any):
        self._global_config: Any = None
        super().__init__(*args, **kwargs)

    @property
    def global_config_path(self) -> Path:
        """
        Location of the global ``cnmf_temporal_config.yaml`` file,
        given the current state of prior config sources
        """
        current_state = self.current_state
        config_file = Path(current_state.get("config_file", "cnmf_temporal_config.yaml"))
        user_dir = Path(current_state.get("user_dir", _dirs.user_config_dir))
        if not config_file.is_absolute():
            config_file = (user_dir / config_file).resolve()
        return config_file

    @property
    def global_config(self) -> Any:
        """
        Contents of the global config file
        """
        if self._global_config is None:
            if self.global_config_path.exists():
                self._global_config = self._read_files(self.global_config_path)
            else:
                self._global_config = {}
        return self._global_config

    def __call__(self) -> dict[str, Any]:
        return dict(
            TypeAdapter(dict[str, Any]).dump_python(self.global_config)
            if self.nested_model_default_partial_update
            else self.global_config
        )
