"""Core settings for the converge engine."""

from pathlib import Path
from typing import Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)
from typing_extensions import override


class Settings(BaseSettings):
    """
    Engine settings.

    Loaded from init kwargs, environment variables, a dotenv file, secrets and
    finally ``config.yaml`` (lower-case keys), in that order of priority.
    """

    model_config = SettingsConfigDict(
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        alias_generator=lambda name: name.lower(),
        populate_by_name=True,
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )

    # Kubernetes Settings
    K8S_KUBECONFIG: str = ""

    @field_validator("K8S_KUBECONFIG", mode="before")
    @classmethod
    def expand_path(cls, v: str) -> str:
        if v:
            return str(Path(v).expanduser())
        return v

    K8S_CONTEXT: str = Field(default="")
    K8S_NAMESPACE: str = Field(default="default")

    # Polling
    WAITER_POLL_INTERVAL_SECONDS: float = Field(default=1.0, gt=0)
    ERROR_ON_POLL_INTERVAL_SECONDS: float = Field(default=2.0, gt=0)
    DELETE_POLL_INTERVAL_SECONDS: float = Field(default=2.0, gt=0)

    # Apply retry policy
    APPLY_RETRY_COUNT: int = Field(default=0, ge=0)
    APPLY_INITIAL_INTERVAL_SECONDS: float = Field(default=3.0, gt=0)
    APPLY_MAX_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    APPLY_BACKOFF_MULTIPLIER: float = Field(default=1.5, ge=1)

    # Server-side apply
    FIELD_MANAGER: str = Field(default="converge")
    FORCE_CONFLICTS: bool = Field(default=False)

    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        YamlConfigSettingsSource,
    ]:
        # Make init_settings and env_settings higher priority than YAML
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            YamlConfigSettingsSource(settings_cls),
        )
