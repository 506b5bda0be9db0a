import re
from datetime import timedelta
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .models import BaseSelector, select_base

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """
    Parses Go-style durations ("90s", "2m", "1h30m") or bare seconds.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return timedelta(seconds=float(text))

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=total)


class AppSettings(BaseSettings):
    """
    Prober configuration loaded from defaults, then an optional
    registry_monitor.yaml, then environment variables (or a .env file), then
    command line flags passed as keyword arguments.
    """

    LISTEN: str = ":8000"
    LOG_LEVEL: str = "info"

    USERNAME: str = ""
    PASSWORD: str = ""
    REGISTRY_HOST: str = ""
    REPOSITORY: str = ""
    BASE_IMAGE: str = ""
    BASE_LAYER_ID: str = ""
    PUBLIC_BASE: bool = False
    TEST_INTERVAL: timedelta = Field(default=timedelta(minutes=2))

    DOCKER_BASE_URL: str | None = None  # Optional: podman socket or remote docker
    DOCKER_TIMEOUT: int = 120

    AWS_ACCESS_KEY: str = ""
    AWS_SECRET_KEY: str = ""
    CLOUDWATCH_REGION: str = "us-east-1"
    CLOUDWATCH_NAMESPACE: str = ""
    CLOUDWATCH_METRIC_SUCCESS: str = "MonitorSuccess"
    CLOUDWATCH_METRIC_FAILURE: str = "MonitorFailure"
    CLOUDWATCH_METRIC_PULL_TIME: str = "MonitorPullTime"
    CLOUDWATCH_METRIC_PUSH_TIME: str = "MonitorPushTime"

    PROMETHEUS_NAMESPACE: str = Field(
        default="",
        validation_alias=AliasChoices(
            "PROMETHEUS_NAMESPACE", "REGISTRY_MONITOR_PROMETHEUS_NAMESPACE"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="REGISTRY_MONITOR_",
        env_file=".env",
        yaml_file="registry_monitor.yaml",
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # flags > environment > .env > yaml file > defaults
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("TEST_INTERVAL", mode="before")
    @classmethod
    def validate_interval(cls, v):
        interval = parse_duration(v)
        if interval <= timedelta(0):
            raise ValueError("test interval must be positive")
        return interval

    @field_validator("LISTEN")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        if not re.fullmatch(r"[^\s]*:\d+", v):
            raise ValueError(f"listen address must look like host:port or :port, got {v!r}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in ("debug", "info", "warning", "warn", "error", "critical", "fatal", "panic"):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @model_validator(mode="after")
    def validate_required(self) -> "AppSettings":
        missing = [
            flag
            for flag, value in (
                ("username", self.USERNAME),
                ("password", self.PASSWORD),
                ("registry-host", self.REGISTRY_HOST),
                ("repository", self.REPOSITORY),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")

        if self.BASE_IMAGE and self.BASE_LAYER_ID:
            raise ValueError("Both base-image and base-layer-id set; only one of them is allowed")
        return self

    @property
    def base_selector(self) -> BaseSelector | None:
        """The configured base, or None when it must be resolved from history."""
        if not (self.BASE_IMAGE or self.BASE_LAYER_ID):
            return None
        return select_base(self.BASE_IMAGE, self.BASE_LAYER_ID)

    @property
    def cloudwatch_enabled(self) -> bool:
        return bool(self.AWS_ACCESS_KEY and self.AWS_SECRET_KEY and self.CLOUDWATCH_NAMESPACE)

    @property
    def listen_address(self) -> tuple[str, int]:
        host, _, port = self.LISTEN.rpartition(":")
        return host or "0.0.0.0", int(port)

    @property
    def registry_auth(self) -> dict[str, str]:
        return {"username": self.USERNAME, "password": self.PASSWORD}


@lru_cache
def get_settings(**overrides) -> AppSettings:
    """
    Creates a singleton instance of AppSettings for the given flag overrides.
    Uses lru_cache to ensure the environment and .env file are read only once.
    """
    return AppSettings(**overrides)
