"""Configuration loader and validation for the MQTT/Loxone bridge."""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class ConfigError(Exception):
    """Raised when the configuration file is missing, unparseable or invalid."""


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class MqttConfig(FrozenModel):
    host: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    name: str = "loxone"
    client_id: str = "loxone_bridge"
    tls: bool = False


class UdpConfig(FrozenModel):
    host: str
    port: int = 7000
    listen_port: int | None = None
    bind_host: str = "0.0.0.0"

    @property
    def bind_port(self) -> int:
        return self.listen_port if self.listen_port is not None else self.port


class FieldSpec(FrozenModel):
    name: str
    type: Literal["string", "number"] = "number"


class SubscriptionRule(FrozenModel):
    topic: str
    identifier: str = ""
    fields: tuple[FieldSpec, ...] | None = None


class LoxoneConfig(FrozenModel):
    host: str
    port: int = 80
    username: str
    password: str
    timeout: float | None = None
    subscriptions: tuple[SubscriptionRule, ...] = ()


class LoggingConfig(FrozenModel):
    level: str = "INFO"
    file: str | None = None

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Invalid log level '{v}'. Must be one of {allowed}")
        return v_upper


class AppConfig(FrozenModel):
    mqtt: MqttConfig
    udp: UdpConfig
    loxone: LoxoneConfig
    logging: LoggingConfig = LoggingConfig()


def load_config(config_path: Path | None = None) -> AppConfig:
    if config_path is None:
        config_path = PROJECT_ROOT / "config.yaml"
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")
    try:
        with config_path.open() as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration in {config_path} must be a mapping")
    try:
        config = AppConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    logger.debug("Loaded configuration from %s (%d subscriptions)", config_path, len(config.loxone.subscriptions))
    return config
