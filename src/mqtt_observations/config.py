"""Configuration models for MQTT observation publishing."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from mqtt_observations.domain.models import PublishTarget

DEFAULT_TOPIC = "obs/nmis"


class ConfigError(Exception):
    """Raised when configuration is missing, unreadable, or invalid."""

    pass


class BrokerConfig(BaseModel):
    """MQTT broker destination configuration."""

    server: str = ""
    """Broker address as host[:port]."""

    username: str | None = None
    password: SecretStr | None = None

    topic: str = DEFAULT_TOPIC
    """Topic prefix for every published message."""

    retain: bool = False
    """Publish with the retain flag instead of transient delivery."""

    retries: int = Field(default=1, ge=0)
    """Extra delivery attempts after the first failed one."""

    qos: Literal[0, 1, 2] = 0
    client_id: str = ""
    keepalive: int = 60
    timeout_seconds: float = Field(default=10.0, gt=0)
    """Bound on connect and send for a single attempt."""

    use_tls: bool = False
    ca_cert: Path | None = None

    def to_target(self, name: str) -> PublishTarget:
        """Build the immutable publish target for this broker."""
        credentials = None
        if self.username:
            password = self.password.get_secret_value() if self.password else None
            credentials = (self.username, password)

        return PublishTarget(
            name=name,
            endpoint=self.server,
            topic_prefix=self.topic,
            credentials=credentials,
            retain=self.retain,
            max_retries=self.retries,
            qos=self.qos,
            timeout_seconds=self.timeout_seconds,
            keepalive=self.keepalive,
            client_id=self.client_id,
            use_tls=self.use_tls,
            ca_cert=str(self.ca_cert) if self.ca_cert else None,
        )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"
    metrics_textfile: Path | None = None
    """Write Prometheus metrics here after each run (node-exporter textfile collector)."""


class ObservationsConfig(BaseModel):
    """Root configuration for observation publishing."""

    mqtt: BrokerConfig = Field(default_factory=BrokerConfig)
    mqtt_secondary: BrokerConfig | None = None
    concepts: list[str] = Field(default_factory=list)
    """Concept names to export, in publish order."""

    extra_logging: bool = False
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def primary_target(self) -> PublishTarget:
        return self.mqtt.to_target("primary")

    def secondary_targets(self) -> list[PublishTarget]:
        if self.mqtt_secondary is None or not self.mqtt_secondary.server:
            return []
        return [self.mqtt_secondary.to_target("secondary")]

    @classmethod
    def from_yaml(cls, path: Path) -> "ObservationsConfig":
        """Load configuration from a YAML file.

        Raises:
            ConfigError: If the file is missing, unparsable, or invalid.
        """
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config {path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a mapping")

        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e


class ObservationsSettings(BaseSettings):
    """Environment-based settings locating the configuration files."""

    model_config = SettingsConfigDict(
        env_prefix="MQTT_OBS_",
        env_nested_delimiter="__",
    )

    config_file: Path = Path("config/observations.yaml")
    routing_file: Path = Path("config/routing.yaml")


def load_config(settings: ObservationsSettings | None = None) -> ObservationsConfig:
    """Load configuration from the settings' config file.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if settings is None:
        settings = ObservationsSettings()
    return ObservationsConfig.from_yaml(settings.config_file)
