"""Configuration loading from an optional YAML file, env vars, and CLI args.

Precedence, lowest to highest: defaults <- YAML <- environment <- CLI.
"""

import logging
import os
from dataclasses import dataclass

import yaml

from incident_forwarder.models import TicketDefaults

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when a required setting is missing or invalid."""


@dataclass(frozen=True)
class Config:
    base_url: str = "http://localhost/glpi/apirest.php"
    app_token: str = ""
    user_token: str = ""
    ticket_resource: str = "Ticket"
    request_timeout: float = 30.0
    category_id: int = 15
    recipient_user_id: int = 6
    entity_id: int = 0
    status: int = 1
    priority: int = 3
    log_file: str = "/app/Scripts/events.log"
    poll_interval: float = 0.5
    metrics_interval: float = 0.0
    failure_threshold: int = 5
    failure_rate_threshold: float = 0.5
    log_level: str = "INFO"

    @property
    def ticket_defaults(self) -> TicketDefaults:
        return TicketDefaults(
            category_id=self.category_id,
            recipient_user_id=self.recipient_user_id,
            entity_id=self.entity_id,
            status=self.status,
            priority=self.priority,
        )

    def validate(self) -> None:
        """Check non-emptiness of the URL and tokens."""
        for name in ("base_url", "app_token", "user_token"):
            if not getattr(self, name).strip():
                raise ConfigError(f"{name} must not be empty")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")


# (field, env var, yaml section, yaml key, type)
_SETTINGS = (
    ("base_url", "GLPI_BASE_URL", "ticketing", "base_url", str),
    ("app_token", "GLPI_APP_TOKEN", "ticketing", "app_token", str),
    ("user_token", "GLPI_USER_TOKEN", "ticketing", "user_token", str),
    ("ticket_resource", "GLPI_TICKET_RESOURCE", "ticketing", "resource", str),
    ("request_timeout", "GLPI_REQUEST_TIMEOUT", "ticketing", "request_timeout", float),
    ("category_id", "GLPI_CATEGORY_ID", "ticket", "category_id", int),
    ("recipient_user_id", "GLPI_RECIPIENT_USER_ID", "ticket", "recipient_user_id", int),
    ("entity_id", "GLPI_ENTITY_ID", "ticket", "entity_id", int),
    ("status", "GLPI_STATUS", "ticket", "status", int),
    ("priority", "GLPI_PRIORITY", "ticket", "priority", int),
    ("log_file", "LOG_FILE", "watcher", "log_file", str),
    ("poll_interval", "POLL_INTERVAL", "watcher", "poll_interval", float),
    ("metrics_interval", "METRICS_INTERVAL", "metrics", "interval", float),
    ("failure_threshold", "ALERT_FAILURE_THRESHOLD", "metrics", "failure_threshold", int),
    ("failure_rate_threshold", "ALERT_FAILURE_RATE", "metrics", "failure_rate_threshold", float),
    ("log_level", "LOG_LEVEL", "logging", "level", str),
)

# CLI flags that may override a setting (argparse dest -> field)
_CLI_FIELDS = ("base_url", "log_file", "poll_interval", "log_level")


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(cli_args=None, yaml_data: dict | None = None) -> Config:
    """Build Config from YAML data, env vars, and parsed CLI args."""
    yaml_data = yaml_data or {}
    kwargs: dict = {}

    for name, env_var, section, key, cast in _SETTINGS:
        section_data = yaml_data.get(section)
        if section_data is None:
            section_data = {}
        elif not isinstance(section_data, dict):
            raise ConfigError(f"Config section {section!r} must be a mapping")
        value = section_data.get(key)
        value = os.environ.get(env_var, value)
        if cli_args is not None and name in _CLI_FIELDS:
            cli_value = getattr(cli_args, name, None)
            if cli_value is not None:
                value = cli_value
        if value is None:
            continue
        try:
            kwargs[name] = cast(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {name}: {value!r}") from e

    if "log_level" in kwargs:
        kwargs["log_level"] = kwargs["log_level"].upper()
    return Config(**kwargs)
