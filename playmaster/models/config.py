"""Models for the ``playmaster.yaml`` project configuration."""

import logging
import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import ConfigDict, Field, SecretStr, ValidationError

from playmaster.models.base import Model
from playmaster.models.phase import HookType

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "playmaster.yaml"

ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z0-9_]+)")

FLUTTER_MIN_VERSION = "3.29.2"


class ConfigError(Exception):
    """Raised when the project configuration cannot be loaded."""


class Dependency(Model):
    """Tool that must be present on the execution target."""

    name: str = Field(..., description="Tool name used in log messages")
    min_version: str = Field(..., description="Lowest accepted version, e.g. '3.29.2'")
    version_command: str = Field(
        ..., description="Shell command printing the installed version"
    )


class HookConfig(Model):
    """User-declared command hook."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="Hook name, also used for log file names")
    hook_type: HookType = Field(..., description="Phase the hook runs in")
    is_async: bool = Field(
        default=False, alias="async", description="Spawn without waiting"
    )
    continue_on_error: bool = Field(
        default=False, description="Run even after an earlier failure"
    )
    command: str = Field(..., description="Program, or full command line without args")
    args: Sequence[str] | None = Field(default=None, description="Program arguments")
    env: Mapping[str, str] | None = Field(
        default=None, description="Extra environment variables"
    )


class RemoteConfig(Model):
    """Default connection details for remote runs."""

    host: str | None = None
    user: str | None = None
    port: int = 22
    password: SecretStr | None = None


class WebhookConfig(Model):
    """Destination for the results summary."""

    url: str = ""
    message_template: str = ""
    ignore_error: bool = False


class EmailConfig(Model):
    """Email backend used to read one-time codes requested by tests."""

    enabled: bool = False
    backend: str = "imap"
    settings: Mapping[str, Any] = Field(default_factory=dict)


class Config(Model):
    """Complete project configuration."""

    project_type: Literal["flutter"] = "flutter"
    dependencies: Sequence[Dependency] = Field(default_factory=list)
    hooks: Sequence[HookConfig] = Field(default_factory=list)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    webhook: WebhookConfig | None = None
    email: EmailConfig = Field(default_factory=EmailConfig)

    def with_defaults(self) -> "Config":
        """Return the configuration with project type defaults added."""
        if self.project_type == "flutter" and not any(
            dep.name == "flutter" for dep in self.dependencies
        ):
            flutter = Dependency(
                name="flutter",
                min_version=FLUTTER_MIN_VERSION,
                version_command="flutter --version | head -n 1 | awk '{print $2}'",
            )
            return self.model_copy(
                update={"dependencies": [*self.dependencies, flutter]}
            )
        return self


def expand_env_vars(content: str, environ: Mapping[str, str] | None = None) -> str:
    """Expand ``${VAR}`` and ``$VAR`` references, unset ones become empty."""
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        return env.get(key, "")

    return ENV_VAR_RE.sub(_replace, content)


def load_config(directory: Path) -> Config:
    """Load and validate ``playmaster.yaml`` from a directory.

    Args:
        directory: Project directory containing the configuration file

    Returns:
        Validated configuration with project defaults applied

    Raises:
        ConfigError: If the file is missing, is not YAML, or is invalid

    """
    config_path = directory / CONFIG_FILE_NAME
    try:
        content = config_path.read_text()
    except FileNotFoundError as e:
        raise ConfigError(f"Could not read config file {config_path}") from e

    try:
        data = yaml.safe_load(expand_env_vars(content)) or {}
        config = Config.model_validate(data)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigError(f"Invalid config format in {config_path}: {e}") from e

    log.debug("Loaded configuration from %s", config_path)
    return config.with_defaults()
