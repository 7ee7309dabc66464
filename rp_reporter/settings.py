"""Report Portal settings.

Settings are read from a YAML file (``report_portal.yml`` by default) and
overridden by ``RP_*`` environment variables:

    uuid: 0b1e4c4a-...
    endpoint: https://rp.example.com
    project: my_project
    launch: Nightly
    tags: [smoke, linux]
    is_debug: false
    disable_ssl_verification: false
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import yaml

from .errors import SettingsError

DEFAULT_CONFIG_NAMES = ("report_portal.yml", "report_portal.yaml", "config/report_portal.yml")

LAUNCH_MODES = {"DEFAULT", "DEBUG"}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Resolved, read-only view of the reporter configuration."""
    uuid: str
    endpoint: str
    project: str
    launch: str
    tags: list[str] = field(default_factory=list)
    is_debug: bool = False
    launch_mode: str = "DEFAULT"
    disable_ssl_verification: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        self.endpoint = self.endpoint.rstrip("/")
        self.launch_mode = self.launch_mode.upper()
        if self.is_debug:
            self.launch_mode = "DEBUG"

    @property
    def project_url(self) -> str:
        return f"{self.endpoint}/api/v1/{self.project}"

    @property
    def api_token(self) -> str:
        return self.uuid

    @property
    def launch_name(self) -> str:
        return self.launch

    @property
    def launch_tags(self) -> list[str]:
        return list(self.tags)

    @property
    def ssl_verification_disabled(self) -> bool:
        return self.disable_ssl_verification


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[dict[str, str]] = None,
) -> Settings:
    """Load settings from a YAML file and the environment.

    Args:
        path: Settings file. Falls back to ``RP_CONFIG`` and then to the
            default file names in the working directory. A missing default
            file is fine as long as the environment supplies every value.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Validated Settings.

    Raises:
        SettingsError: If the file is unreadable or required values are missing.
    """
    environ = os.environ if environ is None else environ
    data: dict = {}

    config_path = _resolve_config_path(path, environ)
    if config_path is not None:
        data.update(_read_yaml(config_path))

    for key in ("uuid", "endpoint", "project", "launch", "launch_mode", "log_level"):
        value = environ.get(f"RP_{key.upper()}")
        if value:
            data[key] = value

    tags = environ.get("RP_TAGS")
    if tags:
        data["tags"] = [t.strip() for t in tags.split(",") if t.strip()]

    for key in ("is_debug", "disable_ssl_verification"):
        value = environ.get(f"RP_{key.upper()}")
        if value is not None:
            data[key] = value.strip().lower() in _TRUE_VALUES

    return parse_settings_data(data, source=str(config_path) if config_path else "<environment>")


def parse_settings_data(data: dict, source: str = "<inline>") -> Settings:
    """Build Settings from an already loaded mapping."""
    missing = [k for k in ("uuid", "endpoint", "project", "launch") if not data.get(k)]
    if missing:
        raise SettingsError(
            f"Missing required setting(s) {', '.join(missing)} in {source}. "
            "Set them in report_portal.yml or via RP_* environment variables."
        )

    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    if not isinstance(tags, list):
        raise SettingsError(f"'tags' must be a list in {source}")

    settings = Settings(**{
        k: v for k, v in data.items()
        if k in Settings.__dataclass_fields__ and k != "tags" and v is not None
    }, tags=[str(t) for t in tags])

    if settings.launch_mode not in LAUNCH_MODES:
        raise SettingsError(
            f"Invalid launch_mode '{settings.launch_mode}' in {source}. "
            f"Must be one of: {', '.join(sorted(LAUNCH_MODES))}"
        )
    return settings


def _resolve_config_path(path, environ) -> Optional[Path]:
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise SettingsError(f"Settings file not found: {path}")
        return path

    env_path = environ.get("RP_CONFIG")
    if env_path:
        return _resolve_config_path(env_path, {})

    for name in DEFAULT_CONFIG_NAMES:
        candidate = Path(name)
        if candidate.exists():
            return candidate
    return None


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SettingsError(f"Malformed settings file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Settings must be a YAML mapping, got {type(data).__name__}")
    return data
