"""Settings management: defaults, JSON config file, environment and .env."""

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .util.cache import CacheMode

logger = logging.getLogger(__name__)

# Environment variable -> setting name
ENV_VARS = {
    "CURSEFORGE_API_KEY": "curseforge_api_key",
    "MODRINTH_API_BASE_URL": "modrinth_api_base_url",
    "CURSEFORGE_API_BASE_URL": "curseforge_api_base_url",
    "GITHUB_API_BASE_URL": "github_api_base_url",
    "GITHUB_TOKEN": "github_token",
    "MOJANG_MANIFEST_URL": "mojang_manifest_url",
    "FABRIC_META_BASE_URL": "fabric_meta_base_url",
    "MODMANAGER_DATABASE_FILE": "database_file",
    "MODMANAGER_API_RESPONSE_FOLDER": "api_response_folder",
    "MODMANAGER_DOWNLOAD_FOLDER": "download_folder",
    "MODMANAGER_REQUEST_TIMEOUT": "request_timeout",
    "MODMANAGER_MAX_RETRIES": "max_retries",
}


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration."""
    database_file: str = "modlist.csv"
    api_response_folder: str = "apiresponse"
    download_folder: str = "download"
    cache_mode: CacheMode = CacheMode.REFRESH
    curseforge_api_key: Optional[str] = None
    modrinth_api_base_url: str = "https://api.modrinth.com/v2"
    curseforge_api_base_url: str = "https://api.curseforge.com/v1"
    github_api_base_url: str = "https://api.github.com"
    github_token: Optional[str] = None
    mojang_manifest_url: str = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
    fabric_meta_base_url: str = "https://meta.fabricmc.net"
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    latest_game_version_ceiling: Optional[str] = None
    user_agent: str = "modmanager/0.4 (+https://github.com/)"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cache_mode"] = self.cache_mode.value
        return data


def get_settings_dir() -> Path:
    """Get the user settings directory."""
    return Path.home() / ".modmanager"


def get_config_file() -> Path:
    """Get the path to the configuration file."""
    return get_settings_dir() / "config.json"


def _coerce(name: str, value: Any) -> Any:
    """Convert raw config/env values to the type of the Settings field."""
    if name == "cache_mode" and not isinstance(value, CacheMode):
        return CacheMode(str(value))
    if name in ("request_timeout", "retry_delay"):
        return float(value)
    if name == "max_retries":
        return int(value)
    if value == "":
        return None
    return value


def load_settings(config_file: Optional[Path] = None,
                  environ: Optional[Mapping[str, str]] = None,
                  dotenv: bool = True) -> Settings:
    """
    Load settings from the configuration file and the environment.

    Later sources win: defaults, then the JSON config file, then the
    environment (after a .env file in the working directory is loaded).

    Args:
        config_file: JSON config path (defaults to ~/.modmanager/config.json)
        environ: Environment mapping (defaults to os.environ)
        dotenv: Whether to load a .env file first

    Returns:
        Settings instance
    """
    if dotenv and environ is None:
        load_dotenv(find_dotenv(usecwd=True))
    env = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    config_file = config_file or get_config_file()
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                values.update(loaded)
        except (OSError, ValueError) as e:
            logger.warning("Could not load settings from %s: %s", config_file, e)

    for var, name in ENV_VARS.items():
        if env.get(var):
            values[name] = env[var]

    known = Settings.__dataclass_fields__
    unknown = sorted(set(values) - set(known))
    if unknown:
        logger.debug("Ignoring unknown settings: %s", ", ".join(unknown))

    return Settings(**{k: _coerce(k, v) for k, v in values.items() if k in known})


def save_settings(settings: Settings, config_file: Optional[Path] = None) -> Path:
    """
    Save settings to the configuration file. Secrets are not written.

    Args:
        settings: Settings to save
        config_file: Target path (defaults to ~/.modmanager/config.json)

    Returns:
        The path written
    """
    config_file = config_file or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = settings.to_dict()
    for secret in ("curseforge_api_key", "github_token"):
        data.pop(secret, None)
    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    return config_file
