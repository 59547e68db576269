"""
Engine Settings

Settings are kept in a JSON file with camelCase keys; a few values can be
overridden from the environment.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import SettingsError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "data/settings.json"
DEFAULT_STOPS_FILE = Path(__file__).parent / "data" / "plant_stops.json"

ENV_ENDPOINT = "SHIFT_ROTATION_ENDPOINT"
ENV_CACHE_FILE = "SHIFT_ROTATION_CACHE_FILE"
ENV_LOG_LEVEL = "SHIFT_ROTATION_LOG_LEVEL"


@dataclass
class EngineSettings:
    reference_date: Optional[date] = None  # None uses the pattern's own reference date
    pattern_file: Optional[str] = None
    template_count: int = 3
    remote_endpoint: Optional[str] = None
    request_timeout: float = 10.0
    strict_parsing: bool = False
    cache_file: str = "data/template_cache.json"
    max_cache_age_days: Optional[int] = None
    show_stops: bool = True
    stops_file: Optional[str] = None  # None uses the bundled plant calendar
    log_level: str = "INFO"

    @property
    def max_cache_age(self) -> Optional[timedelta]:
        if self.max_cache_age_days is None:
            return None
        return timedelta(days=self.max_cache_age_days)

    @property
    def resolved_stops_file(self) -> Path:
        return Path(self.stops_file) if self.stops_file else DEFAULT_STOPS_FILE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "referenceDate": self.reference_date.isoformat() if self.reference_date else None,
            "patternFile": self.pattern_file,
            "templateCount": self.template_count,
            "remoteEndpoint": self.remote_endpoint,
            "requestTimeout": self.request_timeout,
            "strictParsing": self.strict_parsing,
            "cacheFile": self.cache_file,
            "maxCacheAgeDays": self.max_cache_age_days,
            "showStops": self.show_stops,
            "stopsFile": self.stops_file,
            "logLevel": self.log_level
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineSettings":
        defaults = cls()
        try:
            reference = data.get("referenceDate")
            max_age = data.get("maxCacheAgeDays")
            return cls(
                reference_date=date.fromisoformat(reference) if reference else None,
                pattern_file=data.get("patternFile"),
                template_count=int(data.get("templateCount", defaults.template_count)),
                remote_endpoint=data.get("remoteEndpoint") or None,
                request_timeout=float(data.get("requestTimeout", defaults.request_timeout)),
                strict_parsing=bool(data.get("strictParsing", defaults.strict_parsing)),
                cache_file=data.get("cacheFile", defaults.cache_file),
                max_cache_age_days=int(max_age) if max_age is not None else None,
                show_stops=bool(data.get("showStops", defaults.show_stops)),
                stops_file=data.get("stopsFile"),
                log_level=str(data.get("logLevel", defaults.log_level)).upper()
            )
        except (TypeError, ValueError) as e:
            raise SettingsError(f"Invalid settings value: {e}")


def apply_env_overrides(settings: EngineSettings,
                        environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    environ = os.environ if environ is None else environ
    if environ.get(ENV_ENDPOINT):
        settings.remote_endpoint = environ[ENV_ENDPOINT]
    if environ.get(ENV_CACHE_FILE):
        settings.cache_file = environ[ENV_CACHE_FILE]
    if environ.get(ENV_LOG_LEVEL):
        settings.log_level = environ[ENV_LOG_LEVEL].upper()
    return settings


def load_settings(path: Union[str, Path, None] = None,
                  environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """Load settings from JSON, falling back to defaults when the file is missing"""
    settings_file = Path(path or DEFAULT_SETTINGS_FILE)
    if settings_file.exists():
        try:
            with open(settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise SettingsError(f"Settings file {settings_file} is corrupted: {e}")
        if not isinstance(data, dict):
            raise SettingsError(f"Settings file {settings_file} must contain a JSON object")
        settings = EngineSettings.from_dict(data)
        logger.info(f"Loaded settings from {settings_file}")
    else:
        logger.info(f"No settings file at {settings_file}, using defaults")
        settings = EngineSettings()
    return apply_env_overrides(settings, environ)


def save_settings(settings: EngineSettings, path: Union[str, Path]) -> None:
    """Write settings atomically through a temporary file"""
    settings_file = Path(path)
    temp_file = settings_file.with_suffix(".tmp")
    try:
        settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        temp_file.replace(settings_file)
    except OSError as e:
        logger.error(f"Error saving settings to {settings_file}: {e}", exc_info=True)
        raise SettingsError(f"Failed to save settings: {e}")
    finally:
        if temp_file.exists():
            temp_file.unlink()
