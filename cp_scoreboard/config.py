"""
Configuration management for the contest scoreboard.
Supports both JSON file configuration and environment variable overrides.
"""

import copy
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .models import ContestConfig, default_problems
from .sequencer import Timing

logger = logging.getLogger(__name__)


def parse_instant(value: str) -> datetime:
    """
    Parse an ISO 8601 instant such as ``2026-02-06T18:00:00+05:00``.

    Naive values are taken as UTC.

    @param value: ISO 8601 string (a trailing ``Z`` is accepted)
    @return: Timezone-aware datetime
    @raise ValueError: If the value is not ISO 8601
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ScoreboardConfig:
    """Configuration management for the contest scoreboard."""

    DEFAULT_CONFIG = {
        "title": "Live Contest Scoreboard",
        "contest": {
            "start_time": None,  # ISO 8601; unset means "starts when the process starts"
            "duration_minutes": 300,
            "problem_count": 9,
        },
        "relay": {
            "key": None,
        },
        "dashboard": {
            "teams_per_page": 20,
            "sound_enabled": True,
            "relay_url": None,
        },
        "timing": {
            "emergency_sound": 3000,
            "emergency_fade": 400,
            "emergency_total": 3400,
            "emergency_update_delay": 1200,
            "glitch_sound": 2600,
            "glitch_fade": 400,
            "glitch_total": 3000,
            "glitch_update_delay": 150,
            "watchdog": 6000,
        },
    }

    ENV_MAPPINGS = {
        "SCOREBOARD_TITLE": ("title",),
        "CONTEST_START": ("contest", "start_time"),
        "CONTEST_DURATION": ("contest", "duration_minutes"),
        "PROBLEM_COUNT": ("contest", "problem_count"),
        "KEY": ("relay", "key"),
        "TEAMS_PER_PAGE": ("dashboard", "teams_per_page"),
        "SOUND_ENABLED": ("dashboard", "sound_enabled"),
        "RELAY_URL": ("dashboard", "relay_url"),
    }

    def __init__(
        self,
        config_path: str = "scoreboard_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        if not self.config_path.exists():
            self._create_default_config()
            return config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded_config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Error loading config from %s: %s", self.config_path, e)
            logger.error("Using default configuration")
            return config

        if isinstance(loaded_config, dict):
            self._deep_merge(config, loaded_config)
        else:
            logger.error("Config file %s is not a JSON object, using defaults", self.config_path)
        return config

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        KEY, CONTEST_START and SCOREBOARD_TITLE are kept as strings; the
        others are converted to bool or int where they look like one.
        """
        for env_var, config_path in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            if env_var in ("KEY", "CONTEST_START", "SCOREBOARD_TITLE", "RELAY_URL"):
                self._set_nested_config(config_path, env_value)
            else:
                self._set_nested_config(config_path, self._convert_env_value(env_value))

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("contest", "start_time"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            logger.error("Could not create config file %s: %s", self.config_path, e)

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Checks configuration values for validity and sets defaults for invalid values.
        """
        defaults = self.DEFAULT_CONFIG

        for section in ("contest", "relay", "dashboard"):
            if not isinstance(self.config.get(section), dict):
                logger.warning("Invalid %s section, using defaults", section)
                self.config[section] = copy.deepcopy(defaults[section])

        start = self.config["contest"].get("start_time")
        if start is not None:
            try:
                parse_instant(str(start))
            except ValueError:
                logger.warning("Invalid contest start_time %r, starting at launch", start)
                self.config["contest"]["start_time"] = None

        for section, key in (
            ("contest", "duration_minutes"),
            ("contest", "problem_count"),
            ("dashboard", "teams_per_page"),
        ):
            value = self.config[section].get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                logger.warning("Invalid %s.%s %r, using %s", section, key, value, defaults[section][key])
                self.config[section][key] = defaults[section][key]

        if not isinstance(self.config["dashboard"].get("sound_enabled"), bool):
            logger.warning("Invalid dashboard.sound_enabled, using True")
            self.config["dashboard"]["sound_enabled"] = True

        timing = self.config.get("timing")
        if not isinstance(timing, dict):
            self.config["timing"] = copy.deepcopy(defaults["timing"])
            return
        for key, default in defaults["timing"].items():
            value = timing.get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                logger.warning("Invalid timing.%s %r, using %s", key, value, default)
                timing[key] = default

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value using dot notation.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def timing(self) -> Timing:
        return Timing.from_dict(self.get("timing"))

    def contest_config(self, now: Optional[datetime] = None) -> ContestConfig:
        """
        Resolve the contest schedule.

        @param now: Instant used as the start when none is configured
        @return: ContestConfig with aware start and end instants
        """
        start = self.get("contest", "start_time")
        if start:
            start_time = parse_instant(str(start))
        else:
            start_time = now or datetime.now(timezone.utc)

        return ContestConfig.from_start_and_duration(
            title=self.get("title"),
            start_time=start_time,
            duration_minutes=self.get("contest", "duration_minutes"),
            problems=default_problems(self.get("contest", "problem_count")),
        )
