"""Harness preferences with config file persistence."""

from __future__ import annotations

import configparser
import logging
import os
from typing import Any

from flask_babel import _

from dispatchlab.lib.get_platform import get_data_directory

SECTION = "USERPREFERENCES"


class PreferenceManager:
    """Single source of truth for user-configurable harness settings.

    Stores settings in config.ini under the [USERPREFERENCES] section and
    mirrors them as attributes on an optional target object.
    """

    DEFAULTS = {
        "record_trace": True,
        "max_trace_steps": 500,
        "expand_on_read": False,
    }

    def __init__(self, config_file_path: str = "config.ini", target: object | None = None) -> None:
        """Initialize with config path and optional target object to sync.

        Args:
            config_file_path: Path to config.ini (relative paths go in data directory)
            target: Optional object to sync attributes on when preferences change
        """
        self._config_obj = configparser.ConfigParser()
        self._target = target

        if not os.path.isabs(config_file_path):
            self.config_file_path = os.path.join(get_data_directory(), config_file_path)
        else:
            self.config_file_path = config_file_path

        logging.debug(f"Using config file: {self.config_file_path}")

    def get(self, preference: str, default_value: Any = None) -> Any:
        """Get a preference value, auto-converting to bool/int/float."""
        # Silently ignores missing files
        self._config_obj.read(self.config_file_path, encoding="utf-8")

        if not self._config_obj.has_section(SECTION):
            return default_value

        try:
            pref = self._config_obj.get(SECTION, preference)
            return self._convert_value(pref)
        except (configparser.NoOptionError, ValueError):
            return default_value

    def get_or_default(self, preference: str) -> Any:
        """Get a preference value, falling back to DEFAULTS if not set or unusable."""
        default = self.DEFAULTS.get(preference)
        val = self.get(preference, default)
        if preference not in self.DEFAULTS:
            return val
        try:
            return self._coerce(preference, val)
        except ValueError:
            logging.warning(f"Ignoring invalid stored preference << {preference} >>: {val!r}")
            return default

    def get_all(self) -> dict[str, Any]:
        return {pref: self.get_or_default(pref) for pref in self.DEFAULTS}

    def set(self, preference: str, val: Any) -> tuple[bool, str]:
        """Update a preference, persist to config, and sync target object.

        Only names in DEFAULTS are accepted, and the value must convert to the
        type of its default. Rejected changes are not persisted.

        Returns (success, message) tuple.
        """
        logging.debug(f"Changing user preference << {preference} >> to {val}")
        if preference not in self.DEFAULTS:
            logging.warning(f"Rejected unknown preference << {preference} >>")
            return (False, _("Unknown preference: %(name)s", name=preference))
        try:
            val = self._coerce(preference, val)
        except ValueError as e:
            logging.warning(f"Rejected value for preference << {preference} >>: {e}")
            return (False, _("Invalid value for %(name)s: %(error)s", name=preference, error=e))

        try:
            self._config_obj.read(self.config_file_path, encoding="utf-8")

            if SECTION not in self._config_obj:
                self._config_obj.add_section(SECTION)

            self._config_obj[SECTION][preference] = str(val)

            with open(self.config_file_path, "w", encoding="utf-8") as conf:
                self._config_obj.write(conf)

            if self._target is not None:
                setattr(self._target, preference, val)

            return (True, _("Your preferences were changed successfully"))
        except (OSError, configparser.Error) as e:
            logging.error(f"Failed to change user preference << {preference} >>: {e}")
            return (False, _("Something went wrong! Your preferences were not changed"))

    def clear(self) -> tuple[bool, str]:
        """Remove all preferences by deleting the config file. Returns (success, message)."""
        try:
            if os.path.exists(self.config_file_path):
                os.remove(self.config_file_path)
                logging.info(f"Cleared preferences: deleted {self.config_file_path}")
            # Clear cached config object to prevent stale values from persisting
            self._config_obj.clear()
            return (True, _("Your preferences were cleared successfully"))
        except OSError as e:
            logging.error(f"Failed to clear preferences: {e}")
            return (False, _("Something went wrong! Your preferences were not cleared"))

    def _convert_value(self, val: Any) -> Any:
        """Convert a string to bool/int/float if applicable, otherwise return as-is."""
        if not isinstance(val, str):
            return val

        val_lower = val.lower()
        if val_lower in ("true", "yes", "on"):
            return True
        if val_lower in ("false", "no", "off"):
            return False

        stripped = val.lstrip("-")
        if stripped.isdigit():
            return int(val)
        if stripped.replace(".", "", 1).isdigit():
            return float(val)

        return val

    def _coerce(self, preference: str, val: Any) -> Any:
        """Convert ``val`` to the type of the preference's default.

        Raises:
            ValueError: If the value does not fit. Counts must be non-negative integers.
        """
        default = self.DEFAULTS[preference]
        converted = self._convert_value(val)
        if isinstance(default, bool):
            if not isinstance(converted, bool):
                raise ValueError(f"expected true or false, got {val!r}")
        elif isinstance(default, int):
            if isinstance(converted, bool) or not isinstance(converted, int) or converted < 0:
                raise ValueError(f"expected a non-negative integer, got {val!r}")
        return converted

    def apply_all(self, **cli_overrides: Any) -> None:
        """Hydrate target object with all preferences from config/defaults.

        Priority: CLI argument (if provided) > config file > DEFAULTS.
        CLI arguments that are provided are persisted to the config file.
        """
        if self._target is None:
            return

        for pref in self.DEFAULTS:
            cli_value = cli_overrides.get(pref)
            if cli_value is not None:
                setattr(self._target, pref, cli_value)
                self.set(pref, cli_value)
            else:
                setattr(self._target, pref, self.get_or_default(pref))

    def reset_all(self) -> tuple[bool, str]:
        """Clear config file and reset target to defaults."""
        success, message = self.clear()
        if success and self._target is not None:
            for pref, default in self.DEFAULTS.items():
                setattr(self._target, pref, default)
        return success, message
