import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import tuizer.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges the default settings with JSON/env overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment / `.env` file (read by `settings.py`).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: Location of the overrides file. Defaults to `OVERRIDES_JSON_PATH`.
        """
        self._load_defaults()
        self.OVERRIDES_JSON_PATH: Path = Path(overrides_path or default_settings.OVERRIDES_JSON_PATH)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the overrides file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        log.info(f"Loading runtime configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Override setting '{key}' is unknown or not modifiable. Ignoring.")
                continue
            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    def get(self, key: str, default: Any = None) -> Any:
        """Dictionary-like access to a setting."""
        return getattr(self, key, default)

    def modifiable(self) -> Dict[str, Any]:
        """Returns the current value of every runtime-modifiable setting."""
        return {key: getattr(self, key) for key in sorted(self.MODIFIABLE_SETTINGS)}

    def update_setting(self, key: str, value: Any) -> Tuple[bool, str]:
        """
        Updates a modifiable setting, coercing the value to the type of the current one,
        and persists it to the overrides file.

        :return: A (success, message) tuple suitable for display.
        """
        if key not in self.MODIFIABLE_SETTINGS:
            message = f"Setting '{key}' is not modifiable."
            log.warning(f"Rejected config update: {message}")
            return False, message

        original_value = getattr(self, key, None)
        try:
            if isinstance(original_value, bool):
                new_value = str(value).lower() in ('true', '1', 't', 'yes', 'y')
            elif original_value is not None:
                new_value = type(original_value)(value)
            else:
                new_value = value
        except (ValueError, TypeError) as e:
            message = f"Could not convert value '{value}' for key '{key}'. Error: {e}"
            log.error(f"Config update failed: {message}")
            return False, message

        setattr(self, key, new_value)
        self.save_overrides(self.modifiable())
        message = f"Setting '{key}' updated to '{new_value}'. New commands pick it up immediately."
        log.info(message)
        return True, message

    def save_overrides(self, overrides_to_save: Dict[str, Any]) -> None:
        """
        Saves the provided settings to the overrides file.
        Keys that are not in `MODIFIABLE_SETTINGS` are filtered out.
        """
        filtered_overrides = {
            key: value
            for key, value in overrides_to_save.items()
            if key in self.MODIFIABLE_SETTINGS
        }

        if not filtered_overrides:
            log.warning("No modifiable settings provided to save.")
            return

        try:
            self.OVERRIDES_JSON_PATH.parent.mkdir(parents=True, exist_ok=True)
            with self.OVERRIDES_JSON_PATH.open('w') as f:
                json.dump(filtered_overrides, f, indent=4)
            log.info(f"Configuration overrides saved to {self.OVERRIDES_JSON_PATH}")
        except IOError as e:
            log.error(f"Failed to write to overrides file '{self.OVERRIDES_JSON_PATH}': {e}")

# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
