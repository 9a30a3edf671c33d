"""Settings library for sync, ledger and authentication configuration.

Provides:
    - Schema validation and enforcement for the settings.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Loading and validating the Google OAuth client_secret.json used by the Drive store.
    - Application paths for the local database and stored credentials.
"""

import copy
import json
import logging
import pathlib
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..core.models import CATEGORY_IDS
from ..status import status

app_name: str = 'Seihin'

REMOTE_PROVIDERS: List[str] = ['none', 'folder', 'drive']

SETTINGS_SCHEMA: Dict[str, Any] = {
    'remote': {
        'type': dict,
        'required': True,
        'item_schema': {
            'provider': {'type': str, 'required': True, 'allowed_values': REMOTE_PROVIDERS},
            'path': {'type': str, 'required': True},
        }
    },
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'debounce_seconds': {'type': int, 'required': True, 'min': 0},
            'sync_on_startup': {'type': bool, 'required': True},
        }
    },
    'ledger': {
        'type': dict,
        'required': True,
        'item_schema': {
            'default_category': {'type': str, 'required': True, 'allowed_values': CATEGORY_IDS},
            'locale': {'type': str, 'required': True},
        }
    },
}

DEFAULT_SETTINGS: Dict[str, Any] = {
    'remote': {
        'provider': 'none',
        'path': 'data.json',
    },
    'sync': {
        'debounce_seconds': 30,
        'sync_on_startup': True,
    },
    'ledger': {
        'default_category': 'food',
        'locale': 'ja_JP',
    },
}


def _validate_section(section_name: str, section_data: Any, item_schema: Dict[str, Any]) -> None:
    """Validate one settings section against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section_data: The section dict to check.
        item_schema: Mapping of field names to their type, required and value constraints.

    Raises:
        TypeError: If the section is not a dict or a field has the wrong type.
        ValueError: If a required field is missing, unknown or outside its allowed values.
    """
    logging.debug(f'Validating "{section_name}" section.')
    if not isinstance(section_data, dict):
        msg: str = f'"{section_name}" must be a dict.'
        logging.error(msg)
        raise TypeError(msg)

    unknown = set(section_data.keys()) - set(item_schema.keys())
    if unknown:
        msg = f'"{section_name}" contains unknown keys: {sorted(unknown)}.'
        logging.error(msg)
        raise ValueError(msg)

    for field, specs in item_schema.items():
        if field not in section_data:
            if specs['required']:
                msg = f'"{section_name}" is missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section_data[field]
        # bool is a subclass of int, but a flag is never a valid number here
        if specs['type'] is int and isinstance(value, bool):
            msg = f'"{section_name}.{field}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, specs['type']):
            msg = f'"{section_name}.{field}" must be {specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)

        allowed = specs.get('allowed_values')
        if allowed is not None and value not in allowed:
            msg = f'"{section_name}.{field}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        minimum = specs.get('min')
        if minimum is not None and value < minimum:
            msg = f'"{section_name}.{field}" must be >= {minimum}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure default directories and settings exist."""

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.settings_path: pathlib.Path = self.config_dir / 'settings.json'
        self.client_secret_path: pathlib.Path = self.config_dir / 'client_secret.json'
        self.creds_path: pathlib.Path = self.auth_dir / 'creds.json'
        self.db_path: pathlib.Path = self.db_dir / 'seihin.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Create missing config, auth and db directories and write default settings if absent."""
        for path in (self.config_dir, self.auth_dir, self.db_dir):
            if not path.exists():
                logging.debug(f'Creating directory: {path}')
                path.mkdir(parents=True, exist_ok=True)

        if not self.settings_path.exists():
            logging.debug(f'Writing default settings to {self.settings_path}')
            self.revert_settings_to_default()

    def revert_settings_to_default(self) -> None:
        """Overwrite settings.json with the built-in defaults."""
        logging.debug(f'Reverting settings to defaults: {self.settings_path}')
        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(DEFAULT_SETTINGS, f, indent=4, ensure_ascii=False)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save settings.json sections and to load
    the Google client_secret.json.
    """
    required_client_secret_keys: List[str] = ['client_id', 'project_id', 'client_secret', 'auth_uri', 'token_uri']

    def __init__(self, settings_path: Optional[str] = None, client_secret_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load settings and client_secret data.

        Args:
            settings_path: Optional path to a custom settings.json file.
            client_secret_path: Optional path to a custom client_secret.json file.
        """
        super().__init__()

        self.settings_path: pathlib.Path = pathlib.Path(settings_path) if settings_path else self.settings_path
        self.client_secret_path: pathlib.Path = (
            pathlib.Path(client_secret_path)
            if client_secret_path
            else self.client_secret_path
        )

        self.settings_data: Dict[str, Any] = {}
        for k in SETTINGS_SCHEMA.keys():
            self.settings_data[k] = {}

        self.client_secret_data: Dict[str, Any] = {}

        self.init_data()

    def init_data(self) -> None:
        """Reload settings and, when present, client_secret data."""
        self.load_settings()
        if self.client_secret_path.exists():
            self.load_client_secret()

    def load_settings(self) -> Dict[str, Any]:
        """Load settings.json from disk and validate against schema.

        Keys introduced by newer versions are filled in from the defaults before validation.

        Returns:
            The loaded settings dictionary.

        Raises:
            status.SettingsNotFoundException: If settings.json is missing.
            status.SettingsInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading settings from "{self.settings_path}"')
        if not self.settings_path.exists():
            raise status.SettingsNotFoundException(str(self.settings_path))

        try:
            with self.settings_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            if not isinstance(data, dict):
                raise TypeError('settings.json must contain an object.')

            for section, defaults in DEFAULT_SETTINGS.items():
                current = data.setdefault(section, {})
                if isinstance(current, dict):
                    for key, value in defaults.items():
                        current.setdefault(key, copy.deepcopy(value))

            self.validate_settings(data)
            self.settings_data = data
            return self.settings_data
        except (ValueError, TypeError) as ex:
            raise status.SettingsInvalidException(str(ex)) from ex

    def validate_settings(self, data: Dict[str, Any] = None) -> None:
        """Validate settings data against SETTINGS_SCHEMA.

        Args:
            data (dict, optional): Settings to validate. Defaults to self.settings_data.

        Raises:
            ValueError: If a required section is missing or a field value is not allowed.
            TypeError: If a section or field has the wrong type.
        """
        if data is None:
            data = self.settings_data

        logging.debug('Validating settings against schema.')
        for section, specs in SETTINGS_SCHEMA.items():
            if section not in data:
                if specs.get('required'):
                    msg: str = f'Missing required section: {section}'
                    logging.error(msg)
                    raise ValueError(msg)
                continue
            _validate_section(section, data[section], specs['item_schema'])

        logging.debug('Settings are valid.')

    def load_client_secret(self) -> Dict[str, Any]:
        """Load client_secret.json from disk and validate required OAuth fields.

        Returns:
            The loaded client secret data dictionary.

        Raises:
            status.ClientSecretNotFoundException: If client_secret.json is missing.
            status.ClientSecretInvalidException: If JSON parsing or required fields are missing.
        """
        logging.debug(f'Loading client_secret from "{self.client_secret_path}"')
        if not self.client_secret_path.exists():
            raise status.ClientSecretNotFoundException(str(self.client_secret_path))
        try:
            with self.client_secret_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except (ValueError, json.JSONDecodeError) as ex:
            raise status.ClientSecretInvalidException(str(ex)) from ex

        self.validate_client_secret(data)
        self.client_secret_data = data
        return self.client_secret_data

    def validate_client_secret(self, data=None) -> str:
        """Validate that the client configuration contains required OAuth credentials.

        Args:
            data (dict, optional): Client secret data to validate. Defaults to loaded client_secret_data.

        Returns:
            str: Section key used ('installed' or 'web').

        Raises:
            status.ClientSecretInvalidException: If no valid client_secret section exists or required fields are missing.
        """
        if data is None:
            data = self.client_secret_data

        key = next((k for k in ('installed', 'web') if k in data), None)
        if not key:
            raise status.ClientSecretInvalidException('Missing "installed" or "web" section in client_secret.')

        logging.debug(f'Found "{key}" section in client_secret.')

        config_section: Dict[str, Any] = data[key]
        missing: List[str] = [k for k in self.required_client_secret_keys if k not in config_section]
        if missing:
            raise status.ClientSecretInvalidException(
                f'Missing required fields in the \'{key}\' section: {missing}.'
            )
        return key

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a settings section or of the client_secret data.

        Args:
            section_name: Section name ('client_secret' or key from the settings schema).

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is unknown.
        """
        if section_name == 'client_secret':
            return self.client_secret_data.copy()

        return self.settings_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace and persist a settings section.

        The previous section is restored if the new data fails validation.

        Args:
            section_name: Section to update ('client_secret' or settings key).
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name is unrecognized or new_data is invalid.
            TypeError: If new_data has invalid types.
        """
        from ..core.signals import signals

        if section_name == 'client_secret':
            logging.debug('Setting entire client_secret data.')
            self.validate_client_secret(new_data)
            self.client_secret_data = new_data
            self.save_section('client_secret')
            signals.configSectionChanged.emit(section_name)
            return

        if section_name not in self.settings_data:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.settings_data[section_name].copy()

        self.settings_data[section_name] = new_data
        try:
            self.validate_settings()
        except (ValueError, TypeError) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.settings_data[section_name] = current_section_data
            raise

        self.save_section(section_name)
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Restore a settings section to its built-in default.

        Args:
            section_name: Settings key to revert.

        Raises:
            ValueError: If section_name has no default.
        """
        if section_name not in DEFAULT_SETTINGS:
            msg = f'No default for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)
        self.set_section(section_name, copy.deepcopy(DEFAULT_SETTINGS[section_name]))

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to its corresponding file.

        Args:
            section_name: The section to save ('client_secret' or settings key).

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name == 'client_secret':
            logging.debug(f'Saving client_secret to "{self.client_secret_path}"')
            self.validate_client_secret(self.client_secret_data)
            with self.client_secret_path.open('w', encoding='utf-8') as f:
                json.dump(self.client_secret_data, f, indent=4, ensure_ascii=False)
            return

        if section_name not in self.settings_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        original_data: Dict[str, Any] = {}
        if self.settings_path.exists():
            with self.settings_path.open('r', encoding='utf-8') as f:
                original_data = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.settings_data[section_name]

        with self.settings_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
