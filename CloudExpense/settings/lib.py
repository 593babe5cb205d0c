"""Settings library for the application configuration.

Provides:
    - Schema validation and enforcement for the app.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Config paths for the app config and the persisted identity session.
"""

import json
import logging
import os
import pathlib
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..data.currency import Currency
from ..status import status

app_name: str = 'CloudExpense'

CONFIG_DIR_ENV_KEY: str = 'CLOUDEXPENSE_CONFIG_DIR'

BACKENDS: List[str] = ['firestore', 'memory']

PREFERENCE_KEYS: List[str] = [
    'backend',
    'currency',
    'locale',
    'poll_interval',
]

NUMBER = (int, float)
OPTIONAL_NUMBER = (int, float, type(None))

APP_SCHEMA: Dict[str, Any] = {
    'firebase': {
        'type': dict,
        'required': True,
        'item_schema': {
            'api_key': {'type': str, 'required': True},
            'project_id': {'type': str, 'required': True},
            'database': {'type': str, 'required': True},
        }
    },
    'preferences': {
        'type': dict,
        'required': True,
        'item_schema': {
            'backend': {'type': str, 'required': True, 'allowed_values': BACKENDS},
            'currency': {'type': str, 'required': True, 'allowed_values': Currency.codes()},
            'locale': {'type': str, 'required': True},
            'poll_interval': {'type': NUMBER, 'required': True, 'format': 'positive'},
        }
    },
    'location': {
        'type': dict,
        'required': True,
        'item_schema': {
            'enabled': {'type': bool, 'required': True},
            'latitude': {'type': OPTIONAL_NUMBER, 'required': True, 'format': 'latitude'},
            'longitude': {'type': OPTIONAL_NUMBER, 'required': True, 'format': 'longitude'},
        }
    },
}


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a single app.json section against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        item_schema: Dict describing required fields, types, allowed values and formats.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a required field is missing, or a value is not allowed or badly formatted.
    """
    logging.debug(f'Validating "{section_name}" section.')
    for field, field_specs in item_schema.items():
        if field_specs['required'] and field not in section:
            msg: str = f'Section "{section_name}" missing "{field}".'
            logging.error(msg)
            raise ValueError(msg)
        if field not in section:
            continue

        value = section[field]
        # bool is an int subclass, only accept it where bool is expected
        if isinstance(value, bool) and field_specs['type'] is not bool:
            msg = f'Field "{section_name}.{field}" must be {field_specs["type"]}, got bool.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, field_specs['type']):
            msg = f'Field "{section_name}.{field}" must be {field_specs["type"]}, got {type(value)}.'
            logging.error(msg)
            raise TypeError(msg)

        allowed = field_specs.get('allowed_values')
        if allowed is not None and value not in allowed:
            msg = f'Field "{section_name}.{field}" must be one of {allowed}, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        fmt = field_specs.get('format')
        if fmt == 'positive' and value <= 0:
            msg = f'Field "{section_name}.{field}" must be greater than zero, got {value}.'
            logging.error(msg)
            raise ValueError(msg)
        if fmt == 'latitude' and value is not None and not -90.0 <= value <= 90.0:
            msg = f'Field "{section_name}.{field}" is not a valid latitude: {value}.'
            logging.error(msg)
            raise ValueError(msg)
        if fmt == 'longitude' and value is not None and not -180.0 <= value <= 180.0:
            msg = f'Field "{section_name}.{field}" is not a valid longitude: {value}.'
            logging.error(msg)
            raise ValueError(msg)


def _validate_location(location: Dict[str, Any]) -> None:
    """Coordinates must be set together.

    Raises:
        ValueError: If only one of latitude and longitude is set.
    """
    if (location.get('latitude') is None) != (location.get('longitude') is None):
        msg = 'Location "latitude" and "longitude" must both be set or both be null.'
        logging.error(msg)
        raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default config exists.

    The app data directory is resolved via Qt's standard paths unless the
    ``CLOUDEXPENSE_CONFIG_DIR`` environment variable points elsewhere.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')

        override = os.environ.get(CONFIG_DIR_ENV_KEY)
        if override:
            app_data_dir = pathlib.Path(override)
        else:
            p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
            app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.app_template: pathlib.Path = self.template_dir / 'app.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'

        self.app_path: pathlib.Path = self.config_dir / 'app.json'
        self.creds_path: pathlib.Path = self.auth_dir / 'creds.json'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists, create config directories and copy the default config.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.app_template.exists():
            msg = f'Missing app template: {self.app_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        if not self.auth_dir.exists():
            logging.debug(f'Creating auth directory: {self.auth_dir}')
            self.auth_dir.mkdir(parents=True, exist_ok=True)

        if not self.app_path.exists():
            logging.debug(f'Copying default app config from template to {self.app_path}')
            shutil.copy(self.app_template, self.app_path)

    def revert_app_to_template(self) -> None:
        """Restore app.json from the default template file."""
        logging.debug(f'Reverting app config to template: {self.app_template}')
        shutil.copy(self.app_template, self.app_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save app.json sections.
    """

    def __init__(self, app_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the app config.

        Args:
            app_path: Optional path to a custom app.json file.
        """
        super().__init__()

        self.app_path: pathlib.Path = pathlib.Path(app_path) if app_path else self.app_path

        self.app_data: Dict[str, Any] = {}
        for k in APP_SCHEMA.keys():
            self.app_data[k] = {}

        self.init_data()

    def __getitem__(self, key: str) -> Any:
        """Retrieve a preference value using dictionary-style access.

        Raises:
            KeyError: If key is not in PREFERENCE_KEYS.
        """
        if key not in PREFERENCE_KEYS:
            raise KeyError(f'Invalid preference key: {key}, must be one of {PREFERENCE_KEYS}')
        return self.app_data['preferences'].get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        """Assign a preference value using dictionary-style access and persist it.

        Raises:
            KeyError: If key is not in PREFERENCE_KEYS.
            ValueError: If the value cannot be converted or fails validation.
        """
        if key not in PREFERENCE_KEYS:
            raise KeyError(f'Invalid preference key: {key}, must be one of {PREFERENCE_KEYS}')

        if key == 'poll_interval' and not isinstance(value, float):
            logging.warning(f'Preference "{key}" is not a float, got {type(value)}.')
            try:
                value = float(value)
            except ValueError:
                logging.error(f'Cannot convert "{value}" to float.')
                raise

        data = self.get_section('preferences')
        data[key] = value
        self.set_section('preferences', data)

    def init_data(self) -> None:
        """Reload the app config, emitting a change signal per section."""
        self.load_app()

        from ..signals import signals
        for section in APP_SCHEMA.keys():
            signals.configSectionChanged.emit(section)

    def load_app(self) -> Dict[str, Any]:
        """Load app.json from disk and validate against schema.

        Returns:
            The loaded config data dictionary.

        Raises:
            status.ConfigNotFoundException: If app.json is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading app config from "{self.app_path}"')
        if not self.app_path.exists():
            raise status.ConfigNotFoundException

        try:
            with self.app_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_app_data(data)
        except (ValueError, TypeError) as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        self.app_data = data
        return self.app_data

    def validate_app_data(self, data: Dict[str, Any] = None) -> None:
        """Validate config data against APP_SCHEMA.

        Args:
            data (dict, optional): Data to validate. Defaults to self.app_data.

        Raises:
            TypeError: If a section or field has the wrong type.
            ValueError: If a section or field is missing or invalid.
        """
        if data is None:
            data = self.app_data
        if not isinstance(data, dict) or not data:
            raise ValueError('App config is empty.')

        logging.debug('Validating app config against schema.')
        for field, specs in APP_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise ValueError(f'Missing required section: {field}')
            if not isinstance(data[field], specs['type']):
                raise TypeError(f'Section "{field}" must be {specs["type"]}, got {type(data[field])}.')
            _validate_section(field, data[field], specs['item_schema'])

        _validate_location(data['location'])
        logging.debug('App config is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a config section.

        Raises:
            KeyError: If section_name is not a known section.
        """
        return self.app_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a config section.

        The previous data is restored when validation fails.

        Raises:
            ValueError: If section_name is unknown or the data is invalid.
            TypeError: If the data has the wrong types.
        """
        if section_name not in APP_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.app_data.get(section_name, {}).copy()

        self.app_data[section_name] = new_data
        try:
            self.validate_app_data()
        except (ValueError, TypeError) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.app_data[section_name] = current_section_data
            raise

        self.save_section(section_name)

        from ..signals import signals
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a config section to its template default and save it.

        Raises:
            ValueError: If section_name is unknown.
        """
        if section_name not in APP_SCHEMA:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.app_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        self.app_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        from ..signals import signals
        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single config section to app.json.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in APP_SCHEMA:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.app_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.app_data[section_name]

        with self.app_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)

    def save_all(self) -> None:
        """Validate and write the whole config, rolling back the in-memory data on failure."""
        logging.debug('Saving all settings.')
        original_app_data: Dict[str, Any] = dict(self.app_data)
        try:
            self.validate_app_data()
            with self.app_path.open('w', encoding='utf-8') as f:
                json.dump(self.app_data, f, indent=4, ensure_ascii=False)
        except (ValueError, TypeError) as e:
            logging.error(f'Failed to save app config: {e}. Rolling back.')
            self.app_data = original_app_data
            raise


settings: SettingsAPI = SettingsAPI()
