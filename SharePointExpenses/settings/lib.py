"""Settings library for the SharePoint connection configuration.

Provides:
    - Schema validation and enforcement for the sharepoint.json structure.
    - Loading, saving, reverting, and reloading configuration sections.
    - Environment variable overrides for the values a deployment usually injects.
    - Site url normalization.
"""

import json
import logging
import os
import pathlib
import shutil
import urllib.parse
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'SharePointExpenses'

ENV_SITE_URL: str = 'SHAREPOINT_SITE_URL'
ENV_CLIENT_ID: str = 'AZURE_CLIENT_ID'
ENV_TENANT_ID: str = 'AZURE_TENANT_ID'

CONFIG_SCHEMA: Dict[str, Any] = {
    'site': {
        'type': dict,
        'required': True,
        'item_schema': {
            'url': {'type': str, 'required': True},
            'document_library': {'type': str, 'required': True},
        }
    },
    'client': {
        'type': dict,
        'required': True,
        'item_schema': {
            'client_id': {'type': str, 'required': True},
            'tenant_id': {'type': str, 'required': True},
        }
    },
    'lists': {
        'type': dict,
        'required': True,
        'value_type': str,
    },
    'fields': {
        'type': dict,
        'required': False,
    },
}


def normalize_site_url(url: str) -> str:
    """Normalize a SharePoint site url.

    Strips whitespace, repairs a truncated ``ttps://`` scheme, adds a missing scheme
    and forces https.

    Args:
        url (str): The url as configured.

    Returns:
        str: The normalized url, or the input unchanged if it is empty.
    """
    if not url:
        return url

    url = url.strip()

    url = url.replace('https://ttps://', 'https://', 1) if url.startswith('https://ttps://') else url
    url = url.replace('http://ttps://', 'https://', 1) if url.startswith('http://ttps://') else url
    if url.startswith('ttps://'):
        url = 'h' + url

    if not url.startswith(('http://', 'https://')):
        url = f'https://{url}'

    if url.startswith('http://'):
        url = 'https://' + url[len('http://'):]

    return url.rstrip('/')


def split_site_url(url: str) -> tuple[str, str]:
    """Split a normalized site url into hostname and server-relative path.

    Args:
        url (str): e.g. ``https://contoso.sharepoint.com/sites/Gastos``.

    Returns:
        tuple[str, str]: ``('contoso.sharepoint.com', '/sites/Gastos')``.

    Raises:
        status.SiteUrlNotConfiguredException: If the url has no usable hostname.
    """
    parsed = urllib.parse.urlsplit(normalize_site_url(url))
    hostname = parsed.hostname or ''
    if not hostname or 'ttps' in hostname or hostname == 'null':
        raise status.SiteUrlNotConfiguredException(f'"{url}" is not a valid site url.')
    return hostname, parsed.path.rstrip('/')


def _validate_item_schema(section: str, data: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    for key, specs in item_schema.items():
        if specs['required'] and key not in data:
            msg = f'"{section}" is missing "{key}".'
            logging.error(msg)
            raise ValueError(msg)
        if key in data and not isinstance(data[key], specs['type']):
            msg = f'"{section}.{key}" must be {specs["type"]}, got {type(data[key])}.'
            logging.error(msg)
            raise TypeError(msg)


def _validate_lists(lists_dict: Dict[str, Any]) -> None:
    """Validate the 'lists' section: one non-empty display name per entity kind.

    Raises:
        ValueError: If an entity kind is missing or a name is empty.
        TypeError: If a list name is not a string.
    """
    from ..core.schema import EntityKind

    logging.debug('Validating "lists" section.')
    missing = [k.value for k in EntityKind if k.value not in lists_dict]
    if missing:
        msg = f'"lists" is missing entries for: {missing}.'
        logging.error(msg)
        raise ValueError(msg)
    for k, v in lists_dict.items():
        if not isinstance(v, str):
            msg = f'List name for "{k}" must be a string.'
            logging.error(msg)
            raise TypeError(msg)
        if not v.strip():
            msg = f'List name for "{k}" must not be empty.'
            logging.error(msg)
            raise ValueError(msg)


def _validate_fields(fields_dict: Dict[str, Any]) -> None:
    """Validate the optional 'fields' section of candidate column overrides.

    Expected shape: ``{entity_kind: {local_field: [column, ...]}}``.

    Raises:
        ValueError: If an entity kind or field is unknown, or a candidate list is empty.
        TypeError: If the candidate spellings are not a list of strings.
    """
    from ..core.schema import EntityKind, field_names

    logging.debug('Validating "fields" section.')
    kinds = {k.value for k in EntityKind}
    for kind, overrides in fields_dict.items():
        if kind not in kinds:
            msg = f'"fields" references unknown entity "{kind}".'
            logging.error(msg)
            raise ValueError(msg)
        if not isinstance(overrides, dict):
            msg = f'"fields.{kind}" must be a dict.'
            logging.error(msg)
            raise TypeError(msg)
        known = set(field_names(EntityKind(kind)))
        for field, candidates in overrides.items():
            if field not in known:
                msg = f'"fields.{kind}" references unknown field "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            if not isinstance(candidates, list) or not all(isinstance(c, str) for c in candidates):
                msg = f'"fields.{kind}.{field}" must be a list of column names.'
                logging.error(msg)
                raise TypeError(msg)
            if not candidates:
                msg = f'"fields.{kind}.{field}" must not be empty.'
                logging.error(msg)
                raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default template is in place.

    This class initializes paths for the configuration template, the user's
    configuration file and the MSAL token cache.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.config_template: pathlib.Path = self.template_dir / 'sharepoint.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'

        self.config_path: pathlib.Path = self.config_dir / 'sharepoint.json'
        self.token_cache_path: pathlib.Path = self.auth_dir / 'token_cache.json'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists, create directories and copy the default config.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.config_template.exists():
            msg = f'Missing config template: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        if not self.auth_dir.exists():
            logging.debug(f'Creating auth directory: {self.auth_dir}')
            self.auth_dir.mkdir(parents=True, exist_ok=True)

        if not self.config_path.exists():
            logging.debug(f'Copying default config from template to {self.config_path}')
            shutil.copy(self.config_template, self.config_path)

    def revert_config_to_template(self) -> None:
        """Restore sharepoint.json from the default template file.

        Raises:
            FileNotFoundError: If the template file is missing.
        """
        logging.debug(f'Reverting config to template: {self.config_template}')
        if not self.config_template.exists():
            msg: str = f'Config template not found: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.config_template, self.config_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save sharepoint.json sections and
    resolves the effective site and client values, environment overrides included.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the configuration.

        Args:
            config_path: Optional path to a custom sharepoint.json file.
        """
        super().__init__()

        self.config_path: pathlib.Path = pathlib.Path(config_path) if config_path else self.config_path

        self.config_data: Dict[str, Any] = {}
        for k in CONFIG_SCHEMA.keys():
            self.config_data[k] = {}

        self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load sharepoint.json from disk and validate against schema.

        Returns:
            The loaded configuration dictionary.

        Raises:
            status.ConfigNotFoundException: If the file is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading config from "{self.config_path}"')
        if not self.config_path.exists():
            raise status.ConfigNotFoundException

        try:
            with self.config_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_config_data(data)
        except status.ConfigInvalidException:
            raise
        except Exception as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        data.setdefault('fields', {})
        self.config_data = data
        return self.config_data

    def validate_config_data(self, data: Optional[Dict[str, Any]] = None) -> None:
        """Validate configuration data against CONFIG_SCHEMA.

        Args:
            data (dict, optional): Data to validate. Defaults to self.config_data.

        Raises:
            RuntimeError: If data is empty.
            status.ConfigInvalidException: If a required section is missing or has the wrong type.
            ValueError, TypeError: If a section's content is invalid.
        """
        if data is None:
            data = self.config_data
        if not data:
            raise RuntimeError('Config data is empty.')

        logging.debug('Validating config data against schema.')
        for field, specs in CONFIG_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.ConfigInvalidException(f'Missing required field: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                raise status.ConfigInvalidException(
                    f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.'
                )

            if 'item_schema' in specs:
                _validate_item_schema(field, data[field], specs['item_schema'])
            elif field == 'lists':
                _validate_lists(data[field])
            elif field == 'fields':
                _validate_fields(data[field])

        logging.debug('Config data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a configuration section.

        Args:
            section_name: Section name, a key of CONFIG_SCHEMA.

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is not in the configuration.
        """
        return self.config_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a configuration section.

        Args:
            section_name: Section to update.
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name is unrecognized or the data is invalid.
            TypeError: If the data has the wrong types.
        """
        from ..core.signals import signals

        if section_name not in CONFIG_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.config_data.get(section_name, {}).copy()

        self.config_data[section_name] = new_data
        try:
            self.validate_config_data()
            self.save_section(section_name)
        except (ValueError, TypeError, status.ConfigInvalidException) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.config_data[section_name] = current_section_data
            raise

        signals.configSectionChanged.emit(section_name)

    def reload_section(self, section_name: str) -> None:
        """Reload a configuration section from disk and emit the change signal.

        Raises:
            ValueError: If section_name is unrecognized.
        """
        from ..core.signals import signals

        if section_name not in CONFIG_SCHEMA:
            msg: str = f'Unknown section_name for reload: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        logging.debug(f'Reloading section "{section_name}" from disk.')
        with self.config_path.open('r', encoding='utf-8') as f:
            data: Dict[str, Any] = json.load(f)
        self.validate_config_data(data=data)
        self.config_data[section_name] = data.get(section_name, {})

        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Raises:
            ValueError: If section_name is invalid or not present in the template.
        """
        from ..core.signals import signals

        if section_name not in CONFIG_SCHEMA:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.config_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to sharepoint.json.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in CONFIG_SCHEMA:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.config_data[section_name]

        with self.config_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)

    @property
    def site_url(self) -> str:
        """The normalized site url; ``SHAREPOINT_SITE_URL`` takes precedence over the file."""
        url = os.environ.get(ENV_SITE_URL) or self.config_data.get('site', {}).get('url', '')
        return normalize_site_url(url)

    @property
    def document_library(self) -> str:
        return self.config_data.get('site', {}).get('document_library', '')

    @property
    def client_id(self) -> str:
        return os.environ.get(ENV_CLIENT_ID) or self.config_data.get('client', {}).get('client_id', '')

    @property
    def tenant_id(self) -> str:
        return os.environ.get(ENV_TENANT_ID) or self.config_data.get('client', {}).get('tenant_id', '')

    def list_names(self) -> Dict[str, str]:
        """Return the entity kind to list display name mapping."""
        return self.get_section('lists')

    def field_overrides(self, kind: str) -> Dict[str, List[str]]:
        """Return the candidate column overrides configured for an entity kind."""
        return self.config_data.get('fields', {}).get(kind, {})


settings: SettingsAPI = SettingsAPI()
