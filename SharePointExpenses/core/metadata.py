"""Session-scoped cache of derived SharePoint metadata.

Holds the site id, list ids by display name, document library (drive) ids and the
column descriptor tables the :mod:`columns` module fills. None of it is authoritative:
it is all derived from the site and only thrown away by :meth:`MetadataCache.clear`
when the session ends.

The check-then-fill pattern is not locked. Two workers missing the same key at the
same time both fetch it and store the same value.
"""
import logging
from typing import Dict, List, Optional, Tuple, Any

from ..settings import lib
from ..status import status


def quote_odata(value: str) -> str:
    """Quote a string literal for an OData ``$filter`` expression."""
    return "'" + value.replace("'", "''") + "'"


class MetadataCache:
    """Resolves and memoizes site, list and drive ids.

    Args:
        client: The :class:`graph.GraphClient` used for lookups.
        site_url (str, optional): The site url. Defaults to the configured one.
    """

    def __init__(self, client: Any, site_url: Optional[str] = None) -> None:
        self.client = client
        self._site_url = site_url

        self._site_id: Optional[str] = None
        self._list_ids: Dict[str, str] = {}
        self._drive_ids: Dict[str, str] = {}

        # list id -> raw column descriptors
        self.columns: Dict[str, List[Dict[str, Any]]] = {}
        # (list id, display name) -> internal name
        self.internal_names: Dict[Tuple[str, str], str] = {}

    @property
    def site_url(self) -> str:
        return lib.normalize_site_url(self._site_url) if self._site_url else lib.settings.site_url

    def resolve_site_id(self) -> str:
        """Return the Graph site id of the configured site.

        Raises:
            status.SiteUrlNotConfiguredException: If no site url is configured.
        """
        if self._site_id:
            return self._site_id

        url = self.site_url
        if not url:
            raise status.SiteUrlNotConfiguredException

        hostname, path = lib.split_site_url(url)
        path = f'/sites/{hostname}:{path}' if path else f'/sites/{hostname}'
        data = self.client.get(path)

        self._site_id = data['id']
        logging.debug(f'Resolved site id for {url}: {self._site_id}')
        return self._site_id

    def find_list_id(self, list_name: str) -> Optional[str]:
        """Return the id of a list by its display name, or None if the site has no such list.

        The store filters by display name. When more than one list matches, the first
        one returned is used and a warning is logged.
        """
        if list_name in self._list_ids:
            return self._list_ids[list_name]

        site_id = self.resolve_site_id()
        matches = self.client.get_paged(
            f'/sites/{site_id}/lists',
            params={'$filter': f'displayName eq {quote_odata(list_name)}', '$select': 'id,displayName'},
        )
        if not matches:
            return None
        if len(matches) > 1:
            logging.warning(f'{len(matches)} lists are named "{list_name}", using {matches[0]["id"]}')

        list_id = matches[0]['id']
        self._list_ids[list_name] = list_id
        logging.debug(f'Resolved list "{list_name}": {list_id}')
        return list_id

    def resolve_list_id(self, list_name: str) -> str:
        """Return the id of a list by its display name.

        Raises:
            status.ListNotFoundException: If no list has this display name.
        """
        list_id = self.find_list_id(list_name)
        if list_id is None:
            raise status.ListNotFoundException(list_name)
        return list_id

    def resolve_drive_id(self, library_name: str) -> str:
        """Return the drive id of a document library by name.

        Raises:
            status.DocumentLibraryNotFoundException: If the site has no such library.
        """
        if library_name in self._drive_ids:
            return self._drive_ids[library_name]

        site_id = self.resolve_site_id()
        drives = self.client.get_paged(f'/sites/{site_id}/drives')
        wanted = library_name.strip().casefold()
        drive = next((d for d in drives if (d.get('name') or '').strip().casefold() == wanted), None)
        if drive is None:
            raise status.DocumentLibraryNotFoundException(f'"{library_name}" does not exist on the site.')

        self._drive_ids[library_name] = drive['id']
        logging.debug(f'Resolved document library "{library_name}": {drive["id"]}')
        return drive['id']

    def clear(self) -> None:
        """Drop every cached value."""
        logging.debug('Clearing metadata cache')
        self._site_id = None
        self._list_ids.clear()
        self._drive_ids.clear()
        self.columns.clear()
        self.internal_names.clear()
