"""Document library access for expense attachments."""
import logging
import mimetypes
import time
import urllib.parse
from typing import Any, Dict, Optional

from .auth import Audience


def attachment_folder(gasto_id: str) -> str:
    """Return the library folder holding the attachments of an expense."""
    return f'Gasto-{gasto_id}'


def attachment_file_name(nombre: str, timestamp: Optional[int] = None) -> str:
    """Return the stored file name: the upload time in milliseconds and the original name.

    The prefix keeps repeated uploads of the same name from overwriting each other.
    """
    timestamp = int(time.time() * 1000) if timestamp is None else timestamp
    return f'{timestamp}-{nombre.replace("/", "_")}'


class DocumentLibrary:
    """Uploads and downloads files of a SharePoint document library.

    Args:
        client: The :class:`graph.GraphClient`.
        cache: The :class:`metadata.MetadataCache` used to resolve the site and drive ids.
        library_name: The library display name, e.g. ``DocumentosGastos``.
    """

    def __init__(self, client: Any, cache: Any, library_name: str) -> None:
        self.client = client
        self.cache = cache
        self.library_name = library_name

    def upload(self, folder: str, file_name: str, content: bytes,
               content_type: Optional[str] = None) -> Dict[str, Any]:
        """Upload a file, creating the folder if needed.

        Returns:
            dict: The created drive item. ``webUrl`` is the browsable url.
        """
        site_id = self.cache.resolve_site_id()
        drive_id = self.cache.resolve_drive_id(self.library_name)
        content_type = content_type or mimetypes.guess_type(file_name)[0] or 'application/octet-stream'

        path = urllib.parse.quote(f'{folder}/{file_name}')
        logging.debug(f'Uploading {folder}/{file_name} ({len(content)} bytes) to {self.library_name}')
        item = self.client.put(
            f'/sites/{site_id}/drives/{drive_id}/root:/{path}:/content',
            data=content,
            content_type=content_type,
        )
        return item or {}

    def download(self, url: str) -> bytes:
        """Download a file by the url stored on an expense.

        Stored urls point at the SharePoint site itself, so the request carries a
        token for the SharePoint audience rather than Graph.
        """
        logging.debug(f'Downloading {url}')
        return self.client.get_bytes(url, audience=Audience.SharePoint)
