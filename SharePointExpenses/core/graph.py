"""Microsoft Graph HTTP client.

Wraps :mod:`requests` with bearer token injection, ``@odata.nextLink`` paging and a
mapping of transport and HTTP failures onto the status exceptions:

- connection errors, timeouts, 429 and 5xx responses raise
  :class:`status.ServiceUnavailableException`
- 401 raises :class:`status.AuthRequiredException`
- any other 4xx raises :class:`status.RemoteRejectedException` carrying the HTTP status
  and the store's own message verbatim
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .auth import Audience, auth_manager
from ..status import status

GRAPH_ROOT: str = 'https://graph.microsoft.com/v1.0'
DEFAULT_TIMEOUT: int = 30
PAGE_SIZE: int = 200


def get_error_message(response: Any) -> str:
    """Return the error message of a Graph error response.

    Graph wraps errors as ``{"error": {"code": ..., "message": ...}}``. Falls back to
    the raw body when the response is not JSON.
    """
    try:
        data = response.json()
    except ValueError:
        return (response.text or '').strip()

    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get('message') or error.get('code') or ''
    if isinstance(error, str):
        return data.get('error_description') or error
    return (response.text or '').strip()


class GraphClient:
    """Thin Microsoft Graph REST client.

    Args:
        token_provider: Object with ``get_access_token(audience)`` and ``is_authenticated()``.
            Defaults to the module level :data:`auth.auth_manager`.
        session: A :class:`requests.Session` or compatible object.
        timeout (int): Per request timeout in seconds.
        base_url (str): The Graph endpoint root.
    """

    def __init__(self, token_provider: Any = None, session: Any = None,
                 timeout: int = DEFAULT_TIMEOUT, base_url: str = GRAPH_ROOT) -> None:
        self.token_provider = token_provider or auth_manager
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_url = base_url.rstrip('/')

    def url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f'{self.base_url}/{path.lstrip("/")}'

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                json: Any = None, data: Optional[bytes] = None,
                headers: Optional[Dict[str, str]] = None,
                audience: Audience = Audience.Graph) -> Any:
        """Send a request and return the response object.

        Raises:
            status.AuthRequiredException: If nobody is signed in or the token was rejected.
            status.ServiceUnavailableException: On transport errors, throttling or server errors.
            status.RemoteRejectedException: On any other non-success response.
        """
        if not self.token_provider.is_authenticated():
            raise status.AuthRequiredException

        token = self.token_provider.get_access_token(audience)
        _headers = {'Authorization': f'Bearer {token}', 'Accept': 'application/json'}
        if headers:
            _headers.update(headers)

        url = self.url(path)
        logging.debug(f'{method} {url}')
        try:
            response = self.session.request(
                method, url,
                params=params,
                json=json,
                data=data,
                headers=_headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as ex:
            raise status.ServiceUnavailableException(f'{method} {url}: {ex}') from ex

        self.raise_for_status(method, url, response)
        return response

    @staticmethod
    def raise_for_status(method: str, url: str, response: Any) -> None:
        code = response.status_code
        if code < 400:
            return

        message = get_error_message(response)
        logging.debug(f'{method} {url} failed with HTTP {code}: {message}')

        if code == 401:
            raise status.AuthRequiredException(message or None)
        if code == 429 or code >= 500:
            raise status.ServiceUnavailableException(f'HTTP {code}: {message}')
        raise status.RemoteRejectedException(
            f'HTTP {code}: {message}',
            status_code=code,
            remote_message=message,
        )

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request_json('GET', path, params=params)

    def post(self, path: str, json: Any = None) -> Any:
        return self.request_json('POST', path, json=json)

    def patch(self, path: str, json: Any = None) -> Any:
        return self.request_json('PATCH', path, json=json)

    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> Any:
        return self.request_json('PUT', path, data=data, headers={'Content-Type': content_type})

    def delete(self, path: str) -> None:
        self.request('DELETE', path)

    def get_paged(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return the ``value`` entries of every page of a collection.

        The ``@odata.nextLink`` of each page is followed until the last page. The
        next link carries the query, so ``params`` are only sent with the first request.
        """
        items: List[Dict[str, Any]] = []
        next_path: Optional[str] = path
        next_params = params
        pages = 0
        while next_path:
            data = self.get(next_path, params=next_params) or {}
            items.extend(data.get('value', []))
            next_path = data.get('@odata.nextLink')
            next_params = None
            pages += 1
        logging.debug(f'Fetched {len(items)} entries from {path} in {pages} page(s)')
        return items

    def get_list_items(self, site_id: str, list_id: str) -> List[Dict[str, Any]]:
        """Return every item of a list with its fields bag expanded, in store order."""
        return self.get_paged(
            f'/sites/{site_id}/lists/{list_id}/items',
            params={'$expand': 'fields', '$top': PAGE_SIZE},
        )

    def get_bytes(self, url: str, audience: Audience = Audience.Graph) -> bytes:
        """Download a binary resource."""
        return self.request('GET', url, audience=audience, headers={'Accept': '*/*'}).content
