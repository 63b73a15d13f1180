"""
Microsoft identity platform authentication and token cache management.

Tokens are acquired with MSAL's public client flow. Silent acquisition works from
any thread; interactive sign-in opens the system browser and must run on the main
thread. The token cache is persisted next to the configuration so a user stays
signed in across runs.
"""

import enum
import logging
import threading
import urllib.parse
from typing import Dict, List, Optional

import msal
from PySide6 import QtCore

from ..status import status

AUTHORITY_HOST = 'https://login.microsoftonline.com'

GRAPH_SCOPES: List[str] = [
    'https://graph.microsoft.com/Sites.ReadWrite.All',
    'https://graph.microsoft.com/Files.ReadWrite.All',
]

# Errors the user caused. Retrying them interactively would prompt again for nothing.
USER_ERRORS = ('user_cancelled', 'consent_required', 'access_denied')


class Audience(enum.StrEnum):
    """Resource a token is requested for."""
    Graph = 'graph'
    SharePoint = 'sharepoint'


class AuthExpiredError(Exception):
    """Raised when no token can be acquired silently and interactive sign-in is required."""
    pass


def get_scopes(audience: Audience, site_url: Optional[str] = None) -> List[str]:
    """
    Return the scopes to request for an audience.

    Args:
        audience (Audience): The resource the token is for.
        site_url (str, optional): The SharePoint site url. Required for the SharePoint audience.

    Returns:
        list[str]: The scopes.

    Raises:
        status.SiteUrlNotConfiguredException: If the SharePoint audience is requested without a site url.
    """
    if audience == Audience.Graph:
        return list(GRAPH_SCOPES)

    if not site_url:
        raise status.SiteUrlNotConfiguredException
    parsed = urllib.parse.urlsplit(site_url)
    return [f'{parsed.scheme}://{parsed.netloc}/.default']


class AuthManager:
    """Manages MSAL token acquisition with a thread-safe, persisted token cache."""

    def __init__(self):
        self._lock = threading.Lock()
        self._app: Optional[msal.PublicClientApplication] = None
        self._cache: Optional[msal.SerializableTokenCache] = None
        self._client_key: Optional[tuple] = None

    def _get_app(self) -> msal.PublicClientApplication:
        from ..settings import lib

        client_id = lib.settings.client_id
        if not client_id:
            raise status.ClientIdNotConfiguredException

        tenant_id = lib.settings.tenant_id or 'organizations'
        key = (client_id, tenant_id)
        if self._app is not None and self._client_key == key:
            return self._app

        logging.debug(f'Creating MSAL public client for tenant "{tenant_id}"')
        self._cache = self._load_cache()
        self._app = msal.PublicClientApplication(
            client_id,
            authority=f'{AUTHORITY_HOST}/{tenant_id}',
            token_cache=self._cache,
        )
        self._client_key = key
        return self._app

    def _load_cache(self) -> msal.SerializableTokenCache:
        from ..settings import lib

        cache = msal.SerializableTokenCache()
        path = lib.settings.token_cache_path
        if path.exists():
            try:
                cache.deserialize(path.read_text(encoding='utf-8'))
                logging.debug(f'Token cache loaded from {path}')
            except ValueError as ex:
                logging.error(f'Token cache is corrupt, discarding it: {ex}')
                path.unlink()
                cache = msal.SerializableTokenCache()
        return cache

    def _save_cache(self) -> None:
        from ..settings import lib

        if self._cache is None or not self._cache.has_state_changed:
            return
        path = lib.settings.token_cache_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self._cache.serialize(), encoding='utf-8')
        logging.debug(f'Token cache saved to {path}')

    def _scopes(self, audience: Audience) -> List[str]:
        from ..settings import lib
        return get_scopes(Audience(audience), lib.settings.site_url)

    def is_authenticated(self) -> bool:
        """Whether a signed-in account is present in the token cache."""
        try:
            app = self._get_app()
        except status.ClientIdNotConfiguredException:
            return False
        return bool(app.get_accounts())

    def get_account(self) -> Optional[Dict]:
        """Return the signed-in MSAL account, or None."""
        app = self._get_app()
        accounts = app.get_accounts()
        return accounts[0] if accounts else None

    def get_access_token(self, audience: Audience = Audience.Graph) -> str:
        """
        Return an access token without any UI.

        Args:
            audience (Audience): The resource the token is for.

        Returns:
            str: The bearer token.

        Raises:
            AuthExpiredError: If there is no account, or the refresh token can no longer be used.
            status.ClientIdNotConfiguredException: If the client id is not configured.
        """
        with self._lock:
            app = self._get_app()
            accounts = app.get_accounts()
            if not accounts:
                raise AuthExpiredError('No signed-in account; interactive authentication required')

            result = app.acquire_token_silent(self._scopes(audience), account=accounts[0])
            self._save_cache()

            if not result or 'access_token' not in result:
                error = (result or {}).get('error', 'no_token')
                raise AuthExpiredError(f'Silent token acquisition failed ({error}); '
                                       f'interactive authentication required')
            return result['access_token']

    def acquire_token(self, audience: Audience = Audience.Graph, interactive: bool = True) -> str:
        """
        Return an access token, falling back to interactive sign-in when silent acquisition fails.

        Args:
            audience (Audience): The resource the token is for.
            interactive (bool): Whether to open the browser if no token is available silently.

        Returns:
            str: The bearer token.

        Raises:
            AuthExpiredError: If silent acquisition fails and ``interactive`` is False.
            status.AuthRequiredException: If the interactive flow fails or the user cancels.
            RuntimeError: If the interactive flow is started outside the main thread.
        """
        try:
            return self.get_access_token(audience)
        except AuthExpiredError:
            if not interactive:
                raise

        app = QtCore.QCoreApplication.instance()
        if app and QtCore.QThread.currentThread() != app.thread():
            raise RuntimeError('Interactive authentication must be started from the main thread')

        with self._lock:
            logging.debug(f'Starting interactive sign-in for {audience}')
            result = self._get_app().acquire_token_interactive(
                self._scopes(audience),
                prompt=msal.Prompt.SELECT_ACCOUNT,
            )
            self._save_cache()

        if 'access_token' in result:
            logging.info('Interactive sign-in completed.')
            return result['access_token']

        error = result.get('error', 'unknown_error')
        description = result.get('error_description', '')
        if error in USER_ERRORS:
            logging.warning(f'Sign-in was not completed by the user: {error}')
        raise status.AuthRequiredException(f'{error}: {description}'.strip(': '))

    def sign_in(self) -> str:
        """
        Make sure a user is signed in, prompting if necessary.

        Returns:
            str: The signed-in user name.
        """
        self.acquire_token(Audience.Graph, interactive=True)
        account = self.get_account()
        return account.get('username', '') if account else ''

    def sign_out(self) -> None:
        """Remove all accounts from the cache and delete the persisted token cache."""
        from ..settings import lib

        with self._lock:
            try:
                app = self._get_app()
            except status.ClientIdNotConfiguredException:
                app = None
            if app:
                for account in app.get_accounts():
                    app.remove_account(account)

            path = lib.settings.token_cache_path
            if path.exists():
                path.unlink()
                logging.debug(f'Removed token cache {path}')

            self._app = None
            self._cache = None
            self._client_key = None


auth_manager = AuthManager()
