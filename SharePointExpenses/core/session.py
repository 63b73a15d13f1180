"""The signed-in session.

A :class:`Session` owns everything derived from the site for one signed-in user:
the Graph client, the metadata cache, the column and lookup resolvers and the
gateways built on them. It is created at sign-in and closed at sign-out, which is
the only point where its caches are dropped.

The module keeps the current session and announces its lifetime through
:attr:`signals.sessionStarted` and :attr:`signals.sessionEnded`, which the
synchronization objects follow.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .auth import auth_manager
from .columns import ColumnResolver
from .gateway import GATEWAYS, EntityGateway
from .graph import GraphClient
from .library import DocumentLibrary
from .lookup import LookupResolver
from .metadata import MetadataCache
from .schema import DEFAULT_LIST_NAMES, EntityKind, FieldSpec, get_field_specs
from .signals import signals
from ..settings import lib
from ..status import status


class Session:
    """Caches and gateways for one signed-in user.

    Args:
        token_provider: Defaults to :data:`auth.auth_manager`.
        client: A :class:`graph.GraphClient`. Built from ``token_provider`` when omitted.
        site_url: Overrides the configured site url.
        list_names: Entity kind to list display name. Overrides the ``lists`` config section.
        field_overrides: Entity kind to ``{field: [column, ...]}``. Overrides the ``fields`` section.
        library_name: The attachment document library. Overrides the configured one.
    """

    def __init__(self, token_provider: Any = None, client: Optional[GraphClient] = None,
                 site_url: Optional[str] = None, list_names: Optional[Dict[str, str]] = None,
                 field_overrides: Optional[Dict[str, Dict[str, List[str]]]] = None,
                 library_name: Optional[str] = None) -> None:
        self.token_provider = token_provider or auth_manager
        self.client = client or GraphClient(self.token_provider)

        self.metadata = MetadataCache(self.client, site_url=site_url)
        self.columns = ColumnResolver(self.client, self.metadata)
        self.lookup = LookupResolver(self.client, self.metadata)

        self._list_names = dict(list_names) if list_names is not None else lib.settings.list_names()
        if field_overrides is None:
            field_overrides = lib.settings.get_section('fields') if 'fields' in lib.settings.config_data else {}
        self._field_overrides = field_overrides
        self._library_name = library_name or lib.settings.document_library

        self._gateways: Dict[EntityKind, EntityGateway] = {}
        self._library: Optional[DocumentLibrary] = None
        # Entity kind -> (time.monotonic() of the fetch, entities)
        self.snapshots: Dict[EntityKind, Tuple[float, List[Any]]] = {}
        self.closed = False

    def list_name(self, kind: EntityKind) -> str:
        kind = EntityKind(kind)
        return self._list_names.get(kind.value) or DEFAULT_LIST_NAMES[kind]

    def field_specs(self, kind: EntityKind) -> tuple[FieldSpec, ...]:
        kind = EntityKind(kind)
        return get_field_specs(kind, self._field_overrides.get(kind.value))

    @property
    def library(self) -> DocumentLibrary:
        if self._library is None:
            self._library = DocumentLibrary(self.client, self.metadata, self._library_name)
        return self._library

    def gateway(self, kind: EntityKind) -> EntityGateway:
        """Return the gateway of an entity kind.

        Raises:
            status.AuthRequiredException: If the session was closed.
        """
        if self.closed:
            raise status.AuthRequiredException('The session has ended.')
        kind = EntityKind(kind)
        if kind not in self._gateways:
            self._gateways[kind] = GATEWAYS[kind](self)
        return self._gateways[kind]

    def is_authenticated(self) -> bool:
        return not self.closed and self.token_provider.is_authenticated()

    def validate_schema(self, strict: bool = False,
                        kinds: Optional[Iterable[EntityKind]] = None) -> Dict[EntityKind, Dict[str, Any]]:
        """Check every entity's field mapping against the columns of its list.

        Args:
            strict: Raise on the first list missing a required column.
            kinds: The entity kinds to check. Defaults to all.

        Returns:
            dict: Entity kind to ``{field: ColumnInfo | None}``. Lists that are not
            provisioned map to an empty dict.

        Raises:
            status.ColumnNotFoundException: In strict mode.
            status.ListNotFoundException: In strict mode.
        """
        result: Dict[EntityKind, Dict[str, Any]] = {}
        for kind in (kinds or EntityKind):
            kind = EntityKind(kind)
            name = self.list_name(kind)
            try:
                list_id = self.metadata.resolve_list_id(name)
            except status.ListNotFoundException:
                if strict:
                    raise
                result[kind] = {}
                continue
            result[kind] = self.columns.validate_mapping(list_id, self.field_specs(kind), strict=strict,
                                                         list_name=name)
        return result

    def close(self) -> None:
        """Drop every cache. The session cannot be used afterwards."""
        logging.debug('Closing session')
        self.metadata.clear()
        self.lookup.clear()
        self.snapshots.clear()
        self._gateways.clear()
        self._library = None
        self.closed = True


_session: Optional[Session] = None


def get_session() -> Optional[Session]:
    """Return the current session, or None when nobody is signed in."""
    return _session


def start_session(session: Optional[Session] = None) -> Session:
    """Make ``session`` the current session, ending the previous one.

    Emits :attr:`signals.sessionStarted`.
    """
    global _session

    if _session is not None:
        end_session()

    _session = session or Session()
    logging.info('Session started')
    signals.sessionStarted.emit()
    return _session


def end_session() -> None:
    """Close the current session, if any.

    Emits :attr:`signals.sessionAboutToEnd` and :attr:`signals.sessionEnded`.
    """
    global _session

    if _session is None:
        return

    signals.sessionAboutToEnd.emit()
    _session.close()
    _session = None
    logging.info('Session ended')
    signals.sessionEnded.emit()


def sign_in() -> Session:
    """Sign in interactively if needed and start a session."""
    user = auth_manager.sign_in()
    logging.info(f'Signed in as {user or "unknown user"}')
    return start_session()


def sign_out() -> None:
    """End the session and forget the signed-in account."""
    end_session()
    auth_manager.sign_out()
