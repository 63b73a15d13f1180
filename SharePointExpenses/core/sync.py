"""Synchronized entity collections.

Each :class:`EntitySync` holds the rows of one list as entities, along with the
loading and error state the UI binds to. The collection is a read-through cache:
it only changes after the store confirmed a mutation, and concurrent mutations are
not queued, so the last response to arrive wins.

Remote calls run on a worker thread via :func:`service.start_asynchronous`.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from . import session as session_module
from .schema import EntityKind
from .service import start_asynchronous
from .signals import signals
from ..status import status

# Reads may be retried when the service is unavailable, mutations never are
READ_ATTEMPTS: int = 3

# Seconds a fetched reference collection is reused by other collections of the session
SNAPSHOT_SECONDS: int = 5 * 60


class EntitySync(QtCore.QObject):
    """Holds the synchronized collection of one entity kind.

    Args:
        session: The session to use. Defaults to the current session at call time.
        asynchronous (bool): Run remote calls on a worker thread.
        parent: Qt parent object.

    Signals:
        collectionChanged (list): Emitted with the new collection after every change.
        loadingChanged (bool): Emitted when a reload starts or ends.
        errorChanged (object): Emitted with the last error, or None when it is cleared.
    """
    collectionChanged = QtCore.Signal(list)
    loadingChanged = QtCore.Signal(bool)
    errorChanged = QtCore.Signal(object)

    kind: EntityKind = None
    # Reuse a recent fetch of the session instead of reading the list again
    snapshot_seconds: Optional[int] = None

    def __init__(self, session: Optional[Any] = None, asynchronous: bool = True,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._session = session
        self.asynchronous = asynchronous

        self._items: List[Any] = []
        self._loading: bool = False
        self._error: Optional[Exception] = None

        self._connect_signals()

        if self.session is not None and self.session.is_authenticated():
            self.reload()

    def _connect_signals(self) -> None:
        signals.sessionStarted.connect(self.reload)
        signals.sessionEnded.connect(self.clear)

    @property
    def session(self) -> Optional[Any]:
        return self._session or session_module.get_session()

    @property
    def items(self) -> List[Any]:
        return list(self._items)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def _set_loading(self, value: bool) -> None:
        if self._loading != value:
            self._loading = value
            self.loadingChanged.emit(value)

    def _set_error(self, error: Optional[Exception]) -> None:
        self._error = error
        self.errorChanged.emit(error)

    def _set_items(self, items: List[Any], store: bool = True) -> None:
        self._items = list(items)
        if store:
            self._store_snapshot()
        self.collectionChanged.emit(self.items)

    def _store_snapshot(self) -> None:
        session = self.session
        if self.snapshot_seconds and session is not None:
            session.snapshots[self.kind] = (time.monotonic(), list(self._items))

    def _snapshot(self, session: Any) -> Optional[List[Any]]:
        if not self.snapshot_seconds or self.kind not in session.snapshots:
            return None
        fetched, items = session.snapshots[self.kind]
        if time.monotonic() - fetched >= self.snapshot_seconds:
            return None
        return list(items)

    def _gateway(self) -> Any:
        session = self.session
        if session is None:
            raise status.AuthRequiredException
        return session.gateway(self.kind)

    def _run(self, func, *args, **kwargs) -> Any:
        if self.asynchronous:
            return start_asynchronous(func, *args, **kwargs)
        kwargs.pop('max_attempts', None)
        return func(*args, **kwargs)

    @QtCore.Slot()
    def clear(self) -> None:
        """Empty the collection and the error state."""
        self._error = None
        self._set_items([], store=False)

    @QtCore.Slot()
    def reload(self, force_refresh: bool = False) -> None:
        """Fetch the collection from the store.

        Collections with :attr:`snapshot_seconds` set reuse a recent fetch of the session
        unless ``force_refresh`` is given. On failure the previous collection is kept and
        :attr:`error` is set. Nothing is raised.
        """
        session = self.session
        if session is None or not session.is_authenticated():
            logging.debug(f'{self.kind}: not signed in, nothing to load')
            self.clear()
            return

        if not force_refresh:
            items = self._snapshot(session)
            if items is not None:
                logging.debug(f'{self.kind}: using {len(items)} rows fetched earlier this session')
                self._set_error(None)
                self._set_items(items, store=False)
                return

        self._set_loading(True)
        try:
            items = self._run(self._gateway().get_all, max_attempts=READ_ATTEMPTS)
        except Exception as ex:
            logging.error(f'{self.kind}: reload failed, keeping {len(self._items)} cached rows: {ex}')
            self._set_error(ex)
            return
        finally:
            self._set_loading(False)

        self._set_error(None)
        self._set_items(items)

    def create(self, entity: Any) -> Any:
        """Create an entity and append it to the collection.

        Raises:
            status.PartialAttachmentFailureException: After appending the persisted expense.
            Exception: Any other failure, after setting :attr:`error`.
        """
        try:
            created = self._run(self._gateway().create, entity)
        except status.PartialAttachmentFailureException as ex:
            self._set_items(self._items + [ex.gasto])
            self._set_error(ex)
            raise
        except Exception as ex:
            self._set_error(ex)
            raise

        self._set_error(None)
        self._set_items(self._items + [created])
        return created

    def update(self, id: str, changes: Dict[str, Any]) -> Any:
        """Update an entity and merge the stored result into the collection."""
        try:
            updated = self._run(self._gateway().update, id, changes)
        except status.PartialAttachmentFailureException as ex:
            self._merge(ex.gasto)
            self._set_error(ex)
            raise
        except Exception as ex:
            self._set_error(ex)
            raise

        self._set_error(None)
        self._merge(updated)
        return updated

    def _merge(self, entity: Any) -> None:
        items = self._items[:]
        for idx, item in enumerate(items):
            if item.id == entity.id:
                items[idx] = entity
                break
        else:
            items.append(entity)
        self._set_items(items)

    def delete(self, id: str) -> None:
        """Delete an entity and remove it from the collection."""
        try:
            self._run(self._gateway().delete, id)
        except Exception as ex:
            self._set_error(ex)
            raise

        self._set_error(None)
        self._set_items([item for item in self._items if item.id != str(id)])


class GastosSync(EntitySync):
    kind = EntityKind.Gastos

    @property
    def gastos(self) -> List[Any]:
        return self.items


class EmpresasSync(EntitySync):
    kind = EntityKind.Empresas
    snapshot_seconds = SNAPSHOT_SECONDS

    @property
    def empresas(self) -> List[Any]:
        return self.items


class ProyectosSync(EntitySync):
    kind = EntityKind.Proyectos

    @property
    def proyectos(self) -> List[Any]:
        return self.items


class ColaboradoresSync(EntitySync):
    kind = EntityKind.Colaboradores
    snapshot_seconds = SNAPSHOT_SECONDS

    @property
    def colaboradores(self) -> List[Any]:
        return self.items


class CategoriasSync(EntitySync):
    kind = EntityKind.Categorias
    snapshot_seconds = SNAPSHOT_SECONDS

    @property
    def categorias(self) -> List[Any]:
        return self.items


class TiposDocumentoSync(EntitySync):
    kind = EntityKind.TiposDocumento

    @property
    def tipos_documento(self) -> List[Any]:
        return self.items
