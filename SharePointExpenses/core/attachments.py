"""Attachment upload saga.

An expense row is created first, then its pending files are uploaded one after the
other into ``Gasto-<id>/`` of the document library, and finally the uploaded urls
are written back onto the row in a single update. States:

    RowCreated -> AttachmentsPending -> AttachmentsComplete
                                     -> AttachmentsFailed

Nothing is rolled back. The row always persists. Files that failed are reported by
name so the caller can retry them with an update.
"""
import enum
import logging
from typing import Any, List, Tuple

from .auth import AuthExpiredError
from .library import attachment_file_name, attachment_folder
from .models import ArchivoAdjunto
from .signals import signals
from ..status import status


class AttachmentState(enum.StrEnum):
    RowCreated = 'RowCreated'
    AttachmentsPending = 'AttachmentsPending'
    AttachmentsComplete = 'AttachmentsComplete'
    AttachmentsFailed = 'AttachmentsFailed'


class AttachmentSaga:
    """Uploads the pending attachments of one expense.

    Args:
        library: The :class:`library.DocumentLibrary` to upload into.
        gasto_id: The id of the expense row, which must already exist.
    """

    def __init__(self, library: Any, gasto_id: str) -> None:
        self.library = library
        self.gasto_id = gasto_id
        self.state = AttachmentState.RowCreated
        self.failed: List[Tuple[str, str]] = []
        logging.info(f'Gasto {gasto_id}: {self.state}')

    def _transition(self, state: AttachmentState) -> None:
        logging.info(f'Gasto {self.gasto_id}: {self.state} -> {state}')
        self.state = state

    def run(self, archivos: List[ArchivoAdjunto]) -> List[ArchivoAdjunto]:
        """Upload every pending file, in order.

        Every pending file is attempted even after a failure.

        Returns:
            list[ArchivoAdjunto]: The already uploaded files followed by the newly uploaded
            ones, in the given order. Failed files are left out and listed in :attr:`failed`.
        """
        self._transition(AttachmentState.AttachmentsPending)
        folder = attachment_folder(self.gasto_id)

        result: List[ArchivoAdjunto] = []
        for archivo in archivos:
            if not archivo.pending:
                result.append(archivo)
                continue
            try:
                item = self.library.upload(
                    folder,
                    attachment_file_name(archivo.nombre),
                    archivo.contenido,
                    content_type=archivo.tipo or None,
                )
            except AuthExpiredError as ex:
                logging.error(f'Gasto {self.gasto_id}: upload of "{archivo.nombre}" failed: {ex}')
                signals.authenticationRequested.emit()
                self.failed.append((archivo.nombre, str(ex)))
                continue
            except Exception as ex:
                logging.error(f'Gasto {self.gasto_id}: upload of "{archivo.nombre}" failed: {ex}')
                self.failed.append((archivo.nombre, str(ex)))
                continue

            result.append(ArchivoAdjunto(
                nombre=archivo.nombre,
                url=item.get('webUrl', ''),
                tipo=archivo.tipo or (item.get('file') or {}).get('mimeType', ''),
            ))
            logging.debug(f'Gasto {self.gasto_id}: uploaded "{archivo.nombre}"')

        return result

    def complete(self) -> None:
        self._transition(AttachmentState.AttachmentsComplete)

    def fail(self, failed: List[Tuple[str, str]] = None) -> None:
        if failed:
            self.failed.extend(failed)
        self._transition(AttachmentState.AttachmentsFailed)
