"""Entity gateways.

One gateway per entity kind, all with the same contract:

- :meth:`EntityGateway.get_all` returns every row of the list, in store order.
- :meth:`EntityGateway.create` writes a new row and returns the entity with its id.
- :meth:`EntityGateway.update` writes only the given fields and returns the whole entity.
- :meth:`EntityGateway.delete` removes a row. Nothing cascades.

Gateways translate local field names to column internal names, references given by
business key to row ids, and local values to the store's representation. They never
retry. Every successful mutation invalidates the lookup index of the list and emits
:attr:`signals.listChanged`.
"""
import dataclasses
import datetime
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .columns import ColumnType, get_field_value
from .lookup import normalize_key
from .models import ArchivoAdjunto, ENTITY_TYPES, calcular_impuestos, to_values
from .schema import BUSINESS_KEYS, EntityKind, FieldKind, FieldSpec, TITLE_COLUMN, TITLE_FIELDS
from ..status import status

# Document type names that carry a free text comment
OTROS_NAMES = ('otros', 'otro')

TAX_FIELDS = ('monto_neto', 'iva', 'monto_total')


def parse_date(value: Any) -> Optional[datetime.date]:
    """Parse a stored date or ISO 8601 date-time into a date."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.date.fromisoformat(text[:10])
    except ValueError:
        logging.warning(f'Could not parse "{value}" as a date')
        return None


def parse_attachments(value: Any) -> List[ArchivoAdjunto]:
    """Parse the JSON encoded attachment list stored on an expense."""
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except ValueError:
            logging.warning(f'Attachment list is not valid JSON: {value[:80]}')
            return []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return []
    return [ArchivoAdjunto.from_dict(v) for v in value if isinstance(v, dict)]


def to_lookup_id(value: Any) -> Any:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def to_remote(kind: FieldKind, value: Any) -> Any:
    """Convert a local value to its field bag representation."""
    if value is None:
        return None
    if kind == FieldKind.Date:
        date = parse_date(value)
        return f'{date.isoformat()}T00:00:00Z' if date else None
    if kind == FieldKind.Integer:
        return int(value)
    if kind == FieldKind.Float:
        return float(value)
    if kind == FieldKind.Boolean:
        return bool(value)
    if kind == FieldKind.Attachments:
        archivos = [a if isinstance(a, ArchivoAdjunto) else ArchivoAdjunto.from_dict(a) for a in value]
        return json.dumps([a.to_dict() for a in archivos if not a.pending], ensure_ascii=False)
    return str(value)


def from_remote(kind: FieldKind, value: Any) -> Any:
    """Convert a field bag value to its local representation."""
    if kind == FieldKind.Attachments:
        return parse_attachments(value)
    if value is None:
        return None
    if kind == FieldKind.Date:
        return parse_date(value)
    if kind == FieldKind.Integer:
        try:
            return int(float(value))
        except (TypeError, ValueError):
            logging.warning(f'Could not parse "{value}" as an integer')
            return None
    if kind == FieldKind.Float:
        try:
            return float(value)
        except (TypeError, ValueError):
            logging.warning(f'Could not parse "{value}" as a number')
            return None
    if kind == FieldKind.Boolean:
        if isinstance(value, str):
            return value.strip().casefold() in ('true', '1', 'yes', 'si', 'sí')
        return bool(value)
    if kind == FieldKind.Reference:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value) if str(value).strip() else None
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class EntityGateway:
    """Base gateway. Subclasses set :attr:`kind`.

    Args:
        session: The :class:`session.Session` providing the client and caches.
    """
    kind: EntityKind = None

    def __init__(self, session: Any) -> None:
        self.session = session

    @property
    def client(self) -> Any:
        return self.session.client

    @property
    def columns(self) -> Any:
        return self.session.columns

    @property
    def lookup(self) -> Any:
        return self.session.lookup

    @property
    def entity_type(self) -> type:
        return ENTITY_TYPES[self.kind]

    @property
    def list_name(self) -> str:
        return self.session.list_name(self.kind)

    @property
    def specs(self) -> Tuple[FieldSpec, ...]:
        return self.session.field_specs(self.kind)

    def spec(self, name: str) -> FieldSpec:
        return next(s for s in self.specs if s.name == name)

    def list_id(self) -> str:
        return self.session.metadata.resolve_list_id(self.list_name)

    def items_path(self, list_id: str) -> str:
        return f'/sites/{self.session.metadata.resolve_site_id()}/lists/{list_id}/items'

    # Reading

    def read_value(self, list_id: str, spec: FieldSpec, fields: Dict[str, Any]) -> Any:
        """Return the raw value of a field from a field bag."""
        column = self.columns.resolve_column(list_id, spec.candidates)
        if column is None:
            return get_field_value(fields, spec.candidates)
        if column.is_lookup:
            value = fields.get(f'{column.name}LookupId')
            if value is not None:
                return value
        return fields.get(column.name)

    def from_fields(self, list_id: str, row_id: Any, fields: Dict[str, Any]) -> Any:
        """Map a field bag to an entity."""
        values: Dict[str, Any] = {'id': str(row_id)}
        for spec in self.specs:
            value = from_remote(spec.kind, self.read_value(list_id, spec, fields))
            if value is not None:
                values[spec.name] = value
        return self.entity_type(**values)

    def get_all(self) -> List[Any]:
        """Return every row of the list as entities, in store order."""
        list_id = self.list_id()
        items = self.client.get_list_items(self.session.metadata.resolve_site_id(), list_id)
        entities = [self.from_fields(list_id, item['id'], item.get('fields', {})) for item in items]
        logging.debug(f'{self.list_name}: fetched {len(entities)} rows')
        return entities

    # Writing

    def validate(self, values: Dict[str, Any]) -> None:
        """Check required local fields before anything is sent.

        Raises:
            status.ValidationException: If a required field is empty.
        """
        for spec in self.specs:
            if not spec.required or spec.kind == FieldKind.Reference or spec.name not in values:
                continue
            if _is_empty(values[spec.name]):
                raise status.ValidationException(spec.name)

    def write_field(self, list_id: str, spec: FieldSpec, value: Any, payload: Dict[str, Any],
                    only_existing: bool = False) -> None:
        """Add a field to a payload under its column internal name.

        Lookup columns are written as ``<InternalName>LookupId`` with the row id. When
        the list has no matching column, the first candidate spelling is used as given,
        unless ``only_existing`` is set, in which case the field is skipped.
        """
        column = self.columns.resolve_column(list_id, spec.candidates)
        if column is None:
            if only_existing:
                logging.debug(f'{self.list_name}: skipping "{spec.name}", the list has no such column')
                return
            key = self.columns.resolve_column_internal_name(list_id, spec.candidates[0])
            payload[key] = to_remote(spec.kind, value)
            return

        if column.read_only:
            logging.warning(f'{self.list_name}: column "{column.display_name}" is read-only, not writing "{spec.name}"')
            return
        if column.is_lookup:
            payload[f'{column.name}LookupId'] = to_lookup_id(value)
        elif spec.kind == FieldKind.Reference and column.type == ColumnType.Number:
            payload[column.name] = to_lookup_id(value)
        else:
            payload[column.name] = to_remote(spec.kind, value)

    def resolve_references(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``values`` with reference fields translated to row ids."""
        resolved = dict(values)
        for spec in self.specs:
            if spec.kind != FieldKind.Reference or spec.name not in values:
                continue
            resolved[spec.name] = self.lookup.resolve_reference(
                self.session.list_name(spec.target),
                BUSINESS_KEYS[spec.target],
                values[spec.name],
                required=spec.required,
                field=spec.name,
            )
        return resolved

    def prepare(self, list_id: str, values: Dict[str, Any],
                creating: bool) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Build the field payload of a create or update.

        Returns:
            tuple: The payload and the local values with references resolved.
        """
        resolved = self.resolve_references(values)
        payload: Dict[str, Any] = {}
        for spec in self.specs:
            if spec.name not in resolved:
                continue
            if spec.create_only and not creating:
                continue
            value = resolved[spec.name]
            if creating and value is None:
                continue
            self.write_field(list_id, spec, value, payload)

        if creating:
            self.mirror_title(list_id, resolved, payload)
        return payload, resolved

    def mirror_title(self, list_id: str, values: Dict[str, Any], payload: Dict[str, Any]) -> None:
        """Fill the built-in Title column from the entity's title field when nothing else maps to it."""
        field = TITLE_FIELDS.get(self.kind)
        if field is None or TITLE_COLUMN in payload:
            return
        if self.columns.find_column(list_id, TITLE_COLUMN) is None:
            return
        payload[TITLE_COLUMN] = str(values.get(field) or '')

    def after_mutation(self) -> None:
        from .signals import signals

        self.lookup.invalidate(self.list_name)
        signals.listChanged.emit(self.kind.value)

    def create(self, entity: Any) -> Any:
        """Create a row from an entity. The entity's own ``id`` is ignored.

        Returns:
            The entity with its new id and resolved references.
        """
        list_id = self.list_id()
        values = to_values(entity)
        for spec in self.specs:
            if spec.create_only and spec.kind == FieldKind.Date and values.get(spec.name) is None:
                values[spec.name] = datetime.date.today()
        self.validate(values)

        payload, resolved = self.prepare(list_id, values, creating=True)
        logging.debug(f'{self.list_name}: creating row with {sorted(payload)}')
        response = self.client.post(self.items_path(list_id), json={'fields': payload})

        row_id = str(response['id'])
        logging.info(f'{self.list_name}: created row {row_id}')
        self.after_mutation()
        return dataclasses.replace(entity, id=row_id, **resolved)

    def check_changes(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        changes = dict(changes)
        changes.pop('id', None)
        known = {spec.name for spec in self.specs}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f'Unknown {self.kind} field(s): {", ".join(unknown)}')
        self.validate(changes)
        return changes

    def update(self, id: str, changes: Dict[str, Any]) -> Any:
        """Write only the given fields of a row.

        Args:
            id: The row id.
            changes: Local field name to new value.

        Returns:
            The whole entity as stored after the update.

        Raises:
            ValueError: If ``changes`` names a field the entity does not have.
        """
        changes = self.check_changes(changes)
        list_id = self.list_id()
        payload, _ = self.prepare(list_id, changes, creating=False)
        return self.patch_fields(list_id, id, payload)

    def patch_fields(self, list_id: str, id: str, payload: Dict[str, Any]) -> Any:
        path = f'{self.items_path(list_id)}/{id}/fields'
        if payload:
            logging.debug(f'{self.list_name}: updating row {id} with {sorted(payload)}')
            fields = self.client.patch(path, json=payload)
            logging.info(f'{self.list_name}: updated row {id}')
            self.after_mutation()
        else:
            fields = self.client.get(path)
        return self.from_fields(list_id, id, fields or {})

    def delete(self, id: str) -> None:
        """Delete a row."""
        list_id = self.list_id()
        self.client.delete(f'{self.items_path(list_id)}/{id}')
        logging.info(f'{self.list_name}: deleted row {id}')
        self.after_mutation()


class EmpresasGateway(EntityGateway):
    kind = EntityKind.Empresas


class ProyectosGateway(EntityGateway):
    kind = EntityKind.Proyectos


class ColaboradoresGateway(EntityGateway):
    kind = EntityKind.Colaboradores


class CategoriasGateway(EntityGateway):
    kind = EntityKind.Categorias


class TiposDocumentoGateway(EntityGateway):
    kind = EntityKind.TiposDocumento

    def get_all(self) -> List[Any]:
        """Return every document type, or an empty list when the list is not provisioned."""
        if self.session.metadata.find_list_id(self.list_name) is None:
            logging.warning(f'"{self.list_name}" is not provisioned, no document types available')
            return []
        return super().get_all()


class GastosGateway(EntityGateway):
    """Expenses gateway.

    On top of the common contract:

    - The document type comment is only written when the document type is ``Otros``.
    - Net amount and tax are derived from the document type's tax rate when the list
      has columns for them and the caller did not provide them.
    - Pending attachments are uploaded after the row is written, see :mod:`attachments`.
    """
    kind = EntityKind.Gastos

    def tipo_row(self, tipo_id: Any) -> Optional[Dict[str, Any]]:
        return self.lookup.get_row(self.session.list_name(EntityKind.TiposDocumento), tipo_id)

    def is_otros(self, tipo_id: Any) -> bool:
        row = self.tipo_row(tipo_id)
        if not row:
            return False
        name = get_field_value(row, BUSINESS_KEYS[EntityKind.TiposDocumento])
        return name is not None and normalize_key(name) in OTROS_NAMES

    def tax_rate(self, tipo_id: Any) -> Tuple[Optional[bool], Optional[float]]:
        row = self.tipo_row(tipo_id) or {}
        specs = {s.name: s for s in self.session.field_specs(EntityKind.TiposDocumento)}
        tiene = from_remote(FieldKind.Boolean, get_field_value(row, specs['tiene_impuestos'].candidates))
        valor = from_remote(FieldKind.Float, get_field_value(row, specs['valor_impuestos'].candidates))
        return tiene, valor

    def current_fields(self, list_id: str, id: str) -> Dict[str, Any]:
        return self.client.get(f'{self.items_path(list_id)}/{id}/fields') or {}

    def prepare(self, list_id: str, values: Dict[str, Any],
                creating: bool, current: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        values = dict(values)
        has_comentario = 'comentario_tipo_documento' in values
        comentario = values.pop('comentario_tipo_documento', None)
        tax_given = any(values.get(name) is not None for name in TAX_FIELDS)

        payload, resolved = super().prepare(list_id, values, creating)

        tipo_id = resolved.get('tipo_documento')
        if tipo_id is None and current is not None:
            tipo_id = from_remote(FieldKind.Reference,
                                  self.read_value(list_id, self.spec('tipo_documento'), current))

        # Document type comment
        tipo_changed = 'tipo_documento' in values
        if creating or has_comentario or tipo_changed:
            otros = self.is_otros(tipo_id)
            if otros and (creating or has_comentario):
                resolved['comentario_tipo_documento'] = comentario or ''
                self.write_field(list_id, self.spec('comentario_tipo_documento'), comentario or '', payload)
            elif not otros:
                if comentario:
                    logging.debug(f'{self.list_name}: dropping the comment, the document type is not "Otros"')
                resolved['comentario_tipo_documento'] = None
                if not creating and tipo_changed:
                    # A comment stored under a previous "Otros" type
                    self.write_field(list_id, self.spec('comentario_tipo_documento'), None, payload,
                                     only_existing=True)

        # Taxes
        if not tax_given and ('monto' in values or 'tipo_documento' in values):
            monto = values.get('monto')
            if monto is None and current is not None:
                monto = from_remote(FieldKind.Integer, self.read_value(list_id, self.spec('monto'), current))
            if monto is not None and tipo_id is not None:
                tiene, valor = self.tax_rate(tipo_id)
                for name, value in zip(TAX_FIELDS, calcular_impuestos(monto, tiene, valor)):
                    resolved[name] = value
                    self.write_field(list_id, self.spec(name), value, payload, only_existing=True)

        return payload, resolved

    def create(self, entity: Any) -> Any:
        """Create an expense, then upload its pending attachments.

        Raises:
            status.PartialAttachmentFailureException: If the row was created but some
                attachments failed. The exception carries the persisted expense.
        """
        created = super().create(entity)
        archivos = entity.archivos_adjuntos or []
        if not any(a.pending for a in archivos):
            return created
        return self.upload_attachments(created, archivos, write_always=False)

    def update(self, id: str, changes: Dict[str, Any]) -> Any:
        """Update an expense. Pending files in ``archivos_adjuntos`` are uploaded after the row is updated."""
        changes = self.check_changes(changes)
        list_id = self.list_id()

        archivos = changes.get('archivos_adjuntos')
        pending = archivos is not None and any(a.pending for a in archivos)
        if pending:
            del changes['archivos_adjuntos']

        current = None
        if ('comentario_tipo_documento' in changes and 'tipo_documento' not in changes) or \
                (('monto' in changes) != ('tipo_documento' in changes)):
            current = self.current_fields(list_id, id)

        payload, _ = self.prepare(list_id, changes, creating=False, current=current)
        gasto = self.patch_fields(list_id, id, payload)
        if not pending:
            return gasto
        return self.upload_attachments(gasto, archivos, write_always=True)

    def upload_attachments(self, gasto: Any, archivos: List[ArchivoAdjunto], write_always: bool) -> Any:
        """Run the attachment saga for a persisted expense and write the urls back once."""
        from .attachments import AttachmentSaga

        saga = AttachmentSaga(self.session.library, gasto.id)
        uploaded = saga.run(archivos)
        kept = [a for a in archivos if not a.pending]
        new = [a for a in uploaded if a not in kept]
        result = dataclasses.replace(gasto, archivos_adjuntos=uploaded)

        if new or write_always:
            list_id = self.list_id()
            payload: Dict[str, Any] = {}
            self.write_field(list_id, self.spec('archivos_adjuntos'), uploaded, payload)
            try:
                self.patch_fields(list_id, gasto.id, payload)
            except Exception as ex:
                saga.fail([(a.nombre, str(ex)) for a in new])
                result = dataclasses.replace(gasto, archivos_adjuntos=kept)
                raise status.PartialAttachmentFailureException(result, saga.failed) from ex

        if saga.failed:
            saga.fail()
            raise status.PartialAttachmentFailureException(result, saga.failed)

        saga.complete()
        return result


GATEWAYS: Dict[EntityKind, type] = {
    EntityKind.Gastos: GastosGateway,
    EntityKind.Empresas: EmpresasGateway,
    EntityKind.Proyectos: ProyectosGateway,
    EntityKind.Colaboradores: ColaboradoresGateway,
    EntityKind.Categorias: CategoriasGateway,
    EntityKind.TiposDocumento: TiposDocumentoGateway,
}
