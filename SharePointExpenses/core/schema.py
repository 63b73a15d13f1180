"""Schema mapping tables between local entities and SharePoint list columns.

Each entity kind has a table of :class:`FieldSpec` entries. A spec names the local
attribute, the column spellings it may be stored under (display or internal names,
tried in order), how the value is converted, and, for references, which entity
kind's list the value points into.

The candidate spellings can be overridden per field from the ``fields`` section of
the configuration, see :func:`get_field_specs`.
"""
import enum
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple


class EntityKind(enum.StrEnum):
    """Logical entity kinds. Values are the keys of the ``lists`` config section."""
    Gastos = 'gastos'
    Empresas = 'empresas'
    Proyectos = 'proyectos'
    Colaboradores = 'colaboradores'
    Categorias = 'categorias'
    TiposDocumento = 'tipos_documento'


class FieldKind(enum.StrEnum):
    """How a local value is converted to and from the remote field bag."""
    Text = 'text'
    Integer = 'integer'
    Float = 'float'
    Boolean = 'boolean'
    Date = 'date'
    Choice = 'choice'
    Reference = 'reference'
    Attachments = 'attachments'


@dataclass(frozen=True)
class FieldSpec:
    """Maps one local attribute to its candidate remote columns.

    Attributes:
        name: Local attribute name on the entity dataclass.
        candidates: Column spellings to try, in order.
        kind: Conversion applied when reading and writing.
        required: Whether the column must exist for strict schema validation.
        target: For references, the entity kind whose list holds the referenced row.
        create_only: Written on create only (e.g. the creation date).
    """
    name: str
    candidates: Tuple[str, ...]
    kind: FieldKind = FieldKind.Text
    required: bool = False
    target: Optional[EntityKind] = None
    create_only: bool = False


DEFAULT_LIST_NAMES: Dict[EntityKind, str] = {
    EntityKind.Gastos: 'REGISTRO_GASTOS',
    EntityKind.Empresas: 'Empresas',
    EntityKind.Proyectos: 'Proyectos',
    EntityKind.Colaboradores: 'Colaboradores',
    EntityKind.Categorias: 'Categorias',
    EntityKind.TiposDocumento: 'TiposDocumento',
}

# SharePoint's built-in, usually mandatory, title column
TITLE_COLUMN: str = 'Title'

ENTITY_FIELDS: Dict[EntityKind, Tuple[FieldSpec, ...]] = {
    EntityKind.Gastos: (
        FieldSpec('fecha', ('FECHA', 'Fecha'), FieldKind.Date, required=True),
        FieldSpec('empresa_id', ('EMPRESA', 'Empresa'), FieldKind.Reference, required=True,
                  target=EntityKind.Empresas),
        FieldSpec('categoria', ('CATEGORIA', 'Categoria'), FieldKind.Reference, required=True,
                  target=EntityKind.Categorias),
        FieldSpec('tipo_documento', ('TIPO_DOCUMENTO', 'TipoDocumento'), FieldKind.Reference, required=True,
                  target=EntityKind.TiposDocumento),
        FieldSpec('numero_documento', ('NUMERO_DOCUMENTO', 'NumeroDocumento'), required=True),
        FieldSpec('monto', ('MONTO', 'Monto'), FieldKind.Integer, required=True),
        FieldSpec('detalle', ('DETALLE', 'Detalle')),
        FieldSpec('proyecto_id', ('PROYECTO', 'Proyecto'), FieldKind.Reference, target=EntityKind.Proyectos),
        FieldSpec('colaborador_id', ('COLABORADOR', 'Colaborador'), FieldKind.Reference,
                  target=EntityKind.Colaboradores),
        FieldSpec('comentario_tipo_documento', ('OTRO', 'Otro', 'ComentarioTipoDocumento')),
        FieldSpec('monto_neto', ('MONTO_NETO', 'MontoNeto'), FieldKind.Integer),
        FieldSpec('iva', ('IVA', 'Iva'), FieldKind.Integer),
        FieldSpec('monto_total', ('MONTO_TOTAL', 'MontoTotal'), FieldKind.Integer),
        FieldSpec('archivos_adjuntos', ('ArchivosAdjuntos', 'ARCHIVOS_ADJUNTOS'), FieldKind.Attachments),
    ),
    EntityKind.Empresas: (
        FieldSpec('razon_social', ('RazonSocial', 'Title'), required=True),
        FieldSpec('rut', ('RUT', 'Rut'), required=True),
        FieldSpec('numero_contacto', ('NumeroContacto',)),
        FieldSpec('correo_electronico', ('CorreoElectronico', 'Email')),
        FieldSpec('categoria', ('Categoria', 'CATEGORIA'), FieldKind.Choice),
        FieldSpec('created_at', ('CreatedAt',), FieldKind.Date, create_only=True),
    ),
    EntityKind.Proyectos: (
        FieldSpec('nombre', ('Nombre', 'Title'), required=True),
        FieldSpec('created_at', ('CreatedAt',), FieldKind.Date, create_only=True),
    ),
    EntityKind.Colaboradores: (
        FieldSpec('nombre', ('Nombre', 'Title'), required=True),
        FieldSpec('email', ('Email', 'CorreoElectronico', 'Correo')),
        FieldSpec('telefono', ('Telefono',)),
        FieldSpec('cargo', ('Cargo',)),
        FieldSpec('created_at', ('CreatedAt',), FieldKind.Date, create_only=True),
    ),
    EntityKind.Categorias: (
        FieldSpec('nombre', ('Nombre', 'Title'), required=True),
        FieldSpec('color', ('Color',)),
    ),
    EntityKind.TiposDocumento: (
        FieldSpec('nombre', ('Nombre', 'Title'), required=True),
        FieldSpec('tiene_impuestos', ('TieneImpuestos',), FieldKind.Boolean),
        FieldSpec('valor_impuestos', ('ValorImpuestos',), FieldKind.Float),
    ),
}

# Local field mirrored into the Title column when Title is not mapped explicitly
TITLE_FIELDS: Dict[EntityKind, str] = {
    EntityKind.Empresas: 'razon_social',
    EntityKind.Proyectos: 'nombre',
    EntityKind.Colaboradores: 'nombre',
    EntityKind.Categorias: 'nombre',
    EntityKind.TiposDocumento: 'nombre',
    EntityKind.Gastos: 'numero_documento',
}

# Field-bag spellings holding the business key used to resolve references by name
BUSINESS_KEYS: Dict[EntityKind, Tuple[str, ...]] = {
    EntityKind.Empresas: ('RazonSocial', 'Title'),
    EntityKind.Proyectos: ('Nombre', 'Title'),
    EntityKind.Colaboradores: ('Email', 'CorreoElectronico', 'Correo', 'Mail'),
    EntityKind.Categorias: ('Nombre', 'Title'),
    EntityKind.TiposDocumento: ('Nombre', 'Title'),
}


def field_names(kind: EntityKind) -> List[str]:
    """Return the local field names of an entity kind."""
    return [spec.name for spec in ENTITY_FIELDS[kind]]


def get_field_specs(kind: EntityKind,
                    overrides: Optional[Dict[str, List[str]]] = None) -> Tuple[FieldSpec, ...]:
    """Return the field specs of an entity kind with candidate overrides applied.

    Args:
        kind: The entity kind.
        overrides: Mapping of local field name to replacement candidate spellings,
            typically ``settings.get_section('fields').get(kind)``.

    Returns:
        The field specs, in declaration order.

    Raises:
        ValueError: If an override names a field the entity does not have.
    """
    specs = ENTITY_FIELDS[EntityKind(kind)]
    if not overrides:
        return specs

    unknown = set(overrides) - {spec.name for spec in specs}
    if unknown:
        raise ValueError(f'Unknown {kind} field(s) in overrides: {", ".join(sorted(unknown))}')

    out = []
    for spec in specs:
        if spec.name in overrides:
            candidates = tuple(overrides[spec.name])
            logging.debug(f'{kind}.{spec.name}: candidates overridden to {candidates}')
            spec = replace(spec, candidates=candidates)
        out.append(spec)
    return tuple(out)
