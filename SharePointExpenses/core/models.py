"""Local entity model.

Plain dataclasses. ``id`` is the SharePoint row id as a string, empty until the row
is created. Reference fields hold the referenced row id.
"""
import dataclasses
import datetime
import enum
from typing import Any, Dict, List, Optional, Tuple

from .schema import EntityKind


class EmpresaCategoria(enum.StrEnum):
    Empresa = 'Empresa'
    PersonaNatural = 'Persona Natural'


@dataclasses.dataclass
class Empresa:
    id: str = ''
    razon_social: str = ''
    rut: str = ''
    numero_contacto: Optional[str] = None
    correo_electronico: Optional[str] = None
    categoria: Optional[EmpresaCategoria] = None
    created_at: Optional[datetime.date] = None

    def __post_init__(self):
        if self.categoria in tuple(EmpresaCategoria):
            self.categoria = EmpresaCategoria(self.categoria)


@dataclasses.dataclass
class Proyecto:
    id: str = ''
    nombre: str = ''
    created_at: Optional[datetime.date] = None


@dataclasses.dataclass
class Colaborador:
    id: str = ''
    nombre: str = ''
    email: Optional[str] = None
    telefono: Optional[str] = None
    cargo: Optional[str] = None
    created_at: Optional[datetime.date] = None


@dataclasses.dataclass
class Categoria:
    """An expense category. ``color`` is a palette token or a raw color value."""
    id: str = ''
    nombre: str = ''
    color: Optional[str] = None


@dataclasses.dataclass
class TipoDocumento:
    """A document type. ``valor_impuestos`` is the tax rate as a fraction, e.g. 0.19."""
    id: str = ''
    nombre: str = ''
    tiene_impuestos: Optional[bool] = None
    valor_impuestos: Optional[float] = None


@dataclasses.dataclass
class ArchivoAdjunto:
    """A file attached to an expense.

    ``contenido`` carries the bytes of a file that still has to be uploaded. Uploaded
    files only keep their name, url and content type.
    """
    nombre: str
    url: str = ''
    tipo: str = ''
    contenido: Optional[bytes] = dataclasses.field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return bool(self.contenido)

    def to_dict(self) -> Dict[str, str]:
        return {'nombre': self.nombre, 'url': self.url, 'tipo': self.tipo}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArchivoAdjunto':
        return cls(
            nombre=str(data.get('nombre') or data.get('name') or ''),
            url=str(data.get('url') or ''),
            tipo=str(data.get('tipo') or data.get('type') or ''),
        )


@dataclasses.dataclass
class Gasto:
    """An expense.

    ``monto`` is the gross amount. ``monto_neto``, ``iva`` and ``monto_total`` are
    derived from it with :func:`calcular_impuestos` when the document type is taxed.
    """
    id: str = ''
    fecha: Optional[datetime.date] = None
    empresa_id: str = ''
    categoria: str = ''
    tipo_documento: str = ''
    numero_documento: str = ''
    monto: int = 0
    detalle: Optional[str] = None
    proyecto_id: Optional[str] = None
    colaborador_id: Optional[str] = None
    comentario_tipo_documento: Optional[str] = None
    monto_neto: Optional[int] = None
    iva: Optional[int] = None
    monto_total: Optional[int] = None
    archivos_adjuntos: List[ArchivoAdjunto] = dataclasses.field(default_factory=list)


ENTITY_TYPES: Dict[EntityKind, type] = {
    EntityKind.Gastos: Gasto,
    EntityKind.Empresas: Empresa,
    EntityKind.Proyectos: Proyecto,
    EntityKind.Colaboradores: Colaborador,
    EntityKind.Categorias: Categoria,
    EntityKind.TiposDocumento: TipoDocumento,
}


def to_values(entity: Any) -> Dict[str, Any]:
    """Return the attributes of an entity, ``id`` excluded, without deep copying."""
    return {f.name: getattr(entity, f.name) for f in dataclasses.fields(entity) if f.name != 'id'}


def calcular_impuestos(monto: int, tiene_impuestos: Optional[bool],
                       valor_impuestos: Optional[float]) -> Tuple[int, int, int]:
    """Split a gross amount into net amount and tax.

    Args:
        monto: The gross amount, tax included.
        tiene_impuestos: Whether the document type carries tax.
        valor_impuestos: The tax rate as a fraction.

    Returns:
        tuple[int, int, int]: ``(monto_neto, iva, monto_total)``. Untaxed documents
        return ``(monto, 0, monto)``.
    """
    monto = int(monto or 0)
    if not tiene_impuestos or not valor_impuestos:
        return monto, 0, monto
    neto = round(monto / (1 + float(valor_impuestos)))
    return neto, monto - neto, monto
