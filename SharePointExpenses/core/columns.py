"""Column descriptors and display name to internal name resolution.

SharePoint addresses list fields by internal name, which often differs from the
display name shown in the UI (``Razón Social`` vs ``RazonSocial``, or a name encoded
as ``Raz_x00f3_n_x0020_Social``). The resolver matches candidate spellings against
both names, case-insensitively, and classifies each column's type.
"""
import dataclasses
import enum
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..status import status


class ColumnType(enum.StrEnum):
    """Column types as reported by the column descriptor facets."""
    Text = 'text'
    Multiline = 'multiline'
    Number = 'number'
    Currency = 'currency'
    Choice = 'choice'
    DateTime = 'dateTime'
    Boolean = 'boolean'
    Url = 'url'
    Lookup = 'lookup'
    PersonOrGroup = 'personOrGroup'
    Calculated = 'calculated'
    Unknown = 'unknown'


# descriptor facet -> column type, checked in order
FACETS = (
    ('number', ColumnType.Number),
    ('currency', ColumnType.Currency),
    ('choice', ColumnType.Choice),
    ('dateTime', ColumnType.DateTime),
    ('boolean', ColumnType.Boolean),
    ('hyperlinkOrPicture', ColumnType.Url),
    ('lookup', ColumnType.Lookup),
    ('personOrGroup', ColumnType.PersonOrGroup),
    ('calculated', ColumnType.Calculated),
)


@dataclasses.dataclass(frozen=True)
class ColumnInfo:
    """A list column.

    Attributes:
        name: The internal name used in field bags and payloads.
        display_name: The name shown in SharePoint.
        type: The classified column type.
        required: Whether SharePoint requires a value.
        read_only: Whether the column is computed by SharePoint.
        choices: The allowed values of a choice column.
    """
    name: str
    display_name: str
    type: ColumnType = ColumnType.Text
    required: bool = False
    read_only: bool = False
    choices: tuple = ()

    @property
    def is_lookup(self) -> bool:
        return self.type in (ColumnType.Lookup, ColumnType.PersonOrGroup)


def classify_column(descriptor: Dict[str, Any]) -> ColumnType:
    """Return the type of a column descriptor."""
    if 'text' in descriptor:
        text = descriptor.get('text') or {}
        return ColumnType.Multiline if text.get('allowMultipleLines') else ColumnType.Text
    for facet, column_type in FACETS:
        if facet in descriptor:
            return column_type
    return ColumnType.Unknown


def to_column_info(descriptor: Dict[str, Any]) -> ColumnInfo:
    return ColumnInfo(
        name=descriptor.get('name', ''),
        display_name=descriptor.get('displayName', descriptor.get('name', '')),
        type=classify_column(descriptor),
        required=bool(descriptor.get('required', False)),
        read_only=bool(descriptor.get('readOnly', False)),
        choices=tuple((descriptor.get('choice') or {}).get('choices', ())),
    )


def _norm(value: str) -> str:
    return value.strip().casefold()


def get_field_value(fields: Dict[str, Any], candidates: Iterable[str]) -> Any:
    """Return the value of the first candidate present in a field bag.

    Keys are compared case-insensitively. Returns None when no candidate is present.
    """
    lowered = {_norm(k): k for k in fields}
    for candidate in candidates:
        if candidate in fields:
            return fields[candidate]
        key = lowered.get(_norm(candidate))
        if key is not None:
            return fields[key]
    return None


class ColumnResolver:
    """Resolves column spellings of a list against its column descriptors.

    Args:
        client: The :class:`graph.GraphClient`.
        cache: The :class:`metadata.MetadataCache` holding the descriptor and name memos.
    """

    def __init__(self, client: Any, cache: Any) -> None:
        self.client = client
        self.cache = cache

    def _descriptors(self, list_id: str) -> List[Dict[str, Any]]:
        if list_id not in self.cache.columns:
            site_id = self.cache.resolve_site_id()
            self.cache.columns[list_id] = self.client.get_paged(f'/sites/{site_id}/lists/{list_id}/columns')
            logging.debug(f'Fetched {len(self.cache.columns[list_id])} column descriptors for list {list_id}')
        return self.cache.columns[list_id]

    def list_columns(self, list_id: str) -> List[ColumnInfo]:
        """Return every column of a list."""
        return [to_column_info(d) for d in self._descriptors(list_id)]

    def find_column(self, list_id: str, name: str) -> Optional[ColumnInfo]:
        """Return the column whose display or internal name matches ``name``, or None."""
        wanted = _norm(name)
        columns = self.list_columns(list_id)
        # Display names take precedence over internal names
        for column in columns:
            if _norm(column.display_name) == wanted:
                return column
        for column in columns:
            if _norm(column.name) == wanted:
                return column
        return None

    def resolve_column_internal_name(self, list_id: str, display_name: str) -> str:
        """Return the internal name of a column.

        When no column matches, the display name is returned unchanged and a warning is
        logged. Found names are memoized per list.
        """
        key = (list_id, display_name)
        if key in self.cache.internal_names:
            return self.cache.internal_names[key]

        column = self.find_column(list_id, display_name)
        if column is None:
            logging.warning(f'List {list_id} has no column "{display_name}", using the name as given')
            return display_name

        self.cache.internal_names[key] = column.name
        return column.name

    def resolve_column(self, list_id: str, candidates: Sequence[str]) -> Optional[ColumnInfo]:
        """Return the column of the first candidate spelling that exists, or None."""
        for candidate in candidates:
            column = self.find_column(list_id, candidate)
            if column is not None:
                self.cache.internal_names[(list_id, candidate)] = column.name
                return column
        return None

    def validate_mapping(self, list_id: str, specs: Sequence[Any], strict: bool = False,
                         list_name: Optional[str] = None) -> Dict[str, Optional[ColumnInfo]]:
        """Check that each field spec maps to a column of the list.

        Args:
            list_id: The list to validate.
            specs: The :class:`schema.FieldSpec` entries of the entity kind.
            strict: Raise when a required field has no column.
            list_name: Used in messages only.

        Returns:
            dict: Local field name to the resolved column, or None when unresolved.

        Raises:
            status.ColumnNotFoundException: In strict mode, naming every missing required field.
        """
        result: Dict[str, Optional[ColumnInfo]] = {}
        missing: List[str] = []
        for spec in specs:
            column = self.resolve_column(list_id, spec.candidates)
            result[spec.name] = column
            if column is None:
                if spec.required:
                    missing.append(spec.name)
                else:
                    logging.debug(f'{list_name or list_id}: optional field "{spec.name}" has no column')

        if missing:
            if strict:
                raise status.ColumnNotFoundException(list_name or list_id, missing)
            logging.warning(f'{list_name or list_id}: no column for required field(s) {", ".join(missing)}')
        return result
