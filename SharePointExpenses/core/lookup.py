"""Reference resolution between lists.

Expenses point at companies, categories, document types, projects and
collaborators by row id. Callers may pass either the id or a business key (a
company's razón social, a category's name). The resolver fetches a list once, keeps
its rows in store order and builds an index per set of key columns, so repeated
lookups never hit the network until the list changes and the index is invalidated.
"""
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from .columns import get_field_value
from ..status import status


def normalize_key(value: Any) -> str:
    """Normalize a business key for comparison: trimmed and case-folded."""
    return str(value).strip().casefold()


class LookupResolver:
    """Session-scoped business key to row id resolver.

    Args:
        client: The :class:`graph.GraphClient`.
        cache: The :class:`metadata.MetadataCache` used to resolve list ids.
    """

    def __init__(self, client: Any, cache: Any) -> None:
        self.client = client
        self.cache = cache

        # list name -> {row id: fields}, in store order
        self._rows: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # (list name, key columns) -> {normalized key: row id}
        self._indexes: Dict[Tuple[str, Tuple[str, ...]], Dict[str, str]] = {}

    def _load(self, list_name: str) -> Dict[str, Dict[str, Any]]:
        if list_name not in self._rows:
            list_id = self.cache.resolve_list_id(list_name)
            items = self.client.get_list_items(self.cache.resolve_site_id(), list_id)
            self._rows[list_name] = {str(item['id']): item.get('fields', {}) for item in items}
            logging.debug(f'Loaded {len(items)} rows of "{list_name}" for lookups')
        return self._rows[list_name]

    def _index(self, list_name: str, field_candidates: Sequence[str]) -> Dict[str, str]:
        key = (list_name, tuple(field_candidates))
        if key in self._indexes:
            return self._indexes[key]

        index: Dict[str, str] = {}
        for row_id, fields in self._load(list_name).items():
            value = get_field_value(fields, field_candidates)
            if value is None or not str(value).strip():
                continue
            normalized = normalize_key(value)
            if normalized in index:
                logging.warning(
                    f'"{list_name}": rows {index[normalized]} and {row_id} share the key "{value}", '
                    f'using {index[normalized]}'
                )
                continue
            index[normalized] = row_id

        self._indexes[key] = index
        return index

    def resolve_row_id_by_field(self, list_name: str, field_candidates: Sequence[str],
                                match_value: Any) -> Optional[str]:
        """Return the id of the row whose key field equals ``match_value``.

        The key field is the first of ``field_candidates`` present on a row. Comparison
        ignores case and surrounding whitespace. When several rows share a key, the
        first in store order wins.

        Returns:
            str: The row id, or None when nothing matches.
        """
        if match_value is None:
            return None
        return self._index(list_name, field_candidates).get(normalize_key(match_value))

    def resolve_reference(self, list_name: str, field_candidates: Sequence[str], value: Any,
                          required: bool = False, field: Optional[str] = None) -> Optional[str]:
        """Translate a reference given as row id or business key into a row id.

        A value equal to an existing row id is taken as that id. Anything else is
        looked up by business key.

        Raises:
            status.LookupUnresolvedException: If ``required`` and the value does not resolve.
        """
        if value is None or not str(value).strip():
            if required:
                raise status.LookupUnresolvedException(list_name, value, field=field)
            return None

        rows = self._load(list_name)
        if str(value).strip() in rows:
            return str(value).strip()

        row_id = self.resolve_row_id_by_field(list_name, field_candidates, value)
        if row_id is not None:
            logging.debug(f'Resolved "{value}" to {list_name}/{row_id}')
            return row_id

        if required:
            raise status.LookupUnresolvedException(list_name, value, field=field)
        logging.warning(f'Optional reference "{value}" not found in "{list_name}", leaving it empty')
        return None

    def get_row(self, list_name: str, row_id: Any) -> Optional[Dict[str, Any]]:
        """Return the fields of a row, or None."""
        if row_id is None:
            return None
        return self._load(list_name).get(str(row_id))

    def invalidate(self, list_name: str) -> None:
        """Forget the rows and indexes of a list so the next lookup refetches it."""
        self._rows.pop(list_name, None)
        for key in [k for k in self._indexes if k[0] == list_name]:
            del self._indexes[key]

    def clear(self) -> None:
        self._rows.clear()
        self._indexes.clear()
