"""
QuickMock Record Store

In-memory named collections of JSON records with CRUD, filtering,
pagination and reseeding.

Each collection remembers whether its ids were numeric at seed time
(its "id kind") and coerces every stored id accordingly, so a client
comparing ids with strict equality never sees ``5`` turn into ``"5"``.
"""

import copy
import uuid
from dataclasses import dataclass
from typing import List, Dict, Any, Optional

from .errors import NotFoundError
from .template import stringify, coerce_literal

JsonRecord = Dict[str, Any]

ID_KIND_NUMBER = 'number'
ID_KIND_STRING = 'string'


@dataclass
class ListResult:
    """A page of records plus the filtered, unpaginated total."""

    items: List[JsonRecord]
    total: int


class Collection:
    """
    One resource's records, keyed by the stringified id.

    Example:
        users = Collection('users', 'id', [{'id': 1, 'name': 'Ada'}])
        users.create({'name': 'Grace'})
        users.list(filters={'name': 'Ada'}).total  # 1
    """

    def __init__(self, name: str, id_field: str = 'id', items: Optional[List[JsonRecord]] = None):
        self.name = name
        self.id_field = id_field
        self.seed_items: List[JsonRecord] = copy.deepcopy(items or [])
        self.id_kind = self._detect_id_kind(self.seed_items, id_field)
        self.records: Dict[str, JsonRecord] = {}
        self.reset()

    @staticmethod
    def _detect_id_kind(items: List[JsonRecord], id_field: str) -> str:
        for item in items:
            value = item.get(id_field)
            if value is None:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return ID_KIND_NUMBER
            return ID_KIND_STRING
        return ID_KIND_STRING

    @staticmethod
    def _key(value: Any) -> str:
        return stringify(value)

    @staticmethod
    def _generate_id() -> str:
        return str(uuid.uuid4())

    def _coerce_id(self, key: str) -> Any:
        if self.id_kind == ID_KIND_NUMBER:
            value = coerce_literal(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
        return key

    def _store(self, key: str, data: JsonRecord) -> JsonRecord:
        record = {**data, self.id_field: self._coerce_id(key)}
        self.records[key] = record
        return dict(record)

    def reset(self):
        """Restore the seed set; items seeded without an id get a fresh one."""
        self.records = {}
        for item in copy.deepcopy(self.seed_items):
            value = item.get(self.id_field)
            key = self._key(value) if value is not None else self._generate_id()
            self._store(key, item)

    def list(
        self,
        filters: Optional[Dict[str, str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> ListResult:
        """
        List records matching every filter, then paginate.

        Args:
            filters: Field name to expected value; compared as strings
            limit: Maximum number of records to return
            offset: Number of filtered records to skip

        Returns:
            ListResult whose total counts filtered records before pagination
        """
        items = list(self.records.values())

        if filters:
            items = [
                item for item in items
                if all(key in item and stringify(item[key]) == str(value) for key, value in filters.items())
            ]

        total = len(items)
        start = max(offset or 0, 0)
        if limit is not None:
            items = items[start:start + max(limit, 0)]
        elif start:
            items = items[start:]

        return ListResult(items=[dict(item) for item in items], total=total)

    def get(self, record_id: str) -> Optional[JsonRecord]:
        record = self.records.get(str(record_id))
        return dict(record) if record is not None else None

    def create(self, data: JsonRecord) -> JsonRecord:
        """Insert a record, generating an id when the id field is absent."""
        supplied = data.get(self.id_field)
        key = self._key(supplied) if supplied is not None else self._generate_id()
        return self._store(key, data)

    def update(self, record_id: str, data: JsonRecord) -> Optional[JsonRecord]:
        """Replace a record wholesale; the id always stays the path id."""
        key = str(record_id)
        if key not in self.records:
            return None
        return self._store(key, data)

    def patch(self, record_id: str, data: JsonRecord) -> Optional[JsonRecord]:
        """Shallow-merge ``data`` into an existing record."""
        key = str(record_id)
        existing = self.records.get(key)
        if existing is None:
            return None
        return self._store(key, {**existing, **data})

    def remove(self, record_id: str) -> bool:
        return self.records.pop(str(record_id), None) is not None

    def __len__(self) -> int:
        return len(self.records)


class RecordStore:
    """Named collections belonging to one mock server instance."""

    def __init__(self):
        self.collections: Dict[str, Collection] = {}

    def seed(self, name: str, id_field: str, items: List[JsonRecord]) -> Collection:
        """Create (or replace) a collection from seed items."""
        collection = Collection(name, id_field, items)
        self.collections[name] = collection
        return collection

    def collection(self, name: str) -> Collection:
        """
        Look up a collection by name.

        Raises:
            NotFoundError: If no collection has that name
        """
        try:
            return self.collections[name]
        except KeyError:
            raise NotFoundError(f"Collection '{name}' not found") from None

    def list(self, name: str, filters: Optional[Dict[str, str]] = None,
             limit: Optional[int] = None, offset: Optional[int] = None) -> ListResult:
        if name not in self.collections:
            return ListResult(items=[], total=0)
        return self.collections[name].list(filters, limit, offset)

    def get(self, name: str, record_id: str) -> Optional[JsonRecord]:
        if name not in self.collections:
            return None
        return self.collections[name].get(record_id)

    def create(self, name: str, data: JsonRecord) -> JsonRecord:
        return self.collection(name).create(data)

    def update(self, name: str, record_id: str, data: JsonRecord) -> Optional[JsonRecord]:
        return self.collection(name).update(record_id, data)

    def patch(self, name: str, record_id: str, data: JsonRecord) -> Optional[JsonRecord]:
        return self.collection(name).patch(record_id, data)

    def remove(self, name: str, record_id: str) -> bool:
        if name not in self.collections:
            return False
        return self.collections[name].remove(record_id)

    def reset(self):
        """Re-seed every collection."""
        for collection in self.collections.values():
            collection.reset()

    def names(self) -> List[str]:
        return list(self.collections.keys())

    def counts(self) -> Dict[str, int]:
        """Live record count per collection."""
        return {name: len(collection) for name, collection in self.collections.items()}
