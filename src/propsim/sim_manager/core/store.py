"""
Arena-style storage for id-keyed engine entities.

`Table` wraps a list owned by the GameState (so the state stays a plain
JSON document) and exposes explicit create/read/update/delete by stable id.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Iterator, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class Table(Generic[T]):
    """
    Id-keyed CRUD view over a list of pydantic models.

    Example:
        >>> table = Table(state.tenants)
        >>> table.add(tenant)
        >>> table.get(tenant.id) is tenant
        True
    """

    def __init__(self, rows: list[T], key: str = "id") -> None:
        self._rows = rows
        self._key = key

    def _id_of(self, row: T) -> str:
        return getattr(row, self._key)

    def add(self, row: T) -> T:
        """
        Insert a row.

        Raises:
            ValueError: If a row with the same id already exists
        """
        if self.get(self._id_of(row)) is not None:
            raise ValueError(f"Duplicate id '{self._id_of(row)}'")
        self._rows.append(row)
        return row

    def get(self, row_id: str) -> T | None:
        for row in self._rows:
            if self._id_of(row) == row_id:
                return row
        return None

    def require(self, row_id: str) -> T:
        """
        Fetch a row that must exist.

        Raises:
            KeyError: If no row has the id
        """
        row = self.get(row_id)
        if row is None:
            raise KeyError(row_id)
        return row

    def update(self, row_id: str, **changes: Any) -> T | None:
        row = self.get(row_id)
        if row is None:
            return None
        for field_name, value in changes.items():
            setattr(row, field_name, value)
        return row

    def remove(self, row_id: str) -> T | None:
        for index, row in enumerate(self._rows):
            if self._id_of(row) == row_id:
                return self._rows.pop(index)
        return None

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [row for row in self._rows if predicate(row)]

    def all(self) -> list[T]:
        return list(self._rows)

    def __contains__(self, row_id: object) -> bool:
        return any(self._id_of(row) == row_id for row in self._rows)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._rows))

    def __len__(self) -> int:
        return len(self._rows)
