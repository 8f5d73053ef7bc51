# src/app/infra/db/base.py
"""
Abstract base class for the record store.
This interface allows swapping the partitioned key-value backend.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, NamedTuple, Optional

Item = dict[str, Any]


class RecordKey(NamedTuple):
    """Primary key of a record: partition plus sort dimension."""
    pk: str
    sk: str

    def as_dict(self) -> dict[str, str]:
        return {"PK": self.pk, "SK": self.sk}

    @classmethod
    def of(cls, item: Item) -> "RecordKey":
        return cls(str(item["PK"]), str(item["SK"]))


@dataclass
class Precondition:
    """
    Guard evaluated atomically by the store before a write.

    ``not_equals`` also holds when the attribute is missing.
    """
    must_exist: bool = False
    must_not_exist: bool = False
    equals: dict[str, Any] = field(default_factory=dict)
    not_equals: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.must_exist and self.must_not_exist:
            raise ValueError("must_exist and must_not_exist are mutually exclusive")


@dataclass
class Page:
    """One page of items and the token to resume after it."""
    items: list[Item]
    next_token: Optional[str] = None


class RecordStore(ABC):
    """
    Abstract interface for persistence access.

    Every operation is synchronous and either returns or raises one of the
    errors in ``src.app.domain.errors``; store-specific exceptions never leak.

    Implementations:
    - DynamoRecordStore: single-table DynamoDB through boto3
    """

    @abstractmethod
    def get(self, key: RecordKey) -> Optional[Item]:
        """
        Read a single record.

        Args:
            key: Primary key

        Returns:
            The item, or None if it does not exist
        """

    @abstractmethod
    def put(self, item: Item, precondition: Optional[Precondition] = None) -> None:
        """
        Write a whole record, overwriting any existing one unless guarded.

        Args:
            item: Record including its PK/SK attributes
            precondition: Optional guard

        Raises:
            ConflictError: If the precondition is not met
        """

    @abstractmethod
    def conditional_update(
        self,
        key: RecordKey,
        changes: dict[str, Any],
        precondition: Optional[Precondition] = None,
    ) -> Item:
        """
        Set attributes on an existing record.

        Args:
            key: Primary key
            changes: Attribute values to set
            precondition: Optional guard

        Returns:
            The full record after the update

        Raises:
            ConflictError: If the precondition is not met
        """

    @abstractmethod
    def delete(self, key: RecordKey) -> None:
        pass

    @abstractmethod
    def query_by_prefix(
        self,
        partition: str,
        sort_prefix: str,
        limit: Optional[int] = None,
        reverse: bool = False,
        page_token: Optional[str] = None,
        index_name: Optional[str] = None,
    ) -> Page:
        """
        Query records of one partition whose sort key starts with a prefix.

        Args:
            partition: Partition value (PK, or the index partition attribute)
            sort_prefix: Sort key prefix
            limit: Max items in the page
            reverse: Descending sort order (newest first for time-ordered keys)
            page_token: Token returned by a previous page
            index_name: Secondary index to query instead of the table

        Returns:
            Page of items
        """

    @abstractmethod
    def scan(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> Page:
        """Full-table scan with equality filters. Administrative use only."""

    @abstractmethod
    def batch_read(self, keys: Iterable[RecordKey]) -> list[Item]:
        """Read many records; missing keys are simply absent from the result."""

    @abstractmethod
    def batch_write(
        self,
        puts: Iterable[Item] = (),
        deletes: Iterable[RecordKey] = (),
    ) -> None:
        pass

    def iter_query(
        self,
        partition: str,
        sort_prefix: str,
        reverse: bool = False,
        index_name: Optional[str] = None,
    ) -> Iterator[Item]:
        """Yield every record matching the prefix, following page tokens."""
        token: Optional[str] = None
        while True:
            page = self.query_by_prefix(
                partition,
                sort_prefix,
                reverse=reverse,
                page_token=token,
                index_name=index_name,
            )
            yield from page.items
            if not page.next_token:
                return
            token = page.next_token
