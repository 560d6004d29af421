"""
Document schemas stored in the Items container.

Field aliases match the stored JSON (``id``, ``State``, ``FirstName``...),
so documents written by other clients of the same container round-trip.
Python code uses snake_case names; serialize with ``to_document()``.

Document Types:
    - Item: one person record, partitioned by State
    - ItemCounts: per-run summary, fixed id in the __METADATA__ partition
"""

from collections import Counter
from collections.abc import Iterable
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict[str, Any]:
        """Serialize with stored field names."""
        return self.model_dump(by_alias=True, mode="json")


class Item(_Document):
    """A person record. ``id`` is the e-mail address; ``State`` is the partition value."""

    id: str = Field(min_length=1, frozen=True)
    document_type: str = Field(default="Item", alias="DocumentType")
    address: str = Field(default="", alias="Address")
    state: str = Field(min_length=1, alias="State")
    first_name: str = Field(default="", alias="FirstName")
    last_name: str = Field(default="", alias="LastName")
    email: str = Field(default="", alias="Email")

    @property
    def partition_key(self) -> str:
        return self.state


class StateCount(_Document):
    """Number of items stored under one partition value."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    state: str = Field(alias="State")
    count: int = Field(ge=0, alias="Count")


class ItemCounts(_Document):
    """
    Aggregate written once per bulk insert run.

    Lives in its own partition so it never collides with item data.
    """

    DOCUMENT_ID: ClassVar[str] = "2cac2e9f-af19-4aa8-a340-b7c1302dc59b"
    PARTITION_KEY: ClassVar[str] = "__METADATA__"

    id: str = DOCUMENT_ID
    document_type: str = Field(default="Counts", alias="DocumentType")
    state: str = Field(default=PARTITION_KEY, alias="State")
    counts: list[StateCount] = Field(default_factory=list, alias="Counts")

    @field_validator("id")
    @classmethod
    def _fixed_id(cls, value: str) -> str:
        if value != cls.DOCUMENT_ID:
            raise ValueError(f"ItemCounts id must be {cls.DOCUMENT_ID}")
        return value

    @field_validator("state")
    @classmethod
    def _fixed_partition(cls, value: str) -> str:
        if value != cls.PARTITION_KEY:
            raise ValueError(f"ItemCounts partition must be {cls.PARTITION_KEY}")
        return value

    @property
    def partition_key(self) -> str:
        return self.state

    @property
    def total(self) -> int:
        return sum(c.count for c in self.counts)

    @classmethod
    def from_partition_values(cls, partition_values: Iterable[str]) -> "ItemCounts":
        """Group and count partition values, ordered by first appearance."""
        counter = Counter(partition_values)
        return cls(counts=[StateCount(state=s, count=n) for s, n in counter.items()])
