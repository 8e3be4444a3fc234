from __future__ import annotations
from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 25


@dataclass(frozen=True)
class Pagination:
    number: int = 1  # starts at 1
    size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_query(cls, page: Optional[int], page_size: Optional[int]) -> "Pagination":
        number = page if page and page > 0 else 1
        size = page_size if page_size and 0 < page_size <= DEFAULT_PAGE_SIZE else DEFAULT_PAGE_SIZE
        return cls(number=number, size=size)

    @property
    def offset(self) -> int:
        return 0 if self.number <= 1 else (self.number - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


@dataclass
class Page(Generic[T]):
    records: List[T] = field(default_factory=list)
    total_records: int = 0
    pagination: Pagination = field(default_factory=Pagination)

    @property
    def total_pages(self) -> int:
        # round up for partial pages
        return (self.total_records + self.pagination.size - 1) // self.pagination.size
