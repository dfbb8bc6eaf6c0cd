"""
Pagination helpers shared by the list operations
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence
import math

from .exceptions import ValidationError


@dataclass
class Page:
    """One page of a list result"""
    items: List[Any]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def meta(self) -> Dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}


def paginate(items: Sequence[Any], page: int = 1, limit: int = 100) -> Page:
    """Slice an already-sorted sequence; page numbers start at 1"""
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    start = (page - 1) * limit
    return Page(items=list(items[start:start + limit]), page=page, limit=limit, total=len(items))
