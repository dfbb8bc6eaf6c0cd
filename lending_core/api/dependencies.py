"""
Request dependencies shared by the routers
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query, Request

from ..system import LendingSystem


def get_lending_system(request: Request) -> LendingSystem:
    return request.app.state.system


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int


def get_page_params(
    page: int = Query(1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, description="Items per page"),
    system: LendingSystem = Depends(get_lending_system)
) -> PageParams:
    """Default the page size from configuration and cap it at the maximum"""
    if limit is None:
        limit = system.config.default_page_size
    return PageParams(page=page, limit=min(limit, system.config.max_page_size))
