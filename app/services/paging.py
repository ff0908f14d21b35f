from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, select

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class PageQuery:
    page_num: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (max(self.page_num, 1) - 1) * self.limit

    @property
    def limit(self) -> int:
        return min(max(self.page_size, 1), MAX_PAGE_SIZE)


def paginate(session: Session, statement: Any, page: PageQuery | None) -> tuple[list[Any], int]:
    """Run ``statement`` for one page and return ``(rows, total)``.

    ``page=None`` returns every row.
    """
    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
    total = int(session.exec(count_statement).one())
    if page is not None:
        statement = statement.offset(page.offset).limit(page.limit)
    return list(session.exec(statement).all()), total
