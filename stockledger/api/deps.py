from fastapi import Header, Query

from stockledger.config import settings
from stockledger.schemas.inventory import Pagination


def get_actor(x_actor: str | None = Header(default=None, alias="X-Actor")) -> str:
    """Identity of the caller, recorded as created_by on ledger entries."""
    return (x_actor or "").strip() or "system"


class PageParams:
    def __init__(self, page: int = Query(1, ge=1), limit: int | None = Query(None, ge=1)):
        self.page = page
        self.limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def pagination(self, total: int) -> Pagination:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total=total,
            total_pages=(total + self.limit - 1) // self.limit if total else 0,
        )
