import math
from typing import Optional

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_pagination(page: Optional[float] = None, page_size: Optional[float] = None) -> tuple[int, int]:
    """Floor and clamp raw pagination params: page >= 1, 1 <= page_size <= MAX_PAGE_SIZE."""
    page = DEFAULT_PAGE if page is None else page
    page_size = DEFAULT_PAGE_SIZE if page_size is None else page_size
    return (
        max(1, math.floor(page)),
        min(MAX_PAGE_SIZE, max(1, math.floor(page_size))),
    )


def page_window(page: int, page_size: int, total_items: int) -> tuple[int, int, int]:
    """
    Clamp `page` to the pages that exist and compute the row offset.

    Returns:
        Tuple of (page, total pages, skip)
    """
    total_pages = max(1, math.ceil(total_items / page_size))
    page = max(1, min(page, total_pages))
    return page, total_pages, (page - 1) * page_size
