"""Offset pagination limits for listing endpoints."""

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_pagination(
    limit: int | None,
    offset: int | None,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[int, int]:
    """Clamp caller-supplied pagination into the supported range.

    A missing limit uses the default page size; a non-positive limit becomes
    1; anything above ``max_page_size`` is cut down to it. A missing or
    negative offset becomes 0.

    Returns:
        Tuple of (limit, offset).
    """
    if limit is None:
        limit = DEFAULT_PAGE_SIZE
    if limit <= 0:
        limit = 1
    if limit > max_page_size:
        limit = max_page_size

    if offset is None or offset < 0:
        offset = 0

    return limit, offset
