"""Shared utility functions."""

from typing import TypeVar

from stitchlab.shared.schemas import OffsetPagination, PaginatedResponse

T = TypeVar("T")


def paginate_response(
    items: list[T],
    total: int,
    limit: int,
    skip: int,
) -> PaginatedResponse[T]:
    """Create a paginated response from a page of items and the total count.

    Args:
        items: Rows for the current page.
        total: Count of all matching rows (from a separate count query).
        limit: Page size used for the query.
        skip: Offset used for the query.

    Returns:
        PaginatedResponse with ``has_more`` derived from the count.
    """
    return PaginatedResponse[T](
        data=items,
        pagination=OffsetPagination(
            total=total,
            limit=limit,
            skip=skip,
            has_more=skip + limit < total,
        ),
    )
