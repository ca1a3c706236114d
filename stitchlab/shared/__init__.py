"""Shared utilities used across features."""

from stitchlab.shared.models import TimestampMixin
from stitchlab.shared.schemas import OffsetPagination, PaginatedResponse
from stitchlab.shared.utils import paginate_response

__all__ = [
    "OffsetPagination",
    "PaginatedResponse",
    "TimestampMixin",
    "paginate_response",
]
