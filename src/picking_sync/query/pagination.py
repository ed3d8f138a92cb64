"""Page arithmetic shared by online and offline list views."""

from dataclasses import dataclass, field

from picking_sync.utils.constants import PAGE_SIZE


def page_range(page_index: int, page_size: int, total: int) -> tuple[int, int]:
    """Inclusive 1-based ``(start, end)`` shown for a page; ``(0, 0)`` when empty."""
    if total <= 0 or page_size <= 0:
        return 0, 0
    page_index = max(page_index, 0)
    end = min((page_index + 1) * page_size, total)
    start = min(page_index * page_size + 1, end)
    return start, end


def format_page_range(page_index: int, page_size: int, total: int) -> str:
    start, end = page_range(page_index, page_size, total)
    return f"{start}-{end}"


@dataclass
class Page:
    items: list = field(default_factory=list)
    page_index: int = 0
    page_size: int = PAGE_SIZE
    total: int = 0
    has_next: bool = False

    @property
    def range_label(self) -> str:
        return format_page_range(self.page_index, self.page_size, self.total)


def has_next_page(page_index: int, page_size: int, total: int) -> bool:
    return total > (page_index + 1) * page_size


def paginate(items: list, page_index: int = 0,
             page_size: int = PAGE_SIZE) -> Page:
    """Slice an in-memory list (the offline path) into a ``Page``."""
    page_index = max(page_index, 0)
    total = len(items)
    offset = page_index * page_size
    return Page(
        items=list(items[offset:offset + page_size]),
        page_index=page_index,
        page_size=page_size,
        total=total,
        has_next=has_next_page(page_index, page_size, total),
    )
