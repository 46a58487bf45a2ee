import uuid

from libraryms.core.config import settings


def new_id() -> str:
    return str(uuid.uuid4())


def page_args(page, page_size):
    """Clamp paging input to sane values."""
    page = max(page or 1, 1)
    page_size = min(max(page_size or settings.default_page_size, 1), settings.max_page_size)
    return page, page_size
