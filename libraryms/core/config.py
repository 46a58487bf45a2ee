import logging
import os
from dataclasses import dataclass
from typing import Optional

from libraryms.domain.borrow_policy import BorrowPolicy

# -----------------------------
# Configuration & Logging
# -----------------------------


@dataclass
class Settings:
    database_url: str = os.getenv("LIBRARY_DB", "sqlite:///./library.db")
    log_level: str = os.getenv("LIBRARY_LOG", "INFO")

    default_borrow_days: int = int(os.getenv("LIBRARY_BORROW_DAYS", "30"))
    max_renew_count: int = int(os.getenv("LIBRARY_MAX_RENEW", "2"))
    renew_days: int = int(os.getenv("LIBRARY_RENEW_DAYS", "30"))

    default_page_size: int = int(os.getenv("LIBRARY_PAGE_SIZE", "20"))
    max_page_size: int = int(os.getenv("LIBRARY_MAX_PAGE_SIZE", "100"))

    def borrow_policy(self) -> BorrowPolicy:
        return BorrowPolicy(
            default_borrow_days=self.default_borrow_days,
            max_renew_count=self.max_renew_count,
            renew_days=self.renew_days,
        )


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=level or settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s - %(message)s")
