"""Small maintenance utilities: create tables, seed sample data, run the
overdue sweep from cron, or serve the API."""

import argparse
import logging

from libraryms.core.config import configure_logging, settings
from libraryms.core.database import SessionLocal, init_db
from libraryms.repositories.sql import SqlAlchemyUnitOfWork
from libraryms.schemas.schemas import BookCopyCreate, BookCreate, CategoryCreate, ReaderCreate
from libraryms.use_cases.books import CreateBook
from libraryms.use_cases.borrows import CheckOverdue
from libraryms.use_cases.categories import CreateCategory
from libraryms.use_cases.copies import CreateBookCopy
from libraryms.use_cases.readers import CreateReader

logger = logging.getLogger(__name__)


def seed(uow: SqlAlchemyUnitOfWork) -> bool:
    """Insert a few sample rows; does nothing once any category exists."""
    if uow.categories.find_all():
        return False
    tech = CreateCategory(uow).execute(CategoryCreate(name="Technology"))
    ddia = CreateBook(uow).execute(BookCreate(
        title="Designing Data-Intensive Applications", author="Martin Kleppmann",
        publisher="O'Reilly", category_id=tech.id, isbn="978-1-4493-7332-0"))
    fluent = CreateBook(uow).execute(BookCreate(
        title="Fluent Python", author="Luciano Ramalho", publisher="O'Reilly",
        category_id=tech.id, isbn="978-1-4919-4600-8"))
    CreateBookCopy(uow).execute(BookCopyCreate(book_id=ddia.id, type="PHYSICAL", total_copies=2,
                                               location="A-1-01"))
    CreateBookCopy(uow).execute(BookCopyCreate(book_id=fluent.id, type="PHYSICAL", total_copies=3,
                                               location="A-1-02"))
    CreateBookCopy(uow).execute(BookCopyCreate(book_id=fluent.id, type="EBOOK", ebook_format="epub",
                                               file_id="fluent-python-2e"))
    CreateReader(uow).execute(ReaderCreate(user_id="alice", name="Alice", email="alice@example.com"))
    CreateReader(uow).execute(ReaderCreate(user_id="bob", name="Bob", email="bob@example.com"))
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="Library management utilities")
    parser.add_argument("--initdb", action="store_true", help="Create tables")
    parser.add_argument("--seed", action="store_true", help="Seed sample data")
    parser.add_argument("--check-overdue", action="store_true",
                        help="Mark borrows past their due date as overdue")
    parser.add_argument("--serve", action="store_true", help="Run the API with uvicorn")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    configure_logging()
    init_db()

    if args.seed or args.check_overdue:
        db = SessionLocal()
        try:
            uow = SqlAlchemyUnitOfWork(db)
            if args.seed:
                if seed(uow):
                    logger.info("Seeded sample data")
                else:
                    logger.info("Database already has data, skipping seed")
            if args.check_overdue:
                CheckOverdue(uow).execute()
        finally:
            db.close()

    if args.serve:
        import uvicorn

        logger.info(f"Serving on {args.host}:{args.port} using {settings.database_url}")
        uvicorn.run("libraryms.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
