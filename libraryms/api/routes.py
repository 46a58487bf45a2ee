from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from libraryms.core.clock import Clock, system_clock
from libraryms.core.config import settings
from libraryms.core.database import get_db
from libraryms.domain.book_copy import CopyStatus, CopyType
from libraryms.domain.borrow_policy import BorrowPolicy
from libraryms.domain.borrow_record import BorrowStatus
from libraryms.domain.reader import ReaderStatus
from libraryms.repositories.sql import SqlAlchemyUnitOfWork
from libraryms.schemas import schemas
from libraryms.use_cases import books, borrows, categories, copies, readers

router = APIRouter()


def get_uow(db: Session = Depends(get_db)) -> SqlAlchemyUnitOfWork:
    return SqlAlchemyUnitOfWork(db)


def get_clock() -> Clock:
    return system_clock


def get_policy() -> BorrowPolicy:
    return settings.borrow_policy()


# -----------------------------
# Categories
# -----------------------------
@router.post("/categories/", response_model=schemas.CategoryOut)
def create_category(category_in: schemas.CategoryCreate, uow=Depends(get_uow), clock=Depends(get_clock)):
    category = categories.CreateCategory(uow, clock).execute(category_in)
    return schemas.CategoryOut.from_category(category)

@router.get("/categories/", response_model=List[schemas.CategoryOut])
def list_categories(uow=Depends(get_uow)):
    return [schemas.CategoryOut.from_category(c) for c in categories.GetCategories(uow).execute()]

@router.get("/categories/{category_id}", response_model=schemas.CategoryOut)
def read_category(category_id: str, uow=Depends(get_uow)):
    return schemas.CategoryOut.from_category(categories.GetCategories(uow).get_by_id(category_id))

@router.put("/categories/{category_id}", response_model=schemas.CategoryOut)
def update_category(category_id: str, category_upd: schemas.CategoryUpdate, uow=Depends(get_uow),
                    clock=Depends(get_clock)):
    category = categories.UpdateCategory(uow, clock).execute(category_id, category_upd)
    return schemas.CategoryOut.from_category(category)

@router.delete("/categories/{category_id}")
def delete_category(category_id: str, uow=Depends(get_uow)):
    categories.DeleteCategory(uow).execute(category_id)
    return {"ok": True}

# -----------------------------
# Books
# -----------------------------
@router.post("/books/", response_model=schemas.BookOut)
def create_book(book_in: schemas.BookCreate, uow=Depends(get_uow), clock=Depends(get_clock)):
    return books.CreateBook(uow, clock).execute(book_in)

@router.get("/books/", response_model=schemas.PageOut[schemas.BookOut])
def list_books(q: Optional[str] = Query(None, description="search title, author or isbn"),
               category_id: Optional[str] = None, page: int = Query(1, ge=1),
               page_size: Optional[int] = Query(None, ge=1, le=settings.max_page_size), uow=Depends(get_uow)):
    result = books.GetBooks(uow).execute(
        books.BookQuery(page=page, page_size=page_size, category_id=category_id, search=q))
    return schemas.PageOut[schemas.BookOut].from_page(result, schemas.BookOut.model_validate)

@router.get("/books/popular/list", response_model=List[schemas.BookOut])
def popular_books(limit: int = Query(10, ge=1, le=100), uow=Depends(get_uow)):
    return books.GetBooks(uow).get_popular(limit)

@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: str, uow=Depends(get_uow)):
    return books.GetBooks(uow).get_by_id(book_id)

@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: str, book_upd: schemas.BookUpdate, uow=Depends(get_uow),
                clock=Depends(get_clock)):
    return books.UpdateBook(uow, clock).execute(book_id, book_upd)

@router.delete("/books/{book_id}")
def delete_book(book_id: str, uow=Depends(get_uow)):
    books.DeleteBook(uow).execute(book_id)
    return {"ok": True}

@router.get("/books/{book_id}/copies", response_model=List[schemas.BookCopyOut])
def list_book_copies(book_id: str, uow=Depends(get_uow)):
    return [schemas.BookCopyOut.from_copy(c)
            for c in copies.GetBookCopies(uow).get_by_book_id(book_id)]

# -----------------------------
# Book copies
# -----------------------------
@router.post("/copies/", response_model=schemas.BookCopyOut)
def create_copy(copy_in: schemas.BookCopyCreate, uow=Depends(get_uow), clock=Depends(get_clock)):
    return schemas.BookCopyOut.from_copy(copies.CreateBookCopy(uow, clock).execute(copy_in))

@router.get("/copies/", response_model=schemas.PageOut[schemas.BookCopyOut])
def list_copies(book_id: Optional[str] = None, type: Optional[CopyType] = None,
                status: Optional[CopyStatus] = None, page: int = Query(1, ge=1),
                page_size: Optional[int] = Query(None, ge=1, le=settings.max_page_size), uow=Depends(get_uow)):
    result = copies.GetBookCopies(uow).execute(copies.BookCopyQuery(
        page=page, page_size=page_size, book_id=book_id, type=type, status=status))
    return schemas.PageOut[schemas.BookCopyOut].from_page(result, schemas.BookCopyOut.from_copy)

@router.get("/copies/{copy_id}", response_model=schemas.BookCopyOut)
def read_copy(copy_id: str, uow=Depends(get_uow)):
    return schemas.BookCopyOut.from_copy(copies.GetBookCopies(uow).get_by_id(copy_id))

@router.put("/copies/{copy_id}", response_model=schemas.BookCopyOut)
def update_copy(copy_id: str, copy_upd: schemas.BookCopyUpdate, uow=Depends(get_uow),
                clock=Depends(get_clock)):
    copy = copies.UpdateBookCopy(uow, clock).execute(copy_id, copy_upd)
    return schemas.BookCopyOut.from_copy(copy)

@router.delete("/copies/{copy_id}")
def delete_copy(copy_id: str, uow=Depends(get_uow)):
    copies.DeleteBookCopy(uow).execute(copy_id)
    return {"ok": True}

# -----------------------------
# Readers
# -----------------------------
@router.post("/readers/", response_model=schemas.ReaderOut)
def create_reader(reader_in: schemas.ReaderCreate, uow=Depends(get_uow), clock=Depends(get_clock)):
    return schemas.ReaderOut.from_reader(readers.CreateReader(uow, clock).execute(reader_in))

@router.get("/readers/", response_model=schemas.PageOut[schemas.ReaderOut])
def list_readers(keyword: Optional[str] = None, status: Optional[ReaderStatus] = None,
                 page: int = Query(1, ge=1), page_size: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
                 uow=Depends(get_uow)):
    result = readers.GetReaders(uow).execute(
        readers.ReaderQuery(page=page, page_size=page_size, keyword=keyword, status=status))
    return schemas.PageOut[schemas.ReaderOut].from_page(result, schemas.ReaderOut.from_reader)

@router.get("/readers/student/{student_id}", response_model=schemas.ReaderOut)
def read_reader_by_student_id(student_id: str, uow=Depends(get_uow)):
    return schemas.ReaderOut.from_reader(readers.GetReaders(uow).get_by_student_id(student_id))

@router.get("/readers/{reader_id}", response_model=schemas.ReaderOut)
def read_reader(reader_id: str, uow=Depends(get_uow)):
    return schemas.ReaderOut.from_reader(readers.GetReaders(uow).get_by_id(reader_id))

@router.put("/readers/{reader_id}", response_model=schemas.ReaderOut)
def update_reader(reader_id: str, reader_upd: schemas.ReaderUpdate, uow=Depends(get_uow),
                  clock=Depends(get_clock)):
    reader = readers.UpdateReader(uow, clock).execute(reader_id, reader_upd)
    return schemas.ReaderOut.from_reader(reader)

@router.delete("/readers/{reader_id}")
def delete_reader(reader_id: str, uow=Depends(get_uow)):
    readers.DeleteReader(uow).execute(reader_id)
    return {"ok": True}

@router.post("/readers/{reader_id}/activate", response_model=schemas.ReaderOut)
def activate_reader(reader_id: str, uow=Depends(get_uow), clock=Depends(get_clock)):
    return schemas.ReaderOut.from_reader(readers.ActivateReader(uow, clock).execute(reader_id))

@router.post("/readers/{reader_id}/deactivate", response_model=schemas.ReaderOut)
def deactivate_reader(reader_id: str, uow=Depends(get_uow), clock=Depends(get_clock)):
    return schemas.ReaderOut.from_reader(readers.DeactivateReader(uow, clock).execute(reader_id))

@router.get("/readers/{reader_id}/statistics", response_model=schemas.ReaderStatisticsOut)
def reader_statistics(reader_id: str, uow=Depends(get_uow)):
    return readers.GetReaderStatistics(uow).execute(reader_id)

# -----------------------------
# Borrows (borrow, return, renew, overdue sweep)
# -----------------------------
@router.post("/borrows/", response_model=schemas.BorrowOut)
def borrow_book(borrow_in: schemas.BorrowCreate, uow=Depends(get_uow), clock=Depends(get_clock),
                policy=Depends(get_policy)):
    record = borrows.BorrowBook(uow, policy, clock).execute(borrow_in)
    return schemas.BorrowOut.from_record(record, clock.now(), policy)

@router.post("/borrows/check-overdue", response_model=schemas.OverdueSweepOut)
def check_overdue(uow=Depends(get_uow), clock=Depends(get_clock)):
    return {"updated": borrows.CheckOverdue(uow, clock).execute()}

@router.get("/borrows/policy", response_model=schemas.BorrowPolicyOut)
def borrow_policy(policy=Depends(get_policy)):
    return schemas.BorrowPolicyOut.from_policy(policy)

@router.get("/borrows/overdue", response_model=List[schemas.BorrowOut])
def list_overdue(limit: int = Query(100, ge=1, le=1000), uow=Depends(get_uow),
                 clock=Depends(get_clock), policy=Depends(get_policy)):
    now = clock.now()
    return [schemas.BorrowOut.from_record(r, now, policy)
            for r in borrows.GetBorrows(uow, clock).get_overdue(limit)]

@router.post("/borrows/{record_id}/return", response_model=schemas.BorrowOut)
def return_book(record_id: str, uow=Depends(get_uow), clock=Depends(get_clock),
                policy=Depends(get_policy)):
    record = borrows.ReturnBook(uow, clock).execute(record_id)
    return schemas.BorrowOut.from_record(record, clock.now(), policy)

@router.post("/borrows/{record_id}/renew", response_model=schemas.BorrowOut)
def renew_borrow(record_id: str, renew_in: Optional[schemas.RenewRequest] = None,
                 uow=Depends(get_uow), clock=Depends(get_clock), policy=Depends(get_policy)):
    record = borrows.RenewBorrow(uow, policy, clock).execute(record_id, renew_in)
    return schemas.BorrowOut.from_record(record, clock.now(), policy)

@router.get("/borrows/", response_model=schemas.PageOut[schemas.BorrowOut])
def list_borrows(reader_id: Optional[str] = None, book_copy_id: Optional[str] = None,
                 status: Optional[BorrowStatus] = None, page: int = Query(1, ge=1),
                 page_size: Optional[int] = Query(None, ge=1, le=settings.max_page_size), uow=Depends(get_uow),
                 clock=Depends(get_clock), policy=Depends(get_policy)):
    now = clock.now()
    result = borrows.GetBorrows(uow, clock).execute(borrows.BorrowQuery(
        page=page, page_size=page_size, reader_id=reader_id, book_copy_id=book_copy_id,
        status=status))
    return schemas.PageOut[schemas.BorrowOut].from_page(
        result, lambda r: schemas.BorrowOut.from_record(r, now, policy))

@router.get("/borrows/{record_id}", response_model=schemas.BorrowOut)
def read_borrow(record_id: str, uow=Depends(get_uow), clock=Depends(get_clock),
                policy=Depends(get_policy)):
    record = borrows.GetBorrows(uow, clock).get_by_id(record_id)
    return schemas.BorrowOut.from_record(record, clock.now(), policy)
