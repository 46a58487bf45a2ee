import logging

import pytest

from libraryms.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from libraryms.domain.book_copy import CopyStatus, CopyType
from libraryms.domain.reader import ReaderStatus
from libraryms.schemas.schemas import (
    BookCopyCreate,
    BookCopyUpdate,
    BookCreate,
    BookUpdate,
    BorrowCreate,
    CategoryCreate,
    CategoryUpdate,
    ReaderCreate,
    ReaderUpdate,
)
from libraryms.use_cases.books import BookQuery, CreateBook, DeleteBook, GetBooks, UpdateBook
from libraryms.use_cases.borrows import BorrowBook, ReturnBook
from libraryms.use_cases.categories import (
    CreateCategory,
    DeleteCategory,
    GetCategories,
    UpdateCategory,
)
from libraryms.use_cases.copies import (
    BookCopyQuery,
    CreateBookCopy,
    DeleteBookCopy,
    GetBookCopies,
    UpdateBookCopy,
)
from libraryms.use_cases.readers import (
    ActivateReader,
    CreateReader,
    DeactivateReader,
    DeleteReader,
    GetReaders,
    ReaderQuery,
    UpdateReader,
)


def new_book(uow, clock, category, **kw):
    fields = dict(title="Clean Code", author="Robert C. Martin", publisher="Prentice Hall",
                  category_id=category.id)
    fields.update(kw)
    return CreateBook(uow, clock).execute(BookCreate(**fields))


def lend(uow, clock, copy, reader):
    return BorrowBook(uow, clock=clock).execute(
        BorrowCreate(book_copy_id=copy.id, reader_id=reader.id))


# ---- categories
def test_category_crud(uow, clock):
    root = CreateCategory(uow, clock).execute(CategoryCreate(name="Science", sort=2))
    child = CreateCategory(uow, clock).execute(CategoryCreate(name="Physics", parent_id=root.id))
    assert [c.name for c in GetCategories(uow).execute()] == ["Physics", "Science"]

    with pytest.raises(ConflictError):
        CreateCategory(uow, clock).execute(CategoryCreate(name="Science"))
    with pytest.raises(NotFoundError):
        CreateCategory(uow, clock).execute(CategoryCreate(name="Chemistry", parent_id="nope"))

    updated = UpdateCategory(uow, clock).execute(child.id, CategoryUpdate(name="Modern Physics"))
    assert updated.name == "Modern Physics"
    assert updated.parent_id == root.id
    with pytest.raises(ValidationError):
        UpdateCategory(uow, clock).execute(child.id, CategoryUpdate(parent_id=child.id))

    with pytest.raises(ConflictError, match="sub-categories"):
        DeleteCategory(uow).execute(root.id)
    DeleteCategory(uow).execute(child.id)
    DeleteCategory(uow).execute(root.id)
    assert GetCategories(uow).execute() == []


def test_category_with_books_cannot_be_deleted(uow, category, book):
    with pytest.raises(ConflictError, match="1 book"):
        DeleteCategory(uow).execute(category.id)


# ---- books
def test_create_book_normalizes_isbn_and_checks_uniqueness(uow, clock, category, book):
    assert book.isbn == "9780134757599"
    stored = GetBooks(uow).get_by_id(book.id)
    assert stored.title == "Refactoring"
    with pytest.raises(ConflictError, match="ISBN already exists"):
        new_book(uow, clock, category, isbn="9780134757599")
    with pytest.raises(NotFoundError, match="category not found"):
        new_book(uow, clock, category, category_id="missing")
    with pytest.raises(ValidationError):
        new_book(uow, clock, category, isbn="123")


def test_update_book(uow, clock, category, book):
    other = new_book(uow, clock, category, isbn="0306406152")
    with pytest.raises(ConflictError):
        UpdateBook(uow, clock).execute(other.id, BookUpdate(isbn="978-0134757599"))
    clock.advance(days=1)
    updated = UpdateBook(uow, clock).execute(other.id, BookUpdate(title="Clean Architecture",
                                                                  cover_file_id="cover-9"))
    assert updated.title == "Clean Architecture"
    assert updated.author == "Robert C. Martin"
    assert updated.has_cover()
    assert updated.updated_at == clock.now()
    with pytest.raises(NotFoundError):
        UpdateBook(uow, clock).execute(other.id, BookUpdate(category_id="missing"))
    with pytest.raises(ValidationError):
        UpdateBook(uow, clock).execute(other.id, BookUpdate(category_id=None))
    assert GetBooks(uow).get_by_id(other.id).category_id == category.id


def test_book_listing(uow, clock, category, book):
    new_book(uow, clock, category)
    new_book(uow, clock, category, title="The Pragmatic Programmer", author="Hunt")
    books = GetBooks(uow)
    assert books.execute().total == 3
    assert books.execute(BookQuery(search="martin")).total == 2
    assert books.execute(BookQuery(search="9780134757599")).items[0].id == book.id
    page = books.execute(BookQuery(page=2, page_size=2))
    assert len(page.items) == 1
    assert page.total_pages == 2
    assert len(books.get_by_category(category.id)) == 3


def test_popular_books_ranked_by_borrow_count(uow, clock, category, book, physical_copy,
                                              ebook_copy, reader):
    other = new_book(uow, clock, category, title="Domain-Driven Design", author="Eric Evans")
    other_copy = CreateBookCopy(uow, clock).execute(
        BookCopyCreate(book_id=other.id, type="PHYSICAL", total_copies=1))
    new_book(uow, clock, category, title="Never Borrowed", author="Nobody")

    record = lend(uow, clock, physical_copy, reader)
    ReturnBook(uow, clock).execute(record.id)
    lend(uow, clock, physical_copy, reader)
    lend(uow, clock, ebook_copy, reader)
    lend(uow, clock, other_copy, reader)

    # returned loans still count
    assert [b.id for b in GetBooks(uow).get_popular()] == [book.id, other.id]
    assert [b.id for b in GetBooks(uow).get_popular(limit=1)] == [book.id]



def test_delete_book_removes_unused_copies(uow, book, physical_copy):
    DeleteBook(uow).execute(book.id)
    assert uow.books.find_by_id(book.id) is None
    assert uow.copies.find_by_id(physical_copy.id) is None
    with pytest.raises(NotFoundError):
        DeleteBook(uow).execute(book.id)


def test_delete_book_refused_with_borrows(uow, clock, book, physical_copy, reader):
    record = lend(uow, clock, physical_copy, reader)
    with pytest.raises(ConflictError, match="unreturned borrows"):
        DeleteBook(uow).execute(book.id)
    ReturnBook(uow, clock).execute(record.id)
    with pytest.raises(ConflictError, match="borrow history"):
        DeleteBook(uow).execute(book.id)


# ---- copies
def test_create_copy_requires_book(uow, clock):
    with pytest.raises(NotFoundError):
        CreateBookCopy(uow, clock).execute(
            BookCopyCreate(book_id="missing", type="PHYSICAL", total_copies=1))


def test_create_copy_rejects_mixed_fields(uow, clock, book):
    with pytest.raises(ValidationError):
        CreateBookCopy(uow, clock).execute(BookCopyCreate(
            book_id=book.id, type="PHYSICAL", total_copies=1, file_id="f"))
    with pytest.raises(ValidationError):
        CreateBookCopy(uow, clock).execute(BookCopyCreate(
            book_id=book.id, type="EBOOK", ebook_format="pdf", file_id="f", total_copies=1))


def test_copy_round_trips_through_storage(uow, physical_copy, ebook_copy):
    stored = uow.copies.find_by_id(physical_copy.id)
    assert stored.type == CopyType.PHYSICAL
    assert (stored.total_copies, stored.available_copies, stored.location) == (2, 2, "A-3-12")
    stored = uow.copies.find_by_id(ebook_copy.id)
    assert stored.type == CopyType.EBOOK
    assert stored.file_id == "file-001"
    assert not hasattr(stored, "total_copies")


def test_update_physical_copy(uow, clock, physical_copy, reader):
    lend(uow, clock, physical_copy, reader)
    lend(uow, clock, physical_copy, reader)
    copy = UpdateBookCopy(uow, clock).execute(physical_copy.id, BookCopyUpdate(total_copies=5))
    assert (copy.total_copies, copy.available_copies) == (5, 3)
    with pytest.raises(ValidationError, match=r"currently borrowed \(2\)"):
        UpdateBookCopy(uow, clock).execute(physical_copy.id, BookCopyUpdate(total_copies=1))
    with pytest.raises(ValidationError):
        UpdateBookCopy(uow, clock).execute(physical_copy.id, BookCopyUpdate(file_id="f"))
    assert uow.copies.find_by_id(physical_copy.id).total_copies == 5


def test_update_ebook_copy(uow, clock, ebook_copy):
    copy = UpdateBookCopy(uow, clock).execute(ebook_copy.id,
                                              BookCopyUpdate(file_id="file-002", file_size=4096))
    assert (copy.file_id, copy.file_size) == ("file-002", 4096)
    with pytest.raises(ValidationError):
        UpdateBookCopy(uow, clock).execute(ebook_copy.id, BookCopyUpdate(location="B-1"))


def test_marking_lent_copy_unavailable_is_allowed(uow, clock, physical_copy, reader, caplog):
    record = lend(uow, clock, physical_copy, reader)
    with caplog.at_level(logging.WARNING, logger="libraryms.use_cases.copies"):
        copy = UpdateBookCopy(uow, clock).execute(
            physical_copy.id, BookCopyUpdate(status=CopyStatus.MAINTENANCE))
    assert copy.status == CopyStatus.MAINTENANCE
    assert "still borrowed" in caplog.text
    # the loan can still come back, but nobody can take the copy
    ReturnBook(uow, clock).execute(record.id)
    assert uow.copies.find_by_id(physical_copy.id).available_copies == 2
    with pytest.raises(InvalidStateError):
        lend(uow, clock, physical_copy, reader)


def test_delete_copy(uow, clock, physical_copy, ebook_copy, reader):
    record = lend(uow, clock, physical_copy, reader)
    with pytest.raises(ConflictError, match="active borrows"):
        DeleteBookCopy(uow).execute(physical_copy.id)
    ReturnBook(uow, clock).execute(record.id)
    with pytest.raises(ConflictError, match="borrow history"):
        DeleteBookCopy(uow).execute(physical_copy.id)
    DeleteBookCopy(uow).execute(ebook_copy.id)
    assert uow.copies.find_by_id(ebook_copy.id) is None


def test_copy_listing(uow, book, physical_copy, ebook_copy):
    copies = GetBookCopies(uow)
    assert copies.execute(BookCopyQuery(book_id=book.id)).total == 2
    assert [c.id for c in copies.execute(BookCopyQuery(type=CopyType.EBOOK)).items] == [ebook_copy.id]
    assert copies.execute(BookCopyQuery(status=CopyStatus.MAINTENANCE)).total == 0
    assert {c.id for c in copies.get_by_book_id(book.id)} == {physical_copy.id, ebook_copy.id}
    with pytest.raises(NotFoundError):
        copies.get_by_book_id("missing")
    with pytest.raises(NotFoundError):
        copies.get_by_id("missing")


# ---- readers
def test_create_reader_uniqueness(uow, clock, reader):
    assert reader.status == ReaderStatus.ACTIVE
    with pytest.raises(ConflictError, match="already has a reader profile"):
        CreateReader(uow, clock).execute(ReaderCreate(user_id="user-1", name="Again"))
    with pytest.raises(ConflictError, match="student id already exists"):
        CreateReader(uow, clock).execute(
            ReaderCreate(user_id="user-2", name="Dave", student_id="S2024001"))
    with pytest.raises(ValidationError):
        CreateReader(uow, clock).execute(ReaderCreate(user_id="user-3", name="Eve", phone="123"))


def test_update_reader(uow, clock, reader):
    other = CreateReader(uow, clock).execute(
        ReaderCreate(user_id="user-2", name="Dave", student_id="S2024002"))
    with pytest.raises(ConflictError):
        UpdateReader(uow, clock).execute(other.id, ReaderUpdate(student_id="S2024001"))
    updated = UpdateReader(uow, clock).execute(
        other.id, ReaderUpdate(phone="13912345678", max_borrow_limit=10))
    assert updated.phone == "13912345678"
    assert updated.max_borrow_limit == 10
    assert updated.student_id == "S2024002"


def test_reader_activation(uow, clock, reader):
    assert DeactivateReader(uow, clock).execute(reader.id).status == ReaderStatus.INACTIVE
    with pytest.raises(InvalidStateError):
        DeactivateReader(uow, clock).execute(reader.id)
    assert ActivateReader(uow, clock).execute(reader.id).is_active()
    with pytest.raises(NotFoundError):
        ActivateReader(uow, clock).execute("missing")


def test_reader_listing(uow, clock, reader):
    CreateReader(uow, clock).execute(ReaderCreate(user_id="user-2", name="Zed"))
    DeactivateReader(uow, clock).execute(reader.id)
    readers = GetReaders(uow)
    assert readers.execute().total == 2
    assert readers.execute(ReaderQuery(keyword="S2024")).items[0].id == reader.id
    assert readers.execute(ReaderQuery(status=ReaderStatus.ACTIVE)).items[0].name == "Zed"


def test_get_reader_by_student_id(uow, clock, reader):
    CreateReader(uow, clock).execute(ReaderCreate(user_id="user-2", name="Zed"))
    assert GetReaders(uow).get_by_student_id("S2024001").id == reader.id
    with pytest.raises(NotFoundError, match="reader not found: S9999999"):
        GetReaders(uow).get_by_student_id("S9999999")


def test_delete_reader(uow, clock, reader, physical_copy):
    record = lend(uow, clock, physical_copy, reader)
    with pytest.raises(ConflictError, match="unreturned"):
        DeleteReader(uow).execute(reader.id)
    ReturnBook(uow, clock).execute(record.id)
    with pytest.raises(ConflictError, match="deactivate instead"):
        DeleteReader(uow).execute(reader.id)

    fresh = CreateReader(uow, clock).execute(ReaderCreate(user_id="user-5", name="Fay"))
    DeleteReader(uow).execute(fresh.id)
    assert uow.readers.find_by_id(fresh.id) is None
