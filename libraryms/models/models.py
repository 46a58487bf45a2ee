from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from libraryms.core.database import Base


class Category(Base):
    __tablename__ = "categories"
    id = Column(String(36), primary_key=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    sort = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    books = relationship("Book", back_populates="category")


class Book(Base):
    __tablename__ = "books"
    id = Column(String(36), primary_key=True)
    isbn = Column(String(13), unique=True, index=True, nullable=True)
    title = Column(String(300), nullable=False, index=True)
    author = Column(String(200), nullable=False, index=True)
    publisher = Column(String(200), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, index=True)
    cover_file_id = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    publish_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    category = relationship("Category", back_populates="books")
    copies = relationship("BookCopy", back_populates="book")

Index('ix_books_title_author', Book.title, Book.author)


class BookCopy(Base):
    __tablename__ = "book_copies"
    id = Column(String(36), primary_key=True)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="AVAILABLE", index=True)
    # physical only
    total_copies = Column(Integer, nullable=True)
    available_copies = Column(Integer, nullable=True)
    location = Column(String(200), nullable=True)
    # ebook only
    ebook_format = Column(String(10), nullable=True)
    file_id = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)
    # bumped on every UPDATE; a stale version fails the flush
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    book = relationship("Book", back_populates="copies")
    borrows = relationship("BorrowRecord", back_populates="book_copy")

    __mapper_args__ = {"version_id_col": version}


class Reader(Base):
    __tablename__ = "readers"
    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False, index=True)
    student_id = Column(String(50), unique=True, nullable=True, index=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE", index=True)
    max_borrow_limit = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    borrows = relationship("BorrowRecord", back_populates="reader")


class BorrowRecord(Base):
    __tablename__ = "borrow_records"
    id = Column(String(36), primary_key=True)
    book_copy_id = Column(String(36), ForeignKey("book_copies.id"), nullable=False, index=True)
    reader_id = Column(String(36), ForeignKey("readers.id"), nullable=False, index=True)
    borrow_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True, index=True)
    return_date = Column(DateTime, nullable=True)
    renew_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="BORROWED", index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    book_copy = relationship("BookCopy", back_populates="borrows")
    reader = relationship("Reader", back_populates="borrows")

    __mapper_args__ = {"version_id_col": version}

Index('ix_borrow_records_status_due', BorrowRecord.status, BorrowRecord.due_date)
