"""
Tests for the catalog: books, categories and bookshelves.
"""

import pytest

from library_api.database import (
    BookRepository,
    BookshelfRepository,
    CategoryRepository,
    ConflictError,
    DuplicateError,
    InvalidArgumentError,
    NotFoundError,
    PaginationParams,
)
from library_api.database.schema import BorrowRecord as BorrowDB
from library_api.models.book import BookCreate, BookSearchParams, BookUpdate
from library_api.models.borrow import BorrowRequestCreate, ReturnInput
from library_api.models.catalog import (
    BookshelfCreate,
    BookshelfUpdate,
    CategoryCreate,
    CategoryUpdate,
    MoveBooksInput,
)


@pytest.fixture
def book_repo(session):
    return BookRepository(session)


@pytest.fixture
def category_repo(session):
    return CategoryRepository(session)


@pytest.fixture
def shelf_repo(session):
    return BookshelfRepository(session)


@pytest.fixture
def fiction(category_repo):
    return category_repo.create(CategoryCreate(name="Fiction"))


@pytest.fixture
def shelves(shelf_repo):
    return (
        shelf_repo.create(BookshelfCreate(code="A-01", name="Shelf A1", location="Floor 1")),
        shelf_repo.create(BookshelfCreate(code="B-01", name="Shelf B1", location="Floor 2")),
    )


class TestBookCrud:
    def test_create_with_inventory_and_links(self, book_repo, fiction, shelves):
        book = book_repo.create(
            BookCreate(
                title="Clean Code",
                isbn="978-0-13-235088-4",
                author="Robert C. Martin",
                price=250_000,
                category_ids=[fiction.id],
                bookshelf_id=shelves[0].id,
                quantity=4,
            )
        )

        assert book.id.startswith("book_")
        assert book.isbn == "9780132350884"
        assert [c.name for c in book.categories] == ["Fiction"]
        assert book.bookshelf.code == "A-01"
        assert book.inventory.total == 4
        assert book.inventory.available == 4

    def test_duplicate_isbn(self, book_repo, book):
        with pytest.raises(DuplicateError):
            book_repo.create(BookCreate(title="Copy", isbn=book.isbn, author="Someone"))

    def test_unknown_category(self, book_repo):
        with pytest.raises(NotFoundError, match="Category"):
            book_repo.create(
                BookCreate(
                    title="T", isbn="9780000009999", author="A", category_ids=["category_nope"]
                )
            )

    def test_unknown_bookshelf(self, book_repo):
        with pytest.raises(NotFoundError, match="Bookshelf"):
            book_repo.create(
                BookCreate(title="T", isbn="9780000009999", author="A", bookshelf_id="shelf_nope")
            )

    def test_update_fields_and_quantity(self, book_repo, book):
        updated = book_repo.update(book.id, BookUpdate(title="New Title", quantity=5))

        assert updated.title == "New Title"
        assert updated.inventory.total == 5
        assert updated.inventory.available == 5

    def test_cannot_shrink_below_copies_out(self, book_repo, borrowed):
        with pytest.raises(InvalidArgumentError):
            book_repo.update(borrowed.book_id, BookUpdate(quantity=0))

    def test_update_to_taken_isbn(self, book_repo, make_book):
        first = make_book()
        second = make_book()
        with pytest.raises(DuplicateError):
            book_repo.update(second.id, BookUpdate(isbn=first.isbn))

    def test_delete_book(self, book_repo, book):
        book_repo.delete(book.id)
        assert book_repo.get_by_id(book.id) is None

    def test_cannot_delete_with_active_borrow(self, book_repo, borrowed):
        with pytest.raises(ConflictError, match="pending or borrowed"):
            book_repo.delete(borrowed.book_id)

    def test_delete_keeps_history(self, session, book_repo, borrow_repo, users, borrowed):
        borrow_repo.return_book(borrowed.id, users["staff"], ReturnInput())

        book_repo.delete(borrowed.book_id)

        record = session.get(BorrowDB, borrowed.id, populate_existing=True)
        assert record is not None
        assert record.book_id is None


class TestBookSearch:
    @pytest.fixture
    def catalog(self, make_book, fiction, shelves):
        return [
            make_book(title="The Hobbit", author="J.R.R. Tolkien", quantity=2,
                      category_ids=[fiction.id], bookshelf_id=shelves[0].id, publish_year=1937),
            make_book(title="Dune", author="Frank Herbert", quantity=0,
                      category_ids=[fiction.id], publish_year=1965),
            make_book(title="Cosmos", author="Carl Sagan", quantity=1,
                      bookshelf_id=shelves[1].id, publish_year=1980),
        ]

    def test_free_text(self, book_repo, catalog):
        result = book_repo.search(BookSearchParams(query="hobbit"))
        assert [b.title for b in result.items] == ["The Hobbit"]

        result = book_repo.search(BookSearchParams(query="sagan"))
        assert [b.title for b in result.items] == ["Cosmos"]

    def test_filters(self, book_repo, catalog, fiction, shelves):
        assert book_repo.search(BookSearchParams(category=fiction.id)).total == 2
        assert book_repo.search(BookSearchParams(bookshelf=shelves[1].id)).total == 1
        assert book_repo.search(BookSearchParams(publish_year=1965)).items[0].title == "Dune"
        assert book_repo.search(BookSearchParams(author="tolkien")).total == 1

    def test_available_only_counts_correctly(self, book_repo, catalog):
        result = book_repo.search(
            BookSearchParams(available_only=True), PaginationParams(page=1, page_size=1)
        )

        assert result.total == 2
        assert result.total_pages == 2
        assert result.has_next is True
        assert all(b.inventory.available > 0 for b in result.items)

    def test_sorting(self, book_repo, catalog):
        result = book_repo.search(BookSearchParams(sort_by="title", sort_order="asc"))
        assert [b.title for b in result.items] == ["Cosmos", "Dune", "The Hobbit"]

        result = book_repo.search(BookSearchParams(sort_by="publish_year", sort_order="desc"))
        assert [b.publish_year for b in result.items] == [1980, 1965, 1937]


class TestCategories:
    def test_crud(self, category_repo, fiction):
        assert [c.name for c in category_repo.list_all()] == ["Fiction"]

        updated = category_repo.update(fiction.id, CategoryUpdate(description="Made up stories"))
        assert updated.description == "Made up stories"

        category_repo.delete(fiction.id)
        assert category_repo.list_all() == []

    def test_names_unique_ignoring_case(self, category_repo, fiction):
        with pytest.raises(DuplicateError):
            category_repo.create(CategoryCreate(name="fiction"))

    def test_cannot_delete_category_in_use(self, category_repo, make_book, fiction):
        make_book(category_ids=[fiction.id])
        with pytest.raises(ConflictError, match="used by 1 book"):
            category_repo.delete(fiction.id)

    def test_statistics(self, category_repo, make_book, fiction, borrow_repo, users):
        book = make_book(quantity=3, category_ids=[fiction.id])
        record = borrow_repo.create_request(users["reader"], BorrowRequestCreate(book_id=book.id))
        borrow_repo.approve(record.id, users["staff"])
        category_repo.create(CategoryCreate(name="Poetry"))

        stats = {s.category.name: s for s in category_repo.statistics()}

        assert stats["Fiction"].book_titles == 1
        assert stats["Fiction"].total_books == 3
        assert stats["Fiction"].borrowed_books == 1
        assert stats["Poetry"].total_books == 0


class TestBookshelves:
    def test_codes_unique(self, shelf_repo, shelves):
        with pytest.raises(DuplicateError):
            shelf_repo.create(BookshelfCreate(code="A-01", name="Another"))
        with pytest.raises(DuplicateError):
            shelf_repo.update(shelves[1].id, BookshelfUpdate(code="A-01"))

    def test_shelf_contents(self, shelf_repo, make_book, shelves):
        book = make_book(bookshelf_id=shelves[0].id)

        shelf = shelf_repo.get_with_books(shelves[0].id)
        assert [b.id for b in shelf.books] == [book.id]

    def test_cannot_delete_shelf_with_books(self, shelf_repo, make_book, shelves):
        make_book(bookshelf_id=shelves[0].id)
        with pytest.raises(ConflictError, match="move them first"):
            shelf_repo.delete(shelves[0].id)
        shelf_repo.delete(shelves[1].id)
        assert [s.code for s in shelf_repo.list_all()] == ["A-01"]

    def test_move_books(self, shelf_repo, book_repo, make_book, shelves):
        on_a = make_book(bookshelf_id=shelves[0].id)
        elsewhere = make_book(bookshelf_id=shelves[1].id)

        result = shelf_repo.move_books(
            MoveBooksInput(
                from_bookshelf_id=shelves[0].id,
                to_bookshelf_id=shelves[1].id,
                book_ids=[on_a.id, elsewhere.id],
            )
        )

        assert result.moved_count == 1
        assert result.message == "Successfully moved 1 books from Shelf A1 to Shelf B1"
        assert book_repo.get(on_a.id).bookshelf.id == shelves[1].id

    def test_move_to_unknown_shelf(self, shelf_repo, shelves):
        with pytest.raises(NotFoundError, match="One or both"):
            shelf_repo.move_books(
                MoveBooksInput(
                    from_bookshelf_id=shelves[0].id, to_bookshelf_id="shelf_nope", book_ids=["x"]
                )
            )

    def test_statistics(self, shelf_repo, make_book, shelves):
        make_book(quantity=2, bookshelf_id=shelves[0].id)
        make_book(quantity=3, bookshelf_id=shelves[0].id)

        stats = {s.bookshelf.code: s for s in shelf_repo.statistics()}
        assert stats["A-01"].book_titles == 2
        assert stats["A-01"].total_books == 5
        assert stats["B-01"].book_titles == 0
