"""Test Repository end to end against an in-memory database."""

import json

import pytest

from tablescribe.core.database import Database
from tablescribe.core.results import Affected, Failed, RowCollection, Rows
from tablescribe.repositories.base import Repository
from tablescribe.repositories.errors import TypeMismatchError, UnboundTableError
from tests.factories import Author, Book, create_author, create_book


class TestEmptyTable:
    """Test behaviour before any row exists."""

    def test_select_on_empty_table(self, author_repo: Repository[Author]) -> None:
        result = author_repo.select([{"firstName": "Ada"}]).execute()

        assert result == Rows()

    def test_fetch_all_on_empty_table(self, author_repo: Repository[Author]) -> None:
        result = author_repo.fetch_all()

        assert isinstance(result, RowCollection)
        assert result == []

    def test_fetch_all_to_json_on_empty_table(self, author_repo: Repository[Author]) -> None:
        assert author_repo.fetch_all(to_json=True) == "[]"

    def test_unmapped_model_cannot_be_bound(self, database: Database) -> None:
        with pytest.raises(UnboundTableError):
            Repository(None, database)  # type: ignore[arg-type]


class TestInsertAndSelect:
    """Test writes followed by reads."""

    def test_inserted_entity_is_selectable(self, author_repo: Repository[Author]) -> None:
        """Test inserting entities then selecting by the same criteria."""
        ada = Author(first_name="Ada", last_name="Lovelace", email="ada@example.com")

        assert author_repo.insert([ada]).execute() == Affected(1)
        result = author_repo.select({"lastName": "Lovelace"}).execute()

        assert isinstance(result, Rows)
        assert len(result.rows) == 1
        found = result.rows.first()
        assert found.id == ada.id
        assert found.first_name == "Ada"
        assert found.email == "ada@example.com"

    def test_select_by_entity(self, author_repo: Repository[Author]) -> None:
        author_repo.insert([
            {"firstName": "Ada", "lastName": "Lovelace"},
            {"firstName": "Alan", "lastName": "Turing"},
        ]).execute()

        rows = author_repo.select(Author(last_name="Turing")).execute().rows

        assert [author.first_name for author in rows] == ["Alan"]

    def test_flush_makes_writes_durable(self, database: Database) -> None:
        """Test flush() commits for every repository on the same database."""
        authors = Repository(Author, database)
        books = Repository(Book, database)

        authors.insert({"id": 1, "firstName": "Ada", "lastName": "Lovelace"}).execute()
        books.insert({"isbn": "1", "title": "Notes", "authorId": 1}).execute()
        assert books.flush() is True

        database.rollback()

        assert len(authors.fetch_all()) == 1
        assert len(books.fetch_all()) == 1

    def test_type_mismatch_surfaces(self, author_repo: Repository[Author]) -> None:
        with pytest.raises(TypeMismatchError):
            author_repo.insert("Ada Lovelace")

        assert author_repo.fetch_all() == []


class TestUpdateAndDelete:
    """Test updates and deletes through the repository."""

    def test_update_entity(self, database: Database, author_repo: Repository[Author]) -> None:
        author = create_author(database, first_name="Ada")
        author.first_name = "Augusta"

        assert author_repo.update(author).execute() == Affected(1)
        assert author_repo.find_one(author.id).first_name == "Augusta"

    def test_update_by_other_property(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        create_author(database, first_name="Ada", email="ada@example.com")

        author_repo.update({"email": "ada@example.com", "lastName": "King"}, "email").execute()

        assert author_repo.find_one_by("email", "ada@example.com").last_name == "King"

    def test_delete(self, database: Database, author_repo: Repository[Author]) -> None:
        author = create_author(database, first_name="Ada")
        create_author(database, first_name="Alan")

        assert author_repo.delete(author).execute() == Affected(1)
        assert [a.first_name for a in author_repo.fetch_all()] == ["Alan"]


class TestFinders:
    """Test finders over seeded data."""

    @pytest.fixture(autouse=True)
    def seed(self, database: Database) -> None:
        ada = create_author(database, first_name="Ada", last_name="Lovelace", email="ada@example.com")
        create_author(database, first_name="Ada", last_name="Byron", email="byron@example.com")
        create_author(database, first_name="Alan", last_name="Turing", email="alan@example.com")
        create_book(database, author=ada, isbn="9780000000001", title="Notes", published_year=1843)
        create_book(database, isbn="9780000000002", title="Untitled", published_year=1900)

    def test_find_one_where_returns_first_match(self, author_repo: Repository[Author]) -> None:
        """Test only the first of several matches is returned."""
        first = author_repo.find_where({"firstName": "Ada"}).first()

        found = author_repo.find_one_where({"firstName": "Ada"})

        assert found.id == first.id
        assert found.last_name == "Lovelace"

    def test_find_one_where_no_match(self, author_repo: Repository[Author]) -> None:
        assert author_repo.find_one_where({"firstName": "Grace"}) is None
        assert author_repo.find_one_where({"firstName": "Grace"}, to_json=True) == "{}"

    def test_find_one_where_to_json(self, author_repo: Repository[Author]) -> None:
        data = json.loads(author_repo.find_one_where({"lastName": "Turing"}, to_json=True))

        assert data["first_name"] == "Alan"
        assert data["email"] == "alan@example.com"

    def test_find_where_alternatives(self, author_repo: Repository[Author]) -> None:
        rows = author_repo.find_where([{"lastName": "Turing"}, {"lastName": "Byron"}])

        assert sorted(author.last_name for author in rows) == ["Byron", "Turing"]

    def test_find_where_failure_is_empty(self, author_repo: Repository[Author]) -> None:
        """Test malformed criteria read as "nothing found"."""
        assert author_repo.find_where({"nickname": "Ada"}) == []

    def test_find_where_to_json_failure_passes_through(
        self, author_repo: Repository[Author]
    ) -> None:
        result = author_repo.find_where({"nickname": "Ada"}, to_json=True)

        assert isinstance(result, Failed)

    def test_find_equals_find_by_primary_key(self, author_repo: Repository[Author]) -> None:
        for author in author_repo.fetch_all():
            expected = author_repo.find_by("id", author.id).to_dicts()
            assert author_repo.find(author.id).to_dicts() == expected

    def test_find_with_non_default_primary_key(self, book_repo: Repository[Book]) -> None:
        """Test find() keys on "isbn" for books."""
        found = book_repo.find("9780000000001")

        assert [book.title for book in found] == ["Notes"]
        assert found.to_dicts() == book_repo.find_by("isbn", "9780000000001").to_dicts()

    def test_find_one_with_entity_equals_find_one_with_id(
        self, author_repo: Repository[Author]
    ) -> None:
        ada = author_repo.find_one_by("email", "ada@example.com")

        assert author_repo.find_one(ada).to_dict() == author_repo.find_one(ada.id).to_dict()

    def test_find_one_with_book_entity(self, book_repo: Repository[Book]) -> None:
        probe = Book(isbn="9780000000002", title="Anything")

        assert book_repo.find_one(probe).title == "Untitled"

    def test_finder(self, author_repo: Repository[Author]) -> None:
        """Test finder("Email") is find_by("Email", ...)."""
        by_email = author_repo.finder("Email")

        expected = author_repo.find_by("Email", "alan@example.com").to_dicts()
        assert by_email("alan@example.com").to_dicts() == expected
        assert [author.first_name for author in by_email("alan@example.com")] == ["Alan"]

    def test_find_by_to_json(self, author_repo: Repository[Author]) -> None:
        data = json.loads(author_repo.find_by("firstName", "Ada", to_json=True))

        assert len(data) == 2

    def test_find_by_column_with_different_attribute_key(self, book_repo: Repository[Book]) -> None:
        """Test criteria address columns, not attribute keys."""
        assert [book.title for book in book_repo.find_by("year", 1843)] == ["Notes"]


class TestQueryShaping:
    """Test ordering, limits and joins through the repository."""

    @pytest.fixture(autouse=True)
    def seed(self, database: Database) -> None:
        ada = create_author(database, first_name="Ada", last_name="Lovelace")
        create_author(database, first_name="Alan", last_name="Turing")
        create_author(database, first_name="Grace", last_name="Hopper")
        create_book(database, author=ada, isbn="1", title="Notes")

    def test_order_and_limit(self, author_repo: Repository[Author]) -> None:
        rows = (
            author_repo.order_by("lastName", Repository.ORDER_DESC)
            .limit(2)
            .select()
            .execute()
            .rows
        )

        assert [author.last_name for author in rows] == ["Turing", "Lovelace"]

    def test_always_join_applies_to_fetch_all(self, author_repo: Repository[Author]) -> None:
        """Test an inner always-join restricts every select."""
        author_repo.always_join("books")

        assert [author.first_name for author in author_repo.fetch_all()] == ["Ada"]
        assert [author.first_name for author in author_repo.fetch_all()] == ["Ada"]

    def test_always_join_last_options_win(self, author_repo: Repository[Author]) -> None:
        author_repo.always_join("books")
        author_repo.always_join("books", {"type": "left"})

        assert len(author_repo.fetch_all()) == 3

    def test_join_criteria_on_joined_table(self, author_repo: Repository[Author]) -> None:
        rows = author_repo.always_join("books").select({"books.title": "Notes"}).execute().rows

        assert [author.first_name for author in rows] == ["Ada"]


class TestSharedTransaction:
    """Test how repositories on one database share its transaction."""

    def test_failed_read_keeps_unflushed_writes(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        """Test a finder with a bad column does not discard earlier inserts."""
        author_repo.insert({"firstName": "Ada", "lastName": "Lovelace"}).execute()

        assert author_repo.find_by("noSuchColumn", 1) == []
        author_repo.flush()
        database.rollback()

        assert len(author_repo.fetch_all()) == 1

    def test_failed_read_keeps_other_repository_writes(self, database: Database) -> None:
        writer = Repository(Author, database)
        reader = Repository(Author, database)

        writer.insert({"firstName": "Ada", "lastName": "Lovelace"}).execute()
        assert reader.find_where({"bogus": 1}) == []
        database.flush()
        database.rollback()

        assert len(writer.fetch_all()) == 1

    def test_failed_write_keeps_earlier_writes(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        """Test a constraint violation only undoes its own batch."""
        author_repo.insert(
            {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"}
        ).execute()

        result = author_repo.insert(
            {"firstName": "Ada", "lastName": "King", "email": "ada@example.com"}
        ).execute()

        assert isinstance(result, Failed)
        author_repo.flush()
        database.rollback()
        assert [author.last_name for author in author_repo.fetch_all()] == ["Lovelace"]

    def test_selected_entities_are_detached(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        create_author(database, first_name="Ada")

        ada = author_repo.find_one_by("firstName", "Ada")

        assert ada not in database.session

    def test_editing_fetched_entity_writes_nothing(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        """Test only queued writes reach the database on flush()."""
        create_author(database, first_name="Ada", last_name="Lovelace")
        author_repo.flush()

        ada = author_repo.find_one_by("lastName", "Lovelace")
        ada.first_name = "Changed"
        author_repo.flush()
        database.rollback()

        assert author_repo.find_one_by("lastName", "Lovelace").first_name == "Ada"

    def test_edited_entity_is_written_by_update(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        create_author(database, first_name="Ada", last_name="Lovelace")

        ada = author_repo.find_one_by("lastName", "Lovelace")
        ada.first_name = "Augusta"
        author_repo.update(ada).execute()
        author_repo.flush()

        assert author_repo.find_one_by("lastName", "Lovelace").first_name == "Augusta"

    def test_delete_edited_entity_then_flush(
        self, database: Database, author_repo: Repository[Author]
    ) -> None:
        """Test deleting a fetched entity with unsaved edits commits cleanly."""
        create_author(database, first_name="Ada", last_name="Lovelace")
        author_repo.flush()

        ada = author_repo.find_one_by("lastName", "Lovelace")
        ada.email = "x@y.z"

        assert author_repo.delete(ada).execute() == Affected(1)
        assert author_repo.flush() is True
        assert author_repo.fetch_all() == []
