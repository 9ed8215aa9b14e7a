from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

import pytest

from rowbound import (
    ConstraintViolationError,
    DecodingError,
    NotFoundError,
    Record,
    delete,
    delete_key,
    exists,
    fetch,
    insert,
    key_mapping,
    save,
    update,
)
from rowbound.query import decode_record
from rowbound.storage.sqlite import create_schema, drop_schema

from library import Author, Book, BookTag, Genre, Review, Tag


class Priority(Enum):
    LOW = 1
    HIGH = 2


class Entry(Record):
    table_name = "entries"

    id: int | None = None
    amount: Decimal
    priority: Priority = Priority.LOW
    recorded_at: datetime | None = None


class Slot(Record):
    table_name = "slots"
    primary_key = ("priority",)

    priority: Priority
    label: str


def test_insert_assigns_key_and_round_trips(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="Herman Melville", born=date(1819, 8, 1)))
            book = await insert(
                ex, Book(title="Moby-Dick", author_id=author.id, genre=Genre.NOVEL, year=1851)
            )
        async with db.connect() as ex:
            stored_author = await fetch(Author).filter_key(author.id).fetch_one(ex)
            stored_book = await fetch(Book).filter_key(book.id).fetch_one(ex)
        return author, book, stored_author, stored_book

    author, book, stored_author, stored_book = run_db(scenario)

    assert author.id is not None
    assert book.id is not None
    assert stored_author == author
    assert stored_author.born == date(1819, 8, 1)
    assert stored_book == book
    assert stored_book.genre is Genre.NOVEL


def test_insert_leaves_the_input_untouched(run_db) -> None:
    draft = Author(name="Emily Dickinson")

    async def scenario(db):
        async with db.transaction() as ex:
            return await insert(ex, draft)

    stored = run_db(scenario)

    assert draft.id is None
    assert stored.id is not None
    assert stored.name == draft.name


def test_renamed_column_json_and_datetime_values(run_db) -> None:
    posted = datetime(2024, 3, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))

    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="Herman Melville"))
            book = await insert(ex, Book(title="Moby-Dick", author_id=author.id))
            review = await insert(
                ex,
                Review(
                    book_id=book.id,
                    stars=5,
                    body="Call me impressed.",
                    posted_at=posted,
                    labels={"source": "letters"},
                ),
            )
        async with db.connect() as ex:
            return review, await fetch(Review).filter_key(review.id).fetch_one(ex)

    review, stored = run_db(scenario)

    assert stored.body == "Call me impressed."
    assert stored.labels == {"source": "letters"}
    assert stored.posted_at == posted
    assert stored.posted_at.utcoffset() == timedelta(0)
    assert stored.id == review.id


def test_update_rewrites_columns(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="H. Melville"))
            renamed = await update(ex, author.model_copy(update={"name": "Herman Melville"}))
        async with db.connect() as ex:
            return renamed, await fetch(Author).filter_key(author.id).fetch_one(ex)

    renamed, stored = run_db(scenario)

    assert stored == renamed
    assert stored.name == "Herman Melville"


def test_update_missing_row_raises(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            with pytest.raises(NotFoundError):
                await update(ex, Author(id=404, name="Nobody"))
            with pytest.raises(NotFoundError):
                await update(ex, Author(name="Unsaved"))
            with pytest.raises(NotFoundError):
                await update(ex, Tag(label="missing"))

    run_db(scenario)


def test_save_is_idempotent(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            first = await save(ex, Author(name="Emily Dickinson"))
            second = await save(ex, first)
            third = await save(ex, second.model_copy(update={"born": date(1830, 12, 10)}))
            count = await fetch(Author).fetch_count(ex)
        return first, second, third, count

    first, second, third, count = run_db(scenario)

    assert count == 1
    assert first == second
    assert third.id == first.id
    assert third.born == date(1830, 12, 10)


def test_save_with_explicit_key_inserts_then_updates(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            await save(ex, Tag(label="sea"))
            await save(ex, Tag(label="sea"))
            return await fetch(Tag).fetch_all(ex)

    assert run_db(scenario) == [Tag(label="sea")]


def test_delete_reports_whether_a_row_was_removed(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="Temporary"))
            removed = await delete(ex, author)
            removed_again = await delete(ex, author)
            unsaved = await delete(ex, Author(name="Never stored"))
            still_there = await exists(ex, Author, author.id)
        return removed, removed_again, unsaved, still_there

    assert run_db(scenario) == (True, False, False, False)


def test_composite_keys(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="Herman Melville"))
            book = await insert(ex, Book(title="Moby-Dick", author_id=author.id))
            await insert(ex, Tag(label="sea"))
            await insert(ex, Tag(label="whales"))
            await insert(ex, BookTag(book_id=book.id, tag_label="sea"))
            await insert(ex, BookTag(book_id=book.id, tag_label="whales"))
            found = await exists(ex, BookTag, (book.id, "sea"))
            removed = await delete_key(ex, BookTag, (book.id, "whales"))
            remaining = await fetch(BookTag).fetch_all(ex)
        return book, found, removed, remaining

    book, found, removed, remaining = run_db(scenario)

    assert found is True
    assert removed is True
    assert remaining == [BookTag(book_id=book.id, tag_label="sea")]


def test_missing_natural_key_cannot_be_inserted(run_db) -> None:
    class Draft(Record):
        table_name = "drafts"
        primary_key = ("code",)

        code: str | None = None
        title: str

    async def scenario(db):
        async with db.transaction() as ex:
            with pytest.raises(ValueError, match="needs a primary key"):
                await insert(ex, Draft(title="Untitled"))

    run_db(scenario)


def test_foreign_key_violation_is_reported(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            await insert(ex, Book(title="Orphaned", author_id=999))

    with pytest.raises(ConstraintViolationError):
        run_db(scenario)


def test_duplicate_key_is_reported(run_db) -> None:
    async def scenario(db):
        async with db.transaction() as ex:
            await insert(ex, Tag(label="sea"))
            await insert(ex, Tag(label="sea"))

    with pytest.raises(ConstraintViolationError):
        run_db(scenario)


def test_failed_transaction_keeps_nothing(run_db) -> None:
    async def scenario(db):
        with pytest.raises(ConstraintViolationError):
            async with db.transaction() as ex:
                await insert(ex, Author(name="Rolled back"))
                await insert(ex, Book(title="Orphaned", author_id=999))
        async with db.connect() as ex:
            return await fetch(Author).fetch_count(ex)

    assert run_db(scenario) == 0


def test_decode_named_row() -> None:
    mapping = key_mapping(Review)
    row = {
        "id": 1,
        "book_id": 2,
        "stars": 4,
        "review_text": "Fine",
        "posted_at": None,
        "labels": {},
    }

    review = decode_record(mapping, row)

    assert review == Review(id=1, book_id=2, stars=4, body="Fine")


def test_decode_missing_column_fails() -> None:
    with pytest.raises(DecodingError, match="no column 'born'"):
        decode_record(key_mapping(Author), {"id": 1, "name": "Herman Melville"})


def test_decode_positional_rows() -> None:
    mapping = key_mapping(Author)

    assert decode_record(mapping, (1, "Herman Melville", None)) == Author(
        id=1, name="Herman Melville"
    )
    with pytest.raises(DecodingError, match="positional"):
        decode_record(mapping, (1, "Herman Melville"))


def test_decode_invalid_values_fails() -> None:
    with pytest.raises(DecodingError):
        decode_record(key_mapping(Book), (1, "Moby-Dick", 1, "saga", None))


def test_with_transaction_runs_body(run_db) -> None:
    async def scenario(db):
        stored = await db.with_transaction(lambda ex: insert(ex, Tag(label="sea")))
        async with db.connect() as ex:
            return stored, await fetch(Tag).fetch_all(ex)

    stored, tags = run_db(scenario)

    assert tags == [stored]


def test_drop_schema_removes_tables(run_db) -> None:
    async def scenario(db):
        await drop_schema(db, [Review])
        async with db.engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: sync_conn.dialect.has_table(sync_conn, "reviews")
            )

    assert run_db(scenario) is False


def test_naive_datetime_round_trips_unchanged(run_db) -> None:
    posted = datetime(2024, 1, 1, 12, 0)

    async def scenario(db):
        async with db.transaction() as ex:
            author = await insert(ex, Author(name="Herman Melville"))
            book = await insert(ex, Book(title="Moby-Dick", author_id=author.id))
            review = await insert(ex, Review(book_id=book.id, stars=4, posted_at=posted))
            return review, await fetch(Review).filter_key(review.id).fetch_one(ex)

    review, stored = run_db(scenario)

    assert stored == review
    assert stored.posted_at == posted
    assert stored.posted_at.tzinfo is None


def test_decimal_keeps_full_precision(run_db) -> None:
    amount = Decimal("12345678901234567.891")

    async def scenario(db):
        await create_schema(db, [Entry])
        async with db.transaction() as ex:
            entry = await insert(ex, Entry(amount=amount, recorded_at=datetime(2024, 5, 6)))
            return entry, await fetch(Entry).filter_key(entry.id).fetch_one(ex)

    entry, stored = run_db(scenario)

    assert stored == entry
    assert stored.amount == amount
    assert str(stored.amount) == "12345678901234567.891"


def test_plain_enum_values_filter_and_key(run_db) -> None:
    async def scenario(db):
        await create_schema(db, [Entry, Slot])
        async with db.transaction() as ex:
            await insert(ex, Entry(amount=Decimal("1.5")))
            urgent = await insert(ex, Entry(amount=Decimal("2.5"), priority=Priority.HIGH))
            await insert(ex, Slot(priority=Priority.HIGH, label="on call"))
            high = await fetch(Entry).filter_by(priority=Priority.HIGH).fetch_all(ex)
            slot = await fetch(Slot).filter_key(Priority.HIGH).fetch_one(ex)
            slot_exists = await exists(ex, Slot, Priority.HIGH)
            removed = await delete_key(ex, Slot, Priority.HIGH)
        return urgent, high, slot, slot_exists, removed

    urgent, high, slot, slot_exists, removed = run_db(scenario)

    assert high == [urgent]
    assert high[0].priority is Priority.HIGH
    assert slot == Slot(priority=Priority.HIGH, label="on call")
    assert slot_exists is True
    assert removed is True
