from hypothesis import HealthCheck, given, settings, strategies as st

import pytest
from pydantic import ValidationError

from library_inventory.db import make_session_factory
from library_inventory.models import SortField, TitleWithAvailability
from library_inventory.repository import InventoryRepository

text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",), blacklist_characters="\x00"),
    min_size=1,
    max_size=40,
)


@settings(max_examples=25, suppress_health_check=[HealthCheck.function_scoped_fixture], deadline=None)
@given(
    isbn=st.text(alphabet="0123456789-X", min_size=1, max_size=32),
    title=text,
    author=text,
    genre=text,
    total=st.integers(min_value=0, max_value=10_000),
    available=st.integers(min_value=0, max_value=10_000),
)
def test_get_title_returns_inserted_fields(repository, isbn, title, author, genre, total, available):
    created = repository.create_title(isbn, title, author, genre, total, available, "https://covers/x.png")

    fetched = repository.get_title(created.id)

    assert fetched == created
    assert (fetched.isbn, fetched.title, fetched.author, fetched.genre) == (isbn, title, author, genre)
    assert (fetched.total_copies, fetched.available_copies) == (total, available)
    assert fetched.cover == "https://covers/x.png"


def test_create_title_allows_duplicate_isbn(make_title):
    first = make_title(isbn="123")
    second = make_title(isbn="123")
    assert first.id != second.id


def test_create_title_rejects_negative_counts(repository):
    with pytest.raises(ValidationError):
        repository.create_title("1", "t", "a", "g", -1, 0, "")


def test_get_title_missing_returns_none(repository):
    assert repository.get_title(999) is None


def test_list_titles_single_page(repository, make_title):
    for name in ["Dune", "Emma", "Beloved"]:
        make_title(title=name)

    page = repository.list_titles(page=1, page_size=10)

    assert page.total_count == 3
    assert page.total_pages == 1
    assert [item.title for item in page.items] == ["Beloved", "Dune", "Emma"]


def test_list_titles_sort_desc_and_unknown_order(repository, make_title):
    make_title(title="a", total_copies=3)
    make_title(title="b", total_copies=1)
    make_title(title="c", total_copies=2)

    desc = repository.list_titles(sort_field="totalCopies", sort_order="desc")
    fallback = repository.list_titles(sort_field=SortField.TOTAL_COPIES, sort_order="sideways")

    assert [item.total_copies for item in desc.items] == [3, 2, 1]
    assert [item.total_copies for item in fallback.items] == [1, 2, 3]


def test_list_titles_rejects_unknown_sort_field(repository, make_title):
    make_title()
    with pytest.raises(ValueError):
        repository.list_titles(sort_field="title; DROP TABLE books")


@pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (-2, 5)])
def test_list_titles_rejects_bad_paging(repository, page, page_size):
    with pytest.raises(ValueError):
        repository.list_titles(page=page, page_size=page_size)


def test_list_titles_search_filters_title_author_isbn(repository, make_title):
    make_title(title="The Hobbit", author="Tolkien", isbn="111")
    make_title(title="Emma", author="Austen", isbn="222")
    make_title(title="Persuasion", author="Austen", isbn="333-hob")
    make_title(title="Ulysses", author="Joyce", genre="Hobbit fans", isbn="444")

    by_author = repository.list_titles(search_query="Austen")
    by_title_or_isbn = repository.list_titles(search_query="ob")

    assert by_author.total_count == 2
    assert {item.title for item in by_title_or_isbn.items} == {"The Hobbit", "Persuasion"}


def test_list_titles_search_without_matches(repository, make_title):
    make_title(title="Emma")

    page = repository.list_titles(search_query="zzz")

    assert page.items == []
    assert page.total_count == 0
    assert page.total_pages == 0


def test_list_titles_search_treats_wildcards_literally(repository, make_title):
    make_title(title="100% Pure")
    make_title(title="Plain")

    page = repository.list_titles(search_query="%")

    assert [item.title for item in page.items] == ["100% Pure"]


def test_list_recent_titles_newest_first(repository, make_title):
    ids = [make_title().id for _ in range(5)]

    recent = repository.list_recent_titles(3)

    assert [item.id for item in recent] == list(reversed(ids))[:3]


def test_update_title_counts(repository, make_title):
    created = make_title(total_copies=2, available_copies=2)

    updated = repository.update_title_counts(created.id, 5, 4)

    assert (updated.total_copies, updated.available_copies) == (5, 4)
    assert updated.title == created.title
    assert repository.get_title(created.id) == updated


def test_update_title_counts_missing_returns_none(repository):
    assert repository.update_title_counts(42, 1, 1) is None


def test_update_title_overwrites_all_fields(repository, make_title):
    created = make_title()

    rows = repository.update_title(created.id, "New", "Someone", "Poetry", "999", 7, 6, "https://c/new.png")

    fetched = repository.get_title(created.id)
    assert rows == 1
    assert fetched.model_dump(exclude={"id"}) == {
        "isbn": "999",
        "title": "New",
        "author": "Someone",
        "genre": "Poetry",
        "cover": "https://c/new.png",
        "total_copies": 7,
        "available_copies": 6,
    }


def test_update_title_missing_reports_zero_rows(repository):
    assert repository.update_title(404, "t", "a", "g", "1", 0, 0, "") == 0


def test_delete_title(repository, make_title):
    created = make_title()

    assert repository.delete_title(created.id) is None
    assert repository.get_title(created.id) is None


def test_delete_title_missing_is_silent(repository):
    assert repository.delete_title(12345) is None


def test_title_with_availability_missing_returns_none(repository):
    assert repository.get_title_with_availability(1) is None


def test_title_with_availability_keeps_both_counts(repository, make_title):
    created = make_title(total_copies=10, available_copies=9)

    merged = repository.get_title_with_availability(created.id)

    assert isinstance(merged, TitleWithAvailability)
    assert merged.available_copies == 9
    assert merged.available_books == 0


def test_list_titles_search_is_case_sensitive(repository, make_title):
    make_title(title="Emma", author="Austen")

    assert repository.list_titles(search_query="austen").total_count == 0
    assert repository.list_titles(search_query="Austen").total_count == 1


def test_list_titles_uses_repository_page_size(engine, tracer, make_title):
    for _ in range(5):
        make_title()
    repository = InventoryRepository(make_session_factory(engine), tracer=tracer, default_page_size=2)

    page = repository.list_titles()

    assert len(page.items) == 2
    assert page.total_pages == 3
    assert len(repository.list_titles(page_size=4).items) == 4
    assert repository.search_titles("Title").total_pages == 3
