import pytest

from paperforge.services import InMemoryItemRepository
from paperforge.storage import SqliteItemRepository

from helpers import make_item


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        yield InMemoryItemRepository()
        return
    repo = SqliteItemRepository(tmp_path / "items.db")
    yield repo
    repo.close()


def test_items_are_scoped_by_owner(repository, sample_items) -> None:
    repository.add_items("owner-1", sample_items)
    repository.add_items("owner-2", [make_item("other", "mcq", 0.5)])

    assert [item.id for item in repository.list_items("owner-1")] == [item.id for item in sample_items]
    assert [item.id for item in repository.list_items("owner-2")] == ["other"]
    assert all(item.owner_id == "owner-1" for item in repository.list_items("owner-1"))


def test_list_filters_by_level_and_type(repository) -> None:
    repository.add_items(
        "owner",
        [
            make_item("a2_mcq", "mcq", 0.5),
            make_item("a2_cloze", "cloze", 0.5),
            make_item("b1_mcq", "mcq", 0.5, level="B1"),
        ],
    )
    assert [item.id for item in repository.list_items("owner", level="A2")] == ["a2_mcq", "a2_cloze"]
    assert [item.id for item in repository.list_items("owner", item_type="mcq")] == ["a2_mcq", "b1_mcq"]
    assert [item.id for item in repository.snapshot("owner", "B1")] == ["b1_mcq"]


def test_get_item_round_trips_payload(repository) -> None:
    item = make_item("mcq1", "mcq", 0.35, tags=["travel"])
    repository.add_items("owner", [item])
    stored = repository.get_item("owner", "mcq1")

    assert stored.difficulty_score == 0.35
    assert stored.tags == ["travel"]
    assert stored.options_json == ["one", "two", "three", "four"]


def test_missing_item_raises_key_error(repository) -> None:
    with pytest.raises(KeyError):
        repository.get_item("owner", "missing")


def test_increment_usage_counts_each_item_once(repository) -> None:
    repository.add_items("owner", [make_item("a", "mcq", 0.5), make_item("b", "mcq", 0.5)])

    updated = repository.increment_usage("owner", ["a", "a", "missing"])

    assert updated == 1
    assert repository.get_item("owner", "a").usage_count == 1
    assert repository.get_item("owner", "b").usage_count == 0


def test_increment_usage_ignores_other_owners(repository) -> None:
    repository.add_items("owner", [make_item("a", "mcq", 0.5)])
    assert repository.increment_usage("someone-else", ["a"]) == 0
    assert repository.get_item("owner", "a").usage_count == 0


def test_sqlite_persists_across_connections(tmp_path) -> None:
    path = tmp_path / "bank.db"
    first = SqliteItemRepository(path)
    first.add_items("owner", [make_item("a", "mcq", 0.5)])
    first.increment_usage("owner", ["a"])
    first.close()

    second = SqliteItemRepository(path)
    try:
        assert second.get_item("owner", "a").usage_count == 1
    finally:
        second.close()
