"""Tests for the committed entry collection."""

from helpers import make_entry
from shiftclock.core.collection import EntryCollection


class TestEntryCollection:
    """Test EntryCollection."""

    def test_snapshot_is_unaffected_by_later_appends(self) -> None:
        collection = EntryCollection([make_entry(id="a")])

        before = collection.snapshot()
        collection.append(make_entry(id="b"))

        assert [e.id for e in before] == ["a"]
        assert [e.id for e in collection.snapshot()] == ["a", "b"]

    def test_replace_swaps_in_place(self) -> None:
        collection = EntryCollection([make_entry(id="a"), make_entry(id="local-1"), make_entry(id="c")])

        assert collection.replace("local-1", make_entry(id="srv-1")) is True
        assert [e.id for e in collection] == ["a", "srv-1", "c"]

    def test_replace_unknown_appends(self) -> None:
        collection = EntryCollection()

        assert collection.replace("missing", make_entry(id="srv-1")) is False
        assert len(collection) == 1

    def test_remove_and_get(self) -> None:
        collection = EntryCollection()
        collection.extend([make_entry(id="a"), make_entry(id="b")])

        assert collection.remove("a") is True
        assert collection.remove("a") is False
        assert collection.get("a") is None
        assert collection.get("b") is not None

    def test_pending(self) -> None:
        collection = EntryCollection(
            [make_entry(id="a"), make_entry(id="local-2", pending_sync=True)]
        )

        assert [e.id for e in collection.pending()] == ["local-2"]
