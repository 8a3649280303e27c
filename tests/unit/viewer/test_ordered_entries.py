"""Tests for id-ordered entry bookkeeping."""

from datetime import datetime, timezone

import pytest

from frame_logger.stores.base import Document
from frame_logger.viewer.ordered_entries import FeedEntry, OrderedEntries
from tests.infrastructure.helpers.generators import make_document


def entry(entry_id: int, message: str = "") -> FeedEntry:
    return FeedEntry(entry_id=entry_id, link=f"memory://b/{entry_id}.jpeg", message=message)


class TestUpsert:

    def test_out_of_order_arrivals_end_sorted(self):
        entries = OrderedEntries()
        predecessors = [entries.upsert(entry(i))[0] for i in (3, 1, 0, 2)]

        assert entries.ids == [0, 1, 2, 3]
        assert predecessors == [None, None, None, 1]

    def test_repeat_updates_in_place(self):
        entries = OrderedEntries()
        entries.upsert(entry(1, "old"))
        entries.upsert(entry(2))

        predecessor, inserted = entries.upsert(entry(1, "new"))

        assert inserted is False
        assert predecessor is None
        assert len(entries) == 2
        assert entries.get(1).message == "new"

    def test_iteration_follows_ids(self):
        entries = OrderedEntries()
        for i in (5, 9, 7):
            entries.upsert(entry(i))

        assert [item.entry_id for item in entries] == [5, 7, 9]
        assert 7 in entries
        assert 6 not in entries

    def test_clear(self):
        entries = OrderedEntries()
        entries.upsert(entry(1))

        entries.clear()

        assert len(entries) == 0
        assert entries.get(1) is None


class TestFeedEntry:

    def test_from_document(self):
        document = make_document(4, message="spotted", capture_time=1_700_000_004.0)

        item = FeedEntry.from_document(document)

        assert item.entry_id == 4
        assert item.message == "spotted"
        assert item.capture_time == pytest.approx(1_700_000_004.0)
        assert item.link == "memory://bucket/s1/4.jpeg"

    @pytest.mark.parametrize("doc_id", ["abc", "1.5", ""])
    def test_non_integer_id_rejected(self, doc_id):
        assert FeedEntry.from_document(Document("sessions/s1/images", doc_id, {})) is None

    def test_missing_fields_tolerated(self):
        item = FeedEntry.from_document(Document("sessions/s1/images", "2", {}))

        assert item.link is None
        assert item.capture_time is None
        assert item.message == ""

    def test_to_json(self):
        captured = datetime(2024, 1, 1, tzinfo=timezone.utc)
        document = Document("c", "0", {"link": "x", "captureTime": captured, "message": "m"})

        assert FeedEntry.from_document(document).to_json() == {
            "id": 0,
            "link": "x",
            "captureTime": captured.timestamp(),
            "message": "m",
        }
