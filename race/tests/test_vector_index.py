"""Tests for filter builders, the filter evaluator and InMemoryVectorIndex"""

from datetime import datetime, timedelta, timezone

import pytest

from race.common.vector_index import (
    InMemoryVectorIndex,
    combine_filters,
    date_range_filter,
    matches_filter,
    scope_filter,
    to_iso_millis,
)

START = datetime(2024, 3, 14, tzinfo=timezone.utc)
END = datetime(2024, 3, 14, 23, 59, 59, 999000, tzinfo=timezone.utc)


class TestBuilders:
    def test_iso_millis(self):
        assert to_iso_millis(END) == "2024-03-14T23:59:59.999Z"

    def test_iso_millis_converts_to_utc(self):
        plus_nine = timezone(timedelta(hours=9))
        assert to_iso_millis(datetime(2024, 3, 15, 9, 0, tzinfo=plus_nine)) == "2024-03-15T00:00:00.000Z"

    def test_scope_filter(self):
        assert scope_filter(["u1"]) == {"userId": {"$eq": "u1"}}
        assert scope_filter(["u1", "u2"]) == {"userId": {"$in": ["u1", "u2"]}}

    def test_combine(self):
        a, b = {"type": {"$eq": "health"}}, {"activity": {"$eq": "gym"}}

        assert combine_filters() is None
        assert combine_filters(None, a) == a
        assert combine_filters(a, None, b) == {"$and": [a, b]}


class TestMatchesFilter:
    @pytest.mark.parametrize("metadata", [
        {"date": "2024-03-14T12:00:00.000Z"},
        {"createdAt": "2024-03-14T00:00:00Z"},
        {"timestamp": int(datetime(2024, 3, 14, 18, tzinfo=timezone.utc).timestamp() * 1000)},
        {"date": "2024-03-14T23:59:59.999Z"},
    ])
    def test_date_range_matches_any_field(self, metadata):
        assert matches_filter(metadata, date_range_filter(START, END))

    @pytest.mark.parametrize("metadata", [
        {"date": "2024-03-15T00:00:00.000Z"},
        {"createdAt": "2024-03-13T23:59:59.999Z"},
        {"text": "no date at all"},
    ])
    def test_date_range_excludes(self, metadata):
        assert not matches_filter(metadata, date_range_filter(START, END))

    def test_operators(self):
        metadata = {"type": "health", "steps": 8000}

        assert matches_filter(metadata, {"type": {"$in": ["health", "voice"]}})
        assert matches_filter(metadata, {"type": {"$nin": ["photo"]}})
        assert matches_filter(metadata, {"type": {"$ne": "photo"}})
        assert matches_filter(metadata, {"steps": {"$gt": 5000, "$lte": 8000}})
        assert not matches_filter(metadata, {"steps": {"$lt": 8000}})
        assert matches_filter(metadata, {"type": "health"})

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            matches_filter({"type": "health"}, {"type": {"$regex": "h.*"}})


class TestInMemoryVectorIndex:
    @pytest.fixture
    def index(self):
        index = InMemoryVectorIndex()
        index.add("a", [1.0, 0.0], {"type": "health", "text": "a", "userId": "u1"})
        index.add("b", [0.7, 0.7], {"type": "photo", "text": "b", "userId": "u1"})
        index.add("c", [1.0, 0.0], {"type": "health", "text": "c", "userId": "u2"})
        index.add("d", [-1.0, 0.0], {"type": "health", "text": "d", "userId": "u1"})
        return index

    @pytest.mark.asyncio
    async def test_scoped_and_ranked(self, index):
        results = await index.query([1.0, 0.0], ["u1"], 10)

        assert [r.id for r in results] == ["a", "b", "d"]
        assert results[0].score == pytest.approx(1.0)
        # Opposite vectors clamp to zero instead of going negative
        assert results[-1].score == 0.0

    @pytest.mark.asyncio
    async def test_multi_user_scope(self, index):
        results = await index.query([1.0, 0.0], ["u1", "u2"], 2)

        assert [r.id for r in results] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_filter(self, index):
        results = await index.query([1.0, 0.0], ["u1"], 10, filter={"type": {"$eq": "photo"}})

        assert [r.id for r in results] == ["b"]
        assert results[0].metadata.type == "photo"

    @pytest.mark.asyncio
    async def test_replace_record(self, index):
        index.add("a", [0.0, 1.0], {"type": "voice", "text": "a2", "userId": "u1"})

        results = await index.query([0.0, 1.0], ["u1"], 1)

        assert len(index) == 4
        assert results[0].id == "a"
        assert results[0].metadata.text == "a2"

    @pytest.mark.asyncio
    async def test_empty_index(self):
        assert await InMemoryVectorIndex().query([1.0], ["u1"], 5) == []
