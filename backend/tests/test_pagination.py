"""
Unit tests for the aggregation paginator.
"""
import random

import pytest
from bson import ObjectId

from mediahub.core.errors import AppError, ErrorKind
from mediahub.services.pagination import build_sort, clamp_page_size, split_pipeline


@pytest.fixture
async def items(fake_db):
    """25 documents; ``bucket`` repeats so caller sort keys tie."""
    ids = [ObjectId() for _ in range(25)]
    docs = [{"_id": oid, "n": i, "bucket": i % 3, "kind": "clip"} for i, oid in enumerate(ids)]
    shuffled = list(docs)
    random.Random(7).shuffle(shuffled)
    await fake_db.items.insert_many(shuffled)
    await fake_db.items.insert_one({"_id": ObjectId(), "n": 99, "bucket": 0, "kind": "other"})
    return docs


@pytest.mark.unit
class TestPaginationHelpers:
    def test_tie_break_appended_after_caller_keys(self):
        assert list(build_sort({"views": -1}).items()) == [("views", -1), ("_id", 1)]

    def test_existing_id_sort_is_kept(self):
        assert build_sort([("_id", -1)]) == {"_id": -1}

    @pytest.mark.parametrize("requested,expected", [(None, 10), (0, 1), (-5, 1), (10, 10), (1000, 100)])
    def test_page_size_is_clamped(self, requested, expected):
        assert clamp_page_size(requested, maximum=100, default=10) == expected

    def test_trailing_sort_is_lifted(self):
        stages, sort = split_pipeline([{"$match": {"a": 1}}, {"$sort": {"b": -1}}])
        assert stages == [{"$match": {"a": 1}}]
        assert sort == {"b": -1, "_id": 1}

    @pytest.mark.parametrize("stage", [{"$limit": 5}, {"$skip": 1}, {"$facet": {}}, {"match": {}}, {"$match": {}, "$sort": {}}])
    def test_rejects_unusable_stages(self, stage):
        with pytest.raises(AppError) as exc:
            split_pipeline([stage])
        assert exc.value.kind is ErrorKind.VALIDATION

    def test_rejects_bad_sort_direction(self):
        with pytest.raises(AppError):
            build_sort({"n": 2})


@pytest.mark.unit
class TestAggregationPaginator:
    MATCH = [{"$match": {"kind": "clip"}}]

    @pytest.mark.asyncio
    async def test_pages_cover_everything_once(self, paginator, fake_db, items):
        pages = [await paginator.paginate(fake_db.items, self.MATCH, page=p, page_size=10) for p in (1, 2, 3)]

        assert [len(p.docs) for p in pages] == [10, 10, 5]
        seen = [d["_id"] for p in pages for d in p.docs]
        assert len(seen) == len(set(seen)) == 25
        assert set(seen) == {d["_id"] for d in items}

        first = pages[0]
        assert (first.total_docs, first.total_pages, first.page_size) == (25, 3, 10)
        assert first.has_next_page and not first.has_prev_page
        assert first.next_page == 2 and first.prev_page is None
        assert pages[2].has_prev_page and not pages[2].has_next_page
        assert pages[1].paging_counter == 11

    @pytest.mark.asyncio
    async def test_page_beyond_end_is_empty(self, paginator, fake_db, items):
        result = await paginator.paginate(fake_db.items, self.MATCH, page=4, page_size=10)
        assert result.docs == []
        assert result.has_next_page is False
        assert result.total_docs == 25

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, paginator, fake_db, items):
        docs = []
        for page in (1, 2, 3):
            result = await paginator.paginate(fake_db.items, self.MATCH, page=page, page_size=10, sort={"bucket": 1})
            docs.extend(result.docs)
        expected = sorted(items, key=lambda d: (d["bucket"], d["_id"].binary))
        assert [d["_id"] for d in docs] == [d["_id"] for d in expected]

    @pytest.mark.asyncio
    async def test_oversized_page_is_clamped(self, paginator, fake_db, items):
        result = await paginator.paginate(fake_db.items, self.MATCH, page=1, page_size=10_000)
        assert result.page_size == 100
        assert len(result.docs) == 25
        assert result.total_pages == 1

    @pytest.mark.asyncio
    async def test_empty_collection(self, paginator, fake_db):
        result = await paginator.paginate(fake_db.nothing, [], page=1)
        assert result.docs == [] and result.total_docs == 0
        assert result.total_pages == 1 and not result.has_next_page

    @pytest.mark.asyncio
    async def test_page_below_one_is_rejected(self, paginator, fake_db):
        with pytest.raises(AppError) as exc:
            await paginator.paginate(fake_db.items, [], page=0)
        assert exc.value.kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page", [10**17, 10**30])
    async def test_page_past_int64_skip_is_empty(self, paginator, fake_db, items, page):
        result = await paginator.paginate(fake_db.items, self.MATCH, page=page, page_size=100)

        assert result.docs == []
        assert result.total_docs == 25
        assert result.has_next_page is False
        _, pipeline = fake_db.aggregations[-1]
        assert pipeline[-1] == {"$facet": {"metadata": [{"$count": "totalDocs"}]}}

    @pytest.mark.asyncio
    async def test_largest_encodable_skip_still_pages(self, paginator, fake_db, items):
        page = (2**63 - 1) // 100 + 1
        result = await paginator.paginate(fake_db.items, self.MATCH, page=page, page_size=100)
        assert result.docs == [] and not result.has_next_page
        _, pipeline = fake_db.aggregations[-1]
        assert pipeline[-1]["$facet"]["docs"][1] == {"$skip": (page - 1) * 100}

    @pytest.mark.asyncio
    async def test_count_and_docs_share_one_facet(self, paginator, fake_db, items):
        await paginator.paginate(fake_db.items, self.MATCH + [{"$sort": {"n": -1}}], page=2, page_size=5)
        _, pipeline = fake_db.aggregations[-1]
        assert pipeline[0] == {"$match": {"kind": "clip"}}
        facet = pipeline[-1]["$facet"]
        assert facet["metadata"] == [{"$count": "totalDocs"}]
        assert facet["docs"] == [{"$sort": {"n": -1, "_id": 1}}, {"$skip": 5}, {"$limit": 5}]

    @pytest.mark.asyncio
    async def test_serialises_with_camel_case_keys(self, paginator, fake_db, items):
        result = await paginator.paginate(fake_db.items, self.MATCH, page=1, page_size=10)
        dumped = result.model_dump(by_alias=True)
        for key in ("docs", "totalDocs", "page", "pageSize", "totalPages", "hasNextPage", "hasPrevPage"):
            assert key in dumped
