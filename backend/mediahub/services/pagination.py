"""
Page through the output of a caller-supplied aggregation pipeline.

The caller's stages (``$match``, ``$lookup``, ``$unwind``, ``$project`` ...)
describe the dataset once; a single ``$facet`` then computes the total count
and the requested page from that same description. Sorting always ends with
``_id`` as a tie-break, so documents whose caller sort keys are equal keep a
fixed order across page boundaries.

Consistency: every call is its own snapshot. If documents are written
between two page requests, ``totalDocs`` and the page boundaries of the
later request reflect those writes. Callers walking many pages of a busy
feed may therefore see a shifted total; this is expected, not an error.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from pymongo.errors import PyMongoError

from mediahub.core.config import settings
from mediahub.core.errors import AppError, ErrorKind
from mediahub.schemas.pagination_schema import PaginatedResult

logger = logging.getLogger(__name__)

TIE_BREAK_FIELD = "_id"
# Paging is owned by the paginator; these stages would corrupt the page math
RESERVED_STAGES = frozenset({"$skip", "$limit", "$count", "$facet", "$out", "$merge"})
# $skip is encoded as a BSON int64
MAX_SKIP = 2 ** 63 - 1

SortSpec = Union[Mapping[str, int], Sequence[Tuple[str, int]]]


def clamp_page_size(page_size: Optional[int], maximum: int = settings.PAGE_SIZE_MAX, default: int = settings.PAGE_SIZE_DEFAULT) -> int:
    """Clamp ``page_size`` into ``[1, maximum]``; ``None`` means the default."""
    if page_size is None:
        return default
    return max(1, min(int(page_size), maximum))


def _normalize_sort(sort: Optional[SortSpec]) -> Dict[str, int]:
    if not sort:
        return {}
    items = sort.items() if isinstance(sort, Mapping) else sort
    normalized: Dict[str, int] = {}
    for field, direction in items:
        if direction not in (1, -1):
            raise AppError(ErrorKind.VALIDATION, f"Sort direction for '{field}' must be 1 or -1")
        normalized[field] = direction
    return normalized


def build_sort(caller_sort: Optional[SortSpec]) -> Dict[str, int]:
    """Caller sort keys followed by the unique tie-break key."""
    sort = _normalize_sort(caller_sort)
    if TIE_BREAK_FIELD not in sort:
        sort[TIE_BREAK_FIELD] = 1
    return sort


def split_pipeline(pipeline: Sequence[Mapping[str, Any]], sort: Optional[SortSpec] = None) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    """Validate stages and lift a trailing ``$sort`` out of the pipeline.

    Returns the dataset stages and the final sort (trailing ``$sort`` keys,
    then ``sort`` keys, then the tie-break).
    """
    stages: List[Dict[str, Any]] = []
    for stage in pipeline or []:
        if not isinstance(stage, Mapping) or len(stage) != 1:
            raise AppError(ErrorKind.VALIDATION, "Each pipeline stage must be a single-operator mapping")
        (operator,) = stage.keys()
        if not str(operator).startswith("$"):
            raise AppError(ErrorKind.VALIDATION, f"Unknown pipeline stage '{operator}'")
        if operator in RESERVED_STAGES:
            raise AppError(ErrorKind.VALIDATION, f"Stage '{operator}' is not allowed in a paginated pipeline")
        stages.append(dict(stage))

    merged: Dict[str, int] = {}
    if stages and "$sort" in stages[-1]:
        merged = _normalize_sort(stages.pop()["$sort"])
    for field, direction in _normalize_sort(sort).items():
        merged.setdefault(field, direction)
    return stages, build_sort(merged)


def build_facet_pipeline(stages: List[Dict[str, Any]], sort: Dict[str, int], page: int, page_size: int) -> List[Dict[str, Any]]:
    return stages + [
        {
            "$facet": {
                "metadata": [{"$count": "totalDocs"}],
                "docs": [
                    {"$sort": sort},
                    {"$skip": (page - 1) * page_size},
                    {"$limit": page_size},
                ],
            }
        }
    ]


def build_count_pipeline(stages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Total only; used when the requested page starts beyond any possible skip."""
    return stages + [{"$facet": {"metadata": [{"$count": "totalDocs"}]}}]


def build_result(docs: List[Dict[str, Any]], total_docs: int, page: int, page_size: int) -> PaginatedResult:
    total_pages = max(1, (total_docs + page_size - 1) // page_size)
    has_prev = page > 1
    has_next = page < total_pages
    return PaginatedResult(
        docs=docs,
        total_docs=total_docs,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next_page=has_next,
        has_prev_page=has_prev,
        prev_page=page - 1 if has_prev else None,
        next_page=page + 1 if has_next else None,
        paging_counter=(page - 1) * page_size + 1,
    )


class AggregationPaginator:
    """Runs paginated aggregations against Motor collections."""

    def __init__(self, max_page_size: int = settings.PAGE_SIZE_MAX, default_page_size: int = settings.PAGE_SIZE_DEFAULT):
        self.max_page_size = max_page_size
        self.default_page_size = default_page_size

    async def paginate(
        self,
        collection,
        pipeline: Sequence[Mapping[str, Any]],
        page: int = 1,
        page_size: Optional[int] = None,
        sort: Optional[SortSpec] = None,
    ) -> PaginatedResult:
        if page is None:
            page = 1
        if not isinstance(page, int) or page < 1:
            raise AppError(ErrorKind.VALIDATION, "page must be an integer >= 1")
        size = clamp_page_size(page_size, self.max_page_size, self.default_page_size)
        stages, final_sort = split_pipeline(pipeline, sort)
        if (page - 1) * size > MAX_SKIP:
            facet_pipeline = build_count_pipeline(stages)
        else:
            facet_pipeline = build_facet_pipeline(stages, final_sort, page, size)

        try:
            rows = await collection.aggregate(facet_pipeline).to_list(length=1)
        except PyMongoError as e:
            logger.error(f"Aggregation on {getattr(collection, 'name', '?')} failed: {e}")
            raise AppError(ErrorKind.INTERNAL, "Aggregation failed")

        facet = rows[0] if rows else {}
        metadata = facet.get("metadata") or []
        total_docs = int(metadata[0].get("totalDocs", 0)) if metadata else 0
        docs = list(facet.get("docs") or [])
        return build_result(docs, total_docs, page, size)


paginator = AggregationPaginator()
