from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PaginatedResult(BaseModel):
    """One page of an aggregation plus page metadata.

    Serialised with camelCase keys (``totalDocs``, ``hasNextPage`` ...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    docs: List[Dict[str, Any]]
    total_docs: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    prev_page: Optional[int] = None
    next_page: Optional[int] = None
    paging_counter: int
