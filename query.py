"""
Turns untrusted listing query parameters into a bounded query plan.

A plan is a Mongo filter, a sort spec and a skip/limit window. The total
for pagination is always counted separately with the same filter.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING

from errors import ValidationError
from schemas import CATEGORIES

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# Deepest row a page may start at; keeps skip far inside a BSON int64.
MAX_SKIP = 10**9

LISTING_SEARCH_FIELDS = ("name", "description")

# Accepted sortBy values and the stored field each one sorts on.
SORT_FIELDS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "addedAt": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "price": "price",
    "name": "name",
    "views": "views",
}
DEFAULT_SORT_FIELD = "created_at"


@dataclass
class QueryPlan:
    filter: Dict[str, Any]
    sort: List[Tuple[str, int]]
    page: int
    limit: int
    skip: int = field(init=False)

    def __post_init__(self):
        self.skip = (self.page - 1) * self.limit

    def pagination(self, total: int) -> dict:
        return paginate(self.page, self.limit, total)


def paginate(page: int, limit: int, total: int) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if total else 0,
        "totalItems": total,
        "itemsPerPage": limit,
    }


def _positive_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def _price(value: Any, name: str, errors: List[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors.append(f"{name}: must be a number")
        return None
    if not math.isfinite(number):
        errors.append(f"{name}: must be a finite number")
        return None
    return number


def contains(text: str) -> dict:
    """Case-insensitive substring match; the text is matched literally."""
    return {"$regex": re.escape(text), "$options": "i"}


def page_window(params: Mapping[str, Any], default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> Tuple[int, int]:
    page = _positive_int(params.get("page"), 1)
    limit = min(_positive_int(params.get("limit"), default_limit), max_limit)
    page = min(page, MAX_SKIP // limit + 1)
    return page, limit


def build_listing_query(
    params: Mapping[str, Any],
    *,
    search_fields: Sequence[str] = LISTING_SEARCH_FIELDS,
    base_filter: Optional[Dict[str, Any]] = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> QueryPlan:
    """Build a QueryPlan from page, limit, category, search, minPrice,
    maxPrice, location, sortBy and sortOrder.

    page/limit never fail: junk or non-positive values fall back to the
    defaults, limit is capped at max_limit and page is capped so
    the skip stays within MAX_SKIP. Everything else that cannot
    be honoured (unknown category, non-numeric price, unlisted sort field)
    raises ValidationError with one message per bad parameter.
    """
    errors: List[str] = []
    query: Dict[str, Any] = dict(base_filter or {})

    page, limit = page_window(params, default_limit, max_limit)

    category = (params.get("category") or "").strip()
    if category and category.lower() != "all":
        if category not in CATEGORIES:
            errors.append(f"category: must be one of {', '.join(CATEGORIES)} or all")
        else:
            query["category"] = category

    search = (params.get("search") or "").strip()
    if search:
        query["$or"] = [{name: contains(search)} for name in search_fields]

    min_price = _price(params.get("minPrice"), "minPrice", errors)
    max_price = _price(params.get("maxPrice"), "maxPrice", errors)
    price: Dict[str, float] = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        query["price"] = price

    location = (params.get("location") or "").strip()
    if location:
        query["location"] = contains(location)

    sort_by = params.get("sortBy") or DEFAULT_SORT_FIELD
    sort_field = SORT_FIELDS.get(sort_by)
    if sort_field is None:
        errors.append(f"sortBy: must be one of {', '.join(sorted(set(SORT_FIELDS)))}")

    sort_order = (params.get("sortOrder") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        errors.append("sortOrder: must be asc or desc")

    if errors:
        raise ValidationError(errors)

    direction = ASCENDING if sort_order == "asc" else DESCENDING
    sort = [(sort_field, direction), ("_id", direction)]
    return QueryPlan(filter=query, sort=sort, page=page, limit=limit)
