"""Filter, sort and pagination builders pushed down to MongoDB."""
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

PRODUCT_SORTS = {
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "price-low": [("discounted_price", ASCENDING)],
    "price-high": [("discounted_price", DESCENDING)],
    "name": [("name", ASCENDING)],
    "name-asc": [("name", ASCENDING)],
    "name-desc": [("name", DESCENDING)],
}

ORDER_SORTS = {
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "amount-low": [("total_amount", ASCENDING)],
    "amount-high": [("total_amount", DESCENDING)],
}

FAVORITE_SORTS = {
    "recent": [("added_at", DESCENDING)],
    "price-low": [("price", ASCENDING)],
    "price-high": [("price", DESCENDING)],
    "name": [("name", ASCENDING)],
}


def contains(q: str) -> Dict[str, str]:
    return {"$regex": re.escape(q.strip()), "$options": "i"}


def search_any(q: Optional[str], fields: List[str]) -> Dict[str, Any]:
    if not q or not q.strip():
        return {}
    return {"$or": [{f: contains(q)} for f in fields]}


def sort_order(sorts: Dict[str, List[Tuple[str, int]]], key: Optional[str], default: str) -> List[Tuple[str, int]]:
    # Newest-first tiebreak keeps paging stable when the sort key repeats
    sorting = list(sorts.get(key or default, sorts[default]))
    if sorting[0][0] != "created_at":
        sorting.append(("created_at", DESCENDING))
    return sorting


def product_filter(category: Optional[str] = None, q: Optional[str] = None) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if category and category.lower() != "all":
        filt["category_slug"] = category.lower()
    filt.update(search_any(q, ["name", "description"]))
    return filt


def order_filter(
    q: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Dict[str, Any]:
    filt: Dict[str, Any] = search_any(
        q, ["order_number", "customer_name", "customer_email", "customer_phone", "tracking_number"]
    )
    if status and status.lower() != "all":
        filt["status"] = status
    if payment_status and payment_status.lower() != "all":
        filt["payment_status"] = payment_status
    return filt


def booking_filter(
    q: Optional[str] = None,
    status: Optional[str] = None,
    consultation_type: Optional[str] = None,
) -> Dict[str, Any]:
    filt: Dict[str, Any] = search_any(q, ["name", "email", "plan"])
    if status and status.lower() != "all":
        filt["status"] = status
    if consultation_type and consultation_type.lower() != "all":
        filt["consultation_type"] = consultation_type
    return filt


def page_window(total: int, page: int, per_page: int) -> Dict[str, int]:
    pages = max(1, math.ceil(total / per_page)) if per_page else 1
    return {"page": page, "per_page": per_page, "pages": pages, "total": total, "skip": (page - 1) * per_page}
