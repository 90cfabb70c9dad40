"""List envelopes for the orders and kitchen APIs.

    {"items": [...], "total": <int>}

Paginated lists (orders, cancelled items) add ``skip``, ``limit`` and
``has_more``. Single objects are returned bare.
"""

from typing import Iterable, Optional, Type

from pydantic import BaseModel


def _serialize(rows: Iterable, schema: Optional[Type[BaseModel]]) -> list:
    if schema is None:
        return list(rows)
    return [schema.model_validate(row).model_dump(mode="json") for row in rows]


def list_response(rows: Iterable, schema: Optional[Type[BaseModel]] = None) -> dict:
    """Envelope for a complete list; ``total`` is its length."""
    items = _serialize(rows, schema)
    return {"items": items, "total": len(items)}


def paginated_response(
    rows: Iterable,
    total: int,
    skip: int = 0,
    limit: int = 50,
    schema: Optional[Type[BaseModel]] = None,
) -> dict:
    """Envelope for one page of a query.

    Args:
        rows: ORM rows (serialized through *schema*) or ready dicts.
        total: Row count across all pages.
        skip: Rows skipped before this page.
        limit: Page size requested.
    """
    items = _serialize(rows, schema)
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": (skip + len(items)) < total,
    }
