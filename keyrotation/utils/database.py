"""Thin helpers over the Supabase query builder.

Errors are translated into the service taxonomy here so adapters never see
client-library exception types.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from keyrotation.errors import BackendError, TransientBackendError
from .logger import logger

_TRANSIENT_STATUS = {408, 429, 500, 502, 503, 504}


def _apply_filters(query, filters: dict | None):
    """Apply ``{column: value}`` equality filters."""
    for key, value in (filters or {}).items():
        query = query.eq(key, value)
    return query


async def _execute(query, table_name: str, operation: str):
    try:
        return await query.execute()
    except (httpx.TimeoutException, httpx.TransportError) as exc:
        raise TransientBackendError(
            f"{operation} on {table_name} failed: {exc}", backend="supabase", operation=operation
        ) from exc
    except httpx.HTTPStatusError as exc:
        error_cls = TransientBackendError if exc.response.status_code in _TRANSIENT_STATUS else BackendError
        raise error_cls(
            f"{operation} on {table_name} failed: {exc}", backend="supabase", operation=operation
        ) from exc
    except APIError as exc:
        logger.error(f"Error during {operation} on {table_name}: {exc}")
        raise BackendError(
            f"{operation} on {table_name} failed: {exc}", backend="supabase", operation=operation
        ) from exc


async def query_data(
    supabase: AsyncClient,
    table_name: str,
    filters: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
    limit: Optional[int] = None,
    page: tuple[int, int] | None = None,
) -> list[dict[str, Any]]:
    """
    Query a Supabase table with dynamic filters, ordering and paging.

    :param table_name: Name of the table to query.
    :param filters: Column → value equality filters.
    :param order_by: Tuple (column_name, desc) where desc=True means descending order.
    :param select_fields: Fields to select (default is "*").
    :param limit: Optional integer to limit the number of results.
    :param page: Optional inclusive (start, end) row range.
    :return: The matching rows (empty list if none).
    """
    query = supabase.table(table_name).select(select_fields)
    query = _apply_filters(query, filters)

    if order_by:
        column, desc = order_by
        query = query.order(column, desc=desc)
    if page:
        start, end = page
        query = query.range(start, end)
    if limit:
        query = query.limit(limit)

    response = await _execute(query, table_name, "select")
    return getattr(response, "data", None) or []


async def update_data(
    supabase: AsyncClient,
    table_name: str,
    *,
    update_values: dict,
    filters: dict,
) -> list[dict[str, Any]]:
    """Update rows matching ``filters`` and return the rows that changed.

    An empty list means no row matched, which callers use to detect a lost
    compare-and-swap.
    """
    query = supabase.table(table_name).update(update_values)
    query = _apply_filters(query, filters)
    response = await _execute(query, table_name, "update")
    return getattr(response, "data", None) or []
