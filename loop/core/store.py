"""Helpers for issuing PostgREST queries through the Supabase client."""

import logging
from typing import Any, List

import httpx
from postgrest.exceptions import APIError

from loop.core.errors import AlreadyExists, UpstreamUnavailable

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class DuplicateRow(AlreadyExists):
    """A unique constraint rejected an insert or update."""

    reason = "duplicate_row"


def execute(query: Any, action: str) -> List[dict]:
    """Run a query builder and return its rows.

    PostgREST and transport failures become ``UpstreamUnavailable``; a unique
    constraint violation becomes ``DuplicateRow`` so callers can map it to the
    domain error for their table.
    """
    try:
        result = query.execute()
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            logger.info(f"Unique constraint rejected {action}: {e.message}")
            raise DuplicateRow(e.message) from e
        logger.error(f"Failed to {action}: {e.message}")
        raise UpstreamUnavailable(f"Failed to {action}") from e
    except (httpx.HTTPError, OSError) as e:
        logger.error(f"Failed to {action}: {e}")
        raise UpstreamUnavailable(f"Failed to {action}") from e
    return result.data or []


def first(rows: List[dict]) -> Any:
    return rows[0] if rows else None
