"""
Utility functions for endpoints.

Design Pattern: Utility Module Pattern
Algorithm: Helper functions for serialization and error mapping
Big O: O(n) in the size of the serialized payload
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, NoReturn

from fastapi import HTTPException

from ..errors import PersistenceFailure, PlayerNotFoundError, UpstreamFailure, ValidationError
from ..logging_config import get_logger

logger = get_logger(__name__)


def to_jsonable(value: Any) -> Any:
    """
    Convert engine results into JSON-ready structures.

    Dataclasses become dicts, dates become ISO strings and Decimals become
    strings so stored precision survives the trip.
    """
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def raise_http_error(exc: Exception) -> NoReturn:
    """Map a domain error to an HTTPException. Unknown errors become 500s."""
    if isinstance(exc, PlayerNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, (UpstreamFailure, PersistenceFailure)):
        logger.error(f"Backing store unavailable: {exc}")
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    logger.error(f"Unhandled error: {type(exc).__name__}: {exc}", exc_info=True)
    raise HTTPException(status_code=500, detail="Internal server error") from exc
