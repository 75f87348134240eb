"""
Error envelope helpers.

Every request-time failure is answered with the same shape:
{
    "error": {
        "code": "VALIDATION_FAILED",
        "message": "2 validation error(s) in body 'body'",
        "requestId": "uuid",
        "field": "body",          # if any
        "details": {...}          # if any
    }
}
"""

import json
from typing import Any, Dict, Optional

from .errors import RequestError


# Error codes reference
ERROR_CODES = {
    # Client errors (4xx)
    "BAD_REQUEST": 400,
    "NOT_FOUND": 404,
    "METHOD_NOT_ALLOWED": 405,
    "PAYLOAD_TOO_LARGE": 413,
    "UNSUPPORTED_MEDIA_TYPE": 415,

    # Contract errors
    "INVALID_PARAMS": 400,
    "VALIDATION_FAILED": 422,
    "RESPONSE_SCHEMA_MISMATCH": 500,

    # Server errors (5xx)
    "INTERNAL_ERROR": 500,
}


def error_envelope(
    code: str,
    message: str,
    request_id: Optional[str] = None,
    field: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a standardized error response envelope.

    Args:
        code: Error code (e.g., "INVALID_PARAMS")
        message: Human-readable error message
        request_id: Request ID echoed back to the client
        field: Optional field that caused the error
        details: Optional additional details

    Returns:
        Error response dict
    """
    error = {
        "code": code,
        "message": message,
        "requestId": request_id,
    }

    # Optional fields
    if field:
        error['field'] = field
    if details:
        error['details'] = details

    return {"error": error}


def request_error_envelope(error: RequestError, request_id: Optional[str] = None) -> Dict[str, Any]:
    payload = error.to_dict()
    return error_envelope(
        code=error.code,
        message=payload["message"],
        request_id=request_id,
        field=error.field,
        details=payload["details"],
    )


def envelope_bytes(envelope: Dict[str, Any]) -> bytes:
    return json.dumps(envelope, default=str).encode("utf-8")
