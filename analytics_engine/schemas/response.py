"""
Standard response envelopes
"""
from typing import Any, Optional

from analytics_engine.utils.timeutils import utcnow


def api_response(message: str, data: Any = None, code: str = "SUCCESS") -> dict:
    """Success envelope"""
    response = {
        "success": True,
        "message": message,
        "code": code,
        "timestamp": utcnow().isoformat(),
    }
    if data is not None:
        response["data"] = data
    return response


def error_response(message: str, code: str = "ERROR", details: Optional[Any] = None) -> dict:
    """Error envelope"""
    response = {
        "success": False,
        "message": message,
        "code": code,
        "timestamp": utcnow().isoformat(),
    }
    if details:
        response["details"] = details
    return response
