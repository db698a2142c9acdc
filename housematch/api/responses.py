from typing import Any


def create_success_response(data: Any = None, pagination: dict | None = None) -> dict:

    response = {
        "success": True,
        "data": data,
        "error": None,
    }
    if pagination:
        response["pagination"] = pagination
    return response


def create_error_response(
    code: str,
    message: str,
    details: list[dict] | None = None,
) -> dict:
    """
    Create a standardized error response.

    Args:
        code: Error code (e.g., "VALIDATION_ERROR", "INVALID_STATE")
        message: Human-readable error message
        details: Optional list of field-level errors

    Returns:
        Envelope with ``success`` false and the error object
    """
    error_obj: dict[str, Any] = {
        "code": code,
        "message": message,
    }
    if details:
        error_obj["details"] = details

    return {
        "success": False,
        "data": None,
        "error": error_obj,
    }
