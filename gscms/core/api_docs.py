from gscms.schemas.common import ErrorOut


# Mirrors the envelopes built in gscms.core.observability.
_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Assignee must be an active user"),
    401: ("unauthorized", "Not authenticated"),
    403: ("forbidden", "Insufficient permission for this action"),
    404: ("not_found", "Resource not found"),
    422: ("validation_error", "Validation failed"),
    500: ("internal_error", "Internal server error"),
}

_VALIDATION_DETAILS = [
    {
        "field": "actions.0",
        "message": "Input tag 'LAUNCH_ROCKET' found using 'type' does not match any of the expected tags",
        "type": "union_tag_invalid",
    }
]


def error_responses(
    *status_codes: int,
    path: str = "/automation/rules",
    not_found: str | None = None,
) -> dict[int, dict]:
    """OpenAPI `responses` entries for the shared error envelope.

    `path` and `not_found` let each route show the path and 404 message it really returns.
    """
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
        if status_code == 404 and not_found:
            message = not_found
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                            "path": path,
                            "details": _VALIDATION_DETAILS if status_code == 422 else None,
                        }
                    }
                }
            },
        }
    return responses
