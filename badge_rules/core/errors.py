"""
Domain-specific exceptions for the Badge Rules API.

These exceptions represent rule authoring failures and are mapped
to appropriate HTTP status codes in the API layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from badge_rules.canvas.graph import GraphIssue


class BadgeRuleError(Exception):
    """Base exception for all badge rule domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ParseError(BadgeRuleError):
    """
    Raised when a rule payload cannot be read as a rule tree.

    Examples:
    - Not valid JSON text
    - Top level is not an object
    - Unknown node `type` discriminant
    - Required field missing

    HTTP Status: 400 Bad Request
    """

    def __init__(self, message: str, path: str = "$", details: dict[str, Any] | None = None):
        self.path = path
        super().__init__(message, {"path": path, **(details or {})})


class ValidationError(BadgeRuleError):
    """
    Raised when a parseable rule tree is semantically invalid.

    Examples:
    - Group with no children
    - Nesting deeper than the configured ceiling
    - Operator not allowed for the field's type
    - `between` bounds missing or reversed

    HTTP Status: 422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str,
        code: str,
        path: str = "$",
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.path = path
        super().__init__(message, {"code": code, "path": path, **(details or {})})


class GraphConversionError(BadgeRuleError):
    """
    Raised when a canvas graph cannot be reduced to a rule tree.

    Carries every issue found, not only the first one, so the editor can
    highlight all of them at once.

    HTTP Status: 422 Unprocessable Entity
    """

    def __init__(self, issues: list[GraphIssue]):
        self.issues = list(issues)
        count = len(self.issues)
        message = f"Canvas graph has {count} problem{'s' if count != 1 else ''}"
        super().__init__(message, {"issues": [issue.to_dict() for issue in self.issues]})

    @property
    def codes(self) -> list[str]:
        return [issue.code.value for issue in self.issues]


class NotFoundError(BadgeRuleError):
    """
    Raised when the persistence API has no rule with the requested id.

    HTTP Status: 404 Not Found
    """

    pass


class RuleStorageError(BadgeRuleError):
    """
    Raised when the persistence API fails or answers with an error envelope.

    HTTP Status: 502 Bad Gateway
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ParseError: 400,
    ValidationError: 422,
    GraphConversionError: 422,
    NotFoundError: 404,
    RuleStorageError: 502,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
