"""Domain-specific exceptions for call relay operations.

These exceptions are safe to import from API layers without opening any connections.
"""

from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class InvalidStatusError(RelayError):
    status_code = 400
    default_detail = 'Invalid status. Use "Resolved" or "Unresolved".'


class CallNotFoundError(RelayError):
    status_code = 404
    default_detail = "No active call."


class MalformedMessageError(RelayError):
    status_code = 400
    default_detail = "Malformed stream message."
