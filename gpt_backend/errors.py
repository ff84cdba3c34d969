"""
Error taxonomy.

Every error carries the HTTP status it maps to; the route layer turns
them into a flat {"error": message} body.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or malformed request fields."""

    status_code = 400


class GenerationError(ServiceError):
    """The upstream LLM call failed or returned empty/unparseable output."""


class FormatError(ServiceError):
    """Generated content failed question validation."""


class RateLimitExceeded(Exception):
    status_code = 203

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.message = message
        self.limit = limit
