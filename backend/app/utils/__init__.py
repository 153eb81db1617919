"""Utility functions."""

from app.utils.response import (
    conflict,
    error_response,
    forbidden,
    gone,
    not_found,
    success_response,
    validation_error,
)

__all__ = [
    "success_response",
    "error_response",
    "forbidden",
    "not_found",
    "validation_error",
    "conflict",
    "gone",
]
