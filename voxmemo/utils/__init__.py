"""Utility helpers for the voxmemo backend."""

from .sanitizer import (
    SanitizingFilter,
    log_error,
    log_warning,
    sanitize_error,
    sanitize_object,
    sanitize_string,
)

__all__ = [
    "SanitizingFilter",
    "log_error",
    "log_warning",
    "sanitize_error",
    "sanitize_object",
    "sanitize_string",
]
