"""Helper utilities."""

from .sanitizer import is_sensitive_key, mask_headers, mask_sensitive_data, mask_url

__all__ = [
    "is_sensitive_key",
    "mask_headers",
    "mask_sensitive_data",
    "mask_url",
]
