"""Image push package.

Retrying pushes and digest extraction from the engine progress stream.
"""

from .orchestrator import (
    DEFAULT_RETRY_PUSH_COUNT,
    DEFAULT_RETRY_PUSH_TIMEOUT,
    PushAttempt,
    push_image,
    push_image_tags,
)
from .progress import DigestCapture, extract_digest

__all__ = [
    "DEFAULT_RETRY_PUSH_COUNT",
    "DEFAULT_RETRY_PUSH_TIMEOUT",
    "DigestCapture",
    "PushAttempt",
    "extract_digest",
    "push_image",
    "push_image_tags",
]
