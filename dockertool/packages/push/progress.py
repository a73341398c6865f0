"""Progress observers for engine push streams.

The push call returns nothing structured; the manifest digest only travels
through the progress stream, either as ``aux.Digest`` or inside a status
line such as ``latest: digest: sha256:... size: 1234``.
"""

import re
from typing import Any, Optional

from dockertool.utils.docker import ProgressCallback, log_progress

DIGEST_STATUS_PATTERN = re.compile(r"digest: (?P<digest>[a-z0-9]+:[0-9a-fA-F]+)")


def extract_digest(message: dict[str, Any]) -> str | None:
    aux = message.get("aux")
    if isinstance(aux, dict) and aux.get("Digest"):
        return str(aux["Digest"])

    status = message.get("status")
    if isinstance(status, str):
        match = DIGEST_STATUS_PATTERN.search(status)
        if match:
            return match.group("digest")
    return None


class DigestCapture:
    """Wraps a progress observer and keeps the last digest seen."""

    def __init__(self, delegate: Optional[ProgressCallback] = log_progress):
        self.delegate = delegate
        self.digest: str | None = None

    def __call__(self, message: dict[str, Any]) -> None:
        digest = extract_digest(message)
        if digest:
            self.digest = digest
        if self.delegate is not None:
            self.delegate(message)
