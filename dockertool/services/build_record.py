"""Build record written next to the build output.

Example file::

    {"commit": "9f1c...", "digest": "registry:5000/app@sha256:...",
     "image": "registry:5000/app:1.0", "repo": "git@github.com:org/app.git"}
"""

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, PrivateAttr

from dockertool.utils.git import GitRepository

logger = structlog.stdlib.get_logger(__name__)


class BuildRecord(BaseModel):
    image: str
    repo: str | None = None
    commit: str | None = None
    digest: str | None = None

    _written: bool = PrivateAttr(default=False)

    @classmethod
    def create(cls, image: str, path: str | Path | None = None) -> "BuildRecord":
        """Start a record for ``image``, filling in git remote and commit."""
        record = cls(image=image)
        try:
            git_repo = GitRepository.discover(path)
            if git_repo is not None:
                record.repo = git_repo.remote_url()
                record.commit = git_repo.head_commit()
        except OSError as e:
            logger.error("Failed to read Git information", error=str(e))
        return record

    def set_digest(self, digest: str) -> None:
        """Record the digest of the pushed image. Allowed once."""
        if self._written:
            raise RuntimeError("Build record has already been written")
        if self.digest is not None:
            raise RuntimeError(f"Digest already set for {self.image}")
        self.digest = digest

    def to_dict(self) -> dict[str, Any]:
        values = self.model_dump(exclude_none=True)
        return {key: values[key] for key in sorted(values, key=str.lower)}

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    def write(self, path: str | Path) -> Path:
        """Serialize the record to ``path``; the record is final afterwards."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.to_json_bytes())
        self._written = True
        logger.info("Wrote build record", path=str(target), image=self.image)
        return target
