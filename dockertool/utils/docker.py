"""Docker engine access.

Thin async wrapper around :mod:`aiodocker` exposing the handful of engine
operations the goals need. The wrapper is a scoped resource: open it with
``async with DockerEngine(...) as engine`` so the HTTP session is closed on
every exit path.

Requests issued through aiodocker carry no total timeout, so long builds and
pushes are not interrupted by an idle connection.
"""

import io
import tarfile
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

import aiodocker
import structlog
from aiodocker.exceptions import DockerError

from dockertool.packages.registry_auth.types import Credential
from dockertool.utils.image_names import parse_image_name, qualified_reference

logger = structlog.stdlib.get_logger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]

SAVE_CHUNK_SIZE = 64 * 1024


def log_progress(message: dict[str, Any]) -> None:
    """Default progress observer: forward engine status lines to the log."""
    if "stream" in message:
        text = message["stream"].rstrip()
        if text:
            logger.info(text)
    elif "status" in message:
        logger.debug(
            message["status"],
            id=message.get("id"),
            progress=message.get("progress"),
        )


def stream_error(message: dict[str, Any]) -> str | None:
    """Return the error text carried by a progress message, if any."""
    if message.get("error"):
        return str(message["error"])
    detail = message.get("errorDetail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return None


def make_context_archive(context_path: str | Path) -> io.BytesIO:
    """Pack a build context directory into a gzip-compressed tar archive.

    aiodocker requires a tar archive for ``fileobj`` when building images.
    """
    context = Path(context_path)
    if not (context / "Dockerfile").is_file():
        raise FileNotFoundError(f"No Dockerfile in build context {context}")

    tar_stream = io.BytesIO()
    with tarfile.open(fileobj=tar_stream, mode="w:gz") as tar:
        for entry in sorted(context.iterdir()):
            tar.add(entry, arcname=entry.name)
    tar_stream.seek(0)
    return tar_stream


class DockerEngine:
    """Scoped Docker engine client."""

    def __init__(self, docker_host: str = ""):
        self.docker_host = docker_host or None
        self._docker: Optional[aiodocker.Docker] = None

    async def __aenter__(self) -> "DockerEngine":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def open(self) -> None:
        if self._docker is None:
            self._docker = aiodocker.Docker(url=self.docker_host)
            logger.debug("Opened Docker engine client", docker_host=self.docker_host)

    async def close(self) -> None:
        if self._docker is not None:
            docker, self._docker = self._docker, None
            await docker.close()
            logger.debug("Closed Docker engine client")

    @property
    def docker(self) -> aiodocker.Docker:
        if self._docker is None:
            raise RuntimeError("DockerEngine is not open")
        return self._docker

    async def _consume(
        self,
        stream: AsyncIterator[dict[str, Any]],
        progress: Optional[ProgressCallback],
    ) -> None:
        """Feed every progress message to ``progress``.

        The engine reports failures inside the stream rather than through
        the HTTP status, so an error message is raised as DockerError.
        """
        async for message in stream:
            if progress is not None:
                progress(message)
            error = stream_error(message)
            if error is not None:
                raise DockerError(500, {"message": error})

    async def build(
        self,
        context_path: str | Path,
        image_name: str,
        progress: Optional[ProgressCallback] = log_progress,
        *,
        pull: bool = False,
        no_cache: bool = False,
        rm: bool = True,
        buildargs: Optional[dict[str, str]] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        tar_stream = make_context_archive(context_path)
        stream = self.docker.images.build(
            fileobj=tar_stream,
            encoding="gzip",
            tag=image_name,
            pull=pull,
            nocache=no_cache,
            rm=rm,
            buildargs=buildargs or None,
            labels=labels or None,
            stream=True,
        )
        await self._consume(stream, progress)

    async def push(
        self,
        image_name: str,
        progress: Optional[ProgressCallback] = log_progress,
        credential: Optional[Credential] = None,
    ) -> None:
        """Push an image, authenticating with ``credential`` when given.

        aiodocker takes the registry of an authenticated push from the
        first path component, so Docker Hub references are pushed by their
        fully qualified name.
        """
        auth = credential.to_auth_config() if credential is not None else None
        stream = self.docker.images.push(
            qualified_reference(image_name), auth=auth, stream=True
        )
        await self._consume(stream, progress)

    async def tag(self, source: str, destination: str, force: bool = False) -> None:
        """Apply ``destination`` as a new name of ``source``.

        Engine API versions from 1.25 on always move an existing tag, so
        ``force`` is only reported in the log.
        """
        repo, tag = parse_image_name(destination)
        logger.debug("Tagging image", source=source, destination=destination, force=force)
        await self.docker.images.tag(source, repo, tag=tag)

    async def remove_image(
        self, name: str, force: bool = False, noprune: bool = False
    ) -> list[dict[str, Any]]:
        return await self.docker.images.delete(name, force=force, noprune=noprune)

    async def save(self, image_name: str) -> AsyncIterator[bytes]:
        """Stream the tar archive of an image."""
        async with self.docker.images.export_image(image_name) as content:
            async for chunk in content.iter_chunked(SAVE_CHUNK_SIZE):
                yield chunk

    async def list_images(self) -> list[dict[str, Any]]:
        return await self.docker.images.list()
