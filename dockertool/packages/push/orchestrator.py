"""Push images to a registry with retries.

Every push is retried a fixed number of times with a fixed delay. The
engine reports a concurrent conflicting push with the same generic error as
a network failure, so every DockerError is treated as retryable.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from aiodocker.exceptions import DockerError

from dockertool.exceptions import ConfigurationError
from dockertool.packages.registry_auth import Credential, CredentialChain
from dockertool.services.build_record import BuildRecord
from dockertool.utils.docker import DockerEngine, ProgressCallback, log_progress
from dockertool.utils.image_names import CompositeImageName, parse_image_name

from .progress import DigestCapture

logger = structlog.stdlib.get_logger(__name__)

DEFAULT_RETRY_PUSH_COUNT = 5
DEFAULT_RETRY_PUSH_TIMEOUT = 10.0

NO_TAGS_MESSAGE = (
    'You have used option "pushImageTag" or goal "push-tags" but have not '
    'specified an "imageTag" in your docker configuration'
)


@dataclass
class PushAttempt:
    """State of one push call, discarded when the call returns."""

    image_name: str
    attempt: int = 0
    last_error: Optional[DockerError] = None
    digest: Optional[str] = None


async def push_image(
    engine: DockerEngine,
    image_name: str,
    *,
    credential: Optional[Credential] = None,
    retry_push_count: int = DEFAULT_RETRY_PUSH_COUNT,
    retry_push_timeout: float = DEFAULT_RETRY_PUSH_TIMEOUT,
    build_record: Optional[BuildRecord] = None,
    progress: Optional[ProgressCallback] = log_progress,
) -> str | None:
    """Push one image reference, retrying on engine errors.

    Args:
        engine: Open Docker engine client
        image_name: Reference to push (repo[:tag])
        credential: Registry credential, None for anonymous push
        retry_push_count: Retries after the first attempt
        retry_push_timeout: Seconds to wait between attempts
        build_record: Receives "<repo>@<digest>" after a successful push
        progress: Observer for the engine progress stream

    Returns:
        Digest of the pushed manifest, or None when the engine did not
        report one

    Raises:
        DockerError: the last engine error once all attempts failed
    """
    state = PushAttempt(image_name=image_name)

    while True:
        state.attempt += 1
        capture = DigestCapture(progress)
        try:
            logger.info("Pushing image", image=image_name, attempt=state.attempt)
            await engine.push(image_name, capture, credential)
        except DockerError as e:
            state.last_error = e
            if state.attempt > retry_push_count:
                logger.error(
                    "Failed to push image, giving up",
                    image=image_name,
                    attempts=state.attempt,
                    error=str(e),
                )
                raise
            logger.warning(
                "Failed to push image, retrying",
                image=image_name,
                retry_in_seconds=retry_push_timeout,
                attempt=state.attempt,
                retry_push_count=retry_push_count,
                error=str(e),
            )
            await asyncio.sleep(retry_push_timeout)
            continue

        state.digest = capture.digest
        break

    if state.digest is None:
        logger.info("Push finished without a digest", image=image_name)
    elif build_record is not None:
        repo, _ = parse_image_name(image_name)
        build_record.set_digest(f"{repo}@{state.digest}")

    logger.info("Pushed image", image=image_name, digest=state.digest)
    return state.digest


async def push_image_tags(
    engine: DockerEngine,
    image_name: str,
    image_tags: Optional[list[str]],
    *,
    chain: Optional[CredentialChain] = None,
    retry_push_count: int = DEFAULT_RETRY_PUSH_COUNT,
    retry_push_timeout: float = DEFAULT_RETRY_PUSH_TIMEOUT,
    progress: Optional[ProgressCallback] = log_progress,
) -> dict[str, str | None]:
    """Push ``name:tag`` for every configured tag, in order.

    Each reference is an independent push with its own retries. The first
    reference that fails aborts the rest.

    Returns:
        Digest per pushed reference

    Raises:
        ConfigurationError: image_tags is empty; raised before the engine
            is used
    """
    if not image_tags:
        raise ConfigurationError(NO_TAGS_MESSAGE)

    composite = CompositeImageName.create(image_name, image_tags)

    digests: dict[str, str | None] = {}
    for reference in composite.references():
        credential = chain.resolve_for_image(reference) if chain is not None else None
        digests[reference] = await push_image(
            engine,
            reference,
            credential=credential,
            retry_push_count=retry_push_count,
            retry_push_timeout=retry_push_timeout,
            progress=progress,
        )
    return digests
