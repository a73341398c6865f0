import structlog

from dockertool.packages.push import push_image, push_image_tags
from dockertool.packages.registry_auth import CredentialChain
from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine
from dockertool.utils.image_names import parse_image_name

from .goal_runner import run_goal

logger = structlog.stdlib.get_logger(__name__)


async def push_images(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> dict[str, str | None]:
    """Push IMAGE_NAME, preceded by one push per IMAGE_TAGS entry.

    Returns:
        Digest per pushed reference
    """
    image_name = config.IMAGE_NAME
    repo, _ = parse_image_name(image_name)

    if config.SKIP_DOCKER_PUSH:
        logger.info("Skipping docker push", image=image_name)
        return {}

    digests: dict[str, str | None] = {}

    # Push the configured tags rather than every tag of the repository
    if config.IMAGE_TAGS:
        digests.update(
            await push_image_tags(
                engine,
                repo,
                config.IMAGE_TAGS,
                chain=chain,
                retry_push_count=config.RETRY_PUSH_COUNT,
                retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
            )
        )

    digests[image_name] = await push_image(
        engine,
        image_name,
        credential=chain.resolve_for_image(image_name),
        retry_push_count=config.RETRY_PUSH_COUNT,
        retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
    )
    return digests


async def execute_push(config: Settings | None = None) -> dict[str, str | None]:
    return await run_goal(push_images, config, name="push")


async def push_tags(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> dict[str, str | None]:
    """Push ``<repo>:<tag>`` for every IMAGE_TAGS entry and nothing else."""
    if config.SKIP_DOCKER_PUSH:
        logger.info("Skipping docker push", image=config.IMAGE_NAME)
        return {}

    return await push_image_tags(
        engine,
        config.IMAGE_NAME,
        config.IMAGE_TAGS,
        chain=chain,
        retry_push_count=config.RETRY_PUSH_COUNT,
        retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
    )


async def execute_push_tags(config: Settings | None = None) -> dict[str, str | None]:
    return await run_goal(push_tags, config, name="push-tags")
