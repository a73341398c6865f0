import structlog
from aiodocker.exceptions import DockerError

from dockertool.packages.registry_auth import CredentialChain
from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine
from dockertool.utils.image_names import parse_image_name

from .goal_runner import run_goal

logger = structlog.stdlib.get_logger(__name__)


async def remove_image(engine: DockerEngine, image_name: str) -> int:
    """Force-remove an image and prune its untagged parents.

    Removing an image that does not exist is not an error.

    Returns:
        Number of untagged/deleted entries reported by the engine, 0 when
        the image did not exist
    """
    logger.info("Removing image", image=image_name, force=True)
    try:
        removed = await engine.remove_image(image_name, force=True, noprune=False)
    except DockerError as e:
        if e.status == 404:
            logger.warning(
                "Image does not exist and cannot be deleted - ignoring",
                image=image_name,
            )
            return 0
        raise
    return len(removed)


async def remove_images(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> dict[str, int]:
    """Remove IMAGE_NAME and ``<repo>:<tag>`` for every IMAGE_TAGS entry."""
    repo, _ = parse_image_name(config.IMAGE_NAME)
    names = [config.IMAGE_NAME]
    names.extend(f"{repo}:{tag}" for tag in config.IMAGE_TAGS if tag)

    return {name: await remove_image(engine, name) for name in names}


async def execute_remove_image(config: Settings | None = None) -> dict[str, int]:
    return await run_goal(remove_images, config, name="removeImage")
