from pathlib import Path

import structlog

from dockertool.exceptions import ConfigurationError
from dockertool.packages.registry_auth import CredentialChain
from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine
from dockertool.utils.image_names import parse_image_name

from .goal_runner import run_goal

logger = structlog.stdlib.get_logger(__name__)


async def _is_local_image(engine: DockerEngine, image_name: str) -> bool:
    repo, tag = parse_image_name(image_name)
    reference = f"{repo}:{tag or 'latest'}"
    for image in await engine.list_images():
        if reference in (image.get("RepoTags") or []) or image.get("Id") == image_name:
            return True
    return False


async def save_image(engine: DockerEngine, image_name: str, path: str | Path) -> Path:
    """Write the image as a tar archive to ``path``.

    Raises:
        ConfigurationError: the image is not present in the local engine
    """
    if not await _is_local_image(engine, image_name):
        raise ConfigurationError(f"Image {image_name} does not exist locally")

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Saving image", image=image_name, path=str(target))

    size = 0
    with target.open("wb") as f:
        async for chunk in engine.save(image_name):
            f.write(chunk)
            size += len(chunk)

    logger.info("Saved image", image=image_name, path=str(target), bytes=size)
    return target


async def save_configured_image(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> Path:
    if not config.SAVE_IMAGE_TO_TAR_ARCHIVE:
        raise ConfigurationError(
            "SAVE_IMAGE_TO_TAR_ARCHIVE must name the archive to write"
        )
    return await save_image(engine, config.IMAGE_NAME, config.SAVE_IMAGE_TO_TAR_ARCHIVE)


async def execute_save(config: Settings | None = None) -> Path:
    return await run_goal(save_configured_image, config, name="saveImage")
