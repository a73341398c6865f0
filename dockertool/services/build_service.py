"""Build goal: build, tag, push and save an image, then write its record.

Dockerfile generation is not part of this package; DOCKER_DIRECTORY must
point at a build context that already contains a Dockerfile.
"""

import asyncio
import weakref
from pathlib import Path

import structlog

from dockertool.exceptions import ConfigurationError
from dockertool.packages.push import push_image, push_image_tags
from dockertool.packages.registry_auth import CredentialChain
from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine
from dockertool.utils.git import GitRepository
from dockertool.utils.image_names import parse_image_name

from .build_record import BuildRecord
from .goal_runner import run_goal
from .save_service import save_image

logger = structlog.stdlib.get_logger(__name__)

GIT_COMMIT_ID_PLACEHOLDER = "${gitShortCommitId}"

# Builds in one process share the build directory. asyncio locks are bound
# to one event loop, so each loop gets its own.
_build_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def build_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _build_locks.get(loop)
    if lock is None:
        lock = _build_locks[loop] = asyncio.Lock()
    return lock


def should_skip_build(config: Settings) -> bool:
    if config.SKIP_DOCKER_BUILD:
        logger.info("Property skipDockerBuild is set")
        return True

    if config.DOCKER_DIRECTORY:
        if not (Path(config.DOCKER_DIRECTORY) / "Dockerfile").exists():
            logger.info("No Dockerfile in dockerDirectory")
            return True

    return False


def resolve_image_name(config: Settings) -> str:
    """Expand the git commit id into IMAGE_NAME where requested.

    ``${gitShortCommitId}`` in the name is replaced by the short commit id,
    and with USE_GIT_COMMIT_ID an untagged name is tagged with it.

    Raises:
        ConfigurationError: the commit id is needed but unavailable
    """
    image_name = config.IMAGE_NAME
    needs_commit_id = config.USE_GIT_COMMIT_ID or GIT_COMMIT_ID_PLACEHOLDER in image_name

    git_repo = GitRepository.discover()
    commit_id = git_repo.short_commit_id() if git_repo is not None else None

    if commit_id is None:
        message = (
            "Not a git repository, cannot get commit ID. "
            "Make sure git repository is initialized."
        )
        if needs_commit_id:
            raise ConfigurationError(message)
        logger.debug(message)
    else:
        image_name = image_name.replace(GIT_COMMIT_ID_PLACEHOLDER, commit_id)

    repo, tag = parse_image_name(image_name)
    if config.USE_GIT_COMMIT_ID:
        if tag is not None:
            logger.warning(
                "Ignoring useGitCommitId flag because tag is explicitly set in image name"
            )
        else:
            image_name = f"{repo}:{commit_id}"
    return image_name


async def tag_image_tags(
    engine: DockerEngine, image_name: str, image_tags: list[str], force: bool
) -> None:
    repo, _ = parse_image_name(image_name)
    for image_tag in image_tags:
        if image_tag:
            logger.info("Tagging image", image=image_name, tag=image_tag)
            await engine.tag(image_name, f"{repo}:{image_tag}", force)


async def build_image(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> BuildRecord | None:
    """Run the build goal.

    Returns:
        The written build record, or None when the build is skipped
    """
    if should_skip_build(config):
        logger.info("Skipping docker build")
        return None

    if not config.DOCKER_DIRECTORY:
        raise ConfigurationError(
            "DOCKER_DIRECTORY must point at a build context containing a Dockerfile"
        )

    image_name = resolve_image_name(config)

    async with build_lock():
        logger.info("Building image", image=image_name, context=config.DOCKER_DIRECTORY)
        await engine.build(
            config.DOCKER_DIRECTORY,
            image_name,
            pull=config.PULL_ON_BUILD,
            no_cache=config.NO_CACHE,
            rm=config.RM,
            buildargs=config.BUILD_ARGS,
            labels=config.LABELS,
        )
        logger.info("Built image", image=image_name)

    await tag_image_tags(engine, image_name, config.IMAGE_TAGS, config.FORCE_TAGS)

    build_record = BuildRecord.create(image_name)

    if config.SKIP_DOCKER_PUSH and (config.PUSH_IMAGE or config.PUSH_IMAGE_TAG):
        logger.info("Skipping docker push", image=image_name)
    else:
        if config.PUSH_IMAGE_TAG:
            await push_image_tags(
                engine,
                image_name,
                config.IMAGE_TAGS,
                chain=chain,
                retry_push_count=config.RETRY_PUSH_COUNT,
                retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
            )

        if config.PUSH_IMAGE:
            await push_image(
                engine,
                image_name,
                credential=chain.resolve_for_image(image_name),
                retry_push_count=config.RETRY_PUSH_COUNT,
                retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
                build_record=build_record,
            )

    if config.SAVE_IMAGE_TO_TAR_ARCHIVE:
        await save_image(engine, image_name, config.SAVE_IMAGE_TO_TAR_ARCHIVE)

    build_record.write(config.TAG_INFO_FILE)
    return build_record


async def execute_build(config: Settings | None = None) -> BuildRecord | None:
    return await run_goal(build_image, config, name="build")
