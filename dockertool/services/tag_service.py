import structlog

from dockertool.exceptions import ConfigurationError
from dockertool.packages.push import push_image
from dockertool.packages.registry_auth import CredentialChain
from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine
from dockertool.utils.git import get_commit_id
from dockertool.utils.image_names import parse_image_name

from .build_record import BuildRecord
from .goal_runner import run_goal

logger = structlog.stdlib.get_logger(__name__)


def resolve_tag(repo: str, tag: str | None, use_git_commit_id: bool) -> str:
    """Return ``repo[:tag]``, using the short git commit id as tag if asked.

    An explicit tag always wins over the git commit id.
    """
    if use_git_commit_id:
        if tag is not None:
            logger.warning(
                "Ignoring useGitCommitId flag because tag is explicitly set in image name"
            )
        else:
            tag = get_commit_id()
    return f"{repo}:{tag}" if tag else repo


async def tag_image(
    engine: DockerEngine, chain: CredentialChain, config: Settings
) -> BuildRecord | None:
    """Apply TAG_NEW_NAME to TAG_IMAGE, optionally push it, write the record.

    Returns:
        The written build record, or None when tagging is skipped
    """
    if config.SKIP_DOCKER_TAG:
        logger.info("Skipping docker tag")
        return None

    if not config.TAG_IMAGE:
        raise ConfigurationError('You must specify the "image" to tag')

    repo, tag = parse_image_name(config.TAG_NEW_NAME)
    normalized_name = resolve_tag(repo, tag, config.USE_GIT_COMMIT_ID)

    logger.info("Creating tag", new_name=normalized_name, image=config.TAG_IMAGE)
    await engine.tag(config.TAG_IMAGE, normalized_name, config.FORCE_TAGS)

    build_record = BuildRecord.create(normalized_name)

    if config.PUSH_IMAGE:
        if config.SKIP_DOCKER_PUSH:
            logger.info("Skipping docker push", image=normalized_name)
        else:
            await push_image(
                engine,
                normalized_name,
                credential=chain.resolve_for_image(normalized_name),
                retry_push_count=config.RETRY_PUSH_COUNT,
                retry_push_timeout=config.RETRY_PUSH_TIMEOUT,
                build_record=build_record,
            )

    build_record.write(config.TAG_INFO_FILE)
    return build_record


async def execute_tag(config: Settings | None = None) -> BuildRecord | None:
    return await run_goal(tag_image, config, name="tag")
