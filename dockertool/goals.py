"""Goal registry.

Maps the goal names a build tool binds to its phases onto the async service
functions, and runs one goal with logging configured.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from dockertool.exceptions import ConfigurationError
from dockertool.services.build_service import execute_build
from dockertool.services.push_service import execute_push, execute_push_tags
from dockertool.services.remove_image_service import execute_remove_image
from dockertool.services.save_service import execute_save
from dockertool.services.tag_service import execute_tag
from dockertool.settings import Settings
from dockertool.utils.logging import LogSettings, setup_logger

logger = structlog.stdlib.get_logger(__name__)

GOALS: dict[str, Callable[[Optional[Settings]], Awaitable[Any]]] = {
    "build": execute_build,
    "tag": execute_tag,
    "push": execute_push,
    "push-tags": execute_push_tags,
    "removeImage": execute_remove_image,
    "saveImage": execute_save,
}


def run(
    goal: str,
    config: Optional[Settings] = None,
    log_settings: Optional[LogSettings] = None,
) -> Any:
    """Configure logging and run ``goal`` to completion.

    Raises:
        ConfigurationError: unknown goal name or invalid configuration
        GoalExecutionError: the goal failed
    """
    try:
        execute = GOALS[goal]
    except KeyError:
        raise ConfigurationError(
            f"Unknown goal {goal!r}, expected one of: {', '.join(GOALS)}"
        ) from None

    setup_logger(log_settings)
    logger.info("Running goal", goal=goal)
    return asyncio.run(execute(config))
