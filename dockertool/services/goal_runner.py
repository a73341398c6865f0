"""Shared scaffolding for running a goal against the Docker engine.

A goal receives an open engine, the credential chain and the settings.
The chain is built before the engine is contacted, so configuration errors
surface without any network traffic, and the engine is always closed.
"""

from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from dockertool.exceptions import ConfigurationError, GoalExecutionError
from dockertool.packages.registry_auth import CredentialChain, build_chain
from dockertool.settings import Settings, settings
from dockertool.utils.docker import DockerEngine

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")

Goal = Callable[[DockerEngine, CredentialChain, Settings], Awaitable[T]]


async def run_goal(
    goal: Goal[T],
    config: Optional[Settings] = None,
    *,
    name: Optional[str] = None,
    engine_factory: Callable[[str], DockerEngine] = DockerEngine,
) -> T:
    """Run ``goal`` inside one engine session.

    Raises:
        ConfigurationError: invalid configuration, raised unchanged
        GoalExecutionError: any other failure, with the original error
            chained
    """
    config = config or settings
    goal_name = name or getattr(goal, "__name__", "goal")

    try:
        chain = build_chain(config)
        async with engine_factory(config.DOCKER_HOST) as engine:
            return await goal(engine, chain, config)
    except (ConfigurationError, GoalExecutionError):
        raise
    except Exception as e:
        logger.error("Goal failed", goal=goal_name, error=str(e))
        raise GoalExecutionError(f"{goal_name} failed: {e}") from e
