import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from dockertool.settings import Settings
from dockertool.utils.docker import DockerEngine

ISOLATED_ENV_VARS = [
    "DOCKER_CONFIG",
    "DOCKER_HOST",
    "ECR_CREDENTIALS_FILE",
    "ENCRYPTION_KEY",
    "REGISTRY_URL",
    "REGISTRY_AUTH_USER",
    "REGISTRY_AUTH_PASSWORD",
    "REGISTRY_AUTH_EMAIL",
    "REGISTRY_IDENTITY_TOKEN",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "AWS_PROFILE",
    "IMAGE_NAME",
    "IMAGE_TAGS",
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the developer's Docker and AWS setup out of the tests."""
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"{name}_FILE", raising=False)
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws-credentials"))
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws-config"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_settings(tmp_path):
    """Settings with test-friendly defaults; keyword arguments override."""

    def factory(**overrides) -> Settings:
        values = {
            "RETRY_PUSH_TIMEOUT": 0,
            "TAG_INFO_FILE": str(tmp_path / "target" / "image_info.json"),
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def docker_config_dir(tmp_path):
    """Write a Docker config.json and return its directory."""

    def factory(document: dict) -> Path:
        config_dir = tmp_path / "docker-config"
        config_dir.mkdir(exist_ok=True)
        (config_dir / "config.json").write_text(json.dumps(document))
        return config_dir

    return factory


@pytest.fixture
def mock_engine():
    engine = MagicMock(spec=DockerEngine)
    engine.build = AsyncMock(return_value=None)
    engine.push = AsyncMock(return_value=None)
    engine.tag = AsyncMock(return_value=None)
    engine.remove_image = AsyncMock(return_value=[])
    engine.list_images = AsyncMock(return_value=[])
    return engine


@pytest.fixture
def progress_pusher():
    """Build a side effect for ``engine.push`` replaying progress messages.

    Each push call consumes the next batch; a batch that is an exception is
    raised instead.
    """

    def factory(*message_batches):
        batches = list(message_batches)

        async def push(image_name, progress=None, credential=None):
            batch = batches.pop(0)
            if isinstance(batch, BaseException):
                raise batch
            for message in batch:
                if progress is not None:
                    progress(message)

        return push

    return factory
