import tarfile
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiodocker.exceptions import DockerError

from dockertool.packages.registry_auth import Credential
from dockertool.utils.docker import DockerEngine, make_context_archive, stream_error


def _stream(*messages):
    async def generate():
        for message in messages:
            yield message

    return generate()


@pytest.fixture
def docker():
    with patch("dockertool.utils.docker.aiodocker.Docker") as docker_cls:
        client = docker_cls.return_value
        client.close = AsyncMock()
        yield client


async def test_session_is_closed(docker):
    async with DockerEngine("tcp://docker:2375") as engine:
        assert engine.docker is docker

    docker.close.assert_awaited_once()
    with pytest.raises(RuntimeError):
        engine.docker


async def test_push_passes_credential_and_progress(docker):
    docker.images.push = MagicMock(
        return_value=_stream({"status": "Pushed"}, {"aux": {"Digest": "sha256:abc"}})
    )
    credential = Credential(
        username="user", password="pw", server_address="r.example.com"
    )
    seen = []

    async with DockerEngine() as engine:
        await engine.push("r.example.com/app:1.0", seen.append, credential)

    docker.images.push.assert_called_once_with(
        "r.example.com/app:1.0",
        auth={"username": "user", "password": "pw", "serveraddress": "r.example.com"},
        stream=True,
    )
    assert seen == [{"status": "Pushed"}, {"aux": {"Digest": "sha256:abc"}}]


async def test_anonymous_push(docker):
    docker.images.push = MagicMock(return_value=_stream())

    async with DockerEngine() as engine:
        await engine.push("app:1.0", None)

    assert docker.images.push.call_args.kwargs["auth"] is None


async def test_error_in_stream_is_raised(docker):
    docker.images.push = MagicMock(
        return_value=_stream(
            {"status": "Preparing"},
            {
                "errorDetail": {"message": "denied: access forbidden"},
                "error": "denied: access forbidden",
            },
        )
    )

    async with DockerEngine() as engine:
        with pytest.raises(DockerError, match="access forbidden"):
            await engine.push("app:1.0", None)


async def test_build_sends_gzip_context(docker, tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM busybox\n")
    docker.images.build = MagicMock(return_value=_stream({"stream": "Step 1/1\n"}))

    async with DockerEngine() as engine:
        await engine.build(tmp_path, "app:1.0", None, buildargs={"A": "1"})

    kwargs = docker.images.build.call_args.kwargs
    assert kwargs["encoding"] == "gzip"
    assert kwargs["tag"] == "app:1.0"
    assert kwargs["buildargs"] == {"A": "1"}
    assert kwargs["labels"] is None
    assert kwargs["stream"] is True


async def test_tag_splits_destination(docker):
    docker.images.tag = AsyncMock(return_value=True)

    async with DockerEngine() as engine:
        await engine.tag("sha256:abc", "host:5000/app:1.0", force=True)

    docker.images.tag.assert_awaited_once_with("sha256:abc", "host:5000/app", tag="1.0")


def test_context_archive(tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM busybox\n")
    (tmp_path / "app.txt").write_text("hello")

    with tarfile.open(fileobj=make_context_archive(tmp_path), mode="r:gz") as tar:
        assert sorted(tar.getnames()) == ["Dockerfile", "app.txt"]


def test_context_archive_requires_dockerfile(tmp_path):
    with pytest.raises(FileNotFoundError):
        make_context_archive(tmp_path)


@pytest.mark.parametrize(
    "message,expected",
    [
        ({"error": "boom"}, "boom"),
        ({"errorDetail": {"message": "boom"}}, "boom"),
        ({"status": "Pushed"}, None),
    ],
)
def test_stream_error(message, expected):
    assert stream_error(message) == expected


@pytest.mark.parametrize(
    "image_name,pushed",
    [
        ("app:1.0", "docker.io/library/app:1.0"),
        ("user/app:1.0", "docker.io/user/app:1.0"),
        ("docker.io/user/app", "docker.io/user/app"),
    ],
)
async def test_docker_hub_push_uses_qualified_name(docker, image_name, pushed):
    docker.images.push = MagicMock(return_value=_stream({"status": "Pushed"}))
    credential = Credential(username="user", password="pw")

    async with DockerEngine() as engine:
        await engine.push(image_name, None, credential)

    name = docker.images.push.call_args.args[0]
    assert name == pushed
    # aiodocker uses the first path component as the registry address
    assert name.partition("/")[0] == "docker.io"
