from unittest.mock import MagicMock, call, patch

import pytest
from aiodocker.exceptions import DockerError

from dockertool.exceptions import ConfigurationError
from dockertool.packages.registry_auth import Credential, CredentialChain
from dockertool.services.build_record import BuildRecord

from ..orchestrator import push_image, push_image_tags

DIGEST = "sha256:" + "a" * 64

DIGEST_MESSAGES = [
    {"status": "The push refers to repository [registry.example.com/app]"},
    {"status": "Pushed", "id": "5f70bf18a086", "progressDetail": {}},
    {"status": f"1.0: digest: {DIGEST} size: 527"},
    {"progressDetail": {}, "aux": {"Tag": "1.0", "Digest": DIGEST, "Size": 527}},
]


def _push_error(message: str = "connection reset by peer") -> DockerError:
    return DockerError(500, {"message": message})


class TestPushImage:
    async def test_returns_digest_from_progress_stream(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher(DIGEST_MESSAGES)

        digest = await push_image(mock_engine, "registry.example.com/app:1.0")

        assert digest == DIGEST
        mock_engine.push.assert_awaited_once()

    async def test_passes_credential_to_engine(self, mock_engine):
        credential = Credential(username="user", password="pw")

        await push_image(mock_engine, "registry.example.com/app:1.0", credential=credential)

        image_name, _, passed_credential = mock_engine.push.call_args.args
        assert image_name == "registry.example.com/app:1.0"
        assert passed_credential is credential

    async def test_stream_without_digest(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher([{"status": "Pushed"}])
        record = BuildRecord(image="app:1.0")

        digest = await push_image(mock_engine, "app:1.0", build_record=record)

        assert digest is None
        assert record.digest is None
        assert "digest" not in record.to_dict()

    async def test_records_digest_with_repository(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher(DIGEST_MESSAGES)
        record = BuildRecord(image="registry.example.com/app:1.0")

        await push_image(mock_engine, "registry.example.com/app:1.0", build_record=record)

        assert record.digest == f"registry.example.com/app@{DIGEST}"

    async def test_retries_then_succeeds(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher(
            _push_error(), _push_error(), DIGEST_MESSAGES
        )

        digest = await push_image(
            mock_engine, "app:1.0", retry_push_count=5, retry_push_timeout=0
        )

        assert digest == DIGEST
        assert mock_engine.push.await_count == 3

    @pytest.mark.parametrize("retry_push_count", [0, 1, 3])
    async def test_retry_bound(self, mock_engine, retry_push_count):
        error = _push_error("denied: requested access to the resource is denied")
        mock_engine.push.side_effect = error

        with pytest.raises(DockerError) as exc_info:
            await push_image(
                mock_engine,
                "app:1.0",
                retry_push_count=retry_push_count,
                retry_push_timeout=0,
            )

        assert exc_info.value is error
        assert mock_engine.push.await_count == retry_push_count + 1

    async def test_waits_fixed_delay_between_attempts(self, mock_engine):
        mock_engine.push.side_effect = _push_error()

        with patch(
            "dockertool.packages.push.orchestrator.asyncio.sleep"
        ) as sleep, pytest.raises(DockerError):
            await push_image(
                mock_engine, "app:1.0", retry_push_count=2, retry_push_timeout=7.5
            )

        assert sleep.await_args_list == [call(7.5), call(7.5)]

    async def test_digest_from_failed_attempt_is_discarded(
        self, mock_engine, progress_pusher
    ):
        async def failing_after_digest(image_name, progress=None, credential=None):
            progress({"aux": {"Digest": "sha256:" + "b" * 64}})
            raise _push_error()

        succeed_without_digest = progress_pusher([{"status": "Pushed"}])
        calls = iter([failing_after_digest, succeed_without_digest])

        async def push(image_name, progress=None, credential=None):
            await next(calls)(image_name, progress, credential)

        mock_engine.push.side_effect = push
        record = BuildRecord(image="app:1.0")

        digest = await push_image(
            mock_engine, "app:1.0", retry_push_timeout=0, build_record=record
        )

        assert digest is None
        assert record.digest is None

    async def test_other_errors_are_not_retried(self, mock_engine):
        mock_engine.push.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await push_image(mock_engine, "app:1.0", retry_push_timeout=0)

        assert mock_engine.push.await_count == 1


class TestPushImageTags:
    @pytest.mark.parametrize("image_tags", [[], None])
    async def test_empty_tags_fail_before_engine_call(self, mock_engine, image_tags):
        with pytest.raises(ConfigurationError, match="imageTag"):
            await push_image_tags(mock_engine, "busybox", image_tags)

        assert mock_engine.method_calls == []
        assert mock_engine.push.await_count == 0

    async def test_pushes_every_tag_in_order(self, mock_engine):
        digests = await push_image_tags(
            mock_engine, "busybox:latest", ["0.0.1-SNAPSHOT"], retry_push_timeout=0
        )

        pushed = [c.args[0] for c in mock_engine.push.await_args_list]
        assert pushed == ["busybox:latest", "busybox:0.0.1-SNAPSHOT"]
        assert digests == {"busybox:latest": None, "busybox:0.0.1-SNAPSHOT": None}

    async def test_registry_port_is_kept(self, mock_engine):
        await push_image_tags(
            mock_engine, "host:8080/name", ["a", "b"], retry_push_timeout=0
        )

        pushed = [c.args[0] for c in mock_engine.push.await_args_list]
        assert pushed == ["host:8080/name:a", "host:8080/name:b"]

    async def test_resolves_credential_per_reference(self, mock_engine):
        credential = Credential(username="user", password="pw")
        chain = MagicMock(spec=CredentialChain)
        chain.resolve_for_image.return_value = credential

        await push_image_tags(
            mock_engine, "r.example.com/app", ["1", "2"], chain=chain, retry_push_timeout=0
        )

        assert chain.resolve_for_image.call_args_list == [
            call("r.example.com/app:1"),
            call("r.example.com/app:2"),
        ]
        assert all(c.args[2] is credential for c in mock_engine.push.await_args_list)

    async def test_failure_aborts_remaining_tags(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher([], _push_error())

        with pytest.raises(DockerError):
            await push_image_tags(
                mock_engine,
                "app",
                ["1", "2", "3"],
                retry_push_count=0,
                retry_push_timeout=0,
            )

        pushed = [c.args[0] for c in mock_engine.push.await_args_list]
        assert pushed == ["app:1", "app:2"]

    async def test_each_tag_has_its_own_retries(self, mock_engine, progress_pusher):
        mock_engine.push.side_effect = progress_pusher(
            _push_error(), [], _push_error(), []
        )

        await push_image_tags(
            mock_engine, "app", ["1", "2"], retry_push_count=1, retry_push_timeout=0
        )

        pushed = [c.args[0] for c in mock_engine.push.await_args_list]
        assert pushed == ["app:1", "app:1", "app:2", "app:2"]
