"""Credential providers for the different credential sources.

- StaticCredentialProvider: one explicitly configured credential
- DockerConfigCredentialProvider: the Docker client's config.json
- EcrCredentialProvider: short-lived AWS ECR tokens exchanged on demand
"""

import base64
import binascii
import json
import re
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from dockertool.exceptions import ConfigurationError
from dockertool.utils.image_names import (
    DEFAULT_REGISTRY_HOST,
    normalize_registry_host,
)

from .types import Credential

logger = structlog.stdlib.get_logger(__name__)

# Key the Docker CLI uses for Docker Hub in config.json and credential helpers
DOCKER_HUB_SERVER_ADDRESS = "https://index.docker.io/v1/"

# Credential helpers report identity tokens with this user name
IDENTITY_TOKEN_USERNAME = "<token>"

ECR_HOST_PATTERN = re.compile(
    r"^(?P<account>\d{12})\.dkr\.ecr(?:-fips)?\.(?P<region>[a-z0-9-]+)"
    r"\.amazonaws\.com(?:\.cn)?$"
)


def server_address_for(host: str) -> str:
    if host == DEFAULT_REGISTRY_HOST:
        return DOCKER_HUB_SERVER_ADDRESS
    return host


class StaticCredentialProvider:
    """A single explicitly configured credential.

    When a registry host is nominated the credential is only handed out for
    that host. Without one it is the fallback for every host.
    """

    name = "static"

    def __init__(self, credential: Credential, registry_host: Optional[str] = None):
        self.credential = credential
        self.registry_host = (
            normalize_registry_host(registry_host) if registry_host else None
        )

    def resolve(self, host: str) -> Credential | None:
        if self.registry_host is None:
            return self.credential
        if normalize_registry_host(host) == self.registry_host:
            return self.credential
        return None


CredentialHelperRunner = Callable[[str, str], Optional[dict[str, Any]]]


def run_credential_helper(helper: str, server_address: str) -> Optional[dict[str, Any]]:
    """Ask ``docker-credential-<helper>`` for the credential of a server.

    Returns the helper's JSON answer, or None when the helper knows no
    credential for the server.
    """
    result = subprocess.run(
        [f"docker-credential-{helper}", "get"],
        input=server_address,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        logger.debug(
            "Credential helper returned no credential",
            helper=helper,
            server_address=server_address,
            output=result.stdout.strip() or result.stderr.strip(),
        )
        return None
    return json.loads(result.stdout)


def _decode_auth(encoded: str) -> tuple[str, str]:
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("auth field is not valid base64") from e
    username, sep, password = decoded.partition(":")
    if not sep:
        raise ValueError("auth field does not contain 'username:password'")
    return username, password


def _credential_from_entry(key: str, entry: dict[str, Any]) -> Credential | None:
    email = entry.get("email") or None
    if entry.get("identitytoken"):
        username = ""
        if entry.get("auth"):
            username, _ = _decode_auth(entry["auth"])
        return Credential(
            username=username,
            identity_token=entry["identitytoken"],
            server_address=key,
            email=email,
        )
    if entry.get("auth"):
        username, password = _decode_auth(entry["auth"])
        if not password:
            return None
        return Credential(
            username=username,
            password=password,
            server_address=key,
            email=email,
        )
    # Placeholder entry written by "docker login" when a credsStore is used
    return None


class DockerConfigCredentialProvider:
    """Credentials from the Docker client configuration file.

    The file is read once when the provider is created and treated as
    immutable afterwards. Entries are keyed by normalized registry host.
    """

    name = "docker-config"

    def __init__(
        self,
        config_path: Path,
        explicit: bool = False,
        helper_runner: CredentialHelperRunner = run_credential_helper,
    ):
        """Load the config file.

        Args:
            config_path: Path of config.json
            explicit: Whether the path was configured explicitly. A missing
                or malformed file is then a ConfigurationError instead of
                leaving the provider unavailable.
            helper_runner: Runs a credential helper program

        Raises:
            ConfigurationError: explicit is set and the file cannot be used
        """
        self.config_path = config_path
        self.explicit = explicit
        self.helper_runner = helper_runner
        self.available = False

        self._credentials: dict[str, Credential] = {}
        self._cred_helpers: dict[str, str] = {}
        self._creds_store: Optional[str] = None

        try:
            self._load()
            self.available = True
        except FileNotFoundError as e:
            if explicit:
                raise ConfigurationError(
                    f"Docker config file {config_path} does not exist"
                ) from e
            logger.debug("No Docker config file found", path=str(config_path))
        except (OSError, ValueError) as e:
            if explicit:
                raise ConfigurationError(
                    f"Unable to read Docker config file {config_path}: {e}"
                ) from e
            logger.warning(
                "Ignoring unreadable Docker config file",
                path=str(config_path),
                error=str(e),
            )

    @classmethod
    def from_directory(
        cls, config_dir: str, explicit: bool = False
    ) -> "DockerConfigCredentialProvider":
        base = Path(config_dir).expanduser() if config_dir else Path.home() / ".docker"
        return cls(base / "config.json", explicit=explicit)

    def _load(self) -> None:
        document = json.loads(self.config_path.read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("top-level JSON value is not an object")

        for key, entry in (document.get("auths") or {}).items():
            host = normalize_registry_host(key)
            if host in self._credentials:
                logger.debug("Duplicate registry entry ignored", key=key, host=host)
                continue
            if entry is not None and not isinstance(entry, dict):
                raise ValueError(f"entry for {key} is not an object")
            try:
                credential = _credential_from_entry(key, entry or {})
            except ValueError as e:
                raise ValueError(f"invalid entry for {key}: {e}") from e
            if credential is not None:
                self._credentials[host] = credential

        for key, helper in (document.get("credHelpers") or {}).items():
            self._cred_helpers.setdefault(normalize_registry_host(key), helper)

        self._creds_store = document.get("credsStore") or None

        logger.debug(
            "Loaded Docker config file",
            path=str(self.config_path),
            registries=sorted(self._credentials),
            cred_helpers=sorted(self._cred_helpers),
            creds_store=self._creds_store,
        )

    def _from_helper(self, helper: str, host: str) -> Credential | None:
        server_address = server_address_for(host)
        try:
            answer = self.helper_runner(helper, server_address)
        except (OSError, ValueError) as e:
            logger.warning(
                "Credential helper failed",
                helper=helper,
                host=host,
                error=str(e),
            )
            return None
        if not answer or not answer.get("Secret"):
            return None

        username = answer.get("Username", "")
        if username == IDENTITY_TOKEN_USERNAME:
            return Credential(
                identity_token=answer["Secret"],
                server_address=answer.get("ServerURL") or server_address,
            )
        return Credential(
            username=username,
            password=answer["Secret"],
            server_address=answer.get("ServerURL") or server_address,
        )

    def resolve(self, host: str) -> Credential | None:
        if not self.available:
            return None

        host = normalize_registry_host(host)
        helper = self._cred_helpers.get(host)
        if helper:
            return self._from_helper(helper, host)
        if host in self._credentials:
            return self._credentials[host]
        if self._creds_store:
            return self._from_helper(self._creds_store, host)
        return None


class EcrCredentialProvider:
    """Exchanges a long-lived AWS identity for ECR registry tokens.

    The boto3 session (the long-lived identity) and the per-region clients
    are kept; the authorization token is requested on every resolution and
    never cached, since ECR expires it on its own schedule.
    """

    name = "ecr"

    def __init__(self, session: Any):
        """
        Args:
            session: boto3.Session holding the AWS identity
        """
        self.session = session
        self._clients: dict[str, Any] = {}

    def _client(self, region: str) -> Any:
        if region not in self._clients:
            self._clients[region] = self.session.client("ecr", region_name=region)
        return self._clients[region]

    def resolve(self, host: str) -> Credential | None:
        host = normalize_registry_host(host)
        match = ECR_HOST_PATTERN.match(host)
        if match is None:
            return None

        account = match.group("account")
        region = match.group("region")
        try:
            response = self._client(region).get_authorization_token(
                registryIds=[account]
            )
            if not response.get("authorizationData"):
                raise ValueError("No authorization data in ECR response")

            auth_data = response["authorizationData"][0]
            username, password = _decode_auth(auth_data["authorizationToken"])
        except ClientError as e:
            logger.warning(
                "Failed to get ECR authorization token",
                host=host,
                error_code=e.response["Error"]["Code"],
                error_message=str(e),
            )
            return None
        except (BotoCoreError, ValueError, KeyError) as e:
            logger.warning(
                "Unexpected error getting ECR token",
                host=host,
                error=str(e),
            )
            return None

        logger.debug("Retrieved ECR authorization token", host=host)
        return Credential(
            username=username,
            password=password,
            server_address=auth_data.get("proxyEndpoint") or f"https://{host}",
        )
