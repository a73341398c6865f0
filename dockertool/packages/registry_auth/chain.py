"""Credential chain construction and resolution."""

import json
import os
from typing import Any, Iterable, Iterator, Mapping, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError

from dockertool.exceptions import ConfigurationError
from dockertool.settings import Settings
from dockertool.utils.encryption import decrypt_if_encrypted
from dockertool.utils.image_names import normalize_registry_host, registry_host_for

from .providers import (
    DockerConfigCredentialProvider,
    EcrCredentialProvider,
    StaticCredentialProvider,
)
from .types import Credential, CredentialProvider

logger = structlog.stdlib.get_logger(__name__)

ECR_CREDENTIALS_FILE_ENV = "ECR_CREDENTIALS_FILE"


class CredentialChain:
    """Ordered, immutable list of credential providers.

    The first provider returning a credential for a host wins. When none
    does the caller proceeds without authentication.
    """

    def __init__(self, providers: Iterable[CredentialProvider]):
        self._providers: tuple[CredentialProvider, ...] = tuple(providers)

    @property
    def providers(self) -> tuple[CredentialProvider, ...]:
        return self._providers

    def __iter__(self) -> Iterator[CredentialProvider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def resolve(self, host: str) -> Credential | None:
        host = normalize_registry_host(host)
        for provider in self._providers:
            credential = provider.resolve(host)
            if credential is not None:
                logger.debug(
                    "Resolved registry credential", host=host, provider=provider.name
                )
                return credential
        logger.debug("No registry credential found, using anonymous access", host=host)
        return None

    def resolve_for_image(self, image_name: str) -> Credential | None:
        return self.resolve(registry_host_for(image_name))


def load_ecr_session(
    config: Settings, environ: Optional[Mapping[str, str]] = None
) -> Any | None:
    """Locate the long-lived AWS identity used for ECR token exchange.

    An identity file named by ECR_CREDENTIALS_FILE (environment first, then
    settings) is used when set. It holds JSON in the AWS credential_process
    format: AccessKeyId, SecretAccessKey, optional SessionToken and Region.
    Otherwise boto3's default credential discovery is tried.

    Returns:
        A boto3.Session, or None when no identity could be found

    Raises:
        ConfigurationError: the identity file was named explicitly but
            cannot be read or is incomplete
    """
    environ = os.environ if environ is None else environ
    path = environ.get(ECR_CREDENTIALS_FILE_ENV) or config.ECR_CREDENTIALS_FILE

    if path:
        try:
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
            return boto3.Session(
                aws_access_key_id=document["AccessKeyId"],
                aws_secret_access_key=document["SecretAccessKey"],
                aws_session_token=document.get("SessionToken"),
                region_name=document.get("Region") or config.AWS_REGION,
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(
                f"Unable to read ECR credentials file {path}: {e}"
            ) from e

    try:
        session = boto3.Session(region_name=config.AWS_REGION)
        credentials = session.get_credentials()
    except BotoCoreError as e:
        logger.warning("AWS credential discovery failed", error=str(e))
        return None

    if credentials is None:
        logger.info("No AWS credentials found, ECR token exchange disabled")
        return None
    return session


def build_static_credential(config: Settings) -> Credential | None:
    """Build the explicitly configured credential.

    Either username, password and email are all given, or an identity
    token is. Nothing configured yields None.

    Raises:
        ConfigurationError: the configuration is partial, or an encrypted
            value cannot be decrypted
    """
    username = config.REGISTRY_AUTH_USER
    password = config.REGISTRY_AUTH_PASSWORD
    email = config.REGISTRY_AUTH_EMAIL
    identity_token = config.REGISTRY_IDENTITY_TOKEN

    if identity_token:
        if password:
            raise ConfigurationError(
                "Configure either a registry password or an identity token, not both."
            )
        return Credential(
            username=username,
            identity_token=decrypt_if_encrypted(identity_token, config.ENCRYPTION_KEY),
            server_address=config.REGISTRY_URL,
            email=email or None,
        )

    if not (username or password or email):
        return None

    if not (username and password and email):
        raise ConfigurationError(
            "Incomplete Docker registry authorization credentials. "
            "Please provide all of username, password, and email or none."
        )

    return Credential(
        username=username,
        password=decrypt_if_encrypted(password, config.ENCRYPTION_KEY),
        server_address=config.REGISTRY_URL,
        email=email,
    )


def build_chain(
    config: Settings, environ: Optional[Mapping[str, str]] = None
) -> CredentialChain:
    """Build the credential chain once per invocation.

    Order (earlier wins):
    1. Docker config file
    2. ECR token exchange, when an AWS identity is available
    3. Explicit credential from settings

    Raises:
        ConfigurationError: explicit configuration is unusable. No partial
            chain is returned.
    """
    providers: list[CredentialProvider] = [
        DockerConfigCredentialProvider.from_directory(
            config.DOCKER_CONFIG, explicit=bool(config.DOCKER_CONFIG)
        )
    ]

    session = load_ecr_session(config, environ)
    if session is not None:
        providers.append(EcrCredentialProvider(session))

    credential = build_static_credential(config)
    if credential is not None:
        providers.append(
            StaticCredentialProvider(credential, config.REGISTRY_URL or None)
        )

    logger.info(
        "Built registry credential chain",
        providers=[provider.name for provider in providers],
    )
    return CredentialChain(providers)
