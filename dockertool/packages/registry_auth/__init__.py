"""Registry authentication package.

This package resolves which credential applies to a registry host from an
ordered chain of credential providers.
"""

from .chain import CredentialChain, build_chain, build_static_credential, load_ecr_session
from .providers import (
    DockerConfigCredentialProvider,
    EcrCredentialProvider,
    StaticCredentialProvider,
)
from .types import Credential, CredentialProvider

__all__ = [
    # Protocol
    "CredentialProvider",
    # Providers
    "DockerConfigCredentialProvider",
    "EcrCredentialProvider",
    "StaticCredentialProvider",
    # Types
    "Credential",
    "CredentialChain",
    # Construction
    "build_chain",
    "build_static_credential",
    "load_ecr_session",
]
