"""Registry credential types.

No dependencies on dockertool.* modules to keep the package reusable.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class Credential:
    """Credential for one registry.

    Exactly one of ``password`` or ``identity_token`` is set. Credentials
    are produced whole by a single provider and never merged.

    Attributes:
        username: Registry user name (may be empty for identity tokens)
        password: Registry password
        identity_token: OAuth identity/refresh token issued by the registry
        server_address: Registry address the credential was issued for
        email: Legacy account email, only sent when present
    """

    username: str = ""
    password: str | None = field(default=None, repr=False)
    identity_token: str | None = field(default=None, repr=False)
    server_address: str = ""
    email: str | None = None

    def __post_init__(self):
        if bool(self.password) == bool(self.identity_token):
            raise ValueError(
                "A credential needs exactly one of password or identity_token"
            )

    def to_auth_config(self) -> dict[str, Any]:
        """Payload for the engine's X-Registry-Auth header."""
        if self.identity_token:
            auth: dict[str, Any] = {"identitytoken": self.identity_token}
        else:
            auth = {"username": self.username, "password": self.password}
            if self.email:
                auth["email"] = self.email
        if self.server_address:
            auth["serveraddress"] = self.server_address
        return auth


class CredentialProvider(Protocol):
    """A source of registry credentials.

    ``resolve`` receives a normalized registry host and returns a complete
    credential when the provider owns that host, otherwise None.
    """

    name: str

    def resolve(self, host: str) -> Credential | None: ...
