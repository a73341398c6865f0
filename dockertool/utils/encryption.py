import re

from cryptography.fernet import Fernet, InvalidToken

from dockertool.exceptions import ConfigurationError

# {payload}; a backslash before the closing brace marks it as escaped
_ENCRYPTED_PATTERN = re.compile(r"^\{(?P<payload>[^{}]*[^{}\\])\}$")


def encrypt_secret(value: str, key: str) -> str:
    """
    Encrypt a secret value using Fernet symmetric encryption.

    Args:
        value: The plaintext secret to encrypt
        key: A Fernet key (32 url-safe base64-encoded bytes)

    Returns:
        The encrypted secret as a base64-encoded string
    """
    f = Fernet(key.encode())
    encrypted = f.encrypt(value.encode())
    return encrypted.decode()


def decrypt_secret(encrypted_value: str, key: str) -> str:
    """
    Decrypt a secret value using Fernet symmetric encryption.

    Args:
        encrypted_value: The encrypted secret as a base64-encoded string
        key: The Fernet key the value was encrypted with

    Returns:
        The decrypted plaintext secret
    """
    f = Fernet(key.encode())
    decrypted = f.decrypt(encrypted_value.encode())
    return decrypted.decode()


def wrap_encrypted(value: str, key: str) -> str:
    """Encrypt ``value`` and wrap it in the ``{...}`` marker."""
    return "{" + encrypt_secret(value, key) + "}"


def is_encrypted(value: str | None) -> bool:
    if not value:
        return False
    return _ENCRYPTED_PATTERN.match(value) is not None


def decrypt_if_encrypted(value: str, key: str) -> str:
    """Return ``value`` decrypted when it carries the ``{...}`` marker.

    Plain values are returned untouched. Escaped braces (``\\{...\\}``) are
    unescaped and returned as literal text.

    Raises:
        ConfigurationError: the value is marked as encrypted but cannot be
            decrypted (no key configured, invalid key or corrupt payload)
    """
    match = _ENCRYPTED_PATTERN.match(value)
    if match is None:
        return value.replace("\\{", "{").replace("\\}", "}")

    if not key:
        raise ConfigurationError(
            "Registry password is encrypted but no ENCRYPTION_KEY is configured"
        )

    try:
        return decrypt_secret(match.group("payload"), key)
    except (InvalidToken, ValueError) as e:
        raise ConfigurationError("Unable to decrypt registry password") from e
