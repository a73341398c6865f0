from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from dockertool.utils.settings_utils import DockerSecretsSettingsSource


class DockerConfig(BaseSettings):
    # Empty means the engine location is taken from the environment
    # (DOCKER_HOST or the local unix socket).
    DOCKER_HOST: str = ""


class RegistryAuthConfig(BaseSettings):
    REGISTRY_URL: str = ""
    REGISTRY_AUTH_USER: str = ""
    REGISTRY_AUTH_PASSWORD: str = ""
    REGISTRY_AUTH_EMAIL: str = ""
    REGISTRY_IDENTITY_TOKEN: str = ""

    DOCKER_CONFIG: str = ""
    """Directory holding the Docker client config.json.

    When set, an unreadable or malformed config file is a configuration
    error instead of being silently skipped.
    """


class EcrConfig(BaseSettings):
    ECR_CREDENTIALS_FILE: str = ""
    AWS_REGION: str = "us-east-1"


class EncryptionConfig(BaseSettings):
    # Fernet key used to decrypt {...} wrapped registry passwords
    ENCRYPTION_KEY: str = ""


class PushConfig(BaseSettings):
    RETRY_PUSH_COUNT: int = 5
    RETRY_PUSH_TIMEOUT: float = 10.0
    SKIP_DOCKER_PUSH: bool = False
    PUSH_IMAGE: bool = False
    PUSH_IMAGE_TAG: bool = False
    TAG_INFO_FILE: str = "target/test-classes/image_info.json"

    @field_validator("RETRY_PUSH_COUNT")
    @classmethod
    def validate_retry_push_count(cls, value: int) -> int:
        if value < 0:
            raise ValueError("RETRY_PUSH_COUNT must not be negative")
        return value

    @field_validator("RETRY_PUSH_TIMEOUT")
    @classmethod
    def validate_retry_push_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("RETRY_PUSH_TIMEOUT must not be negative")
        return value


class TagConfig(BaseSettings):
    # Image id or name to tag, and the name to apply to it
    TAG_IMAGE: str = ""
    TAG_NEW_NAME: str = ""


class BuildConfig(BaseSettings):
    IMAGE_NAME: str = ""
    IMAGE_TAGS: list[str] = Field(default_factory=list)
    DOCKER_DIRECTORY: str = ""
    BUILD_DIRECTORY: str = "target"

    SKIP_DOCKER_BUILD: bool = False
    SKIP_DOCKER_TAG: bool = False
    PULL_ON_BUILD: bool = False
    NO_CACHE: bool = False
    RM: bool = True
    FORCE_TAGS: bool = False
    USE_GIT_COMMIT_ID: bool = False
    BUILD_ARGS: dict[str, str] = Field(default_factory=dict)
    LABELS: dict[str, str] = Field(default_factory=dict)
    SAVE_IMAGE_TO_TAR_ARCHIVE: str = ""


class Settings(
    DockerConfig,
    RegistryAuthConfig,
    EcrConfig,
    EncryptionConfig,
    PushConfig,
    TagConfig,
    BuildConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env",),
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Define the priority order for settings sources.

        Priority (highest to lowest):
        1. Explicit keyword arguments
        2. Docker secrets from files (reads *_FILE env vars)
        3. Environment variables
        4. .env files
        5. Default values
        """
        return (
            init_settings,
            DockerSecretsSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


settings = Settings()
