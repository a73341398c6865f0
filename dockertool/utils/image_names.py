"""Image reference parsing and registry host normalization.

Every place that needs a registry host, whether it is storing a credential
under a host key or looking one up for an image about to be pushed, goes
through :func:`normalize_registry_host` so both sides agree.
"""

from dataclasses import dataclass, field

from dockertool.exceptions import ConfigurationError

DEFAULT_REGISTRY_HOST = "docker.io"

DOCKER_HUB_ALIASES = frozenset(
    {
        "docker.io",
        "index.docker.io",
        "registry-1.docker.io",
        "registry.hub.docker.com",
    }
)


def normalize_registry_host(value: str | None) -> str:
    """Reduce a registry URL, host or config key to a canonical host[:port].

    Examples:
        "https://index.docker.io/v1/" -> "docker.io"
        "http://Registry.Example.com:5000/" -> "registry.example.com:5000"
        "" -> "docker.io"
    """
    if not value:
        return DEFAULT_REGISTRY_HOST

    host = value.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0].lower()

    if not host or host in DOCKER_HUB_ALIASES:
        return DEFAULT_REGISTRY_HOST
    return host


def _looks_like_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def split_registry_host(reference: str) -> tuple[str | None, str]:
    """Split an image reference into its registry host and the remainder.

    The first path component is only a host when the reference has more
    than one component and that component contains a "." or ":" or is
    "localhost". Otherwise the image lives on the default registry and
    None is returned for the host.
    """
    if "/" not in reference:
        return None, reference
    first, rest = reference.split("/", 1)
    if _looks_like_host(first):
        return first, rest
    return None, reference


def registry_host_for(reference: str) -> str:
    """Return the normalized registry host an image reference points at."""
    host, _ = split_registry_host(reference)
    return normalize_registry_host(host)


def qualified_reference(reference: str) -> str:
    """Spell out the registry host of a reference.

    Docker Hub references get the default host, and single-component names
    the "library/" namespace: "app:1.0" -> "docker.io/library/app:1.0".
    References that already name a host are returned unchanged.
    """
    host, remainder = split_registry_host(reference)
    if host is not None:
        return reference
    if "/" not in remainder:
        remainder = f"library/{remainder}"
    return f"{DEFAULT_REGISTRY_HOST}/{remainder}"


def parse_image_name(image_name: str | None) -> tuple[str, str | None]:
    """Split an image name into (repository, tag).

    The name only contains a tag if its last colon comes after its last
    slash, so a registry port such as "registry:80/library/image" is never
    taken for a tag. An empty tag ("image:") is returned as None.

    Raises:
        ConfigurationError: image_name is empty
    """
    if not image_name:
        raise ConfigurationError(
            'You must specify an "imageName" in your docker configuration'
        )

    last_slash = image_name.rfind("/")
    last_colon = image_name.rfind(":")

    if last_colon > last_slash:
        repo = image_name[:last_colon]
        tag = image_name[last_colon + 1 :]
        return repo, tag or None

    return image_name, None


def contains_tag(image_name: str) -> bool:
    return bool(image_name) and parse_image_name(image_name)[1] is not None


@dataclass(frozen=True)
class CompositeImageName:
    """An image name without tag plus every tag it should be pushed under."""

    name: str
    image_tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def create(
        cls, image_name: str, image_tags: list[str] | None
    ) -> "CompositeImageName":
        """Build the plain name and the full tag list for an image.

        A tag embedded in image_name comes first, followed by image_tags.

        Raises:
            ConfigurationError: the name is blank, or no tag is found in
                either place
        """
        name, tag = parse_image_name(image_name) if image_name else ("", None)
        if not name.strip():
            raise ConfigurationError("imageName not set!")

        tags: list[str] = []
        if tag and tag.strip():
            tags.append(tag)
        if image_tags:
            tags.extend(t for t in image_tags if t and t.strip())
        if not tags:
            raise ConfigurationError(
                "No tag included in imageName and no imageTags set!"
            )
        return cls(name=name, image_tags=tuple(tags))

    def references(self) -> list[str]:
        return [f"{self.name}:{tag}" for tag in self.image_tags]
