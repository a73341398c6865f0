class DockerToolError(Exception):
    """Base class for errors raised by dockertool."""


class ConfigurationError(DockerToolError):
    """Invalid or incomplete configuration.

    Raised before any call is made to the Docker engine and never retried.
    """


class GoalExecutionError(DockerToolError):
    """A goal (build, tag, push, ...) failed.

    The underlying exception is always chained as ``__cause__``.
    """
