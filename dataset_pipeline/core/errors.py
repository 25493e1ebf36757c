"""Error taxonomy shared by all pipeline stages."""


class PipelineError(Exception):
    """Base class for errors raised by pipeline stages."""

    pass


class TransportError(PipelineError):
    """Raised when a download or remote HTTP call fails."""

    pass


class FilesystemError(PipelineError):
    """Raised when creating, moving, copying or writing files fails."""

    pass


class ConfigurationError(PipelineError):
    """Raised when run options do not describe a valid run."""

    pass


class CollaboratorError(PipelineError):
    """Raised when the normalizer or loader cannot be loaded or fails."""

    pass
