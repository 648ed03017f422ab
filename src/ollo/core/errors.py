"""Error taxonomy for the Ollo generation core.

Every error carries a user-facing message. Errors are caught at the boundary
where they occur and turned into visible state (a job's ``error`` field or a
batch error entry); none of them is fatal to the process.
"""


class OlloError(Exception):
    """Base class for all errors raised by the generation core."""

    pass


class NetworkError(OlloError):
    """The generate, upload or model listing call failed at transport level."""

    pass


class ApplicationError(OlloError):
    """The generate call resolved but reported a non-success outcome."""

    pass


class ConversionError(OlloError):
    """A HEIC/HEIF image could not be decoded and re-encoded."""

    pass


class ResizeError(OlloError):
    """An image could not be decoded or rendered for resizing."""

    pass
