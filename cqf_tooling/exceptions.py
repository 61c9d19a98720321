"""Custom exceptions for cqf-tooling."""


class ToolingError(Exception):
    """Base exception for cqf-tooling errors."""

    pass


class InvalidArgumentError(ToolingError, ValueError):
    """Malformed, unknown or disallowed command line argument."""

    pass


class ResourceDirectoryError(ToolingError):
    """Error resolving or reading a resource path."""

    pass


class ResourceParseError(ToolingError):
    """Error parsing a file as a FHIR resource."""

    pass


class UnsupportedOperationError(ToolingError, NotImplementedError):
    """Operation is not supported for the requested FHIR version."""

    pass
