"""Exception types raised by safebump."""


class SafebumpError(Exception):
    """Base class for all safebump errors."""


class ConfigError(SafebumpError):
    """Raised when required configuration or credentials are missing."""


class RepoLocatorError(SafebumpError):
    """Raised when a repository locator cannot be normalized to owner/repo."""


class ManifestParseError(SafebumpError):
    """Raised when a manifest cannot be parsed at all."""

    def __init__(self, path: str, message: str):
        super().__init__(f"Could not parse {path}: {message}")
        self.path = path


class VersionNormalizationError(SafebumpError):
    """Raised when a version string cannot be reduced to a comparable triple."""


class HostError(SafebumpError):
    """Raised when a source-control host operation fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
