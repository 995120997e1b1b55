class BomError(Exception):
    """Base class for errors raised while generating or publishing a BOM."""


class ConfigurationError(BomError):
    """A generator option or property could not be applied."""


class ManifestNotFoundError(BomError):
    """The directory holds no manifest for this ecosystem."""


class ManifestMalformedError(BomError):
    """The manifest exists but could not be decoded."""


class CoordinateParseError(ManifestMalformedError):
    """A Gradle dependency line matched none of the known forms."""


class ToolError(BomError):
    """An external build tool could not be located or failed."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class UploadError(BomError):
    """The BOM server rejected a request or could not be reached."""
