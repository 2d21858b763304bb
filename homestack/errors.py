"""Error types shared across homestack."""
from typing import List, Sequence


class HomestackError(Exception):
    """Base class for all homestack errors."""


class ConfigIssue(HomestackError):
    """A single problem found while validating a configuration.

    Issues are collected by the validator rather than raised, so a user gets
    the complete list in one run.
    """

    kind = "config"

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}" if path else message)

    def __eq__(self, other):
        return (
            type(self) is type(other)
            and self.path == other.path
            and self.message == other.message
        )

    def __hash__(self):
        return hash((type(self).__name__, self.path, self.message))


class SchemaError(ConfigIssue):
    """Required field missing or malformed."""

    kind = "schema"


class ConfigReferenceError(ConfigIssue):
    """Configuration refers to a machine or secret that is not declared."""

    kind = "reference"


class UnsupportedBackendError(ConfigIssue):
    """Backend value outside the supported set."""

    kind = "backend"


class ConfigValidationError(HomestackError):
    """Raised when a configuration has one or more issues."""

    def __init__(self, issues: Sequence[ConfigIssue]):
        self.issues: List[ConfigIssue] = list(issues)
        lines = [f"[{issue.kind}] {issue}" for issue in self.issues]
        super().__init__(
            "Configuration validation failed:\n  " + "\n  ".join(lines)
        )


class RenderError(HomestackError):
    """A translator or renderer could not produce output for one unit."""

    def __init__(self, message: str, service: str = None):
        self.service = service
        super().__init__(f"{service}: {message}" if service else message)


class BundleWriteError(HomestackError):
    """Writing a unit's bundle to disk failed."""
