from __future__ import annotations

from enum import Enum


class AssistantError(Exception):
    """Base class for every error raised by the assistant core."""


class ToolValidationError(AssistantError):
    def __init__(self, tool_name: str, errors: list[str]):
        self.tool_name = tool_name
        self.errors = errors
        super().__init__(f"Invalid arguments for '{tool_name}': " + "; ".join(errors))


class ResourceErrorHint(str, Enum):
    UNREACHABLE = "unreachable"
    CREDENTIALS_REJECTED = "credentials-rejected"
    NOT_FOUND = "not-found"
    OTHER = "other"


class ExternalResourceError(AssistantError):
    """A request against the store API failed.

    ``hint`` tells the model (or the user) whether to fix the URL, the
    credentials, or the endpoint path.
    """

    def __init__(self, message: str, *, hint: ResourceErrorHint = ResourceErrorHint.OTHER, status_code: int | None = None):
        self.hint = hint
        self.status_code = status_code
        super().__init__(message)


class SandboxError(AssistantError):
    pass


class ModelInvocationError(AssistantError):
    pass


class PersistenceError(AssistantError):
    pass


class SettingsError(AssistantError):
    pass
