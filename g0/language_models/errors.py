"""
Exceptions raised by the language model layer.

Only configuration errors and backend errors reach the caller of the
agent loop. Tool failures are converted into error-flagged tool results
by the dispatcher, and cancellation is reported as a run status.
"""


class G0Error(Exception):
    """Base class of the exceptions of the package."""


class ConfigurationError(G0Error):
    """No backend configured, missing credentials, or invalid
    settings. Raised before a run starts."""


class BackendError(G0Error):
    """Failure of the language model backend (network, authentication,
    malformed response). Loop-fatal."""


class BackendAuthError(BackendError):
    """The backend rejected the credentials."""


class BackendConnectionError(BackendError):
    """The backend could not be reached."""


class BackendResponseError(BackendError):
    """The backend returned a response that could not be interpreted."""


class DuplicateToolError(G0Error):
    """A tool with the same name is already registered."""


class RegistryFrozenError(G0Error):
    """Attempt to modify a tool registry while a run is using it."""


class AgentBusyError(G0Error):
    """The agent is already running a conversation."""
