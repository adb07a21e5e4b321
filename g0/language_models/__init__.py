""" Language model layer: messages, tools, backends and agent loop

The agent (module `agent`) and the LangChain adapter (subpackage
`langchain`) are not imported here, as they depend on the
configuration module, which itself uses the error definitions of this
package. Import them from their modules.
"""
# pyright: reportUnusedImport=false
# flake8: noqa

from .errors import (
    G0Error,
    ConfigurationError,
    BackendError,
    BackendAuthError,
    BackendConnectionError,
    BackendResponseError,
    DuplicateToolError,
    RegistryFrozenError,
    AgentBusyError,
)
from .messages import Message, ToolCallRequest
from .events import (
    StreamEvent,
    IterationStarted,
    TextDelta,
    Thinking,
    ToolCallStarted,
    ToolCallCompleted,
    Error,
    Done,
)
from .tools import ToolDescriptor, ToolRegistry, create_tool
from .cancellation import CancellationToken
