class AgentError(Exception):
    """Base class for every error raised by the agent package."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class TransportError(AgentError):
    """The model provider was unreachable or answered with a non-success status.

    The only error class that aborts a turn.
    """


class RateLimitExceeded(TransportError):
    pass


class ArgumentError(AgentError):
    """Tool arguments were not valid JSON or did not match the tool's parameters."""


class ExecutionError(AgentError):
    pass


class InitializationError(AgentError):
    """The out-of-process interpreter could not be started."""


class UnsupportedError(AgentError):
    """Unknown or disabled tool, or a code generation language we have no templates for."""


class ConversationError(AgentError):
    """A message would break tool call / tool result pairing."""
