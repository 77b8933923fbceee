"""Domain errors raised by agent-loom.

Codecs and adapters raise; orchestrators either resolve a conflict through
the prompter or let the error reach the CLI, which prints it and exits.
"""


class AgentLoomError(Exception):
    """Base class for every error agent-loom reports to the user."""

    exit_code = 1


class ValidationError(AgentLoomError):
    """A canonical file is missing required fields or is malformed."""


class SourceDiscoveryError(AgentLoomError):
    """An import source cannot be read or prepared."""


class SourceNotFoundError(SourceDiscoveryError):
    """A required entity directory does not exist in the import source."""


class SelectorError(AgentLoomError):
    """A selector cannot be resolved to exactly one entity."""


class SelectorNotFoundError(SelectorError):
    pass


class AmbiguousSelectorError(SelectorError):
    pass


class ConflictError(AgentLoomError):
    """A write would replace content that differs from what is on disk."""


class NonInteractiveConflictError(ConflictError):
    exit_code = 2


class MigrationConflictError(ConflictError):
    exit_code = 2


class CancelledError(AgentLoomError):
    """The user cancelled an interactive choice."""

    def __init__(self, message: str = "Operation cancelled."):
        super().__init__(message)
