"""Exception hierarchy shared by the agent, the store and the CLI."""


class AgentError(Exception):
    """Raised by the agent loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (bad TOML, duplicate tool names, etc.)."""


class StorageError(AgentError):
    """Raised when a history collection cannot be read, locked or written."""
