"""Exception types raised by taskbridge."""


class TaskBridgeError(Exception):
    """Base class for all taskbridge errors."""


class ConfigurationError(TaskBridgeError):
    """Raised when a required setting or credential is missing or invalid."""


class AuthenticationError(TaskBridgeError):
    """Raised when a stored token or cookie cannot be used to authenticate."""


class ScopeResolutionError(TaskBridgeError):
    """Raised when a configured list or project cannot be found."""
