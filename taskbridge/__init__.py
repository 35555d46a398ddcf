"""taskbridge - mirror Google Tasks, Alexa and Microsoft To-Do into Todoist."""

from taskbridge.version import get_version

__version__ = get_version()

__all__ = ["__version__"]
