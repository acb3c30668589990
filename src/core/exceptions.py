"""
Exceptions raised by the LlamaDock core.
"""


class LlamaDockError(Exception):
    """Base class for LlamaDock errors."""


class ConfigurationError(LlamaDockError):
    """A configuration record is invalid or cannot be stored."""


class ConfigurationNotFoundError(ConfigurationError, KeyError):
    """No configuration record exists under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Configuration not found: {name}")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class ModelBusyError(LlamaDockError):
    """The model session is already held by another caller."""

    def __init__(self, message: str = "Model is busy processing another request"):
        super().__init__(message)
