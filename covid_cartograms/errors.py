"""Exceptions raised by the cartogram pipeline.

Every error is fatal for a run. Join misses are not errors: they show up
as nulls and are filtered out per indicator.
"""


class CartogramError(Exception):
    """Base class for all pipeline failures."""


class InputUnavailable(CartogramError, FileNotFoundError):
    """A dataset file is missing, unreadable or could not be downloaded."""


class SchemaError(CartogramError, ValueError):
    """A table is missing a required column or cannot be parsed."""


class EngineFailure(CartogramError, RuntimeError):
    """The cartogram engine raised while deforming a layer."""


class ConfigError(CartogramError, ValueError):
    """The configuration file is invalid."""
