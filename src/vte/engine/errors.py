from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the trait engine."""


class ConfigurationError(EngineError, ValueError):
    """Static ruleset data is inconsistent.

    Raised while registries are built or while a trait is instantiated from
    its definition. These indicate a data authoring bug and should not be
    caught by callers that are merely editing a character.
    """


class EvaluationError(EngineError):
    """A trait value could not be computed.

    Typically a derived expression references a variable that doesn't
    resolve to an integer, or variables reference each other in a loop.
    """
