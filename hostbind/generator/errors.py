"""Errors and warnings raised while generating bindings."""


class GenerationError(RuntimeError):
    """Base class for fatal generation errors. Nothing is written when raised."""


class SchemaError(GenerationError):
    """Raised when the API schema is malformed or inconsistent."""


class ProfileCycleError(GenerationError):
    """Raised when the inheritance graph contains a cycle."""


class PrecisionMismatchError(GenerationError):
    """Raised when the requested precision differs from the schema's precision."""


class UnknownTypeWarning(UserWarning):
    """Issued when a type reference cannot be classified."""


class MissingHashWarning(UserWarning):
    """Issued when a bound method carries no version hash."""
