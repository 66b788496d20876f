# common/errors.py


class ConfigurationError(ValueError):
    """Raised when a problem or solver configuration cannot be used."""


class InvariantError(RuntimeError):
    """Internal state broke an invariant the solvers rely on."""
