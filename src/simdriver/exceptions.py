"""Errors and warnings raised by the simulation driver."""


class ConfigurationError(ValueError):
    """Invalid simulator or solve configuration.

    Raised immediately at call time, e.g. when both ``saveat`` and
    ``savestep`` are given or an unsupported problem kind is requested.
    """


class TruncationWarning(UserWarning):
    """A requested stop time lies beyond the problem horizon."""


class NoOpWarning(UserWarning):
    """A step was skipped because the simulator is already at the target."""
