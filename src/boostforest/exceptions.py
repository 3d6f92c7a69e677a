"""
Exception types raised by the forest training engine.
"""


class InvalidTrainingData(ValueError):
    """
    Training data cannot be used to fit the forest.

    Raised when the example source is malformed (empty, ragged, non-finite
    values, negative weights) or when a boosting round produces a total weak
    weight of exactly zero, so no bias can be normalised.
    """


class ConfigurationError(ValueError):
    """Trainer configuration rejected at construction time."""
