"""Configuration object for the forest trainer."""

import math
import numbers
from dataclasses import dataclass

from .exceptions import ConfigurationError


def _is_integer(value) -> bool:
    # numpy integers register as numbers.Integral; bool does too but is rejected
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class TrainerConfig:
    """
    Hyper-parameters steering one ``ForestTrainer.train`` call.

    Parameters
    ----------
    num_rounds : int, default=100
        Number of boosting rounds. Each round grows one tree.
    min_split_gain : float, default=0.0
        The root split of a round must reach this gain for growth to start;
        child splits must strictly exceed it to be scheduled. ``inf`` stops
        training at the first root check.
    max_splits_per_round : int, default=8
        Cap on splits materialised within one round. ``0`` disables growth.
    """

    num_rounds: int = 100
    min_split_gain: float = 0.0
    max_splits_per_round: int = 8

    def validate(self) -> None:
        """Raise ``ConfigurationError`` if any field is out of range."""
        if not _is_integer(self.num_rounds):
            raise ConfigurationError(f"num_rounds must be an integer, got {self.num_rounds!r}")
        if self.num_rounds <= 0:
            raise ConfigurationError(f"num_rounds must be positive, got {self.num_rounds}")
        if isinstance(self.min_split_gain, bool) or not isinstance(self.min_split_gain, numbers.Real):
            raise ConfigurationError(f"min_split_gain must be a number, got {self.min_split_gain!r}")
        if math.isnan(self.min_split_gain) or self.min_split_gain < 0:
            raise ConfigurationError(
                f"min_split_gain must be non-negative, got {self.min_split_gain}"
            )
        if not _is_integer(self.max_splits_per_round):
            raise ConfigurationError(
                f"max_splits_per_round must be an integer, got {self.max_splits_per_round!r}"
            )
        if self.max_splits_per_round < 0:
            raise ConfigurationError(
                f"max_splits_per_round must be non-negative, got {self.max_splits_per_round}"
            )
