"""
Gradient boosted decision forests grown best-first.

Each boosting round relabels the examples through a pluggable booster, adds
the mean weak label as a bias, and grows one tree by always applying the
highest-gain pending split. The rows of every tree node stay contiguous in
the example store, so a split only reorders the rows of the node it splits.
"""

from .config import TrainerConfig
from .estimators import BoostedTreeRegressor, BoostedTreeClassifier
from .examples import ExampleStore, examples_from_arrays
from .exceptions import ConfigurationError, InvalidTrainingData
from .forest import Forest
from .scheduler import SplitCandidate, SplitScheduler
from .stats import NodeRanges, NodeStats, Sums
from .strategies import (
    Booster, SquaredErrorBooster, LogisticBooster,
    SplitRule, ThresholdRule, SplitRuleFinder, ThresholdSplitFinder,
    EdgePredictor, ConstantEdgePredictor, EdgePredictorFactory, ConstantEdgePredictorFactory,
)
from .trainer import ForestTrainer, TrainingObserver, LoggingObserver, SplitEvent, RoundSummary

__version__ = "0.1.0"
__all__ = [
    "BoostedTreeRegressor", "BoostedTreeClassifier",
    "ForestTrainer", "TrainerConfig", "Forest",
    "ExampleStore", "examples_from_arrays",
    "Sums", "NodeRanges", "NodeStats",
    "SplitCandidate", "SplitScheduler",
    "Booster", "SquaredErrorBooster", "LogisticBooster",
    "SplitRule", "ThresholdRule", "SplitRuleFinder", "ThresholdSplitFinder",
    "EdgePredictor", "ConstantEdgePredictor", "EdgePredictorFactory", "ConstantEdgePredictorFactory",
    "TrainingObserver", "LoggingObserver", "SplitEvent", "RoundSummary",
    "InvalidTrainingData", "ConfigurationError",
]
