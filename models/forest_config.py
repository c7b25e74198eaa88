#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Forest Configuration Module for Classroom Forest
Typed, validated configuration for preprocessing, the random forest engine
and the external neural-network backend
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union, Any, Mapping

from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

MAX_EPOCHS = 10000


class MaxFeaturesMode(Enum):
    """How many features each tree samples"""
    SQRT = "sqrt"
    LOG2 = "log2"
    FIXED = "fixed"
    ALL = "all"


class ModelType(Enum):
    """Model families a training session can drive"""
    RANDOM_FOREST = "random_forest"
    NEURAL_NETWORK = "neural_network"


@dataclass(frozen=True)
class MaxFeatures:
    """Per-tree feature subsample size: sqrt, log2, a fixed count, or all features"""
    mode: MaxFeaturesMode = MaxFeaturesMode.SQRT
    count: Optional[int] = None

    def __post_init__(self):
        if self.mode == MaxFeaturesMode.FIXED:
            if not isinstance(self.count, int) or isinstance(self.count, bool) or self.count <= 0:
                raise ConfigurationError(f"max_features must be a positive integer, got {self.count!r}",
                                         field='max_features')

    @classmethod
    def sqrt(cls) -> 'MaxFeatures':
        return cls(MaxFeaturesMode.SQRT)

    @classmethod
    def log2(cls) -> 'MaxFeatures':
        return cls(MaxFeaturesMode.LOG2)

    @classmethod
    def fixed(cls, count: int) -> 'MaxFeatures':
        return cls(MaxFeaturesMode.FIXED, count)

    @classmethod
    def all(cls) -> 'MaxFeatures':
        return cls(MaxFeaturesMode.ALL)

    @classmethod
    def parse(cls, value: Union[str, int, None, 'MaxFeatures']) -> 'MaxFeatures':
        """Build from the loose forms found in config files: 'sqrt', 'log2', an int, or None"""
        if isinstance(value, MaxFeatures):
            return value
        if value is None:
            return cls.all()
        if isinstance(value, str):
            key = value.strip().lower()
            if key == 'sqrt':
                return cls.sqrt()
            if key == 'log2':
                return cls.log2()
            if key in ('all', 'none', 'auto'):
                return cls.all()
            if key.isdigit():
                return cls.fixed(int(key))
            raise ConfigurationError(f"Unknown max_features value: {value!r}", field='max_features')
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.fixed(value)
        raise ConfigurationError(f"Unsupported max_features type: {type(value).__name__}", field='max_features')

    def resolve(self, n_features: int) -> int:
        """
        Number of features to sample for a forest trained on n_features columns

        sqrt and log2 are floored; a fixed count is capped at n_features.
        The result is never below 1 when n_features > 0.
        """
        if n_features <= 0:
            return 0

        if self.mode == MaxFeaturesMode.SQRT:
            k = int(math.floor(math.sqrt(n_features)))
        elif self.mode == MaxFeaturesMode.LOG2:
            k = int(math.floor(math.log2(n_features)))
        elif self.mode == MaxFeaturesMode.FIXED:
            k = min(self.count, n_features)
        else:
            k = n_features

        return max(1, k)

    def to_value(self) -> Union[str, int, None]:
        if self.mode == MaxFeaturesMode.FIXED:
            return self.count
        if self.mode == MaxFeaturesMode.ALL:
            return None
        return self.mode.value


def _require_int(name: str, value: Any, minimum: int, maximum: Optional[int] = None) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", field=name)
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}", field=name)
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{name} must be <= {maximum}, got {value}", field=name)


@dataclass(frozen=True)
class ForestConfig:
    """Hyperparameters of the random forest engine"""
    n_estimators: int = 100
    max_depth: int = 10
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    max_features: MaxFeatures = field(default_factory=MaxFeatures.sqrt)
    bootstrap: bool = True
    random_state: Optional[int] = None

    def __post_init__(self):
        _require_int('n_estimators', self.n_estimators, 1)
        _require_int('max_depth', self.max_depth, 1)
        _require_int('min_samples_split', self.min_samples_split, 2)
        _require_int('min_samples_leaf', self.min_samples_leaf, 1)

        if not isinstance(self.max_features, MaxFeatures):
            object.__setattr__(self, 'max_features', MaxFeatures.parse(self.max_features))

        if not isinstance(self.bootstrap, bool):
            raise ConfigurationError(f"bootstrap must be a boolean, got {self.bootstrap!r}", field='bootstrap')

        if self.random_state is not None:
            _require_int('random_state', self.random_state, 0)

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> 'ForestConfig':
        known = {
            'n_estimators', 'max_depth', 'min_samples_split', 'min_samples_leaf',
            'max_features', 'bootstrap', 'random_state'
        }
        unknown = set(params) - known
        if unknown:
            logger.warning(f"Ignoring unknown random forest parameters: {', '.join(sorted(unknown))}")

        kwargs = {key: value for key, value in params.items() if key in known}
        if 'max_features' in kwargs:
            kwargs['max_features'] = MaxFeatures.parse(kwargs['max_features'])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_estimators': self.n_estimators,
            'max_depth': self.max_depth,
            'min_samples_split': self.min_samples_split,
            'min_samples_leaf': self.min_samples_leaf,
            'max_features': self.max_features.to_value(),
            'bootstrap': self.bootstrap,
            'random_state': self.random_state
        }


@dataclass(frozen=True)
class NeuralNetworkConfig:
    """Hyperparameters handed to the external neural-network backend"""
    epochs: int = 100
    learning_rate: float = 0.01
    batch_size: int = 32
    hidden_layers: tuple = (64, 32)

    def __post_init__(self):
        _require_int('epochs', self.epochs, 1, MAX_EPOCHS)
        _require_int('batch_size', self.batch_size, 1)

        if (not isinstance(self.learning_rate, (int, float)) or isinstance(self.learning_rate, bool)
                or not 0 < self.learning_rate <= 1):
            raise ConfigurationError(f"learning_rate must be in (0, 1], got {self.learning_rate!r}",
                                     field='learning_rate')

        object.__setattr__(self, 'hidden_layers', tuple(self.hidden_layers))
        for units in self.hidden_layers:
            _require_int('hidden_layers', units, 1)

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> 'NeuralNetworkConfig':
        known = {'epochs', 'learning_rate', 'batch_size', 'hidden_layers'}
        return cls(**{key: value for key, value in params.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'epochs': self.epochs,
            'learning_rate': self.learning_rate,
            'batch_size': self.batch_size,
            'hidden_layers': list(self.hidden_layers)
        }


VALID_MISSING_STRATEGIES = ('drop', 'mean', 'mode')


@dataclass(frozen=True)
class PreprocessingConfig:
    """How the feature encoder cleans, encodes and splits the dataset"""
    normalization: bool = True
    train_split_ratio: float = 0.8
    missing_value_strategy: Dict[str, str] = field(default_factory=dict)
    default_missing_strategy: str = 'drop'
    split_seed: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.train_split_ratio, (int, float)) or not 0 < self.train_split_ratio < 1:
            raise ConfigurationError(
                f"train_split_ratio must be in (0, 1), got {self.train_split_ratio!r}",
                field='train_split_ratio'
            )

        strategies = dict(self.missing_value_strategy)
        strategies_to_check = list(strategies.values()) + [self.default_missing_strategy]
        for strategy in strategies_to_check:
            if strategy not in VALID_MISSING_STRATEGIES:
                raise ConfigurationError(f"Unknown missing value strategy: {strategy!r}",
                                         field='missing_value_strategy')
        object.__setattr__(self, 'missing_value_strategy', strategies)

    def strategy_for(self, column: str) -> str:
        return self.missing_value_strategy.get(column, self.default_missing_strategy)

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> 'PreprocessingConfig':
        known = {'normalization', 'train_split_ratio', 'missing_value_strategy',
                 'default_missing_strategy', 'split_seed'}
        return cls(**{key: value for key, value in params.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'normalization': self.normalization,
            'train_split_ratio': self.train_split_ratio,
            'missing_value_strategy': dict(self.missing_value_strategy),
            'default_missing_strategy': self.default_missing_strategy,
            'split_seed': self.split_seed
        }


@dataclass(frozen=True)
class TrainingConfig:
    """Everything a training session needs to start a run"""
    target_column: str
    selected_features: List[str]
    model_type: ModelType = ModelType.RANDOM_FOREST
    forest: ForestConfig = field(default_factory=ForestConfig)
    neural_network: NeuralNetworkConfig = field(default_factory=NeuralNetworkConfig)
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)

    def __post_init__(self):
        if not isinstance(self.target_column, str) or not self.target_column:
            raise ConfigurationError("A target column must be selected", field='target_column')

        features = list(self.selected_features or [])
        if not features:
            raise ConfigurationError("At least one feature must be selected", field='selected_features')
        if self.target_column in features:
            raise ConfigurationError(f"Target column '{self.target_column}' cannot also be a feature",
                                     field='selected_features')
        if len(set(features)) != len(features):
            raise ConfigurationError("Selected features contain duplicates", field='selected_features')
        object.__setattr__(self, 'selected_features', features)

        if not isinstance(self.model_type, ModelType):
            try:
                object.__setattr__(self, 'model_type', ModelType(self.model_type))
            except ValueError:
                raise ConfigurationError(f"Unknown model type: {self.model_type!r}", field='model_type')

    @classmethod
    def from_dict(cls, params: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None) -> 'TrainingConfig':
        """
        Build a validated config from a loose mapping

        Args:
            params: Mapping with target_column, selected_features and optional
                    model_type / random_forest / neural_network / preprocessing sections
            defaults: Application configuration whose sections fill in missing values

        Returns:
            TrainingConfig

        Raises:
            ConfigurationError: If any value is missing or out of range
        """
        defaults = defaults or {}

        def section(name: str) -> Dict[str, Any]:
            merged = dict(defaults.get(name, {}))
            merged.update(params.get(name, {}) or {})
            return merged

        try:
            return cls(
                target_column=params.get('target_column'),
                selected_features=list(params.get('selected_features') or []),
                model_type=params.get('model_type', ModelType.RANDOM_FOREST),
                forest=ForestConfig.from_dict(section('random_forest')),
                neural_network=NeuralNetworkConfig.from_dict(section('neural_network')),
                preprocessing=PreprocessingConfig.from_dict(section('preprocessing'))
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid training configuration: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_column': self.target_column,
            'selected_features': list(self.selected_features),
            'model_type': self.model_type.value,
            'random_forest': self.forest.to_dict(),
            'neural_network': self.neural_network.to_dict(),
            'preprocessing': self.preprocessing.to_dict()
        }


def default_forest_config(n_samples: int, n_features: int) -> ForestConfig:
    """
    Suggest forest hyperparameters scaled to the dataset size

    Smaller datasets get more trees and shallower limits relax as data grows.
    """
    if n_samples < 500:
        n_estimators, max_depth = 50, 6
    elif n_samples < 5000:
        n_estimators, max_depth = 100, 10
    else:
        n_estimators, max_depth = 100, 15

    min_samples_split = 2 if n_samples < 1000 else 5
    max_features = MaxFeatures.sqrt() if n_features > 3 else MaxFeatures.all()

    return ForestConfig(
        n_estimators=n_estimators,
        max_depth=max_depth,
        min_samples_split=min_samples_split,
        min_samples_leaf=1,
        max_features=max_features,
        bootstrap=True
    )


def estimate_training_time(model_type: ModelType, n_samples: int, n_features: int,
                           iterations: int) -> Dict[str, Any]:
    """
    Rough wall-clock estimate for a run

    Args:
        model_type: Model family
        n_samples: Training rows
        n_features: Feature columns
        iterations: Trees for a forest, epochs for a neural network

    Returns:
        Dictionary with estimated_seconds and complexity ('low', 'medium', 'high')
    """
    if model_type == ModelType.RANDOM_FOREST:
        # sorting every sampled feature at every level of every tree
        ops = iterations * n_samples * max(1.0, math.log2(max(n_samples, 2))) * max(1, n_features)
        ops_per_second = 2_000_000
    else:
        ops = iterations * n_samples * n_features * 2
        ops_per_second = 100_000

    estimated_seconds = int(math.ceil(ops / ops_per_second))

    complexity = 'low'
    if estimated_seconds > 30:
        complexity = 'medium'
    if estimated_seconds > 120:
        complexity = 'high'

    return {'estimated_seconds': estimated_seconds, 'complexity': complexity}
