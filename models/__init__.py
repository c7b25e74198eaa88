#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Models Module for Classroom Forest
Contains the random forest engine: configuration, tree nodes, split search,
tree building, ensemble training and the trained model
"""

from .forest_config import (
    ForestConfig, MaxFeatures, NeuralNetworkConfig, PreprocessingConfig, TrainingConfig, ModelType
)
from .node import LeafNode, SplitNode, TreeInfo
from .decision_tree import TreeBuilder
from .forest_model import ForestModel
from .forest_trainer import ForestTrainer
from .external_backend import ExternalModelBackend, EpochLogs

__all__ = [
    'ForestConfig', 'MaxFeatures', 'NeuralNetworkConfig', 'PreprocessingConfig', 'TrainingConfig',
    'ModelType', 'LeafNode', 'SplitNode', 'TreeInfo', 'TreeBuilder', 'ForestModel', 'ForestTrainer',
    'ExternalModelBackend', 'EpochLogs'
]
