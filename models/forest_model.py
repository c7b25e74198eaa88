#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Forest Model Module for Classroom Forest
The trained random forest: voting, probability aggregation and feature importance
"""

import logging
from typing import Dict, List, Optional, Any, Sequence

import numpy as np

from models.forest_config import ForestConfig
from models.node import TreeInfo
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ForestModel:
    """
    Immutable ensemble of fitted trees

    A model is never modified after construction; retraining builds a new
    one. A cancelled run may produce a model with fewer trees than
    configured, or none at all; predicting with an empty model raises
    ConfigurationError.
    """

    def __init__(self, trees: Sequence[TreeInfo], feature_names: Sequence[str],
                 classes: Sequence[Any], config: ForestConfig):
        """
        Initialize the model

        Args:
            trees: Fitted trees in training order
            feature_names: Global feature names, in matrix column order
            classes: Class labels; index i is class index i in the trees
            config: Configuration the forest was trained with
        """
        self._trees = tuple(trees)
        self._feature_names = tuple(feature_names)
        self._classes = tuple(classes)
        self._config = config

    @property
    def trees(self) -> tuple:
        return self._trees

    @property
    def feature_names(self) -> tuple:
        return self._feature_names

    @property
    def classes(self) -> tuple:
        return self._classes

    @property
    def config(self) -> ForestConfig:
        return self._config

    @property
    def n_trees(self) -> int:
        return len(self._trees)

    @property
    def n_classes(self) -> int:
        return len(self._classes)

    @property
    def is_empty(self) -> bool:
        return not self._trees

    @property
    def mean_oob_score(self) -> Optional[float]:
        """Average of the per-tree OOB accuracies that are defined"""
        scores = [tree.oob_score for tree in self._trees if tree.oob_score is not None]
        if not scores:
            return None
        return float(np.mean(scores))

    def _check_input(self, X: Any) -> np.ndarray:
        if self.is_empty:
            raise ConfigurationError("Cannot predict with an empty forest: no trees were trained")

        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.ndim != 2 or X.shape[1] != len(self._feature_names):
            raise ValueError(f"Expected {len(self._feature_names)} features, got shape {X.shape}")
        return X

    def vote_counts(self, X: Any) -> np.ndarray:
        """Number of trees voting for each class, shape [n_samples, n_classes]"""
        X = self._check_input(X)
        votes = np.zeros((X.shape[0], self.n_classes), dtype=int)
        rows = np.arange(X.shape[0])
        for tree in self._trees:
            votes[rows, tree.predict(X)] += 1
        return votes

    def predict_indices(self, X: Any) -> np.ndarray:
        """
        Majority-vote class index per sample

        Ties go to the lowest class index, the same rule leaves use.
        """
        return np.argmax(self.vote_counts(X), axis=1)

    def predict(self, X: Any) -> np.ndarray:
        """
        Predict class labels by majority vote

        Args:
            X: Feature matrix [n_samples, n_features] in training column order

        Returns:
            Array of class labels
        """
        return np.array(self._classes)[self.predict_indices(X)]

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        Class probabilities from summed leaf distributions

        Each tree contributes the full class-count vector of the leaf the
        sample lands in; the sums are normalized per row. Columns follow
        the order of `classes`.

        Args:
            X: Feature matrix [n_samples, n_features]

        Returns:
            Array [n_samples, n_classes] whose rows sum to 1
        """
        X = self._check_input(X)
        totals = np.zeros((X.shape[0], self.n_classes), dtype=np.float64)

        for tree in self._trees:
            X_local = X[:, list(tree.feature_indices)]
            for i, row in enumerate(X_local):
                totals[i] += tree.apply(row).class_counts

        row_sums = totals.sum(axis=1, keepdims=True)
        row_sums[row_sums == 0] = 1.0
        return totals / row_sums

    def get_feature_importance(self) -> Dict[str, float]:
        """
        Share of split nodes that use each feature

        Every split node in every tree counts once for its (global) feature;
        counts are normalized to sum to 1. Features never used, or every
        feature when no tree split at all, get 0.
        """
        counts = np.zeros(len(self._feature_names), dtype=np.float64)
        for tree in self._trees:
            for split in tree.splits():
                counts[tree.feature_indices[split.feature_index]] += 1

        total = counts.sum()
        if total > 0:
            counts /= total

        return {name: float(value) for name, value in zip(self._feature_names, counts)}

    def to_dict(self, include_trees: bool = False) -> Dict[str, Any]:
        """Summary for exporters; tree arenas only when include_trees is set"""
        summary = {
            'n_trees': self.n_trees,
            'feature_names': list(self._feature_names),
            'classes': list(self._classes),
            'config': self._config.to_dict(),
            'mean_oob_score': self.mean_oob_score,
            'feature_importance': self.get_feature_importance()
        }
        if include_trees:
            summary['trees'] = [tree.to_dict() for tree in self._trees]
        return summary

    def __repr__(self) -> str:
        return (f"ForestModel(n_trees={self.n_trees}, n_features={len(self._feature_names)}, "
                f"classes={list(self._classes)})")
