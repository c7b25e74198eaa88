#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Forest Trainer Module for Classroom Forest
Fits a bootstrap-aggregated ensemble of decision trees one tree at a time.

[ForestTrainer.fit -> Trains the whole ensemble and returns a ForestModel -> dependent functions are iter_fit]
[ForestTrainer.iter_fit -> Yields one fitted tree per step -> dependent functions are _fit_tree, TreeBuilder.build]
[ForestTrainer._fit_tree -> Bootstrap, feature subsample, build, OOB score -> dependent functions are _oob_score]
"""

import logging
import threading
import time
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from models.decision_tree import TreeBuilder
from models.forest_config import ForestConfig
from models.forest_model import ForestModel
from models.node import TreeInfo
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ForestTrainer:
    """
    Cooperative, cancellable random forest trainer

    Trees are grown strictly one after another. After each tree the trainer
    reports progress and passes control back to the host through the
    yield_control hook (or the generator's own yield in iter_fit), which is
    the only point where a cancellation request is observed.
    """

    def __init__(self, config: ForestConfig,
                 cancel_event: Optional[threading.Event] = None,
                 yield_control: Optional[Callable[[], None]] = None):
        """
        Initialize the trainer

        Args:
            config: Forest hyperparameters
            cancel_event: Shared cancellation token (a new one is created when None)
            yield_control: Called after each tree once progress has been reported
        """
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.yield_control = yield_control
        self._rng = np.random.RandomState(config.random_state)
        self._classes: List[Any] = []

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        """Request a stop at the next tree boundary"""
        if not self.cancel_event.is_set():
            logger.info("Cancellation requested; stopping after the current tree")
        self.cancel_event.set()

    @property
    def classes(self) -> List[Any]:
        return list(self._classes)

    def _encode_labels(self, y: Sequence[Any], class_labels: Optional[Sequence[Any]]) -> Tuple[np.ndarray, List[Any]]:
        """Map labels to class indices in a stable class order"""
        y = np.asarray(y)

        if class_labels is None:
            classes = np.unique(y).tolist()
        else:
            classes = list(class_labels)

        lookup = {value: index for index, value in enumerate(classes)}
        try:
            encoded = np.array([lookup[value] for value in y.tolist()], dtype=int)
        except KeyError as e:
            raise ConfigurationError(f"Label {e.args[0]!r} is not one of the known classes {classes}",
                                     field='labels') from e
        return encoded, classes

    def _check_inputs(self, X: np.ndarray, y: np.ndarray):
        if X.ndim != 2:
            raise ConfigurationError(f"Feature matrix must be 2-dimensional, got shape {X.shape}")
        if X.shape[0] == 0:
            raise ConfigurationError("Cannot train on an empty dataset")
        if X.shape[1] == 0:
            raise ConfigurationError("Cannot train without any feature columns", field='selected_features')
        if X.shape[0] != len(y):
            raise ConfigurationError(f"Feature matrix has {X.shape[0]} rows but {len(y)} labels were given")

    def iter_fit(self, X: np.ndarray, y: Sequence[Any],
                 class_labels: Optional[Sequence[Any]] = None) -> Iterator[TreeInfo]:
        """
        Grow trees one at a time

        Each yield hands a finished tree back to the caller. The cancellation
        token is checked before each tree is started, so stopping the
        iteration or setting the token both end training at a tree boundary.

        Args:
            X: Training matrix [n_samples, n_features]
            y: Label per row (raw labels, or class indices when class_labels is given)
            class_labels: Fixed class order; when None the sorted unique labels are used

        Yields:
            TreeInfo for every completed tree
        """
        X = np.asarray(X, dtype=np.float64)
        labels, self._classes = self._encode_labels(y, class_labels)
        self._check_inputs(X, labels)

        n_samples, n_features = X.shape
        n_sampled_features = self.config.max_features.resolve(n_features)
        builder = TreeBuilder(self.config, len(self._classes))

        logger.info(f"Training forest: {self.config.n_estimators} trees, {n_samples} samples, "
                    f"{n_sampled_features}/{n_features} features per tree, {len(self._classes)} classes")

        for index in range(self.config.n_estimators):
            if self.cancel_event.is_set():
                logger.info(f"Training cancelled after {index} of {self.config.n_estimators} trees")
                return

            yield self._fit_tree(builder, X, labels, n_sampled_features)

    def _fit_tree(self, builder: TreeBuilder, X: np.ndarray, y: np.ndarray,
                  n_sampled_features: int) -> TreeInfo:
        n_samples, n_features = X.shape

        if self.config.bootstrap:
            sample = self._rng.randint(0, n_samples, size=n_samples)
            drawn = np.zeros(n_samples, dtype=bool)
            drawn[sample] = True
            oob_indices = np.flatnonzero(~drawn)
        else:
            sample = np.arange(n_samples)
            oob_indices = np.array([], dtype=int)

        features = np.sort(self._rng.choice(n_features, n_sampled_features, replace=False))

        nodes = builder.build(X[sample][:, features], y[sample], feature_subset=None)

        tree = TreeInfo(
            nodes=nodes,
            feature_indices=tuple(int(f) for f in features),
            oob_indices=tuple(int(i) for i in oob_indices),
            oob_score=None,
            n_samples=int(len(sample))
        )

        oob_score = self._oob_score(tree, X, y, oob_indices)
        if oob_score is None:
            return tree

        return TreeInfo(
            nodes=tree.nodes,
            feature_indices=tree.feature_indices,
            oob_indices=tree.oob_indices,
            oob_score=oob_score,
            n_samples=tree.n_samples
        )

    @staticmethod
    def _oob_score(tree: TreeInfo, X: np.ndarray, y: np.ndarray, oob_indices: np.ndarray) -> Optional[float]:
        """Accuracy of one tree on the rows its bootstrap sample never drew"""
        if len(oob_indices) == 0:
            return None
        predictions = tree.predict(X[oob_indices])
        return float(np.mean(predictions == y[oob_indices]))

    def fit(self, X: np.ndarray, y: Sequence[Any], feature_names: Sequence[str],
            on_tree_complete: Optional[Callable[[int, Optional[float]], None]] = None,
            class_labels: Optional[Sequence[Any]] = None) -> ForestModel:
        """
        Train the full ensemble

        A cancelled fit is not an error: the returned model simply holds the
        trees finished so far, possibly none.

        Args:
            X: Training matrix [n_samples, n_features]
            y: Label per row
            feature_names: Name of each column of X
            on_tree_complete: Called with (tree index, OOB score or None) after each tree
            class_labels: Fixed class order; when None the sorted unique labels are used

        Returns:
            ForestModel
        """
        if len(feature_names) != np.asarray(X).shape[-1]:
            raise ConfigurationError(f"Got {len(feature_names)} feature names for "
                                     f"{np.asarray(X).shape[-1]} feature columns", field='feature_names')

        start_time = time.time()
        trees: List[TreeInfo] = []

        for index, tree in enumerate(self.iter_fit(X, y, class_labels)):
            trees.append(tree)
            logger.debug(f"Tree {index + 1}/{self.config.n_estimators}: {tree.node_count} nodes, "
                         f"depth {tree.depth}, OOB {tree.oob_score}")

            if on_tree_complete:
                on_tree_complete(index, tree.oob_score)
            if self.yield_control:
                self.yield_control()

        model = ForestModel(trees, feature_names, self._classes, self.config)
        elapsed = time.time() - start_time

        if len(trees) < self.config.n_estimators:
            logger.info(f"Forest training stopped early: {len(trees)}/{self.config.n_estimators} trees "
                        f"in {elapsed:.2f}s")
        else:
            logger.info(f"Forest training completed: {len(trees)} trees in {elapsed:.2f}s, "
                        f"mean OOB score {model.mean_oob_score}")
        return model
