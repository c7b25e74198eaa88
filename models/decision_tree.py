#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Decision Tree Module for Classroom Forest
Grows a single Gini decision tree into a node arena
"""

import logging
from typing import List, Tuple, Optional, Sequence

import numpy as np

from models.forest_config import ForestConfig
from models.node import LeafNode, SplitNode, TreeNode
from models.split_finder import find_best_split

logger = logging.getLogger(__name__)


def majority_class(class_counts: np.ndarray) -> int:
    """
    Index of the most frequent class

    Classes are scanned in index order and the first one reaching the
    maximum count wins, so ties go to the lowest class index.
    """
    return int(np.argmax(class_counts))


class TreeBuilder:
    """Recursively grows one decision tree from a (bootstrap) sample"""

    def __init__(self, config: ForestConfig, n_classes: int):
        """
        Initialize the builder

        Args:
            config: Forest hyperparameters (max_depth, min_samples_split, min_samples_leaf)
            n_classes: Number of classes in the whole training set
        """
        self.config = config
        self.n_classes = n_classes
        self._nodes: List[Optional[TreeNode]] = []
        self._X = None
        self._y = None
        self._feature_subset: Sequence[int] = ()

    def build(self, X: np.ndarray, y: np.ndarray, depth: int = 0,
              feature_subset: Optional[Sequence[int]] = None) -> Tuple[TreeNode, ...]:
        """
        Grow a tree and return its node arena

        Args:
            X: Sample matrix [n_samples, n_features]
            y: Class index per sample
            depth: Depth assigned to the root
            feature_subset: Columns of X the tree may split on (all when None)

        Returns:
            Tuple of nodes; the root is at index 0
        """
        self._X = X
        self._y = y
        self._feature_subset = list(range(X.shape[1])) if feature_subset is None else list(feature_subset)
        self._nodes = []

        try:
            self._grow(np.arange(len(y)), depth)
            nodes = tuple(self._nodes)
        finally:
            self._X = None
            self._y = None

        logger.debug(f"Grew tree: {len(nodes)} nodes, "
                     f"{sum(1 for n in nodes if isinstance(n, LeafNode))} leaves")
        return nodes

    def _class_counts(self, indices: np.ndarray) -> np.ndarray:
        return np.bincount(self._y[indices], minlength=self.n_classes)

    def _make_leaf(self, node_id: int, indices: np.ndarray, depth: int) -> int:
        counts = self._class_counts(indices)
        self._nodes[node_id] = LeafNode(
            predicted_class=majority_class(counts),
            class_counts=tuple(int(c) for c in counts),
            depth=depth
        )
        return node_id

    def _grow(self, indices: np.ndarray, depth: int) -> int:
        """
        Grow the subtree for the given samples and return its node id

        Stopping rules, in order: maximum depth, too few samples to split,
        a pure node, and no usable split (none found, or a child would be
        smaller than min_samples_leaf).
        """
        node_id = len(self._nodes)
        self._nodes.append(None)

        if depth >= self.config.max_depth:
            return self._make_leaf(node_id, indices, depth)

        if len(indices) < self.config.min_samples_split:
            return self._make_leaf(node_id, indices, depth)

        labels = self._y[indices]
        if np.all(labels == labels[0]):
            return self._make_leaf(node_id, indices, depth)

        X_node = self._X[indices]
        split = find_best_split(X_node, labels, self._feature_subset, self.n_classes)

        if split is None:
            return self._make_leaf(node_id, indices, depth)

        if split.n_left < self.config.min_samples_leaf or split.n_right < self.config.min_samples_leaf:
            return self._make_leaf(node_id, indices, depth)

        goes_left = X_node[:, split.feature_index] <= split.threshold
        left_id = self._grow(indices[goes_left], depth + 1)
        right_id = self._grow(indices[~goes_left], depth + 1)

        self._nodes[node_id] = SplitNode(
            feature_index=split.feature_index,
            threshold=split.threshold,
            left=left_id,
            right=right_id,
            depth=depth
        )
        return node_id
