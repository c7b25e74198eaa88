#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Node Module for Classroom Forest
Represents the nodes of one fitted decision tree.

Nodes live in an arena: a tuple owned by a single TreeInfo, addressed by
integer id, with the root at id 0. Split nodes refer to their children by id.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple, Optional, Union, Any, Iterator

import numpy as np

logger = logging.getLogger(__name__)

ROOT_ID = 0


@dataclass(frozen=True)
class LeafNode:
    """Terminal node: majority class index plus the full class-count vector"""
    predicted_class: int
    class_counts: Tuple[int, ...]
    depth: int = 0

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def samples(self) -> int:
        return int(sum(self.class_counts))


@dataclass(frozen=True)
class SplitNode:
    """Internal node: samples with x[feature_index] <= threshold go left"""
    feature_index: int
    threshold: float
    left: int
    right: int
    depth: int = 0

    @property
    def is_terminal(self) -> bool:
        return False


TreeNode = Union[LeafNode, SplitNode]


@dataclass(frozen=True)
class TreeInfo:
    """
    One fitted tree of the ensemble

    Attributes:
        nodes: Node arena; feature indices inside split nodes are local to feature_indices
        feature_indices: Global feature columns this tree was trained on
        oob_indices: Training rows never drawn by this tree's bootstrap sample
        oob_score: Accuracy of this tree on its out-of-bag rows (None when there are none)
        n_samples: Number of bootstrap samples the tree was grown from
    """
    nodes: Tuple[TreeNode, ...]
    feature_indices: Tuple[int, ...]
    oob_indices: Tuple[int, ...] = ()
    oob_score: Optional[float] = None
    n_samples: int = 0

    @property
    def root(self) -> TreeNode:
        return self.nodes[ROOT_ID]

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    def leaves(self) -> Iterator[LeafNode]:
        return (node for node in self.nodes if isinstance(node, LeafNode))

    def splits(self) -> Iterator[SplitNode]:
        return (node for node in self.nodes if isinstance(node, SplitNode))

    @property
    def depth(self) -> int:
        return max(node.depth for node in self.nodes)

    def apply(self, x_local: np.ndarray) -> LeafNode:
        """
        Descend from the root for one sample already reduced to this tree's features

        Args:
            x_local: Feature vector ordered like feature_indices

        Returns:
            The leaf the sample lands in
        """
        node = self.nodes[ROOT_ID]
        while isinstance(node, SplitNode):
            if x_local[node.feature_index] <= node.threshold:
                node = self.nodes[node.left]
            else:
                node = self.nodes[node.right]
        return node

    def apply_global(self, x: np.ndarray) -> LeafNode:
        """Descend for one sample given as the full (global) feature vector"""
        return self.apply(np.asarray(x)[list(self.feature_indices)])

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Leaf class index per row of a global feature matrix"""
        X_local = np.asarray(X)[:, list(self.feature_indices)]
        return np.array([self.apply(row).predicted_class for row in X_local], dtype=int)

    def to_dict(self) -> Dict[str, Any]:
        nodes = []
        for node_id, node in enumerate(self.nodes):
            if isinstance(node, LeafNode):
                nodes.append({
                    'id': node_id,
                    'type': 'leaf',
                    'depth': node.depth,
                    'predicted_class': node.predicted_class,
                    'class_counts': list(node.class_counts)
                })
            else:
                nodes.append({
                    'id': node_id,
                    'type': 'split',
                    'depth': node.depth,
                    'feature_index': self.feature_indices[node.feature_index],
                    'threshold': node.threshold,
                    'left': node.left,
                    'right': node.right
                })
        return {
            'feature_indices': list(self.feature_indices),
            'oob_score': self.oob_score,
            'n_samples': self.n_samples,
            'nodes': nodes
        }
