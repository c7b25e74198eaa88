#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Split Finder Module for Classroom Forest
Finds the Gini-minimizing numeric threshold for a decision tree node
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitCandidate:
    """Best split found for a node"""
    feature_index: int
    threshold: float
    impurity: float
    n_left: int
    n_right: int


def gini_impurity(class_counts: Sequence[float]) -> float:
    """
    Gini impurity 1 - sum(p_c^2) of a class-count vector

    Args:
        class_counts: Count per class

    Returns:
        Impurity in [0, 1); 0.0 for an empty node
    """
    counts = np.asarray(class_counts, dtype=np.float64)
    total = counts.sum()
    if total <= 0:
        return 0.0
    proportions = counts / total
    return float(1.0 - np.sum(proportions * proportions))


def find_best_split(X: np.ndarray, y: np.ndarray, feature_subset: Sequence[int],
                    n_classes: Optional[int] = None) -> Optional[SplitCandidate]:
    """
    Find the impurity-minimizing split over the given features

    For each feature the distinct values present in the node are sorted and
    every midpoint between consecutive distinct values is a candidate
    threshold, so k distinct values give k-1 candidates. Quality is the
    sample-weighted Gini impurity of the two children. Features are scanned
    in feature_subset order and thresholds in ascending order; the first
    strictly lowest impurity wins.

    Args:
        X: Node feature matrix [n_samples, n_features]
        y: Class index per sample
        feature_subset: Column indices of X to consider
        n_classes: Number of classes (inferred from y when None)

    Returns:
        SplitCandidate, or None when no feature has more than one distinct value
    """
    n_samples = len(y)
    if n_samples < 2:
        return None

    if n_classes is None:
        n_classes = int(np.max(y)) + 1

    one_hot = np.zeros((n_samples, n_classes), dtype=np.float64)
    one_hot[np.arange(n_samples), y] = 1.0
    total_counts = one_hot.sum(axis=0)

    best: Optional[SplitCandidate] = None

    for feature_index in feature_subset:
        values = X[:, feature_index]
        order = np.argsort(values, kind='mergesort')
        sorted_values = values[order]

        # positions where the next sorted value differs: left child holds rows [0..i]
        boundaries = np.flatnonzero(sorted_values[:-1] < sorted_values[1:])
        if len(boundaries) == 0:
            continue

        cumulative = np.cumsum(one_hot[order], axis=0)
        left_counts = cumulative[boundaries]
        right_counts = total_counts - left_counts

        n_left = (boundaries + 1).astype(np.float64)
        n_right = n_samples - n_left

        gini_left = 1.0 - np.sum((left_counts / n_left[:, None]) ** 2, axis=1)
        gini_right = 1.0 - np.sum((right_counts / n_right[:, None]) ** 2, axis=1)
        weighted = (n_left / n_samples) * gini_left + (n_right / n_samples) * gini_right

        position = int(np.argmin(weighted))
        impurity = float(weighted[position])

        if best is None or impurity < best.impurity:
            boundary = boundaries[position]
            low, high = sorted_values[boundary], sorted_values[boundary + 1]
            threshold = float((low + high) / 2.0)
            if not low <= threshold < high:
                threshold = float(low)

            best = SplitCandidate(
                feature_index=int(feature_index),
                threshold=threshold,
                impurity=impurity,
                n_left=int(n_left[position]),
                n_right=int(n_right[position])
            )

    if best is not None:
        logger.debug(f"Best split: feature {best.feature_index} <= {best.threshold:.6g} "
                     f"(impurity {best.impurity:.6f}, {best.n_left}/{best.n_right})")
    return best
