#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Performance Metrics Module for Classroom Forest
Computes evaluation metrics for a trained classifier on a holdout set

[MetricsCalculator.compute_metrics -> Accuracy, confusion matrix, macro scores and binary curves -> dependent functions are _compute_binary_curves]
"""

import logging
from typing import Dict, Tuple, Optional, Any, Sequence

import numpy as np
from sklearn.metrics import (
    accuracy_score, precision_score, recall_score, confusion_matrix,
    roc_curve, precision_recall_curve, auc
)

logger = logging.getLogger(__name__)


class MetricsCalculator:
    """Class for calculating classification performance metrics"""

    def __init__(self):
        self.last_metrics: Dict[str, Any] = {}

    def compute_metrics(self, y_true: Sequence[int], y_pred: Sequence[int],
                        class_labels: Sequence[Any],
                        y_proba: Optional[np.ndarray] = None,
                        feature_importance: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
        """
        Compute the metrics reported at the end of a training run

        Args:
            y_true: True class index per sample
            y_pred: Predicted class index per sample
            class_labels: Class label for each index; fixes the matrix size
            y_proba: Optional [n_samples, n_classes] probabilities for the curves
            feature_importance: Optional importance mapping copied into the result

        Returns:
            Dictionary with accuracy, precision, recall, f1, confusion_matrix,
            class_labels and, for exactly two classes with probabilities,
            roc_curve and pr_curve
        """
        y_true = np.asarray(y_true, dtype=int)
        y_pred = np.asarray(y_pred, dtype=int)
        n_classes = len(class_labels)
        labels = list(range(n_classes))

        if len(y_true) != len(y_pred):
            raise ValueError(f"Got {len(y_true)} true labels but {len(y_pred)} predictions")

        if len(y_true):
            accuracy = float(accuracy_score(y_true, y_pred))
            matrix = confusion_matrix(y_true, y_pred, labels=labels)
            precision = float(precision_score(y_true, y_pred, labels=labels, average='macro', zero_division=0))
            recall = float(recall_score(y_true, y_pred, labels=labels, average='macro', zero_division=0))
        else:
            logger.warning("No samples to evaluate; reporting zero scores")
            accuracy, precision, recall = 0.0, 0.0, 0.0
            matrix = np.zeros((n_classes, n_classes), dtype=int)

        metrics = {
            'accuracy': accuracy,
            'precision': precision,
            'recall': recall,
            'f1': self._f1(precision, recall),
            'confusion_matrix': matrix.tolist(),
            'class_labels': list(class_labels),
            'n_samples': int(len(y_true))
        }

        if n_classes == 2 and y_proba is not None and len(y_true):
            y_binary = (y_true == 1).astype(int)
            if 0 < y_binary.sum() < len(y_binary):
                try:
                    scores = np.asarray(y_proba, dtype=np.float64)[:, 1]
                    roc, pr = self._compute_binary_curves(scores, y_binary)
                    metrics['roc_curve'] = roc
                    metrics['pr_curve'] = pr
                except (IndexError, ValueError) as e:
                    logger.warning(f"Could not compute ROC/PR curves: {str(e)}")
            else:
                logger.warning("Only one class present in the evaluation labels; ROC/PR curves skipped")

        if feature_importance is not None:
            metrics['feature_importance'] = dict(feature_importance)

        logger.info(f"Metrics on {len(y_true)} samples: accuracy={metrics['accuracy']:.4f}, "
                    f"precision={precision:.4f}, recall={recall:.4f}, f1={metrics['f1']:.4f}")

        self.last_metrics = metrics
        return metrics

    @staticmethod
    def _f1(precision: float, recall: float) -> float:
        """Harmonic mean of the macro precision and macro recall"""
        if precision + recall == 0:
            return 0.0
        return 2 * precision * recall / (precision + recall)

    @staticmethod
    def _compute_binary_curves(scores: np.ndarray, y_true: np.ndarray) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Compute ROC and precision-recall curves for the positive class (index 1)

        Every distinct score is kept as a ROC threshold and the curve starts
        at (0, 0), so tied scores are measured as a diagonal segment.
        """
        fpr, tpr, roc_thresholds = roc_curve(y_true, scores, drop_intermediate=False)
        precision, recall, pr_thresholds = precision_recall_curve(y_true, scores)

        roc = {
            'fpr': fpr.tolist(),
            'tpr': tpr.tolist(),
            'thresholds': roc_thresholds.tolist(),
            'auc': float(auc(fpr, tpr))
        }
        pr = {
            'precision': precision.tolist(),
            'recall': recall.tolist(),
            'thresholds': pr_thresholds.tolist()
        }
        return roc, pr

    def generate_metrics_summary_text(self, metrics: Dict[str, Any]) -> str:
        """
        Generate a text summary of performance metrics

        Args:
            metrics: Performance metrics dictionary

        Returns:
            Formatted text summary
        """
        summary_lines = []

        summary_lines.append("=" * 60)
        summary_lines.append("MODEL PERFORMANCE SUMMARY")
        summary_lines.append("=" * 60)

        summary_lines.append("\nCLASSIFICATION METRICS:")
        summary_lines.append("-" * 30)
        for metric in ['accuracy', 'precision', 'recall', 'f1']:
            if metric in metrics:
                summary_lines.append(f"{metric.title():<20}: {metrics[metric]:.4f}")

        if 'roc_curve' in metrics:
            summary_lines.append(f"{'ROC AUC':<20}: {metrics['roc_curve']['auc']:.4f}")

        if 'confusion_matrix' in metrics:
            labels = [str(label) for label in metrics.get('class_labels', [])]
            width = max([len(label) for label in labels] + [6])
            summary_lines.append("\nCONFUSION MATRIX (rows: true, columns: predicted):")
            summary_lines.append("-" * 30)
            summary_lines.append(" " * (width + 2) + " ".join(f"{label:>{width}}" for label in labels))
            for label, row in zip(labels, metrics['confusion_matrix']):
                summary_lines.append(f"{label:>{width}}  " + " ".join(f"{count:>{width}d}" for count in row))

        if metrics.get('feature_importance'):
            summary_lines.append("\nFEATURE IMPORTANCE:")
            summary_lines.append("-" * 18)
            ranked = sorted(metrics['feature_importance'].items(), key=lambda item: item[1], reverse=True)
            for name, share in ranked:
                summary_lines.append(f"{name:<20}: {share:.4f}")

        summary_lines.append("\n" + "=" * 60)

        return "\n".join(summary_lines)
