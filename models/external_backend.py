#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
External Backend Module for Classroom Forest
Contract for model families trained outside this package (the neural-network path)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import numpy as np

from models.forest_config import NeuralNetworkConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpochLogs:
    """Metrics a backend reports at the end of one epoch"""
    loss: float
    accuracy: float
    val_loss: Optional[float] = None
    val_accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'loss': self.loss,
            'accuracy': self.accuracy,
            'val_loss': self.val_loss,
            'val_accuracy': self.val_accuracy
        }


# Called with (epoch index, logs); returning False asks the backend to stop
EpochCallback = Callable[[int, EpochLogs], bool]


class ExternalModelBackend(ABC):
    """
    Opaque trainer for a model family this package does not implement

    A backend owns its fitted model between train() and the prediction
    calls. train() must invoke on_epoch_end after every epoch and stop
    early, keeping what it has learned so far, when the callback returns False.
    """

    @abstractmethod
    def train(self, X: np.ndarray, y: np.ndarray, n_classes: int, config: NeuralNetworkConfig,
              on_epoch_end: Optional[EpochCallback] = None,
              validation: Optional[tuple] = None) -> None:
        """
        Fit the model

        Args:
            X: Training matrix [n_samples, n_features]
            y: Class index per row
            n_classes: Number of classes
            config: Neural-network hyperparameters
            on_epoch_end: Progress callback; a False return requests an early stop
            validation: Optional (X_val, y_val) pair for validation metrics
        """

    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """Class index per row"""

    @abstractmethod
    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Class probabilities [n_samples, n_classes]"""

    def evaluate(self, X: np.ndarray, y: np.ndarray) -> Dict[str, float]:
        """Loss-free default evaluation: accuracy of predict()"""
        predictions = np.asarray(self.predict(X))
        accuracy = float(np.mean(predictions == np.asarray(y))) if len(y) else 0.0
        return {'accuracy': accuracy}
