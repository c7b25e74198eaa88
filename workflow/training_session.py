#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Training Session Module for Classroom Forest
Drives a training run incrementally inside the Qt event loop.

[TrainingSession.start -> Validates the configuration, prepares data and schedules the run -> dependent functions are _prepare_run, _advance, _train_network]
[TrainingSession._advance -> Grows one tree per event-loop turn -> dependent functions are _finish, _handle_run_error]
[TrainingSession.check_liveness -> Resets a stale running session to idle -> dependent functions are None]
[TrainingSession.save_snapshot / restore / clear -> Minimal session persistence -> dependent functions are safe_json_dump]

"""

import copy
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Tuple, Optional, Any, Callable, Mapping, Union

import numpy as np
import pandas as pd
from PyQt5.QtCore import QObject, QTimer, QCoreApplication, pyqtSignal

from analytics.performance_metrics import MetricsCalculator
from data.dataset import ColumnMeta, to_dataframe, index_column_meta, infer_column_meta
from data.feature_encoder import FeatureEncoder, PreparedDataset
from models.external_backend import ExternalModelBackend, EpochLogs
from models.forest_config import TrainingConfig, ModelType
from models.forest_model import ForestModel
from models.forest_trainer import ForestTrainer
from models.node import TreeInfo
from utils.config import load_configuration, get_config_value
from utils.errors import ConfigurationError, DataQualityWarning, StaleSessionError
from utils.serialization_utils import safe_json_dump

logger = logging.getLogger(__name__)

FOREST_FEATURE_KINDS = ('numeric', 'boolean')


class SessionPhase(Enum):
    """Lifecycle phases of a training session"""
    IDLE = "idle"
    CONFIGURING = "configuring"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class TrainingProgress:
    """One progress record: a finished tree, or an epoch on the neural-network path"""
    index: int
    oob_score: Optional[float] = None
    completed: int = 0
    total: int = 0
    elapsed_seconds: float = 0.0
    loss: Optional[float] = None
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'oob_score': self.oob_score,
            'completed': self.completed,
            'total': self.total,
            'elapsed_seconds': self.elapsed_seconds,
            'loss': self.loss,
            'accuracy': self.accuracy
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TrainingProgress':
        known = {'index', 'oob_score', 'completed', 'total', 'elapsed_seconds', 'loss', 'accuracy'}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(frozen=True)
class SessionState:
    """
    Immutable snapshot of a session

    The session is the only writer; every change produces a new snapshot,
    so observers may hold on to one without it changing under them.
    """
    phase: SessionPhase = SessionPhase.IDLE
    progress: Tuple[TrainingProgress, ...] = ()
    model: Optional[Any] = None
    metrics: Optional[Mapping[str, Any]] = None
    last_progress_timestamp: Optional[float] = None
    run_started_at: Optional[float] = None
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def is_running(self) -> bool:
        return self.phase == SessionPhase.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        """Persistable fields; the model itself is never written"""
        return {
            'phase': self.phase.value,
            'progress': [record.to_dict() for record in self.progress],
            'metrics': copy.deepcopy(dict(self.metrics)) if self.metrics is not None else None,
            'last_progress_timestamp': self.last_progress_timestamp,
            'run_started_at': self.run_started_at,
            'error': self.error,
            'warnings': list(self.warnings)
        }


@dataclass
class _ActiveRun:
    """Bookkeeping for the run currently behind a Running session"""
    config: TrainingConfig
    prepared: PreparedDataset
    train_indices: np.ndarray
    val_indices: np.ndarray
    cancel_event: threading.Event
    started_at: float
    total: int
    trainer: Optional[ForestTrainer] = None
    iterator: Optional[Any] = None
    trees: List[TreeInfo] = field(default_factory=list)
    error: Optional[str] = None


def _qt_scheduler(callback: Callable[[], None]):
    QTimer.singleShot(0, callback)


def _frozen(metrics: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Read-only private copy of a metrics dict for a state snapshot"""
    if metrics is None:
        return None
    return MappingProxyType(copy.deepcopy(dict(metrics)))


class TrainingSession(QObject):
    """
    Single-owner state machine for one training run at a time

    Idle -> Configuring -> Running -> Completed | Cancelled | Failed. A
    forest run grows one tree per scheduled callback, so the event loop
    repaints between trees and cancel() takes effect at the next tree
    boundary. A Running session with nothing alive behind it is reset to
    Idle by the liveness guard.
    """

    stateChanged = pyqtSignal(object)  # SessionState
    progressUpdated = pyqtSignal(object)  # TrainingProgress
    trainingComplete = pyqtSignal(object)  # metrics dict
    trainingFailed = pyqtSignal(str)  # error message
    trainingCancelled = pyqtSignal(int)  # trees (or epochs) kept
    staleSessionRecovered = pyqtSignal(str)  # reason

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 scheduler: Optional[Callable[[Callable[[], None]], None]] = None,
                 clock: Optional[Callable[[], float]] = None,
                 backend: Optional[ExternalModelBackend] = None,
                 parent: Optional[QObject] = None):
        """
        Initialize the session

        Args:
            config: Application configuration (loaded from disk when None)
            scheduler: Runs a callback on a later event-loop turn (QTimer.singleShot(0, ...) by default)
            clock: Wall-clock source in seconds
            backend: Trainer for the neural-network model type
            parent: Optional Qt parent
        """
        super().__init__(parent)
        self.config = config if config is not None else load_configuration()
        self._scheduler = scheduler if scheduler is not None else _qt_scheduler
        self._clock = clock if clock is not None else time.time
        self.backend = backend

        self.stall_threshold = float(get_config_value(self.config, 'session.stall_threshold_seconds', 15.0))
        self.liveness_interval_ms = int(get_config_value(self.config, 'session.liveness_check_interval_ms', 5000))
        self._liveness_timer: Optional[QTimer] = None

        self.metrics_calculator = MetricsCalculator()

        self._dataset: Optional[pd.DataFrame] = None
        self._column_meta: Dict[str, ColumnMeta] = {}
        self._run: Optional[_ActiveRun] = None
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def has_live_trainer(self) -> bool:
        return self._run is not None

    def _set_state(self, **changes):
        self._state = replace(self._state, **changes)
        logger.debug(f"Session state: {self._state.phase.value}, {len(self._state.progress)} progress records")
        self.stateChanged.emit(self._state)

    def set_dataset(self, dataset: Union[pd.DataFrame, List[Mapping[str, Any]]],
                    column_meta: Optional[Any] = None) -> bool:
        """
        Load the dataset for the next run

        Args:
            dataset: DataFrame or sequence of row mappings
            column_meta: Column metadata; inferred from the data when None

        Returns:
            True if the dataset was accepted
        """
        if self.has_live_trainer:
            logger.warning("Cannot change the dataset while training is running")
            return False

        self._dataset = to_dataframe(dataset)
        if column_meta is None:
            column_meta = infer_column_meta(self._dataset)
        self._column_meta = index_column_meta(column_meta)

        logger.info(f"Session dataset set: {len(self._dataset)} rows, {len(self._dataset.columns)} columns")
        self._set_state(phase=SessionPhase.CONFIGURING, progress=(), model=None, metrics=None,
                        last_progress_timestamp=None, run_started_at=None, error=None, warnings=())
        return True

    def start(self, config: Union[TrainingConfig, Mapping[str, Any]]) -> bool:
        """
        Validate the configuration and schedule a training run

        Configuration problems never raise: the session moves to Failed and
        trainingFailed is emitted.

        Args:
            config: TrainingConfig, or a mapping accepted by TrainingConfig.from_dict

        Returns:
            True if the run was scheduled
        """
        if self._state.is_running:
            self.check_liveness()
            if self._state.is_running:
                logger.warning("Training is already running")
                return False

        self._set_state(phase=SessionPhase.CONFIGURING, error=None)

        try:
            run = self._prepare_run(config)
        except ConfigurationError as e:
            self._fail(f"Invalid configuration: {str(e)}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error preparing training run: {str(e)}", exc_info=True)
            self._fail(f"Could not prepare training data: {str(e)}")
            return False

        now = self._clock()
        run.started_at = now
        self._run = run
        self._set_state(phase=SessionPhase.RUNNING, progress=(), model=None, metrics=None,
                        last_progress_timestamp=now, run_started_at=now, error=None,
                        warnings=tuple(str(w) for w in run.prepared.warnings))

        logger.info(f"Training started: {run.config.model_type.value}, {len(run.train_indices)} training rows, "
                    f"{len(run.val_indices)} validation rows")

        if run.config.model_type == ModelType.RANDOM_FOREST:
            self._scheduler(lambda: self._advance(run))
        else:
            self._scheduler(lambda: self._train_network(run))
        return True

    def _prepare_run(self, config: Union[TrainingConfig, Mapping[str, Any]]) -> _ActiveRun:
        """Validate everything that can be checked before training and encode the data"""
        if isinstance(config, TrainingConfig):
            training_config = config
        else:
            training_config = TrainingConfig.from_dict(config, defaults=self.config)

        if self._dataset is None:
            raise ConfigurationError("No dataset loaded")

        df = self._dataset
        if training_config.target_column not in df.columns:
            raise ConfigurationError(f"Target column '{training_config.target_column}' not found in dataset",
                                     field='target_column')

        missing = [f for f in training_config.selected_features if f not in df.columns]
        if missing:
            raise ConfigurationError(f"Feature columns not found in dataset: {', '.join(missing)}",
                                     field='selected_features')

        warnings: List[DataQualityWarning] = []
        features = list(training_config.selected_features)

        if training_config.model_type == ModelType.RANDOM_FOREST:
            usable = []
            for feature in features:
                meta = self._column_meta.get(feature, ColumnMeta(feature))
                if meta.inferred_type in FOREST_FEATURE_KINDS:
                    usable.append(feature)
                else:
                    message = (f"Feature '{feature}' is {meta.inferred_type}; "
                               f"only numeric and boolean features are used by the random forest")
                    logger.warning(message)
                    warnings.append(DataQualityWarning(message, feature))

            if not usable:
                raise ConfigurationError("No usable numeric features selected for the random forest",
                                         field='selected_features')
            features = usable
        elif self.backend is None:
            raise ConfigurationError("No neural-network backend is configured", field='model_type')

        encoder = FeatureEncoder(training_config.preprocessing)
        prepared = encoder.prepare(df, self._column_meta, training_config.target_column, features)
        prepared.warnings[:0] = warnings

        incomplete = prepared.incomplete_rows
        train_indices = prepared.train_indices[~incomplete[prepared.train_indices]]
        val_indices = prepared.val_indices[~incomplete[prepared.val_indices]]

        excluded = int(incomplete.sum())
        if excluded:
            message = f"Excluded {excluded} rows with missing feature values"
            logger.warning(message)
            prepared.warnings.append(DataQualityWarning(message, None, excluded))

        if len(train_indices) == 0:
            raise ConfigurationError("No training rows remain after removing incomplete rows",
                                     field='train_split_ratio')

        if training_config.model_type == ModelType.RANDOM_FOREST:
            total = training_config.forest.n_estimators
        else:
            total = training_config.neural_network.epochs

        return _ActiveRun(
            config=training_config,
            prepared=prepared,
            train_indices=train_indices,
            val_indices=val_indices,
            cancel_event=threading.Event(),
            started_at=self._clock(),
            total=total
        )

    def _record_progress(self, record: TrainingProgress):
        now = self._clock()
        self._set_state(progress=self._state.progress + (record,), last_progress_timestamp=now)
        self.progressUpdated.emit(record)

    def _advance(self, run: _ActiveRun):
        """Grow the next tree, record it and schedule the following step"""
        if run is not self._run:
            logger.debug("Ignoring step for a run that is no longer active")
            return

        if run.iterator is None:
            prepared = run.prepared
            run.trainer = ForestTrainer(run.config.forest, cancel_event=run.cancel_event)
            run.iterator = run.trainer.iter_fit(
                prepared.matrix.values[run.train_indices],
                prepared.labels[run.train_indices],
                class_labels=list(range(len(prepared.class_labels)))
            )

        try:
            tree = next(run.iterator)
        except StopIteration:
            self._finish(run)
            return
        except Exception as e:
            logger.error(f"Error while growing tree {len(run.trees)}: {str(e)}", exc_info=True)
            self._handle_run_error(run, e)
            return

        run.trees.append(tree)
        self._record_progress(TrainingProgress(
            index=len(run.trees) - 1,
            oob_score=tree.oob_score,
            completed=len(run.trees),
            total=run.total,
            elapsed_seconds=self._clock() - run.started_at
        ))

        # observers may have cancelled or cleared the session while handling the signal
        if run is self._run:
            self._scheduler(lambda: self._advance(run))

    def _build_model(self, run: _ActiveRun) -> ForestModel:
        return ForestModel(run.trees, run.prepared.feature_names, run.prepared.class_labels, run.config.forest)

    def _handle_run_error(self, run: _ActiveRun, error: Exception):
        """Keep a partial ensemble when at least one tree finished, otherwise fail"""
        if run.trees:
            run.error = f"Training stopped after {len(run.trees)} trees: {str(error)}"
            logger.warning(run.error)
            self._finish(run)
        else:
            self._fail(f"Training failed: {str(error)}")

    def _finish(self, run: _ActiveRun):
        """Build the final model and move to Completed or Cancelled"""
        self._run = None
        model = self._build_model(run)
        warnings = self._state.warnings + ((run.error,) if run.error else ())

        # a cancel that lands after the last tree does not discard a complete forest
        if run.cancel_event.is_set() and len(run.trees) < run.total:
            logger.info(f"Training cancelled with {model.n_trees} of {run.total} trees")
            self._set_state(phase=SessionPhase.CANCELLED, model=model, warnings=warnings)
            self.trainingCancelled.emit(model.n_trees)
            return

        if model.is_empty:
            self._fail("Training produced no trees")
            return

        try:
            metrics = self._evaluate(run, model.predict_indices, model.predict_proba,
                                     model.get_feature_importance())
            metrics['n_trees'] = model.n_trees
            metrics['oob_score'] = model.mean_oob_score
        except Exception as e:
            logger.error(f"Error computing metrics: {str(e)}", exc_info=True)
            metrics = {}
            warnings = warnings + (f"Metrics could not be computed: {str(e)}",)

        self._set_state(phase=SessionPhase.COMPLETED, model=model, metrics=_frozen(metrics), warnings=warnings)
        logger.info(f"Training completed: {model.n_trees} trees, accuracy {metrics.get('accuracy')}")
        self.trainingComplete.emit(copy.deepcopy(metrics))

    def _evaluate(self, run: _ActiveRun, predict: Callable, predict_proba: Callable,
                  feature_importance: Optional[Dict[str, float]]) -> Dict[str, Any]:
        """Metrics on the validation rows, or on the training rows when the holdout is empty"""
        prepared = run.prepared
        indices, evaluated_on = run.val_indices, 'validation'
        if len(indices) == 0:
            logger.warning("Validation partition is empty; evaluating on the training rows")
            indices, evaluated_on = run.train_indices, 'training'

        X = prepared.matrix.values[indices]
        y = prepared.labels[indices]

        metrics = self.metrics_calculator.compute_metrics(
            y, predict(X), prepared.class_labels,
            y_proba=predict_proba(X),
            feature_importance=feature_importance
        )
        metrics['evaluated_on'] = evaluated_on
        return metrics

    def _train_network(self, run: _ActiveRun):
        """Hand the run to the external backend, recording one progress entry per epoch"""
        if run is not self._run:
            return

        prepared = run.prepared

        def on_epoch_end(epoch: int, logs: EpochLogs) -> bool:
            if run is not self._run:
                return False
            self._record_progress(TrainingProgress(
                index=epoch,
                completed=epoch + 1,
                total=run.total,
                elapsed_seconds=self._clock() - run.started_at,
                loss=logs.loss,
                accuracy=logs.accuracy
            ))
            if QCoreApplication.instance() is not None:
                QCoreApplication.processEvents()
            return not run.cancel_event.is_set()

        try:
            self.backend.train(
                prepared.matrix.values[run.train_indices],
                prepared.labels[run.train_indices],
                len(prepared.class_labels),
                run.config.neural_network,
                on_epoch_end=on_epoch_end,
                validation=(prepared.matrix.values[run.val_indices], prepared.labels[run.val_indices])
            )
        except Exception as e:
            logger.error(f"Neural-network training failed: {str(e)}", exc_info=True)
            if run is self._run:
                self._fail(f"Training failed: {str(e)}")
            return

        if run is not self._run:
            return
        self._run = None

        epochs = len(self._state.progress)
        if run.cancel_event.is_set() and epochs < run.total:
            logger.info(f"Neural-network training cancelled after {epochs} epochs")
            self._set_state(phase=SessionPhase.CANCELLED, model=self.backend)
            self.trainingCancelled.emit(epochs)
            return

        try:
            metrics = self._evaluate(run, self.backend.predict, self.backend.predict_proba, None)
            metrics['epochs'] = epochs
        except Exception as e:
            logger.error(f"Error computing metrics: {str(e)}", exc_info=True)
            self._fail(f"Evaluation failed: {str(e)}")
            return

        self._set_state(phase=SessionPhase.COMPLETED, model=self.backend, metrics=_frozen(metrics))
        self.trainingComplete.emit(copy.deepcopy(metrics))

    def _fail(self, message: str):
        self._run = None
        logger.error(message)
        self._set_state(phase=SessionPhase.FAILED, error=message)
        self.trainingFailed.emit(message)

    def cancel(self) -> bool:
        """
        Request cancellation

        The run stops at the next tree (or epoch) boundary and the session
        becomes Cancelled, keeping whatever was trained.

        Returns:
            True if a running session was asked to stop
        """
        if self._run is None:
            logger.debug("Cancel requested but no training is running")
            return False

        logger.info("Cancelling training run")
        self._run.cancel_event.set()
        return True

    def check_liveness(self, now: Optional[float] = None) -> bool:
        """
        Reset a stale Running session to Idle

        A session is stale when it claims to be Running but either has no
        live trainer and no progress at all (typically rehydrated from a
        snapshot), or has been silent for longer than the stall threshold.

        Args:
            now: Current wall-clock time (the session clock when None)

        Returns:
            True if the session was reset
        """
        state = self._state
        if not state.is_running:
            return False

        now = self._clock() if now is None else now
        last = state.last_progress_timestamp

        if self._run is None and not state.progress:
            reason = "session is marked running but no trainer or progress exists"
        elif last is None or now - last > self.stall_threshold:
            silent = "unknown" if last is None else f"{now - last:.1f}s"
            reason = f"no training progress for {silent} (threshold {self.stall_threshold:.0f}s)"
        else:
            return False

        logger.warning(f"Recovered stale training session: {StaleSessionError(reason)}")

        if self._run is not None:
            self._run.cancel_event.set()
            self._run = None

        self._set_state(phase=SessionPhase.IDLE, progress=(), model=None, metrics=None,
                        last_progress_timestamp=None, run_started_at=None, error=None)
        self.staleSessionRecovered.emit(reason)
        return True

    def start_liveness_guard(self, interval_ms: Optional[int] = None):
        """Run check_liveness periodically on a QTimer owned by this session"""
        if self._liveness_timer is None:
            self._liveness_timer = QTimer(self)
            self._liveness_timer.timeout.connect(lambda: self.check_liveness())
        self._liveness_timer.start(interval_ms or self.liveness_interval_ms)
        logger.debug(f"Liveness guard started ({interval_ms or self.liveness_interval_ms} ms)")

    def stop_liveness_guard(self):
        if self._liveness_timer is not None:
            self._liveness_timer.stop()

    def _snapshot_path(self, path: Optional[str]) -> str:
        return path or get_config_value(self.config, 'application.snapshot_file', 'session_snapshot.json')

    def save_snapshot(self, path: Optional[str] = None) -> bool:
        """
        Persist the session state (without the model) as JSON

        Args:
            path: Snapshot file (application.snapshot_file when None)

        Returns:
            True if the snapshot was written
        """
        path = self._snapshot_path(path)
        data = self._state.to_dict()
        data['saved_at'] = self._clock()

        if safe_json_dump(data, path):
            logger.info(f"Session snapshot saved to {path}")
            return True
        return False

    @classmethod
    def restore(cls, path: Optional[str] = None, config: Optional[Dict[str, Any]] = None,
                **kwargs) -> 'TrainingSession':
        """
        Rehydrate a session from a snapshot

        No trainer is revived: a snapshot taken mid-run comes back Running
        with nothing behind it and is reset by the liveness check, which
        runs once immediately.

        Args:
            path: Snapshot file (application.snapshot_file when None)
            config: Application configuration
            **kwargs: Passed to the constructor (scheduler, clock, backend, parent)

        Returns:
            TrainingSession
        """
        session = cls(config=config, **kwargs)
        path = session._snapshot_path(path)

        if not os.path.exists(path):
            logger.info(f"No session snapshot at {path}, starting idle")
            return session

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            session._state = SessionState(
                phase=SessionPhase(data.get('phase', SessionPhase.IDLE.value)),
                progress=tuple(TrainingProgress.from_dict(p) for p in data.get('progress') or []),
                metrics=_frozen(data.get('metrics')),
                last_progress_timestamp=data.get('last_progress_timestamp'),
                run_started_at=data.get('run_started_at'),
                error=data.get('error'),
                warnings=tuple(data.get('warnings') or [])
            )
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Could not restore session snapshot {path}: {str(e)}", exc_info=True)
            return session

        logger.info(f"Session restored from {path}: {session._state.phase.value}")
        session.check_liveness()
        return session

    def clear(self, path: Optional[str] = None):
        """Abandon any run, forget the dataset and remove the snapshot file"""
        if self._run is not None:
            self._run.cancel_event.set()
            self._run = None

        self._dataset = None
        self._column_meta = {}
        self._set_state(phase=SessionPhase.IDLE, progress=(), model=None, metrics=None,
                        last_progress_timestamp=None, run_started_at=None, error=None, warnings=())

        path = self._snapshot_path(path)
        if os.path.exists(path):
            try:
                os.remove(path)
                logger.info(f"Removed session snapshot {path}")
            except OSError as e:
                logger.error(f"Could not remove session snapshot {path}: {str(e)}")
