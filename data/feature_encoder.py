#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Feature Encoder Module for Classroom Forest
Turns a raw tabular dataset into numeric matrices for model training.

[FeatureEncoder.prepare -> Cleans, imputes, encodes and splits a dataset -> dependent functions are _impute_column, _encode_column, _encode_target, stratified_split]
[FeatureEncoder.encode_inference -> Re-encodes new rows with stored encodings -> dependent functions are _encode_value]
[stratified_split -> Per-class shuffled train/validation split -> dependent functions are None]
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Optional, Any, Iterable, Mapping, Union

import numpy as np
import pandas as pd

from data.dataset import ColumnMeta, is_missing, to_dataframe, index_column_meta
from models.forest_config import PreprocessingConfig
from utils.errors import ConfigurationError, DataQualityWarning

logger = logging.getLogger(__name__)

TRUE_TOKENS = {'true', '1', 'yes'}


@dataclass(frozen=True)
class NormalizeStats:
    """z-score statistics captured at training time"""
    mean: float
    std: float


@dataclass(frozen=True)
class EncodingInfo:
    """How one selected column was encoded; reused verbatim at inference time"""
    column_name: str
    kind: str
    categorical_mapping: Optional[Dict[str, int]] = None
    normalize_stats: Optional[NormalizeStats] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'column_name': self.column_name,
            'kind': self.kind,
            'categorical_mapping': dict(self.categorical_mapping) if self.categorical_mapping else None,
            'normalize_stats': (
                {'mean': self.normalize_stats.mean, 'std': self.normalize_stats.std}
                if self.normalize_stats else None
            )
        }


@dataclass(frozen=True)
class EncodedMatrix:
    """Row-major [num_samples x num_features] matrix plus a parallel label vector"""
    values: np.ndarray
    labels: np.ndarray

    def __post_init__(self):
        if self.values.ndim != 2:
            raise ValueError(f"Encoded matrix must be 2-dimensional, got shape {self.values.shape}")
        if self.values.shape[0] != self.labels.shape[0]:
            raise ValueError(f"Matrix has {self.values.shape[0]} rows but {self.labels.shape[0]} labels")

    @property
    def num_samples(self) -> int:
        return int(self.values.shape[0])

    @property
    def num_features(self) -> int:
        return int(self.values.shape[1])

    @property
    def buffer(self) -> np.ndarray:
        """Flat row-major view of the values"""
        return np.ascontiguousarray(self.values).ravel()


@dataclass
class PreparedDataset:
    """Output of FeatureEncoder.prepare"""
    matrix: EncodedMatrix
    train_indices: np.ndarray
    val_indices: np.ndarray
    encoding_info: Tuple[EncodingInfo, ...]
    feature_names: List[str]
    class_labels: List[Any]
    incomplete_rows: np.ndarray
    rows_dropped: int = 0
    warnings: List[DataQualityWarning] = field(default_factory=list)

    @property
    def labels(self) -> np.ndarray:
        return self.matrix.labels

    @property
    def target_type(self) -> str:
        return 'binary' if len(self.class_labels) <= 2 else 'multiclass'


def stratified_split(labels: np.ndarray, train_ratio: float,
                     random_state: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split row indices so every class is represented proportionally in both parts

    Indices are grouped by label, shuffled within each group and each group is
    sliced at train_ratio. A class with at least two rows always keeps one row
    on each side.

    Args:
        labels: Encoded class index per row
        train_ratio: Fraction of each class assigned to training
        random_state: Seed for the within-group shuffle

    Returns:
        Tuple of (train_indices, val_indices), each sorted ascending
    """
    rng = np.random.RandomState(random_state)
    train_parts = []
    val_parts = []

    for label in np.unique(labels):
        group = np.flatnonzero(labels == label)
        rng.shuffle(group)

        n_train = int(round(len(group) * train_ratio))
        if len(group) >= 2:
            n_train = min(max(n_train, 1), len(group) - 1)

        train_parts.append(group[:n_train])
        val_parts.append(group[n_train:])

    train_indices = np.sort(np.concatenate(train_parts)) if train_parts else np.array([], dtype=int)
    val_indices = np.sort(np.concatenate(val_parts)) if val_parts else np.array([], dtype=int)
    return train_indices.astype(int), val_indices.astype(int)


class FeatureEncoder:
    """Class for cleaning, encoding and splitting a raw dataset"""

    def __init__(self, config: Optional[PreprocessingConfig] = None):
        """
        Initialize FeatureEncoder

        Args:
            config: Preprocessing configuration (defaults to PreprocessingConfig())
        """
        self.config = config or PreprocessingConfig()

    def prepare(self, dataset: Union[pd.DataFrame, Iterable[Mapping[str, Any]]],
                column_meta: Union[Mapping[str, ColumnMeta], Iterable[Any]],
                target_column: str, selected_features: List[str]) -> PreparedDataset:
        """
        Clean, impute, encode and split a dataset

        Args:
            dataset: DataFrame or sequence of row mappings
            column_meta: Column metadata (list or name-keyed mapping)
            target_column: Column holding the class label
            selected_features: Feature columns, in matrix column order

        Returns:
            PreparedDataset

        Raises:
            ConfigurationError: If columns are missing, the target has fewer than
                two distinct values, or the training partition is empty
        """
        df = to_dataframe(dataset)
        metas = index_column_meta(column_meta)
        warnings: List[DataQualityWarning] = []

        for column in [target_column] + list(selected_features):
            if column not in df.columns:
                raise ConfigurationError(f"Column '{column}' not found in dataset", field=column)

        target_missing = df[target_column].map(is_missing).to_numpy(dtype=bool)
        rows_dropped = int(target_missing.sum())
        if rows_dropped:
            warnings.append(self._warn(
                f"Dropped {rows_dropped} rows with a missing value in target column '{target_column}'",
                target_column, rows_dropped
            ))

        cleaned = df.loc[~target_missing, [target_column] + list(selected_features)].reset_index(drop=True)
        n_samples = len(cleaned)

        incomplete_rows = np.zeros(n_samples, dtype=bool)
        columns = []
        encoding_info = []

        for feature in selected_features:
            meta = metas.get(feature, ColumnMeta(feature))
            kind = meta.encoding_kind

            values, still_missing = self._impute_column(cleaned[feature], kind, feature, warnings)
            incomplete_rows |= still_missing

            encoded, info = self._encode_column(values, still_missing, kind, feature, warnings)
            columns.append(encoded)
            encoding_info.append(info)

        if self.config.normalization:
            for i, info in enumerate(encoding_info):
                if info.kind != 'numeric':
                    continue
                present = columns[i][~incomplete_rows] if (~incomplete_rows).any() else columns[i]
                mean = float(np.mean(present)) if len(present) else 0.0
                std = float(np.std(present)) if len(present) else 1.0
                if std == 0.0 or not np.isfinite(std):
                    std = 1.0
                columns[i] = (columns[i] - mean) / std
                encoding_info[i] = EncodingInfo(info.column_name, info.kind, info.categorical_mapping,
                                                NormalizeStats(mean, std))

        if columns:
            values = np.column_stack(columns).astype(np.float64)
        else:
            values = np.zeros((n_samples, 0), dtype=np.float64)

        target_meta = metas.get(target_column, ColumnMeta(target_column))
        labels, class_labels = self._encode_target(cleaned[target_column], target_meta)

        if len(class_labels) < 2:
            raise ConfigurationError(
                f"Target column '{target_column}' must have at least 2 distinct values, "
                f"got {len(class_labels)}",
                field=target_column
            )

        train_indices, val_indices = stratified_split(labels, self.config.train_split_ratio,
                                                      self.config.split_seed)
        if len(train_indices) == 0:
            raise ConfigurationError("Training partition is empty", field='train_split_ratio')

        logger.info(f"Prepared dataset: {n_samples} rows x {len(selected_features)} features, "
                    f"{len(class_labels)} classes, {len(train_indices)} train / {len(val_indices)} validation")

        return PreparedDataset(
            matrix=EncodedMatrix(values, labels),
            train_indices=train_indices,
            val_indices=val_indices,
            encoding_info=tuple(encoding_info),
            feature_names=list(selected_features),
            class_labels=class_labels,
            incomplete_rows=incomplete_rows,
            rows_dropped=rows_dropped,
            warnings=warnings
        )

    def _impute_column(self, series: pd.Series, kind: str, column: str,
                       warnings: List[DataQualityWarning]) -> Tuple[pd.Series, np.ndarray]:
        """
        Fill missing values according to the column's strategy

        Returns:
            Tuple of (values, mask of rows still missing)
        """
        missing = series.map(is_missing).to_numpy(dtype=bool)
        if not missing.any():
            return series, missing

        strategy = self.config.strategy_for(column)

        if strategy == 'mean' and kind != 'numeric':
            warnings.append(self._warn(
                f"Mean imputation is not defined for {kind} column '{column}', using mode instead",
                column, int(missing.sum())
            ))
            strategy = 'mode'

        fill_value = None
        present = series[~missing]

        if strategy == 'mean':
            numeric = pd.to_numeric(present, errors='coerce').dropna()
            if len(numeric):
                fill_value = float(numeric.mean())
        elif strategy == 'mode':
            counts = Counter(present.tolist())
            if counts:
                # most_common keeps first-encountered order among equal counts
                fill_value = counts.most_common(1)[0][0]

        if strategy == 'drop':
            logger.debug(f"Column '{column}': {int(missing.sum())} missing values flagged for row exclusion")
            return series, missing

        if fill_value is None:
            warnings.append(self._warn(
                f"Column '{column}' has no values to impute from; {int(missing.sum())} rows flagged for exclusion",
                column, int(missing.sum())
            ))
            return series, missing

        filled = series.copy().astype(object)
        filled[missing] = fill_value
        logger.debug(f"Column '{column}': imputed {int(missing.sum())} values with {strategy} ({fill_value!r})")
        return filled, np.zeros(len(series), dtype=bool)

    def _encode_column(self, series: pd.Series, missing: np.ndarray, kind: str, column: str,
                       warnings: List[DataQualityWarning]) -> Tuple[np.ndarray, EncodingInfo]:
        """Encode one feature column to floats"""
        if kind == 'numeric':
            numeric = pd.to_numeric(series, errors='coerce').to_numpy(dtype=np.float64, copy=True)
            failed = np.isnan(numeric) & ~missing
            if failed.any():
                warnings.append(self._warn(
                    f"Column '{column}': {int(failed.sum())} values could not be parsed as numbers and were set to 0",
                    column, int(failed.sum())
                ))
            numeric[np.isnan(numeric)] = 0.0
            return numeric, EncodingInfo(column, 'numeric')

        if kind == 'boolean':
            encoded = np.array([
                0.0 if is_missing(value) else (1.0 if str(value).strip().lower() in TRUE_TOKENS else 0.0)
                for value in series
            ], dtype=np.float64)
            return encoded, EncodingInfo(column, 'boolean')

        as_text = [None if is_missing(value) else str(value) for value in series]
        mapping: Dict[str, int] = {}
        for value in as_text:
            if value is not None and value not in mapping:
                mapping[value] = len(mapping)

        encoded = np.array([mapping.get(value, 0) if value is not None else 0 for value in as_text],
                           dtype=np.float64)
        return encoded, EncodingInfo(column, 'categorical', mapping)

    def _encode_target(self, series: pd.Series, meta: ColumnMeta) -> Tuple[np.ndarray, List[Any]]:
        """
        Encode the target column to class indices

        Numeric targets keep their classes in ascending order; every other
        kind uses first-seen order.
        """
        if meta.inferred_type == 'numeric':
            numeric = pd.to_numeric(series, errors='coerce')
            if numeric.notna().all():
                classes = sorted(numeric.unique().tolist())
                if all(float(c).is_integer() for c in classes):
                    classes = [int(c) for c in classes]
                    numeric = numeric.astype(int)
                lookup = {value: index for index, value in enumerate(classes)}
                labels = np.array([lookup[value] for value in numeric.tolist()], dtype=int)
                return labels, classes
            logger.warning(f"Target column '{meta.name}' is marked numeric but has unparseable values, "
                           f"encoding it as categorical")

        text = [str(value).strip() for value in series]
        lookup: Dict[str, int] = {}
        for value in text:
            if value not in lookup:
                lookup[value] = len(lookup)
        labels = np.array([lookup[value] for value in text], dtype=int)
        return labels, list(lookup.keys())

    @staticmethod
    def _warn(message: str, column: Optional[str], count: int) -> DataQualityWarning:
        logger.warning(message)
        return DataQualityWarning(message, column, count)

    @staticmethod
    def encode_inference(rows: Union[pd.DataFrame, Mapping[str, Any], Iterable[Mapping[str, Any]]],
                         encoding_info: Iterable[EncodingInfo]) -> np.ndarray:
        """
        Apply stored encodings to new rows

        Normalization statistics are reused, never recomputed. Unknown
        categories and unparseable numbers encode as 0.

        Args:
            rows: One row mapping, a sequence of row mappings, or a DataFrame
            encoding_info: Encodings captured by prepare()

        Returns:
            Array of shape [n_rows, n_features]
        """
        if isinstance(rows, Mapping):
            rows = [rows]
        df = to_dataframe(rows)
        infos = list(encoding_info)

        result = np.zeros((len(df), len(infos)), dtype=np.float64)
        for j, info in enumerate(infos):
            column = df[info.column_name] if info.column_name in df.columns else pd.Series([None] * len(df))
            for i, value in enumerate(column.tolist()):
                result[i, j] = FeatureEncoder._encode_value(value, info)
        return result

    @staticmethod
    def _encode_value(value: Any, info: EncodingInfo) -> float:
        if info.kind == 'numeric':
            try:
                encoded = 0.0 if is_missing(value) else float(value)
            except (TypeError, ValueError):
                encoded = 0.0
            if np.isnan(encoded):
                encoded = 0.0
            if info.normalize_stats:
                encoded = (encoded - info.normalize_stats.mean) / info.normalize_stats.std
            return encoded

        if info.kind == 'boolean':
            return 0.0 if is_missing(value) else float(str(value).strip().lower() in TRUE_TOKENS)

        if is_missing(value):
            return 0.0
        return float((info.categorical_mapping or {}).get(str(value), 0))

    @staticmethod
    def encoding_map(encoding_info: Iterable[EncodingInfo]) -> Dict[str, List[str]]:
        """Category lists per categorical column, in index order"""
        return {
            info.column_name: list(info.categorical_mapping.keys())
            for info in encoding_info
            if info.categorical_mapping
        }

    @staticmethod
    def target_type(column_meta: Union[Mapping[str, ColumnMeta], Iterable[Any]], target_column: str) -> str:
        """
        Classify the learning task from the target's metadata

        Returns:
            'binary', 'multiclass' or 'regression' (numeric with many distinct values)
        """
        meta = index_column_meta(column_meta).get(target_column)
        if meta is None:
            return 'binary'

        n_classes = meta.unique_count or 2
        if meta.inferred_type == 'numeric' and n_classes > 10:
            return 'regression'
        return 'binary' if n_classes <= 2 else 'multiclass'
