#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Dataset Module for Classroom Forest
Column metadata and helpers that turn raw row tables into DataFrames
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Iterable, Mapping, Union

import pandas as pd

logger = logging.getLogger(__name__)

COLUMN_TYPES = ('numeric', 'categorical', 'boolean', 'datetime', 'text')
BOOLEAN_TOKENS = {'true', 'false', '1', '0', 'yes', 'no'}


@dataclass(frozen=True)
class ColumnMeta:
    """Inferred type and cardinality of one dataset column"""
    name: str
    inferred_type: str = 'categorical'
    unique_count: Optional[int] = None
    missing_count: int = 0

    def __post_init__(self):
        if self.inferred_type not in COLUMN_TYPES:
            raise ValueError(f"Invalid column type '{self.inferred_type}' for column '{self.name}'")

    @property
    def encoding_kind(self) -> str:
        """Encoding used by the feature encoder: datetime and text fall back to categorical"""
        if self.inferred_type in ('numeric', 'boolean'):
            return self.inferred_type
        return 'categorical'

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ColumnMeta':
        return cls(
            name=data['name'],
            inferred_type=data.get('inferred_type', data.get('type', 'categorical')),
            unique_count=data.get('unique_count'),
            missing_count=data.get('missing_count', 0)
        )


def is_missing(value: Any) -> bool:
    """True for None, NaN and blank strings"""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_dataframe(dataset: Union[pd.DataFrame, Iterable[Mapping[str, Any]]]) -> pd.DataFrame:
    """
    Accept a DataFrame or a sequence of row mappings and return a DataFrame

    The input is never modified; a DataFrame input is copied.
    """
    if isinstance(dataset, pd.DataFrame):
        return dataset.copy()
    return pd.DataFrame.from_records(list(dataset))


def index_column_meta(column_meta: Union[Mapping[str, ColumnMeta], Iterable[Any]]) -> Dict[str, ColumnMeta]:
    """Normalize a list of ColumnMeta (or dicts) into a name-keyed dictionary"""
    if isinstance(column_meta, Mapping):
        items = column_meta.values()
    else:
        items = column_meta

    indexed = {}
    for item in items:
        meta = item if isinstance(item, ColumnMeta) else ColumnMeta.from_dict(item)
        indexed[meta.name] = meta
    return indexed


def infer_column_meta(df: pd.DataFrame) -> List[ColumnMeta]:
    """
    Minimal type inference for headless use (command line, tests)

    Columns whose non-missing values all parse as numbers are numeric,
    columns limited to true/false/yes/no/1/0 tokens with two distinct values
    are boolean, everything else is categorical.
    """
    metas = []
    for column in df.columns:
        series = df[column]
        present = series[~series.map(is_missing)]
        missing_count = int(len(series) - len(present))
        unique_count = int(present.astype(str).nunique())

        tokens = set(present.astype(str).str.strip().str.lower().unique())
        numeric = pd.to_numeric(present, errors='coerce')

        if len(present) > 0 and tokens <= BOOLEAN_TOKENS and len(tokens) == 2 and not tokens <= {'0', '1'}:
            inferred = 'boolean'
        elif len(present) > 0 and numeric.notna().all():
            inferred = 'numeric'
        else:
            inferred = 'categorical'

        metas.append(ColumnMeta(str(column), inferred, unique_count, missing_count))

    logger.debug(f"Inferred column types: {', '.join(f'{m.name}={m.inferred_type}' for m in metas)}")
    return metas
