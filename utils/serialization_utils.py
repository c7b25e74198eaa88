#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Serialization Utilities for Classroom Forest

Provides safe JSON serialization functions that handle numpy data types,
enums, dataclasses and other objects found in session snapshots and
model summaries.
"""

import json
import logging
import dataclasses
from enum import Enum
from pathlib import Path
from datetime import datetime, date
from typing import Any, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def make_json_serializable(obj: Any) -> Any:
    """
    Convert objects to JSON-serializable formats.

    Recursively processes containers, converting numpy scalars and arrays,
    enums, dataclasses and pandas objects to plain Python equivalents.
    Non-finite floats become None so the output is strict JSON.

    Args:
        obj: Object to make JSON serializable

    Returns:
        JSON-serializable version of the object
    """
    if obj is None:
        return None

    if isinstance(obj, bool):
        return obj

    if isinstance(obj, float):
        return obj if np.isfinite(obj) else None

    if isinstance(obj, (int, str)):
        return obj

    if isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return make_json_serializable(float(obj))
    elif isinstance(obj, np.ndarray):
        return make_json_serializable(obj.tolist())

    elif isinstance(obj, Enum):
        return make_json_serializable(obj.value)

    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: make_json_serializable(getattr(obj, f.name))
                for f in dataclasses.fields(obj)}

    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()

    elif isinstance(obj, Path):
        return str(obj)

    elif isinstance(obj, pd.Series):
        return make_json_serializable(obj.to_dict())

    elif isinstance(obj, pd.DataFrame):
        return make_json_serializable(obj.to_dict('records'))

    elif isinstance(obj, dict):
        return {str(make_json_serializable(k)): make_json_serializable(v)
                for k, v in obj.items()}

    elif isinstance(obj, (list, tuple)):
        return [make_json_serializable(item) for item in obj]

    elif isinstance(obj, (set, frozenset)):
        return [make_json_serializable(item) for item in obj]

    elif hasattr(obj, 'to_dict'):
        return make_json_serializable(obj.to_dict())

    logger.warning(f"Could not serialize object of type {type(obj).__name__}, storing its string form")
    return str(obj)


def safe_json_dump(obj: Any, file_path: Union[str, Path], indent: int = 2) -> bool:
    """
    Safely dump an object to JSON file with proper error handling.

    Args:
        obj: Object to serialize
        file_path: Path to output file
        indent: JSON indentation

    Returns:
        True if successful, False otherwise
    """
    try:
        serializable_obj = make_json_serializable(obj)

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(serializable_obj, f, indent=indent, ensure_ascii=False)

        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Error writing JSON to {file_path}: {e}")
        return False


def safe_json_dumps(obj: Any, indent: int = 2) -> str:
    """
    Safely serialize an object to JSON string with proper error handling.

    Args:
        obj: Object to serialize
        indent: JSON indentation

    Returns:
        JSON string or "{}" if serialization fails
    """
    try:
        serializable_obj = make_json_serializable(obj)

        return json.dumps(serializable_obj, indent=indent, ensure_ascii=False)

    except (TypeError, ValueError) as e:
        logger.error(f"Error serializing object to JSON: {e}")
        return "{}"
