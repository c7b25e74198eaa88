"""Tests for serialization and logging helpers."""

import json
import logging
import logging.handlers
from enum import Enum

import numpy as np
import pandas as pd
import pytest

from utils.errors import DataQualityWarning
from utils.logging_utils import setup_logging
from utils.serialization_utils import make_json_serializable, safe_json_dump, safe_json_dumps


class Color(Enum):
    RED = "red"


class TestSerialization:
    """Tests for make_json_serializable and the dump helpers."""

    def test_numpy_values(self):
        data = {"i": np.int64(3), "f": np.float32(0.5), "b": np.bool_(True), "a": np.arange(3)}

        assert make_json_serializable(data) == {"i": 3, "f": 0.5, "b": True, "a": [0, 1, 2]}

    def test_non_finite_floats_become_null(self):
        assert make_json_serializable([float("nan"), np.inf, 1.0]) == [None, None, 1.0]

    def test_keys_enums_and_objects(self):
        data = {1: Color.RED, "w": DataQualityWarning("bad", "x", 2), "s": pd.Series({"a": 1})}

        assert make_json_serializable(data) == {
            "1": "red",
            "w": {"message": "bad", "column": "x", "count": 2},
            "s": {"a": 1},
        }

    def test_dump_to_file(self, tmp_path):
        path = tmp_path / "out.json"

        assert safe_json_dump({"m": np.array([[1, 2], [3, 4]])}, path)
        assert json.loads(path.read_text()) == {"m": [[1, 2], [3, 4]]}

    def test_dump_to_missing_directory_fails_cleanly(self, tmp_path):
        assert not safe_json_dump({}, tmp_path / "missing" / "out.json")

    def test_dumps(self):
        assert json.loads(safe_json_dumps({"x": np.float64(2.5)})) == {"x": 2.5}


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)

    def test_file_handler_writes_messages(self, tmp_path, restore_root_logger):
        setup_logging(log_dir=str(tmp_path), log_level=logging.DEBUG, enable_console=False)
        logging.getLogger("classroom_forest.test").debug("tree grown")
        for handler in restore_root_logger.handlers:
            handler.flush()

        files = list(tmp_path.glob("classroom_forest_*.log"))
        assert len(files) == 1
        assert "tree grown" in files[0].read_text(encoding="utf-8")

    def test_console_only(self, restore_root_logger):
        root = setup_logging(log_level=logging.WARNING, enable_file=False)

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0], logging.handlers.RotatingFileHandler)
