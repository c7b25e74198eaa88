"""
Shared pytest fixtures for the Classroom Forest tests.
"""

import os
from collections import deque

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import numpy as np
import pandas as pd
import pytest
from PyQt5.QtCore import QCoreApplication

from data.dataset import ColumnMeta
from utils.config import load_configuration


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    """One QCoreApplication for the whole test run."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


class ManualScheduler:
    """Collects scheduled callbacks so tests can run event-loop turns one at a time."""

    def __init__(self):
        self.queue = deque()

    def __call__(self, callback):
        self.queue.append(callback)

    def __len__(self):
        return len(self.queue)

    def step(self) -> bool:
        if not self.queue:
            return False
        self.queue.popleft()()
        return True

    def run_all(self, limit: int = 10000) -> int:
        steps = 0
        while self.queue and steps < limit:
            self.step()
            steps += 1
        return steps


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app_config(tmp_path) -> dict:
    """Default application configuration with the snapshot file under tmp_path."""
    config = load_configuration(tmp_path / "config.json")
    config["application"]["snapshot_file"] = str(tmp_path / "snapshot.json")
    config["preprocessing"]["split_seed"] = 11
    return config


@pytest.fixture
def two_class_frame() -> pd.DataFrame:
    """200 rows, two balanced classes, five numeric features (two informative)."""
    rng = np.random.RandomState(7)
    labels = np.array([0] * 100 + [1] * 100)
    rng.shuffle(labels)

    X = rng.normal(size=(200, 5))
    X[:, 0] += labels * 2.5
    X[:, 1] -= labels * 2.0

    df = pd.DataFrame({f"f{i}": X[:, i] for i in range(5)})
    df["label"] = labels
    return df


@pytest.fixture
def two_class_meta() -> list:
    metas = [ColumnMeta(f"f{i}", "numeric", 200, 0) for i in range(5)]
    metas.append(ColumnMeta("label", "numeric", 2, 0))
    return metas


@pytest.fixture
def forest_params() -> dict:
    """Training parameters for the 200-row end-to-end run."""
    return {
        "target_column": "label",
        "selected_features": [f"f{i}" for i in range(5)],
        "model_type": "random_forest",
        "random_forest": {
            "n_estimators": 20,
            "max_depth": 5,
            "min_samples_split": 2,
            "min_samples_leaf": 1,
            "max_features": "sqrt",
            "bootstrap": True,
            "random_state": 3,
        },
    }


@pytest.fixture
def xy(two_class_frame):
    """Encoded matrix and labels of the two-class frame."""
    X = two_class_frame[[f"f{i}" for i in range(5)]].to_numpy(dtype=float)
    y = two_class_frame["label"].to_numpy()
    return X, y
