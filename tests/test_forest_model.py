"""Tests for ForestModel aggregation."""

import json

import numpy as np
import pytest

from models.forest_config import ForestConfig
from models.forest_model import ForestModel
from models.forest_trainer import ForestTrainer
from models.node import LeafNode, SplitNode, TreeInfo
from utils.errors import ConfigurationError
from utils.serialization_utils import safe_json_dumps


def leaf_tree(predicted_class, class_counts, feature_indices=(0,)):
    return TreeInfo(
        nodes=(LeafNode(predicted_class=predicted_class, class_counts=class_counts),),
        feature_indices=feature_indices,
        n_samples=sum(class_counts)
    )


@pytest.fixture
def fitted_model(xy):
    X, y = xy
    config = ForestConfig(n_estimators=10, max_depth=5, random_state=1)
    return ForestTrainer(config).fit(X, y, [f"f{i}" for i in range(5)])


class TestForestModel:
    """Tests for predict, predict_proba and feature importance."""

    def test_probability_rows_sum_to_one(self, fitted_model, xy):
        X, _ = xy
        proba = fitted_model.predict_proba(X)

        assert proba.shape == (len(X), 2)
        assert np.allclose(proba.sum(axis=1), 1.0)
        assert np.all(proba >= 0.0)

    def test_probabilities_come_from_leaf_counts(self):
        model = ForestModel([leaf_tree(0, (3, 1))], ["a"], ["no", "yes"], ForestConfig())

        assert np.allclose(model.predict_proba([[0.0]]), [[0.75, 0.25]])
        assert list(model.predict([[0.0]])) == ["no"]

    def test_probabilities_sum_counts_across_trees(self):
        trees = [leaf_tree(0, (3, 1)), leaf_tree(1, (0, 4))]
        model = ForestModel(trees, ["a"], [0, 1], ForestConfig())

        assert np.allclose(model.predict_proba([[0.0]]), [[3 / 8, 5 / 8]])

    def test_vote_tie_goes_to_first_class(self):
        trees = [leaf_tree(1, (0, 2)), leaf_tree(0, (2, 0))]
        model = ForestModel(trees, ["a"], ["cat", "dog"], ForestConfig())

        assert list(model.vote_counts([[1.0]])[0]) == [1, 1]
        assert list(model.predict([[1.0]])) == ["cat"]

    def test_predictions_are_known_classes(self, fitted_model, xy):
        X, y = xy
        predictions = fitted_model.predict(X)

        assert set(np.unique(predictions)) <= {0, 1}
        assert np.mean(predictions == y) > 0.8

    def test_feature_importance_maps_local_to_global(self):
        nodes = (
            SplitNode(feature_index=1, threshold=0.0, left=1, right=2),
            LeafNode(predicted_class=0, class_counts=(2, 0), depth=1),
            LeafNode(predicted_class=1, class_counts=(0, 2), depth=1),
        )
        tree = TreeInfo(nodes=nodes, feature_indices=(2, 4), n_samples=4)
        names = [f"f{i}" for i in range(5)]

        importance = ForestModel([tree], names, [0, 1], ForestConfig()).get_feature_importance()

        assert importance == {"f0": 0.0, "f1": 0.0, "f2": 0.0, "f3": 0.0, "f4": 1.0}

    def test_feature_importance_sums_to_one(self, fitted_model):
        importance = fitted_model.get_feature_importance()

        assert set(importance) == {f"f{i}" for i in range(5)}
        assert sum(importance.values()) == pytest.approx(1.0)

    def test_feature_importance_without_splits(self):
        model = ForestModel([leaf_tree(0, (4, 0))], ["a", "b"], [0, 1], ForestConfig())

        assert model.get_feature_importance() == {"a": 0.0, "b": 0.0}

    def test_empty_model_rejects_prediction(self):
        model = ForestModel([], ["a"], [0, 1], ForestConfig())

        with pytest.raises(ConfigurationError):
            model.predict([[0.0]])
        with pytest.raises(ConfigurationError):
            model.predict_proba([[0.0]])

    def test_wrong_feature_count(self, fitted_model):
        with pytest.raises(ValueError):
            fitted_model.predict(np.zeros((2, 3)))

    def test_to_dict_is_json_safe(self, fitted_model):
        exported = json.loads(safe_json_dumps(fitted_model.to_dict(include_trees=True)))

        assert exported["n_trees"] == 10
        assert exported["config"]["max_features"] == "sqrt"
        assert len(exported["trees"]) == 10
