"""Tests for the application configuration and the typed training configuration."""

import json
import math

import pytest

from models.forest_config import (
    ForestConfig, MaxFeatures, MaxFeaturesMode, ModelType, NeuralNetworkConfig, PreprocessingConfig,
    TrainingConfig, default_forest_config, estimate_training_time
)
from utils.config import (
    DEFAULT_CONFIG, get_config_value, load_configuration, merge_configs, save_configuration,
    set_config_value, validate_configuration
)
from utils.errors import ConfigurationError


class TestApplicationConfig:
    """Tests for utils.config."""

    def test_defaults_when_file_missing(self, tmp_path):
        config = load_configuration(tmp_path / "absent.json")

        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_user_file_is_merged_over_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"random_forest": {"n_estimators": 7}}))

        config = load_configuration(path)

        assert config["random_forest"]["n_estimators"] == 7
        assert config["random_forest"]["max_depth"] == 10
        assert config["session"]["stall_threshold_seconds"] == 15.0

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        assert load_configuration(path) == DEFAULT_CONFIG

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = load_configuration(path)
        config["neural_network"]["epochs"] = 12

        assert save_configuration(config, path)
        assert load_configuration(path)["neural_network"]["epochs"] == 12

    def test_merge_is_recursive_and_does_not_mutate(self):
        defaults = {"a": {"x": 1, "y": 2}, "b": 3}

        merged = merge_configs(defaults, {"a": {"y": 5}, "c": 4})

        assert merged == {"a": {"x": 1, "y": 5}, "b": 3, "c": 4}
        assert defaults == {"a": {"x": 1, "y": 2}, "b": 3}

    def test_validate_repairs_invalid_values(self):
        config = merge_configs(DEFAULT_CONFIG, {
            "random_forest": {"n_estimators": 0, "max_features": "cube"},
            "neural_network": {"learning_rate": 2.0},
            "preprocessing": {"train_split_ratio": 1.5, "default_missing_strategy": "guess"},
            "session": {"stall_threshold_seconds": -1}
        })

        assert not validate_configuration(config)
        assert config["random_forest"]["n_estimators"] == 100
        assert config["random_forest"]["max_features"] == "sqrt"
        assert config["neural_network"]["learning_rate"] == 0.01
        assert config["preprocessing"]["train_split_ratio"] == 0.8
        assert config["preprocessing"]["default_missing_strategy"] == "drop"
        assert config["session"]["stall_threshold_seconds"] == 15.0

    def test_validate_accepts_defaults(self):
        assert validate_configuration(merge_configs(DEFAULT_CONFIG, {}))

    def test_dot_path_access(self):
        config = {"session": {"stall_threshold_seconds": 15.0}}

        assert get_config_value(config, "session.stall_threshold_seconds") == 15.0
        assert get_config_value(config, "session.missing", "fallback") == "fallback"
        assert set_config_value(config, "application.name.short", "CF")
        assert config["application"]["name"]["short"] == "CF"


class TestMaxFeatures:
    """Tests for MaxFeatures parsing and resolution."""

    @pytest.mark.parametrize("value, mode", [
        ("sqrt", MaxFeaturesMode.SQRT),
        ("LOG2", MaxFeaturesMode.LOG2),
        (None, MaxFeaturesMode.ALL),
        ("all", MaxFeaturesMode.ALL),
        (3, MaxFeaturesMode.FIXED),
        ("4", MaxFeaturesMode.FIXED),
    ])
    def test_parse(self, value, mode):
        assert MaxFeatures.parse(value).mode == mode

    @pytest.mark.parametrize("value", ["cube", 0, -2, 1.5, True])
    def test_parse_rejects(self, value):
        with pytest.raises(ConfigurationError):
            MaxFeatures.parse(value)

    def test_resolve(self):
        assert MaxFeatures.sqrt().resolve(10) == 3
        assert MaxFeatures.log2().resolve(10) == 3
        assert MaxFeatures.log2().resolve(1) == 1
        assert MaxFeatures.fixed(50).resolve(10) == 10
        assert MaxFeatures.all().resolve(10) == 10
        assert MaxFeatures.sqrt().resolve(0) == 0


class TestTrainingConfig:
    """Tests for the typed configuration objects."""

    @pytest.mark.parametrize("field_name, value", [
        ("n_estimators", 0),
        ("max_depth", 0),
        ("min_samples_split", 1),
        ("min_samples_leaf", 0),
        ("bootstrap", "yes"),
        ("random_state", -1),
    ])
    def test_forest_config_rejects(self, field_name, value):
        with pytest.raises(ConfigurationError) as excinfo:
            ForestConfig(**{field_name: value})
        assert excinfo.value.field == field_name

    def test_forest_config_round_trip(self):
        config = ForestConfig.from_dict({"n_estimators": 5, "max_features": 2, "random_state": 9})

        assert config.max_features == MaxFeatures.fixed(2)
        assert ForestConfig.from_dict(config.to_dict()) == config

    def test_neural_network_limits(self):
        with pytest.raises(ConfigurationError):
            NeuralNetworkConfig(learning_rate=0)
        with pytest.raises(ConfigurationError):
            NeuralNetworkConfig(epochs=0)
        assert NeuralNetworkConfig(learning_rate=1).learning_rate == 1

    def test_preprocessing_rejects_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            PreprocessingConfig(missing_value_strategy={"a": "median"})
        with pytest.raises(ConfigurationError):
            PreprocessingConfig(train_split_ratio=1.0)

    def test_from_dict_fills_from_application_defaults(self):
        config = TrainingConfig.from_dict(
            {"target_column": "y", "selected_features": ["a"], "random_forest": {"max_depth": 4}},
            defaults=DEFAULT_CONFIG
        )

        assert config.model_type == ModelType.RANDOM_FOREST
        assert config.forest.max_depth == 4
        assert config.forest.n_estimators == DEFAULT_CONFIG["random_forest"]["n_estimators"]
        assert config.preprocessing.normalization is True

    @pytest.mark.parametrize("params", [
        {"selected_features": ["a"]},
        {"target_column": "y", "selected_features": []},
        {"target_column": "y", "selected_features": ["y"]},
        {"target_column": "y", "selected_features": ["a", "a"]},
        {"target_column": "y", "selected_features": ["a"], "model_type": "svm"},
    ])
    def test_from_dict_rejects(self, params):
        with pytest.raises(ConfigurationError):
            TrainingConfig.from_dict(params)

    def test_to_dict_is_accepted_by_from_dict(self):
        config = TrainingConfig.from_dict({"target_column": "y", "selected_features": ["a", "b"],
                                           "model_type": "neural_network"})

        assert TrainingConfig.from_dict(config.to_dict()) == config


class TestHeuristics:
    """Tests for the sizing helpers."""

    def test_default_forest_config_scales_with_data(self):
        small = default_forest_config(100, 2)
        large = default_forest_config(10000, 20)

        assert small.max_depth < large.max_depth
        assert small.max_features == MaxFeatures.all()
        assert large.max_features == MaxFeatures.sqrt()
        assert large.min_samples_split == 5

    def test_estimate_training_time(self):
        quick = estimate_training_time(ModelType.RANDOM_FOREST, 100, 3, 10)
        slow = estimate_training_time(ModelType.RANDOM_FOREST, 1_000_000, 50, 500)

        assert quick["complexity"] == "low"
        assert slow["complexity"] == "high"
        assert slow["estimated_seconds"] > quick["estimated_seconds"]
        assert not math.isnan(quick["estimated_seconds"])
