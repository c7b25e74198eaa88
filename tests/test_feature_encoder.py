"""Tests for FeatureEncoder."""

import numpy as np
import pandas as pd
import pytest

from data.dataset import ColumnMeta, infer_column_meta
from data.feature_encoder import FeatureEncoder, stratified_split
from models.forest_config import PreprocessingConfig
from utils.errors import ConfigurationError


def encoder(**overrides):
    params = dict(normalization=False, split_seed=0)
    params.update(overrides)
    return FeatureEncoder(PreprocessingConfig(**params))


@pytest.fixture
def mixed_rows():
    return [
        {"age": "30", "color": "red", "member": "Yes", "target": "a"},
        {"age": "40", "color": "blue", "member": "no", "target": "b"},
        {"age": "", "color": "red", "member": "TRUE", "target": "a"},
        {"age": "50", "color": "green", "member": "1", "target": "b"},
        {"age": "20", "color": None, "member": "false", "target": ""},
        {"age": "60", "color": "blue", "member": "no", "target": "b"},
    ]


@pytest.fixture
def mixed_meta():
    return [
        ColumnMeta("age", "numeric", 5, 1),
        ColumnMeta("color", "categorical", 3, 1),
        ColumnMeta("member", "boolean", 2, 0),
        ColumnMeta("target", "categorical", 2, 1),
    ]


class TestPrepare:
    """Tests for cleaning, imputing and encoding."""

    def test_rows_with_missing_target_are_dropped(self, mixed_rows, mixed_meta):
        prepared = encoder().prepare(mixed_rows, mixed_meta, "target", ["member"])

        assert prepared.matrix.num_samples == 5
        assert prepared.rows_dropped == 1
        assert any(w.column == "target" and w.count == 1 for w in prepared.warnings)

    def test_boolean_encoding(self, mixed_rows, mixed_meta):
        prepared = encoder().prepare(mixed_rows, mixed_meta, "target", ["member"])

        assert list(prepared.matrix.values[:, 0]) == [1.0, 0.0, 1.0, 1.0, 0.0]

    def test_categorical_first_seen_order(self, mixed_rows, mixed_meta):
        prepared = encoder(missing_value_strategy={"color": "mode"}).prepare(
            mixed_rows, mixed_meta, "target", ["color"]
        )

        info = prepared.encoding_info[0]
        assert info.categorical_mapping == {"red": 0, "blue": 1, "green": 2}
        assert list(prepared.matrix.values[:, 0]) == [0.0, 1.0, 0.0, 2.0, 1.0]
        assert FeatureEncoder.encoding_map(prepared.encoding_info) == {"color": ["red", "blue", "green"]}

    def test_target_classes_in_first_seen_order(self, mixed_rows, mixed_meta):
        prepared = encoder().prepare(mixed_rows, mixed_meta, "target", ["member"])

        assert prepared.class_labels == ["a", "b"]
        assert list(prepared.labels) == [0, 1, 0, 1, 1]

    def test_numeric_target_classes_are_sorted(self):
        df = pd.DataFrame({"x": [1, 2, 3, 4, 5, 6], "y": [3, 1, 2, 3, 1, 2]})

        prepared = encoder().prepare(df, infer_column_meta(df), "y", ["x"])

        assert prepared.class_labels == [1, 2, 3]
        assert list(prepared.labels) == [2, 0, 1, 2, 0, 1]

    def test_mean_imputation(self, mixed_rows, mixed_meta):
        prepared = encoder(missing_value_strategy={"age": "mean"}).prepare(
            mixed_rows, mixed_meta, "target", ["age"]
        )

        # the row with a missing target is gone before the mean is taken
        assert prepared.matrix.values[2, 0] == pytest.approx((30 + 40 + 50 + 60) / 4)
        assert not prepared.incomplete_rows.any()

    def test_mode_tie_takes_first_value(self):
        df = pd.DataFrame({"c": ["a", "b", None, "b", "a"], "t": [0, 1, 0, 1, 0]})
        meta = [ColumnMeta("c", "categorical"), ColumnMeta("t", "numeric")]

        prepared = encoder(default_missing_strategy="mode").prepare(df, meta, "t", ["c"])

        assert prepared.matrix.values[2, 0] == 0.0
        assert prepared.encoding_info[0].categorical_mapping == {"a": 0, "b": 1}

    def test_mean_on_categorical_falls_back_to_mode(self):
        df = pd.DataFrame({"c": ["x", None, "y", "x"], "t": [0, 1, 0, 1]})
        meta = [ColumnMeta("c", "categorical"), ColumnMeta("t", "numeric")]

        prepared = encoder(missing_value_strategy={"c": "mean"}).prepare(df, meta, "t", ["c"])

        assert not prepared.incomplete_rows.any()
        assert prepared.matrix.values[1, 0] == 0.0
        assert any("using mode instead" in str(w) for w in prepared.warnings)

    def test_drop_strategy_flags_rows(self, mixed_rows, mixed_meta):
        prepared = encoder().prepare(mixed_rows, mixed_meta, "target", ["age", "member"])

        assert list(prepared.incomplete_rows) == [False, False, True, False, False]

    def test_unparseable_numbers_become_zero(self):
        df = pd.DataFrame({"x": ["1.5", "oops", "3"], "t": ["a", "b", "a"]})
        meta = [ColumnMeta("x", "numeric"), ColumnMeta("t", "categorical")]

        prepared = encoder(train_split_ratio=0.5).prepare(df, meta, "t", ["x"])

        assert list(prepared.matrix.values[:, 0]) == [1.5, 0.0, 3.0]
        assert any(w.column == "x" and w.count == 1 for w in prepared.warnings)

    def test_float_column_with_gaps(self):
        df = pd.DataFrame({"x": [1.0, np.nan, 3.0, 4.0], "t": [0, 1, 0, 1]})
        meta = [ColumnMeta("x", "numeric"), ColumnMeta("t", "numeric")]

        prepared = encoder(train_split_ratio=0.5).prepare(df, meta, "t", ["x"])

        assert list(prepared.matrix.values[:, 0]) == [1.0, 0.0, 3.0, 4.0]
        assert list(prepared.incomplete_rows) == [False, True, False, False]
        assert np.isnan(df.loc[1, "x"])

    def test_normalization_stats_are_recorded_and_reused(self):
        df = pd.DataFrame({"x": [2.0, 4.0, 6.0, 8.0], "t": [0, 1, 0, 1]})

        prepared = encoder(normalization=True).prepare(df, infer_column_meta(df), "t", ["x"])
        stats = prepared.encoding_info[0].normalize_stats

        assert stats.mean == pytest.approx(5.0)
        assert stats.std == pytest.approx(np.std([2.0, 4.0, 6.0, 8.0]))
        assert prepared.matrix.values[:, 0].mean() == pytest.approx(0.0)

        encoded = FeatureEncoder.encode_inference([{"x": 5.0}, {"x": 9.0}], prepared.encoding_info)
        assert encoded[0, 0] == pytest.approx(0.0)
        assert encoded[1, 0] == pytest.approx(4.0 / stats.std)

    def test_encode_inference_unknown_category(self, mixed_rows, mixed_meta):
        prepared = encoder(missing_value_strategy={"color": "mode"}).prepare(
            mixed_rows, mixed_meta, "target", ["color", "member"]
        )

        encoded = FeatureEncoder.encode_inference({"color": "purple", "member": "yes"}, prepared.encoding_info)

        assert encoded.shape == (1, 2)
        assert list(encoded[0]) == [0.0, 1.0]

    def test_matrix_buffer_layout(self, two_class_frame, two_class_meta):
        prepared = encoder().prepare(two_class_frame, two_class_meta, "label", [f"f{i}" for i in range(5)])

        matrix = prepared.matrix
        assert matrix.buffer.size == matrix.num_samples * matrix.num_features
        assert matrix.num_samples == len(matrix.labels) == 200

    def test_input_frame_is_not_modified(self, two_class_frame, two_class_meta):
        before = two_class_frame.copy()
        encoder(normalization=True).prepare(two_class_frame, two_class_meta, "label", ["f0"])

        pd.testing.assert_frame_equal(two_class_frame, before)


class TestValidation:
    """Tests for configuration errors raised by prepare."""

    def test_missing_column(self, two_class_frame, two_class_meta):
        with pytest.raises(ConfigurationError) as excinfo:
            encoder().prepare(two_class_frame, two_class_meta, "label", ["nope"])
        assert excinfo.value.field == "nope"

    def test_single_class_target(self):
        df = pd.DataFrame({"x": [1, 2, 3], "t": ["a", "a", "a"]})

        with pytest.raises(ConfigurationError):
            encoder().prepare(df, infer_column_meta(df), "t", ["x"])


class TestStratifiedSplit:
    """Tests for stratified_split."""

    def test_classes_split_proportionally(self, two_class_frame, two_class_meta):
        prepared = encoder(train_split_ratio=0.8).prepare(
            two_class_frame, two_class_meta, "label", ["f0"]
        )
        labels = prepared.labels

        assert len(prepared.train_indices) == 160
        assert len(prepared.val_indices) == 40
        assert np.bincount(labels[prepared.val_indices]).tolist() == [20, 20]
        assert not set(prepared.train_indices) & set(prepared.val_indices)

    def test_small_classes_appear_on_both_sides(self):
        labels = np.array([0, 0, 1, 1, 1, 1, 1, 1, 1, 1])

        train, val = stratified_split(labels, 0.9, random_state=0)

        assert set(labels[train]) == {0, 1}
        assert set(labels[val]) == {0, 1}

    def test_seeded_split_is_reproducible(self):
        labels = np.repeat([0, 1, 2], 10)

        first = stratified_split(labels, 0.7, random_state=4)
        second = stratified_split(labels, 0.7, random_state=4)

        assert np.array_equal(first[0], second[0])
        assert np.array_equal(first[1], second[1])


class TestTargetType:
    """Tests for FeatureEncoder.target_type."""

    def test_binary_multiclass_regression(self):
        metas = [
            ColumnMeta("b", "categorical", 2),
            ColumnMeta("m", "categorical", 4),
            ColumnMeta("r", "numeric", 50),
        ]

        assert FeatureEncoder.target_type(metas, "b") == "binary"
        assert FeatureEncoder.target_type(metas, "m") == "multiclass"
        assert FeatureEncoder.target_type(metas, "r") == "regression"
