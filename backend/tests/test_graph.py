"""Tests for building Keras graphs from layer specs."""

import pytest
from tensorflow import keras

from layerlab.errors import GraphBuildError
from layerlab.graph import build_graph, describe_graph, graph_input_shape, to_keras_layer
from layerlab.models.layers import validate_layers

from payloads import DENSE_MODEL, IMAGE_MODEL


class TestBuildGraph:
    """Valid layer lists build with the declared input rank."""

    def test_dense_graph_shapes(self):
        graph = build_graph(validate_layers(DENSE_MODEL["layers"]))
        assert graph.built
        assert tuple(graph.input_shape) == (None, 10)
        assert tuple(graph.output_shape) == (None, 3)
        assert len(graph.layers) == 2

    def test_image_graph_shapes(self):
        graph = build_graph(validate_layers(IMAGE_MODEL["layers"]))
        assert tuple(graph.input_shape) == (None, 8, 8, 3)
        assert tuple(graph.output_shape) == (None, 2)

    def test_input_rank_matches_declared_shape(self):
        layers = validate_layers([
            {"type": "flatten", "inputShape": [4, 5]},
            {"type": "dense", "units": 2, "activation": "sigmoid"},
        ])
        graph = build_graph(layers)
        assert len(graph.input_shape) - 1 == 2
        assert tuple(graph.output_shape) == (None, 2)

    def test_graph_without_input_shape_is_unbuilt(self):
        layers = validate_layers([{"type": "dense", "units": 3, "activation": "softmax"}])
        assert graph_input_shape(layers) is None
        graph = build_graph(layers)
        assert not graph.built

    def test_layer_dispatch(self):
        layers = validate_layers([
            {"type": "dense", "units": 3, "activation": "tanh", "name": "hidden"},
            {"type": "dropout", "rate": 0.25},
            {"type": "flatten"},
        ])
        dense, dropout, flatten = (to_keras_layer(layer) for layer in layers)
        assert isinstance(dense, keras.layers.Dense)
        assert dense.name == "hidden"
        assert isinstance(dropout, keras.layers.Dropout)
        assert dropout.rate == pytest.approx(0.25)
        assert isinstance(flatten, keras.layers.Flatten)

    def test_incompatible_layer_raises_graph_build_error(self):
        layers = validate_layers([
            {"type": "dense", "units": 4, "activation": "relu", "inputShape": [10]},
            {"type": "conv2d", "filters": 2, "kernelSize": [3, 3], "activation": "relu"},
        ])
        with pytest.raises(GraphBuildError) as exc_info:
            build_graph(layers)
        assert exc_info.value.details[0]["field"] == "layers.1"


class TestDescribeGraph:

    def test_describe_built_graph(self):
        info = describe_graph(build_graph(validate_layers(DENSE_MODEL["layers"])))
        assert info["built"] is True
        assert info["input_shape"] == [None, 10]
        assert info["output_shape"] == [None, 3]
        assert info["parameters"] == (10 * 64 + 64) + (64 * 3 + 3)
        assert [layer["type"] for layer in info["layers"]] == ["Dense", "Dense"]

    def test_describe_unbuilt_graph(self):
        layers = validate_layers([{"type": "dense", "units": 3, "activation": "softmax"}])
        info = describe_graph(build_graph(layers))
        assert info["built"] is False
        assert info["parameters"] == 0
        assert info["layers"][0]["output_shape"] is None
