"""
Graph builder: turns a validated layer list into a Keras Sequential graph.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from tensorflow import keras

from layerlab.errors import GraphBuildError
from layerlab.models.layers import (
    BaseLayer, Conv2DLayer, DenseLayer, DropoutLayer, FlattenLayer, MaxPooling2DLayer
)

logger = logging.getLogger("layerlab-api")

def graph_input_shape(layers: List[BaseLayer]) -> Optional[Tuple[int, ...]]:
    """Input shape declared on the first layer, or None when the graph has no resolved input"""
    if not layers or layers[0].input_shape is None:
        return None
    return tuple(layers[0].input_shape)

def to_keras_layer(spec: BaseLayer) -> keras.layers.Layer:
    """Map one layer spec onto its Keras primitive"""
    if isinstance(spec, DenseLayer):
        return keras.layers.Dense(spec.units, activation=spec.activation, name=spec.name)
    if isinstance(spec, Conv2DLayer):
        return keras.layers.Conv2D(
            spec.filters,
            kernel_size=tuple(spec.kernel_size),
            activation=spec.activation,
            name=spec.name
        )
    if isinstance(spec, MaxPooling2DLayer):
        return keras.layers.MaxPooling2D(pool_size=tuple(spec.pool_size), name=spec.name)
    if isinstance(spec, FlattenLayer):
        return keras.layers.Flatten(name=spec.name)
    if isinstance(spec, DropoutLayer):
        return keras.layers.Dropout(spec.rate, name=spec.name)
    raise TypeError(f"Unhandled layer spec: {type(spec).__name__}")

def build_graph(layers: List[BaseLayer]) -> keras.Sequential:
    """
    Build a Sequential graph from validated layer specs

    When the first layer declares an inputShape the graph starts with a
    matching keras.Input, so shapes are inferred as each layer is added.

    Raises:
        GraphBuildError: when Keras rejects a layer (incompatible shapes, duplicate names)
    """
    graph = keras.Sequential()

    input_shape = graph_input_shape(layers)
    if input_shape is not None:
        graph.add(keras.Input(shape=input_shape))

    for index, spec in enumerate(layers):
        try:
            graph.add(to_keras_layer(spec))
        except (ValueError, TypeError) as e:
            logger.warning(f"Rejected layer {index} ({spec.type}): {e}")
            raise GraphBuildError(
                f"Layer {index} ({spec.type}) cannot be added to the graph: {e}",
                [{"field": f"layers.{index}", "message": str(e), "type": "graph_build_error"}]
            )

    logger.debug(f"Built graph with {len(layers)} layers, input shape {input_shape}")
    return graph

def describe_graph(graph: keras.Sequential) -> Dict[str, Any]:
    """
    Inspect a graph and return its metadata
    """
    built = graph.built
    info = {
        "built": built,
        "input_shape": list(graph.input_shape) if built else None,
        "output_shape": list(graph.output_shape) if built else None,
        "parameters": graph.count_params() if built else 0,
        "layers": []
    }

    for layer in graph.layers:
        info["layers"].append({
            "name": layer.name,
            "type": layer.__class__.__name__,
            "output_shape": list(layer.output.shape) if built else None,
            "parameters": layer.count_params() if built else 0,
        })

    return info
