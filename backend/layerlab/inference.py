import logging
import math
from typing import List, Optional

import numpy as np

from layerlab.errors import InferenceError
from layerlab.image_utils import decode_image, image_to_input
from layerlab.models.prediction import ImagePrediction
from layerlab.registry import ModelRegistry

logger = logging.getLogger("layerlab-api")

UNKNOWN_LABEL = "unknown"

class InferenceService:
    """Forward passes against TRAINED models held by the registry"""

    def __init__(self, registry: ModelRegistry, catalog=None):
        self.registry = registry
        self.catalog = catalog

    def _input_shape(self, model_id: str):
        specs = self.registry.specs(model_id)
        shape = specs[0].input_shape if specs else None
        if not shape:
            raise InferenceError(f"Model {model_id} declares no inputShape on its first layer")
        return tuple(shape)

    def predict(self, model_id: str, rows: List[List[float]]) -> List[List[float]]:
        """
        Run a batch of flat feature rows through a trained model

        Args:
            model_id: Registry id of a TRAINED model
            rows: One row per sample; each row holds the flattened input values

        Returns:
            One output row per input row
        """
        graph = self.registry.trained_graph(model_id)
        input_shape = self._input_shape(model_id)
        width = math.prod(input_shape)

        if not rows:
            raise InferenceError("At least one input row is required")
        lengths = {len(row) for row in rows}
        if len(lengths) != 1:
            raise InferenceError(f"Input rows must all have the same length, got lengths {sorted(lengths)}")
        if lengths.pop() != width:
            raise InferenceError(
                f"Each input row must have {width} values to match input shape {list(input_shape)}",
                details=[{"field": "data", "message": f"expected row length {width}", "type": "shape_mismatch"}]
            )

        x = np.asarray(rows, dtype=np.float32).reshape((len(rows), *input_shape))
        if not np.all(np.isfinite(x)):
            raise InferenceError("Input values must be finite numbers")

        outputs = graph.predict(x, verbose=0)
        logger.info(f"Model {model_id} predicted {len(rows)} rows")
        return np.asarray(outputs, dtype=np.float64).reshape(len(rows), -1).tolist()

    def predict_image(self, model_id: str, payload: bytes) -> ImagePrediction:
        """
        Classify a single encoded image

        The image is cropped and resized to the first layer's inputShape and
        scaled to [0, 1]. The class label is the name of the training set at
        the predicted index of the model's last training run.
        """
        graph = self.registry.trained_graph(model_id)
        record = self.registry.get(model_id)
        input_shape = self._input_shape(model_id)

        try:
            image = decode_image(payload)
            x = image_to_input(image, input_shape)
        except ValueError as e:
            raise InferenceError(str(e))

        probabilities = np.asarray(graph.predict(x[np.newaxis, ...], verbose=0), dtype=np.float64).reshape(-1)
        class_index = int(np.argmax(probabilities))

        prediction = ImagePrediction(
            class_index=class_index,
            training_set=self._label(record.training_set_ids, class_index),
            confidence=float(probabilities[class_index]),
            probabilities=probabilities.tolist()
        )
        logger.info(f"Model {model_id} classified image as {class_index} ({prediction.training_set})")
        return prediction

    def _label(self, training_set_ids: List[str], class_index: int) -> str:
        if class_index >= len(training_set_ids):
            return UNKNOWN_LABEL
        name: Optional[str] = None
        if self.catalog is not None:
            name = self.catalog.name_of(training_set_ids[class_index])
        return name or UNKNOWN_LABEL
