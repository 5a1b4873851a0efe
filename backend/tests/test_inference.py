"""Tests for vector and image inference."""

import io

import pytest
from PIL import Image

from layerlab.errors import InferenceError, ModelNotTrainedError, NotFoundError
from layerlab.inference import InferenceService
from layerlab.models.layers import parse_model_definition
from layerlab.models.training import TrainingRequest

from payloads import IMAGE_MODEL, model_payload


class NamedCatalog:
    def __init__(self, names):
        self.names = names

    def name_of(self, training_set_id):
        return self.names.get(training_set_id)


def png_bytes(size=(20, 14), color=(120, 30, 200)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def trained(orchestrator, model_id, training_set_ids=("x",)):
    config = TrainingRequest(training_set_ids=list(training_set_ids), epochs=1, batch_size=8)
    assert orchestrator.train(model_id, config).status == "completed"


class TestVectorPredict:

    def test_untrained_model_is_rejected(self, registry, dense_model):
        service = InferenceService(registry)
        with pytest.raises(ModelNotTrainedError, match="not trained"):
            service.predict(dense_model.id, [[0.0] * 10])

    def test_unknown_model(self, registry):
        with pytest.raises(NotFoundError):
            InferenceService(registry).predict("missing", [[0.0]])

    def test_one_output_row_per_input_row(self, registry, orchestrator, dense_model):
        trained(orchestrator, dense_model.id)
        predictions = InferenceService(registry).predict(dense_model.id, [[0.1] * 10, [0.5] * 10])

        assert len(predictions) == 2
        assert all(len(row) == 3 for row in predictions)
        assert sum(predictions[0]) == pytest.approx(1.0, abs=1e-4)

    def test_width_mismatch(self, registry, orchestrator, dense_model):
        trained(orchestrator, dense_model.id)
        with pytest.raises(InferenceError, match="10 values"):
            InferenceService(registry).predict(dense_model.id, [[0.1] * 9])

    def test_ragged_rows(self, registry, orchestrator, dense_model):
        trained(orchestrator, dense_model.id)
        with pytest.raises(InferenceError, match="same length"):
            InferenceService(registry).predict(dense_model.id, [[0.1] * 10, [0.1] * 3])

    def test_rows_are_reshaped_to_input_shape(self, registry, orchestrator):
        record = registry.create(parse_model_definition(model_payload(IMAGE_MODEL)))
        trained(orchestrator, record.id)
        predictions = InferenceService(registry).predict(record.id, [[0.5] * (8 * 8 * 3)])
        assert len(predictions[0]) == 2


class TestImagePredict:

    def test_probabilities_sum_to_one(self, registry, orchestrator):
        record = registry.create(parse_model_definition(model_payload(IMAGE_MODEL)))
        trained(orchestrator, record.id, ["cats", "dogs"])
        service = InferenceService(registry, NamedCatalog({"cats": "Cats", "dogs": "Dogs"}))

        prediction = service.predict_image(record.id, png_bytes())

        assert 0 <= prediction.class_index < 2
        assert sum(prediction.probabilities) == pytest.approx(1.0, abs=1e-4)
        assert prediction.confidence == pytest.approx(max(prediction.probabilities))
        assert prediction.training_set == ["Cats", "Dogs"][prediction.class_index]

    def test_grayscale_vector_model(self, registry, orchestrator):
        payload = model_payload(layers=[
            {"type": "dense", "units": 4, "activation": "relu", "inputShape": [16]},
            {"type": "dense", "units": 2, "activation": "softmax"},
        ])
        record = registry.create(parse_model_definition(payload))
        trained(orchestrator, record.id)

        prediction = InferenceService(registry).predict_image(record.id, png_bytes())
        assert len(prediction.probabilities) == 2

    def test_unlinked_class_is_unknown(self, registry, orchestrator):
        record = registry.create(parse_model_definition(model_payload(IMAGE_MODEL)))
        trained(orchestrator, record.id, ["only-one"])
        service = InferenceService(registry, NamedCatalog({}))

        prediction = service.predict_image(record.id, png_bytes())
        assert prediction.training_set == "unknown"

    def test_malformed_image(self, registry, orchestrator):
        record = registry.create(parse_model_definition(model_payload(IMAGE_MODEL)))
        trained(orchestrator, record.id)
        with pytest.raises(InferenceError, match="decode"):
            InferenceService(registry).predict_image(record.id, b"\x00\x01garbage")

    def test_non_square_vector_model_cannot_take_images(self, registry, orchestrator, dense_model):
        trained(orchestrator, dense_model.id)
        with pytest.raises(InferenceError, match="square"):
            InferenceService(registry).predict_image(dense_model.id, png_bytes())

    def test_untrained_image_model(self, registry):
        record = registry.create(parse_model_definition(model_payload(IMAGE_MODEL)))
        with pytest.raises(ModelNotTrainedError):
            InferenceService(registry).predict_image(record.id, png_bytes())
