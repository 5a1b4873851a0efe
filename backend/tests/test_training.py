"""Tests for the training orchestrator."""

import math

import numpy as np
import pytest

from layerlab import training
from layerlab.datasets import TrainingSetImageDataSource
from layerlab.errors import InvalidTransitionError, NotFoundError, TrainingFailure
from layerlab.models.layers import parse_model_definition
from layerlab.models.records import ModelStatus
from layerlab.models.training import TrainingRequest
from layerlab.training import EpochResult, TrainingOrchestrator, iterate_epochs

from payloads import model_payload


def request(epochs=2, batch_size=8, **extra):
    return TrainingRequest(training_set_ids=["x"], epochs=epochs, batch_size=batch_size, **extra)


def scripted_epochs(val_losses):
    """Replacement for iterate_epochs: stamps epoch k into every weight and reports the given val_loss"""
    def fake(graph, dataset, epochs, batch_size, cancel_token=None):
        for index, val_loss in enumerate(val_losses[:epochs]):
            epoch = index + 1
            graph.set_weights([np.full_like(weights, float(epoch)) for weights in graph.get_weights()])
            yield EpochResult(epoch=epoch, loss=val_loss, accuracy=epoch / 10, val_loss=val_loss, val_accuracy=0.5)
    return fake


class StubGraph:
    """Answers fit() with a fixed history"""

    def __init__(self, history):
        self._history = history

    def fit(self, *args, **kwargs):
        return type("History", (), {"history": self._history})()


class TestTrainingRun:

    def test_placeholder_training_completes(self, orchestrator, registry, checkpoints, dense_model):
        response = orchestrator.train(dense_model.id, request(epochs=2))

        assert response.status == "completed"
        assert response.epochs_run == 2
        assert not response.stopped_early

        record = registry.get(dense_model.id)
        assert record.status == ModelStatus.TRAINED
        assert len(record.metrics) == 2
        # setup lines + one line per epoch + completion line
        assert len(record.training_logs) == 2 + 2 + 1
        assert record.training_logs[0].startswith("Training started")
        assert record.training_logs[2].startswith("Epoch 1/2")
        assert record.training_logs[-1].startswith("Training completed")
        assert response.metrics.loss == pytest.approx(record.metrics[-1].loss)
        assert checkpoints.exists(dense_model.id)
        assert not orchestrator.is_active(dense_model.id)

    def test_early_stopping_restores_best_weights(self, orchestrator, registry, dense_model, monkeypatch):
        monkeypatch.setattr(training, "iterate_epochs", scripted_epochs([1.0, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]))

        response = orchestrator.train(dense_model.id, request(epochs=7))

        assert response.status == "completed"
        assert response.stopped_early
        assert response.epochs_run == 5
        assert response.metrics.loss == pytest.approx(0.5)
        assert response.metrics.accuracy == pytest.approx(0.2)

        record = registry.get(dense_model.id)
        assert len(record.metrics) == 5
        assert len(record.training_logs) == 2 + 5 + 2
        assert "restored weights from epoch 2" in record.training_logs[-2]
        assert record.training_logs[3].endswith("(checkpoint saved)")

        for weights in registry.graph(dense_model.id).get_weights():
            assert np.allclose(weights, 2.0)

    def test_request_patience_overrides_default(self, orchestrator, dense_model, monkeypatch):
        monkeypatch.setattr(training, "iterate_epochs", scripted_epochs([1.0, 1.1, 1.2, 1.3]))
        response = orchestrator.train(dense_model.id, request(epochs=4, patience=1))
        assert response.epochs_run == 2
        assert response.stopped_early

    def test_failure_is_recorded(self, orchestrator, registry, dense_model, monkeypatch):
        def exploding(*args, **kwargs):
            raise TrainingFailure("Loss became non-finite at epoch 1")
            yield

        monkeypatch.setattr(training, "iterate_epochs", exploding)
        response = orchestrator.train(dense_model.id, request())

        assert response.status == "failed"
        assert response.metrics.accuracy == 0
        record = registry.get(dense_model.id)
        assert record.status == ModelStatus.FAILED
        assert record.error == "Loss became non-finite at epoch 1"
        assert record.training_logs[-1] == "Training failed: Loss became non-finite at epoch 1"

    def test_missing_input_shape_fails_run(self, orchestrator, registry):
        payload = model_payload(layers=[{"type": "dense", "units": 3, "activation": "softmax"}])
        record = registry.create(parse_model_definition(payload))

        response = orchestrator.train(record.id, request())

        assert response.status == "failed"
        stored = registry.get(record.id)
        assert stored.status == ModelStatus.FAILED
        assert "inputShape" in stored.error
        assert len(stored.training_logs) == 2

    def test_cancel_before_first_epoch(self, orchestrator, registry, dense_model):
        run = orchestrator.start(dense_model.id, request(epochs=3))
        orchestrator.cancel(dense_model.id)
        response = orchestrator.run(run)

        assert response.status == "failed"
        assert response.epochs_run == 0
        record = registry.get(dense_model.id)
        assert record.status == ModelStatus.FAILED
        assert "cancelled" in record.error

    def test_cancel_idle_model_is_rejected(self, orchestrator, dense_model):
        with pytest.raises(InvalidTransitionError, match="not training"):
            orchestrator.cancel(dense_model.id)

    def test_concurrent_start_is_rejected(self, orchestrator, registry, dense_model):
        orchestrator.start(dense_model.id, request())
        with pytest.raises(InvalidTransitionError, match="already training"):
            orchestrator.start(dense_model.id, request())
        assert registry.get(dense_model.id).status == ModelStatus.TRAINING

    def test_finished_run_keeps_next_run_cancellable(self, orchestrator, registry, dense_model, monkeypatch):
        next_runs = []
        complete_training = registry.complete_training

        def complete_then_restart(model_id, line):
            complete_training(model_id, line)
            next_runs.append(orchestrator.start(model_id, request(epochs=1)))

        monkeypatch.setattr(registry, "complete_training", complete_then_restart)
        assert orchestrator.train(dense_model.id, request(epochs=1)).status == "completed"

        assert registry.get(dense_model.id).status == ModelStatus.TRAINING
        assert orchestrator.is_active(dense_model.id)
        orchestrator.cancel(dense_model.id)
        assert next_runs[0].cancel_token.is_set()

    def test_unknown_training_set_mutates_nothing(self, registry, checkpoints, dense_model):
        catalog = type("EmptyCatalog", (), {"exists": lambda self, set_id: False})()
        orchestrator = TrainingOrchestrator(registry, TrainingSetImageDataSource(catalog), checkpoints)

        with pytest.raises(NotFoundError):
            orchestrator.start(dense_model.id, request())
        assert registry.get(dense_model.id).status == ModelStatus.PENDING

    def test_unknown_model(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.train("missing", request())

    def test_reset_drops_checkpoint(self, orchestrator, registry, checkpoints, dense_model):
        orchestrator.train(dense_model.id, request(epochs=1))
        assert checkpoints.exists(dense_model.id)

        record = orchestrator.reset(dense_model.id)
        assert record.status == ModelStatus.PENDING
        assert not checkpoints.exists(dense_model.id)

    def test_delete_drops_checkpoint(self, orchestrator, registry, checkpoints, dense_model):
        orchestrator.train(dense_model.id, request(epochs=1))
        assert checkpoints.exists(dense_model.id)

        orchestrator.delete(dense_model.id)
        assert len(registry) == 0
        assert not checkpoints.exists(dense_model.id)

    def test_failed_model_trains_again_after_reset(self, orchestrator, registry, dense_model):
        run = orchestrator.start(dense_model.id, request())
        orchestrator.cancel(dense_model.id)
        orchestrator.run(run)

        orchestrator.reset(dense_model.id)
        response = orchestrator.train(dense_model.id, request(epochs=1))
        assert response.status == "completed"


class TestIterateEpochs:

    def test_nan_loss_raises(self):
        graph = StubGraph({"loss": [math.nan], "accuracy": [0.1], "val_loss": [1.0], "val_accuracy": [0.1]})
        with pytest.raises(TrainingFailure, match="non-finite"):
            list(iterate_epochs(graph, _tiny_dataset(), epochs=3, batch_size=2))

    def test_yields_one_result_per_epoch(self):
        graph = StubGraph({"loss": [0.9], "accuracy": [0.4], "val_loss": [1.0], "val_accuracy": [0.3]})
        results = list(iterate_epochs(graph, _tiny_dataset(), epochs=3, batch_size=2))
        assert [result.epoch for result in results] == [1, 2, 3]
        assert results[0].val_accuracy == pytest.approx(0.3)


def _tiny_dataset():
    from layerlab.datasets import Dataset, one_hot

    x = np.zeros((4, 2), dtype=np.float32)
    y = one_hot([0, 1, 0, 1], 2)
    return Dataset(x, y, x, y)
