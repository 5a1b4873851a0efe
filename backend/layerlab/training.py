"""
Training orchestrator.

A run is split in two so that request validation and the status check-and-set
happen before anything slow:

- ``start`` checks the model and training sets and moves the model to TRAINING.
- ``run`` loads data, compiles, and consumes the epoch-result stream from
  ``iterate_epochs``. Each result feeds the checkpoint selector and the
  registry's log/metric appender. ``run`` never raises: any failure ends
  the run in FAILED with the message on the record.
"""
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from tensorflow import keras

from layerlab.checkpoints import BestCheckpointSelector, CheckpointStore
from layerlab.config import EARLY_STOPPING_PATIENCE, LOSS, METRICS, OPTIMIZER
from layerlab.datasets import Dataset
from layerlab.errors import InvalidTransitionError, TrainingCancelled, TrainingFailure
from layerlab.models.records import EpochMetric, ModelRecord
from layerlab.models.training import TrainingMetrics, TrainingRequest, TrainingResponse
from layerlab.registry import ModelRegistry

logger = logging.getLogger("layerlab-api")

@dataclass
class EpochResult:
    epoch: int  # 1-based
    loss: float
    accuracy: float
    val_loss: float
    val_accuracy: float

    def to_metric(self) -> EpochMetric:
        return EpochMetric(
            epoch=self.epoch,
            accuracy=self.accuracy,
            loss=self.loss,
            val_accuracy=self.val_accuracy,
            val_loss=self.val_loss
        )

@dataclass
class TrainingRun:
    model_id: str
    config: TrainingRequest
    cancel_token: threading.Event = field(default_factory=threading.Event)

def _last(history: Dict[str, List[float]], key: str) -> float:
    values = history.get(key)
    return float(values[-1]) if values else math.nan

def iterate_epochs(graph: keras.Model, dataset: Dataset, epochs: int, batch_size: int,
                   cancel_token: Optional[threading.Event] = None) -> Iterator[EpochResult]:
    """
    Fit one epoch at a time and yield its metrics

    Raises:
        TrainingCancelled: when the token is set before an epoch starts
        TrainingFailure: when the training or validation loss is not finite
    """
    for epoch in range(epochs):
        if cancel_token is not None and cancel_token.is_set():
            raise TrainingCancelled(f"Training cancelled before epoch {epoch + 1}")

        history = graph.fit(
            dataset.x_train, dataset.y_train,
            validation_data=(dataset.x_val, dataset.y_val),
            batch_size=batch_size,
            epochs=epoch + 1,
            initial_epoch=epoch,
            verbose=0
        ).history

        result = EpochResult(
            epoch=epoch + 1,
            loss=_last(history, "loss"),
            accuracy=_last(history, "accuracy"),
            val_loss=_last(history, "val_loss"),
            val_accuracy=_last(history, "val_accuracy")
        )
        if not (math.isfinite(result.loss) and math.isfinite(result.val_loss)):
            raise TrainingFailure(
                f"Loss became non-finite at epoch {result.epoch} (loss={result.loss}, val_loss={result.val_loss})"
            )

        yield result

def format_epoch_line(result: EpochResult, total_epochs: int, improved: bool) -> str:
    line = (
        f"Epoch {result.epoch}/{total_epochs} - loss: {result.loss:.4f} - accuracy: {result.accuracy:.4f}"
        f" - val_loss: {result.val_loss:.4f} - val_accuracy: {result.val_accuracy:.4f}"
    )
    return line + " (checkpoint saved)" if improved else line

class TrainingOrchestrator:
    """Runs training for models held by a registry, at most one run per model"""

    def __init__(self, registry: ModelRegistry, data_source, checkpoints: CheckpointStore,
                 patience: int = EARLY_STOPPING_PATIENCE):
        self.registry = registry
        self.data_source = data_source
        self.checkpoints = checkpoints
        self.patience = patience
        self._active: Dict[str, TrainingRun] = {}
        self._lock = threading.Lock()

    def start(self, model_id: str, config: TrainingRequest) -> TrainingRun:
        """
        Accept a training request and move the model to TRAINING

        Raises:
            NotFoundError: unknown model or training set (nothing is mutated)
            InvalidTransitionError: the model is already training, or failed and was not reset
        """
        self.registry.get(model_id)
        self.data_source.check(config.training_set_ids)

        self.registry.begin_training(model_id, config.training_set_ids)
        run = TrainingRun(model_id, config)
        with self._lock:
            self._active[model_id] = run
        return run

    def run(self, run: TrainingRun) -> TrainingResponse:
        """Execute an accepted run to completion; failures end in FAILED, never raise"""
        model_id, config = run.model_id, run.config
        patience = config.patience or self.patience
        results: List[EpochResult] = []
        stopped_early = False

        try:
            self.registry.append_log(
                model_id,
                f"Training started: epochs={config.epochs}, batchSize={config.batch_size}, "
                f"trainingSets={','.join(config.training_set_ids)}, augment={config.augment}"
            )
            logger.info(f"Training model {model_id} for up to {config.epochs} epochs")

            graph = self.registry.graph(model_id)
            dataset = self.data_source.load(graph, config.training_set_ids, augment=config.augment)
            self.registry.append_log(
                model_id,
                f"Dataset ready: {len(dataset.x_train)} training samples, "
                f"{len(dataset.x_val)} validation samples, {dataset.num_classes} classes"
            )

            graph.compile(optimizer=OPTIMIZER, loss=LOSS, metrics=list(METRICS))

            selector = BestCheckpointSelector(self.checkpoints, model_id, patience)
            for result in iterate_epochs(graph, dataset, config.epochs, config.batch_size, run.cancel_token):
                results.append(result)
                improved = selector.observe(graph, result.epoch, result.val_loss)
                self.registry.record_epoch(
                    model_id, result.to_metric(), format_epoch_line(result, config.epochs, improved)
                )
                logger.debug(f"Model {model_id} epoch {result.epoch}: loss={result.loss:.4f}")

                if selector.should_stop:
                    stopped_early = True
                    break

            if stopped_early:
                selector.restore_best(graph)
                self.registry.append_log(
                    model_id,
                    f"Early stopping at epoch {results[-1].epoch}: no val_loss improvement for "
                    f"{patience} epochs; restored weights from epoch {selector.best_epoch}"
                )

            final = self._final_result(results, selector.best_epoch if stopped_early else None)
            self.registry.complete_training(
                model_id,
                f"Training completed: accuracy={final.accuracy:.4f}, loss={final.loss:.4f}"
            )
            logger.info(f"Model {model_id} trained in {len(results)} epochs")

            return TrainingResponse(
                model_id=model_id,
                status="completed",
                metrics=TrainingMetrics(accuracy=final.accuracy, loss=final.loss),
                epochs_run=len(results),
                stopped_early=stopped_early
            )
        except Exception as e:
            message = e.message if isinstance(e, TrainingFailure) else f"{type(e).__name__}: {e}"
            logger.error(f"Training model {model_id} failed: {message}")
            self.registry.fail_training(model_id, message, f"Training failed: {message}")

            final = self._final_result(results, None)
            return TrainingResponse(
                model_id=model_id,
                status="failed",
                metrics=TrainingMetrics(accuracy=final.accuracy, loss=final.loss),
                epochs_run=len(results),
                error=message
            )
        finally:
            with self._lock:
                if self._active.get(model_id) is run:
                    del self._active[model_id]

    def train(self, model_id: str, config: TrainingRequest) -> TrainingResponse:
        """Start and run synchronously"""
        return self.run(self.start(model_id, config))

    def cancel(self, model_id: str) -> None:
        """Ask an active run to stop before its next epoch"""
        self.registry.get(model_id)
        with self._lock:
            run = self._active.get(model_id)
        if run is None:
            raise InvalidTransitionError(f"Model {model_id} is not training")
        run.cancel_token.set()
        logger.info(f"Cancellation requested for model {model_id}")

    def reset(self, model_id: str) -> ModelRecord:
        """Reset a model to PENDING and drop its checkpoint"""
        record = self.registry.reset(model_id)
        self.checkpoints.delete(model_id)
        return record

    def delete(self, model_id: str) -> ModelRecord:
        """Remove a model from the registry together with its checkpoint"""
        record = self.registry.delete(model_id)
        self.checkpoints.delete(model_id)
        return record

    def is_active(self, model_id: str) -> bool:
        with self._lock:
            return model_id in self._active

    @staticmethod
    def _final_result(results: List[EpochResult], best_epoch: Optional[int]) -> EpochResult:
        if not results:
            return EpochResult(0, loss=0.0, accuracy=0.0, val_loss=0.0, val_accuracy=0.0)
        if best_epoch is not None:
            return next(result for result in results if result.epoch == best_epoch)
        return results[-1]
