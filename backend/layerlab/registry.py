"""
Model registry: owns every ModelRecord and its in-memory graph.

One registry is built per process (see main.py lifespan) and handed to the
handlers. Each entry has its own lock; every status change goes through
``transition`` so callers never mutate ``status`` directly.
"""
import logging
import threading
import uuid
from typing import Dict, List, Optional

from tensorflow import keras

from layerlab.errors import InvalidTransitionError, ModelNotTrainedError, NotFoundError
from layerlab.graph import build_graph
from layerlab.models.layers import BaseLayer, ModelCreate
from layerlab.models.records import EpochMetric, ModelRecord, ModelStatus, utcnow

logger = logging.getLogger("layerlab-api")

ALLOWED_TRANSITIONS = {
    ModelStatus.PENDING: {ModelStatus.TRAINING},
    ModelStatus.TRAINING: {ModelStatus.TRAINED, ModelStatus.FAILED},
    ModelStatus.TRAINED: {ModelStatus.TRAINING, ModelStatus.PENDING},
    ModelStatus.FAILED: {ModelStatus.PENDING},
}

def transition(record: ModelRecord, target: ModelStatus) -> None:
    """
    Move a record to ``target`` or raise InvalidTransitionError

    Callers must hold the entry lock.
    """
    current = record.status
    if target not in ALLOWED_TRANSITIONS[current]:
        if current == ModelStatus.TRAINING:
            message = f"Model {record.id} is already training"
        elif current == ModelStatus.FAILED and target == ModelStatus.TRAINING:
            message = f"Model {record.id} failed; reset it before training again"
        else:
            message = f"Model {record.id} cannot go from {current.value} to {target.value}"
        raise InvalidTransitionError(message)

    record.status = target
    record.updated_at = utcnow()
    logger.info(f"Model {record.id}: {current.value} -> {target.value}")

class RegistryEntry:
    def __init__(self, record: ModelRecord, specs: List[BaseLayer], graph: keras.Sequential):
        self.record = record
        self.specs = specs
        self.graph = graph
        self.lock = threading.RLock()

class ModelRegistry:
    """In-memory mapping from model id to record, layer specs and graph"""

    def __init__(self):
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def _entry(self, model_id: str) -> RegistryEntry:
        with self._lock:
            entry = self._entries.get(model_id)
        if entry is None:
            raise NotFoundError(f"Model {model_id} not found")
        return entry

    def create(self, definition: ModelCreate) -> ModelRecord:
        """Build the graph and register a PENDING record. Nothing is stored if the build fails."""
        graph = build_graph(definition.layers)

        record = ModelRecord(
            id=str(uuid.uuid4()),
            name=definition.name,
            description=definition.description,
            layers=[layer.to_json() for layer in definition.layers],
        )
        with self._lock:
            self._entries[record.id] = RegistryEntry(record, list(definition.layers), graph)

        logger.info(f"Created model {record.id} ({record.name}) with {len(record.layers)} layers")
        return record.model_copy(deep=True)

    def get(self, model_id: str) -> ModelRecord:
        entry = self._entry(model_id)
        with entry.lock:
            return entry.record.model_copy(deep=True)

    def list(self) -> List[ModelRecord]:
        with self._lock:
            entries = list(self._entries.values())
        records = []
        for entry in entries:
            with entry.lock:
                records.append(entry.record.model_copy(deep=True))
        return records

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def specs(self, model_id: str) -> List[BaseLayer]:
        return list(self._entry(model_id).specs)

    def graph(self, model_id: str) -> keras.Sequential:
        return self._entry(model_id).graph

    def trained_graph(self, model_id: str) -> keras.Sequential:
        """Graph of a TRAINED model, for inference"""
        entry = self._entry(model_id)
        with entry.lock:
            if entry.record.status != ModelStatus.TRAINED:
                raise ModelNotTrainedError(
                    f"Model {model_id} is not trained (status {entry.record.status.value})"
                )
            return entry.graph

    def reset(self, model_id: str) -> ModelRecord:
        """Force a model back to PENDING with a fresh, untrained graph"""
        entry = self._entry(model_id)
        with entry.lock:
            transition(entry.record, ModelStatus.PENDING)
            entry.graph = build_graph(entry.specs)
            entry.record.error = None
            entry.record.training_logs = []
            entry.record.metrics = []
            return entry.record.model_copy(deep=True)

    def delete(self, model_id: str) -> ModelRecord:
        """Remove a model that is not training; returns its last snapshot"""
        entry = self._entry(model_id)
        with entry.lock:
            if entry.record.status == ModelStatus.TRAINING:
                raise InvalidTransitionError(f"Model {model_id} is training; cancel it before deleting")
            with self._lock:
                self._entries.pop(model_id, None)
            logger.info(f"Deleted model {model_id} ({entry.record.name})")
            return entry.record.model_copy(deep=True)

    # Training run mutations, used by the orchestrator only

    def begin_training(self, model_id: str, training_set_ids: List[str]) -> ModelRecord:
        """Check-and-set to TRAINING; rejects a model that is already training"""
        entry = self._entry(model_id)
        with entry.lock:
            transition(entry.record, ModelStatus.TRAINING)
            entry.record.error = None
            entry.record.training_logs = []
            entry.record.metrics = []
            entry.record.training_set_ids = list(training_set_ids)
            return entry.record.model_copy(deep=True)

    def append_log(self, model_id: str, line: str) -> None:
        entry = self._entry(model_id)
        with entry.lock:
            entry.record.training_logs.append(line)
            entry.record.updated_at = utcnow()

    def record_epoch(self, model_id: str, metric: EpochMetric, line: str) -> None:
        entry = self._entry(model_id)
        with entry.lock:
            entry.record.metrics.append(metric)
            entry.record.training_logs.append(line)
            entry.record.updated_at = utcnow()

    def complete_training(self, model_id: str, line: str) -> None:
        entry = self._entry(model_id)
        with entry.lock:
            entry.record.training_logs.append(line)
            transition(entry.record, ModelStatus.TRAINED)

    def fail_training(self, model_id: str, message: str, line: Optional[str] = None) -> None:
        entry = self._entry(model_id)
        with entry.lock:
            entry.record.error = message
            if line:
                entry.record.training_logs.append(line)
            transition(entry.record, ModelStatus.FAILED)
