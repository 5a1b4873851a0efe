"""
Checkpoint storage and best-epoch selection for training runs.
"""
import logging
import math
import os
from typing import Optional

from tensorflow import keras

logger = logging.getLogger("layerlab-api")

class CheckpointStore:
    """Persists graph weights per model id as <directory>/<model_id>.weights.h5"""

    def __init__(self, directory: str):
        self.directory = directory

    def path_for(self, model_id: str) -> str:
        return os.path.join(self.directory, f"{model_id}.weights.h5")

    def exists(self, model_id: str) -> bool:
        return os.path.exists(self.path_for(model_id))

    def save(self, model_id: str, graph: keras.Model) -> str:
        os.makedirs(self.directory, exist_ok=True)
        path = self.path_for(model_id)
        graph.save_weights(path)
        logger.debug(f"Checkpoint for model {model_id} written to {path}")
        return path

    def restore(self, model_id: str, graph: keras.Model) -> None:
        path = self.path_for(model_id)
        if not self.exists(model_id):
            raise FileNotFoundError(f"No checkpoint for model {model_id} at {path}")
        graph.load_weights(path)
        logger.info(f"Restored model {model_id} from checkpoint {path}")

    def delete(self, model_id: str) -> None:
        path = self.path_for(model_id)
        if self.exists(model_id):
            os.remove(path)
            logger.info(f"Removed checkpoint {path}")

class BestCheckpointSelector:
    """
    Tracks the best validation loss seen in a run.

    An improving epoch saves the weights through the store; ``patience``
    epochs in a row without improvement set ``should_stop``.
    """

    def __init__(self, store: CheckpointStore, model_id: str, patience: int):
        self.store = store
        self.model_id = model_id
        self.patience = patience
        self.best_loss = math.inf
        self.best_epoch: Optional[int] = None
        self.wait = 0

    @property
    def should_stop(self) -> bool:
        return self.wait >= self.patience

    def observe(self, graph: keras.Model, epoch: int, val_loss: float) -> bool:
        """Returns True when this epoch improved on the best validation loss"""
        if val_loss < self.best_loss:
            self.best_loss = val_loss
            self.best_epoch = epoch
            self.wait = 0
            self.store.save(self.model_id, graph)
            return True

        self.wait += 1
        return False

    def restore_best(self, graph: keras.Model) -> None:
        if self.best_epoch is None:
            return
        self.store.restore(self.model_id, graph)
