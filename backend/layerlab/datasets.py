"""
Training data for the orchestrator.

Two sources share one interface (``check`` + ``load``):

- TrainingSetImageDataSource: one class per training set, images decoded and
  normalized to the graph's input geometry.
- PlaceholderDataSource: random data shaped like the graph, for demos and tests.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from sklearn.model_selection import train_test_split
from tensorflow import keras

from layerlab.config import VALIDATION_SPLIT
from layerlab.database import get_training_images, get_training_set
from layerlab.errors import GraphShapeError, NotFoundError, TrainingFailure
from layerlab.image_utils import image_to_input

logger = logging.getLogger("layerlab-api")

@dataclass
class Dataset:
    x_train: np.ndarray
    y_train: np.ndarray
    x_val: np.ndarray
    y_val: np.ndarray
    class_names: List[str] = field(default_factory=list)

    @property
    def num_classes(self) -> int:
        return self.y_train.shape[-1]

def one_hot(labels: Sequence[int], num_classes: int) -> np.ndarray:
    return keras.utils.to_categorical(np.asarray(labels), num_classes=num_classes).astype(np.float32)

def split_dataset(x: np.ndarray, y: np.ndarray, validation_split: float = VALIDATION_SPLIT,
                  seed: Optional[int] = 42, class_names: Optional[List[str]] = None) -> Dataset:
    """
    Split samples into training and validation parts

    Stratifies when every class has at least two samples and the validation
    part is large enough to hold every class. With fewer than 4 samples the
    training data doubles as validation data.
    """
    class_names = class_names or []
    if len(x) < 4:
        logger.warning(f"Only {len(x)} samples; validating on the training data")
        return Dataset(x, y, x, y, class_names)

    labels = np.argmax(y, axis=1)
    counts = np.bincount(labels, minlength=y.shape[1])
    present = counts[counts > 0]
    n_val = max(1, int(round(len(x) * validation_split)))
    stratify = labels if present.min() >= 2 and n_val >= len(present) and len(x) - n_val >= len(present) else None

    x_train, x_val, y_train, y_val = train_test_split(
        x, y, test_size=n_val, stratify=stratify, random_state=seed
    )
    return Dataset(x_train, y_train, x_val, y_val, class_names)

def augment_images(x: np.ndarray, y: np.ndarray, rng: np.random.Generator, max_delta: float = 0.1):
    """
    Append horizontally flipped, brightness-jittered copies of image samples

    Images must be (N, height, width, channels) with values in [0, 1].
    """
    if x.ndim != 4:
        logger.warning(f"Augmentation needs image samples, got shape {x.shape}; skipping")
        return x, y

    flipped = x[:, :, ::-1, :]
    delta = rng.uniform(-max_delta, max_delta, size=(len(x), 1, 1, 1)).astype(np.float32)
    jittered = np.clip(flipped + delta, 0.0, 1.0)

    return np.concatenate([x, jittered]), np.concatenate([y, y])

def _graph_io(graph: keras.Model):
    """Input shape (without batch axis) and output width of a built graph"""
    if not graph.built:
        raise GraphShapeError(
            "The first layer declares no inputShape, so the graph input is unresolved; "
            "add inputShape to the first layer"
        )
    input_shape = tuple(graph.input_shape[1:])
    num_classes = graph.output_shape[-1]
    if any(dim is None for dim in input_shape) or num_classes is None:
        raise GraphShapeError(f"Graph shapes are not fully defined: {graph.input_shape} -> {graph.output_shape}")
    return input_shape, num_classes

class PlaceholderDataSource:
    """Random normal inputs with random one-hot labels shaped to match the graph"""

    def __init__(self, samples: int = 1000, seed: Optional[int] = None,
                 validation_split: float = VALIDATION_SPLIT):
        self.samples = samples
        self.seed = seed
        self.validation_split = validation_split

    def check(self, training_set_ids: List[str]) -> None:
        """Placeholder data does not depend on stored training sets"""

    def load(self, graph: keras.Model, training_set_ids: List[str], augment: bool = False) -> Dataset:
        input_shape, num_classes = _graph_io(graph)
        rng = np.random.default_rng(self.seed)

        x = rng.standard_normal((self.samples, *input_shape)).astype(np.float32)
        y = one_hot(rng.integers(0, num_classes, size=self.samples), num_classes)

        dataset = split_dataset(x, y, self.validation_split, seed=self.seed)
        if augment:
            dataset.x_train, dataset.y_train = augment_images(dataset.x_train, dataset.y_train, rng)
        return dataset

class TrainingSetImageDataSource:
    """
    Loads the images of the referenced training sets.

    Training set ``training_set_ids[i]`` provides the samples of class ``i``.
    """

    def __init__(self, catalog, validation_split: float = VALIDATION_SPLIT, seed: Optional[int] = 42):
        self.catalog = catalog
        self.validation_split = validation_split
        self.seed = seed

    def check(self, training_set_ids: List[str]) -> None:
        missing = [set_id for set_id in training_set_ids if not self.catalog.exists(set_id)]
        if missing:
            raise NotFoundError(f"Training set not found: {', '.join(missing)}")

    def load(self, graph: keras.Model, training_set_ids: List[str], augment: bool = False) -> Dataset:
        input_shape, num_classes = _graph_io(graph)

        if len(training_set_ids) < 2:
            raise TrainingFailure("At least 2 training sets (classes) are required to train on images")
        if num_classes != len(training_set_ids):
            raise GraphShapeError(
                f"The last layer outputs {num_classes} classes but {len(training_set_ids)} training sets were given"
            )

        samples, labels, class_names = [], [], []
        for class_index, set_id in enumerate(training_set_ids):
            class_names.append(self.catalog.name_of(set_id) or set_id)
            paths = self.catalog.image_paths(set_id)
            if not paths:
                raise TrainingFailure(f"Training set {set_id} has no images")
            for path in paths:
                try:
                    samples.append(image_to_input(path, input_shape))
                except ValueError as e:
                    raise TrainingFailure(f"Could not load image {path}: {e}")
                labels.append(class_index)

        logger.info(f"Loaded {len(samples)} images across {len(training_set_ids)} training sets")

        x = np.stack(samples).astype(np.float32)
        y = one_hot(labels, num_classes)

        dataset = split_dataset(x, y, self.validation_split, seed=self.seed, class_names=class_names)
        if augment:
            rng = np.random.default_rng(self.seed)
            dataset.x_train, dataset.y_train = augment_images(dataset.x_train, dataset.y_train, rng)
        return dataset

class SqlTrainingSetCatalog:
    """Looks up training sets and their image paths in the database"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def exists(self, training_set_id: str) -> bool:
        db = self.session_factory()
        try:
            return get_training_set(db, training_set_id) is not None
        finally:
            db.close()

    def name_of(self, training_set_id: str) -> Optional[str]:
        db = self.session_factory()
        try:
            training_set = get_training_set(db, training_set_id)
            return training_set.name if training_set else None
        finally:
            db.close()

    def image_paths(self, training_set_id: str) -> List[str]:
        db = self.session_factory()
        try:
            return [image.path for image in get_training_images(db, training_set_id)]
        finally:
            db.close()
