"""Shared fixtures. The environment is pointed at a temp directory before layerlab is imported."""
import os
import tempfile

_DATA_DIR = tempfile.mkdtemp(prefix="layerlab-tests-")
os.environ["LAYERLAB_DATA_DIR"] = _DATA_DIR
os.environ["LAYERLAB_DATABASE_URL"] = f"sqlite:///{os.path.join(_DATA_DIR, 'test.db')}"
os.environ["LAYERLAB_TRAINING_DATA"] = "placeholder"
os.environ["LAYERLAB_PLACEHOLDER_SAMPLES"] = "40"

import pytest
from fastapi.testclient import TestClient

from layerlab.checkpoints import CheckpointStore
from layerlab.datasets import PlaceholderDataSource
from layerlab.models.layers import parse_model_definition
from layerlab.registry import ModelRegistry
from layerlab.training import TrainingOrchestrator

from payloads import model_payload

@pytest.fixture
def registry():
    return ModelRegistry()

@pytest.fixture
def checkpoints(tmp_path):
    return CheckpointStore(str(tmp_path / "checkpoints"))

@pytest.fixture
def orchestrator(registry, checkpoints):
    return TrainingOrchestrator(registry, PlaceholderDataSource(samples=40, seed=7), checkpoints, patience=3)

@pytest.fixture
def dense_model(registry):
    return registry.create(parse_model_definition(model_payload()))

@pytest.fixture
def client():
    from main import app

    with TestClient(app) as test_client:
        yield test_client
