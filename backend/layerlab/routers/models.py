from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from typing import Any, Dict, List
import logging

from layerlab.graph import describe_graph
from layerlab.inference import InferenceService
from layerlab.models.layers import parse_model_definition
from layerlab.models.prediction import PredictRequest, PredictResponse, ImagePredictionResponse
from layerlab.models.records import ModelRecord
from layerlab.models.training import TrainingRequest, TrainingResponse
from layerlab.registry import ModelRegistry
from layerlab.training import TrainingOrchestrator

router = APIRouter(
    prefix="/models",
    tags=["models"]
)

logger = logging.getLogger("layerlab-api")

def get_registry(request: Request) -> ModelRegistry:
    return request.app.state.registry

def get_orchestrator(request: Request) -> TrainingOrchestrator:
    return request.app.state.orchestrator

def get_inference(request: Request) -> InferenceService:
    return request.app.state.inference

@router.post("", response_model=ModelRecord, status_code=status.HTTP_201_CREATED)
async def create_model(
    payload: Dict[str, Any] = Body(...),
    registry: ModelRegistry = Depends(get_registry)
):
    """
    Register a model from a declarative layer list

    The whole definition is validated and the graph is built before
    anything is stored, so a rejected request leaves no record behind.
    """
    definition = parse_model_definition(payload)
    return await run_in_threadpool(registry.create, definition)

@router.get("", response_model=List[ModelRecord])
async def list_models(registry: ModelRegistry = Depends(get_registry)):
    return registry.list()

@router.get("/{model_id}", response_model=ModelRecord)
async def get_model(model_id: str, registry: ModelRegistry = Depends(get_registry)):
    """
    Get a model with its status, training logs and per-epoch metrics
    """
    return registry.get(model_id)

@router.delete("/{model_id}")
async def delete_model(model_id: str, orchestrator: TrainingOrchestrator = Depends(get_orchestrator)):
    """
    Delete a model and its saved checkpoint. A model that is training must be cancelled first.
    """
    record = await run_in_threadpool(orchestrator.delete, model_id)
    return {
        "success": True,
        "message": f"Model '{record.name}' deleted successfully",
        "modelId": model_id
    }

@router.get("/{model_id}/graph")
async def get_model_graph(model_id: str, registry: ModelRegistry = Depends(get_registry)):
    """
    Describe the built graph: input/output shapes and per-layer parameters
    """
    return describe_graph(registry.graph(model_id))

@router.post("/{model_id}/train", response_model=TrainingResponse)
async def train_model(
    model_id: str,
    config: TrainingRequest,
    background_tasks: BackgroundTasks,
    response: Response,
    background: bool = False,
    orchestrator: TrainingOrchestrator = Depends(get_orchestrator)
):
    """
    Train a model on the referenced training sets

    - trainingSetIds: training set ids; the set at index i provides class i
    - epochs: upper bound on epochs (early stopping may end sooner)
    - batchSize: samples per gradient step
    - augment: add flipped, brightness-jittered image copies
    - patience: epochs without val_loss improvement before stopping

    By default the request waits for the run. With background=true it
    returns 202 once the model is TRAINING; poll GET /models/{id}.
    """
    run = orchestrator.start(model_id, config)

    if background:
        background_tasks.add_task(orchestrator.run, run)
        logger.info(f"Training of model {model_id} scheduled in the background")
        response.status_code = status.HTTP_202_ACCEPTED
        return TrainingResponse(model_id=model_id, status="started")

    return await run_in_threadpool(orchestrator.run, run)

@router.post("/{model_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_training(model_id: str, orchestrator: TrainingOrchestrator = Depends(get_orchestrator)):
    """
    Ask a running training to stop before its next epoch; the model ends FAILED
    """
    orchestrator.cancel(model_id)
    return {"modelId": model_id, "status": "cancelling"}

@router.post("/{model_id}/reset", response_model=ModelRecord)
async def reset_model(model_id: str, orchestrator: TrainingOrchestrator = Depends(get_orchestrator)):
    """
    Return a model to PENDING with a fresh graph, clearing error, logs and metrics
    """
    return await run_in_threadpool(orchestrator.reset, model_id)

@router.post("/{model_id}/predict", response_model=PredictResponse)
async def predict(
    model_id: str,
    data: PredictRequest,
    inference: InferenceService = Depends(get_inference)
):
    """
    Run flat feature rows through a trained model

    Each row must hold exactly as many values as the flattened inputShape.
    """
    predictions = await run_in_threadpool(inference.predict, model_id, data.data)
    return PredictResponse(predictions=predictions)

@router.post("/{model_id}/predict-image", response_model=ImagePredictionResponse)
async def predict_image(
    model_id: str,
    request: Request,
    inference: InferenceService = Depends(get_inference)
):
    """
    Classify one image sent either as the raw request body or as the
    multipart field "image"
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("image")
        payload = await upload.read() if upload is not None and hasattr(upload, "read") else b""
    else:
        payload = await request.body()

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No image provided; send the image as the request body or as multipart field 'image'"
        )

    prediction = await run_in_threadpool(inference.predict_image, model_id, payload)
    return ImagePredictionResponse(prediction=prediction)
