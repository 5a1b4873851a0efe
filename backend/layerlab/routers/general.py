from fastapi import APIRouter, Request

from layerlab import __version__
from layerlab.config import DEBUG_MODE, TRAINING_DATA_SOURCE
from layerlab.models.records import ModelStatus

router = APIRouter(tags=["general"])

@router.get("/")
async def root():
    return {"message": "LayerLab API is running", "version": __version__}

@router.get("/health")
async def health_check(request: Request):
    """
    Report service status and how many registered models are in each status
    """
    records = request.app.state.registry.list()
    counts = {status.value: 0 for status in ModelStatus}
    for record in records:
        counts[record.status.value] += 1

    return {
        "status": "ok",
        "models": len(records),
        "models_by_status": counts,
        "training_data": TRAINING_DATA_SOURCE,
        "debug_mode": DEBUG_MODE
    }
