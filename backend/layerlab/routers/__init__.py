from layerlab.routers.general import router as general_router
from layerlab.routers.models import router as models_router
from layerlab.routers.users import router as users_router
from layerlab.routers.training_sets import router as training_sets_router

__all__ = [
    "general_router",
    "models_router",
    "users_router",
    "training_sets_router"
]
