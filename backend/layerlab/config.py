import os
import logging

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

# Paths and directories
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.getenv("LAYERLAB_DATA_DIR", os.path.join(BASE_DIR, "data"))
UPLOAD_DIR = os.path.join(DATA_DIR, "training_images")
CHECKPOINT_DIR = os.path.join(DATA_DIR, "checkpoints")

# Debug mode lowers the log level and enables uvicorn reload in run.py
DEBUG_MODE = os.getenv("LAYERLAB_DEBUG", "0") == "1"

# Database settings (SQLite unless a full SQLAlchemy URL is provided)
DATABASE_URL = os.getenv("LAYERLAB_DATABASE_URL", f"sqlite:///{os.path.join(DATA_DIR, 'layerlab.db')}")

# Training settings
# "images" trains on the images of the referenced training sets,
# "placeholder" on random data shaped like the graph (demo/testing only)
TRAINING_DATA_SOURCE = os.getenv("LAYERLAB_TRAINING_DATA", "images")
PLACEHOLDER_SAMPLES = int(os.getenv("LAYERLAB_PLACEHOLDER_SAMPLES", "1000"))
EARLY_STOPPING_PATIENCE = int(os.getenv("LAYERLAB_EARLY_STOPPING_PATIENCE", "10"))
VALIDATION_SPLIT = float(os.getenv("LAYERLAB_VALIDATION_SPLIT", "0.2"))
OPTIMIZER = "adam"
LOSS = "categorical_crossentropy"
METRICS = ["accuracy"]

# Upload settings
ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".gif")
MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB per image
MAX_IMAGES_PER_UPLOAD = 10

# TensorFlow runtime settings
MODEL_OPTIMIZATION = {
    "enable_gpu_memory_growth": True,  # Allow TF to grow GPU memory as needed
    "xla_acceleration": False,
    "gpu_memory_limit_mb": None     # Limit GPU memory usage (None = no limit)
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = logging.DEBUG if DEBUG_MODE else logging.INFO

# Setup directories
def setup_dirs():
    """Create necessary directories"""
    logger = logging.getLogger("layerlab-api")

    os.makedirs(UPLOAD_DIR, exist_ok=True)
    logger.info(f"Training image directory ready at {UPLOAD_DIR}")

    os.makedirs(CHECKPOINT_DIR, exist_ok=True)
    logger.info(f"Checkpoint directory ready at {CHECKPOINT_DIR}")

    if DEBUG_MODE:
        logger.info("Debug mode enabled")
