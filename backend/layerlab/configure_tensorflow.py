import os
import logging

# Must be set before TensorFlow is imported to quiet its C++ logging
os.environ.setdefault('TF_CPP_MIN_LOG_LEVEL', '2')  # 0=all, 1=info, 2=warning, 3=error

import tensorflow as tf

from layerlab.config import MODEL_OPTIMIZATION

logger = logging.getLogger("layerlab-api")

def configure_tensorflow():
    """Apply MODEL_OPTIMIZATION to the TensorFlow runtime. Returns False on failure."""
    try:
        physical_devices = tf.config.list_physical_devices('GPU')
        if not physical_devices:
            logger.info("No GPUs detected, training and inference run on CPU")
            return True

        logger.info(f"GPU detected: {len(physical_devices)} GPU(s) available")

        if MODEL_OPTIMIZATION.get("enable_gpu_memory_growth", True):
            for gpu in physical_devices:
                try:
                    tf.config.experimental.set_memory_growth(gpu, True)
                except RuntimeError as e:
                    # Raised once the GPU has already been initialized
                    logger.error(f"Error setting memory growth on {gpu}: {e}")

        limit_mb = MODEL_OPTIMIZATION.get("gpu_memory_limit_mb")
        if limit_mb:
            try:
                tf.config.set_logical_device_configuration(
                    physical_devices[0],
                    [tf.config.LogicalDeviceConfiguration(memory_limit=limit_mb)]
                )
                logger.info(f"GPU memory limited to {limit_mb}MB")
            except RuntimeError as e:
                logger.warning(f"Could not set memory limit: {e}")

        if MODEL_OPTIMIZATION.get("xla_acceleration", False):
            tf.config.optimizer.set_jit(True)
            logger.info("XLA JIT compilation enabled")

        return True
    except Exception as e:
        logger.error(f"Error configuring TensorFlow: {e}")
        return False
