# Package initialization file

import logging

from layerlab.configure_tensorflow import configure_tensorflow

logger = logging.getLogger("layerlab-api")

__version__ = "1.0.0"

# This ensures TensorFlow is configured when the package is imported
configure_tensorflow()
