import io
import logging
import math
from typing import Sequence, Tuple, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger("layerlab-api")

CHANNEL_MODES = {1: "L", 3: "RGB", 4: "RGBA"}

def input_geometry(input_shape: Sequence[int]) -> Tuple[int, int, int]:
    """
    Derive (height, width, channels) for images fed to a graph

    Args:
        input_shape: The first layer's inputShape (without batch axis)

    Returns:
        Tuple (height, width, channels)
    """
    if len(input_shape) == 3:
        height, width, channels = input_shape
        if channels not in CHANNEL_MODES:
            raise ValueError(f"Unsupported channel count {channels}; expected 1, 3 or 4")
        return height, width, channels

    if len(input_shape) == 2:
        # (height, width) grayscale without a channel axis
        return input_shape[0], input_shape[1], 1

    if len(input_shape) == 1:
        side = math.isqrt(input_shape[0])
        if side * side != input_shape[0]:
            raise ValueError(
                f"Input width {input_shape[0]} is not a square image; cannot map an image onto it"
            )
        return side, side, 1

    raise ValueError(f"Cannot derive image geometry from input shape {tuple(input_shape)}")

def decode_image(source: Union[bytes, str]) -> Image.Image:
    """
    Open an image from raw bytes or a file path

    Raises:
        ValueError: if the payload is not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(source) if isinstance(source, bytes) else source)
        image.load()
        return image
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {e}")

def fit_image(image: Image.Image, height: int, width: int, channels: int) -> np.ndarray:
    """
    Crop (centered cover fit) and resize an image, converting to the channel count

    Returns:
        uint8 array of shape (height, width, channels)
    """
    image = image.convert(CHANNEL_MODES[channels])
    image = ImageOps.fit(image, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))

    image_array = np.array(image)
    if image_array.ndim == 2:
        image_array = np.expand_dims(image_array, axis=-1)
    return image_array

def image_to_input(source: Union[bytes, str, Image.Image], input_shape: Sequence[int]) -> np.ndarray:
    """
    Turn an image into one graph input with pixel intensities in [0, 1]

    Args:
        source: Raw bytes, a file path or an opened image
        input_shape: The first layer's inputShape (without batch axis)

    Returns:
        float32 array shaped exactly like input_shape
    """
    image = source if isinstance(source, Image.Image) else decode_image(source)
    height, width, channels = input_geometry(input_shape)

    pixels = fit_image(image, height, width, channels).astype(np.float32) / 255.0
    return pixels.reshape(tuple(input_shape))
