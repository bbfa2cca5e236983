from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from .errors import DecodeError
from .tensors import InputTensor


ImageBytes = Union[bytes, bytearray, memoryview]


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for image decoding. Install with `pip install opencv-python`.") from e
    return cv2


@dataclass(frozen=True)
class PreprocessResult:
    tensor: InputTensor
    orig_size: Tuple[int, int]  # (width, height) before resize
    image: np.ndarray  # decoded BGR source, reused by the annotator


def decode_image(image_bytes: ImageBytes) -> np.ndarray:
    """
    Decode an encoded image (JPEG/PNG/...) into a BGR uint8 array of shape (H, W, 3).

    Any alpha channel is dropped and grayscale input is expanded to three channels.
    """

    cv2 = _require_cv2()
    if image_bytes is None:
        raise DecodeError("No image data provided.")
    buf = np.frombuffer(bytes(image_bytes), dtype=np.uint8)
    if buf.size == 0:
        raise DecodeError("Image data is empty.")

    try:
        image = cv2.imdecode(buf, cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    except cv2.error as e:
        raise DecodeError(f"Could not decode image ({buf.size} bytes): {e}") from e
    if image is None or image.size == 0:
        raise DecodeError(f"Could not decode image ({buf.size} bytes).")
    return image


def stretch_resize(image: np.ndarray, size: int) -> np.ndarray:
    """
    Resize to (size, size) scaling width and height independently.

    Aspect ratio is not preserved and no padding is added, so boxes decoded
    from the model map back with separate x and y factors.
    """

    cv2 = _require_cv2()
    h, w = image.shape[:2]
    if (w, h) == (size, size):
        return image
    return cv2.resize(image, (size, size), interpolation=cv2.INTER_LINEAR)


def to_input_tensor(image_bgr: np.ndarray) -> InputTensor:
    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = image_bgr[:, :, ::-1].astype(np.float32) / 255.0
    blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])
    return InputTensor(blob)


def preprocess_image(image_bytes: ImageBytes, input_size: int = 640) -> PreprocessResult:
    """
    Decode `image_bytes` and build the (1, 3, S, S) planar RGB tensor the model expects.
    """

    if input_size < 1:
        raise ValueError("input_size must be >= 1")

    image = decode_image(image_bytes)
    orig_h, orig_w = image.shape[:2]
    resized = stretch_resize(image, int(input_size))
    return PreprocessResult(tensor=to_input_tensor(resized), orig_size=(orig_w, orig_h), image=image)
