from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

import numpy as np

from .errors import DecodeError
from .preprocess import ImageBytes, decode_image
from .types import Detection


@dataclass(frozen=True)
class DisplayClass:
    name: str
    color: Tuple[int, int, int]  # RGB

    @property
    def bgr(self) -> Tuple[int, int, int]:
        r, g, b = self.color
        return (int(b), int(g), int(r))


WIRING_DISPLAY: Dict[int, DisplayClass] = {
    3: DisplayClass("sleeve", (0, 255, 0)),
    2: DisplayClass("exterminal", (0, 0, 255)),
    1: DisplayClass("excopper", (255, 255, 0)),
    0: DisplayClass("cross", (255, 0, 0)),
}


def _color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id without a display entry.
    """

    palette = [
        (255, 56, 56),
        (255, 157, 151),
        (255, 112, 31),
        (255, 178, 29),
        (207, 210, 49),
        (72, 249, 10),
        (146, 204, 23),
        (61, 219, 134),
        (26, 147, 52),
        (0, 212, 187),
        (44, 153, 168),
        (0, 194, 255),
        (52, 69, 147),
        (100, 115, 255),
        (0, 24, 236),
        (132, 56, 255),
        (82, 0, 133),
        (203, 56, 255),
        (255, 149, 200),
        (255, 55, 199),
    ]
    if 0 <= class_id < len(palette):
        return palette[class_id]

    rng = np.random.default_rng(abs(int(class_id)))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for annotation. Install with `pip install opencv-python`.") from e
    return cv2


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    display_table: Optional[Mapping[int, DisplayClass]] = None,
    show_score: bool = True,
    box_thickness: int = 3,
    font_scale: float = 0.5,
    font_thickness: int = 1,
    label_padding: int = 4,
    tag_height: int = 20,
) -> np.ndarray:
    """
    Draw bounding boxes + labels on an OpenCV BGR image and return a copy.

    Args:
        image_bgr: input image in BGR (H, W, 3).
        detections: iterable of Detection with xyxy in original image coordinates.
        display_table: optional mapping {class_id: DisplayClass}.
    """

    cv2 = _require_cv2()

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    table = display_table or {}
    h, w = out.shape[:2]

    for det in detections:
        xyxy = np.asarray(det.as_xyxy(), dtype=np.float64)
        if not np.all(np.isfinite(xyxy)):
            continue
        # Drawing coordinates only; OpenCV rejects points far outside the int range.
        xyxy[[0, 2]] = np.clip(xyxy[[0, 2]], -w, 2 * w)
        xyxy[[1, 3]] = np.clip(xyxy[[1, 3]], -h, 2 * h)
        x1i, y1i, x2i, y2i = (int(round(v)) for v in xyxy)

        entry = table.get(det.class_id)
        if entry is not None:
            color = entry.bgr
            label = entry.name
        else:
            color = _color_for_class_id(det.class_id)
            label = str(det.class_id)

        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        if show_score:
            label = f"{label} {det.confidence:.2f}"

        (tw, th), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        tag_h = tag_height
        # Tag sits on top of the box's top-left corner, or just inside it at the image edge.
        tag_top = y1i - tag_h
        if tag_top < 0:
            tag_top = y1i

        cv2.rectangle(out, (x1i, tag_top), (x1i + tw + label_padding, tag_top + tag_h), color, thickness=-1)
        cv2.putText(
            out,
            label,
            (x1i + label_padding // 2, tag_top + (tag_h + th) // 2),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (0, 0, 0),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out


def encode_jpeg(image_bgr: np.ndarray, quality: int = 95) -> bytes:
    cv2 = _require_cv2()
    ok, buf = cv2.imencode(".jpg", image_bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise DecodeError("Failed to encode annotated image as JPEG.")
    return buf.tobytes()


def annotate_image(
    image: Union[np.ndarray, ImageBytes],
    detections: Iterable[Detection],
    *,
    display_table: Optional[Mapping[int, DisplayClass]] = None,
    jpeg_quality: int = 95,
) -> bytes:
    """
    Draw `detections` on a copy of `image` (encoded bytes or decoded BGR array) and return JPEG bytes.

    With no detections the output is the source image re-encoded.
    """

    image_bgr = image if isinstance(image, np.ndarray) else decode_image(image)
    vis = draw_detections(image_bgr, detections, display_table=display_table)
    return encode_jpeg(vis, quality=jpeg_quality)
