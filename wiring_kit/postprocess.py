from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from .tensors import OutputTensor
from .types import Detection


@dataclass(frozen=True)
class DecodeConfig:
    """
    Settings for turning the raw (1, 4 + K, N) head output into candidate boxes.
    """

    conf_threshold: float = 0.05
    input_size: int = 640
    num_classes: int = 80

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if self.input_size < 1:
            raise ValueError("input_size must be >= 1")
        if self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")


class OutputDecoder:
    """
    Decoder for anchor-free YOLO heads exported as (1, 4 + K, N).

    For each candidate the best class is picked by argmax over the K score rows
    (ties go to the lowest class id), candidates below the confidence threshold
    are dropped and the surviving cx/cy/w/h boxes are converted to corners and
    rescaled from the S x S model space to the original image size.

    No clipping or de-duplication happens here; see `nms.suppress_per_class`.
    """

    def __init__(self, cfg: DecodeConfig = DecodeConfig()):
        self.cfg = cfg

    def process(
        self,
        preds: Union[OutputTensor, np.ndarray],
        orig_size: Tuple[int, int],
        conf_threshold: Optional[float] = None,
    ) -> List[Detection]:
        """
        Args:
            preds: model output for a single image
            orig_size: (width, height) of the source image
            conf_threshold: overrides `cfg.conf_threshold` for this call

        Returns candidates in decode order (index order of the N axis).
        """

        boxes_xyxy, scores, class_ids = self.decode(preds, orig_size, conf_threshold)
        return [
            Detection(
                x1=float(x1),
                y1=float(y1),
                x2=float(x2),
                y2=float(y2),
                confidence=float(score),
                class_id=int(cls_id),
            )
            for (x1, y1, x2, y2), score, cls_id in zip(boxes_xyxy, scores, class_ids)
        ]

    def decode(
        self,
        preds: Union[OutputTensor, np.ndarray],
        orig_size: Tuple[int, int],
        conf_threshold: Optional[float] = None,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Array form of `process`: returns (boxes_xyxy (M, 4), scores (M,), class_ids (M,)).
        """

        tensor = preds if isinstance(preds, OutputTensor) else OutputTensor(np.asarray(preds), self.cfg.num_classes)
        if tensor.num_classes != self.cfg.num_classes:
            raise ValueError(
                f"Decoder configured for {self.cfg.num_classes} classes, tensor has {tensor.num_classes}"
            )

        threshold = self.cfg.conf_threshold if conf_threshold is None else float(conf_threshold)

        # Scores are compared in the precision they are reported in.
        class_scores = tensor.class_scores.astype(np.float64)
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(class_scores.shape[1])]

        boxes = tensor.boxes_cxcywh.astype(np.float64)
        keep = (scores >= threshold) & np.all(np.isfinite(boxes), axis=0)
        if not np.any(keep):
            return np.empty((0, 4), dtype=np.float64), np.empty((0,), dtype=np.float64), np.empty((0,), dtype=np.int64)

        cx, cy, w_box, h_box = boxes[:, keep]
        boxes_xyxy = np.stack([cx - w_box / 2, cy - h_box / 2, cx + w_box / 2, cy + h_box / 2], axis=1)
        boxes_xyxy = self._scale_boxes(boxes_xyxy, orig_size)

        return boxes_xyxy, scores[keep], class_ids[keep]

    def _scale_boxes(self, boxes: np.ndarray, orig_size: Tuple[int, int]) -> np.ndarray:
        """
        Map boxes from the stretched S x S input back to original image pixels.
        """

        orig_w, orig_h = orig_size
        size = float(self.cfg.input_size)
        boxes[:, [0, 2]] *= orig_w / size
        boxes[:, [1, 3]] *= orig_h / size
        return boxes
