from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .types import Detection


class SuppressionRule(str, Enum):
    """
    Comparison that makes a lower-scored box get suppressed.

    GREATER ("gt") suppresses when IoU > threshold, so a pair sitting exactly at
    the threshold is kept. GREATER_EQUAL ("ge") also suppresses at equality.
    """

    GREATER = "gt"
    GREATER_EQUAL = "ge"


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.3
    rule: SuppressionRule = SuppressionRule.GREATER
    # None keeps every survivor.
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        object.__setattr__(self, "rule", SuppressionRule(self.rule))
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 (or None)")


def box_iou(a: Sequence[float], b: Sequence[float]) -> float:
    """
    IoU of two xyxy boxes. Returns 0.0 when the union area is not positive.
    """

    ax1, ay1, ax2, ay2 = a
    bx1, by1, bx2, by2 = b
    inter = max(0.0, min(ax2, bx2) - max(ax1, bx1)) * max(0.0, min(ay2, by2) - max(ay1, by1))
    union = (ax2 - ax1) * (ay2 - ay1) + (bx2 - bx1) * (by2 - by1) - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def pairwise_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU between one xyxy box (4,) and each row of `boxes` (M, 4).
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter
    out = np.zeros(inter.shape, dtype=np.float64)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NMS over a single class. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first. Equal scores keep input order.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    boxes = np.asarray(boxes, dtype=np.float64)
    order = np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")
    keep: List[int] = []

    while order.size > 0:
        i = order[0]
        keep.append(int(i))
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break

        iou = pairwise_iou(boxes[i], boxes[order[1:]])
        if cfg.rule is SuppressionRule.GREATER:
            inds = np.where(iou <= cfg.iou_threshold)[0]
        else:
            inds = np.where(iou < cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


def partition_by_class(class_ids: np.ndarray) -> Dict[int, np.ndarray]:
    """
    Group candidate indices by class id. Indices inside a group stay in input order.
    """

    class_ids = np.asarray(class_ids)
    return {int(cls): np.flatnonzero(class_ids == cls) for cls in np.unique(class_ids)}


def _suppress_group(args: Tuple[np.ndarray, np.ndarray, np.ndarray, NMSConfig]) -> np.ndarray:
    idx, boxes, scores, cfg = args
    return idx[nms(boxes[idx], scores[idx], cfg)]


def suppress_per_class(
    detections: Sequence[Detection],
    cfg: NMSConfig = NMSConfig(),
    executor: Optional[Executor] = None,
) -> List[Detection]:
    """
    Per-class NMS: boxes of different classes never suppress each other.

    Survivors of all classes are merged and ordered by descending confidence,
    ties broken by input order. Passing an `executor` runs the class groups
    concurrently; the output is the same either way.
    """

    if not detections:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)

    jobs = [(idx, boxes, scores, cfg) for idx in partition_by_class(class_ids).values()]
    if executor is not None:
        results = list(executor.map(_suppress_group, jobs))
    else:
        results = [_suppress_group(job) for job in jobs]

    kept = sorted((int(i) for r in results for i in r), key=lambda i: (-scores[i], i))
    if cfg.max_detections is not None:
        kept = kept[: cfg.max_detections]
    return [detections[i] for i in kept]
