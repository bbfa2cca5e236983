from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class Detection:
    """
    One decoded candidate box in original image pixel coordinates.

    Coordinates are not clamped to the image bounds, boxes near the border may
    extend slightly outside of it.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_id: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def area(self) -> float:
        return max(0.0, self.x2 - self.x1) * max(0.0, self.y2 - self.y1)

    def as_dict(self) -> Dict[str, float]:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "confidence": self.confidence,
            "class_id": self.class_id,
        }
