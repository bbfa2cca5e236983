from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .aggregate import WIRING_CATEGORIES
from .nms import NMSConfig, SuppressionRule
from .postprocess import DecodeConfig
from .visualize import WIRING_DISPLAY, DisplayClass


@dataclass(frozen=True)
class EngineConfig:
    input_size: int = 640
    num_classes: int = 80
    conf_threshold: float = 0.05
    iou_threshold: float = 0.3
    suppression_rule: SuppressionRule = SuppressionRule.GREATER
    category_table: Dict[int, str] = field(default_factory=lambda: dict(WIRING_CATEGORIES))
    display_table: Dict[int, DisplayClass] = field(default_factory=lambda: dict(WIRING_DISPLAY))
    jpeg_quality: int = 95
    input_name: Optional[str] = None
    output_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        try:
            object.__setattr__(self, "suppression_rule", SuppressionRule(self.suppression_rule))
        except ValueError as exc:
            raise ValueError("suppression_rule must be 'gt' or 'ge'") from exc
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be within [1, 100]")
        for cid in list(self.category_table) + list(self.display_table):
            if not 0 <= cid < self.num_classes:
                raise ValueError(f"class id {cid} is outside [0, {self.num_classes})")

    def decode_config(self, conf_threshold: Optional[float] = None) -> DecodeConfig:
        return DecodeConfig(
            conf_threshold=self.conf_threshold if conf_threshold is None else float(conf_threshold),
            input_size=self.input_size,
            num_classes=self.num_classes,
        )

    def nms_config(self, iou_threshold: Optional[float] = None) -> NMSConfig:
        return NMSConfig(
            iou_threshold=self.iou_threshold if iou_threshold is None else float(iou_threshold),
            rule=self.suppression_rule,
        )


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _class_id(key: str, table: str) -> int:
    try:
        return int(key)
    except ValueError as exc:
        raise ValueError(f"{table} keys must be integer class ids, got {key!r}") from exc


def _parse_category_table(value: Any) -> Dict[int, str]:
    if not isinstance(value, dict):
        raise ValueError("category_table must be an object")
    table: Dict[int, str] = {}
    for key, name in value.items():
        if not isinstance(name, str) or not name.strip():
            raise ValueError("category_table values must be non-empty strings")
        table[_class_id(key, "category_table")] = name.strip()
    return table


def _parse_display_table(value: Any) -> Dict[int, DisplayClass]:
    if not isinstance(value, dict):
        raise ValueError("display_table must be an object")
    table: Dict[int, DisplayClass] = {}
    for key, entry in value.items():
        if not isinstance(entry, dict) or set(entry.keys()) != {"name", "color"}:
            raise ValueError("display_table entries must be objects with 'name' and 'color'")
        name, color = entry["name"], entry["color"]
        if not isinstance(name, str) or not name.strip():
            raise ValueError("display_table names must be non-empty strings")
        if (
            not isinstance(color, list)
            or len(color) != 3
            or any(isinstance(c, bool) or not isinstance(c, int) or not 0 <= c <= 255 for c in color)
        ):
            raise ValueError("display_table colors must be [r, g, b] integers within [0, 255]")
        table[_class_id(key, "display_table")] = DisplayClass(name=name.strip(), color=tuple(color))
    return table


def load_engine_profile(path: Path) -> EngineConfig:
    """
    Load an EngineConfig from a JSON profile. Keys that are omitted keep their defaults.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Engine profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid engine profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Engine profile must be a JSON object")

    allowed = {
        "schema_version",
        "input_size",
        "num_classes",
        "conf_threshold",
        "iou_threshold",
        "suppression_rule",
        "category_table",
        "display_table",
        "jpeg_quality",
        "input_name",
        "output_name",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown engine profile keys: {unknown}")

    if _require_int(payload, "schema_version") != 1:
        raise ValueError("engine profile schema_version must be 1")

    kwargs: Dict[str, Any] = {}
    for key in ("input_size", "num_classes", "jpeg_quality"):
        if key in payload:
            kwargs[key] = _require_int(payload, key)
    for key in ("conf_threshold", "iou_threshold"):
        if key in payload:
            kwargs[key] = _require_number(payload, key)
    for key in ("suppression_rule", "input_name", "output_name"):
        if key in payload and payload[key] is not None:
            value = payload[key]
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{key} must be a non-empty string")
            kwargs[key] = value.strip()
    if "category_table" in payload:
        kwargs["category_table"] = _parse_category_table(payload["category_table"])
    if "display_table" in payload:
        kwargs["display_table"] = _parse_display_table(payload["display_table"])

    return EngineConfig(**kwargs)
