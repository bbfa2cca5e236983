from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple, Union

from .visualize import DisplayClass, _color_for_class_id


PathLike = Union[str, Path]


def _read_sections(metadata_path: PathLike) -> Dict[str, Dict[int, str]]:
    """
    Parse the lightweight `metadata.yaml` format exported next to the model:

        names:
          0: cross
          1: excopper
        colors:
          0: 255,0,0

    Only top-level `key:` blocks with `id: value` entries are read. This keeps
    the loader free of a YAML dependency.
    """

    sections: Dict[str, Dict[int, str]] = {}
    current = None

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if not raw[:1].isspace() and line.endswith(":"):
                current = sections.setdefault(line[:-1].strip(), {})
                continue
            if current is None or ":" not in line:
                continue

            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            current[int(left)] = right

    return sections


def load_class_names(metadata_path: PathLike) -> Dict[int, str]:
    return dict(_read_sections(metadata_path).get("names", {}))


def _parse_color(value: str) -> Tuple[int, int, int]:
    parts = [p.strip() for p in value.strip("[]()").split(",")]
    if len(parts) != 3:
        raise ValueError(f"Color must be 'r,g,b', got {value!r}")
    rgb = tuple(int(p) for p in parts)
    if any(c < 0 or c > 255 for c in rgb):
        raise ValueError(f"Color components must be within [0, 255], got {value!r}")
    return rgb  # type: ignore[return-value]


def load_class_colors(metadata_path: PathLike) -> Dict[int, Tuple[int, int, int]]:
    return {cid: _parse_color(v) for cid, v in _read_sections(metadata_path).get("colors", {}).items()}


def display_table_from_metadata(metadata_path: PathLike) -> Dict[int, DisplayClass]:
    """
    Build a display table from `names:` (and optional `colors:`, RGB).

    Classes without a color fall back to the default palette.
    """

    sections = _read_sections(metadata_path)
    colors = {cid: _parse_color(v) for cid, v in sections.get("colors", {}).items()}
    table: Dict[int, DisplayClass] = {}
    for cid, name in sections.get("names", {}).items():
        if cid in colors:
            rgb = colors[cid]
        else:
            b, g, r = _color_for_class_id(cid)
            rgb = (r, g, b)
        table[cid] = DisplayClass(name=name, color=rgb)
    return table
