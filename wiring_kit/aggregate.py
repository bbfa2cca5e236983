from __future__ import annotations

from typing import Dict, Iterable, Mapping, Sequence

from .types import Detection


# Class ids of the wiring model mapped to the counted categories.
WIRING_CATEGORIES: Dict[int, str] = {
    3: "sleeves",
    0: "cross",
    1: "excopper",
    2: "exterminal",
}


def count_categories(detections: Iterable[Detection], category_table: Mapping[int, str]) -> Dict[str, int]:
    """
    Count surviving detections per category.

    Every category named in `category_table` is present in the result, starting
    at 0. Several class ids may share one category. Detections whose class id
    is not in the table are not counted.
    """

    counts: Dict[str, int] = {name: 0 for name in category_table.values()}
    for det in detections:
        name = category_table.get(det.class_id)
        if name is not None:
            counts[name] += 1
    return counts


def category_table_from_names(names: Mapping[int, str], tracked: Sequence[int]) -> Dict[int, str]:
    """
    Build a category table from a full class-name mapping, keeping only `tracked` ids.

    Useful with an 80-class metadata file where only a handful of ids are counted.
    """

    missing = [cid for cid in tracked if cid not in names]
    if missing:
        raise KeyError(f"Tracked class ids not in class names: {missing}")
    return {int(cid): names[cid] for cid in tracked}


def with_count_suffix(counts: Mapping[str, int], suffix: str = "_num") -> Dict[str, int]:
    return {f"{name}{suffix}": int(value) for name, value in counts.items()}
