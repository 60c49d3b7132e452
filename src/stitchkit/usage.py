"""
Thread usage estimate from stitch counts.

Stitches are converted to canvas area (mesh² stitches per square inch) and
multiplied by a thread consumption rate per square inch for the mesh and
stitch type.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

# Yards of thread per square inch of canvas
YARDS_PER_SQ_IN: Dict[int, Dict[str, float]] = {
    14: {"continental": 2.1, "basketweave": 2.4},
    18: {"continental": 2.7, "basketweave": 3.1},
}

# DMC Pearl Cotton #5 skein length
SKEIN_YARDS = 27

# At or below this many yards the thread is wound from stock instead of a full skein
FULL_SKEIN_THRESHOLD = 4.0


@dataclass
class ThreadUsage:
    """Estimated usage of one thread color."""
    code: str
    stitch_count: int
    square_inches: float
    yards: float
    yards_with_buffer: float
    skeins_needed: int
    uses_full_skein: bool

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "stitch_count": self.stitch_count,
            "square_inches": self.square_inches,
            "yards": self.yards,
            "yards_with_buffer": self.yards_with_buffer,
            "skeins_needed": self.skeins_needed,
            "uses_full_skein": self.uses_full_skein,
        }


def calculate_yarn_usage(stitch_counts: Mapping[str, int], mesh_count: int = 14,
                         stitch_type: str = "continental", buffer_percent: float = 20.0,
                         rates: Optional[Dict[int, Dict[str, float]]] = None) -> List[ThreadUsage]:
    """
    Estimate thread per color.

    Args:
        stitch_counts: Thread code -> number of stitches
        mesh_count: Canvas mesh, 14 or 18 holes per inch
        stitch_type: "continental" or "basketweave"
        buffer_percent: Extra thread added on top of the estimate

    Returns:
        One ThreadUsage per color, most stitched first
    """
    rates = rates or YARDS_PER_SQ_IN
    if mesh_count not in rates:
        raise ValueError(f"Unsupported mesh count: {mesh_count}")
    if stitch_type not in rates[mesh_count]:
        raise ValueError(f"Unknown stitch type: {stitch_type}")

    yards_per_sq_in = rates[mesh_count][stitch_type]
    stitches_per_sq_in = mesh_count * mesh_count

    results = []
    for code, stitch_count in stitch_counts.items():
        square_inches = stitch_count / stitches_per_sq_in
        yards = square_inches * yards_per_sq_in
        with_buffer = yards * (1 + buffer_percent / 100.0)

        uses_full_skein = with_buffer > FULL_SKEIN_THRESHOLD
        skeins = math.ceil(with_buffer / SKEIN_YARDS) if uses_full_skein else 1

        results.append(ThreadUsage(
            code=code,
            stitch_count=int(stitch_count),
            square_inches=round(square_inches, 2),
            yards=round(yards, 2),
            yards_with_buffer=round(with_buffer, 2),
            skeins_needed=skeins,
            uses_full_skein=uses_full_skein,
        ))

    results.sort(key=lambda u: u.stitch_count, reverse=True)
    return results


def usage_for_grid(grid, palette, **kwargs) -> List[ThreadUsage]:
    """Usage estimate straight from a grid (thread ids resolved to codes)."""
    counts = {}
    for color_id, count in grid.count_by_color().items():
        color = palette.get(color_id)
        if color is not None:
            counts[color.code] = count
    return calculate_yarn_usage(counts, **kwargs)


def total_yards(usages: List[ThreadUsage]) -> float:
    return sum(u.yards_with_buffer for u in usages)


def total_skeins(usages: List[ThreadUsage]) -> int:
    return sum(u.skeins_needed for u in usages)


def total_stitches(usages: List[ThreadUsage]) -> int:
    return sum(u.stitch_count for u in usages)
