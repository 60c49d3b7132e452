"""
DMC Pearl Cotton thread catalog and CIE76 nearest-color matching.
"""

import csv
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .color_math import delta_e76, hex_to_rgb, rgb_to_lab

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "dmc_pearl_cotton.csv")

# Ties closer than this are treated as equidistant
TIE_EPSILON = 1e-9


@dataclass(frozen=True)
class ThreadColor:
    """A single catalog thread: id is its position in the catalog."""
    id: int
    code: str
    name: str
    rgb: Tuple[int, int, int]
    lab: Tuple[float, float, float]

    @property
    def hex(self) -> str:
        return f"#{self.rgb[0]:02X}{self.rgb[1]:02X}{self.rgb[2]:02X}"


class ThreadPalette:
    """Read-only, ordered thread catalog with precomputed Lab coordinates."""

    def __init__(self, colors: Iterable[Tuple[str, str, Tuple[int, int, int]]]):
        """
        Build the catalog from (code, name, rgb) triples.

        Ids are assigned by position, so the order of the input is the
        catalog order.
        """
        self.colors: List[ThreadColor] = []
        self.code_lookup: Dict[str, ThreadColor] = {}

        entries = list(colors)
        if entries:
            rgb_array = np.array([rgb for _, _, rgb in entries], dtype=np.float64)
            lab_array = rgb_to_lab(rgb_array)
        else:
            lab_array = np.zeros((0, 3))

        for idx, ((code, name, rgb), lab) in enumerate(zip(entries, lab_array)):
            color = ThreadColor(
                id=idx,
                code=code,
                name=name,
                rgb=tuple(int(c) for c in rgb),
                lab=tuple(float(v) for v in lab),
            )
            self.colors.append(color)
            self.code_lookup[code.upper()] = color

        self.lab_array = lab_array.reshape(-1, 3)
        self.rgb_array = np.array([c.rgb for c in self.colors], dtype=np.float64).reshape(-1, 3)

    @classmethod
    def from_csv(cls, csv_path: str) -> "ThreadPalette":
        """Load a catalog from a ``code,name,hex`` CSV file, skipping malformed rows."""
        if not os.path.exists(csv_path):
            raise FileNotFoundError(f"Thread catalog not found: {csv_path}")

        entries = []
        seen = set()
        with open(csv_path, "r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            for line_no, row in enumerate(reader, start=2):
                try:
                    code = (row.get("code") or "").strip()
                    if not code:
                        raise ValueError("missing code")
                    if code.upper() in seen:
                        raise ValueError(f"duplicate code {code}")
                    name = (row.get("name") or "").strip()
                    rgb = hex_to_rgb(row.get("hex") or "")
                except (ValueError, AttributeError) as e:
                    logger.warning("Skipping invalid catalog entry on line %d: %s", line_no, e)
                    continue
                seen.add(code.upper())
                entries.append((code, name, rgb))

        palette = cls(entries)
        logger.debug("Loaded %d thread colors from %s", len(palette), csv_path)
        return palette

    def __len__(self) -> int:
        return len(self.colors)

    def __iter__(self) -> Iterator[ThreadColor]:
        return iter(self.colors)

    def get(self, color_id: int) -> Optional[ThreadColor]:
        """Get a thread by id, or None for empty/unknown ids."""
        if 0 <= color_id < len(self.colors):
            return self.colors[color_id]
        return None

    def get_color_by_code(self, code: str) -> Optional[ThreadColor]:
        return self.code_lookup.get(code.strip().upper())

    def subset(self, codes: Iterable[str]) -> List[ThreadColor]:
        """Threads for the given codes in the given order; unknown codes are skipped."""
        result = []
        for code in codes:
            color = self.get_color_by_code(code)
            if color is None:
                logger.warning("Unknown thread code %r ignored", code)
                continue
            if color not in result:
                result.append(color)
        return result

    def search(self, query: str) -> List[ThreadColor]:
        """Case-insensitive search over names and codes."""
        needle = query.strip().lower()
        return [
            c for c in self.colors
            if needle in c.name.lower() or needle in c.code.lower()
        ]

    def export_to_dict(self) -> dict:
        return {
            color.code: {
                "id": color.id,
                "name": color.name,
                "rgb": color.rgb,
                "hex": color.hex,
                "lab": color.lab,
            }
            for color in self.colors
        }


class TieBreakPolicy:
    """Chooses a winner among candidates that share the minimum distance."""

    def choose(self, tied: Sequence[ThreadColor]) -> ThreadColor:
        return tied[0]


class PreferredCodeTieBreak(TieBreakPolicy):
    """Prefer specific catalog codes (by default the canonical white) on ties."""

    def __init__(self, preferred_codes: Sequence[str] = ("B5200",)):
        self.preferred_codes = [code.upper() for code in preferred_codes]

    def choose(self, tied: Sequence[ThreadColor]) -> ThreadColor:
        for code in self.preferred_codes:
            for color in tied:
                if color.code.upper() == code:
                    return color
        return tied[0]


class PaletteMatcher:
    """Linear-scan nearest thread search using CIE76 in Lab space."""

    def __init__(self, palette: ThreadPalette, tie_break: Optional[TieBreakPolicy] = None):
        self.palette = palette
        self.tie_break = tie_break or PreferredCodeTieBreak()

    def _candidates(self, candidates: Optional[Sequence[ThreadColor]]) -> Sequence[ThreadColor]:
        if candidates is None:
            candidates = self.palette.colors
        if not candidates:
            raise ValueError("No candidate colors to match against")
        return candidates

    def nearest_lab(self, lab, candidates: Optional[Sequence[ThreadColor]] = None) -> ThreadColor:
        """Find the nearest candidate to a Lab color."""
        candidates = self._candidates(candidates)
        candidate_lab = np.array([c.lab for c in candidates])
        distances = delta_e76(candidate_lab, np.asarray(lab, dtype=np.float64))

        best = float(distances.min())
        tied = [c for c, d in zip(candidates, distances) if d - best <= TIE_EPSILON]
        if len(tied) == 1:
            return tied[0]
        return self.tie_break.choose(tied)

    def nearest(self, rgb, candidates: Optional[Sequence[ThreadColor]] = None) -> ThreadColor:
        """Find the nearest candidate (full catalog by default) to an sRGB color."""
        return self.nearest_lab(rgb_to_lab(rgb), candidates)

    def nearest_indices_lab(self, labs: np.ndarray,
                            candidates: Optional[Sequence[ThreadColor]] = None) -> np.ndarray:
        """
        Vectorised nearest search.

        Args:
            labs: Lab colors of shape (N, 3)
            candidates: Colors to choose from (defaults to the full catalog)

        Returns:
            Array of N indices into ``candidates``
        """
        candidates = self._candidates(candidates)
        labs = np.asarray(labs, dtype=np.float64).reshape(-1, 3)
        if len(labs) == 0:
            return np.zeros(0, dtype=np.int64)

        candidate_lab = np.array([c.lab for c in candidates])
        distances = delta_e76(labs[:, np.newaxis, :], candidate_lab[np.newaxis, :, :])
        best = distances.min(axis=1)
        indices = np.argmin(distances, axis=1)

        # Resolve ties only for rows that actually have more than one minimum
        tied_mask = (distances - best[:, np.newaxis]) <= TIE_EPSILON
        for row in np.nonzero(tied_mask.sum(axis=1) > 1)[0]:
            tied = [candidates[i] for i in np.nonzero(tied_mask[row])[0]]
            winner = self.tie_break.choose(tied)
            indices[row] = next(i for i, c in enumerate(candidates) if c is winner)

        return indices

    def nearest_indices(self, rgb_array: np.ndarray,
                        candidates: Optional[Sequence[ThreadColor]] = None) -> np.ndarray:
        return self.nearest_indices_lab(rgb_to_lab(np.asarray(rgb_array, dtype=np.float64).reshape(-1, 3)), candidates)


# Global palette instance
_thread_palette: Optional[ThreadPalette] = None


def get_thread_palette(csv_path: Optional[str] = None) -> ThreadPalette:
    """Get the shared catalog; a custom path always loads a fresh catalog."""
    global _thread_palette
    if csv_path is not None and os.path.abspath(csv_path) != DEFAULT_CATALOG:
        return ThreadPalette.from_csv(csv_path)
    if _thread_palette is None:
        _thread_palette = ThreadPalette.from_csv(DEFAULT_CATALOG)
    return _thread_palette


def nearest_thread(rgb, candidates: Optional[Sequence[ThreadColor]] = None) -> ThreadColor:
    """Find the nearest thread to an sRGB color using the shared catalog."""
    return PaletteMatcher(get_thread_palette()).nearest(rgb, candidates)
