# src/sigmap/modules/find_pairs.py
from __future__ import annotations

from typing import Callable, List, Mapping, Sequence, Tuple

import numpy as np

from ..system.words import KeyPoint, keypoints_to_array

WordsView = Mapping[int, Sequence[KeyPoint]]
Pair = Tuple[int, KeyPoint, KeyPoint]
Pairer = Callable[[WordsView, WordsView], List[Pair]]


def find_pairs_unique(words_a: WordsView, words_b: WordsView) -> List[Pair]:
    """
    Pair words whose identifier is unambiguous on both sides.

    Args:
        words_a, words_b: id -> detections (multi-valued).

    Returns:
        List of (id, kp_a, kp_b), sorted by id. An id detected more than once
        on either side is skipped, so at most one pair exists per id.
    """
    pairs: List[Pair] = []
    for wid in sorted(set(words_a) & set(words_b)):
        kps_a = words_a[wid]
        kps_b = words_b[wid]
        if len(kps_a) == 1 and len(kps_b) == 1:
            pairs.append((wid, kps_a[0], kps_b[0]))
    return pairs


def find_pairs_first(words_a: WordsView, words_b: WordsView) -> List[Pair]:
    """
    Pair the first detection of every identifier present on both sides.

    Repeated detections are resolved by keeping the earliest one, which keeps
    the one-pair-per-id contract while tolerating ambiguous words.
    """
    pairs: List[Pair] = []
    for wid in sorted(set(words_a) & set(words_b)):
        kps_a = words_a[wid]
        kps_b = words_b[wid]
        if kps_a and kps_b:
            pairs.append((wid, kps_a[0], kps_b[0]))
    return pairs


PAIRERS: dict[str, Pairer] = {
    "unique": find_pairs_unique,
    "first": find_pairs_first,
}


def get_pairer(name: str) -> Pairer:
    try:
        return PAIRERS[name]
    except KeyError:
        raise ValueError(f"Unknown pairer '{name}', expected one of {sorted(PAIRERS)}") from None


def pairs_to_points(pairs: Sequence[Pair]) -> tuple[np.ndarray, np.ndarray]:
    """
    Returns:
        pts_a: (N,2) float32 pixel coords of the first side
        pts_b: (N,2) float32 pixel coords of the second side
    """
    pts_a = keypoints_to_array(p[1] for p in pairs)
    pts_b = keypoints_to_array(p[2] for p in pairs)
    return pts_a, pts_b
