# src/sigmap/system/words.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

import cv2
import numpy as np


@dataclass(frozen=True)
class KeyPoint:
    """2D feature location, mirrors the fields of cv2.KeyPoint."""
    x: float
    y: float
    size: float = 1.0
    angle: float = -1.0
    response: float = 0.0
    octave: int = 0
    class_id: int = -1

    @property
    def pt(self) -> tuple[float, float]:
        return (self.x, self.y)

    @classmethod
    def from_cv(cls, kp) -> "KeyPoint":
        return cls(
            x=float(kp.pt[0]),
            y=float(kp.pt[1]),
            size=float(kp.size),
            angle=float(kp.angle),
            response=float(kp.response),
            octave=int(kp.octave),
            class_id=int(kp.class_id),
        )

    def to_cv(self) -> cv2.KeyPoint:
        return cv2.KeyPoint(
            self.x, self.y, self.size, self.angle, self.response, self.octave, self.class_id
        )


def as_keypoint(kp) -> KeyPoint:
    if isinstance(kp, KeyPoint):
        return kp
    if hasattr(kp, "pt"):
        return KeyPoint.from_cv(kp)
    raise TypeError(f"Cannot interpret {type(kp).__name__} as a keypoint")


@dataclass(frozen=True, eq=False)
class Word:
    """One detection of a visual word: 2D keypoint plus optional 3D point.

    xyz is expressed in the reference frame (local transform already applied).
    """
    kp: KeyPoint
    xyz: np.ndarray | None = None


def as_point3(p) -> np.ndarray:
    # pcl::PointXYZ style: float32 x,y,z
    return np.asarray(p, dtype=np.float32).reshape(3)


def keypoints_to_array(kps: Iterable[KeyPoint]) -> np.ndarray:
    """(N,2) float32 pixel coords, same layout as the matcher outputs."""
    pts: List[tuple[float, float]] = [kp.pt for kp in kps]
    if not pts:
        return np.zeros((0, 2), np.float32)
    return np.array(pts, dtype=np.float32)
