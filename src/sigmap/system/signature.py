# src/sigmap/system/signature.py
from __future__ import annotations

import logging
from typing import Dict, List, Mapping

import numpy as np

from .dirty import DirtyState
from .words import KeyPoint, Word, as_keypoint, as_point3
from ..geom.se3 import as_T, inv_T, transform_points
from ..modules.find_pairs import Pairer, find_pairs_unique

logger = logging.getLogger(__name__)


def check_calibration(depth, fx: float, fy: float, cx: float, cy: float) -> bytes:
    """Returns depth as bytes; raises ValueError if non-empty depth comes with bad intrinsics."""
    depth = bytes(depth)
    if len(depth) > 0 and not (fx > 0.0 and fy > 0.0 and cx >= 0.0 and cy >= 0.0):
        logger.warning("Rejected calibration for non-empty depth: fx=%f fy=%f cx=%f cy=%f", fx, fy, cx, cy)
        raise ValueError(f"fx={fx:f} fy={fy:f} cx={cx:f} cy={cy:f}")
    return depth


def _build_words(words: Mapping | None, words3: Mapping | None) -> Dict[int, List[Word]]:
    words = {wid: kps for wid, kps in (words or {}).items() if len(kps)}
    words3 = {wid: pts for wid, pts in (words3 or {}).items() if len(pts)}
    if words3 and set(words3) != set(words):
        raise ValueError(
            f"words3 ids {sorted(words3)} do not match words ids {sorted(words)}"
        )

    out: Dict[int, List[Word]] = {}
    for wid, kps in words.items():
        kps = [as_keypoint(kp) for kp in kps]
        if not words3:
            out[int(wid)] = [Word(kp) for kp in kps]
            continue
        pts = list(words3[wid])
        if len(pts) != len(kps):
            raise ValueError(
                f"Word {wid}: {len(kps)} keypoints but {len(pts)} 3D points"
            )
        out[int(wid)] = [Word(kp, as_point3(p)) for kp, p in zip(kps, pts)]
    return out


class Signature:
    """
    One keyframe of the map: visual words, raw sensor data and pose-graph edges.

    Owned and mutated by a single map store; no internal locking.

    Conventions:
      - words3 points are in the reference frame (local_transform applied)
      - image/depth are in the sensor frame, depth2d in the reference frame
      - edge transforms are 4x4 and stored as given
    """

    def __init__(
        self,
        id: int,
        map_id: int = 0,
        words: Mapping[int, list] | None = None,
        words3: Mapping[int, list] | None = None,
        pose: np.ndarray | None = None,
        depth2d: bytes = b"",
        image: bytes = b"",
        depth: bytes = b"",
        fx: float = 0.0,
        fy: float = 0.0,
        cx: float = 0.0,
        cy: float = 0.0,
        local_transform: np.ndarray | None = None,
        *,
        validate_depth: bool = False,
    ):
        depth = check_calibration(depth, fx, fy, cx, cy) if validate_depth else bytes(depth)

        self._id = int(id)
        self._map_id = int(map_id)
        self._weight = 0
        self._saved = False
        self._dirty = DirtyState.BOTH
        self._enabled = False

        self._words = _build_words(words, words3)
        self._words_changed: Dict[int, int] = {}

        self._neighbors: Dict[int, np.ndarray] = {}
        self._loop_closure_ids: Dict[int, np.ndarray] = {}
        self._child_loop_closure_ids: Dict[int, np.ndarray] = {}

        self._image = bytes(image)
        self._depth = depth
        self._depth2d = bytes(depth2d)
        self._fx = float(fx)
        self._fy = float(fy)
        self._cx = float(cx)
        self._cy = float(cy)
        self._pose = None if pose is None else as_T(pose).copy()
        self._local_transform = None if local_transform is None else as_T(local_transform).copy()

    def __repr__(self) -> str:
        return (
            f"Signature(id={self._id}, map_id={self._map_id}, words={self.words_count()}, "
            f"neighbors={len(self._neighbors)}, state={self._dirty.name})"
        )

    # --- identity / owner-controlled state

    @property
    def id(self) -> int:
        return self._id

    @property
    def map_id(self) -> int:
        return self._map_id

    @property
    def weight(self) -> int:
        return self._weight

    @weight.setter
    def weight(self, value: int) -> None:
        self._weight = int(value)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    @property
    def saved(self) -> bool:
        return self._saved

    @saved.setter
    def saved(self, value: bool) -> None:
        self._saved = bool(value)

    @property
    def dirty_state(self) -> DirtyState:
        return self._dirty

    @property
    def modified(self) -> bool:
        return self._dirty.content_dirty

    @property
    def neighbors_modified(self) -> bool:
        return self._dirty.edges_dirty

    def set_modified(self, modified: bool) -> None:
        """Set both dirty bits at once (owner calls set_modified(False) after saving)."""
        self._dirty = DirtyState.BOTH if modified else DirtyState.CLEAN

    def _mark_edges(self) -> None:
        self._dirty = self._dirty.with_edges()

    # --- sensor data

    @property
    def pose(self) -> np.ndarray | None:
        return None if self._pose is None else self._pose.copy()

    @property
    def local_transform(self) -> np.ndarray | None:
        return None if self._local_transform is None else self._local_transform.copy()

    @property
    def image(self) -> bytes:
        return self._image

    @property
    def depth(self) -> bytes:
        return self._depth

    @property
    def depth2d(self) -> bytes:
        return self._depth2d

    @property
    def intrinsics(self) -> tuple[float, float, float, float]:
        return self._fx, self._fy, self._cx, self._cy

    def camera_matrix(self) -> np.ndarray:
        return np.array(
            [[self._fx, 0.0, self._cx], [0.0, self._fy, self._cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def set_depth(self, depth: bytes, fx: float, fy: float, cx: float, cy: float) -> None:
        self._depth = check_calibration(depth, fx, fy, cx, cy)
        self._fx = float(fx)
        self._fy = float(fy)
        self._cx = float(cx)
        self._cy = float(cy)
        self._dirty = self._dirty.with_content()

    # --- neighbors

    @property
    def neighbors(self) -> Dict[int, np.ndarray]:
        return _copy_edges(self._neighbors)

    def has_neighbor(self, neighbor_id: int) -> bool:
        return neighbor_id in self._neighbors

    def add_neighbor(self, neighbor_id: int, transform: np.ndarray) -> None:
        logger.debug("Add neighbor %d to %d", neighbor_id, self._id)
        self._neighbors[int(neighbor_id)] = as_T(transform).copy()
        self._mark_edges()

    def add_neighbors(self, neighbors: Mapping[int, np.ndarray]) -> None:
        for neighbor_id, transform in neighbors.items():
            self.add_neighbor(neighbor_id, transform)

    def remove_neighbor(self, neighbor_id: int) -> None:
        if self._neighbors.pop(neighbor_id, None) is not None:
            self._mark_edges()

    def remove_neighbors(self) -> None:
        if self._neighbors:
            self._mark_edges()
        self._neighbors.clear()

    def change_neighbor_ids(self, id_from: int, id_to: int) -> None:
        if _move_edge(self._neighbors, id_from, id_to):
            self._mark_edges()
        logger.debug("(%d) neighbor ids changed from %d to %d", self._id, id_from, id_to)

    # --- loop closures

    @property
    def loop_closure_ids(self) -> Dict[int, np.ndarray]:
        return _copy_edges(self._loop_closure_ids)

    @property
    def child_loop_closure_ids(self) -> Dict[int, np.ndarray]:
        return _copy_edges(self._child_loop_closure_ids)

    def add_loop_closure_id(self, loop_closure_id: int, transform: np.ndarray) -> None:
        if _insert_edge(self._loop_closure_ids, loop_closure_id, transform):
            self._mark_edges()

    def add_child_loop_closure_id(self, child_loop_closure_id: int, transform: np.ndarray) -> None:
        if _insert_edge(self._child_loop_closure_ids, child_loop_closure_id, transform):
            self._mark_edges()

    def remove_loop_closure_id(self, loop_closure_id: int) -> None:
        if self._loop_closure_ids.pop(loop_closure_id, None) is not None:
            self._mark_edges()

    def remove_child_loop_closure_id(self, child_loop_closure_id: int) -> None:
        if self._child_loop_closure_ids.pop(child_loop_closure_id, None) is not None:
            self._mark_edges()

    def change_loop_closure_id(self, id_from: int, id_to: int) -> None:
        # Parent links only; child links are renumbered by their own parent.
        if _move_edge(self._loop_closure_ids, id_from, id_to):
            self._mark_edges()
        logger.debug("(%d) loop closure ids changed from %d to %d", self._id, id_from, id_to)

    # --- words

    @property
    def words(self) -> Dict[int, List[KeyPoint]]:
        return {wid: [w.kp for w in ws] for wid, ws in sorted(self._words.items())}

    @property
    def words3(self) -> Dict[int, List[np.ndarray]]:
        return {
            wid: [w.xyz.copy() for w in ws]
            for wid, ws in sorted(self._words.items())
            if ws[0].xyz is not None
        }

    @property
    def words_changed(self) -> Dict[int, int]:
        return dict(self._words_changed)

    def word_entries(self, word_id: int) -> List[Word]:
        return [
            Word(w.kp, None if w.xyz is None else w.xyz.copy())
            for w in self._words.get(word_id, ())
        ]

    def word_ids(self) -> List[int]:
        return sorted(self._words)

    def words_count(self) -> int:
        return sum(len(ws) for ws in self._words.values())

    def is_bad_signature(self) -> bool:
        return not self._words

    def remove_word(self, word_id: int) -> None:
        self._words.pop(word_id, None)

    def remove_all_words(self) -> None:
        self._words.clear()

    def change_words_ref(self, old_word_id: int, active_word_id: int) -> None:
        moved = self._words.pop(old_word_id, None)
        if not moved:
            return
        self._words.setdefault(int(active_word_id), []).extend(moved)
        self._words_changed.setdefault(int(old_word_id), int(active_word_id))
        logger.debug(
            "(%d) word %d -> %d (%d detections)", self._id, old_word_id, active_word_id, len(moved)
        )

    def words3_in_sensor_frame(self) -> Dict[int, np.ndarray]:
        """words3 mapped back to the sensor frame, one (N,3) array per id."""
        T = np.eye(4) if self._local_transform is None else inv_T(self._local_transform)
        return {wid: transform_points(T, np.stack(pts)) for wid, pts in self.words3.items()}

    # --- similarity

    def compare_to(self, other: "Signature", pairer: Pairer | None = None) -> float:
        """
        Overlap ratio in [0,1]: unambiguous shared words over the larger word count.

        Symmetric only when the pairer's output size does not depend on
        argument order (true for the pairers in modules.find_pairs).
        """
        if self.is_bad_signature() or other.is_bad_signature():
            return 0.0
        pairer = find_pairs_unique if pairer is None else pairer
        pairs = pairer(other.words, self.words)
        total = max(self.words_count(), other.words_count())
        return float(len(pairs)) / float(total)


def _copy_edges(edges: Dict[int, np.ndarray]) -> Dict[int, np.ndarray]:
    return {k: T.copy() for k, T in sorted(edges.items())}


def _insert_edge(edges: Dict[int, np.ndarray], edge_id: int, transform: np.ndarray) -> bool:
    # 0 means "no link"
    if not edge_id or edge_id in edges:
        return False
    edges[int(edge_id)] = as_T(transform).copy()
    return True


def _move_edge(edges: Dict[int, np.ndarray], id_from: int, id_to: int) -> bool:
    T = edges.pop(id_from, None)
    if T is None:
        return False
    # an existing edge under id_to wins
    edges.setdefault(int(id_to), T)
    return True
