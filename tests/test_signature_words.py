import numpy as np
import pytest

from sigmap.geom.se3 import Rt_to_T
from sigmap.system.dirty import DirtyState
from sigmap.system.signature import Signature
from sigmap.system.words import KeyPoint


def kps(n: int, base: float = 0.0) -> list[KeyPoint]:
    return [KeyPoint(base + i, base + i) for i in range(n)]


class TestWords:
    def test_scenario_change_words_ref(self, node, kp1, kp2):
        assert node.is_bad_signature() is False
        node.change_words_ref(5, 9)
        assert set(node.words) == {7, 9}
        assert node.words[9] == [kp1]
        assert node.words[7] == [kp2]
        assert node.words_changed == {5: 9}

    def test_bad_signature_iff_no_words(self, node):
        assert Signature(2).is_bad_signature()
        assert Signature(2, words={3: []}).is_bad_signature()
        node.remove_all_words()
        assert node.is_bad_signature()

    def test_change_words_ref_preserves_counts(self):
        s = Signature(1, words={1: kps(3), 2: kps(2, 10.0)})
        s.change_words_ref(1, 2)
        assert len(s.words[2]) == 5
        assert 1 not in s.words
        assert s.words_count() == 5
        # existing detections keep their place, moved ones are appended
        assert s.words[2] == kps(2, 10.0) + kps(3)

    def test_change_words_ref_unknown_is_noop(self, node):
        before = node.words
        node.change_words_ref(42, 9)
        assert node.words == before
        assert node.words_changed == {}

    def test_ledger_grows_once_per_remap(self):
        s = Signature(1, words={1: kps(1), 2: kps(1, 5.0), 3: kps(1, 9.0)})
        s.change_words_ref(1, 3)
        s.change_words_ref(2, 3)
        s.change_words_ref(1, 4)  # 1 has no entries anymore
        assert s.words_changed == {1: 3, 2: 3}

    def test_ledger_keeps_first_target(self):
        s = Signature(1, words={1: kps(1), 3: kps(1, 5.0)})
        s.change_words_ref(1, 3)
        s.change_words_ref(3, 1)
        s.change_words_ref(1, 4)
        assert s.words_changed[1] == 3
        assert s.words_changed[3] == 1
        assert list(s.words) == [4]

    def test_remove_all_words_clears_3d(self):
        s = Signature(1, words={1: kps(2), 2: kps(1, 7.0)}, words3={1: [[0, 0, 1]] * 2, 2: [[0, 0, 2]]})
        s.set_modified(False)
        s.remove_all_words()
        assert s.words == {}
        assert s.words3 == {}
        assert s.is_bad_signature()
        assert s.dirty_state is DirtyState.CLEAN

    def test_writing_into_returned_points_does_not_touch_node(self):
        s = Signature(1, words={1: kps(1)}, words3={1: [[1.0, 2.0, 3.0]]})
        s.words3[1][0][0] = 42.0
        s.word_entries(1)[0].xyz[0] = 42.0
        assert s.words3[1][0][0] == 1.0

    def test_change_words_ref_keeps_3d(self):
        words = {1: kps(2), 2: kps(1, 7.0)}
        words3 = {1: [[1, 2, 3], [4, 5, 6]], 2: [[7, 8, 9]]}
        s = Signature(1, words=words, words3=words3)
        s.change_words_ref(1, 2)
        assert len(s.words[2]) == len(s.words3[2]) == 3
        assert np.allclose(s.words3[2][1], [1, 2, 3])
        assert 1 not in s.words3

    def test_change_words_ref_does_not_mark_dirty(self, node):
        node.set_modified(False)
        node.change_words_ref(5, 9)
        node.remove_word(7)
        assert node.dirty_state is DirtyState.CLEAN

    def test_remove_word(self):
        s = Signature(1, words={1: kps(2), 2: kps(1)}, words3={1: [[0, 0, 1]] * 2, 2: [[0, 0, 2]]})
        s.remove_word(1)
        s.remove_word(99)
        assert list(s.words) == [2]
        assert list(s.words3) == [2]

    def test_word_accessors(self):
        s = Signature(1, words={4: kps(2), 1: kps(1)})
        assert s.word_ids() == [1, 4]
        assert s.words_count() == 3
        assert len(s.word_entries(4)) == 2
        assert s.word_entries(99) == []
        assert s.words3 == {}

    def test_words3_mismatch_rejected(self):
        with pytest.raises(ValueError):
            Signature(1, words={1: kps(2)}, words3={1: [[0, 0, 1]]})
        with pytest.raises(ValueError):
            Signature(1, words={1: kps(1)}, words3={1: [[0, 0, 1]], 2: [[0, 0, 2]]})

    def test_words3_in_sensor_frame(self):
        local = Rt_to_T(np.eye(3), np.array([0.0, 0.0, 1.0]))
        s = Signature(1, words={1: kps(1)}, words3={1: [[1.0, 2.0, 4.0]]}, local_transform=local)
        out = s.words3_in_sensor_frame()
        assert out[1].shape == (1, 3)
        assert np.allclose(out[1][0], [1.0, 2.0, 3.0])


class TestDepth:
    def test_empty_depth_accepts_any_intrinsics(self):
        s = Signature(1)
        s.set_depth([], 0, 0, 0, 0)
        s.set_depth(b"", -1.0, -1.0, -1.0, -1.0)
        assert s.depth == b""
        assert s.intrinsics == (-1.0, -1.0, -1.0, -1.0)

    def test_invalid_intrinsics_rejected(self):
        s = Signature(1, depth=b"\x00", fx=500.0, fy=500.0, cx=320.0, cy=240.0)
        with pytest.raises(ValueError, match="fx="):
            s.set_depth([1, 2, 3], 0, 0, 0, 0)
        # unchanged on failure
        assert s.intrinsics == (500.0, 500.0, 320.0, 240.0)
        assert s.depth == b"\x00"

    def test_valid_depth(self):
        s = Signature(1)
        s.set_depth(b"\x01\x02", 525.0, 525.0, 0.0, 0.0)
        assert s.depth == b"\x01\x02"
        K = s.camera_matrix()
        assert K[0, 0] == 525.0 and K[1, 1] == 525.0 and K[2, 2] == 1.0

    def test_numpy_zero_byte_depth_is_checked(self):
        s = Signature(1)
        with pytest.raises(ValueError, match="fx="):
            s.set_depth(np.array([0], np.uint8), 0, 0, 0, 0)
        assert s.depth == b""

    def test_numpy_depth_is_stored(self):
        s = Signature(1)
        s.set_depth(np.array([1, 2, 3], np.uint8), 525.0, 525.0, 320.0, 240.0)
        assert s.depth == b"\x01\x02\x03"
        assert s.intrinsics == (525.0, 525.0, 320.0, 240.0)

    def test_set_depth_marks_content_only(self):
        s = Signature(1)
        s.set_modified(False)
        s.set_depth(b"\x01", 1.0, 1.0, 0.0, 0.0)
        assert s.dirty_state is DirtyState.CONTENT_DIRTY
        s.add_neighbor(2, np.eye(4))
        assert s.dirty_state is DirtyState.BOTH

    def test_construction_does_not_validate_by_default(self):
        s = Signature(1, depth=b"\x01", fx=0.0)
        assert s.intrinsics[0] == 0.0

    def test_construction_validation_opt_in(self):
        with pytest.raises(ValueError):
            Signature(1, depth=b"\x01", fx=0.0, validate_depth=True)
