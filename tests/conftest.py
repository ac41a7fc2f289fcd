import pytest

from sigmap.system.signature import Signature
from sigmap.system.words import KeyPoint


@pytest.fixture
def kp1() -> KeyPoint:
    return KeyPoint(10.0, 20.0)


@pytest.fixture
def kp2() -> KeyPoint:
    return KeyPoint(30.0, 40.0)


@pytest.fixture
def node(kp1, kp2) -> Signature:
    """Node with two words, no 3D, no depth."""
    return Signature(1, 0, words={5: [kp1], 7: [kp2]})
