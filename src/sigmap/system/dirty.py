from enum import Enum


class DirtyState(Enum):
    """What changed on a node since the owner last persisted it."""
    CLEAN = "clean"
    CONTENT_DIRTY = "content_dirty"
    EDGES_DIRTY = "edges_dirty"
    BOTH = "both"

    @classmethod
    def from_flags(cls, content: bool, edges: bool) -> "DirtyState":
        if content and edges:
            return cls.BOTH
        if content:
            return cls.CONTENT_DIRTY
        if edges:
            return cls.EDGES_DIRTY
        return cls.CLEAN

    @property
    def content_dirty(self) -> bool:
        return self in (DirtyState.CONTENT_DIRTY, DirtyState.BOTH)

    @property
    def edges_dirty(self) -> bool:
        return self in (DirtyState.EDGES_DIRTY, DirtyState.BOTH)

    def with_content(self) -> "DirtyState":
        return DirtyState.from_flags(True, self.edges_dirty)

    def with_edges(self) -> "DirtyState":
        return DirtyState.from_flags(self.content_dirty, True)
