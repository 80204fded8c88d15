"""Frame hierarchy and current-frame pointer for one page.

The tree is a flat list of nodes that refer to their parent by index. It is
fetched from the driver on first use after each navigation, because page
scripts can add and remove frames at will.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from steed.exceptions import FrameNotFoundError

logger = logging.getLogger(__name__)

MAIN_FRAME = 0


@dataclass
class FrameNode:
    """One frame in the tree.

    ``position`` is the frame's index among its parent's children.
    """

    name: str
    parent: int | None
    position: int
    children: list[int] = field(default_factory=list)


def build_tree(listing: dict[str, Any]) -> list[FrameNode]:
    """Flatten the driver's nested frame listing, main frame first."""
    nodes: list[FrameNode] = [FrameNode(name=listing.get("name", ""), parent=None, position=0)]
    stack: list[tuple[int, dict[str, Any]]] = [(MAIN_FRAME, listing)]
    while stack:
        parent_index, entry = stack.pop()
        for position, child in enumerate(entry.get("children", [])):
            nodes.append(FrameNode(name=child.get("name", ""), parent=parent_index, position=position))
            child_index = len(nodes) - 1
            nodes[parent_index].children.append(child_index)
            stack.append((child_index, child))
    return nodes


class FrameNavigator:
    """Tracks the frame tree and which frame commands run in.

    Args:
        fetch_tree: Coroutine returning the driver's nested frame listing.
        fetch_focused: Coroutine returning the focused frame as a list of
            child positions from the main frame.
    """

    def __init__(
        self,
        fetch_tree: Callable[[], Awaitable[dict[str, Any]]],
        fetch_focused: Callable[[], Awaitable[list[int]]],
    ) -> None:
        self._fetch_tree = fetch_tree
        self._fetch_focused = fetch_focused
        self._nodes: list[FrameNode] = [FrameNode(name="", parent=None, position=0)]
        self._current = MAIN_FRAME
        self._stale = True

    def invalidate(self) -> None:
        """Drop the cached tree after a navigation and return to the main frame."""
        self._stale = True
        self._current = MAIN_FRAME

    @property
    def path(self) -> list[int]:
        """Child positions from the main frame down to the current frame."""
        path: list[int] = []
        index: int | None = self._current
        while index is not None and index != MAIN_FRAME:
            node = self._nodes[index]
            path.append(node.position)
            index = node.parent
        path.reverse()
        return path

    @property
    def at_main_frame(self) -> bool:
        return self._current == MAIN_FRAME

    async def _tree(self) -> list[FrameNode]:
        if self._stale:
            self._nodes = build_tree(await self._fetch_tree())
            self._stale = False
            logger.debug("Frame tree rebuilt: %d frame(s)", len(self._nodes))
        return self._nodes

    # ------------------------------------------------------------------
    # Switching
    # ------------------------------------------------------------------

    async def switch_to_frame(self, frame: str | int) -> None:
        """Make a child of the current frame current, by name or position.

        Raises:
            FrameNotFoundError: If no such child exists; the pointer is unchanged.
        """
        if isinstance(frame, bool) or not isinstance(frame, (str, int)):
            raise TypeError(f"frame must be a name or a position, not {type(frame).__name__}")
        nodes = await self._tree()
        children = nodes[self._current].children
        if isinstance(frame, int):
            if 0 <= frame < len(children):
                self._current = children[frame]
                return
        else:
            for index in children:
                if nodes[index].name == frame:
                    self._current = index
                    return
        raise FrameNotFoundError(frame)

    def switch_to_parent_frame(self) -> bool:
        """Move to the parent frame. Returns False when already at the main frame."""
        parent = self._nodes[self._current].parent
        if parent is None:
            return False
        self._current = parent
        return True

    def switch_to_main_frame(self) -> None:
        self._current = MAIN_FRAME

    async def switch_to_focused_frame(self) -> None:
        """Make the frame holding input focus current."""
        focused = await self._fetch_focused()
        nodes = await self._tree()
        index = MAIN_FRAME
        for position in focused:
            children = nodes[index].children
            if not 0 <= position < len(children):
                raise FrameNotFoundError(position)
            index = children[position]
        self._current = index

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def frame_name(self) -> str:
        nodes = await self._tree()
        return nodes[self._current].name

    async def frame_count(self) -> int:
        """Number of frames directly inside the current frame."""
        nodes = await self._tree()
        return len(nodes[self._current].children)

    async def frame_names(self) -> list[str]:
        nodes = await self._tree()
        return [nodes[i].name for i in nodes[self._current].children]
