"""Skyline bin packer used to place glyph bitmaps in a texture atlas."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AtlasNode:
    """One horizontal span of the skyline."""

    x: int
    y: int
    width: int


@dataclass
class Atlas:
    """A skyline packer of a fixed area that places rectangles bottom-left first."""

    width: int
    height: int
    nodes: list[AtlasNode] = field(init=False)

    def __post_init__(self) -> None:
        self.nodes = [AtlasNode(0, 0, self.width)]

    def expand(self, width: int, height: int) -> None:
        """Grow the atlas; new space to the right becomes an empty span."""
        if width > self.width:
            self.nodes.append(AtlasNode(self.width, 0, width - self.width))
        self.width = width
        self.height = height

    def reset(self, width: int, height: int) -> None:
        """Drop every placed rectangle and resize the atlas."""
        self.width = width
        self.height = height
        self.nodes = [AtlasNode(0, 0, width)]

    def add_rect(self, width: int, height: int) -> tuple[int, int] | None:
        """Place a rectangle; return its top-left corner, or None when it does not fit."""
        best_h = self.height
        best_w = self.width
        best_i = -1
        best_x = best_y = -1
        for i, node in enumerate(self.nodes):
            y = self._rect_fits(i, width, height)
            if y is None:
                continue
            if y + height < best_h or (y + height == best_h and node.width < best_w):
                best_i = i
                best_w = node.width
                best_h = y + height
                best_x = node.x
                best_y = y
        if best_i == -1:
            return None
        self._add_skyline_level(best_i, best_x, best_y, width, height)
        return best_x, best_y

    def _rect_fits(self, i: int, width: int, height: int) -> int | None:
        node = self.nodes[i]
        if node.x + width > self.width:
            return None
        y = node.y
        space_left = width
        while space_left > 0:
            if i == len(self.nodes):
                return None
            y = max(y, self.nodes[i].y)
            if y + height > self.height:
                return None
            space_left -= self.nodes[i].width
            i += 1
        return y

    def _add_skyline_level(self, idx: int, x: int, y: int, width: int, height: int) -> None:
        nodes = self.nodes
        nodes.insert(idx, AtlasNode(x, y + height, width))

        # Trim spans that now lie under the new one.
        i = idx + 1
        while i < len(nodes):
            prev, node = nodes[i - 1], nodes[i]
            right = prev.x + prev.width
            if node.x >= right:
                break
            shrink = right - node.x
            node.x += shrink
            node.width -= shrink
            if node.width > 0:
                break
            del nodes[i]

        # Merge neighbouring spans of equal height.
        i = 0
        while i < len(nodes) - 1:
            if nodes[i].y == nodes[i + 1].y:
                nodes[i].width += nodes[i + 1].width
                del nodes[i + 1]
            else:
                i += 1