from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass


@dataclass(frozen=True)
class Tree:
    label: str
    children: tuple[Tree | Hashable, ...] = ()

    def __str__(self) -> str:
        inner = " ".join(str(c) for c in self.children)
        return f"({self.label} {inner})" if inner else f"({self.label})"

    def leaves(self) -> list[Hashable]:
        out: list[Hashable] = []
        for c in self.children:
            if isinstance(c, Tree):
                out.extend(c.leaves())
            else:
                out.append(c)
        return out

    def spans(self) -> list[tuple[int, int, str]]:
        """Every (begin, end, label) constituent, preorder."""
        out: list[tuple[int, int, str]] = []
        self._collect(0, out)
        return out

    def _collect(self, begin: int, out: list[tuple[int, int, str]]) -> int:
        slot = len(out)
        out.append((begin, begin, self.label))
        end = begin
        for c in self.children:
            end = c._collect(end, out) if isinstance(c, Tree) else end + 1
        out[slot] = (begin, end, self.label)
        return end
