"""In-memory render surfaces.

A surface stands in for the document a creative is delivered into. It keeps
``html``/``head``/``body`` node lists plus whatever markup was written through
its write stream. Writing to a closed surface reopens it, which clears every
section, so markers inserted before a write have to be put back afterwards.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any, Union

SECTIONS = ("html", "head", "body")


@dataclass(eq=False)
class Comment:
    text: str

    def render(self) -> str:
        return f"<!--{self.text}-->"


@dataclass(eq=False)
class Script:
    src: str | None

    def render(self) -> str:
        return f'<script src="{html.escape(self.src or "")}"></script>'


@dataclass(eq=False)
class Frame:
    src: str | None = None
    width: int | None = None
    height: int | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    style: dict[str, str] = field(default_factory=dict)

    def render(self) -> str:
        attrs = dict(self.attributes)
        if self.src is not None:
            attrs["src"] = self.src
        if self.width is not None:
            attrs["width"] = str(self.width)
        if self.height is not None:
            attrs["height"] = str(self.height)
        if self.style:
            attrs["style"] = ";".join(f"{key}:{value}" for key, value in self.style.items())
        rendered = " ".join(f'{key}="{html.escape(str(value))}"' for key, value in attrs.items())
        return f"<iframe {rendered}></iframe>"


Node = Union[Comment, Script, Frame]


@dataclass
class HostFrame:
    """The frame element hosting a surface, when the surface lives in one."""

    width: int | None = None
    height: int | None = None


def create_invisible_frame() -> Frame:
    return Frame(
        width=0,
        height=0,
        attributes={
            "frameborder": "0",
            "scrolling": "no",
            "marginheight": "0",
            "marginwidth": "0",
            "topmargin": "0",
            "leftmargin": "0",
            "allowtransparency": "true",
        },
        style={"display": "none"},
    )


class Surface:
    def __init__(
        self,
        *,
        main_document: bool = False,
        embedded: bool = False,
        host_frame: HostFrame | None = None,
    ) -> None:
        self.main_document = main_document
        self.embedded = embedded
        self.host_frame = host_frame
        self.sections: dict[str, list[Node]] = {name: [] for name in SECTIONS}
        self.markup: list[str] = []
        self.is_open = False
        self.writes = 0

    def open(self) -> None:
        self.sections = {name: [] for name in SECTIONS}
        self.markup = []
        self.is_open = True

    def write(self, markup: str) -> None:
        if not self.is_open:
            self.open()
        self.markup.append(markup)
        self.writes += 1

    def close(self) -> None:
        self.is_open = False

    def insert(self, node: Node, target: str = "head") -> None:
        if target not in self.sections:
            raise ValueError(f"unknown surface section {target}")
        self.sections[target].append(node)

    def contains(self, node: Node, target: str) -> bool:
        return any(existing is node for existing in self.sections.get(target, ()))

    def remove(self, node: Node) -> None:
        for name, nodes in self.sections.items():
            self.sections[name] = [existing for existing in nodes if existing is not node]

    def nodes(self, kind: type | None = None) -> list[Node]:
        found = [node for name in SECTIONS for node in self.sections[name]]
        if kind is None:
            return found
        return [node for node in found if isinstance(node, kind)]

    def serialize(self) -> str:
        html_nodes = "".join(node.render() for node in self.sections["html"])
        head = "".join(node.render() for node in self.sections["head"])
        body = "".join(self.markup) + "".join(node.render() for node in self.sections["body"])
        return f"<html>{html_nodes}<head>{head}</head><body>{body}</body></html>"

    def describe(self) -> dict[str, Any]:
        return {
            "main_document": self.main_document,
            "embedded": self.embedded,
            "frame": (
                {"width": self.host_frame.width, "height": self.host_frame.height}
                if self.host_frame
                else None
            ),
            "document": self.serialize(),
        }

    to_dict = describe


def reinject_node_if_removed(node: Node, surface: Surface, target: str) -> None:
    if not surface.contains(node, target):
        surface.insert(node, target)


def set_render_size(surface: Surface, width: int | None, height: int | None) -> None:
    if surface.host_frame is not None:
        surface.host_frame.width = width
        surface.host_frame.height = height
