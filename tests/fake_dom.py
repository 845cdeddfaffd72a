"""In-memory DOM implementing the PageContext methods used by the web modules.

Elements live in a BeautifulSoup tree and structural rules are matched with
soupsieve, the CSS engine behind ``BeautifulSoup.select()``. A ``Node`` is the
handle tests hold on one element; it also carries form state and listeners.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterator

import soupsieve
from bs4 import BeautifulSoup, NavigableString, Tag

from learnbridge.config import TimeoutSettings
from learnbridge.web_common import collapse_ws
from learnbridge.web_locator import Semantic, Structural

Handler = Callable[["FakePage", "Node", str], Any]

_IMPLICIT_ROLES = {
    "button": ("button",),
    "a": ("link",),
    "textarea": ("textbox",),
}

_FACTORY = BeautifulSoup("", "html.parser")


class Node:
    def __init__(
        self,
        tag: str | Tag,
        attrs: dict[str, str] | None = None,
        text: str = "",
        children: list["Node"] | None = None,
    ) -> None:
        self.element = tag if isinstance(tag, Tag) else _FACTORY.new_tag(tag, attrs=dict(attrs or {}))
        self.element.fake_node = self
        self.value = ""
        self.checked = False
        self.handlers: dict[str, list[Handler]] = {}
        if text:
            self.element.append(NavigableString(text))
        for child in children or []:
            self.append(child)

    def __repr__(self) -> str:
        return f"<{self.tag} {self.attrs} {self.text!r}>"

    @property
    def tag(self) -> str:
        return self.element.name

    @property
    def attrs(self) -> dict[str, str]:
        return {
            key: " ".join(value) if isinstance(value, list) else str(value)
            for key, value in self.element.attrs.items()
        }

    @property
    def parent(self) -> "Node | None":
        return _node_of(self.element.parent)

    @property
    def children(self) -> list["Node"]:
        return [_node_of(child) for child in self.element.children if isinstance(child, Tag)]

    @property
    def text(self) -> str:
        return "".join(str(child) for child in self.element.children if isinstance(child, NavigableString))

    @text.setter
    def text(self, value: str) -> None:
        for child in list(self.element.children):
            if isinstance(child, NavigableString):
                child.extract()
        if value:
            self.element.insert(0, NavigableString(value))

    def append(self, child: "Node") -> "Node":
        self.element.append(child.element)
        return child

    def clear(self) -> None:
        self.element.clear()

    def on(self, event_type: str, handler: Handler) -> "Node":
        self.handlers.setdefault(event_type, []).append(handler)
        return self

    def walk(self) -> Iterator["Node"]:
        for element in self.element.descendants:
            if isinstance(element, Tag):
                yield _node_of(element)

    def text_content(self) -> str:
        parts = [str(item) for item in self.element.descendants if isinstance(item, NavigableString)]
        return " ".join(part for part in parts if part)

    def roles(self) -> tuple[str, ...]:
        attrs = self.attrs
        explicit = attrs.get("role")
        roles = (explicit,) if explicit else ()
        if self.tag == "input":
            kind = attrs.get("type", "text")
            if kind in ("button", "submit"):
                roles += ("button",)
            elif kind == "checkbox":
                roles += ("checkbox",)
            elif kind == "text":
                roles += ("textbox",)
        if attrs.get("contenteditable") == "true":
            roles += ("textbox",)
        return roles + _IMPLICIT_ROLES.get(self.tag, ())


def el(tag: str, text: str = "", children: list[Node] | None = None, **attrs: str) -> Node:
    """Build a node; ``class_`` and ``aria_label`` style keywords map to HTML names."""
    mapped = {key.rstrip("_").replace("_", "-"): value for key, value in attrs.items()}
    return Node(tag, mapped, text, children)


def _node_of(element: Any) -> Node | None:
    if element is None:
        return None
    return element.__dict__.get("fake_node")


class FakePage:
    def __init__(self, url: str = "https://example.test/", body: list[Node] | None = None) -> None:
        self.url = url
        self.document = Node(BeautifulSoup("", "html.parser"))
        self.body = self.document.append(Node("body"))
        self.closed = False
        self.focused: Node | None = None
        self.events: list[tuple[str, str]] = []
        self.mutations = 0
        self._waiters: list[asyncio.Future] = []
        for node in body or []:
            self.body.append(node)

    # Test-side mutation helpers.

    def add(self, parent: Node, child: Node) -> Node:
        parent.append(child)
        self.changed()
        return child

    def remove(self, node: Node) -> None:
        node.element.extract()
        self.changed()

    def replace_body(self, nodes: list[Node]) -> None:
        self.body.clear()
        for node in nodes:
            self.body.append(node)
        self.changed()

    def changed(self) -> None:
        self.mutations += 1
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(True)

    def later(self, delay_ms: int, fn: Callable[[], Any]) -> None:
        asyncio.get_running_loop().call_later(delay_ms / 1000.0, fn)

    def find(self, predicate: Callable[[Node], bool]) -> Node | None:
        for node in self.document.walk():
            if predicate(node):
                return node
        return None

    # PageContext surface.

    def is_closed(self) -> bool:
        return self.closed

    async def query_all(self, query: Structural | Semantic, root: Any = None) -> list[Node]:
        scope = root if root is not None else self.document
        if isinstance(query, Structural):
            return [_node_of(element) for element in soupsieve.select(query.selector, scope.element)]
        return [node for node in scope.walk() if _semantic_match(node, query)]

    async def text_of(self, node: Node) -> str:
        return node.text_content()

    async def attribute(self, node: Node, name: str) -> str | None:
        return node.attrs.get(name)

    async def closest(self, node: Node, rule: Structural) -> Node | None:
        return _node_of(soupsieve.closest(rule.selector, node.element))

    async def parent(self, node: Node) -> Node | None:
        return node.parent

    async def click(self, node: Node) -> None:
        if node.attrs.get("disabled") is not None:
            return
        if node.tag == "input" and node.attrs.get("type") == "checkbox":
            node.checked = not node.checked
        self._fire(node, "click")

    async def focus(self, node: Node) -> None:
        self.focused = node
        self._fire(node, "focus", bubble=False)

    async def blur(self, node: Node) -> None:
        if self.focused is node:
            self.focused = None
        self._fire(node, "blur", bubble=False)

    async def select_contents(self, node: Node) -> None:
        return None

    async def read_value(self, node: Node) -> str:
        if node.attrs.get("contenteditable") == "true":
            return node.text_content()
        return node.value

    async def assign_value(self, node: Node, value: str) -> None:
        if node.attrs.get("contenteditable") == "true":
            node.clear()
            node.text = value
        else:
            node.value = value

    async def dispatch(self, node: Node, event_type: str) -> bool:
        self._fire(node, event_type)
        return True

    async def is_checked(self, node: Node) -> bool:
        return node.checked or node.attrs.get("aria-checked") == "true"

    async def is_disabled(self, node: Node) -> bool:
        return node.attrs.get("disabled") is not None or node.attrs.get("aria-disabled") == "true"

    async def wait_for_mutation(self, timeout_ms: int) -> bool:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=max(1, timeout_ms) / 1000.0)
        except asyncio.TimeoutError:
            return False

    def _fire(self, node: Node, event_type: str, *, bubble: bool = True) -> None:
        self.events.append((event_type, node.tag))
        current: Node | None = node
        while current is not None:
            for handler in list(current.handlers.get(event_type, [])):
                handler(self, node, event_type)
            if not bubble:
                break
            current = current.parent


def _semantic_match(node: Node, query: Semantic) -> bool:
    if query.role and query.role not in node.roles():
        return False
    if not query.role and not (
        node.attrs.get("aria-label") or node.attrs.get("title") or node.tag in ("button", "a", "input", "textarea")
    ):
        return False
    if not query.label:
        return True
    name = collapse_ws(node.attrs.get("aria-label") or node.attrs.get("title") or node.text_content())
    want = collapse_ws(query.label)
    if not name:
        return False
    if query.exact:
        return name == want
    return want.lower() in name.lower() or name.lower() in want.lower()


def controlled_input(tag: str = "textarea", **attrs: str) -> Node:
    """An input whose framework model only accepts one-character edits."""
    node = el(tag, **attrs)
    model = {"value": ""}

    def on_input(page: FakePage, target: Node, event_type: str) -> None:
        if target is not node:
            return
        if abs(len(node.value) - len(model["value"])) > 1:
            node.value = model["value"]
        else:
            model["value"] = node.value

    node.on("input", on_input)
    return node


def fast_timings(**overrides: int) -> TimeoutSettings:
    values = dict(
        locator_timeout_ms=200,
        poll_interval_ms=10,
        reactive_grace_ms=50,
        disappear_timeout_ms=200,
        disappear_poll_ms=10,
        settle_ms=0,
        ping_interval_ms=10,
        ping_attempts=3,
        ping_timeout_ms=50,
        response_timeout_ms=2000,
        tab_poll_ms=5,
        tab_max_attempts=3,
        tab_settle_ms=0,
        generation_max_wait_ms=500,
        generation_poll_ms=10,
    )
    values.update(overrides)
    return TimeoutSettings(**values)
