"""PageContext capability: DOM access for one tab, backed by Playwright."""

from __future__ import annotations

from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from learnbridge.web_locator import Semantic, Structural

_SEMANTIC_QUERY_JS = """
([root, role, label, exact]) => {
  const scope = root || document;
  const implicit = {
    button: 'button, input[type="button"], input[type="submit"]',
    checkbox: 'input[type="checkbox"]',
    textbox: 'input:not([type]), input[type="text"], textarea, [contenteditable="true"]',
    link: 'a[href]',
  };
  const norm = (s) => String(s || '').replace(/\\s+/g, ' ').trim();
  let query = '[aria-label], [title], button, a, input, textarea';
  if (role) {
    query = `[role="${CSS.escape(role)}"]` + (implicit[role] ? `, ${implicit[role]}` : '');
  }
  const candidates = Array.from(scope.querySelectorAll(query));
  if (!label) return candidates;
  const nameOf = (el) => norm(el.getAttribute('aria-label') || el.getAttribute('title') || el.textContent);
  const want = norm(label);
  const wantLow = want.toLowerCase();
  return candidates.filter((el) => {
    const name = nameOf(el);
    if (!name) return false;
    if (exact) return name === want;
    const low = name.toLowerCase();
    return low.includes(wantLow) || wantLow.includes(low);
  });
}
"""

_ASSIGN_VALUE_JS = """
(el, value) => {
  if (el.isContentEditable) {
    el.textContent = '';
    String(value).split('\\n').forEach((line, idx) => {
      if (idx) el.appendChild(document.createElement('br'));
      el.appendChild(document.createTextNode(line));
    });
    return;
  }
  const proto = el instanceof HTMLTextAreaElement
    ? HTMLTextAreaElement.prototype
    : HTMLInputElement.prototype;
  const desc = Object.getOwnPropertyDescriptor(proto, 'value');
  if (desc && desc.set) {
    desc.set.call(el, value);
  } else {
    el.value = value;
  }
}
"""

_DISPATCH_JS = """
(el, type) => {
  const init = { bubbles: true, cancelable: true };
  let ev;
  if (type.startsWith('mouse')) {
    ev = new MouseEvent(type, { ...init, view: window });
  } else if (type.startsWith('key')) {
    ev = new KeyboardEvent(type, init);
  } else {
    ev = new Event(type, init);
  }
  return el.dispatchEvent(ev);
}
"""

_WAIT_FOR_MUTATION_JS = """
(ms) => new Promise((resolve) => {
  const target = document.body || document.documentElement;
  let done = false;
  const finish = (value) => {
    if (done) return;
    done = true;
    observer.disconnect();
    resolve(value);
  };
  const observer = new MutationObserver(() => finish(true));
  observer.observe(target, { childList: true, subtree: true, attributes: true, characterData: true });
  setTimeout(() => finish(false), ms);
})
"""


class PageContextError(RuntimeError):
    pass


class PlaywrightPageContext:
    def __init__(self, page: Page) -> None:
        self.page = page

    @property
    def url(self) -> str:
        return str(self.page.url or "")

    def is_closed(self) -> bool:
        return self.page.is_closed()

    async def query_all(self, query: Structural | Semantic, root: Any = None) -> list[Any]:
        try:
            if isinstance(query, Structural):
                scope = root if root is not None else self.page
                return list(await scope.query_selector_all(query.selector))
            handle = await self.page.evaluate_handle(
                _SEMANTIC_QUERY_JS, [root, query.role, query.label, query.exact]
            )
            try:
                props = await handle.get_properties()
                nodes = [prop.as_element() for prop in props.values()]
            finally:
                await handle.dispose()
            return [node for node in nodes if node is not None]
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc

    async def text_of(self, node: Any) -> str:
        return str(await self._eval(node, "el => el.innerText || el.textContent || ''") or "")

    async def attribute(self, node: Any, name: str) -> str | None:
        try:
            return await node.get_attribute(name)
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc

    async def closest(self, node: Any, rule: Structural) -> Any:
        try:
            handle = await node.evaluate_handle("(el, css) => el.closest(css)", rule.selector)
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc
        return handle.as_element()

    async def parent(self, node: Any) -> Any:
        try:
            handle = await node.evaluate_handle("el => el.parentElement")
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc
        return handle.as_element()

    async def click(self, node: Any) -> None:
        await self._eval(node, "el => el.click()")

    async def focus(self, node: Any) -> None:
        await self._eval(node, "el => el.focus()")

    async def blur(self, node: Any) -> None:
        await self._eval(node, "el => el.blur()")

    async def select_contents(self, node: Any) -> None:
        await self._eval(node, "el => { if (typeof el.select === 'function') el.select(); }")

    async def read_value(self, node: Any) -> str:
        value = await self._eval(
            node,
            "el => el.isContentEditable ? (el.innerText || '') : String(el.value ?? el.textContent ?? '')",
        )
        return str(value or "")

    async def assign_value(self, node: Any, value: str) -> None:
        await self._eval(node, _ASSIGN_VALUE_JS, value)

    async def dispatch(self, node: Any, event_type: str) -> bool:
        return bool(await self._eval(node, _DISPATCH_JS, event_type))

    async def is_checked(self, node: Any) -> bool:
        return bool(
            await self._eval(node, "el => !!el.checked || el.getAttribute('aria-checked') === 'true'")
        )

    async def is_disabled(self, node: Any) -> bool:
        return bool(
            await self._eval(node, "el => !!el.disabled || el.getAttribute('aria-disabled') === 'true'")
        )

    async def wait_for_mutation(self, timeout_ms: int) -> bool:
        try:
            return bool(await self.page.evaluate(_WAIT_FOR_MUTATION_JS, max(1, int(timeout_ms))))
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc

    async def _eval(self, node: Any, script: str, arg: Any = None) -> Any:
        try:
            if arg is None:
                return await node.evaluate(script)
            return await node.evaluate(script, arg)
        except PlaywrightError as exc:
            raise PageContextError(str(exc)) from exc
