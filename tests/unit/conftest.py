"""
Shared fixtures for the scanner unit tests.

FakePage is an in-memory stand-in for PageSurface. It dispatches evaluate()
on the identity of the script constants in cstiscan.tools.visual.scripts and
simulates, per URL: defined globals, inputs, forms, buttons, anchors,
history and the markup a template engine renders after a trigger.
"""
import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import pytest

# Keep test runs from writing into the working tree
os.environ.setdefault("CSTISCAN_LOG_DIR", tempfile.mkdtemp(prefix="cstiscan-logs-"))

from cstiscan.core.config import settings
from cstiscan.core.exceptions import BrowserError, NavigationError, ScriptReferenceError
from cstiscan.engines.reflection import CLASS_MARKER
from cstiscan.schemas.models import NavigationOutcome
from cstiscan.tools.visual import scripts


SCRIPT_NAMES = {
    scripts.DETECT_PROBE: "DETECT_PROBE",
    scripts.OUTER_HTML: "OUTER_HTML",
    scripts.CLASS_MARKER: "CLASS_MARKER",
    scripts.FILL_INPUTS: "FILL_INPUTS",
    scripts.REWRITE_LINK_AND_CLICK: "REWRITE_LINK_AND_CLICK",
    scripts.SUBMIT_FORM: "SUBMIT_FORM",
    scripts.CLICK_BUTTON: "CLICK_BUTTON",
    scripts.ANCHOR_HREFS: "ANCHOR_HREFS",
}


def render(value: str) -> str:
    """What an evaluating template engine would print for `value`."""
    if value in ("{{.}}", "{{this}}"):
        return "[object Object]"
    if "12345*54321" in value or value == "6705{{!comment}}92745":
        return "670592745"
    return value


@dataclass
class FakeSite:
    globals: Set[str] = field(default_factory=set)
    inputs: List[str] = field(default_factory=list)
    forms: int = 0
    buttons: int = 0
    anchors: List[str] = field(default_factory=list)
    markup: str = "<html><head></head><body></body></html>"
    # Surfaces ("form", "input", "button", "anchor") whose trigger renders the injected value
    reflects: Set[str] = field(default_factory=set)
    # Surfaces whose trigger loads a result page
    navigates: Set[str] = field(default_factory=set)
    # False: injected text is reflected literally, never evaluated
    evaluates: bool = True
    class_reflects: bool = False


@dataclass
class FakeHandle:
    selector: str
    index: int


class FakePage:
    def __init__(self, sites: Dict[str, FakeSite]):
        self.sites = sites
        self.url = "about:blank"
        self.history: List[str] = []
        self.calls: List[tuple] = []
        self.hang: Set[str] = set()
        self.fail_queries: Set[str] = set()
        self.navigation_times_out = False
        self._navigations = 0
        self._value: Optional[str] = None
        self._rendered = ""
        self._classes: Set[str] = set()

    # --- helpers ----------------------------------------------------------

    @property
    def site(self) -> FakeSite:
        return self._site_for(self.url) or FakeSite()

    def _site_for(self, url: str) -> Optional[FakeSite]:
        if url in self.sites:
            return self.sites[url]
        return self.sites.get(url.split("?")[0])

    async def _maybe_hang(self, name: str):
        if name in self.hang:
            await asyncio.sleep(3600)

    def _load(self, url: str, push: bool = True):
        self.url = url
        if push:
            self.history.append(url)
        self._navigations += 1
        self._rendered = ""
        self._classes = set()

    def _trigger(self, surface: str, value: Optional[str], result_url: str = None):
        site = self.site
        value = value or ""
        rendered = ""
        if surface in site.reflects:
            rendered = render(value) if site.evaluates else value
        if value == CLASS_MARKER and site.class_reflects:
            self._classes.add(value)
        if surface in site.navigates:
            self._load(result_url or f"{self.url.split('?')[0]}?probe={surface}")
        self._rendered += rendered

    def navigation_count(self, url: str) -> int:
        return sum(1 for call in self.calls if call == ("navigate", url))

    # --- PageSurface API --------------------------------------------------

    async def navigate(self, url: str, timeout: float = None):
        self.calls.append(("navigate", url))
        await self._maybe_hang("navigate")
        if self._site_for(url) is None:
            raise NavigationError(f"net::ERR_NAME_NOT_RESOLVED at {url}", url=url)
        self._load(url)

    async def evaluate(self, script: str, arg=None):
        name = SCRIPT_NAMES[script]
        self.calls.append(("evaluate", name))
        await self._maybe_hang(name)
        site = self.site

        if name == "DETECT_PROBE":
            if arg in site.globals:
                return True
            root = arg.split(".")[0]
            if root in {g.split(".")[0] for g in site.globals}:
                return False
            raise ScriptReferenceError(f"ReferenceError: {root} is not defined")

        if name == "OUTER_HTML":
            return site.markup + self._rendered

        if name == "CLASS_MARKER":
            return arg in self._classes

        if name == "FILL_INPUTS":
            filled = 0
            for input_type in site.inputs:
                if input_type in ("file", "submit"):
                    continue
                filled += 1
            self._value = arg["value"]
            return filled

        if name == "SUBMIT_FORM":
            if arg >= site.forms:
                return False
            self._trigger("form", self._value)
            return True

        if name == "CLICK_BUTTON":
            if arg >= site.buttons:
                return False
            self._trigger("button", self._value)
            return True

        if name == "REWRITE_LINK_AND_CLICK":
            index, payload = arg["index"], arg["payload"]
            if index >= len(site.anchors):
                return False
            parsed = urlparse(site.anchors[index])
            query = urlencode([(k, payload) for k, _ in parse_qsl(parsed.query)])
            self._trigger("anchor", payload, urlunparse(parsed._replace(query=query)))
            return True

        if name == "ANCHOR_HREFS":
            return list(site.anchors)

        raise AssertionError(f"unexpected script {name}")

    async def query_all(self, selector: str):
        self.calls.append(("query_all", selector))
        await self._maybe_hang("query_all")
        if selector in self.fail_queries:
            raise BrowserError(f"query {selector} failed")
        site = self.site
        counts = {
            "form": site.forms,
            "input": len(site.inputs),
            "button": site.buttons,
            "a": len(site.anchors),
        }
        return [FakeHandle(selector, i) for i in range(counts[selector])]

    async def type(self, handle, text: str):
        self.calls.append(("type", handle.index))
        await self._maybe_hang("type")
        self._value = text

    async def press(self, handle, key: str):
        self.calls.append(("press", key))
        await self._maybe_hang("press")
        if key == "Enter":
            self._trigger("input", self._value)

    async def click(self, handle):
        self.calls.append(("click", handle.index))

    async def go_back(self, timeout: float = None):
        self.calls.append(("go_back",))
        await self._maybe_hang("go_back")
        if len(self.history) > 1:
            self.history.pop()
            self._load(self.history[-1], push=False)

    async def reload(self, timeout: float = None):
        self.calls.append(("reload",))
        await self._maybe_hang("reload")
        self._load(self.url, push=False)

    def navigation_marker(self) -> int:
        return self._navigations

    async def wait_for_navigation(self, marker: int, timeout: float = None) -> NavigationOutcome:
        if self._navigations == marker:
            return NavigationOutcome.NO_NAVIGATION
        if self.navigation_times_out:
            return NavigationOutcome.TIMED_OUT
        return NavigationOutcome.NAVIGATED


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_page():
    """Factory: make_page({url: {site fields}}, start=url) -> FakePage."""
    def _make(sites: Dict[str, dict], start: str = None) -> FakePage:
        page = FakePage({url: FakeSite(**fields) for url, fields in sites.items()})
        if start is not None:
            page._load(start)
            page.calls.clear()
        return page
    return _make


@pytest.fixture
def fast_timeouts(monkeypatch):
    """Shrink every interaction budget so timeout paths run quickly."""
    for name in (
        "PROBE_TIMEOUT",
        "REFLECTION_TIMEOUT",
        "INJECTION_TIMEOUT",
        "ENUMERATION_TIMEOUT",
        "NAVIGATION_TIMEOUT",
        "HISTORY_TIMEOUT",
        "POST_TRIGGER_NAVIGATION_TIMEOUT",
    ):
        monkeypatch.setattr(settings, name, 0.05)
    yield settings
