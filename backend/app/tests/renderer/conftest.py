import asyncio
import html

import pytest

from app.renderer.diagram_renderer import LIBRARY_CHECK
from app.renderer.sandbox import SandboxLoadError, SandboxScriptError, SandboxUnavailable


class FakeSandbox:
    def __init__(self, harness: "SandboxHarness", index: int):
        self.harness = harness
        self.index = index
        self.documents: list[str] = []
        self.rendered: list[str] = []

    async def load_document(self, html_text: str) -> None:
        self.documents.append(html_text)

    async def load_library(self, *, url: str | None = None, path: str | None = None) -> None:
        if self.harness.library_fails:
            raise SandboxLoadError("net::ERR_NAME_NOT_RESOLVED")
        self.harness.library_sources.append(path or url)

    async def evaluate(self, expression, arg=None):
        if expression == LIBRARY_CHECK:
            return self.harness.library_present

        code = arg["code"]
        self.rendered.append(code)
        self.harness.active += 1
        self.harness.peak_active = max(self.harness.peak_active, self.harness.active)
        try:
            if self.harness.crash:
                raise SandboxUnavailable("Target page, context or browser has been closed")
            if self.harness.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.harness.delay_for(code))
            if "invalid" in code:
                raise SandboxScriptError("Error: Parse error on line 1:\ninvalid\n^\nExpecting 'GRAPH'")
            if self.harness.markup is not None:
                return self.harness.markup
            return (
                '<svg xmlns="http://www.w3.org/2000/svg" id="graphDiv">'
                f"<text>{html.escape(code)}</text></svg>"
            )
        finally:
            self.harness.active -= 1

    async def print_pdf(self) -> bytes:
        return self.harness.pdf_bytes

    async def dispose(self) -> None:
        self.harness.released += 1


class SandboxHarness:
    """Launcher that hands out fake sandboxes and counts acquire/release."""

    def __init__(self):
        self.acquired = 0
        self.released = 0
        self.active = 0
        self.peak_active = 0
        self.sandboxes: list[FakeSandbox] = []
        self.library_sources: list[str | None] = []
        self.launch_fails = False
        self.library_fails = False
        self.library_present = True
        self.hang = False
        self.crash = False
        self.markup: str | None = None
        self.delays: dict[str, float] = {}
        self.pdf_bytes = b""

    def delay_for(self, code: str) -> float:
        return self.delays.get(code, 0)

    async def launch(self) -> FakeSandbox:
        if self.launch_fails:
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        sandbox = FakeSandbox(self, len(self.sandboxes))
        self.sandboxes.append(sandbox)
        self.acquired += 1
        return sandbox


@pytest.fixture
def sandbox_harness() -> SandboxHarness:
    return SandboxHarness()
