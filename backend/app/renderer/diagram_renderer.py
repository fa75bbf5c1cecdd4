import asyncio
import logging
from xml.etree import ElementTree as ET

from app.agent.artifacts import RenderResult
from app.agent.errors import RenderError, RenderErrorKind
from app.core.config import settings
from app.renderer.sandbox import (
    PlaywrightSandbox,
    Sandbox,
    SandboxLauncher,
    SandboxLoadError,
    SandboxScriptError,
    SandboxUnavailable,
    open_sandbox,
)

logger = logging.getLogger(__name__)

HOST_DOCUMENT = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body><div id="container"></div></body>
</html>
"""

LIBRARY_CHECK = "() => typeof window.mermaid !== 'undefined' && typeof window.mermaid.render === 'function'"

# Re-serialize through XMLSerializer: mermaid's own output is HTML-serialized
# (e.g. bare <br>) and would not parse as XML.
RENDER_FUNCTION = """
async ({ code, config, elementId }) => {
  window.mermaid.initialize(config);
  const { svg } = await window.mermaid.render(elementId, code);
  const doc = new DOMParser().parseFromString(svg, "text/html");
  const root = doc.querySelector("svg");
  if (!root) {
    throw new Error("Mermaid returned no svg element");
  }
  return new XMLSerializer().serializeToString(root);
}
"""

RENDER_ELEMENT_ID = "graphDiv"
MAX_DETAIL_CHARS = 300


def mermaid_config(theme: str | None = None) -> dict:
    return {
        "startOnLoad": False,
        "securityLevel": "strict",
        "deterministicIds": True,
        "deterministicIDSeed": "architecture-diagram",
        "theme": theme or settings.MERMAID_THEME,
        "layout": "dagre",
        "look": "classic",
    }


def is_well_formed_svg(markup: object) -> bool:
    if not isinstance(markup, str) or not markup.strip():
        return False
    try:
        root = ET.fromstring(markup)
    except ET.ParseError:
        return False
    return root.tag.rsplit("}", 1)[-1] == "svg"


def _short_detail(message: str) -> str:
    text = (message or "").strip()
    if text.startswith("Error: "):
        text = text[len("Error: "):]
    if len(text) > MAX_DETAIL_CHARS:
        text = text[:MAX_DETAIL_CHARS].rstrip() + "..."
    return text


class DiagramRenderer:
    """Render Mermaid scripts to SVG, one disposable sandbox per call.

    Sandboxes are never shared between calls. `max_concurrency` only bounds
    how many exist at once; waiting for a slot does not count against the
    render timeout.
    """

    def __init__(
        self,
        launcher: SandboxLauncher | None = None,
        *,
        timeout_seconds: float | None = None,
        max_concurrency: int | None = None,
        library_url: str | None = None,
        library_path: str | None = None,
        theme: str | None = None,
    ):
        self._launcher = launcher or PlaywrightSandbox.launch
        self.timeout_seconds = timeout_seconds or settings.RENDER_TIMEOUT_SECONDS
        self.library_url = library_url or settings.MERMAID_SCRIPT_URL
        self.library_path = library_path or settings.MERMAID_SCRIPT_PATH
        self.theme = theme
        self._slots = asyncio.Semaphore(max_concurrency or settings.RENDER_MAX_CONCURRENCY)

    async def render(self, diagram_script: str) -> RenderResult:
        script = (diagram_script or "").strip()
        if not script:
            raise RenderError(RenderErrorKind.INVALID_DIAGRAM_SYNTAX, "diagram script is empty")

        async with self._slots:
            try:
                svg = await asyncio.wait_for(self._render_in_sandbox(script), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Diagram render timed out after %ss; sandbox torn down.", self.timeout_seconds)
                raise RenderError(RenderErrorKind.TIMEOUT) from None

        return RenderResult(svg=svg)

    async def _load_library(self, sandbox: Sandbox) -> None:
        try:
            await sandbox.load_document(HOST_DOCUMENT)
            await sandbox.load_library(url=self.library_url, path=self.library_path)
            loaded = await sandbox.evaluate(LIBRARY_CHECK)
        except (SandboxLoadError, SandboxScriptError) as exc:
            logger.error("Could not load mermaid into sandbox: %s", exc)
            raise RenderError(RenderErrorKind.SANDBOX_UNAVAILABLE) from exc
        if not loaded:
            logger.error("Mermaid library did not register in the sandbox.")
            raise RenderError(RenderErrorKind.SANDBOX_UNAVAILABLE)

    async def _render_in_sandbox(self, script: str) -> str:
        try:
            async with open_sandbox(self._launcher) as sandbox:
                await self._load_library(sandbox)
                try:
                    markup = await sandbox.evaluate(
                        RENDER_FUNCTION,
                        {
                            "code": script,
                            "config": mermaid_config(self.theme),
                            "elementId": RENDER_ELEMENT_ID,
                        },
                    )
                except SandboxScriptError as exc:
                    logger.info("Mermaid rejected diagram script: %s", exc)
                    raise RenderError(
                        RenderErrorKind.INVALID_DIAGRAM_SYNTAX, _short_detail(str(exc))
                    ) from exc
        except SandboxUnavailable as exc:
            logger.error("Diagram sandbox became unavailable: %s", exc)
            raise RenderError(RenderErrorKind.SANDBOX_UNAVAILABLE) from exc

        if not is_well_formed_svg(markup):
            logger.error("Renderer returned markup that is not a well-formed SVG document.")
            raise RenderError(
                RenderErrorKind.INVALID_DIAGRAM_SYNTAX, "renderer produced malformed SVG"
            )
        return markup
