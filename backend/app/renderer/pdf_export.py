import asyncio
import html
import io
import logging
import re
from functools import partial

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from app.agent.artifacts import ExportRequest
from app.agent.errors import ExportError
from app.core.config import settings
from app.renderer.sandbox import (
    PlaywrightSandbox,
    SandboxLauncher,
    SandboxLoadError,
    SandboxScriptError,
    SandboxUnavailable,
    open_sandbox,
)

logger = logging.getLogger(__name__)

DOCUMENT_STYLE = """
body { font-family: Helvetica, Arial, sans-serif; color: #1f2933; font-size: 11pt; line-height: 1.45; }
h1 { font-size: 20pt; margin: 0 0 12pt 0; }
h2 { font-size: 13pt; margin: 16pt 0 6pt 0; }
ul { margin: 4pt 0 8pt 18pt; padding: 0; }
.tech li { display: inline-block; margin: 0 6pt 4pt 0; padding: 2pt 6pt; border: 1px solid #cbd2d9; border-radius: 3pt; }
.diagram { page-break-inside: avoid; text-align: center; }
.diagram svg { max-width: 100%; height: auto; }
"""

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_\- ]", "_", name or "").strip()[:150]
    return cleaned or "architecture"


def _problem_html(problem: str) -> str:
    blocks = [b for b in re.split(r"\n\s*\n", (problem or "").strip()) if b.strip()]
    parts: list[str] = []
    for block in blocks:
        lines = [ln for ln in block.splitlines() if ln.strip()]
        if lines and all(_BULLET.match(ln) for ln in lines):
            items = "".join(f"<li>{html.escape(_BULLET.sub('', ln).strip())}</li>" for ln in lines)
            parts.append(f"<ul>{items}</ul>")
        else:
            parts.append("<p>" + "<br>".join(html.escape(ln.strip()) for ln in lines) + "</p>")
    return "\n".join(parts)


def build_document_html(request: ExportRequest) -> str:
    title = html.escape(request.title.strip())
    tech = [t.strip() for t in request.tech_stack if t and t.strip()]
    tech_section = ""
    if tech:
        items = "".join(f"<li>{html.escape(t)}</li>" for t in tech)
        tech_section = f'<h2>Tech Stack</h2><ul class="tech">{items}</ul>'

    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{title}</title><style>{DOCUMENT_STYLE}</style></head><body>"
        f"<h1>{title}</h1>"
        f"<h2>Problem</h2>{_problem_html(request.problem)}"
        f"{tech_section}"
        f'<h2>Architecture</h2><div class="diagram">{request.svg}</div>'
        "</body></html>"
    )


def stamp_metadata(pdf_bytes: bytes, *, title: str, subject: str = "") -> bytes:
    """Return a copy of the PDF with document info (title, subject, creator) set."""
    try:
        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(pdf_bytes)))
        writer.add_metadata(
            {
                "/Title": title,
                "/Subject": subject,
                "/Creator": settings.PROJECT_NAME,
            }
        )
        out = io.BytesIO()
        writer.write(out)
    except PyPdfError as exc:
        logger.error("Could not stamp PDF metadata: %s", exc)
        raise ExportError() from exc
    return out.getvalue()


class DocumentComposer:
    """Print title, problem, tech stack and diagram into a PDF."""

    def __init__(self, launcher: SandboxLauncher | None = None, *, timeout_seconds: float | None = None):
        # The SVG comes from the client; print it with scripting disabled.
        self._launcher = launcher or partial(PlaywrightSandbox.launch, javascript_enabled=False)
        self.timeout_seconds = timeout_seconds or settings.EXPORT_TIMEOUT_SECONDS

    async def _print(self, document_html: str) -> bytes:
        try:
            async with open_sandbox(self._launcher) as sandbox:
                await sandbox.load_document(document_html)
                return await sandbox.print_pdf()
        except (SandboxUnavailable, SandboxLoadError, SandboxScriptError) as exc:
            logger.error("PDF printing failed: %s", exc)
            raise ExportError() from exc

    async def compose(self, request: ExportRequest) -> bytes:
        document_html = build_document_html(request)
        try:
            pdf_bytes = await asyncio.wait_for(self._print(document_html), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("PDF export timed out after %ss.", self.timeout_seconds)
            raise ExportError("Building the PDF took too long and was stopped.") from None

        first_line = (request.problem or "").strip().splitlines()[:1]
        # pypdf is synchronous; keep it off the event loop.
        return await asyncio.to_thread(
            stamp_metadata,
            pdf_bytes,
            title=request.title.strip(),
            subject=first_line[0][:200] if first_line else "",
        )
