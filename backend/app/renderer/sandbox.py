"""Disposable script-execution sandboxes.

A sandbox is a throwaway headless browser page: load a host document, pull a
third-party library into it, evaluate scripts against it, and tear it all
down. Callers only see the narrow `Sandbox` protocol so the backing runtime
can be swapped (tests use in-memory fakes).
"""
import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from app.core.config import settings

logger = logging.getLogger(__name__)

TARGET_CLOSED_MESSAGE = "has been closed"

# Stop tasks for runtimes whose launch was cancelled mid-start.
_orphan_stops: set[asyncio.Future] = set()


class SandboxUnavailable(Exception):
    """The sandbox runtime could not be started or went away mid-call."""


class SandboxLoadError(Exception):
    """The host document or a library could not be loaded into the sandbox."""


class SandboxScriptError(Exception):
    """A script evaluated inside the sandbox threw."""


class Sandbox(Protocol):
    async def load_document(self, html: str) -> None: ...

    async def load_library(self, *, url: str | None = None, path: str | None = None) -> None: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def print_pdf(self) -> bytes: ...

    async def dispose(self) -> None: ...


SandboxLauncher = Callable[[], Awaitable[Sandbox]]


def _error_message(exc: PlaywrightError) -> str:
    message = getattr(exc, "message", None) or str(exc)
    # Drop the Playwright call log appended after the actual script error.
    return message.split("\nCall log:", 1)[0].strip()


def _sandbox_error(exc: PlaywrightError, error_cls: type[Exception]) -> Exception:
    message = _error_message(exc)
    # A crashed or closed page says nothing about the script that was running.
    if TARGET_CLOSED_MESSAGE in message:
        return SandboxUnavailable(message)
    return error_cls(message)


def _stop_orphaned_runtime(starting: asyncio.Future) -> None:
    if starting.cancelled() or starting.exception() is not None:
        return
    stopping = asyncio.ensure_future(starting.result().stop())
    _orphan_stops.add(stopping)
    stopping.add_done_callback(_orphan_stops.discard)


class PlaywrightSandbox:
    """One Chromium process with one page, owned by a single request."""

    def __init__(self, playwright: Any):
        self._playwright = playwright
        self._browser: Any = None
        self._page: Any = None
        self._disposed = False

    @classmethod
    async def launch(
        cls,
        *,
        browser_args: list[str] | None = None,
        javascript_enabled: bool = True,
    ) -> "PlaywrightSandbox":
        # Shielded so a cancelled launch can still stop the driver once it is up.
        starting = asyncio.ensure_future(async_playwright().start())
        try:
            playwright = await asyncio.shield(starting)
        except BaseException:
            starting.add_done_callback(_stop_orphaned_runtime)
            raise
        sandbox = cls(playwright)
        try:
            sandbox._browser = await playwright.chromium.launch(
                headless=True,
                args=list(browser_args if browser_args is not None else settings.SANDBOX_BROWSER_ARGS),
            )
            sandbox._page = await sandbox._browser.new_page(java_script_enabled=javascript_enabled)
        except BaseException:
            await sandbox.dispose()
            raise
        return sandbox

    async def load_document(self, html: str) -> None:
        try:
            await self._page.set_content(html, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise _sandbox_error(exc, SandboxLoadError) from exc

    async def load_library(self, *, url: str | None = None, path: str | None = None) -> None:
        if not url and not path:
            raise SandboxLoadError("No library source configured")
        try:
            if path:
                await self._page.add_script_tag(path=path)
            else:
                await self._page.add_script_tag(url=url)
        except PlaywrightError as exc:
            raise _sandbox_error(exc, SandboxLoadError) from exc

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(expression, arg)
        except PlaywrightError as exc:
            raise _sandbox_error(exc, SandboxScriptError) from exc

    async def print_pdf(self) -> bytes:
        try:
            return await self._page.pdf(
                format="A4",
                print_background=True,
                margin={"top": "18mm", "bottom": "18mm", "left": "15mm", "right": "15mm"},
            )
        except PlaywrightError as exc:
            raise _sandbox_error(exc, SandboxScriptError) from exc

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                logger.warning("Sandbox browser close failed: %s", exc)
        try:
            await self._playwright.stop()
        except PlaywrightError as exc:
            logger.warning("Sandbox runtime stop failed: %s", exc)


@asynccontextmanager
async def open_sandbox(launcher: SandboxLauncher) -> AsyncIterator[Sandbox]:
    """Acquire a fresh sandbox and dispose it on every exit path."""
    try:
        sandbox = await launcher()
    except Exception as exc:
        logger.error("Sandbox launch failed: %s", exc)
        raise SandboxUnavailable(str(exc)) from exc

    try:
        yield sandbox
    finally:
        await sandbox.dispose()
