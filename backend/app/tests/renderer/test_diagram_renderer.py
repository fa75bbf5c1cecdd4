import asyncio
from xml.etree import ElementTree as ET

import pytest

from app.agent.errors import RenderError, RenderErrorKind
from app.renderer.diagram_renderer import (
    DiagramRenderer,
    HOST_DOCUMENT,
    is_well_formed_svg,
    mermaid_config,
)

SVG_NS = "{http://www.w3.org/2000/svg}"


def _renderer(harness, **kwargs) -> DiagramRenderer:
    kwargs.setdefault("timeout_seconds", 2)
    kwargs.setdefault("library_url", "https://cdn.example/mermaid.min.js")
    return DiagramRenderer(harness.launch, **kwargs)


@pytest.mark.asyncio
async def test_render_returns_svg_and_releases_sandbox(sandbox_harness):
    result = await _renderer(sandbox_harness).render("  flowchart TD\n  A --> B  ")

    root = ET.fromstring(result.svg)
    assert root.tag == f"{SVG_NS}svg"
    assert root.find(f"{SVG_NS}text").text == "flowchart TD\n  A --> B"
    assert sandbox_harness.acquired == sandbox_harness.released == 1
    sandbox = sandbox_harness.sandboxes[0]
    assert sandbox.documents == [HOST_DOCUMENT]
    assert sandbox_harness.library_sources == ["https://cdn.example/mermaid.min.js"]


@pytest.mark.asyncio
async def test_render_prefers_local_library_path(sandbox_harness):
    await _renderer(sandbox_harness, library_path="/opt/mermaid/mermaid.min.js").render("graph TD\nA-->B")

    assert sandbox_harness.library_sources == ["/opt/mermaid/mermaid.min.js"]


@pytest.mark.asyncio
@pytest.mark.parametrize("script", ["", "   \n  "])
async def test_empty_script_is_invalid_syntax_without_sandbox(sandbox_harness, script):
    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render(script)

    assert exc_info.value.kind is RenderErrorKind.INVALID_DIAGRAM_SYNTAX
    assert sandbox_harness.acquired == sandbox_harness.released == 0


@pytest.mark.asyncio
async def test_syntax_error_carries_renderer_message(sandbox_harness):
    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("invalid diagram")

    error = exc_info.value
    assert error.kind is RenderErrorKind.INVALID_DIAGRAM_SYNTAX
    assert error.detail.startswith("Parse error on line 1:")
    assert "Parse error on line 1" in error.user_message
    assert sandbox_harness.acquired == sandbox_harness.released == 1


@pytest.mark.asyncio
async def test_timeout_tears_down_sandbox(sandbox_harness):
    sandbox_harness.hang = True

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness, timeout_seconds=0.05).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.TIMEOUT
    assert sandbox_harness.acquired == sandbox_harness.released == 1
    assert sandbox_harness.active == 0


@pytest.mark.asyncio
async def test_launch_failure_is_sandbox_unavailable(sandbox_harness):
    sandbox_harness.launch_fails = True

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.SANDBOX_UNAVAILABLE
    assert "ms-playwright" not in exc_info.value.user_message
    assert sandbox_harness.acquired == sandbox_harness.released == 0


@pytest.mark.asyncio
async def test_page_closed_mid_render_is_sandbox_unavailable(sandbox_harness):
    sandbox_harness.crash = True

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.SANDBOX_UNAVAILABLE
    assert exc_info.value.detail is None
    assert sandbox_harness.acquired == sandbox_harness.released == 1


@pytest.mark.asyncio
async def test_library_load_failure_is_sandbox_unavailable(sandbox_harness):
    sandbox_harness.library_fails = True

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.SANDBOX_UNAVAILABLE
    assert sandbox_harness.acquired == sandbox_harness.released == 1


@pytest.mark.asyncio
async def test_library_not_registered_is_sandbox_unavailable(sandbox_harness):
    sandbox_harness.library_present = False

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.SANDBOX_UNAVAILABLE
    assert sandbox_harness.acquired == sandbox_harness.released == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "markup",
    [
        '<svg xmlns="http://www.w3.org/2000/svg"><g><text>cut',
        "<div>not svg</div>",
        "",
    ],
)
async def test_malformed_markup_is_never_returned(sandbox_harness, markup):
    sandbox_harness.markup = markup

    with pytest.raises(RenderError) as exc_info:
        await _renderer(sandbox_harness).render("graph TD\nA-->B")

    assert exc_info.value.kind is RenderErrorKind.INVALID_DIAGRAM_SYNTAX
    assert sandbox_harness.acquired == sandbox_harness.released == 1


@pytest.mark.asyncio
async def test_acquire_release_balanced_across_outcomes(sandbox_harness):
    renderer = _renderer(sandbox_harness, timeout_seconds=0.2)
    sandbox_harness.delays["graph TD\nslow"] = 5

    outcomes = await asyncio.gather(
        renderer.render("graph TD\nA-->B"),
        renderer.render("invalid"),
        renderer.render("graph TD\nslow"),
        return_exceptions=True,
    )

    assert outcomes[0].svg
    assert outcomes[1].kind is RenderErrorKind.INVALID_DIAGRAM_SYNTAX
    assert outcomes[2].kind is RenderErrorKind.TIMEOUT
    assert sandbox_harness.acquired == sandbox_harness.released == 3


@pytest.mark.asyncio
async def test_concurrent_renders_do_not_cross_contaminate(sandbox_harness):
    scripts = [f"flowchart TD\n  N{i}[\"Node {i}\"] --> End{i}" for i in range(8)]
    # Later scripts finish first.
    for i, script in enumerate(scripts):
        sandbox_harness.delays[script] = 0.01 * (len(scripts) - i)

    results = await asyncio.gather(*(_renderer(sandbox_harness, max_concurrency=8).render(s) for s in scripts))

    for script, result in zip(scripts, results):
        root = ET.fromstring(result.svg)
        assert root.find(f"{SVG_NS}text").text == script
    assert sandbox_harness.acquired == sandbox_harness.released == len(scripts)
    assert all(len(sandbox.rendered) == 1 for sandbox in sandbox_harness.sandboxes)


@pytest.mark.asyncio
async def test_concurrency_limit_bounds_live_sandboxes(sandbox_harness):
    renderer = _renderer(sandbox_harness, max_concurrency=2)
    scripts = [f"graph TD\nA{i}-->B{i}" for i in range(6)]
    for script in scripts:
        sandbox_harness.delays[script] = 0.02

    results = await asyncio.gather(*(renderer.render(s) for s in scripts))

    assert len(results) == 6
    assert sandbox_harness.peak_active <= 2
    assert sandbox_harness.acquired == sandbox_harness.released == 6


def test_mermaid_config_is_deterministic():
    config = mermaid_config("neutral")

    assert config["startOnLoad"] is False
    assert config["deterministicIds"] is True
    assert config["theme"] == "neutral"
    assert config == mermaid_config("neutral")


def test_is_well_formed_svg():
    assert is_well_formed_svg('<svg xmlns="http://www.w3.org/2000/svg"><g/></svg>')
    assert is_well_formed_svg("<svg><rect/></svg>")
    assert not is_well_formed_svg("<svg><rect></svg>")
    assert not is_well_formed_svg("<html><svg/></html>")
    assert not is_well_formed_svg(None)
