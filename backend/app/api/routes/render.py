import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from app.agent.artifacts import RenderRequest, RenderResult
from app.agent.errors import RenderError
from app.api.deps import DiagramRendererDep

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/render", response_model=RenderResult)
async def render_diagram(payload: RenderRequest, renderer: DiagramRendererDep) -> Any:
    """
    Render a Mermaid script to SVG in a disposable headless browser.
    """
    if not payload.diagram_script.strip():
        raise HTTPException(status_code=400, detail="Missing required field: diagram_script (string)")

    try:
        return await renderer.render(payload.diagram_script)
    except RenderError as e:
        logger.warning("Diagram render failed (%s): %s", e.kind.value, e.detail or e.user_message)
        raise HTTPException(status_code=500, detail=e.user_message) from e
