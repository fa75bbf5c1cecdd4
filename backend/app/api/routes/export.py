import logging

from fastapi import APIRouter, HTTPException, Response

from app.agent.artifacts import ExportRequest
from app.agent.errors import ExportError
from app.api.deps import DocumentComposerDep
from app.renderer.diagram_renderer import is_well_formed_svg
from app.renderer.pdf_export import sanitize_filename

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/export")
async def export_pdf(payload: ExportRequest, composer: DocumentComposerDep) -> Response:
    """
    Build a PDF with the title, problem statement, tech stack and diagram.
    """
    if not (payload.title.strip() and payload.problem.strip() and payload.svg.strip()):
        raise HTTPException(status_code=400, detail="Missing title, problem or svg in request body")
    if not is_well_formed_svg(payload.svg):
        raise HTTPException(status_code=400, detail="svg must be a well-formed SVG document")

    try:
        pdf_bytes = await composer.compose(payload)
    except ExportError as e:
        logger.warning("PDF export failed: %s", e)
        raise HTTPException(status_code=500, detail=e.user_message) from e

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{sanitize_filename(payload.title)}.pdf"',
        },
    )
