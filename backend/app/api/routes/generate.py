import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import AliasChoices, BaseModel, Field

from app.agent.artifacts import ConversationMessage, GenerationRequest, GenerationResult
from app.agent.conversation import format_conversation
from app.agent.errors import ExtractionError, GenerationError, InputValidationError
from app.api.deps import ArchitectureAgentDep, DiagramScriptAgentDep

router = APIRouter()
logger = logging.getLogger(__name__)


class GenerateOptions(BaseModel):
    diagram_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("diagram_type", "diagramType"),
    )


class GenerateRequest(BaseModel):
    context_text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("context_text", "contextText", "conversation", "problem"),
    )
    diagram_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("diagram_type", "diagramType", "diagramTypeHint"),
    )
    options: GenerateOptions | None = None
    messages: list[ConversationMessage] = Field(default_factory=list)
    existing_title: str | None = None
    existing_problem: str | None = None


class DiagramScriptResponse(BaseModel):
    mermaid: str


def build_generation_request(payload: GenerateRequest) -> GenerationRequest:
    latest = (payload.context_text or "").strip()
    if payload.messages or payload.existing_title or payload.existing_problem:
        context_text = format_conversation(
            payload.messages,
            latest,
            existing_title=payload.existing_title,
            existing_problem=payload.existing_problem,
        )
    else:
        context_text = latest

    if not context_text.strip():
        raise InputValidationError("Missing required field: context_text (string)")

    diagram_type = payload.diagram_type or (payload.options.diagram_type if payload.options else None)
    return GenerationRequest(context_text=context_text, diagram_type=diagram_type)


@router.post("/generate-mermaid", response_model=GenerationResult)
async def generate_architecture(payload: GenerateRequest, agent: ArchitectureAgentDep) -> Any:
    """
    Generate title, problem statement, tech stack and Mermaid diagram from a
    problem description or conversation transcript.
    """
    try:
        request = build_generation_request(payload)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=e.user_message)

    try:
        return await agent.run(request)
    except (GenerationError, ExtractionError) as e:
        logger.warning("Architecture generation failed: %s", e)
        raise HTTPException(status_code=502, detail=e.user_message) from e


@router.post("/generate-diagram", response_model=DiagramScriptResponse)
async def generate_diagram_script(payload: GenerateRequest, agent: DiagramScriptAgentDep) -> Any:
    """Generate only the Mermaid source for a problem description."""
    try:
        request = build_generation_request(payload)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=e.user_message)

    try:
        script = await agent.run(request)
    except (GenerationError, ExtractionError) as e:
        logger.warning("Diagram script generation failed: %s", e)
        raise HTTPException(status_code=502, detail=e.user_message) from e
    return DiagramScriptResponse(mermaid=script)
