import logging

from app.agent.artifacts import ExpectedFields, GenerationRequest, GenerationResult
from app.agent.base import BaseAgent
from app.agent.errors import ExtractionError, ExtractionErrorKind
from app.agent.extraction import extract_diagram_script, extract_structured
from app.agent.prompts.architecture import build_architecture_prompts, build_diagram_prompts
from app.core.config import settings

logger = logging.getLogger(__name__)


class ArchitectureAgent(BaseAgent[GenerationRequest, GenerationResult]):
    """
    Produces the title / problem / tech stack / diagram artifact for a context.
    """

    async def run(self, input_data: GenerationRequest) -> GenerationResult:
        system_prompt, user_prompt = build_architecture_prompts(
            input_data.context_text, input_data.diagram_type
        )
        raw_text = await self.llm.generate_text(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=settings.GENERATION_TEMPERATURE,
            max_tokens=settings.GENERATION_MAX_TOKENS,
        )

        result = extract_structured(
            raw_text,
            ExpectedFields(problem_fallback_chars=settings.PROBLEM_FALLBACK_CHARS),
            context_text=input_data.context_text,
        )

        # An empty script must never reach the renderer.
        if not result.diagram_script:
            logger.warning("Model returned an architecture without a diagram script.")
            raise ExtractionError(ExtractionErrorKind.EMPTY_DIAGRAM_SCRIPT)

        return result


class DiagramScriptAgent(BaseAgent[GenerationRequest, str]):
    """Asks the model for Mermaid source only, without the JSON envelope."""

    async def run(self, input_data: GenerationRequest) -> str:
        system_prompt, user_prompt = build_diagram_prompts(
            input_data.context_text, input_data.diagram_type
        )
        raw_text = await self.llm.generate_text(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=settings.GENERATION_TEMPERATURE,
            max_tokens=settings.GENERATION_MAX_TOKENS,
        )

        script = extract_diagram_script(raw_text)
        if not script:
            raise ExtractionError(ExtractionErrorKind.EMPTY_DIAGRAM_SCRIPT)
        return script
