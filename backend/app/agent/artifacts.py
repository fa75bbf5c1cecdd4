from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    """Input of a single architecture generation call."""
    model_config = ConfigDict(frozen=True)

    context_text: str = Field(description="Problem description or formatted conversation transcript")
    diagram_type: str | None = Field(
        default=None,
        description="Preferred Mermaid diagram kind (e.g. 'flowchart', 'sequence')",
    )


class ExpectedFields(BaseModel):
    """Maps GenerationResult fields to the keys the model is asked to emit."""
    model_config = ConfigDict(frozen=True)

    title: str = "title"
    problem: str = "problem"
    tech_stack: str = "tech_stack"
    diagram_script: str = "mermaid"
    default_title: str = "Architecture Diagram"
    problem_fallback_chars: int = 600


class GenerationResult(BaseModel):
    """Normalized architecture artifact extracted from model output."""
    title: str = Field(description="Short descriptive title")
    problem: str = Field(description="Problem statement")
    tech_stack: list[str] = Field(default_factory=list, description="Probable technologies, in model order")
    diagram_script: str = Field(
        validation_alias=AliasChoices("diagram_script", "mermaid"),
        serialization_alias="mermaid",
        description="Mermaid source describing the architecture",
    )


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    text: str = ""
    mermaid: str | None = None


class RenderRequest(BaseModel):
    diagram_script: str = Field(
        validation_alias=AliasChoices("diagram_script", "diagramScript", "mermaidCode"),
    )


class RenderResult(BaseModel):
    svg: str = Field(description="Self-contained SVG document")


class ExportRequest(BaseModel):
    title: str
    problem: str
    svg: str = Field(validation_alias=AliasChoices("svg", "vectorMarkup"))
    tech_stack: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tech_stack", "techStack"),
    )
