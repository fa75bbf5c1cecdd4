from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.agent.architecture_agent import ArchitectureAgent, DiagramScriptAgent
from app.agent.llm_client import LLMClient
from app.renderer.diagram_renderer import DiagramRenderer
from app.renderer.pdf_export import DocumentComposer


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_diagram_renderer() -> DiagramRenderer:
    return DiagramRenderer()


@lru_cache
def get_document_composer() -> DocumentComposer:
    return DocumentComposer()


def get_architecture_agent(llm: Annotated[LLMClient, Depends(get_llm_client)]) -> ArchitectureAgent:
    return ArchitectureAgent(llm=llm)


def get_diagram_script_agent(llm: Annotated[LLMClient, Depends(get_llm_client)]) -> DiagramScriptAgent:
    return DiagramScriptAgent(llm=llm)


ArchitectureAgentDep = Annotated[ArchitectureAgent, Depends(get_architecture_agent)]
DiagramScriptAgentDep = Annotated[DiagramScriptAgent, Depends(get_diagram_script_agent)]
DiagramRendererDep = Annotated[DiagramRenderer, Depends(get_diagram_renderer)]
DocumentComposerDep = Annotated[DocumentComposer, Depends(get_document_composer)]
