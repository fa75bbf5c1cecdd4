from unittest.mock import AsyncMock, MagicMock

import pytest

from app.agent.architecture_agent import ArchitectureAgent, DiagramScriptAgent
from app.agent.artifacts import GenerationRequest, GenerationResult
from app.agent.errors import ExtractionError, ExtractionErrorKind, GenerationError


def _fake_llm(text: str) -> MagicMock:
    llm = MagicMock()
    llm.generate_text = AsyncMock(return_value=text)
    return llm


@pytest.mark.asyncio
async def test_architecture_agent_extracts_and_normalizes():
    llm = _fake_llm(
        """
        Sure, here is the design.
        ```json
        {
          "title": "  Blog Platform ",
          "problem": "Authors publish posts; readers comment.",
          "tech_stack": "FastAPI, Postgres, React",
          "mermaid": "flowchart TD\\n  Web --> API\\n  API --> DB",
        }
        ```
        """
    )
    agent = ArchitectureAgent(llm=llm)

    result = await agent.run(GenerationRequest(context_text="Build a blog", diagram_type="sequence"))

    assert result == GenerationResult(
        title="Blog Platform",
        problem="Authors publish posts; readers comment.",
        tech_stack=["FastAPI", "Postgres", "React"],
        diagram_script="flowchart TD\n  Web --> API\n  API --> DB",
    )
    llm.generate_text.assert_awaited_once()
    kwargs = llm.generate_text.call_args.kwargs
    assert "Prefer a sequence mermaid diagram." in kwargs["system_prompt"]
    assert "%%JSON_START%%" in kwargs["system_prompt"]
    assert '"""Build a blog"""' in kwargs["user_prompt"]
    assert kwargs["temperature"] == 0.15
    assert kwargs["max_tokens"] == 1200


@pytest.mark.asyncio
async def test_architecture_agent_defaults_problem_to_context():
    llm = _fake_llm('{"mermaid": "graph TD\\n A-->B"}')
    agent = ArchitectureAgent(llm=llm)

    result = await agent.run(GenerationRequest(context_text="User: build a todo app"))

    assert result.title == "Architecture Diagram"
    assert result.problem == "User: build a todo app"
    assert "concise flowchart-style" in llm.generate_text.call_args.kwargs["system_prompt"]


@pytest.mark.asyncio
async def test_architecture_agent_rejects_empty_diagram_script():
    agent = ArchitectureAgent(llm=_fake_llm('{"title": "T", "problem": "P", "mermaid": "   "}'))

    with pytest.raises(ExtractionError) as exc_info:
        await agent.run(GenerationRequest(context_text="anything"))

    assert exc_info.value.kind is ExtractionErrorKind.EMPTY_DIAGRAM_SCRIPT


@pytest.mark.asyncio
async def test_architecture_agent_surfaces_unstructured_output():
    agent = ArchitectureAgent(llm=_fake_llm("I am unable to help with that."))

    with pytest.raises(ExtractionError) as exc_info:
        await agent.run(GenerationRequest(context_text="anything"))

    assert exc_info.value.kind is ExtractionErrorKind.NO_STRUCTURED_PAYLOAD


@pytest.mark.asyncio
async def test_architecture_agent_does_not_retry_upstream_failures():
    llm = MagicMock()
    llm.generate_text = AsyncMock(side_effect=GenerationError())
    agent = ArchitectureAgent(llm=llm)

    with pytest.raises(GenerationError):
        await agent.run(GenerationRequest(context_text="anything"))

    llm.generate_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_diagram_script_agent_returns_cleaned_script():
    llm = _fake_llm("```mermaid\nsequenceDiagram\n  Client->>API: request\n```")
    agent = DiagramScriptAgent(llm=llm)

    script = await agent.run(GenerationRequest(context_text="Explain the login flow"))

    assert script == "sequenceDiagram\n  Client->>API: request"
    assert "%%MERMAID_START%%" in llm.generate_text.call_args.kwargs["system_prompt"]


@pytest.mark.asyncio
async def test_diagram_script_agent_rejects_empty_output():
    agent = DiagramScriptAgent(llm=_fake_llm("```\n```"))

    with pytest.raises(ExtractionError) as exc_info:
        await agent.run(GenerationRequest(context_text="x"))

    assert exc_info.value.kind is ExtractionErrorKind.EMPTY_DIAGRAM_SCRIPT


def test_generation_request_is_immutable():
    request = GenerationRequest(context_text="x")

    with pytest.raises(Exception):
        request.context_text = "y"
