from app.agent.extraction import (
    DIAGRAM_END_MARKER,
    DIAGRAM_START_MARKER,
    JSON_END_MARKER,
    JSON_START_MARKER,
)

DEFAULT_DIAGRAM_HINT = (
    "Prefer a concise flowchart-style mermaid diagram appropriate for architecture diagrams."
)

ARCHITECTURE_SYSTEM_PROMPT = """
You are an assistant that reads a conversation and outputs a JSON object (and only the JSON, no extra text) describing an architecture design.
The JSON must contain these fields:
- "title": a short descriptive title (string).
- "problem": a concise, clear problem statement (string) - 150 to 250 words (only paragraphs and bullet points).
- "tech_stack": an array of probable technologies and components to implement this (array of strings).
- "mermaid": a mermaid diagram code string (use mermaid flowchart/graph or sequence as appropriate).

Important:
- Return EXACTLY a JSON object, and nothing else (no markdown, no explanations).
- If you must wrap output, use the markers {start_marker} and {end_marker} around the JSON only.
- Use the mermaid code in the "mermaid" field (no surrounding triple backticks).
{diagram_hint}
""".strip()

ARCHITECTURE_USER_PROMPT = """
Conversation / Context (use this to create the architecture, update the previous diagram, and produce required fields):
\"\"\"{context_text}\"\"\"

Instructions:
- Produce a JSON object with keys: title, problem, tech_stack, mermaid.
- Keep "title" succinct (<= 80 chars).
- "tech_stack" should be an array containing 4-8 likely techs (e.g. "Node.js", "React", "Postgres", "Redis", "OpenAI", "Docker", "Nginx").
- "mermaid" must be valid mermaid source (flowchart/graph LR/TD or sequence) that diagrams the architecture described.
""".strip()

DIAGRAM_SYSTEM_PROMPT = """
You are an assistant that turns a software problem description into a Mermaid diagram.
Return ONLY the Mermaid source, with no explanations and no markdown fences.
If you must add anything else, wrap the diagram in {start_marker} and {end_marker}.
Keep node IDs simple alphanumeric identifiers and quote labels that contain spaces or punctuation.
{diagram_hint}
""".strip()


def diagram_hint(diagram_type: str | None) -> str:
    if diagram_type and diagram_type.strip():
        return f"Prefer a {diagram_type.strip()} mermaid diagram."
    return DEFAULT_DIAGRAM_HINT


def build_architecture_prompts(context_text: str, diagram_type: str | None = None) -> tuple[str, str]:
    system_prompt = ARCHITECTURE_SYSTEM_PROMPT.format(
        start_marker=JSON_START_MARKER,
        end_marker=JSON_END_MARKER,
        diagram_hint=diagram_hint(diagram_type),
    )
    user_prompt = ARCHITECTURE_USER_PROMPT.format(context_text=context_text)
    return system_prompt, user_prompt


def build_diagram_prompts(context_text: str, diagram_type: str | None = None) -> tuple[str, str]:
    system_prompt = DIAGRAM_SYSTEM_PROMPT.format(
        start_marker=DIAGRAM_START_MARKER,
        end_marker=DIAGRAM_END_MARKER,
        diagram_hint=diagram_hint(diagram_type),
    )
    user_prompt = f"Problem:\n\"\"\"{context_text}\"\"\"\n\nReturn the Mermaid diagram source."
    return system_prompt, user_prompt
