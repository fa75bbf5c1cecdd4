from app.agent.artifacts import ConversationMessage


def format_conversation(
    messages: list[ConversationMessage],
    latest_user_text: str | None = None,
    *,
    existing_title: str | None = None,
    existing_problem: str | None = None,
) -> str:
    """Flatten a chat transcript into the context text sent to the model.

    Order: existing title/problem, prior user messages and prior assistant
    diagrams (labelled `previous_mermaid`), then the latest user request.
    Blocks are separated by a blank line.
    """
    lines: list[str] = []

    if existing_title and existing_title.strip():
        lines.append(f"Existing Title: {existing_title.strip()}")
    if existing_problem and existing_problem.strip():
        lines.append(f"Existing Problem: {existing_problem.strip()}")

    for message in messages:
        if message.role == "user":
            if message.text.strip():
                lines.append(f"User: {message.text.strip()}")
        elif message.mermaid and message.mermaid.strip():
            lines.append(f"Assistant (previous_mermaid):\n{message.mermaid.strip()}")

    if latest_user_text and latest_user_text.strip():
        lines.append(f"User: {latest_user_text.strip()}")

    return "\n\n".join(lines)
