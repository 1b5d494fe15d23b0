"""Prompt rendering for LLM scorers.

Message templates reference resolved variables as ``{variable_name}``.
Unknown placeholders are left untouched so literal braces (JSON
examples in a prompt, for instance) survive rendering.
"""

from __future__ import annotations

import re

from spanscore.models.evaluator import LLMMessage, OutputField, OutputFieldType

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

PROMPT_PREVIEW_CHARS = 200


def render_template(template: str, values: dict[str, str]) -> str:
    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        return values[name] if name in values else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def render_messages(messages: list[LLMMessage], values: dict[str, str]) -> list[LLMMessage]:
    """Return the messages with every known placeholder substituted."""
    return [
        LLMMessage(role=m.role, content=render_template(m.content, values))
        for m in messages
    ]


def placeholders(messages: list[LLMMessage]) -> set[str]:
    found: set[str] = set()
    for m in messages:
        found.update(_PLACEHOLDER.findall(m.content))
    return found


def build_schema_instruction(output_schema: list[OutputField]) -> str:
    """Describe the expected JSON object for the judge.

    Appended to the system prompt so the model returns parseable output.
    """
    if not output_schema:
        return ""
    lines = ["Return a JSON object with these fields:"]
    for f in output_schema:
        if f.type == OutputFieldType.numeric:
            lo = f.min_value if f.min_value is not None else "-inf"
            hi = f.max_value if f.max_value is not None else "inf"
            kind = f"number in [{lo}, {hi}]"
        elif f.type == OutputFieldType.categorical:
            kind = "one of " + ", ".join(f.categories or [])
        else:
            kind = "true or false"
        suffix = f" - {f.description}" if f.description else ""
        lines.append(f'- "{f.name}": {kind}{suffix}')
        lines.append(f'- "{f.name}_reason": short justification')
    return "\n".join(lines)


def with_schema_instruction(
    messages: list[LLMMessage],
    output_schema: list[OutputField],
) -> list[LLMMessage]:
    instruction = build_schema_instruction(output_schema)
    if not instruction:
        return messages
    if messages and messages[0].role == "system":
        head = LLMMessage(role="system", content=f"{messages[0].content}\n\n{instruction}")
        return [head, *messages[1:]]
    return [LLMMessage(role="system", content=instruction), *messages]


def prompt_preview(messages: list[LLMMessage]) -> str | None:
    """First message content, truncated for display."""
    if not messages:
        return None
    content = messages[0].content
    if len(content) > PROMPT_PREVIEW_CHARS:
        return content[:PROMPT_PREVIEW_CHARS] + "..."
    return content
