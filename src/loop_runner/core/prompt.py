"""Prompt assembly for each loop iteration."""

from typing import Any, Iterable

from loop_runner.core.store import LoopConfig, LoopState


def build_prompt(config: LoopConfig, state: LoopState) -> str:
    """Build the prompt for the current iteration.

    Sections appear in a fixed order and empty ones are omitted: persistent
    memory, working memory, monitor output, previous response. The task and
    the iteration marker are always present.
    """
    sections = []

    if config.persistent:
        sections.append(f"## Persistent Memory\n{config.persistent}")

    if config.working:
        sections.append(f"## Working Memory (this iteration only)\n{config.working}")

    if state.monitor_output:
        sections.append(f"## Monitor Output\n```\n{state.monitor_output}\n```")

    if state.last_output:
        sections.append(f"## Previous Response\n{state.last_output}")

    sections.append(f"## Current Task\n{config.user}")
    sections.append(f"\n---\nIteration: {state.iteration}")

    return "\n\n".join(sections)


def extract_response(parts: Iterable[dict[str, Any]]) -> str:
    """Join the text parts of an agent response, in order."""
    return "\n".join(
        part.get("text", "")
        for part in parts
        if part.get("type") == "text"
    )
