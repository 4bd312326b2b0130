"""Prompt builders for primary runs, review runs and revision tasks."""

from __future__ import annotations

from typing import Callable

from missionctl.protocol.models import MediaRef, Mission, Task

NameLookup = Callable[[str], str]


def _identity(agent_id: str) -> str:
    return agent_id


def _media_lines(media: list[MediaRef]) -> list[str]:
    return [f"- {m.name} ({m.type}) {m.url}" for m in media]


def build_primary_prompt(task: Task) -> str:
    if task.input_media:
        media = "\n".join(["Attached media metadata (process if relevant):", *_media_lines(task.input_media)])
    else:
        media = "No media attached."
    return "\n".join(
        [
            "You are executing a mission.",
            f"Mission title: {task.title}",
            f"Instructions:\n{task.input_text}" if task.input_text else "Instructions: none provided.",
            media,
            "",
            "Return your complete final work as plain text.",
            "Do not ask follow-up questions; make reasonable assumptions and execute.",
        ]
    )


def build_review_history_section(task: Task) -> str:
    if not task.review_history:
        return ""
    entries: list[str] = []
    for entry in task.review_history:
        lines = [f"  Round {entry.round}: {entry.action.upper()}", f"  Summary: {entry.summary}"]
        if entry.specific_issues:
            lines.append(f"  Issues: {'; '.join(entry.specific_issues)}")
        if entry.new_instructions:
            lines.append(f"  Instructions given: {entry.new_instructions}")
        entries.append("\n".join(lines))
    return "\n\n".join(["## Previous Review History", *entries])


def build_review_prompt(
    task: Task,
    primary_output: str,
    mission: Mission | None = None,
    name_of: NameLookup = _identity,
) -> str:
    """Reviewer prompt ending in the JSON response contract ``parse_review_decision`` reads."""
    lines = [
        "You are a strict reviewer for an AI mission.",
        "",
        "## Original Mission",
        f"Title: {task.title}",
        f"Instructions:\n{task.input_text}" if task.input_text else "Instructions: none.",
    ]
    if mission is not None and mission.mission_statement:
        lines.append(f"## Original Mission Statement\n{mission.mission_statement}")
    if mission is not None and mission.mission_plan:
        lines.append(f"## Mission Plan\n{mission.mission_plan}")
    if task.input_media:
        lines.append("\n".join(["## Attached Media", *_media_lines(task.input_media)]))
    lines += [
        "",
        "## Agent Work",
        f"Primary agent: {name_of(task.primary_agent_id)} ({task.primary_agent_id})",
    ]
    if task.review_agent_id:
        lines.append(f"Review agent: {name_of(task.review_agent_id)} ({task.review_agent_id})")
    if task.revision_round > 0:
        lines.append(f"Revision round: {task.revision_round}")
    lines += [
        "",
        "Agent output to review:",
        primary_output or "(no output provided)",
        "",
        build_review_history_section(task),
        "",
        "## Review Instructions",
        "Evaluate the agent output against the original instructions.",
        "Review criteria:",
        "- Check completeness, correctness, and instruction adherence.",
        "- Approve only if the work is done and high quality.",
        "- Use REVISE if the approach is sound but needs specific fixes.",
        "- Use REDO if the agent took a fundamentally wrong approach and should start over.",
        "",
        "Respond ONLY as JSON with this shape:",
        "{",
        '  "action": "approve" | "revise" | "redo",',
        '  "summary": "short summary of your assessment",',
        '  "confidence_score": 0.0 to 1.0,',
        '  "specific_issues": ["issue 1", "issue 2"],',
        '  "new_instructions": "required for revise/redo - what should be done differently",',
        '  "reassign_agent_id": "optional - agent id if redo should use a different agent"',
        "}",
    ]
    return "\n".join(line for line in lines if line != "")


def build_revision_input(
    task: Task,
    feedback_summary: str | None,
    feedback_instructions: str | None,
    *,
    include_previous_output: bool = True,
) -> str:
    """Input text for a follow-up task spawned by a review decision."""
    feedback = feedback_instructions or feedback_summary or "Please revise based on reviewer feedback."
    lines = [
        "You are executing a revision of a mission based on reviewer feedback."
        if include_previous_output
        else "You are redoing a mission from scratch based on reviewer feedback.",
        f"Original mission title: {task.title}",
        f"Original instructions:\n{task.input_text}" if task.input_text else "Original instructions: none provided.",
        "",
    ]
    if feedback_summary:
        lines.append(f"Reviewer summary:\n{feedback_summary}")
    lines.append(f"Reviewer feedback instructions:\n{feedback}")
    if include_previous_output:
        lines += [
            "",
            f"Previous agent output:\n{task.output_text}"
            if task.output_text
            else "Previous agent output: none provided.",
            "",
            "Revise the work to address the feedback while keeping the original intent.",
        ]
    else:
        lines += ["", "Discard the previous approach and start over."]
    return "\n".join(lines)
