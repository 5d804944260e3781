"""Prompt templates for LLM-driven extraction."""

from __future__ import annotations

from collections.abc import Mapping
from textwrap import dedent
from typing import Any

MAX_TASK_CHARS = 100


def build_todo_extraction_prompt(subject: str, body: str) -> str:
    """Compose the single-task extraction prompt for an email."""
    prompt = f"""
    You are a helpful assistant that extracts actionable tasks from emails.

    Analyze the following email and extract ONE clear, concise to-do item.

    Rules:
    - Extract only ONE actionable task (the most important one)
    - The task should be written as a clear action item
    - Keep it concise (max {MAX_TASK_CHARS} characters)
    - If there is no actionable task in the email, respond with: "NONE"
    - Do not include explanations, only output the task text or "NONE"

    Email Subject: {{subject}}

    Email Body:
    {{body}}

    Extracted Task:
    """
    # Substitute after dedent so multi-line bodies do not break indentation.
    return dedent(prompt).strip().format(subject=subject, body=body)


def build_email_analysis_prompt(
    *,
    subject: str,
    body: str,
    agent_prompt: str,
    context_schema: Mapping[str, str],
) -> str:
    """Compose a JSON-only structured analysis prompt for an agent schema."""
    schema_description = "\n".join(
        f"- {key} ({value_type})" for key, value_type in context_schema.items()
    )
    sections = [
        "You are an email analysis assistant. Analyze the following email "
        "and extract structured information.",
        f"Agent Instructions:\n{agent_prompt}",
        f"Expected Output Schema:\n{schema_description or '- (none)'}",
        f"Email to Analyze:\nSubject: {subject}",
        f"Body:\n{body}",
        "Please provide the extracted information in JSON format matching the "
        "schema above.\nOnly output the JSON, no additional text.",
    ]
    return "\n\n".join(sections)


def build_context_prompt(
    system_prompt: str, user_prompt: str, context: Mapping[str, Any]
) -> str:
    """Frame a user request with system instructions and context entries."""
    context_lines = "\n".join(f"- {key}: {value}" for key, value in context.items())
    return "\n\n".join(
        [
            f"System Instructions:\n{system_prompt}",
            f"Context:\n{context_lines}",
            f"User Request:\n{user_prompt}",
        ]
    )


__all__ = [
    "MAX_TASK_CHARS",
    "build_context_prompt",
    "build_email_analysis_prompt",
    "build_todo_extraction_prompt",
]
