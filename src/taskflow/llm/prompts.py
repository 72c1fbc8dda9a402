# src/taskflow/llm/prompts.py

from __future__ import annotations

from typing import Final

IMAGE_EXTRACTION_PROMPT: Final[str] = """
Analyze this image of homework/tasks.
Identify individual tasks.
For each task, determine:
1. The subject (Math, Language, Science, Art, or Other).
2. A short, clear title (e.g., "Page 42 Ex 1-5").
3. Estimated minutes to complete (be realistic for a student, default to 20 if unsure).
4. Break it down into 3-5 small, actionable steps (e.g., "Read passage", "Answer Q1", "Check spelling").

Return STRICT JSON only. No Markdown. Shape:
{"tasks": [{"subject": "...", "title": "...", "estimatedMinutes": 20, "steps": ["...", "..."]}]}
""".strip()


def step_generation_prompt(title: str, subject: str) -> str:
    return (
        f'I have a homework task: "{title}" for subject "{subject}".\n'
        "Break this down into 3-5 simple, actionable micro-steps for a student to reduce anxiety.\n"
        'Return STRICT JSON only. No Markdown. Shape: {"steps": ["...", "..."]}'
    )


def companion_system_prompt(task_context: str) -> str:
    """
    System prompt for the command agent.

    The numbered task list is injected so the model can pick keywords that
    actually occur in titles or subjects.
    """
    listing = task_context.strip() or "(no tasks yet)"
    return f"""
You are a friendly, encouraging study companion for a student.
Your goal is to help them manage their homework list.
Here is the current list of tasks:
{listing}

If the user asks to change something, use the appropriate tool.
Identify tasks with a keyword taken from their title or subject.
If the user just wants to chat or asks for encouragement, just reply with text.
Keep your responses brief (under 30 words) and motivating.
""".strip()
