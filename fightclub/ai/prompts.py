"""Prompt loading from disk and evaluation prompt assembly.

Prompt templates live under prompts/ at the project root, one directory
per prompt family. Templates use ``$name`` placeholders (string.Template)
so literal JSON braces in the text need no escaping. Missing placeholders
are left as-is rather than raising.

Consumed by:
- ChallengeEvaluationService — builds instructions + input for each call
- Startup checks (main.py) — validates required templates exist
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from string import Template

from fightclub.domain.evaluation import Challenge, ChallengeResponse

logger = logging.getLogger(__name__)

# Template names (relative to the prompts dir, without .md) required at startup.
REQUIRED_TEMPLATES: tuple[str, ...] = (
    "evaluation/instructions",
    "evaluation/request",
)


class PromptLoader:
    """Loads and caches prompt templates from disk.

    Args:
        prompts_dir: Base prompts directory (e.g. PROJECT_ROOT / "prompts").
    """

    def __init__(self, prompts_dir: Path) -> None:
        self._prompts_dir = prompts_dir
        self._cache: dict[str, Template] = {}

    def load(self, name: str) -> Template:
        """Loads a template by name, e.g. "evaluation/instructions".

        Raises:
            FileNotFoundError: If the template file doesn't exist.
        """
        if name in self._cache:
            return self._cache[name]
        path = self._prompts_dir / f"{name}.md"
        logger.debug("Loading prompt template %s", path)
        template = Template(path.read_text(encoding="utf-8"))
        self._cache[name] = template
        return template

    def validate(self) -> list[str]:
        """Returns one error string per missing or empty required template."""
        errors: list[str] = []
        for name in REQUIRED_TEMPLATES:
            path = self._prompts_dir / f"{name}.md"
            if not path.exists():
                errors.append(f"missing required prompt file prompts/{name}.md")
            elif not path.read_text(encoding="utf-8").strip():
                errors.append(f"prompt file prompts/{name}.md is empty")
        return errors

    def invalidate(self) -> None:
        """Drops cached templates so edits on disk take effect."""
        self._cache.clear()


@dataclass(frozen=True)
class EvaluationPrompt:
    """The two halves of one evaluation call."""

    instructions: str
    input: str


class EvaluationPromptBuilder:
    """Assembles evaluation prompts from a challenge and its responses.

    Args:
        loader: Source of the evaluation templates.
    """

    def __init__(self, loader: PromptLoader) -> None:
        self._loader = loader

    def build(
        self, challenge: Challenge, responses: list[ChallengeResponse]
    ) -> EvaluationPrompt:
        instructions = self._loader.load("evaluation/instructions").safe_substitute(
            challenge_type=challenge.type_name,
            format_type=challenge.format_name,
            evaluation_notes=_evaluation_notes(challenge),
        )
        request = self._loader.load("evaluation/request").safe_substitute(
            title=challenge.title or "Untitled",
            challenge_type=challenge.type_name,
            format_type=challenge.format_name,
            focus_area=challenge.focus_area or "General",
            difficulty=challenge.difficulty or "Unspecified",
            content=challenge.content,
            questions=_format_questions(challenge),
            responses=_format_responses(responses),
        )
        return EvaluationPrompt(instructions=instructions.strip(), input=request.strip())


def _evaluation_notes(challenge: Challenge) -> str:
    """Type- and format-specific notes supplied in the challenge metadata."""
    notes = [
        note
        for note in (
            challenge.type_metadata.get("evaluation_note"),
            challenge.format_metadata.get("evaluation_note"),
        )
        if note
    ]
    return "\n".join(notes)


def _format_questions(challenge: Challenge) -> str:
    if not challenge.questions:
        return "(no separate questions)"
    lines = []
    for index, question in enumerate(challenge.questions, start=1):
        question_id = question.get("id", str(index))
        text = question.get("text") or question.get("question") or ""
        lines.append(f"{index}. [{question_id}] {text}")
    return "\n".join(lines)


def _format_responses(responses: list[ChallengeResponse]) -> str:
    lines = []
    for index, response in enumerate(responses, start=1):
        label = response.question_id or str(index)
        lines.append(f"### Response {label}\n{response.answer}")
    return "\n\n".join(lines)
