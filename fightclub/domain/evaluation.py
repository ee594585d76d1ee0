"""Challenges and evaluations.

Challenge is read-only input to the evaluation workflow. Evaluation is the
entity produced from one LLM evaluation: created once per request, enriched
(add_strength, add_category_score, ...) before persistence, then left alone.

Scores are validated at every entry point: 0–100 inclusive.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from fightclub.errors import ValidationError

CATEGORY_STRENGTH_THRESHOLD = 80
CATEGORY_WEAKNESS_THRESHOLD = 50

# (minimum score, level); first match wins.
_PERFORMANCE_LEVELS: tuple[tuple[float, str], ...] = (
    (95, "exceptional"),
    (85, "excellent"),
    (75, "very good"),
    (65, "good"),
    (55, "satisfactory"),
    (45, "average"),
    (35, "needs improvement"),
    (25, "below average"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def performance_level(score: float) -> str:
    """Maps a 0–100 score to its performance label."""
    for minimum, level in _PERFORMANCE_LEVELS:
        if score >= minimum:
            return level
    return "poor"


def _validate_score(score: Any, field: str) -> float:
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValidationError(f"{field} must be a number", value=score)
    if not 0 <= score <= 100:
        raise ValidationError(f"{field} must be between 0 and 100", value=score)
    return float(score)


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


class ChallengeResponse(BaseModel):
    """One answer submitted for a challenge question."""

    model_config = ConfigDict(frozen=True)

    question_id: str | None = None
    answer: str


class Challenge(BaseModel):
    """A challenge presented to a user. Input to evaluation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str | None = None
    title: str = ""
    content: str = ""
    questions: list[dict[str, Any]] = Field(default_factory=list)
    challenge_type: str | None = None
    format_type: str | None = None
    focus_area: str | None = None
    difficulty: str | None = None
    type_metadata: dict[str, Any] = Field(default_factory=dict)
    format_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def type_name(self) -> str:
        return self.type_metadata.get("name") or self.challenge_type or "Unknown"

    @property
    def format_name(self) -> str:
        return self.format_metadata.get("name") or self.format_type or "Unknown"


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class EvaluationMetrics(BaseModel):
    """Metrics derived from the score and category scores."""

    normalized_score: float = 0.0
    performance_level: str = "poor"
    category_strengths: list[str] = Field(default_factory=list)
    category_weaknesses: list[str] = Field(default_factory=list)


class GrowthMetrics(BaseModel):
    """Change against the user's previous evaluation, if any."""

    previous_score: float | None = None
    score_change: float | None = None


class Evaluation(BaseModel):
    """The result of evaluating one set of challenge responses.

    Mutable until persisted. Use the add_* methods rather than editing the
    lists directly so metrics stay consistent.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    challenge_id: str
    score: float
    overall_feedback: str = ""
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)
    category_scores: dict[str, float] = Field(default_factory=dict)
    next_steps: list[str] = Field(default_factory=list)
    metrics: EvaluationMetrics = Field(default_factory=EvaluationMetrics)
    growth_metrics: GrowthMetrics = Field(default_factory=GrowthMetrics)
    status: Literal["pending", "completed", "failed"] = "completed"
    thread_id: str | None = None
    response_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        *,
        user_id: str,
        challenge_id: str,
        score: Any,
        **fields: Any,
    ) -> Evaluation:
        """Validated constructor. Raises ValidationError on bad input."""
        if not user_id:
            raise ValidationError("Evaluation requires a user_id")
        if not challenge_id:
            raise ValidationError("Evaluation requires a challenge_id")
        category_scores = {
            name: _validate_score(value, f"category score {name!r}")
            for name, value in (fields.pop("category_scores", None) or {}).items()
        }
        evaluation = cls(
            user_id=user_id,
            challenge_id=challenge_id,
            score=_validate_score(score, "score"),
            category_scores=category_scores,
            **fields,
        )
        evaluation._refresh_metrics()
        return evaluation

    @classmethod
    def from_llm_payload(
        cls,
        payload: dict[str, Any],
        *,
        user_id: str,
        challenge_id: str,
        thread_id: str | None = None,
        response_id: str | None = None,
    ) -> Evaluation:
        """Normalizes an LLM evaluation payload into an Evaluation.

        Accepts snake_case and camelCase keys and the older
        score/feedback/improvements names.
        """
        score = _first_present(payload, "overall_score", "overallScore", "score")
        feedback = _first_present(
            payload, "overall_feedback", "overallFeedback", "feedback"
        )
        improvements = _first_present(
            payload, "areas_for_improvement", "areasForImprovement", "improvements"
        )
        next_steps = _first_present(payload, "next_steps", "nextSteps")
        if next_steps is None and isinstance(payload.get("recommendations"), dict):
            next_steps = payload["recommendations"].get("nextSteps") or payload[
                "recommendations"
            ].get("next_steps")
        raw_categories = (
            _first_present(payload, "category_scores", "categoryScores") or {}
        )

        return cls.create(
            user_id=user_id,
            challenge_id=challenge_id,
            score=score,
            overall_feedback=str(feedback or ""),
            strengths=_string_list(payload.get("strengths"), "strengths"),
            areas_for_improvement=_string_list(improvements, "areas_for_improvement"),
            category_scores=_category_scores(raw_categories),
            next_steps=_string_list(next_steps, "next_steps"),
            thread_id=thread_id,
            response_id=response_id,
        )

    # -- Mutation -----------------------------------------------------------

    def add_strength(self, strength: str) -> None:
        if not strength or not strength.strip():
            raise ValidationError("Strength must be a non-empty string")
        if strength not in self.strengths:
            self.strengths.append(strength)
            self._touch()

    def add_area_for_improvement(self, area: str) -> None:
        if not area or not area.strip():
            raise ValidationError("Area for improvement must be a non-empty string")
        if area not in self.areas_for_improvement:
            self.areas_for_improvement.append(area)
            self._touch()

    def add_category_score(self, category: str, score: float) -> None:
        if not category:
            raise ValidationError("Category name is required")
        self.category_scores[category] = _validate_score(
            score, f"category score {category!r}"
        )
        self._refresh_metrics()
        self._touch()

    def apply_growth(self, previous: Evaluation | None) -> None:
        """Records the score change against the previous evaluation."""
        if previous is None:
            self.growth_metrics = GrowthMetrics()
            return
        self.growth_metrics = GrowthMetrics(
            previous_score=previous.score,
            score_change=round(self.score - previous.score, 2),
        )

    # -- Read side ----------------------------------------------------------

    @property
    def performance_level(self) -> str:
        return performance_level(self.score)

    # -- Internals ----------------------------------------------------------

    def _refresh_metrics(self) -> None:
        self.metrics = EvaluationMetrics(
            normalized_score=round(self.score / 100, 4),
            performance_level=performance_level(self.score),
            category_strengths=sorted(
                name
                for name, value in self.category_scores.items()
                if value >= CATEGORY_STRENGTH_THRESHOLD
            ),
            category_weaknesses=sorted(
                name
                for name, value in self.category_scores.items()
                if value <= CATEGORY_WEAKNESS_THRESHOLD
            ),
        )

    def _touch(self) -> None:
        self.updated_at = _utcnow()


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _string_list(value: Any, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of strings", value=value)
    return [str(item) for item in value if item]


def _category_scores(raw: Any) -> dict[str, Any]:
    """Accepts {name: 80} or {name: {"score": 80, ...}}."""
    if not isinstance(raw, dict):
        raise ValidationError("category_scores must be an object", value=raw)
    scores: dict[str, Any] = {}
    for name, value in raw.items():
        if isinstance(value, dict):
            value = value.get("score")
        scores[name] = value
    return scores
