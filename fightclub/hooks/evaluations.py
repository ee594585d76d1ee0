"""In-memory evaluation and challenge stores — development stubs.

Python dict-backed storage. Data lives only in memory and is lost on
restart.

TEAM: The Supabase implementations live in fightclub.hooks.supabase.
seed() on the challenge store is a stub convenience for tests and local
development; the real challenge table is filled by the challenge
generation pipeline.

Usage:
    from fightclub.hooks.evaluations import InMemoryEvaluationStore

    store = InMemoryEvaluationStore()
    await store.save(evaluation)
"""

from fightclub.domain.evaluation import Challenge, Evaluation
from fightclub.hooks.interfaces import ChallengeRepository, EvaluationRepository


class InMemoryEvaluationStore(EvaluationRepository):
    """STUB — evaluations keyed by id."""

    def __init__(self) -> None:
        self._evaluations: dict[str, Evaluation] = {}

    async def save(self, evaluation: Evaluation) -> Evaluation:
        self._evaluations[evaluation.id] = evaluation.model_copy(deep=True)
        return evaluation

    async def get(self, evaluation_id: str) -> Evaluation | None:
        evaluation = self._evaluations.get(evaluation_id)
        return evaluation.model_copy(deep=True) if evaluation is not None else None

    async def list_by_user(
        self, user_id: str, limit: int | None = None
    ) -> list[Evaluation]:
        evaluations = self._newest_first(
            e for e in self._evaluations.values() if e.user_id == user_id
        )
        return evaluations[:limit] if limit is not None else evaluations

    async def list_by_challenge(self, challenge_id: str) -> list[Evaluation]:
        return self._newest_first(
            e for e in self._evaluations.values() if e.challenge_id == challenge_id
        )

    @staticmethod
    def _newest_first(evaluations) -> list[Evaluation]:
        return [
            e.model_copy(deep=True)
            for e in sorted(evaluations, key=lambda e: e.created_at, reverse=True)
        ]


class InMemoryChallengeStore(ChallengeRepository):
    """STUB — challenges keyed by id."""

    def __init__(self, challenges: list[Challenge] | None = None) -> None:
        self._challenges: dict[str, Challenge] = {}
        for challenge in challenges or []:
            self.seed(challenge)

    async def get(self, challenge_id: str) -> Challenge | None:
        return self._challenges.get(challenge_id)

    async def save(self, challenge: Challenge) -> Challenge:
        self.seed(challenge)
        return challenge

    def seed(self, challenge: Challenge) -> None:
        """Pre-populates a challenge. Not part of the ChallengeRepository ABC."""
        self._challenges[challenge.id] = challenge
