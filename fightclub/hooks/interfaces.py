"""Hook interfaces — abstract base classes for all swappable services.

These ABCs define the contracts between the domain/AI logic and the
infrastructure layer. Each one has an in-memory stub that lets the
platform run end-to-end without Supabase, and a Supabase implementation
(fightclub.hooks.supabase) selected by STORAGE_BACKEND at startup.

TEAM: To implement another backend, subclass the relevant ABC and
implement every abstract method. Python will raise TypeError at
instantiation if any method is missing. Then run the contract tests in
fightclub/tests/contracts/ against it.

Usage:
    from fightclub.hooks.interfaces import ConversationStateStore
    from fightclub.hooks.interfaces import UserJourneyRepository
"""

from abc import ABC, abstractmethod

from fightclub.domain.conversation import ConversationState
from fightclub.domain.evaluation import Challenge, Evaluation
from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.domain.journey import UserJourney
from fightclub.schemas import User


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthService(ABC):
    """Validates bearer tokens and resolves users.

    The platform never inspects tokens itself; it asks the AuthService
    and gets a User back.
    """

    @abstractmethod
    async def validate_token(self, token: str) -> User | None:
        """Validates an auth token and returns the associated user.

        Args:
            token: Bearer token from the request.

        Returns:
            The User if the token is valid and not expired, None otherwise.
        """
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Looks up a user by their ID.

        Args:
            user_id: The opaque user identifier.

        Returns:
            The User if found, None if the user doesn't exist.
        """
        ...


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class ConversationStateStore(ABC):
    """Persistence for ConversationState rows.

    The uniqueness invariant lives here: at most one *active* state per
    (user_id, context_type, context_id). insert_if_absent() must be atomic
    with respect to that invariant. A read-then-write in the caller is
    not enough.
    """

    @abstractmethod
    async def get_active(
        self, user_id: str, context_type: str, context_id: str
    ) -> ConversationState | None:
        """Returns the active state for the context, or None."""
        ...

    @abstractmethod
    async def insert_if_absent(self, state: ConversationState) -> ConversationState:
        """Inserts the state unless an active one exists for its context.

        Args:
            state: A new active state.

        Returns:
            The stored active state: the given one if it was inserted, the
            existing one if another writer got there first.
        """
        ...

    @abstractmethod
    async def get_by_thread(self, thread_id: str) -> ConversationState | None:
        """Returns the state (active or archived) with this thread id."""
        ...

    @abstractmethod
    async def update(self, state: ConversationState) -> ConversationState | None:
        """Overwrites an existing state, matched by thread_id.

        Returns:
            The stored state, or None if no state has that thread_id.
        """
        ...

    @abstractmethod
    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> list[ConversationState]:
        """Lists a user's states, newest activity first."""
        ...


# ---------------------------------------------------------------------------
# User journeys
# ---------------------------------------------------------------------------


class UserJourneyRepository(ABC):
    """Journey snapshots plus the append-only event log.

    save() is a compare-and-swap on ``version``: it succeeds only if the
    stored version equals ``journey.version`` (0 means "not stored yet"),
    and it returns the journey with the version incremented. A stale
    version raises ConflictError and nothing is written.
    """

    @abstractmethod
    async def get_by_user(self, user_id: str) -> UserJourney | None:
        """Returns the user's journey snapshot without its history."""
        ...

    @abstractmethod
    async def save(self, journey: UserJourney) -> UserJourney:
        """Stores the snapshot if its version is current.

        Raises:
            ConflictError: If another writer saved first.
        """
        ...

    @abstractmethod
    async def append_event(self, event: UserJourneyEvent) -> UserJourneyEvent:
        """Appends an event to the log. Events are never updated."""
        ...

    @abstractmethod
    async def list_events(
        self,
        user_id: str,
        event_type: EventType | None = None,
        limit: int | None = None,
    ) -> list[UserJourneyEvent]:
        """Lists a user's events in timestamp order.

        With a limit, returns the most recent ``limit`` events (still in
        ascending order).
        """
        ...

    @abstractmethod
    async def count_events_by_type(self, user_id: str) -> dict[str, int]:
        """Returns {event_type: count} for the user's log."""
        ...


# ---------------------------------------------------------------------------
# Evaluations and challenges
# ---------------------------------------------------------------------------


class EvaluationRepository(ABC):
    """Persistence for Evaluation entities."""

    @abstractmethod
    async def save(self, evaluation: Evaluation) -> Evaluation:
        """Creates or overwrites an evaluation by id."""
        ...

    @abstractmethod
    async def get(self, evaluation_id: str) -> Evaluation | None:
        ...

    @abstractmethod
    async def list_by_user(
        self, user_id: str, limit: int | None = None
    ) -> list[Evaluation]:
        """Lists a user's evaluations, newest first."""
        ...

    @abstractmethod
    async def list_by_challenge(self, challenge_id: str) -> list[Evaluation]:
        """Lists a challenge's evaluations, newest first."""
        ...


class ChallengeRepository(ABC):
    """Read access to challenges, plus save for seeding and generation."""

    @abstractmethod
    async def get(self, challenge_id: str) -> Challenge | None:
        ...

    @abstractmethod
    async def save(self, challenge: Challenge) -> Challenge:
        ...
