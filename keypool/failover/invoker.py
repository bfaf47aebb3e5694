"""
Linear failover across stored API keys.

The invoker runs one logical operation that needs exactly one API key. It
tries each candidate key in order, awaiting every attempt before starting the
next, and returns the first successful result. The winning key's position is
written back to the store as the active index so that round-robin lookups
(``CredentialStore.next_valid``) start from a key known to work.

Candidate Order:
    The environment key (``GEMINI_API_KEY``) comes first when it is set and
    not already stored; stored keys follow in store order.

No Backoff:
    Each candidate is tried exactly once per ``invoke`` call, with no delay
    between attempts. Concurrent ``invoke`` calls are independent and share
    nothing but the store; the active index is a best-effort hint.

Example:
    >>> invoker = FailoverInvoker(store)
    >>> text = await invoker.invoke(lambda key: client.generate_text(key, "gemini-2.5-flash", "Hi"))
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from keypool.credentials.store import CredentialStore
from keypool.failover.classification import classify_provider_error, no_credentials_error

log = structlog.get_logger(__name__)

T = TypeVar("T")

ENVIRONMENT_CANDIDATE_NAME = "Environment Key"


@dataclass(frozen=True)
class Candidate:
    """A key tried during one failover pass."""

    secret: str
    display_name: str
    from_environment: bool = False


class FailoverInvoker:
    """Run an async operation against each candidate key until one succeeds."""

    def __init__(self, store: CredentialStore, locale: str = "en") -> None:
        """Initialize the invoker.

        Args:
            store: Credential store supplying candidates and the active index
            locale: Language for user-facing error messages
        """
        self.store = store
        self.locale = locale

    def build_candidates(self) -> list[Candidate]:
        """Stored keys in order, with the environment key prepended if not already stored."""
        candidates = [Candidate(secret=entry.secret, display_name=entry.display_name) for entry in self.store.get_all()]

        env_secret = self.store.get_environment_secret()
        if env_secret and not any(candidate.secret == env_secret for candidate in candidates):
            candidates.insert(
                0,
                Candidate(secret=env_secret, display_name=ENVIRONMENT_CANDIDATE_NAME, from_environment=True),
            )

        return candidates

    async def invoke(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """Call ``operation(secret)`` with each candidate until one succeeds.

        Args:
            operation: Async callable taking an API key

        Returns:
            The first successful result

        Raises:
            NoCredentialsConfiguredError: If there is no non-empty key to try
            AllCredentialsExhaustedError: Subclass describing the last failure,
                chained from it, once every candidate failed
        """
        candidates = self.build_candidates()
        if not candidates:
            raise no_credentials_error(self.locale)

        last_error: Exception | None = None
        attempts = 0

        for position, candidate in enumerate(candidates):
            if not candidate.secret:
                continue

            attempts += 1
            try:
                result = await operation(candidate.secret)
            except Exception as e:
                last_error = e
                log.warning(
                    "credential_attempt_failed",
                    candidate=candidate.display_name,
                    position=position,
                    remaining=len(candidates) - position - 1,
                    error=str(e),
                )
                continue

            self._remember(candidate)
            log.info("failover_succeeded", candidate=candidate.display_name, attempts=attempts)
            return result

        if last_error is None:
            raise no_credentials_error(self.locale)

        log.error("all_credentials_failed", attempts=attempts, error=str(last_error))
        raise classify_provider_error(last_error, attempts=attempts, locale=self.locale) from last_error

    def _remember(self, candidate: Candidate) -> None:
        """Point the active index at the winning key if it is stored."""
        for index, entry in enumerate(self.store.get_all()):
            if entry.secret == candidate.secret:
                self.store.set_active_index(index)
                return
