"""Failover across multiple API keys."""

from keypool.failover.classification import classify_provider_error, user_message
from keypool.failover.invoker import ENVIRONMENT_CANDIDATE_NAME, Candidate, FailoverInvoker

__all__ = [
    "ENVIRONMENT_CANDIDATE_NAME",
    "Candidate",
    "FailoverInvoker",
    "classify_provider_error",
    "user_message",
]
