"""keypool: multi-key credential store and failover invoker for the Gemini API."""

from keypool.credentials import CredentialEntry, CredentialPatch, CredentialStore
from keypool.exceptions import (
    AllCredentialsExhaustedError,
    KeypoolError,
    NoCredentialsConfiguredError,
)
from keypool.failover import FailoverInvoker

__version__ = "0.3.0"

__all__ = [
    "AllCredentialsExhaustedError",
    "CredentialEntry",
    "CredentialPatch",
    "CredentialStore",
    "FailoverInvoker",
    "KeypoolError",
    "NoCredentialsConfiguredError",
    "__version__",
]
