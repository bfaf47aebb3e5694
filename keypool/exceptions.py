"""Custom exception hierarchy for keypool.

Exception Hierarchy:
    KeypoolError (base)
    ├── ConfigurationError
    ├── CredentialError
    │   └── NoCredentialsConfiguredError
    ├── StorageError
    │   ├── BackendNotAvailableError
    │   └── EncryptionError
    ├── ExternalServiceError
    └── AllCredentialsExhaustedError
        ├── ProviderAuthError
        ├── ProviderQuotaError
        ├── ProviderSafetyBlockError
        ├── ProviderInvalidArgumentError
        └── ProviderGenericError

Storage errors never escape the CredentialStore; they are logged and turned
into safe defaults there. The failover invoker raises NoCredentialsConfiguredError
or one of the AllCredentialsExhaustedError subclasses.

Example Usage:
    >>> from keypool.exceptions import AllCredentialsExhaustedError
    >>> try:
    ...     text = await invoker.invoke(op)
    ... except AllCredentialsExhaustedError as e:
    ...     print(e.user_message)
"""


class KeypoolError(Exception):
    """Base exception for all keypool errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(KeypoolError):
    """Configuration file or environment is invalid."""

    pass


class CredentialError(KeypoolError):
    """Credential-related errors.

    Attributes:
        message: Human-readable error description
        reference: The credential the error is about (masked or display name)
        suggestion: Optional suggestion for resolution
    """

    def __init__(
        self,
        message: str,
        reference: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            reference: The credential the error is about
            suggestion: Optional suggestion for resolution
        """
        self.reference = reference
        self.suggestion = suggestion

        full_message = message
        if reference:
            full_message = f"{message} (reference: {reference})"
        if suggestion:
            full_message = f"{full_message}\nSuggestion: {suggestion}"

        super().__init__(full_message)
        # super() stored full_message; keep the short form
        self.message = message


class NoCredentialsConfiguredError(CredentialError):
    """No stored or environment API key is available to try."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No API keys are configured. Please set up your Gemini API key first.",
            suggestion="Add a key with: keypool keys add <secret>  (or export GEMINI_API_KEY)",
        )


class StorageError(KeypoolError):
    """Reading or writing the local key/value store failed.

    Attributes:
        backend: Name of the backend that failed
    """

    def __init__(self, message: str, backend: str | None = None, suggestion: str | None = None) -> None:
        self.backend = backend
        self.suggestion = suggestion

        full_message = message if not backend else f"{message} (backend: {backend})"
        if suggestion:
            full_message = f"{full_message}\nSuggestion: {suggestion}"

        super().__init__(full_message)
        self.message = message


class BackendNotAvailableError(StorageError):
    """Requested storage backend is not available on this system."""

    pass


class EncryptionError(StorageError):
    """Encryption or decryption of the storage file failed."""

    pass


class ExternalServiceError(KeypoolError):
    """HTTP call to the Gemini API (or its proxy) failed.

    Attributes:
        status_code: HTTP status code, if a response was received
        response_text: Response body text, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)


class AllCredentialsExhaustedError(KeypoolError):
    """Every candidate key was tried and the last one failed.

    The subclasses name the category of the last failure. The last underlying
    exception is available as ``last_error`` and is also chained as
    ``__cause__``.

    Attributes:
        user_message: Localized message suitable for showing to an end user
        last_error: The exception raised by the final attempt
        attempts: Number of candidates that were actually tried
    """

    category = "generic"

    def __init__(
        self,
        user_message: str,
        last_error: BaseException | None = None,
        attempts: int = 0,
    ) -> None:
        self.user_message = user_message
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(user_message)


class ProviderAuthError(AllCredentialsExhaustedError):
    """The provider rejected the API key."""

    category = "auth"


class ProviderQuotaError(AllCredentialsExhaustedError):
    """Quota exhausted or rate limited."""

    category = "quota"


class ProviderSafetyBlockError(AllCredentialsExhaustedError):
    """Output was blocked by the provider's safety filters."""

    category = "safety"


class ProviderInvalidArgumentError(AllCredentialsExhaustedError):
    """The request (prompt, image, parameters) was rejected as invalid."""

    category = "invalid_argument"


class ProviderGenericError(AllCredentialsExhaustedError):
    """Failure that matched no known provider phrase."""

    category = "generic"


# Alias matching the storage-layer terminology used in the docs
PersistenceError = StorageError
