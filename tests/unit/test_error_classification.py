"""Unit tests for keypool/failover/classification.py."""

import pytest

from keypool.exceptions import (
    ExternalServiceError,
    NoCredentialsConfiguredError,
    ProviderAuthError,
    ProviderGenericError,
    ProviderInvalidArgumentError,
    ProviderQuotaError,
    ProviderSafetyBlockError,
)
from keypool.failover.classification import (
    USER_MESSAGES,
    classify_provider_error,
    no_credentials_error,
    user_message,
)


class TestClassifyProviderError:
    """Phrase matching on the last error."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("API key not valid. Please pass a valid API key.", ProviderAuthError),
            ("reason: API_KEY_INVALID", ProviderAuthError),
            ("429 RESOURCE_EXHAUSTED", ProviderQuotaError),
            ("Rate limit exceeded", ProviderQuotaError),
            ("You exceeded your current quota", ProviderQuotaError),
            ("Response was blocked", ProviderSafetyBlockError),
            ("Candidate finished with SAFETY", ProviderSafetyBlockError),
            ("400 INVALID_ARGUMENT: bad image", ProviderInvalidArgumentError),
            ("connection reset by peer", ProviderGenericError),
            ("", ProviderGenericError),
        ],
    )
    def test_categories(self, text, expected):
        assert type(classify_provider_error(RuntimeError(text))) is expected

    def test_first_rule_wins(self):
        """Auth outranks quota when both phrases appear."""
        error = RuntimeError("API key not valid; also quota exceeded")

        assert isinstance(classify_provider_error(error), ProviderAuthError)

    def test_uses_response_text(self):
        """Provider body text is searched as well as the exception message."""
        error = ExternalServiceError(
            "Gemini API error",
            status_code=400,
            response_text='{"error": {"status": "INVALID_ARGUMENT"}}',
        )

        assert isinstance(classify_provider_error(error), ProviderInvalidArgumentError)

    def test_carries_last_error_and_attempts(self):
        cause = RuntimeError("quota")

        error = classify_provider_error(cause, attempts=4)

        assert error.last_error is cause
        assert error.attempts == 4

    def test_localized_message(self):
        error = classify_provider_error(RuntimeError("quota"), locale="zh")

        assert error.user_message == USER_MESSAGES["zh"]["quota"]

    def test_generic_message(self):
        error = classify_provider_error(RuntimeError("???"))

        assert error.user_message == "Generation failed. Please try again later or check your network connection."


class TestUserMessage:
    def test_every_locale_has_every_category(self):
        assert set(USER_MESSAGES["zh"]) == set(USER_MESSAGES["en"])

    def test_unknown_locale_falls_back_to_english(self):
        assert user_message("auth", "fr") == USER_MESSAGES["en"]["auth"]

    def test_unknown_category_is_generic(self):
        assert user_message("nope") == USER_MESSAGES["en"]["generic"]

    def test_no_credentials_error(self):
        error = no_credentials_error("zh")

        assert isinstance(error, NoCredentialsConfiguredError)
        assert error.message == USER_MESSAGES["zh"]["no_credentials"]
