"""Map the last provider failure to a user-facing error category.

Classification is a best-effort, case-insensitive substring match on the
error text. The first matching rule wins; anything unmatched becomes a
ProviderGenericError with a "try again later" message.
"""

from keypool.exceptions import (
    AllCredentialsExhaustedError,
    NoCredentialsConfiguredError,
    ProviderAuthError,
    ProviderGenericError,
    ProviderInvalidArgumentError,
    ProviderQuotaError,
    ProviderSafetyBlockError,
)

# (error class, phrases) in match order
CLASSIFICATION_RULES: list[tuple[type[AllCredentialsExhaustedError], tuple[str, ...]]] = [
    (ProviderAuthError, ("api key not valid", "api_key_invalid")),
    (ProviderQuotaError, ("resource_exhausted", "rate limit", "quota")),
    (ProviderSafetyBlockError, ("safety", "blocked")),
    (ProviderInvalidArgumentError, ("invalid_argument",)),
]

USER_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "auth": "The API key you provided is invalid or incorrect. Please check it and try again.",
        "quota": (
            "Your API key quota is exhausted or the rate limit was reached. "
            "Check your Google AI Studio quota or try again later."
        ),
        "safety": "The generated content was blocked for violating safety policies. Try adjusting your prompt.",
        "invalid_argument": "Your input is invalid. Check your prompt or uploaded images and try again.",
        "generic": "Generation failed. Please try again later or check your network connection.",
        "no_credentials": "No API keys are configured. Please set up your Gemini API key first.",
    },
    "zh": {
        "auth": "您提供的API密钥无效或不正确。请检查后重试。",
        "quota": "您的API Key配额已用尽或已达到速率限制。请检查您的Google AI Studio配额或稍后再试。",
        "safety": "生成的内容可能违反了安全政策而被阻止。请尝试调整您的提示词。",
        "invalid_argument": "您的输入无效。请检查您的提示词或上传的图片后重试。",
        "generic": "生成失败。请稍后重试或检查您的网络连接。",
        "no_credentials": "没有配置任何API密钥。请先设置您的Gemini API密钥。",
    },
}


def user_message(category: str, locale: str = "en") -> str:
    """Localized message for ``category``; unknown locales fall back to English."""
    messages = USER_MESSAGES.get(locale, USER_MESSAGES["en"])
    return messages.get(category, messages["generic"])


def no_credentials_error(locale: str = "en") -> NoCredentialsConfiguredError:
    """Error raised when there is no key to try."""
    return NoCredentialsConfiguredError(user_message("no_credentials", locale))


def _error_text(error: BaseException) -> str:
    parts = [str(error)]
    # ExternalServiceError keeps the provider's response body separately
    response_text = getattr(error, "response_text", None)
    if response_text:
        parts.append(str(response_text))
    return " ".join(parts).lower()


def classify_provider_error(
    error: BaseException,
    attempts: int = 1,
    locale: str = "en",
) -> AllCredentialsExhaustedError:
    """Build the error to raise once every candidate key has failed.

    Args:
        error: Exception raised by the last attempt
        attempts: How many candidates were tried
        locale: Language for ``user_message``

    Returns:
        An AllCredentialsExhaustedError subclass carrying ``error`` as ``last_error``
    """
    text = _error_text(error)

    error_class: type[AllCredentialsExhaustedError] = ProviderGenericError
    for candidate_class, phrases in CLASSIFICATION_RULES:
        if any(phrase in text for phrase in phrases):
            error_class = candidate_class
            break

    return error_class(
        user_message(error_class.category, locale),
        last_error=error,
        attempts=attempts,
    )
