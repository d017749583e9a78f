# plugins/core_llm/providers/base.py

import httpx

from ..contracts import LLMError, LLMErrorType


def translate_http_error(ex: Exception, provider: str) -> LLMError:
    """Map an httpx exception onto the normalised LLMError."""
    error_details = {"provider": provider, "exception": type(ex).__name__, "message": str(ex)}

    if isinstance(ex, httpx.HTTPStatusError):
        status_code = ex.response.status_code
        if status_code == 401:
            return LLMError(error_type=LLMErrorType.AUTHENTICATION_ERROR, message="Invalid API key provided.", is_retryable=False, provider_details=error_details)
        if status_code == 429:
            return LLMError(error_type=LLMErrorType.RATE_LIMIT_ERROR, message="Rate limit exceeded.", is_retryable=True, provider_details=error_details)
        if 400 <= status_code < 500:
            return LLMError(error_type=LLMErrorType.INVALID_REQUEST_ERROR, message=f"Client error: HTTP {status_code}", is_retryable=False, provider_details=error_details)
        if 500 <= status_code < 600:
            return LLMError(error_type=LLMErrorType.PROVIDER_ERROR, message=f"Server error: HTTP {status_code}", is_retryable=True, provider_details=error_details)

    if isinstance(ex, httpx.RequestError):
        return LLMError(error_type=LLMErrorType.NETWORK_ERROR, message=f"Network error: {ex}", is_retryable=True, provider_details=error_details)

    return LLMError(error_type=LLMErrorType.UNKNOWN_ERROR, message=f"An unknown error occurred: {ex}", is_retryable=False, provider_details=error_details)
