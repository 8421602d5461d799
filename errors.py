"""Error taxonomy shared by the HTTP routes.

Every failure a client can see is a ``PlantDoctorError`` subclass carrying its
HTTP status, a machine-readable ``code`` and a human-readable message. The
response body always has the shape ``{"error": str, "details"?: str}``.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple, Type


class PlantDoctorError(Exception):
    status_code: int = 500
    code: str = "error"
    message: str = "Unexpected error"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


# Validation errors (user-correctable)

class MissingInput(PlantDoctorError):
    status_code = 400
    code = "missing_input"
    message = "No image provided"


class InvalidType(PlantDoctorError):
    status_code = 400
    code = "invalid_type"
    message = "Invalid file type. Please upload an image."


class PayloadTooLarge(PlantDoctorError):
    status_code = 400
    code = "payload_too_large"
    message = "Image size too large. Maximum size is 20MB."


class MissingQuery(PlantDoctorError):
    status_code = 400
    code = "missing_query"
    message = "No search query provided"


class InvalidRequest(PlantDoctorError):
    status_code = 400
    code = "invalid_request"
    message = "Invalid request"


# Upstream (model provider) errors

class UpstreamError(PlantDoctorError):
    status_code = 500
    code = "upstream_error"
    message = "Failed to analyze image"


class UpstreamQuotaExceeded(UpstreamError):
    status_code = 429
    code = "upstream_quota_exceeded"
    message = "OpenAI API quota exceeded or billing issue. Please check your account."


class UpstreamCredentialError(UpstreamError):
    code = "upstream_credential_error"
    message = "Invalid API key configuration."


class UpstreamModelUnavailable(UpstreamError):
    code = "upstream_model_unavailable"
    message = "The specified model is not available. Please check your OpenAI account access."


class UpstreamGeneric(UpstreamError):
    code = "upstream_generic"


class ChatFailure(PlantDoctorError):
    code = "chat_failure"
    message = "Failed to process chat message"


class StoreFailure(PlantDoctorError):
    code = "store_failure"
    message = "Failed to search analyses"


def _contains_any(*keywords: str) -> Callable[[str], bool]:
    return lambda text: any(k in text for k in keywords)


# Evaluated top to bottom against the lower-cased error message; first match wins.
UPSTREAM_ERROR_RULES: List[Tuple[Callable[[str], bool], Type[UpstreamError]]] = [
    (_contains_any("insufficient_quota", "billing"), UpstreamQuotaExceeded),
    (_contains_any("invalid_api_key", "invalid key", "incorrect api key"), UpstreamCredentialError),
    (_contains_any("model_not_available", "model_not_found", "does not exist"), UpstreamModelUnavailable),
]


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    """Map a provider failure to the most specific ``UpstreamError`` category."""
    if isinstance(exc, UpstreamError):
        return exc
    raw = str(exc) or exc.__class__.__name__
    text = raw.lower()
    for predicate, category in UPSTREAM_ERROR_RULES:
        if predicate(text):
            return category(details=raw)
    return UpstreamGeneric(details=raw)
