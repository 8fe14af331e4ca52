from __future__ import annotations


class AsyncStudioError(Exception):
    """Base class for user-facing failures. Carries a toast-ready title and details."""

    title = "Something went wrong"
    status_code = 500

    def __init__(self, details: str = "", *, title: str | None = None) -> None:
        if title is not None:
            self.title = title
        self.details = details
        super().__init__(details or self.title)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.title, "details": self.details}


class StructuredPromptError(AsyncStudioError):
    title = "Invalid JSON"
    status_code = 400


class PresetImportError(AsyncStudioError):
    title = "Import failed"
    status_code = 400


class EmptyPromptError(AsyncStudioError):
    title = "Empty prompt"
    status_code = 400


class ReferenceImageError(AsyncStudioError):
    title = "Invalid file type"
    status_code = 400


class EntryNotFoundError(AsyncStudioError):
    title = "Not found"
    status_code = 404


class GenerationError(AsyncStudioError):
    """Failure while talking to (or preparing a call to) an image provider."""

    title = "Image generation failed"
    status_code = 500


class PromptValidationError(GenerationError):
    title = "Prompt is required"
    status_code = 400


class ContentPolicyError(GenerationError):
    title = "Invalid prompt"
    status_code = 400


class GenerationAuthError(GenerationError):
    title = "API access denied"
    status_code = 403


class RateLimitError(GenerationError):
    title = "Rate limit exceeded"
    status_code = 429


class GenerationServiceError(GenerationError):
    title = "AI service error"
    status_code = 502


class ProviderConfigurationError(GenerationError):
    title = "Server configuration error"
    status_code = 500


class GenerationInProgressError(GenerationError):
    title = "Please wait"
    status_code = 409


def error_for_status(status: int, provider: str, details: str = "") -> GenerationError:
    """Map a provider HTTP status onto the user-facing error category."""
    if status == 400:
        return ContentPolicyError(details or "The prompt may violate content rules. Try rephrasing.")
    if status in (401, 403):
        return GenerationAuthError(details or "API key invalid or lacks permissions.")
    if status == 429:
        return RateLimitError(details or "Too many requests. Please retry later.")
    return GenerationServiceError(details or f"{provider} returned {status}")
