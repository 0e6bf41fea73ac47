from typing import Optional


class CompanionError(Exception):
    """Base error for everything the companion core raises."""

    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or self.default_user_message
        super().__init__(self.message)


class PreconditionError(CompanionError):
    """Required input is missing; no request was issued."""


class LocationRequiredError(PreconditionError):
    default_user_message = "Location is not available. Please enable location services."

    def __init__(self, message: str = "Location is required for this request.", user_message: Optional[str] = None):
        super().__init__(message, user_message)


class ImageRequiredError(PreconditionError):
    default_user_message = "Please select an image first."

    def __init__(self, message: str = "An image is required for this request.", user_message: Optional[str] = None):
        super().__init__(message, user_message)


class TextRequiredError(PreconditionError):
    default_user_message = "Please enter some text first."

    def __init__(self, message: str = "Text is required for this request.", user_message: Optional[str] = None):
        super().__init__(message, user_message)


class ProviderError(CompanionError):
    """The generative service failed or returned something we could not use."""

    def __init__(self, message: str, status_code: Optional[int] = None, user_message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, user_message)


class CapabilityUnavailableError(CompanionError):
    """The platform lacks a capability (microphone, audio device)."""

    default_user_message = "This feature is not supported on this device."
