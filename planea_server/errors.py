class ServiceError(Exception):
    """Error de dominio que se traduce a `{"ok": false, "error": ...}`."""
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


# --- /data ---

class PayloadTooLargeError(ServiceError):
    status_code = 413
    message = "Payload too large"


class InvalidPayloadError(ServiceError):
    status_code = 400
    message = "Invalid JSON payload"


class PersistError(ServiceError):
    status_code = 500
    message = "Failed to persist data"


# --- /ai ---

class AIConfigurationError(ServiceError):
    status_code = 503
    message = "GEMINI_API_KEY is not configured"


class AITimeoutError(ServiceError):
    status_code = 504
    message = "AI request timed out"


class AIResponseError(ServiceError):
    status_code = 500
    message = "AI request failed"


class EmptyAIResponseError(ServiceError):
    status_code = 502
    message = "Empty AI response"
