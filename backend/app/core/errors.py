class AssistantError(Exception):
    """Base error that maps onto an HTTP failure response"""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(AssistantError):
    status_code = 400


class ConfigurationError(AssistantError):
    status_code = 500


class LanguageModelError(AssistantError):
    status_code = 500


class GeodataError(AssistantError):
    """Place search, routing or reverse geocoding failed; recovered locally"""

    status_code = 502


class PlaceNotFoundError(GeodataError):
    pass
