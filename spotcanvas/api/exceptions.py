from ..utils import SpotCanvasException


class SpotCanvasApiException(SpotCanvasException):
    pass


class SpotCanvasRequestException(SpotCanvasApiException):
    def __init__(
        self,
        name: str,
        response_status_code: int,
        response_text: str,
    ):
        super().__init__(
            f"{name} request failed with status code {response_status_code}: {response_text}"
        )
        self.response_status_code = response_status_code
        self.response_text = response_text


class NetworkError(SpotCanvasApiException):
    def __init__(self, name: str, error: Exception):
        super().__init__(f"{name} request failed: {error!r}")
        self.error = error


class MalformedResponse(SpotCanvasApiException):
    pass


class EmptySecretTable(MalformedResponse):
    def __init__(self):
        super().__init__("TOTP secrets table is empty")


class NotInitialized(SpotCanvasApiException):
    def __init__(self):
        super().__init__("TOTP generator is not initialized")


class AuthUnavailable(SpotCanvasApiException):
    def __init__(self):
        super().__init__("Auth token not available")
