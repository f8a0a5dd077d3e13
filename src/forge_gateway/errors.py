"""Error taxonomy shared by the catalog, adapters and stream normalizer."""

from __future__ import annotations


class GatewayError(RuntimeError):
    """Root of every error the gateway surfaces."""

    method: str | None = None
    url: str | None = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.method and self.url:
            return f"{message} [{self.method} {self.url}]"
        return message


class ProviderResolutionError(GatewayError):
    """Raised when the active provider cannot be determined."""


class NoProviderSelectedError(ProviderResolutionError):
    """Raised when no provider is active or the catalog is empty."""


class UnknownProviderError(ProviderResolutionError):
    """Raised when the active provider id is not in the catalog."""


class UnknownProviderTypeError(ProviderResolutionError):
    """Raised when a provider entry names an unsupported wire family."""


class ProviderError(GatewayError):
    """Raised on transport-level failures talking to a backend."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        provider_request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.provider_request_id = provider_request_id


class InvalidStatusCodeError(ProviderError):
    """The backend answered with a non-success HTTP status."""


class InvalidContentTypeError(ProviderError):
    """The backend did not start an event stream."""


class TransportError(ProviderError):
    """Connection, timeout or read failure below the HTTP layer."""


class ResponseContentError(GatewayError):
    """A payload failed to parse or convert into the canonical message."""

    def __init__(self, message: str, *, payload: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload
        self.status_code: int | None = None


class UpstreamError(ResponseContentError):
    """The backend reported an error inside an otherwise valid payload."""

    def __init__(
        self,
        message: str,
        *,
        error_type: str | None = None,
        code: int | str | None = None,
        payload: str | None = None,
    ) -> None:
        super().__init__(message, payload=payload)
        self.error_type = error_type
        self.code = code


class RetryableError(GatewayError):
    """Marks the wrapped error as safe to retry."""

    def __init__(self, error: Exception) -> None:
        super().__init__(str(error))
        self.error = error
        self.__cause__ = error

    @property
    def status_code(self) -> int | None:
        return getattr(self.error, "status_code", None)


def with_request_context(error: GatewayError, method: str, url: str) -> GatewayError:
    """Annotate ``error`` with the request that produced it."""

    error.method = method
    error.url = url
    return error


def truncate(text: str, limit: int = 2000) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...[truncated {len(text) - limit} chars]"
