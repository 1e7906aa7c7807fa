class SignalingError(Exception):
    """Base class for every failure the relay or a rendezvous client reports."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "detail": self.detail}


class InvalidRequest(SignalingError):
    """Malformed input (room id, kind, direction, payload). Never retried."""

    status_code = 400


class NotFound(SignalingError):
    """Expected absence. Pollers treat it as 'not yet available'."""

    status_code = 404


class StoreUnavailable(SignalingError):
    """The shared signal store could not be reached."""

    status_code = 503


class NegotiationFailure(SignalingError):
    """The local negotiation surface reached a terminal failed state."""

    status_code = 500


ERRORS_BY_NAME = {
    cls.__name__: cls for cls in (InvalidRequest, NotFound, StoreUnavailable, NegotiationFailure)
}
