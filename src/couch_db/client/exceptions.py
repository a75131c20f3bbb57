"""Custom exceptions for the CouchDB client."""

# Status code put in a Result when the transport could not reach the server.
TRANSPORT_FAILURE = 599


class CouchError(Exception):
    """Base exception for all couch-db errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class UsageError(CouchError):
    """The call itself is wrong: bad shape, missing body, conflicting options."""
    pass


class NoConnectionsError(UsageError):
    """No connection is left to send the request to."""
    pass


class NotReadyError(CouchError):
    """The payload of a Result was requested before the response arrived."""
    pass


class VersionIncompatibilityError(CouchError):
    """The endpoint was removed in a release at or before the expected api."""

    def __init__(self, what: str, release: str, api: str):
        super().__init__(
            f"{what} got removed in {release}, but you specified api {api}."
        )
        self.what = what
        self.release = release
        self.api = api


class CouchTransportError(CouchError):
    """Cannot reach the server (connect error, timeout, broken stream).

    Raised by transports only; the dispatcher turns it into a failed Result.
    """
    pass
