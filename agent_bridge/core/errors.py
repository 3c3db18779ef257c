"""Session bridge error taxonomy.

All errors are contained within the session that raised them.
"""


class BridgeError(Exception):
    """Base class for session bridge errors."""


class UpstreamConnectFailed(BridgeError, ConnectionError):
    """The outbound leg could not be opened. Fatal to the session, never retried."""


class ForwardFailed(BridgeError, ConnectionError):
    """A send was attempted on a leg that is already closed.

    Non-fatal for the process: the session treats it as the close trigger
    for that leg.
    """

    def __init__(self, leg: str, cause: BaseException | None = None) -> None:
        self.leg = leg
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Forward to {leg} leg failed{detail}")
