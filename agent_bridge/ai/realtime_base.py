"""Base protocol and types for the two legs of a bridge session."""

from abc import abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Union, runtime_checkable


@dataclass(frozen=True)
class Frame:
    """One WebSocket message with its framing.

    ``str`` data is a text frame, ``bytes`` data is a binary frame.
    """

    data: Union[str, bytes]

    @property
    def is_binary(self) -> bool:
        """True for binary frames."""
        return isinstance(self.data, (bytes, bytearray))

    def __len__(self) -> int:
        return len(self.data)


@runtime_checkable
class Leg(Protocol):
    """Protocol for one connection owned by a session (inbound or outbound)."""

    name: str

    @abstractmethod
    def frames(self) -> AsyncIterator[Frame]:
        """Iterate over received frames until the leg closes.

        Yields:
            Frames in arrival order, framing preserved

        Raises:
            ConnectionError: If the connection fails abnormally
        """
        ...

    @abstractmethod
    async def send(self, frame: Frame) -> None:
        """Send a frame, honouring the transport's own backpressure.

        Args:
            frame: Frame to send (text or binary)

        Raises:
            ConnectionError: If the leg is closed
        """
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Send a transport-level ping with no payload.

        Raises:
            ConnectionError: If the leg is closed
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the leg. Closing an already closed leg is a no-op."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the leg is closed."""
        ...


@runtime_checkable
class UpstreamConnector(Protocol):
    """Protocol for factories of the outbound leg."""

    @abstractmethod
    async def connect(self) -> Leg:
        """Open one outbound leg.

        Returns:
            Open leg, ready to send

        Raises:
            UpstreamConnectFailed: If the connection cannot be established
        """
        ...
