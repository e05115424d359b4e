"""
Protocol definition for notification backends.

Defines the interface the cycle orchestrator delivers messages through.
"""

from typing import Protocol, runtime_checkable

from release_watcher.models import OutboundMessage


@runtime_checkable
class Notifier(Protocol):
    """
    Protocol defining the interface for notification backends.

    The @runtime_checkable decorator allows using isinstance() checks
    against this protocol for structural typing validation.
    """

    async def send_message(self, message: OutboundMessage) -> None:
        """
        Deliver one formatted message.

        Parameters
        ----------
        message : OutboundMessage
            The message to send.

        Raises
        ------
        DeliveryError
            If the message could not be delivered.
        """
        ...

    async def close(self) -> None:
        """
        Close the notifier and release any resources.

        This method should be called when shutting down the application
        to cleanly close connections and free resources.
        """
        ...
