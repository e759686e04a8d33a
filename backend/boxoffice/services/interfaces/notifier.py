"""
Ticket delivery interface.
Rendering and delivery are best effort; the ticket rows are authoritative.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from boxoffice.domain import Purchase, Ticket


@dataclass(frozen=True)
class TicketArtifact:
    ticket_number: str
    filename: str
    content_type: str
    content: bytes


class TicketNotifier(ABC):
    """
    Implementations:
    - HttpEmailNotifier: QR attachments posted to a transactional email API
    - LoggingNotifier: renders QR codes and only logs (email disabled)
    """

    @abstractmethod
    def render(self, ticket: Ticket) -> TicketArtifact:
        pass

    @abstractmethod
    async def deliver(self, artifacts: list[TicketArtifact], address: str, purchase: Purchase) -> bool:
        """
        Send artifacts to the buyer.

        Returns:
            True if the provider accepted the message, False otherwise
        """
        pass
