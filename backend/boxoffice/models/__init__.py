from boxoffice.models.user import User
from boxoffice.models.event import Event
from boxoffice.models.ticket_type import TicketType
from boxoffice.models.discount_code import DiscountCode
from boxoffice.models.purchase import Purchase
from boxoffice.models.ticket import Ticket
from boxoffice.models.check_in import CheckIn

__all__ = ["User", "Event", "TicketType", "DiscountCode", "Purchase", "Ticket", "CheckIn"]
