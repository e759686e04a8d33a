from boxoffice.stores.interfaces import TicketingStore
from boxoffice.stores.memory_store import MemoryTicketingStore
from boxoffice.stores.sql_store import SqlTicketingStore

__all__ = ["TicketingStore", "MemoryTicketingStore", "SqlTicketingStore"]
