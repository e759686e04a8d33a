"""
FastAPI dependencies for the ticketing core.

The TicketingContext is built once in the application lifespan and kept
on app.state; tests swap it via app.dependency_overrides[get_context].
"""

from fastapi import Request

from boxoffice.services.context import TicketingContext


def get_context(request: Request) -> TicketingContext:
    return request.app.state.ticketing
