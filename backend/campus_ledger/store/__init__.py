"""Event ledger store: catalog, funnel ledgers and analytics over two backends."""
from fastapi import Request

from campus_ledger.store.base import EventStore


def get_store(request: Request) -> EventStore:
    """FastAPI dependency: the store initialized at startup."""
    return request.app.state.store
