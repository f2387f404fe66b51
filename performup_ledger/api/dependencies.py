"""Dependency injection for FastAPI endpoints"""

from fastapi import Header, Request
from performup_ledger.infrastructure.clients.audit import AuditClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor_id(x_actor_id: str = Header(..., min_length=1, description="Authenticated user performing the action")) -> str:
    """Acting user; authentication happens upstream of this service"""
    return x_actor_id


def get_audit_client() -> AuditClient:
    """Provide audit webhook client instance"""
    return AuditClient()
