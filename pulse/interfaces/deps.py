"""
API Dependencies.
"""

from starlette.requests import HTTPConnection

from pulse.application.services.lifecycle_service import LifecycleService
from pulse.domain.repositories.state_repository import StateRepository


def get_lifecycle(connection: HTTPConnection) -> LifecycleService:
    """Lifecycle service created in the application lifespan."""
    return connection.app.state.lifecycle


def get_state_repository(connection: HTTPConnection) -> StateRepository:
    """Shared state store owned by the lifecycle service."""
    return connection.app.state.lifecycle.store
