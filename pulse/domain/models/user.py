"""User domain model: one entry per client-supplied identifier."""

from datetime import datetime

from pulse.domain.models.base import CamelModel


class User(CamelModel):
    id: str
    joined_at: datetime
    last_active: datetime
    is_first_user: bool = False

    def __repr__(self):
        return f"<User {self.id}{' (first)' if self.is_first_user else ''}>"
