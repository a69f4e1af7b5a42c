"""Durable per-client identifier, stored in a small file."""

import uuid
from pathlib import Path
from typing import Optional

import structlog

from pulse.config import get_settings

logger = structlog.get_logger(__name__)


class IdentityProvider:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or get_settings().CLIENT_ID_FILE).expanduser()

    def get_user_id(self) -> str:
        """Return the stored id, creating and persisting one on first use."""
        if self.path.is_file():
            stored = self.path.read_text(encoding="utf-8").strip()
            if stored:
                return stored

        user_id = f"user-{uuid.uuid4().hex[:13]}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(user_id, encoding="utf-8")
        logger.info("Generated client identifier", user_id=user_id, path=str(self.path))
        return user_id
