"""Shared base for in-memory domain models: camelCase on the wire."""

import time
import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Time-ordered id with a random suffix, unique within one process."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"
