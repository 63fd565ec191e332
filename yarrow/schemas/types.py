"""
Shared Pydantic types for schema validation.

UUIDStr: Accepts both str and uuid.UUID objects, coercing UUID to str.
SQLAlchemy UUID columns return Python uuid.UUID objects, but the API
exposes ids as plain strings.
"""

from typing import Annotated
from pydantic import BeforeValidator

# Coerces uuid.UUID objects to str for JSON serialization
UUIDStr = Annotated[str, BeforeValidator(lambda v: str(v) if not isinstance(v, str) else v)]
