# =============================================================================
# File: titan/utils/uuid_utils.py
# Description: Identifier helpers for entities and optimistic messages
# =============================================================================

import uuid
from uuid import UUID

# Prefix that marks an id as client-local (not yet confirmed by the server)
TEMP_ID_PREFIX = "tmp-"


def generate_uuid() -> UUID:
    """Generate a new random UUID."""
    return uuid.uuid4()


def generate_uuid_str() -> str:
    """Generate a new random UUID as string."""
    return str(generate_uuid())


def generate_temp_id() -> str:
    """Generate a temporary id for an optimistic message."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temp_id(value: str) -> bool:
    """True if the id was generated locally by generate_temp_id()."""
    return value.startswith(TEMP_ID_PREFIX)


def generate_generic_id(prefix: str = "entity") -> str:
    """Generate a prefixed id, e.g. 'boost-3f2a...'."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"
