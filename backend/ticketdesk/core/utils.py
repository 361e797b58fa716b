from __future__ import annotations
import uuid
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def iso_now() -> str:
    return utc_now().isoformat()

def epoch_ms(moment: datetime | None = None) -> int:
    return int((moment or utc_now()).timestamp() * 1000)

def generate_id(prefix: str) -> str:
    """Generates a unique ID with the given prefix."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"

def discord_timestamp(created_at_ms: int) -> str:
    return f"<t:{int(created_at_ms) // 1000}:f>"
