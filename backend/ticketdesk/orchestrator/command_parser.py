from __future__ import annotations

import re

from ticketdesk.orchestrator.types import AuditCommand

_CHECK_PATTERN = re.compile(r"^/?check(?:\s+(?P<uid>\S+))?(?:\s+.*)?$", re.IGNORECASE | re.DOTALL)


def parse_audit_command(text: str) -> AuditCommand | None:
    """Parses `check <uid>` (leading slash optional). Other text yields None."""
    match = _CHECK_PATTERN.match(text.strip())
    if match is None:
        return None
    return AuditCommand(identifier=match.group("uid"))
