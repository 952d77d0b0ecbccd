from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

# Injected wherever "now" matters so validity windows are testable.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
