"""
Shared admin secret for privileged operations.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from .config import get_admin_password


@dataclass(frozen=True)
class AdminCredential:
    """The single admin secret. An unset secret rejects every caller."""
    secret: Optional[str]

    def verify(self, supplied: Optional[str]) -> bool:
        if not self.secret or not supplied:
            return False
        return hmac.compare_digest(self.secret.encode("utf-8"), supplied.encode("utf-8"))

    @classmethod
    def from_env(cls) -> 'AdminCredential':
        return cls(secret=get_admin_password())

    def __repr__(self) -> str:
        return "AdminCredential(secret=[REDACTED])"
