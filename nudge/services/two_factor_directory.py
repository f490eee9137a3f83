"""
Static directory of sites that support two-factor authentication.

Entries follow the 2fa.directory export format:
    [["GitHub", {"domain": "github.com", "additional-domains": [...]}], ...]
A hostname is considered capable when it contains an entry's primary domain;
additional domains are only consulted when no primary domain matched.
"""

import json
from pathlib import Path

from nudge.config import settings
from nudge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TwoFactorDirectory:
    def __init__(self, entries: list):
        self._domains: list[str] = []
        self._additional_domains: list[str] = []

        for entry in entries:
            details = entry[1] if isinstance(entry, list | tuple) and len(entry) > 1 else entry
            if not isinstance(details, dict):
                continue
            if details.get("domain"):
                self._domains.append(details["domain"].lower())
            for alias in details.get("additional-domains") or []:
                self._additional_domains.append(alias.lower())

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> "TwoFactorDirectory":
        path = Path(path or settings.TWO_FACTOR_DIRECTORY_PATH)
        with path.open(encoding="utf-8") as fh:
            entries = json.load(fh)
        directory = cls(entries)
        logger.info("2FA directory loaded", path=str(path), entries=len(directory))
        return directory

    def __len__(self) -> int:
        return len(self._domains)

    def supports(self, hostname: str | None) -> bool:
        if not hostname:
            return False
        hostname = hostname.lower()
        if any(domain in hostname for domain in self._domains):
            return True
        return any(alias in hostname for alias in self._additional_domains)
