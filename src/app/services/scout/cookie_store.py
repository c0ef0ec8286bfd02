"""
Session Cookie Store for Scout.

Persists per-domain cookie snapshots so a new browser session can resume the
trust signals of earlier ones.

Workflow:
1. After launch, restore the newest snapshot for the target domain
2. After a successful extraction, save a new snapshot
3. Prune old snapshots, keeping the most recent few

File Format: <directory>/cookies-<domain>-<epoch ms>-<uuid8>.json
File Content: {"cookies": [...], "timestamp": ISO-8601, "domain": ...}

Snapshots are immutable: never edited, only superseded and pruned.
"""

import json
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = logging.getLogger(__name__)

FILENAME_REGEX = re.compile(r"^cookies-(?P<domain>.+)-(?P<epoch_ms>\d+)-(?P<suffix>[0-9a-f]{8})\.json$")

# Extension exports use lowercase sameSite names; "unspecified" is left to the browser
SAME_SITE_VALUES = {"lax": "Lax", "strict": "Strict", "none": "None", "no_restriction": "None"}
EXPORT_ONLY_KEYS = ("hostOnly", "session", "storeId", "id")


@dataclass(frozen=True)
class CookieSnapshot:
    """One persisted set of cookies for a domain."""

    domain: str
    cookies: list[dict[str, Any]]
    timestamp: datetime
    path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cookies": self.cookies,
            "timestamp": self.timestamp.isoformat(),
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> "CookieSnapshot":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            domain=data["domain"],
            cookies=list(data["cookies"]),
            timestamp=timestamp,
            path=path,
        )


class CookieStore:
    """File-backed cookie snapshots, one JSON file per snapshot."""

    def __init__(self, directory: str | Path = "./data/cookies") -> None:
        self.directory = Path(directory)

    async def save(self, session: "BrowserSession", domain: str) -> Path:
        """Snapshot every cookie visible to ``session`` as a new artifact."""
        cookies = await session.cookies()
        path = self._write(CookieSnapshot(domain=domain, cookies=cookies, timestamp=datetime.now(UTC)))
        logger.info(f"Saved {len(cookies)} cookies to {path.name}")
        return path

    def import_snapshot(self, path: str | Path, domain: str) -> Path:
        """Seed the store from a browser cookie export.

        Accepts a bare list of cookies or ``{"cookies": [...]}`` (EditThisCookie
        and similar extensions). Only cookies for ``domain`` and its subdomains
        are kept; they become the newest snapshot, restored by the next search.

        Raises:
            OSError: The export cannot be read
            ValueError: The export is not JSON or has no cookie list
        """
        with open(path, encoding="utf-8") as f:
            exported = json.load(f)

        if isinstance(exported, dict):
            exported = exported.get("cookies")
        if not isinstance(exported, list):
            raise ValueError(f"Unrecognized cookie export format in {path}")

        cookies = [
            _normalize_exported(cookie)
            for cookie in exported
            if isinstance(cookie, dict) and _matches_domain(str(cookie.get("domain", "")), domain)
        ]
        if not cookies:
            found = sorted({str(c.get("domain")) for c in exported if isinstance(c, dict)})
            logger.warning(f"No {domain} cookies in {path}; export has domains {found}")

        target = self._write(CookieSnapshot(domain=domain, cookies=cookies, timestamp=datetime.now(UTC)))
        logger.info(f"Imported {len(cookies)} of {len(exported)} cookies into {target.name}")
        return target

    def _write(self, snapshot: CookieSnapshot) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        epoch_ms = int(snapshot.timestamp.timestamp() * 1000)
        path = self.directory / f"cookies-{snapshot.domain}-{epoch_ms}-{uuid.uuid4().hex[:8]}.json"

        # "x" refuses to overwrite an existing snapshot
        with open(path, "x", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        return path

    async def load_latest(self, session: "BrowserSession", domain: str) -> bool:
        """Restore the most recent snapshot for ``domain`` into ``session``.

        Returns False when no snapshot exists or restoration fails. Never raises.
        """
        snapshots = self.list_snapshots(domain)
        if not snapshots:
            logger.debug(f"No cookie snapshots for {domain}")
            return False

        latest = snapshots[0]
        try:
            await session.add_cookies(latest.cookies)
        except Exception as e:
            logger.warning(f"Failed to restore cookies from {latest.path}: {e}")
            return False

        logger.info(f"Restored {len(latest.cookies)} cookies for {domain} (captured {latest.timestamp.isoformat()})")
        return True

    def list_snapshots(self, domain: str) -> list[CookieSnapshot]:
        """Readable snapshots for ``domain``, newest capture first."""
        snapshots = []
        for _, path in self._ordered_paths(domain):
            snapshot = self.load_snapshot(path)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def load_snapshot(self, path: str | Path) -> CookieSnapshot | None:
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                return CookieSnapshot.from_dict(json.load(f), path=path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable cookie snapshot {path}: {e}")
            return None

    def prune(self, domain: str, keep: int = 3) -> int:
        """Delete all but the ``keep`` most recent snapshots. Returns the number deleted."""
        deleted = 0
        for _, path in self._ordered_paths(domain)[max(keep, 0) :]:
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                logger.warning(f"Failed to delete cookie snapshot {path}: {e}")

        if deleted:
            logger.info(f"Pruned {deleted} old cookie snapshots for {domain}")
        return deleted

    def _ordered_paths(self, domain: str) -> list[tuple[float, Path]]:
        """Snapshot files for ``domain`` ordered by capture time, newest first.

        Capture time comes from the snapshot body; files that cannot be read
        fall back to their modification time. Files that vanished since the
        directory listing (pruned by a concurrent search) are skipped.
        """
        if not self.directory.is_dir():
            return []

        entries = []
        for path in self.directory.glob(f"cookies-{domain}-*.json"):
            match = FILENAME_REGEX.match(path.name)
            if match is None or match.group("domain") != domain:
                continue

            captured = self._capture_time(path)
            if captured is None:
                continue
            entries.append((captured, int(match.group("epoch_ms")), path))

        entries.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)
        return [(captured, path) for captured, _, path in entries]

    def _capture_time(self, path: Path) -> float | None:
        try:
            with open(path, encoding="utf-8") as f:
                timestamp = datetime.fromisoformat(json.load(f)["timestamp"])
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=UTC)
            return timestamp.timestamp()
        except (OSError, ValueError, KeyError, TypeError):
            pass

        try:
            return path.stat().st_mtime
        except OSError as e:
            logger.debug(f"Cookie snapshot {path.name} disappeared: {e}")
            return None


def _matches_domain(cookie_domain: str, domain: str) -> bool:
    host = cookie_domain.lstrip(".").lower()
    return host == domain or host.endswith(f".{domain}")


def _normalize_exported(cookie: dict[str, Any]) -> dict[str, Any]:
    """Map browser-extension export fields (EditThisCookie) onto CDP cookie fields."""
    record = dict(cookie)
    if "expirationDate" in record and "expires" not in record:
        record["expires"] = record.pop("expirationDate")
    if record.get("session"):
        record.pop("expires", None)

    same_site = SAME_SITE_VALUES.get(str(record.get("sameSite", "")).lower())
    if same_site is None:
        record.pop("sameSite", None)
    else:
        record["sameSite"] = same_site

    for key in EXPORT_ONLY_KEYS:
        record.pop(key, None)
    return record


__all__ = ["CookieSnapshot", "CookieStore"]
