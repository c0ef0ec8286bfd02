"""Unit tests for the cookie snapshot store.

Tests cover:
- Save: immutable snapshot files with the expected content
- load_latest: newest snapshot wins, never raises
- Ordering by capture time, domain isolation, pruning
- Importing a browser cookie export
"""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from src.app.services.scout.cookie_store import CookieSnapshot, CookieStore

DOMAIN = "google.co.jp"


def write_snapshot(directory: Path, domain: str, timestamp: datetime, cookies: list[dict], name: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps({"cookies": cookies, "timestamp": timestamp.isoformat(), "domain": domain}))
    return path


@pytest.fixture
def store(tmp_path: Path) -> CookieStore:
    return CookieStore(tmp_path / "cookies")


# =============================================================================
# SAVE
# =============================================================================
class TestCookieStoreSave:
    @pytest.mark.asyncio
    async def test_save_writes_snapshot(self, store: CookieStore, make_session) -> None:
        session = make_session(cookies=[{"name": "NID", "value": "abc", "domain": ".google.co.jp"}])

        path = await store.save(session, DOMAIN)

        assert path.parent == store.directory
        assert path.name.startswith(f"cookies-{DOMAIN}-")
        data = json.loads(path.read_text())
        assert data["domain"] == DOMAIN
        assert data["cookies"] == [{"name": "NID", "value": "abc", "domain": ".google.co.jp"}]
        assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None

    @pytest.mark.asyncio
    async def test_saves_never_overwrite(self, store: CookieStore, make_session) -> None:
        session = make_session(cookies=[{"name": "a", "value": "1"}])

        first = await store.save(session, DOMAIN)
        second = await store.save(session, DOMAIN)

        assert first != second
        assert len(list(store.directory.glob("*.json"))) == 2


# =============================================================================
# LOAD
# =============================================================================
class TestCookieStoreLoad:
    @pytest.mark.asyncio
    async def test_load_latest_restores_newest(self, store: CookieStore, make_session) -> None:
        older = datetime(2025, 1, 1, tzinfo=UTC)
        newer = datetime(2025, 6, 1, tzinfo=UTC)
        # File name order deliberately disagrees with capture order
        new_name = f"cookies-{DOMAIN}-1-aaaaaaaa.json"
        old_name = f"cookies-{DOMAIN}-9-bbbbbbbb.json"
        write_snapshot(store.directory, DOMAIN, newer, [{"name": "new", "value": "2"}], new_name)
        write_snapshot(store.directory, DOMAIN, older, [{"name": "old", "value": "1"}], old_name)
        session = make_session()

        assert await store.load_latest(session, DOMAIN) is True
        assert session.restored_cookies == [{"name": "new", "value": "2"}]

    @pytest.mark.asyncio
    async def test_load_latest_without_snapshots(self, store: CookieStore, make_session) -> None:
        session = make_session()

        assert await store.load_latest(session, DOMAIN) is False
        assert session.restored_cookies == []

    @pytest.mark.asyncio
    async def test_load_latest_never_raises(self, store: CookieStore, make_session) -> None:
        await store.save(make_session(cookies=[{"name": "a", "value": "1"}]), DOMAIN)
        session = make_session(add_cookies_error=RuntimeError("CDP rejected cookie"))

        assert await store.load_latest(session, DOMAIN) is False

    @pytest.mark.asyncio
    async def test_other_domains_ignored(self, store: CookieStore, make_session) -> None:
        now = datetime.now(UTC)
        write_snapshot(store.directory, "google.com", now, [{"name": "us"}], "cookies-google.com-1-aaaaaaaa.json")
        write_snapshot(
            store.directory, "google.com.tw", now, [{"name": "tw"}], "cookies-google.com.tw-1-bbbbbbbb.json"
        )

        snapshots = store.list_snapshots("google.com")

        assert [s.cookies for s in snapshots] == [[{"name": "us"}]]

    def test_unreadable_snapshot_skipped(self, store: CookieStore) -> None:
        store.directory.mkdir(parents=True)
        (store.directory / f"cookies-{DOMAIN}-1-cccccccc.json").write_text("{broken")

        assert store.list_snapshots(DOMAIN) == []

    @pytest.mark.asyncio
    async def test_vanished_snapshot_skipped(self, store: CookieStore, make_session, tmp_path: Path) -> None:
        """A snapshot pruned between listing and reading is dropped, not raised."""
        await store.save(make_session(cookies=[{"name": "NID", "value": "1"}]), DOMAIN)
        dangling = store.directory / f"cookies-{DOMAIN}-1700000000000-deadbeef.json"
        dangling.symlink_to(tmp_path / "already-pruned.json")
        session = make_session()

        assert await store.load_latest(session, DOMAIN) is True
        assert session.restored_cookies == [{"name": "NID", "value": "1"}]
        assert store.prune(DOMAIN, keep=3) == 0

    def test_snapshot_roundtrip_naive_timestamp(self) -> None:
        snapshot = CookieSnapshot.from_dict({"domain": DOMAIN, "cookies": [], "timestamp": "2025-01-01T00:00:00"})
        assert snapshot.timestamp.tzinfo is UTC


# =============================================================================
# PRUNE
# =============================================================================
class TestCookieStorePrune:
    def test_prune_keeps_most_recent(self, store: CookieStore) -> None:
        for month in range(1, 6):
            write_snapshot(
                store.directory,
                DOMAIN,
                datetime(2025, month, 1, tzinfo=UTC),
                [{"name": f"m{month}"}],
                f"cookies-{DOMAIN}-{month}-0000000{month}.json",
            )

        assert store.prune(DOMAIN, keep=3) == 2

        remaining = [s.cookies[0]["name"] for s in store.list_snapshots(DOMAIN)]
        assert remaining == ["m5", "m4", "m3"]

    def test_prune_missing_directory(self, store: CookieStore) -> None:
        assert store.prune(DOMAIN) == 0


# =============================================================================
# IMPORT
# =============================================================================
class TestCookieStoreImport:
    """Seeding the store from a browser extension export."""

    @pytest.fixture
    def export_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "imported-cookies.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "domain": ".google.com",
                        "name": "NID",
                        "value": "abc",
                        "path": "/",
                        "expirationDate": 1893456000.5,
                        "sameSite": "no_restriction",
                        "hostOnly": False,
                        "session": False,
                        "storeId": "0",
                        "id": 1,
                    },
                    {"domain": "accounts.google.com", "name": "SID", "value": "s", "session": True, "sameSite": "lax"},
                    {"domain": ".google.co.jp", "name": "JP", "value": "j"},
                    {"domain": ".example.com", "name": "other", "value": "x"},
                ]
            )
        )
        return path

    def test_import_filters_to_domain(self, store: CookieStore, export_file: Path) -> None:
        path = store.import_snapshot(export_file, "google.com")

        snapshot = store.load_snapshot(path)
        assert snapshot is not None
        assert snapshot.domain == "google.com"
        assert [c["name"] for c in snapshot.cookies] == ["NID", "SID"]

    def test_import_normalizes_export_fields(self, store: CookieStore, export_file: Path) -> None:
        cookies = store.load_snapshot(store.import_snapshot(export_file, "google.com")).cookies

        assert cookies[0] == {
            "domain": ".google.com",
            "name": "NID",
            "value": "abc",
            "path": "/",
            "expires": 1893456000.5,
            "sameSite": "None",
        }
        assert cookies[1] == {"domain": "accounts.google.com", "name": "SID", "value": "s", "sameSite": "Lax"}

    def test_import_accepts_wrapped_format(self, store: CookieStore, tmp_path: Path) -> None:
        path = tmp_path / "export.json"
        path.write_text(json.dumps({"cookies": [{"domain": ".google.co.jp", "name": "JP", "value": "j"}]}))

        snapshot = store.load_snapshot(store.import_snapshot(path, DOMAIN))

        assert snapshot.cookies == [{"domain": ".google.co.jp", "name": "JP", "value": "j"}]

    @pytest.mark.asyncio
    async def test_imported_snapshot_restored(self, store: CookieStore, export_file: Path, make_session) -> None:
        store.import_snapshot(export_file, "google.com")
        session = make_session()

        assert await store.load_latest(session, "google.com") is True
        assert [c["name"] for c in session.restored_cookies] == ["NID", "SID"]

    def test_import_unknown_format(self, store: CookieStore, tmp_path: Path) -> None:
        path = tmp_path / "export.json"
        path.write_text(json.dumps({"version": 1}))

        with pytest.raises(ValueError):
            store.import_snapshot(path, DOMAIN)

    def test_import_missing_file(self, store: CookieStore, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            store.import_snapshot(tmp_path / "nope.json", DOMAIN)
