"""File-backed session persistence: one JSON file per session key."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..constants import FACEBOOK_BASE
from ..models.session import Cookie, LoadResult, SessionRecord

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

LOCAL_STORAGE_DUMP_JS = """() => {
  const out = {};
  for (let i = 0; i < localStorage.length; i++) {
    const k = localStorage.key(i);
    out[k] = localStorage.getItem(k);
  }
  return out;
}"""

LOCAL_STORAGE_LOAD_JS = """(data) => {
  for (const k of Object.keys(data || {})) localStorage.setItem(k, data[k]);
}"""


class SessionStore:
    """Reads and writes ``<directory>/<key>.json`` atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not key or not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise ValueError(f"Invalid session key: {key!r}")
        return self.directory / f"{key}.json"

    def save(self, record: SessionRecord, key: str) -> Path:
        """Write ``record`` under ``key``; readers never see a partial file."""
        target = self.path_for(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(record.to_file_dict(), indent=2, ensure_ascii=False)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return target

    def load(self, key: str) -> LoadResult:
        try:
            target = self.path_for(key)
        except ValueError as e:
            return LoadResult(ok=False, error=str(e))
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LoadResult(ok=False, error=f"No saved session '{key}'", file=str(target))
        except OSError as e:
            return LoadResult(ok=False, error=f"Could not read {target}: {e}", file=str(target))
        try:
            record = SessionRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            return LoadResult(ok=False, error=f"Corrupt session file {target}: {e}", file=str(target))
        return LoadResult(ok=True, data=record, file=str(target))

    def list_sessions(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))


# ── Page bridge ──────────────────────────────────────────────────────────────


async def snapshot_page(page) -> SessionRecord:
    """Capture the page context's cookies and the page's localStorage."""
    cookies = await page.context.cookies()
    try:
        storage = await page.evaluate(LOCAL_STORAGE_DUMP_JS) or {}
    except Exception as e:
        logger.debug(f"localStorage unavailable: {e}")
        storage = {}
    return SessionRecord(
        cookies=[Cookie.model_validate(c) for c in cookies],
        local_storage={str(k): str(v) for k, v in storage.items()},
    )


async def restore_page(page, record: SessionRecord, origin: str = FACEBOOK_BASE) -> None:
    """Apply cookies, then visit ``origin`` so localStorage lands on the right origin."""
    if record.cookies:
        try:
            await page.context.add_cookies([c.to_playwright() for c in record.cookies])
        except Exception as e:
            logger.warning(f"Could not apply saved cookies: {e}")
    try:
        await page.goto(origin, wait_until="domcontentloaded", timeout=15000)
        await page.evaluate(LOCAL_STORAGE_LOAD_JS, record.local_storage)
    except Exception as e:
        logger.warning(f"Could not restore localStorage: {e}")
