"""
User Store — one JSON document of planner data per user, on local disk.

Layout under ``data_dir``::

    users/<user_id>.json      planner data
    calendar_tokens.json      {user_id: token}

Writes are atomic (temp file + ``os.replace``).  All file I/O runs in a
worker thread so the event loop never blocks on disk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import secrets
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")
MIN_TOKEN_LENGTH = 24


def safe_user_id(user_id: str) -> str:
    """Reject ids that could escape the data directory."""
    value = str(user_id or "").strip()
    if not _SAFE_ID.match(value) or value in (".", ".."):
        raise ValueError(f"Invalid user id: {user_id!r}")
    return value


def _atomic_write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _read_json(path: Path) -> Optional[object]:
    if not path.exists():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class JsonUserStore:
    """File-backed planner store plus calendar subscription tokens."""

    def __init__(self, data_dir: str, public_base_url: str = "http://localhost:3000"):
        self.data_dir = Path(data_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self._token_lock = asyncio.Lock()

    def _user_path(self, user_id: str) -> Path:
        return self.data_dir / "users" / f"{safe_user_id(user_id)}.json"

    @property
    def _tokens_path(self) -> Path:
        return self.data_dir / "calendar_tokens.json"

    async def user_exists(self, user_id: str) -> bool:
        return await asyncio.to_thread(self._user_path(user_id).exists)

    async def get_user_data(self, user_id: str) -> Optional[dict]:
        """Planner data for *user_id*, or ``None`` if the user is unknown."""
        data = await asyncio.to_thread(_read_json, self._user_path(user_id))
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed planner data for {user_id}")
            return {}
        return data

    async def save_user_data(self, user_id: str, data: dict) -> None:
        await asyncio.to_thread(_atomic_write_json, self._user_path(user_id), data)
        logger.debug(f"Saved planner data for {user_id}")

    async def get_calendar_links(self, user_id: str) -> Optional[dict]:
        """``{token, subscribeUrl, webcalUrl}``, creating the token on first use."""
        if not await self.user_exists(user_id):
            return None
        async with self._token_lock:
            tokens = await asyncio.to_thread(_read_json, self._tokens_path)
            if not isinstance(tokens, dict):
                tokens = {}
            token = tokens.get(user_id)
            if not isinstance(token, str) or len(token) < MIN_TOKEN_LENGTH:
                token = secrets.token_hex(24)
                tokens[user_id] = token
                await asyncio.to_thread(_atomic_write_json, self._tokens_path, tokens)

        subscribe_url = f"{self.public_base_url}/api/calendar/subscribe/{token}.ics"
        webcal_url = re.sub(r"^https?://", "webcal://", subscribe_url)
        return {"token": token, "subscribeUrl": subscribe_url, "webcalUrl": webcal_url}
