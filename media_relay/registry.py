"""Flat JSON user registry.

The whole file is read and rewritten on every tracked interaction:

    {"users": [...], "newUsersToday": 0, "lastResetDate": "2026-10-18", "totalDownloads": 0}
"""

import datetime as dt
import enum
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

log = logging.getLogger(__name__)


class UserClass(enum.Enum):
    NEWCOMER = "newcomer"
    RETURNING = "returning"
    PRIVILEGED = "privileged"


@dataclass
class Stats:
    total_users: int
    new_users_today: int
    total_downloads: int
    last_reset_date: str


def _today() -> dt.date:
    return dt.date.today()


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class UserRegistry:
    def __init__(self, path: Path, admin_id: Optional[int] = None, today: Callable[[], dt.date] = _today):
        self.path = Path(path)
        self.admin_id = admin_id or None
        self._today = today

    def _empty(self) -> Dict:
        return {
            "users": [],
            "newUsersToday": 0,
            "lastResetDate": self._today().isoformat(),
            "totalDownloads": 0,
        }

    def load(self) -> Dict:
        if not self.path.is_file():
            return self._empty()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("Error loading users from %s: %s", self.path, e)
            return self._empty()
        if not isinstance(data, dict):
            log.error("Unexpected users file layout in %s", self.path)
            return self._empty()
        base = self._empty()
        base.update(data)
        return base

    def save(self, data: Dict) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            log.error("Error saving users to %s: %s", self.path, e)

    def _roll_day(self, data: Dict) -> None:
        today = self._today().isoformat()
        if data.get("lastResetDate") != today:
            data["newUsersToday"] = 0
            data["lastResetDate"] = today

    def record_interaction(
        self,
        user_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserClass:
        data = self.load()
        self._roll_day(data)

        existing = next((u for u in data["users"] if u.get("id") == user_id), None)
        if existing is None:
            data["users"].append({
                "id": user_id,
                "username": username or None,
                "firstName": first_name or None,
                "lastName": last_name or None,
                "firstSeen": _now_iso(),
            })
            data["newUsersToday"] = int(data.get("newUsersToday") or 0) + 1
            klass = UserClass.NEWCOMER
        else:
            existing["username"] = username or existing.get("username")
            existing["firstName"] = first_name or existing.get("firstName")
            existing["lastName"] = last_name or existing.get("lastName")
            klass = UserClass.RETURNING

        self.save(data)
        if self.admin_id is not None and user_id == self.admin_id:
            return UserClass.PRIVILEGED
        return klass

    def increment_downloads(self) -> int:
        data = self.load()
        self._roll_day(data)
        data["totalDownloads"] = int(data.get("totalDownloads") or 0) + 1
        self.save(data)
        return data["totalDownloads"]

    def current_stats(self) -> Stats:
        data = self.load()
        self._roll_day(data)
        return Stats(
            total_users=len(data["users"]),
            new_users_today=int(data.get("newUsersToday") or 0),
            total_downloads=int(data.get("totalDownloads") or 0),
            last_reset_date=data["lastResetDate"],
        )

    def recent_users(self, n: int = 10) -> List[Dict]:
        return list(reversed(self.load()["users"][-n:]))
