"""
Session resume pointer.

The host application persists this small record (in local storage, a file or
anywhere else) so a reloaded client can re-fetch the game and re-subscribe.
"""
import json
from dataclasses import dataclass
from typing import Optional

from ..utils import from_iso, to_iso
from ..utils.constants import SESSION_POINTER_VERSION, SESSION_POINTER_MAX_AGE_SECONDS


@dataclass(frozen=True)
class SessionResumePointer:
    """Which game a host was managing, and when that was captured."""
    game_id: str
    team_id: str
    captured_at: str
    version: int = SESSION_POINTER_VERSION

    @classmethod
    def capture(cls, game_id: str, team_id: str, now: float) -> "SessionResumePointer":
        return cls(game_id=game_id, team_id=team_id, captured_at=to_iso(now))

    def age_seconds(self, now: float) -> float:
        captured = from_iso(self.captured_at)
        return now - captured if captured is not None else float("inf")

    def is_stale(self, now: float, max_age_seconds: int = SESSION_POINTER_MAX_AGE_SECONDS) -> bool:
        """A pointer from another format version or older than the max age is stale."""
        if self.version != SESSION_POINTER_VERSION:
            return True
        return self.age_seconds(now) > max_age_seconds

    def to_json(self) -> str:
        return json.dumps({
            "version": self.version,
            "gameId": self.game_id,
            "teamId": self.team_id,
            "capturedAt": self.captured_at,
        })

    @classmethod
    def from_json(cls, text: Optional[str]) -> Optional["SessionResumePointer"]:
        """
        Parse a stored pointer.

        Returns:
            The pointer, or None when the blob is empty or not a pointer
        """
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or not data.get("gameId") or not data.get("teamId"):
            return None
        return cls(
            game_id=data["gameId"],
            team_id=data["teamId"],
            captured_at=data.get("capturedAt") or "",
            version=int(data.get("version") or 0),
        )
