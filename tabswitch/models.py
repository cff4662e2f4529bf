"""Data shared by the daemon and switcher sessions."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TabSnapshot:
    """One open tab as reported by the host at refresh time."""
    id: int
    title: str = ""
    url: str = ""
    window_id: int = 0
    pinned: bool = False
    favicon: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "windowId": self.window_id,
            "pinned": self.pinned,
        }
        if self.favicon is not None:
            data["favicon"] = self.favicon
        return data

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "TabSnapshot":
        return cls(
            id=int(data["id"]),
            title=data.get("title") or "",
            url=data.get("url") or "",
            window_id=int(data.get("windowId", 0)),
            pinned=bool(data.get("pinned", False)),
            favicon=data.get("favicon"),
        )
