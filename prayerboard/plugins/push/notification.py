"""
Prayer push payloads, how a received message is shown and what clicking it does.

The server fan-out and the local desktop alert both build their text here.
"""
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlsplit

DEFAULT_ICON = "/icons/icon-192.png"


def build_payload(matched: Sequence[str], url: str = "/") -> Dict[str, Any]:
    """Push payload titled after the first match; any further matches are not named."""
    primary = matched[0]
    name = primary[:1].upper() + primary[1:]
    return {
        "title": f"Adhan — {name}",
        "body": f"It's time for {name}.",
        "data": {"url": url},
    }


def notification_from_payload(payload: Optional[Dict[str, Any]], app_name: str = "MWHS",
                              icon: str = DEFAULT_ICON) -> Dict[str, Any]:
    payload = payload if isinstance(payload, dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    return {
        "title": payload.get("title") or app_name,
        "body": payload.get("body") or "",
        "icon": payload.get("icon") or icon,
        "url": data.get("url") or "/",
    }


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def resolve_click(windows: Iterable[Any], origin: str, payload: Optional[Dict[str, Any]]) -> Tuple[str, Any]:
    """
    Decide what a notification click does: focus an open window on the app's
    origin if there is one, otherwise open a new window at the payload route.
    `windows` are objects with a `url` attribute.
    """
    for window in windows:
        url = getattr(window, "url", "") or ""
        if _origin(url) == _origin(origin):
            return "focus", window
    route = notification_from_payload(payload)["url"]
    return "open", urljoin(origin, route)
