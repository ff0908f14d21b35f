from __future__ import annotations

from starlette.requests import Request

_BROWSERS = (("Edg", "Edge"), ("Chrome", "Chrome"), ("Firefox", "Firefox"), ("Safari", "Safari"))
_SYSTEMS = (
    ("Windows", "Windows"),
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Mac", "MacOS"),
    ("Linux", "Linux"),
)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return "127.0.0.1"


def parse_user_agent(user_agent: str | None) -> tuple[str, str]:
    """Return a coarse ``(browser, os)`` pair for session listings."""
    agent = user_agent or ""
    browser = next((name for marker, name in _BROWSERS if marker in agent), "Unknown")
    system = next((name for marker, name in _SYSTEMS if marker in agent), "Unknown")
    return browser, system
