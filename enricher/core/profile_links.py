"""Discover a restaurant's Instagram profile from its own website."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import unquote, urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from enricher.models import ProfileLinkResult

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0 Safari/537.36"
)
REQUEST_TIMEOUT = 10
_SESSION = requests.Session()
SKIP_SENTINEL = "[instagram-skip]"

INSTAGRAM_URL_REGEX = re.compile(r"https?://(?:www\.)?instagram\.com/[^\"'\s<>)]+", re.IGNORECASE)
HANDLE_MENTION_REGEX = re.compile(
    r"instagram[^@\n]{0,40}?[\s:(]@([A-Za-z0-9._]{1,30})(?![A-Za-z0-9._]*@)(?![A-Za-z0-9_])",
    re.IGNORECASE,
)
USERNAME_REGEX = re.compile(r"^[A-Za-z0-9._-]+$")
_DOMAIN_LIKE = re.compile(r"\.(com|co|uk|net|org|io|biz|info)$", re.IGNORECASE)

RESERVED_SEGMENTS = frozenset(
    {
        "accounts",
        "explore",
        "about",
        "blog",
        "developer",
        "directory",
        "events",
        "legal",
        "privacy",
        "press",
        "reel",
        "reels",
        "stories",
        "web",
        "p",
        "tv",
        "topics",
        "email",
        "invite",
    }
)


def sanitize_website(raw_url: str) -> Optional[str]:
    """Normalise raw website strings into absolute URLs (https when no scheme)."""

    if not raw_url:
        return None
    url = raw_url.strip()
    if not url:
        return None
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"
    parsed = urlparse(url)
    if not parsed.netloc:
        return None
    return urlunparse(parsed._replace(path=parsed.path or "/", fragment=""))


def is_plausible_handle(handle: str) -> bool:
    if not handle or len(handle) > 30:
        return False
    if not USERNAME_REGEX.match(handle):
        return False
    if handle.strip("._-").isdigit() or not handle.strip("._-"):
        return False
    if ".." in handle or handle.endswith("."):
        return False
    if _DOMAIN_LIKE.search(handle):
        return False
    return handle.lower() not in RESERVED_SEGMENTS


def profile_url_for(handle: str) -> str:
    return f"https://www.instagram.com/{handle.lower()}/"


def normalize_instagram_url(raw_url: str) -> str:
    """Return the canonical profile URL, or an empty string when it is not a profile."""
    if not raw_url:
        return ""
    candidate = raw_url.replace("&amp;", "&").strip()
    candidate = re.sub(r"[\"'<>)]*$", "", candidate)
    parsed = urlparse(candidate)
    host = parsed.netloc.lower().split(":")[0]
    if host != "instagram.com" and not host.endswith(".instagram.com"):
        return ""
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return ""
    handle = unquote(segments[0]).strip().lstrip("@")
    if not is_plausible_handle(handle):
        return ""
    return profile_url_for(handle)


def _anchor_candidates(soup: BeautifulSoup, base_url: str) -> Iterable[str]:
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if href:
            yield urljoin(base_url, href)


def resolve_profile_link(html: str, base_url: str = "") -> Optional[str]:
    """Extract a normalised profile URL from page HTML, or ``None`` when there is none.

    Anchor hrefs are checked first, then bare profile URLs anywhere in the markup,
    then ``@handle`` mentions that follow the word "instagram" in the page text.
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for href in _anchor_candidates(soup, base_url):
        normalized = normalize_instagram_url(href)
        if normalized:
            return normalized

    for match in INSTAGRAM_URL_REGEX.finditer(html):
        normalized = normalize_instagram_url(match.group(0))
        if normalized:
            return normalized

    text = soup.get_text(" ", strip=True)
    for match in HANDLE_MENTION_REGEX.finditer(text):
        handle = match.group(1).rstrip(".")
        if is_plausible_handle(handle):
            return profile_url_for(handle)

    return None


def _failure_reason(exc: requests.RequestException) -> str:
    response = getattr(exc, "response", None)
    if response is not None and getattr(response, "status_code", None):
        return f"http_{response.status_code}"
    return type(exc).__name__ or "unknown_error"


def find_profile_link(
    website_url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: int = REQUEST_TIMEOUT,
) -> ProfileLinkResult:
    """Fetch ``website_url`` and look for an Instagram profile; never raises on network failure."""
    website = sanitize_website(website_url)
    if not website:
        return ProfileLinkResult(status="not_found", reason="no_website")

    http = session or _SESSION
    try:
        response = http.get(
            website,
            timeout=timeout,
            allow_redirects=True,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
        )
        response.raise_for_status()
    except requests.RequestException as exc:  # noqa: BLE001
        logger.warning("Failed to fetch website %s: %s", website, exc)
        return ProfileLinkResult(status="error", reason=_failure_reason(exc))

    url = resolve_profile_link(response.text or "", getattr(response, "url", website) or website)
    if url:
        return ProfileLinkResult(url=url, status="found")
    return ProfileLinkResult(status="not_found", reason="No profile discovered.")


def _note_lines(notes: Optional[str]) -> list:
    return [line.strip() for line in (notes or "").splitlines() if line.strip()]


def has_skip_note(notes: Optional[str]) -> bool:
    return any(line.startswith(SKIP_SENTINEL) for line in _note_lines(notes))


def add_skip_note(notes: Optional[str], reason: str) -> str:
    """Append a skip marker line unless one is already present."""
    lines = _note_lines(notes)
    if any(line.startswith(SKIP_SENTINEL) for line in lines):
        return "\n".join(lines)
    lines.append(f"{SKIP_SENTINEL} {reason}".strip())
    return "\n".join(lines)


def remove_skip_note(notes: Optional[str]) -> str:
    return "\n".join(line for line in _note_lines(notes) if not line.startswith(SKIP_SENTINEL))
