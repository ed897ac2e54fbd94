"""
asset_fetch.py
- Pulls template / overlay / avatar images over HTTP into memory.
- Every result is Resolved (bytes + content type) or Omitted (reason); resolve() never raises.
- Only the template gets a second chance (one fallback URL).
- Nothing is cached: each card request fetches fresh.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union

import requests
import urllib3

logger = logging.getLogger(__name__)


class AssetRole(str, enum.Enum):
    TEMPLATE = "template"
    OVERLAY = "overlay"
    AVATAR = "avatar"


@dataclass(frozen=True)
class AssetRef:
    url: str
    role: AssetRole


@dataclass(frozen=True)
class Resolved:
    ref: AssetRef
    data: bytes
    mime_type: str

    ok = True


@dataclass(frozen=True)
class Omitted:
    ref: Optional[AssetRef]
    reason: str

    ok = False


Result = Union[Resolved, Omitted]
Fetcher = Callable[[str], Tuple[bytes, str]]


class FetchError(Exception):
    """Non-2xx status, transport failure or timeout while fetching an asset."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


def is_http_url(s: Optional[str]) -> bool:
    return bool(s) and (s.startswith("http://") or s.startswith("https://"))


class HttpFetcher:
    """requests-backed fetcher; one Session per render so connections to the same host are reused."""

    def __init__(self, timeout: float = 8.0, user_agent: str = "whisper-ship-card", session=None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Cache-Control": "no-cache",
        })

    def __call__(self, url: str) -> Tuple[bytes, str]:
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise FetchError(url, f"timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise FetchError(url, f"transport error: {e.__class__.__name__}")
        except (urllib3.exceptions.HTTPError, ValueError) as e:
            # malformed hosts (e.g. "a..b") escape requests as urllib3 LocationParseError
            raise FetchError(url, f"invalid url: {e.__class__.__name__}")
        if not r.ok:
            raise FetchError(url, f"HTTP {r.status_code}")
        mime = (r.headers.get("Content-Type") or "application/octet-stream").split(";")[0].strip()
        return r.content, mime

    def close(self) -> None:
        self.session.close()


def fetch_asset(ref: AssetRef, fetcher: Fetcher) -> Resolved:
    if not is_http_url(ref.url):
        raise FetchError(ref.url, "not an http(s) url")
    data, mime = fetcher(ref.url)
    if not data:
        raise FetchError(ref.url, "empty body")
    return Resolved(ref=ref, data=data, mime_type=mime)


def resolve(ref: Optional[AssetRef], fetcher: Fetcher) -> Result:
    if ref is None or not ref.url:
        return Omitted(ref, "not provided")
    try:
        return fetch_asset(ref, fetcher)
    except FetchError as e:
        logger.warning("%s asset omitted (%s)", ref.role.value, e)
        return Omitted(ref, e.reason)


def resolve_template(primary: AssetRef, fallback: Optional[AssetRef], fetcher: Fetcher) -> Result:
    first = resolve(primary, fetcher)
    if first.ok or fallback is None or fallback.url == primary.url:
        return first
    logger.info("template %s failed (%s), trying fallback %s", primary.url, first.reason, fallback.url)
    second = resolve(fallback, fetcher)
    if second.ok:
        return second
    return Omitted(fallback, f"primary: {first.reason}; fallback: {second.reason}")


def resolve_all(jobs: Dict[str, Callable[[], Result]], max_workers: int = 4) -> Dict[str, Result]:
    """Run independent resolution jobs side by side; one slot failing never affects another."""
    if not jobs:
        return {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(jobs)))) as ex:
        futures = {name: ex.submit(job) for name, job in jobs.items()}
        return {name: f.result() for name, f in futures.items()}


def outcome(result: Result) -> dict:
    """JSON-safe summary of one resolution, for ?debug=1."""
    ref = result.ref
    out = {
        "url": ref.url if ref else None,
        "role": ref.role.value if ref else None,
        "ok": result.ok,
    }
    if isinstance(result, Resolved):
        out["mimeType"] = result.mime_type
        out["bytes"] = len(result.data)
    else:
        out["reason"] = result.reason
    return out
