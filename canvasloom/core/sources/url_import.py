"""URL import service.

Fetches component source from content-delivery and GitHub URLs. Only
domains on the trusted list are accepted, and only over HTTPS unless the
host is local. Successfully processed imports can be remembered so a
re-import within the hour skips the network.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..config import PipelineSettings, get_settings
from ..constants import SUPPORTED_SOURCE_EXTENSIONS
from ..errors import SourceFetchError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/javascript, text/javascript, text/plain"
URL_CACHE_MAX_AGE_S = 3600
URL_CACHE_MAX_ENTRIES = 200

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")
_PACKAGE_PATH_RE = re.compile(r"/([^@]+)@([^/]+)")
_GITHUB_PATH_RE = re.compile(r"/([^/]+)/([^/]+)/([^/]+)/(.*)")
_MODULE_EXPORT_RE = re.compile(r"^export\s+(default|\{|const|let|var|function|class)", re.MULTILINE)

# Any one of these is enough to call a response "code"
_CODE_PATTERNS = (
    re.compile(r"function\s+\w+"),
    re.compile(r"const\s+\w+\s*="),
    re.compile(r"let\s+\w+\s*="),
    re.compile(r"var\s+\w+\s*="),
    re.compile(r"export\s+(default|\{)"),
    re.compile(r"import\s+.+\s+from"),
    re.compile(r"class\s+\w+"),
    re.compile(r"=>\s*\{"),
    re.compile(r"React\."),
    re.compile(r"<[A-Z]\w*"),
    re.compile(r"\w+\s*:\s*function"),
    re.compile(r"\w+\s*\(\s*\)"),
)

_CDN_PROVIDERS = {
    "esm.sh": "esm.sh",
    "cdn.skypack.dev": "skypack",
    "unpkg.com": "unpkg",
}


@dataclass
class FetchedSource:
    """Component text fetched from a URL, plus what the URL tells us about it."""
    url: str
    code: str
    name: str
    format_hint: str
    etag: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def is_localhost(hostname: Optional[str]) -> bool:
    return hostname in _LOCAL_HOSTS


def looks_like_code(code: str, url: Optional[str] = None) -> bool:
    """Cheap check that a response body is JavaScript, not an error page."""
    if "<!DOCTYPE" in code or "<html" in code:
        return False
    if url and any(cdn in url for cdn in ("esm.sh", "skypack.dev", "jsdelivr")):
        return "404" not in code and "Not Found" not in code and len(code) > 50
    return any(p.search(code) for p in _CODE_PATTERNS)


def describe_url(url: str, code: str = "") -> Tuple[str, str, Dict[str, Any]]:
    """Derive (name, format hint, metadata) from a component URL.

    CDN URLs yield package name/version; raw GitHub URLs yield
    author/repo/branch/filepath.
    """
    parsed = urlparse(url)
    filename = parsed.path.rstrip("/").split("/")[-1] or "component"
    name = filename
    for ext in sorted(SUPPORTED_SOURCE_EXTENSIONS, key=len, reverse=True):
        if filename.endswith(ext):
            name = filename[:-len(ext)]
            break

    if _MODULE_EXPORT_RE.search(code):
        format_hint = "esm"
    elif parsed.path.endswith(".tsx") or ": React.FC" in code:
        format_hint = "tsx"
    else:
        format_hint = "jsx"

    metadata: Dict[str, Any] = {"source_url": url, "last_fetched": int(time.time() * 1000)}
    host = parsed.hostname or ""
    if host in _CDN_PROVIDERS:
        match = _PACKAGE_PATH_RE.search(parsed.path)
        if match:
            metadata["package_name"] = match.group(1)
            metadata["package_version"] = match.group(2)
            metadata["cdn_provider"] = _CDN_PROVIDERS[host]
    elif host == "raw.githubusercontent.com":
        match = _GITHUB_PATH_RE.match(parsed.path)
        if match:
            metadata["cdn_provider"] = "github"
            metadata["author"] = match.group(1)
            metadata["repo"] = match.group(2)
            metadata["branch"] = match.group(3)
            metadata["filepath"] = match.group(4)

    return name, format_hint, metadata


class URLImportService:
    """Fetches remote component text.

    Attributes:
        trusted_domains: Hosts (and their subdomains) imports may come from
        timeout_s: Per-request timeout
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.trusted_domains: List[str] = list(settings.trusted_domains)
        self.timeout_s = settings.fetch_timeout_s
        self._transport = transport
        self._url_cache: Dict[str, Tuple[str, Optional[str], float]] = {}

    def validate_url(self, url: str, require_https: bool = True) -> None:
        """Reject URLs that are malformed, insecure or off the allow-list.

        Raises:
            SourceFetchError: With the reason
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise SourceFetchError("Invalid URL format")

        hostname = parsed.hostname
        if require_https and parsed.scheme != "https" and not is_localhost(hostname):
            raise SourceFetchError("URL must use HTTPS for security")

        allowed = any(hostname == d or hostname.endswith(f".{d}") for d in self.trusted_domains)
        if not allowed:
            raise SourceFetchError(
                f"Domain {hostname} is not in the allowed list. "
                f"Allowed domains: {', '.join(self.trusted_domains)}"
            )

    async def fetch(self, url: str, use_cache: bool = True, validate: bool = True) -> FetchedSource:
        """Fetch and sanity-check component text.

        Args:
            url: Absolute component URL
            use_cache: Serve a remembered copy if fresh
            validate: Apply the allow-list (curated library URLs skip it)

        Raises:
            SourceFetchError: On validation, network or content failure
        """
        if validate:
            self.validate_url(url)

        if use_cache:
            cached = self._cached(url)
            if cached is not None:
                code, etag = cached
                logger.debug(f"URL cache hit for {url}")
                return self._build(url, code, etag)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, follow_redirects=True, transport=self._transport,
            ) as client:
                response = await client.get(url, headers={"Accept": ACCEPT_HEADER})
        except httpx.TimeoutException:
            raise SourceFetchError("Request timeout")
        except httpx.RequestError as e:
            raise SourceFetchError(f"Failed to fetch component: {e}")

        if response.status_code != 200:
            raise SourceFetchError(
                f"Failed to fetch component: {response.status_code} {response.reason_phrase}"
            )

        code = response.text
        if not code.strip():
            raise SourceFetchError("Received empty response from URL")
        if not looks_like_code(code, url):
            raise SourceFetchError("Response does not appear to be valid JavaScript/React code")

        logger.info(f"Fetched {len(code)} chars from {url}")
        return self._build(url, code, response.headers.get("etag"))

    def remember(self, url: str, code: str, etag: Optional[str] = None) -> None:
        """Keep a successfully processed import for re-use.

        Expired entries are swept on every call, and the oldest remembered
        URLs are dropped once ``URL_CACHE_MAX_ENTRIES`` is reached.
        """
        now = time.monotonic()
        for key in [k for k, (_, _, stored_at) in self._url_cache.items() if now - stored_at > URL_CACHE_MAX_AGE_S]:
            del self._url_cache[key]

        self._url_cache.pop(url, None)
        while len(self._url_cache) >= URL_CACHE_MAX_ENTRIES:
            oldest = next(iter(self._url_cache))
            del self._url_cache[oldest]
        self._url_cache[url] = (code, etag, now)

    def forget(self, url: str) -> None:
        self._url_cache.pop(url, None)

    def _cached(self, url: str) -> Optional[Tuple[str, Optional[str]]]:
        item = self._url_cache.get(url)
        if item is None:
            return None
        code, etag, stored_at = item
        if time.monotonic() - stored_at > URL_CACHE_MAX_AGE_S:
            del self._url_cache[url]
            return None
        return code, etag

    @staticmethod
    def _build(url: str, code: str, etag: Optional[str]) -> FetchedSource:
        name, format_hint, metadata = describe_url(url, code)
        return FetchedSource(url=url, code=code, name=name, format_hint=format_hint, etag=etag, metadata=metadata)
