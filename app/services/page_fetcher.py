"""Fetch reference pages over HTTP and reduce their HTML to plain text."""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 30.0
MAX_TEXT_CHARS = 50000
MAX_HEADINGS = 50
MAX_REDIRECTS = 3

_USER_AGENT = "Mozilla/5.0 (compatible; LongformEngine/1.0)"
_NON_CONTENT_TAGS = ("script", "style", "noscript", "template", "head", "title", "nav", "footer", "header")
_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_SPACE_RE = re.compile(r"\s+")


class PageFetchError(RuntimeError):
  """Raised when a reference page cannot be fetched safely."""


@dataclass(frozen=True)
class ExtractedPage:
  url: str
  title: str = ""
  description: str = ""
  text: str = ""
  headings: list[str] = field(default_factory=list)


def validate_public_url(url: str) -> bool:
  """Return True when the URL is http(s) and resolves only to public addresses."""
  parsed = urlparse(url)
  if parsed.scheme not in ("http", "https"):
    return False
  hostname = parsed.hostname
  if not hostname or hostname.lower() in {"localhost", "metadata.google.internal"}:
    return False
  try:
    infos = socket.getaddrinfo(hostname, parsed.port or None, proto=socket.IPPROTO_TCP)
  except socket.gaierror:
    return False
  for info in infos:
    ip_obj = ipaddress.ip_address(info[4][0])
    if ip_obj.is_private or ip_obj.is_loopback or ip_obj.is_link_local or ip_obj.is_reserved or ip_obj.is_multicast or ip_obj.is_unspecified:
      return False
  return True


def _squash(value: str) -> str:
  return _SPACE_RE.sub(" ", value).strip()


def parse_html(url: str, raw_html: str) -> ExtractedPage:
  """Extract title, description, headings and body text from HTML."""
  soup = BeautifulSoup(raw_html, "html.parser")
  title = _squash(soup.title.get_text(" ")) if soup.title else ""

  description = ""
  meta = soup.find("meta", attrs={"name": re.compile(r"^description$", re.IGNORECASE)})
  if meta is not None and meta.get("content"):
    description = _squash(str(meta["content"]))

  # Headings inside <header> count, so collect them before dropping layout blocks.
  headings = [_squash(tag.get_text(" ")) for tag in soup.find_all(_HEADING_TAGS)]
  headings = [heading for heading in headings if heading][:MAX_HEADINGS]

  for tag in soup.find_all(_NON_CONTENT_TAGS):
    tag.decompose()
  text = _squash(soup.get_text(" "))
  if len(text) > MAX_TEXT_CHARS:
    text = text[:MAX_TEXT_CHARS] + "..."

  return ExtractedPage(url=url, title=title, description=description, text=text, headings=headings)


class PageFetcher:
  """SSRF-guarded HTML fetcher; every redirect hop is validated again."""

  def __init__(self, *, client: httpx.AsyncClient | None = None, timeout: float = FETCH_TIMEOUT_SECONDS) -> None:
    self._client = client
    self._timeout = timeout

  async def fetch(self, url: str) -> ExtractedPage:
    if self._client is not None:
      return await self._fetch_with(self._client, url)
    async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=False, headers={"User-Agent": _USER_AGENT, "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"}) as client:
      return await self._fetch_with(client, url)

  async def _fetch_with(self, client: httpx.AsyncClient, url: str) -> ExtractedPage:
    current = url
    for _hop in range(MAX_REDIRECTS + 1):
      if not await run_in_threadpool(validate_public_url, current):
        raise PageFetchError(f"Refusing to fetch non-public URL: {current}")
      try:
        response = await client.get(current)
      except httpx.HTTPError as exc:
        raise PageFetchError(f"Fetching {current} failed: {exc}") from exc
      if response.is_redirect:
        location = response.headers.get("location")
        if not location:
          raise PageFetchError(f"Redirect without location from {current}")
        current = urljoin(current, location)
        continue
      if response.status_code >= 400:
        raise PageFetchError(f"Fetching {current} returned HTTP {response.status_code}")
      logger.debug("Fetched reference url=%s bytes=%d", current, len(response.content))
      return parse_html(url, response.text)
    raise PageFetchError(f"Too many redirects for {url}")
