from __future__ import annotations

import httpx
import pytest

from app.services.page_fetcher import PageFetcher, PageFetchError, parse_html, validate_public_url

PUBLIC = "http://93.184.216.34"

HTML = """
<html><head><title>Pricing &amp; Plans</title>
<meta name="description" content="Compare every plan.">
<style>.x { color: red; }</style></head>
<body><nav>Home | About</nav>
<h1>Plans</h1><p>The basic plan costs <b>10</b> per month.</p>
<h2>FAQ</h2><script>track()</script><p>Cancel anytime.</p>
<footer>Copyright</footer></body></html>
"""


def test_parse_html_extracts_metadata_and_visible_text() -> None:
  page = parse_html("https://example.com/pricing", HTML)
  assert page.title == "Pricing & Plans"
  assert page.description == "Compare every plan."
  assert page.headings == ["Plans", "FAQ"]
  assert "The basic plan costs 10 per month." in page.text
  assert "track()" not in page.text
  assert "Copyright" not in page.text
  assert "Home" not in page.text


def test_parse_html_keeps_headings_with_inline_markup() -> None:
  page = parse_html("https://example.com", "<title> Acme &amp; Docs </title><header><h1>Acme</h1></header><h2><a href='#p'>Pricing</a></h2><h2>Plans <em>2024</em></h2><h3>   </h3>")
  assert page.title == "Acme & Docs"
  assert page.headings == ["Acme", "Pricing", "Plans 2024"]
  assert page.text == "Pricing Plans 2024"


@pytest.mark.parametrize("url", ["http://localhost/admin", "http://127.0.0.1:8080/", "http://10.0.0.5/", "ftp://93.184.216.34/file", "http:///nohost"])
def test_validate_public_url_rejects_private_and_non_http(url: str) -> None:
  assert validate_public_url(url) is False


def test_validate_public_url_accepts_public_address() -> None:
  assert validate_public_url(f"{PUBLIC}/page") is True


@pytest.mark.anyio
async def test_fetch_follows_public_redirects() -> None:
  def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/old":
      return httpx.Response(301, headers={"location": "/new"})
    return httpx.Response(200, text=HTML, headers={"content-type": "text/html"})

  async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
    page = await PageFetcher(client=client).fetch(f"{PUBLIC}/old")

  assert page.url == f"{PUBLIC}/old"
  assert page.title == "Pricing & Plans"


@pytest.mark.anyio
async def test_fetch_refuses_redirect_to_private_network() -> None:
  seen: list[str] = []

  def _handler(request: httpx.Request) -> httpx.Response:
    seen.append(str(request.url))
    return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data"})

  async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
    with pytest.raises(PageFetchError, match="non-public"):
      await PageFetcher(client=client).fetch(f"{PUBLIC}/start")

  assert seen == [f"{PUBLIC}/start"]


@pytest.mark.anyio
async def test_fetch_reports_http_errors() -> None:
  async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404))) as client:
    with pytest.raises(PageFetchError, match="HTTP 404"):
      await PageFetcher(client=client).fetch(f"{PUBLIC}/missing")


@pytest.mark.anyio
async def test_fetch_rejects_private_url_without_request() -> None:
  calls: list[httpx.Request] = []

  def _handler(request: httpx.Request) -> httpx.Response:
    calls.append(request)
    return httpx.Response(200, text=HTML)

  async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
    with pytest.raises(PageFetchError):
      await PageFetcher(client=client).fetch("http://localhost/")
  assert calls == []
