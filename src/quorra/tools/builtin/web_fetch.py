"""Page fetch tool: download a URL and reduce it to readable text."""

import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from quorra.system.filesystem import Owner, VirtualFileSystem, to_absolute
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


class FetchPageTool(Tool):
    """Fetches a web page, optionally saving the extracted text to a file."""

    def __init__(self, config: dict, filesystem: Optional[VirtualFileSystem] = None) -> None:
        """
        Initialize fetch tool.

        Args:
            config: Tool configuration dictionary
            filesystem: File system used when save_to is given
        """
        self.config = config
        self.filesystem = filesystem
        self.timeout_seconds = config.get("timeout_seconds", 30)
        self.max_response_size_mb = config.get("max_response_size_mb", 5)
        self.max_chars = config.get("max_chars", 20000)
        self.max_redirects = config.get("max_redirects", 10)
        self.user_agent = config.get("user_agent", "Quorra/1.0")
        self.allowed_schemes = config.get("allowed_schemes", ["http", "https"])
        self.blocked_domains = config.get("blocked_domains", [])

        self.definition = ToolDefinition(
            name="fetch_page",
            description=(
                "Fetch a web page over HTTP/HTTPS and return its readable text. "
                "Pass save_to to also store the text as a file."
            ),
            parameters=[
                ToolParameter(
                    name="url",
                    type="string",
                    description="URL to fetch (must start with http:// or https://)",
                    required=True,
                ),
                ToolParameter(
                    name="save_to",
                    type="string",
                    description="Optional file path to store the extracted text",
                    required=False,
                ),
            ],
            timeout_seconds=self.timeout_seconds,
            category="web",
        )

    async def execute(self, context: ToolContext, url: str, save_to: Optional[str] = None) -> ToolResult:
        validation_error = self._validate_url(url)
        if validation_error:
            return ToolResult(success=False, error=validation_error)

        start_time = time.time()

        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            ) as client:
                response = await client.get(url)

            response_time_ms = int((time.time() - start_time) * 1000)

            content_length = response.headers.get("content-length")
            if content_length and int(content_length) / (1024 * 1024) > self.max_response_size_mb:
                return ToolResult(
                    success=False,
                    error=f"Response exceeds maximum allowed size ({self.max_response_size_mb}MB)",
                )

            if response.status_code >= 400:
                return ToolResult(
                    success=False,
                    error=f"HTTP {response.status_code}: {response.reason_phrase}",
                    metadata={"status_code": response.status_code, "url": str(response.url)},
                )

            content_type = response.headers.get("content-type", "")
            text = response.text
            if "html" in content_type.lower():
                text = self._extract_text(text)

            truncated = len(text) > self.max_chars
            if truncated:
                text = text[: self.max_chars]

            logger.info(
                f"Fetched {url} - Status: {response.status_code}, "
                f"Size: {len(text)} chars, Time: {response_time_ms}ms"
            )

            saved_path = None
            if save_to:
                if self.filesystem is None:
                    return ToolResult(success=False, error="Saving is not available for this tool")
                saved_path = to_absolute(save_to, context.cwd)
                await self.filesystem.write(saved_path, text, owner=Owner.QUORRA)

            data = text if saved_path is None else f"Saved {len(text)} characters to {saved_path}\n\n{text}"
            return ToolResult(
                success=True,
                data=data,
                metadata={
                    "url": str(response.url),
                    "status_code": response.status_code,
                    "response_time_ms": response_time_ms,
                    "truncated": truncated,
                    "saved_to": saved_path,
                },
            )

        except httpx.ConnectError as e:
            logger.error(f"Connection error fetching {url}: {e}")
            return ToolResult(success=False, error=f"Connection error: Could not connect to {urlparse(url).netloc}")

        except httpx.TimeoutException:
            return ToolResult(success=False, error=f"Request timed out after {self.timeout_seconds} seconds")

        except httpx.TooManyRedirects:
            return ToolResult(success=False, error=f"Too many redirects (max: {self.max_redirects})")

        except Exception as e:
            logger.error(f"Error fetching {url}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"Fetch error: {e}")

    def _validate_url(self, url: str) -> Optional[str]:
        """Return an error message for disallowed URLs, None if fine."""
        parsed = urlparse(url)

        if parsed.scheme not in self.allowed_schemes:
            return (
                f"URL scheme '{parsed.scheme}' not allowed. "
                f"Allowed schemes: {', '.join(self.allowed_schemes)}"
            )
        if not parsed.netloc:
            return "Invalid URL: missing domain"
        if parsed.hostname in self.blocked_domains:
            return f"Domain blocked by configuration: {parsed.hostname}"
        return None

    def _extract_text(self, html: str) -> str:
        """Strip markup and boilerplate from an HTML document."""
        soup = BeautifulSoup(html, "html.parser")

        for tag in soup(["script", "style", "nav", "footer", "header", "noscript"]):
            tag.decompose()

        title = soup.find("title")
        title_text = title.get_text(strip=True) if title else ""

        body = soup.find("body") or soup
        lines = [line.strip() for line in body.get_text(separator="\n").split("\n")]
        text = "\n".join(line for line in lines if line)

        if title_text:
            return f"Title: {title_text}\n\n{text}"
        return text
