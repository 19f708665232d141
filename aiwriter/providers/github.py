"""GitHub contents API client for publishing Markdown files."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class GitHubError(Exception):
    """Transport-level failure talking to GitHub."""


@dataclass
class GitHubFile:
    path: str
    sha: str
    content: str | None = None


@dataclass
class PutResult:
    success: bool
    error: str | None = None
    sha: str | None = None
    status_code: int | None = None


class GitHubClient:
    """Client for the repository contents endpoint."""

    def __init__(
        self,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")
        self._client = httpx.AsyncClient(
            base_url=GITHUB_API_URL,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @staticmethod
    def _contents_url(repo: str, path: str) -> str:
        return f"/repos/{repo.strip('/')}/contents/{path.lstrip('/')}"

    async def get_file(self, repo: str, path: str) -> GitHubFile | None:
        """Fetch a file's sha and content. Returns None if it does not exist.

        Raises:
            GitHubError: On transport errors or non-404 failures.
        """
        try:
            response = await self._client.get(self._contents_url(repo, path))
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise GitHubError(f"GitHub GET {path} failed: {response.status_code} {_message(response)}")

        data = response.json()
        content = None
        if data.get("content"):
            content = base64.b64decode(data["content"]).decode("utf-8")
        return GitHubFile(path=data.get("path", path), sha=data["sha"], content=content)

    async def put_file(
        self,
        repo: str,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> PutResult:
        """Create or update a file. Failures are returned, not raised."""
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            body["sha"] = sha

        try:
            response = await self._client.put(self._contents_url(repo, path), json=body)
        except httpx.HTTPError as e:
            logger.warning(f"GitHub PUT {path} failed: {e}")
            return PutResult(success=False, error=str(e))

        if response.status_code >= 400:
            error = _message(response)
            logger.warning(f"GitHub PUT {path} rejected: {response.status_code} {error}")
            return PutResult(success=False, error=error, status_code=response.status_code)

        new_sha = (response.json().get("content") or {}).get("sha")
        return PutResult(success=True, sha=new_sha, status_code=response.status_code)

    async def publish_markdown(self, repo: str, path: str, content: str, message: str) -> PutResult:
        """Upload a file, passing the existing sha when overwriting."""
        try:
            existing = await self.get_file(repo, path)
        except GitHubError as e:
            return PutResult(success=False, error=str(e))
        return await self.put_file(repo, path, content, message, sha=existing.sha if existing else None)


def _message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except ValueError:
        return response.text
