"""Diff source adapters.

The set of sources is closed: ``DiffSourceInput`` is a union of the four
source records below and ``adapt`` dispatches on the record type. Each
adapter yields a uniform ``DiffInput`` for the engine.
"""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlsplit

import httpx

from flowguard.verify.diff_analyzer import DiffAnalyzer
from flowguard.verify.errors import AdapterError
from flowguard.verify.models import DiffFormat, DiffInput, DiffMetadata

if TYPE_CHECKING:
    from flowguard.config.settings import Settings

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_PR_URL = re.compile(r"github\.com/([^/]+)/([^/]+)/pulls?/(\d+)")
GITLAB_MR_URL = re.compile(
    r"^(https?://[^/]+)/(.+?)(?:/-)?/merge_requests/(\d+)"
)
GITHUB_PAGE_SIZE = 100


@dataclass(frozen=True)
class GitSource:
    """Literal git diff text, optionally a ``git format-patch`` email."""

    content: str


@dataclass(frozen=True)
class GitHubSource:
    """A GitHub pull request URL."""

    url: str


@dataclass(frozen=True)
class GitLabSource:
    """A GitLab merge request URL."""

    url: str


@dataclass(frozen=True)
class ManualSource:
    """Pasted unified diff text."""

    content: str


DiffSourceInput = GitSource | GitHubSource | GitLabSource | ManualSource


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int


@dataclass(frozen=True)
class MergeRequestRef:
    base_url: str
    project_id: str
    number: int


def parse_github_url(url: str) -> PullRequestRef:
    """Parse owner/repo/number from a ``/pull/<n>`` or ``/pulls/<n>`` URL.

    Raises:
        AdapterError: If the URL is not a GitHub pull request URL.
    """
    match = GITHUB_PR_URL.search(url)
    if not match:
        raise AdapterError(f"Invalid GitHub PR URL: {url}")
    return PullRequestRef(match.group(1), match.group(2), int(match.group(3)))


def parse_gitlab_url(url: str) -> MergeRequestRef:
    """Parse the instance, project path and MR number from a merge request URL.

    Raises:
        AdapterError: If the URL is not a GitLab merge request URL.
    """
    match = GITLAB_MR_URL.match(url.strip())
    if not match:
        raise AdapterError(f"Invalid GitLab MR URL: {url}")
    return MergeRequestRef(match.group(1), match.group(2), int(match.group(3)))


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _check_response(response: httpx.Response, service: str) -> None:
    if response.is_success:
        return
    raise AdapterError(
        f"{service} API error: {response.status_code} {response.reason_phrase}",
        status=response.status_code,
    )


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Use a caller-supplied client, or own a fresh one for the call."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def _git_file_section(
    old_path: str, new_path: str, status: str, patch: str
) -> str:
    """Render one file as a ``diff --git`` section."""
    lines = [f"diff --git a/{old_path} b/{new_path}"]
    if status == "added":
        lines.append("new file mode 100644")
    elif status == "deleted":
        lines.append("deleted file mode 100644")
    elif status == "renamed":
        lines.append(f"rename from {old_path}")
        lines.append(f"rename to {new_path}")

    if patch:
        minus = "/dev/null" if status == "added" else f"a/{old_path}"
        plus = "/dev/null" if status == "deleted" else f"b/{new_path}"
        lines.append(f"--- {minus}")
        lines.append(f"+++ {plus}")
        lines.append(patch.rstrip("\n"))
    return "\n".join(lines)


def github_files_to_git(files: list[dict[str, Any]]) -> str:
    """Concatenate GitHub PR file objects into git-style diff text."""
    status_map = {"removed": "deleted"}
    sections = []
    for item in files:
        new_path = str(item.get("filename", ""))
        status = status_map.get(str(item.get("status")), str(item.get("status")))
        old_path = str(item.get("previous_filename") or new_path)
        sections.append(
            _git_file_section(old_path, new_path, status, str(item.get("patch") or ""))
        )
    return "\n".join(sections) + ("\n" if sections else "")


def gitlab_changes_to_git(changes: list[dict[str, Any]]) -> str:
    """Concatenate GitLab MR change objects into git-style diff text."""
    sections = []
    for item in changes:
        new_path = str(item.get("new_path") or item.get("old_path") or "")
        old_path = str(item.get("old_path") or new_path)
        if item.get("new_file"):
            status = "added"
        elif item.get("deleted_file"):
            status = "deleted"
        elif item.get("renamed_file"):
            status = "renamed"
        else:
            status = "modified"
        sections.append(
            _git_file_section(old_path, new_path, status, str(item.get("diff") or ""))
        )
    return "\n".join(sections) + ("\n" if sections else "")


def adapt_git(content: str) -> DiffInput:
    """Pass git diff text through, extracting patch-email metadata."""
    metadata = DiffAnalyzer().extract_metadata(content)
    return DiffInput(content=content, format=DiffFormat.GIT, metadata=metadata)


def adapt_manual(content: str) -> DiffInput:
    """Wrap pasted text as a unified diff."""
    return DiffInput(content=content, format=DiffFormat.UNIFIED)


async def fetch_github(
    url: str,
    *,
    token: str | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
) -> DiffInput:
    """Fetch a GitHub pull request's files and metadata.

    Raises:
        AdapterError: If the URL is invalid or the file list cannot be fetched.
            A failed metadata fetch is recorded on ``adapter_errors`` instead.
    """
    ref = parse_github_url(url)
    base = f"{GITHUB_API_URL}/repos/{ref.owner}/{ref.repo}/pulls/{ref.number}"
    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"token {token}"

    async with _client_scope(client, timeout) as http:
        files: list[dict[str, Any]] = []
        page = 1
        while True:
            try:
                response = await http.get(
                    f"{base}/files",
                    headers=headers,
                    params={"per_page": GITHUB_PAGE_SIZE, "page": page},
                    timeout=timeout,
                )
            except httpx.HTTPError as e:
                raise AdapterError(f"Failed to fetch GitHub PR files: {e}") from e
            _check_response(response, "GitHub")
            try:
                batch = response.json()
            except ValueError as e:
                raise AdapterError(f"Invalid GitHub files payload: {e}") from e
            if not isinstance(batch, list):
                raise AdapterError("Unexpected GitHub files payload")
            files.extend(batch)
            if len(batch) < GITHUB_PAGE_SIZE:
                break
            page += 1

        logger.info("Fetched %d files for %s", len(files), url)
        metadata = DiffMetadata(pr_url=url)
        adapter_errors: list[str] = []
        try:
            response = await http.get(base, headers=headers, timeout=timeout)
            _check_response(response, "GitHub")
            pr = response.json()
            if not isinstance(pr, dict):
                raise ValueError("Unexpected GitHub PR payload")
            head = pr.get("head") or {}
            metadata.commit_hash = head.get("sha")
            metadata.branch = head.get("ref")
            metadata.author = (pr.get("user") or {}).get("login")
            metadata.message = pr.get("title")
            metadata.timestamp = _parse_timestamp(pr.get("created_at"))
        except (AdapterError, httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch GitHub PR metadata for %s: %s", url, e)
            adapter_errors.append(f"Failed to fetch GitHub PR metadata: {e}")

    return DiffInput(
        content=github_files_to_git(files),
        format=DiffFormat.GIT,
        metadata=metadata,
        adapter_errors=adapter_errors,
    )


async def fetch_gitlab(
    url: str,
    *,
    token: str | None = None,
    timeout: float = 30.0,
    client: httpx.AsyncClient | None = None,
) -> DiffInput:
    """Fetch a GitLab merge request's changes and metadata.

    The API is addressed on the same instance as the URL, so self-hosted
    GitLab works without extra configuration.

    Raises:
        AdapterError: If the URL is invalid or the changes cannot be fetched.
            A failed metadata fetch is recorded on ``adapter_errors`` instead.
    """
    ref = parse_gitlab_url(url)
    base = (
        f"{ref.base_url}/api/v4/projects/{quote(ref.project_id, safe='')}"
        f"/merge_requests/{ref.number}"
    )
    headers = {"Accept": "application/json"}
    if token:
        headers["Private-Token"] = token

    async with _client_scope(client, timeout) as http:
        try:
            response = await http.get(
                f"{base}/changes", headers=headers, timeout=timeout
            )
        except httpx.HTTPError as e:
            raise AdapterError(f"Failed to fetch GitLab MR changes: {e}") from e
        _check_response(response, "GitLab")
        try:
            data = response.json()
        except ValueError as e:
            raise AdapterError(f"Invalid GitLab changes payload: {e}") from e
        changes = data.get("changes") if isinstance(data, dict) else None
        if not isinstance(changes, list):
            raise AdapterError("Unexpected GitLab changes payload")

        logger.info("Fetched %d changes for %s", len(changes), url)
        metadata = DiffMetadata(pr_url=url)
        adapter_errors: list[str] = []
        try:
            response = await http.get(base, headers=headers, timeout=timeout)
            _check_response(response, "GitLab")
            mr = response.json()
            if not isinstance(mr, dict):
                raise ValueError("Unexpected GitLab MR payload")
            metadata.commit_hash = mr.get("sha")
            metadata.branch = mr.get("source_branch")
            metadata.author = (mr.get("author") or {}).get("username")
            metadata.message = mr.get("title")
            metadata.timestamp = _parse_timestamp(mr.get("created_at"))
        except (AdapterError, httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch GitLab MR metadata for %s: %s", url, e)
            adapter_errors.append(f"Failed to fetch GitLab MR metadata: {e}")

    return DiffInput(
        content=gitlab_changes_to_git(changes),
        format=DiffFormat.GIT,
        metadata=metadata,
        adapter_errors=adapter_errors,
    )


async def adapt(
    source: DiffSourceInput,
    *,
    settings: "Settings | None" = None,
    client: httpx.AsyncClient | None = None,
) -> DiffInput:
    """Normalize any diff source into a DiffInput.

    Raises:
        AdapterError: If a remote source cannot be fetched.
    """
    if isinstance(source, GitSource):
        return adapt_git(source.content)
    if isinstance(source, ManualSource):
        return adapt_manual(source.content)

    if settings is None:
        from flowguard.config.settings import settings as default_settings

        settings = default_settings

    if isinstance(source, GitHubSource):
        return await fetch_github(
            source.url,
            token=settings.github_token,
            timeout=settings.fetch_timeout_seconds,
            client=client,
        )
    if isinstance(source, GitLabSource):
        return await fetch_gitlab(
            source.url,
            token=settings.gitlab_token,
            timeout=settings.fetch_timeout_seconds,
            client=client,
        )
    raise TypeError(f"Unsupported diff source: {type(source).__name__}")


def detect_source(text: str, gitlab_base_url: str | None = None) -> DiffSourceInput:
    """Classify raw user input as a PR/MR URL or literal diff text."""
    stripped = text.strip()
    if "\n" not in stripped and stripped.startswith(("http://", "https://")):
        host = urlsplit(stripped).netloc.lower()
        if GITHUB_PR_URL.search(stripped):
            return GitHubSource(stripped)
        gitlab_hosts = {"gitlab.com"}
        if gitlab_base_url:
            gitlab_hosts.add(urlsplit(gitlab_base_url).netloc.lower())
        if "/merge_requests/" in stripped and (
            host in gitlab_hosts or host.startswith("gitlab.")
        ):
            return GitLabSource(stripped)

    if DiffAnalyzer().detect_format(stripped) == DiffFormat.GIT:
        return GitSource(text)
    return ManualSource(text)
