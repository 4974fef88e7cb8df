"""
Azure DevOps commit and repository retrieval.

Azure DevOps has no diff endpoint, so a commit's diff is reconstructed as a
transcript: the changed paths are listed, and the current content of every
edited or added file is fetched and embedded. Only URL parsing and the commit
metadata request can fail the operation; the changes list and the per-file
content requests degrade to a note inside the transcript.
"""
import logging
from typing import Any, List, NamedTuple, Optional

import httpx

from .errors import (
    InvalidUrl,
    MissingCredential,
    NetworkError,
    NotFound,
    ProviderError,
    ProviderTimeout,
    Unauthorized,
)
from .models import Commit, CommitSource, Repository
from .transport import error_message, json_body, provider_client, send_get
from .url_parser import normalize_azure_org, parse_azure_url

logger = logging.getLogger(__name__)

API_VERSION = "7.1"
MAX_CONTENT_LENGTH = 30000
EMBED_LENGTH = 5000
CONTENT_CHANGE_TYPES = ("edit", "add")

CHANGES_HEADER = "## Changes Summary\n"
NO_CHANGES_NOTE = "No file changes found in this commit."
CHANGES_UNAVAILABLE_NOTE = "Could not fetch changes list from Azure API."
SKIPPED_NOTE = "(File too large or binary, content skipped)\n"
UNAVAILABLE_NOTE = "(Could not fetch file content)\n"
UNAUTHORIZED_MESSAGE = "Unauthorized. Please check your Personal Access Token (PAT)."
# Azure answers a rejected PAT with 203 and an HTML sign-in page
SIGN_IN_STATUS = 203
UNAUTHORIZED_STATUSES = (401, SIGN_IN_STATUS)


class Fetched(NamedTuple):
    """Outcome of a soft-fail request: a value, or the note to embed instead."""
    value: Any = None
    note: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.note is None


def pat_auth(token: str) -> httpx.BasicAuth:
    # Empty username, the PAT as password
    return httpx.BasicAuth("", token)


def require_token(token: Optional[str]) -> str:
    if not token or not token.strip():
        raise MissingCredential("Personal Access Token (PAT) is required for Azure DevOps")
    return token.strip()


# --- Repository listing ---

def sort_repositories(repositories: List[Repository]) -> List[Repository]:
    return sorted(repositories, key=lambda r: (r.name.casefold(), r.name))


async def list_repositories(
    org_input: str,
    token: Optional[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[Repository]:
    """
    Lists every repository the token can see in an organization, sorted by
    name. An organization without repositories yields an empty list.
    """
    token = require_token(token)
    base_url = normalize_azure_org(org_input)
    if base_url is None:
        raise InvalidUrl(f"Could not determine an Azure DevOps organization from '{org_input}'.")

    logger.info(f"Listing Azure DevOps repositories at {base_url}")
    async with provider_client(client) as http:
        response = await send_get(
            http,
            f"{base_url}/_apis/git/repositories",
            params={"api-version": API_VERSION},
            auth=pat_auth(token),
        )

    if response.status_code in UNAUTHORIZED_STATUSES:
        raise Unauthorized(UNAUTHORIZED_MESSAGE)
    if response.status_code == 404:
        raise NotFound(f"Organization not found at {base_url}")
    if not response.is_success:
        logger.warning(f"Azure DevOps returned {response.status_code} listing repositories at {base_url}")
        raise ProviderError("Failed to fetch repositories.")

    body = json_body(response, "Failed to fetch repositories.")
    repositories = sort_repositories([
        Repository(
            id=item["id"],
            name=item["name"],
            web_url=item.get("webUrl", ""),
            project=(item.get("project") or {}).get("name", ""),
        )
        for item in body.get("value") or []
    ])
    logger.info(f"Found {len(repositories)} repositories at {base_url}")
    return repositories


# --- Diff transcript ---

async def fetch_changes(http: httpx.AsyncClient, url: str, auth: httpx.BasicAuth) -> Fetched:
    try:
        response = await send_get(http, url, params={"api-version": API_VERSION}, auth=auth)
    except (NetworkError, ProviderTimeout) as e:
        logger.warning(f"Changes list request failed: {e}")
        return Fetched(note=CHANGES_UNAVAILABLE_NOTE)
    if not response.is_success:
        logger.warning(f"Changes list returned {response.status_code} for {url}")
        return Fetched(note=CHANGES_UNAVAILABLE_NOTE)
    try:
        body = response.json()
    except ValueError:
        logger.warning(f"Changes list for {url} was not valid JSON")
        return Fetched(note=CHANGES_UNAVAILABLE_NOTE)
    if not isinstance(body, dict) or not isinstance(body.get("changes") or [], list):
        logger.warning(f"Changes list for {url} had an unexpected shape")
        return Fetched(note=CHANGES_UNAVAILABLE_NOTE)
    return Fetched(value=body.get("changes") or [])


async def fetch_file_content(http: httpx.AsyncClient, url: str, auth: httpx.BasicAuth) -> Fetched:
    if not url:
        return Fetched(note=UNAVAILABLE_NOTE)
    try:
        response = await send_get(http, url, headers={"Accept": "text/plain"}, auth=auth)
    except (NetworkError, ProviderTimeout) as e:
        logger.warning(f"Content request failed for {url}: {e}")
        return Fetched(note=UNAVAILABLE_NOTE)
    if not response.is_success or response.status_code == SIGN_IN_STATUS:
        logger.warning(f"Content request returned {response.status_code} for {url}")
        return Fetched(note=UNAVAILABLE_NOTE)
    return Fetched(value=response.text)


def render_content(text: str) -> str:
    """Fenced excerpt of a text file, or a note for oversized and binary content."""
    if len(text) >= MAX_CONTENT_LENGTH or "\0" in text:
        return SKIPPED_NOTE
    excerpt = text[:EMBED_LENGTH]
    if len(text) > EMBED_LENGTH:
        excerpt += "\n... (truncated)"
    return f"```\n{excerpt}\n```\n"


async def build_transcript(http: httpx.AsyncClient, changes_url: str, auth: httpx.BasicAuth) -> str:
    transcript = CHANGES_HEADER
    changes = await fetch_changes(http, changes_url, auth)
    if not changes.ok:
        return transcript + changes.note

    # One file at a time, in the order Azure reports them
    for change in changes.value:
        item = change.get("item") or {}
        change_type = change.get("changeType", "")
        transcript += f"\nFile: {item.get('path')} [{change_type}]\n"

        if change_type in CONTENT_CHANGE_TYPES and not item.get("isFolder"):
            content = await fetch_file_content(http, item.get("url"), auth)
            transcript += render_content(content.value) if content.ok else content.note
        transcript += "---\n"

    if not changes.value:
        transcript += NO_CHANGES_NOTE
    return transcript


# --- Commit fetch ---

async def fetch_commit(
    repo_url: str,
    commit_hash: str,
    token: Optional[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Commit:
    ref = parse_azure_url(repo_url)
    if ref is None:
        raise InvalidUrl(
            "Invalid Azure DevOps repository URL. "
            "Format should be https://dev.azure.com/{org}/{project}/_git/{repo}"
        )
    token = require_token(token)
    auth = pat_auth(token)
    commit_url = f"{ref.api_base}/_apis/git/repositories/{ref.repo}/commits/{commit_hash}"

    logger.info(f"Fetching Azure DevOps commit {commit_hash} from {ref.org}/{ref.project}/{ref.repo}")
    async with provider_client(client) as http:
        response = await send_get(http, commit_url, params={"api-version": API_VERSION}, auth=auth)
        if response.status_code in UNAUTHORIZED_STATUSES:
            raise Unauthorized(UNAUTHORIZED_MESSAGE)
        if not response.is_success:
            logger.warning(f"Azure DevOps returned {response.status_code} for commit {commit_hash}")
            raise ProviderError(error_message(response, "Failed to fetch commit from Azure DevOps"))
        data = json_body(response, "Failed to fetch commit from Azure DevOps")
        if not data.get("commitId"):
            raise ProviderError("Azure DevOps returned a commit without an id.")

        diff = await build_transcript(http, f"{commit_url}/changes", auth)

    author = data.get("author") or {}
    commit = Commit(
        hash=data["commitId"][:7],
        message=data.get("comment", ""),
        diff=diff,
        author=author.get("name"),
        date=author.get("date"),
        source=CommitSource.AZURE,
    )
    logger.debug(f"Azure commit {commit.hash}: diff length {len(commit.diff)}")
    return commit
