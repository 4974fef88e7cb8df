import logging
import os
from typing import List, Optional

import httpx

from .errors import InvalidUrl, ProviderError, Unauthorized
from .models import Commit, CommitSource
from .transport import error_message, json_body, provider_client, send_get
from .url_parser import parse_github_url

logger = logging.getLogger(__name__)

# --- Configuration ---
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
BINARY_PLACEHOLDER = "[Binary or Large File]"


def build_diff(files: List[dict]) -> str:
    """Concatenates GitHub's per-file unified patches into one transcript."""
    blocks = []
    for f in files or []:
        header = f"File: {f.get('filename')} ({f.get('status')})"
        blocks.append(f"{header}\n{f.get('patch') or BINARY_PLACEHOLDER}")
    return "\n\n".join(blocks)


def github_commit(data: dict) -> Commit:
    meta = data.get("commit") or {}
    author = meta.get("author") or {}
    return Commit(
        hash=data["sha"][:7],
        message=meta.get("message", ""),
        diff=build_diff(data.get("files")),
        author=author.get("name"),
        date=author.get("date"),
        source=CommitSource.GITHUB,
    )


async def fetch_commit(
    repo_url: str,
    commit_hash: str,
    token: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Commit:
    """
    Retrieves one commit with its file patches from the GitHub REST API.
    A single attempt is made; failures are raised immediately.
    """
    ref = parse_github_url(repo_url)
    if ref is None:
        raise InvalidUrl("Invalid GitHub repository URL. Format should be https://github.com/{owner}/{repo}")

    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"token {token}"

    url = f"{GITHUB_API_URL}/repos/{ref.owner}/{ref.repo}/commits/{commit_hash}"
    logger.info(f"Fetching GitHub commit {commit_hash} from {ref.owner}/{ref.repo} (authenticated: {bool(token)})")

    async with provider_client(client) as http:
        response = await send_get(http, url, headers=headers)

    if response.status_code == 401:
        raise Unauthorized(error_message(response, "Unauthorized. Please check your GitHub token."))
    if not response.is_success:
        logger.warning(f"GitHub returned {response.status_code} for {url}")
        raise ProviderError(error_message(response, "Failed to fetch commit from GitHub"))

    data = json_body(response, "GitHub returned an unreadable commit response.")
    if not data.get("sha"):
        raise ProviderError("GitHub returned a commit without a SHA.")
    commit = github_commit(data)
    logger.debug(f"GitHub commit {commit.hash}: {len(data.get('files') or [])} files, diff length {len(commit.diff)}")
    return commit
