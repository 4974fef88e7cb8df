"""
Recognizes GitHub and Azure DevOps repository URLs.

Nothing here performs I/O or raises on malformed input: an unrecognized
URL is reported as ``None`` and the provider clients decide how to fail.
"""
import re
from typing import NamedTuple, Optional
from urllib.parse import urlparse

AZURE_HOST = "dev.azure.com"
VISUALSTUDIO_SUFFIX = ".visualstudio.com"

_GITHUB_PATTERN = re.compile(r"github\.com/([^/?#]+)/([^/?#]+)", re.IGNORECASE)
_AZURE_ORG_PATTERN = re.compile(r"dev\.azure\.com/([^/?#]+)", re.IGNORECASE)
_VISUALSTUDIO_ORG_PATTERN = re.compile(r"([^./:]+)\.visualstudio\.com", re.IGNORECASE)


class GitHubRepoRef(NamedTuple):
    owner: str
    repo: str


class AzureRepoRef(NamedTuple):
    org: str
    project: str
    repo: str
    host: str

    @property
    def api_base(self) -> str:
        """Project-scoped REST root, keeping the host form the user supplied."""
        if self.host == AZURE_HOST:
            return f"https://{AZURE_HOST}/{self.org}/{self.project}"
        return f"https://{self.org}{VISUALSTUDIO_SUFFIX}/{self.project}"


def parse_github_url(url: str) -> Optional[GitHubRepoRef]:
    if not url:
        return None
    match = _GITHUB_PATTERN.search(url.strip())
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-len(".git")]
    if not owner or not repo:
        return None
    return GitHubRepoRef(owner=owner, repo=repo)


def _split_url(url: str):
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname or ""
    except ValueError:
        return "", []
    return hostname, [part for part in parsed.path.split("/") if part]


def parse_azure_url(url: str) -> Optional[AzureRepoRef]:
    """
    Decomposes either of the two Azure DevOps repository URL shapes:

        https://dev.azure.com/{org}/{project}/_git/{repo}
        https://{org}.visualstudio.com/{project}/_git/{repo}
    """
    if not url:
        return None
    hostname, parts = _split_url(url)

    if hostname == AZURE_HOST:
        org = parts[0] if parts else ""
        project = parts[1] if len(parts) > 1 else ""
    elif hostname.endswith(VISUALSTUDIO_SUFFIX):
        org = hostname.split(".")[0]
        project = parts[0] if parts else ""
    else:
        return None

    repo = ""
    if "_git" in parts:
        git_index = parts.index("_git")
        if git_index + 1 < len(parts):
            repo = parts[git_index + 1]

    # _git must follow the project segment, not stand in for it
    if not org or not project or not repo or project == "_git":
        return None
    return AzureRepoRef(org=org, project=project, repo=repo, host=hostname)


def normalize_azure_org(org_input: str) -> Optional[str]:
    """
    Turns an organization name, a dev.azure.com URL or a visualstudio.com URL
    into the organization's REST base URL. Bare names use dev.azure.com.
    """
    clean = (org_input or "").strip().rstrip("/")
    if not clean:
        return None

    if "dev.azure.com" in clean.lower():
        match = _AZURE_ORG_PATTERN.search(clean)
        if not match:
            return None
        return f"https://{AZURE_HOST}/{match.group(1)}"

    if "visualstudio.com" in clean.lower():
        match = _VISUALSTUDIO_ORG_PATTERN.search(clean)
        if not match:
            return None
        return f"https://{match.group(1)}{VISUALSTUDIO_SUFFIX}"

    if "/" in clean or " " in clean:
        return None
    return f"https://{AZURE_HOST}/{clean}"
