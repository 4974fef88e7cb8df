import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CommitSource(str, Enum):
    GITHUB = "GITHUB"
    AZURE = "AZURE"
    MANUAL = "MANUAL"


class Commit(BaseModel):
    """Normalized record of one code change, regardless of where it came from."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Process-local identifier.")
    hash: str = Field(..., description="Short commit hash, or 'manual' for pasted diffs.")
    message: str
    diff: str = Field(..., description="File-level change transcript used as model input.")
    author: Optional[str] = None
    date: Optional[str] = None
    source: CommitSource


class Repository(BaseModel):
    """Azure DevOps repository entry, used to help the user build a repository URL."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    web_url: str
    project: str


class GenerationConfig(BaseModel):
    extra_info: str = ""
    setup_instructions: str = ""
    previous_doc_content: Optional[str] = Field(None, description="Existing Markdown document to update.")


# --- Request bodies ---

class ManualCommitInput(BaseModel):
    diff: str = Field(..., description="Pasted git diff or code changes.")
    message: Optional[str] = Field(None, description="Optional commit message.")


class GitHubFetchInput(BaseModel):
    repo_url: str = Field(..., description="https://github.com/{owner}/{repo}")
    commit_hash: str
    # Public repositories can be read anonymously
    token: Optional[str] = None


class AzureFetchInput(BaseModel):
    repo_url: str = Field(..., description="https://dev.azure.com/{org}/{project}/_git/{repo}")
    commit_hash: str
    token: Optional[str] = Field(None, description="Azure DevOps personal access token.")


class AzureRepositoriesInput(BaseModel):
    organization: str = Field(..., description="Organization name or URL.")
    token: Optional[str] = None


# --- Response bodies ---

class CommitList(BaseModel):
    commits: List[Commit]


class RepositoryList(BaseModel):
    repositories: List[Repository]


class DocumentationOutput(BaseModel):
    markdown: str
    generated_at: str
