import os
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, Request, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from . import azure_client, github_client
from .commit_store import CommitStore, manual_commit
from .errors import Commit2DocError
from .models import (
    AzureFetchInput,
    AzureRepositoriesInput,
    Commit,
    CommitList,
    DocumentationOutput,
    GenerationConfig,
    GitHubFetchInput,
    ManualCommitInput,
    RepositoryList,
)
from .llm_client import generate_documentation, MODEL_NAME

API_SECRET_KEY = os.getenv("API_SECRET_KEY")
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT", "10/minute")
DOWNLOAD_FILENAME = "DOCUMENTATION.md"

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# --- Basic Security Check ---
if not API_SECRET_KEY:
    logger.error("FATAL: API_SECRET_KEY environment variable not set.")
    raise EnvironmentError("API_SECRET_KEY must be set")

# --- Authentication Dependency ---
bearer_scheme = HTTPBearer()

async def verify_token(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Dependency to verify the provided bearer token."""
    if not API_SECRET_KEY:
         raise HTTPException(
             status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
             detail="Server configuration error: API token not set.",
         )

    if not credentials or credentials.scheme != "Bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme. Use Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if credentials.credentials != API_SECRET_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return True

# --- Session State ---
def get_commit_store(request: Request) -> CommitStore:
    """Dependency handing endpoints the commit store of this application instance."""
    return request.app.state.commit_store

async def provider_error_handler(request: Request, exc: Commit2DocError):
    """Renders provider and URL failures as inline error text for the caller."""
    logger.warning(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )

# Limiter based on the client's remote IP address
limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_RATE_LIMIT])

# --- FastAPI App Initialization ---
app = FastAPI(
    title="Commit2Doc API",
    description=f"Collects commits from GitHub, Azure DevOps or pasted diffs and generates Markdown documentation ({MODEL_NAME}).",
    version="1.0.0",
)

# --- Apply Middleware & Exception Handlers ---
app.state.limiter = limiter
app.state.commit_store = CommitStore()
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(Commit2DocError, provider_error_handler)
app.add_middleware(SlowAPIMiddleware)

protected = [Depends(verify_token)]


# --- API Endpoints ---
@app.get("/", tags=["Health Check"])
async def read_root():
    """Simple health check endpoint."""
    return {"status": "ok", "model": MODEL_NAME}

@app.get("/commits", response_model=CommitList, dependencies=protected, tags=["Commits"])
async def list_commits(store: CommitStore = Depends(get_commit_store)):
    return CommitList(commits=list(store.commits))

@app.post(
    "/commits/manual",
    response_model=Commit,
    status_code=status.HTTP_201_CREATED,
    dependencies=protected,
    tags=["Commits"]
)
async def add_manual_commit(payload: ManualCommitInput, store: CommitStore = Depends(get_commit_store)):
    """Adds a pasted diff to the session."""
    if not payload.diff or payload.diff.isspace():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="diff cannot be empty."
        )
    logger.info(f"Received manual diff. Diff length: {len(payload.diff)}")
    return store.add(manual_commit(payload.diff, payload.message))

@app.post(
    "/commits/github",
    response_model=Commit,
    status_code=status.HTTP_201_CREATED,
    dependencies=protected,
    tags=["Commits"]
)
async def add_github_commit(payload: GitHubFetchInput, store: CommitStore = Depends(get_commit_store)):
    """
    Fetches one commit and its patches from GitHub and adds it to the session.
    The token is optional for public repositories.
    """
    _require_fetch_fields(payload.repo_url, payload.commit_hash)
    commit = await github_client.fetch_commit(payload.repo_url, payload.commit_hash.strip(), payload.token)
    return store.add(commit)

@app.post(
    "/commits/azure",
    response_model=Commit,
    status_code=status.HTTP_201_CREATED,
    dependencies=protected,
    tags=["Commits"]
)
async def add_azure_commit(payload: AzureFetchInput, store: CommitStore = Depends(get_commit_store)):
    """
    Fetches one commit from Azure DevOps, reconstructing its changes from the
    changed-file list and file contents, and adds it to the session.
    """
    _require_fetch_fields(payload.repo_url, payload.commit_hash)
    commit = await azure_client.fetch_commit(payload.repo_url, payload.commit_hash.strip(), payload.token)
    return store.add(commit)

@app.delete("/commits/{commit_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=protected, tags=["Commits"])
async def remove_commit(commit_id: str, store: CommitStore = Depends(get_commit_store)):
    # Unknown ids are a no-op
    store.remove(commit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@app.delete("/commits", status_code=status.HTTP_204_NO_CONTENT, dependencies=protected, tags=["Commits"])
async def clear_commits(store: CommitStore = Depends(get_commit_store)):
    store.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@app.post("/azure/repositories", response_model=RepositoryList, dependencies=protected, tags=["Azure DevOps"])
async def list_azure_repositories(payload: AzureRepositoriesInput):
    """Lists an organization's repositories, sorted by name, to help build a repository URL."""
    repositories = await azure_client.list_repositories(payload.organization, payload.token)
    return RepositoryList(repositories=repositories)

@app.post("/documentation", response_model=DocumentationOutput, dependencies=protected, tags=["Documentation"])
async def generate_documentation_endpoint(config: GenerationConfig, store: CommitStore = Depends(get_commit_store)):
    """
    Generates Markdown documentation from every commit in the session.
    Generation failures come back as a Markdown document describing the error.
    """
    markdown = await _generate(config, store)
    return DocumentationOutput(markdown=markdown, generated_at=datetime.now(timezone.utc).isoformat())

@app.post("/documentation/download", response_class=PlainTextResponse, dependencies=protected, tags=["Documentation"])
async def download_documentation(config: GenerationConfig, store: CommitStore = Depends(get_commit_store)):
    markdown = await _generate(config, store)
    return PlainTextResponse(
        markdown,
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{DOWNLOAD_FILENAME}"'},
    )


def _require_fetch_fields(repo_url: str, commit_hash: str):
    if not repo_url or not repo_url.strip() or not commit_hash or not commit_hash.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Repo URL and Commit Hash are required"
        )

async def _generate(config: GenerationConfig, store: CommitStore) -> str:
    commits = store.commits
    if not commits:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Add at least one commit before generating documentation."
        )
    logger.info(
        f"Received request for documentation generation. Commits: {len(commits)}, "
        f"Previous document: {'yes' if config.previous_doc_content else 'no'}"
    )
    return await generate_documentation(commits, config)
