import base64

import httpx
import pytest

from commit2doc import azure_client
from commit2doc.errors import InvalidUrl, MissingCredential, NotFound, ProviderError, Unauthorized
from commit2doc.models import CommitSource

# --- Test Data ---
TOKEN = "azure-pat"
EXPECTED_AUTH = "Basic " + base64.b64encode(f":{TOKEN}".encode()).decode()
REPO_URL = "https://dev.azure.com/contoso/Fabrikam/_git/web-app"
COMMIT_ID = "be67f8871a4d2c75f13a51c1d3c30ac0d74d4ef4"
API_ROOT = "https://dev.azure.com/contoso/Fabrikam/_apis/git/repositories/web-app"
COMMIT_PATH = f"/contoso/Fabrikam/_apis/git/repositories/web-app/commits/{COMMIT_ID}"
CHANGES_PATH = f"{COMMIT_PATH}/changes"

COMMIT_RESPONSE = {
    "commitId": COMMIT_ID,
    "comment": "Add login page",
    "author": {"name": "Norman Paulk", "date": "2024-03-01T10:00:00Z"},
}


def change(path, change_type, is_folder=False, url=None):
    return {
        "item": {"path": path, "url": url or f"{API_ROOT}/items{path}", "isFolder": is_folder},
        "changeType": change_type,
    }


def azure_handler(changes=None, changes_status=200, contents=None, seen=None):
    """
    Routes commit, changes and item requests. contents maps an item path to
    either a body string or an int status code.
    """
    contents = contents or {}

    def handler(request):
        if seen is not None:
            seen.append(request)
        path = request.url.path
        if path == COMMIT_PATH:
            return httpx.Response(200, json=COMMIT_RESPONSE)
        if path == CHANGES_PATH:
            if changes_status != 200:
                return httpx.Response(changes_status, json={"message": "boom"})
            return httpx.Response(200, json={"changes": changes or []})
        if "/items" in path:
            item_path = path.split("/items", 1)[1]
            body = contents.get(item_path)
            if isinstance(body, int):
                return httpx.Response(body)
            if isinstance(body, Exception):
                raise body
            return httpx.Response(200, text=body or "")
        return httpx.Response(404)

    return handler


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# --- fetch_commit ---

@pytest.mark.asyncio
async def test_fetch_commit_success():
    seen = []
    handler = azure_handler(
        changes=[
            change("/src/app.py", "edit"),
            change("/docs", "add", is_folder=True),
            change("/old.txt", "delete"),
        ],
        contents={"/src/app.py": "print('hello')"},
        seen=seen,
    )

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert commit.hash == "be67f88"
    assert commit.message == "Add login page"
    assert commit.author == "Norman Paulk"
    assert commit.date == "2024-03-01T10:00:00Z"
    assert commit.source == CommitSource.AZURE
    assert commit.diff == (
        "## Changes Summary\n"
        "\nFile: /src/app.py [edit]\n"
        "```\nprint('hello')\n```\n"
        "---\n"
        "\nFile: /docs [add]\n"
        "---\n"
        "\nFile: /old.txt [delete]\n"
        "---\n"
    )

    # Commit, changes, then one content fetch: folders and deletes are not fetched
    assert [r.url.path for r in seen] == [COMMIT_PATH, CHANGES_PATH, "/contoso/Fabrikam/_apis/git/repositories/web-app/items/src/app.py"]
    assert all(r.headers["Authorization"] == EXPECTED_AUTH for r in seen)
    assert seen[0].url.params["api-version"] == "7.1"


@pytest.mark.asyncio
async def test_fetch_commit_visualstudio_host_keeps_host():
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path.endswith("/changes"):
            return httpx.Response(200, json={"changes": []})
        return httpx.Response(200, json=COMMIT_RESPONSE)

    async with make_client(handler) as client:
        await azure_client.fetch_commit("https://contoso.visualstudio.com/Fabrikam/_git/web-app", COMMIT_ID, TOKEN, client=client)

    assert seen[0].url.host == "contoso.visualstudio.com"
    assert seen[0].url.path == f"/Fabrikam/_apis/git/repositories/web-app/commits/{COMMIT_ID}"


@pytest.mark.asyncio
async def test_fetch_commit_changes_failure_still_returns_commit():
    handler = azure_handler(changes_status=500)

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert commit.message == "Add login page"
    assert commit.hash == "be67f88"
    assert commit.diff == "## Changes Summary\nCould not fetch changes list from Azure API."


@pytest.mark.asyncio
async def test_fetch_commit_no_changes():
    async with make_client(azure_handler(changes=[])) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert commit.diff == "## Changes Summary\nNo file changes found in this commit."


@pytest.mark.asyncio
async def test_fetch_commit_large_file_is_skipped():
    handler = azure_handler(changes=[change("/big.txt", "edit")], contents={"/big.txt": "a" * 40000})

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert "(File too large or binary, content skipped)" in commit.diff
    assert "(truncated)" not in commit.diff
    assert "aaaa" not in commit.diff


@pytest.mark.asyncio
async def test_fetch_commit_small_file_is_embedded_whole():
    text = "b" * 4000
    handler = azure_handler(changes=[change("/small.txt", "add")], contents={"/small.txt": text})

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert f"```\n{text}\n```\n" in commit.diff
    assert "(truncated)" not in commit.diff


@pytest.mark.asyncio
async def test_fetch_commit_medium_file_is_truncated():
    text = "c" * 5000 + "d" * 1000
    handler = azure_handler(changes=[change("/medium.txt", "edit")], contents={"/medium.txt": text})

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert f"```\n{'c' * 5000}\n... (truncated)\n```\n" in commit.diff
    assert "d" * 10 not in commit.diff


@pytest.mark.asyncio
async def test_fetch_commit_binary_file_is_skipped():
    handler = azure_handler(changes=[change("/logo.png", "add")], contents={"/logo.png": "PNG\0\0data"})

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert "File: /logo.png [add]\n(File too large or binary, content skipped)\n---\n" in commit.diff


@pytest.mark.asyncio
async def test_fetch_commit_content_failures_degrade_per_file():
    """A failing file leaves a note and the remaining files are still processed."""
    handler = azure_handler(
        changes=[
            change("/missing.py", "edit"),
            change("/offline.py", "edit"),
            change("/ok.py", "edit"),
        ],
        contents={
            "/missing.py": 404,
            "/offline.py": httpx.ConnectError("connection reset"),
            "/ok.py": "x = 1",
        },
    )

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert "File: /missing.py [edit]\n(Could not fetch file content)\n---\n" in commit.diff
    assert "File: /offline.py [edit]\n(Could not fetch file content)\n---\n" in commit.diff
    assert "File: /ok.py [edit]\n```\nx = 1\n```\n---\n" in commit.diff


@pytest.mark.asyncio
async def test_fetch_commit_unauthorized():
    async with make_client(lambda request: httpx.Response(401)) as client:
        with pytest.raises(Unauthorized):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)


@pytest.mark.asyncio
async def test_fetch_commit_surfaces_provider_message():
    handler = lambda request: httpx.Response(404, json={"message": "TF401175: The version descriptor could not be resolved"})

    async with make_client(handler) as client:
        with pytest.raises(ProviderError, match="TF401175"):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)


@pytest.mark.asyncio
async def test_fetch_commit_validates_before_requesting():
    seen = []
    async with make_client(azure_handler(seen=seen)) as client:
        with pytest.raises(InvalidUrl):
            await azure_client.fetch_commit("https://dev.azure.com/contoso/Fabrikam/web-app", COMMIT_ID, TOKEN, client=client)
        with pytest.raises(MissingCredential):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, "", client=client)

    assert seen == []


# --- list_repositories ---

@pytest.mark.asyncio
async def test_list_repositories_sorted_by_name():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"value": [
            {"id": "1", "name": "zeta", "webUrl": "https://dev.azure.com/contoso/P/_git/zeta", "project": {"name": "P"}},
            {"id": "2", "name": "alpha", "webUrl": "https://dev.azure.com/contoso/P/_git/alpha", "project": {"name": "P"}},
            {"id": "3", "name": "Beta", "webUrl": "https://dev.azure.com/contoso/Q/_git/Beta", "project": {"name": "Q"}},
        ]})

    async with make_client(handler) as client:
        repositories = await azure_client.list_repositories("contoso", TOKEN, client=client)

    assert [r.name for r in repositories] == ["alpha", "Beta", "zeta"]
    assert repositories[1].project == "Q"
    assert repositories[1].web_url == "https://dev.azure.com/contoso/Q/_git/Beta"
    assert str(seen[0].url) == "https://dev.azure.com/contoso/_apis/git/repositories?api-version=7.1"
    assert seen[0].headers["Authorization"] == EXPECTED_AUTH


@pytest.mark.asyncio
async def test_list_repositories_empty_is_not_an_error():
    async with make_client(lambda request: httpx.Response(200, json={"value": []})) as client:
        assert await azure_client.list_repositories("contoso", TOKEN, client=client) == []


@pytest.mark.asyncio
async def test_list_repositories_visualstudio_org_url():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"value": []})

    async with make_client(handler) as client:
        await azure_client.list_repositories("https://contoso.visualstudio.com/", TOKEN, client=client)

    assert seen[0].url.host == "contoso.visualstudio.com"
    assert seen[0].url.path == "/_apis/git/repositories"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, error", [
    (401, Unauthorized),
    (404, NotFound),
    (500, ProviderError),
])
async def test_list_repositories_error_statuses(status_code, error):
    async with make_client(lambda request: httpx.Response(status_code)) as client:
        with pytest.raises(error):
            await azure_client.list_repositories("contoso", TOKEN, client=client)


@pytest.mark.asyncio
async def test_list_repositories_not_found_names_base_url():
    async with make_client(lambda request: httpx.Response(404)) as client:
        with pytest.raises(NotFound, match="https://dev.azure.com/contoso"):
            await azure_client.list_repositories("contoso", TOKEN, client=client)


@pytest.mark.asyncio
async def test_list_repositories_requires_token():
    with pytest.raises(MissingCredential):
        await azure_client.list_repositories("contoso", None)


# --- Transcript helpers ---

def test_render_content_boundaries():
    assert azure_client.render_content("a" * 29999).endswith("... (truncated)\n```\n")
    assert azure_client.render_content("a" * 30000) == azure_client.SKIPPED_NOTE
    assert azure_client.render_content("a" * 5000) == f"```\n{'a' * 5000}\n```\n"


# --- Unreadable responses ---

SIGN_IN_PAGE = "<html><body>Sign in to your account</body></html>"


@pytest.mark.asyncio
async def test_fetch_commit_sign_in_page_is_unauthorized():
    """A rejected PAT comes back as 203 with an HTML sign-in page."""
    async with make_client(lambda request: httpx.Response(203, text=SIGN_IN_PAGE)) as client:
        with pytest.raises(Unauthorized):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)


@pytest.mark.asyncio
async def test_list_repositories_sign_in_page_is_unauthorized():
    async with make_client(lambda request: httpx.Response(203, text=SIGN_IN_PAGE)) as client:
        with pytest.raises(Unauthorized):
            await azure_client.list_repositories("contoso", TOKEN, client=client)


@pytest.mark.asyncio
async def test_fetch_commit_non_json_success_body():
    async with make_client(lambda request: httpx.Response(200, text=SIGN_IN_PAGE)) as client:
        with pytest.raises(ProviderError, match="Failed to fetch commit from Azure DevOps"):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)


@pytest.mark.asyncio
async def test_fetch_commit_without_commit_id():
    async with make_client(lambda request: httpx.Response(200, json={"comment": "no id"})) as client:
        with pytest.raises(ProviderError, match="without an id"):
            await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)


@pytest.mark.asyncio
async def test_list_repositories_non_json_success_body():
    async with make_client(lambda request: httpx.Response(200, text=SIGN_IN_PAGE)) as client:
        with pytest.raises(ProviderError, match="Failed to fetch repositories"):
            await azure_client.list_repositories("contoso", TOKEN, client=client)


@pytest.mark.asyncio
@pytest.mark.parametrize("changes_body", [
    {"json": [{"item": {"path": "/a"}}]},
    {"json": {"changes": "not-a-list"}},
    {"text": SIGN_IN_PAGE},
])
async def test_fetch_commit_unreadable_changes_list_degrades(changes_body):
    """An unreadable changes list becomes a note; the commit metadata still comes back."""
    def handler(request):
        if request.url.path == CHANGES_PATH:
            return httpx.Response(200, **changes_body)
        return httpx.Response(200, json=COMMIT_RESPONSE)

    async with make_client(handler) as client:
        commit = await azure_client.fetch_commit(REPO_URL, COMMIT_ID, TOKEN, client=client)

    assert commit.message == "Add login page"
    assert commit.diff == "## Changes Summary\nCould not fetch changes list from Azure API."
