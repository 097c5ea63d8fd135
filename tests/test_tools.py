"""End-to-end tests of the Azure DevOps tools against a mocked upstream."""
import json

import httpx
import pytest

from ado_core.client import CONTINUATION_HEADER, JSON_PATCH
from ado_core.errors import ClassifiedError, ErrorKind
from ado_core.pagination import decode_token
from ado_mcp.tools import build_registry, get_tools

from conftest import ORGANIZATION, json_response, request_json


class FakeAzureDevOps:
    """Route-based MockTransport handler; records every request."""

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return json_response(404, {"message": f"No route for {request.method} {request.url.path}"})
        return responses.pop(0) if len(responses) > 1 else responses[0]


def payload(result):
    return json.loads(result.content[0].text)


@pytest.fixture
def upstream():
    return FakeAzureDevOps()


@pytest.fixture
def registry(make_client, upstream):
    return build_registry(make_client(upstream))


class TestDiscovery:
    """Test the advertised tool list."""

    def test_tool_names_in_order(self, registry):
        assert registry.tool_names == ["projects", "repositories", "workItems", "pullRequests", "pipelines"]

    def test_mcp_tools(self, registry):
        tools = get_tools(registry)
        assert [t.name for t in tools] == registry.tool_names
        projects = tools[0]
        assert projects.inputSchema["properties"]["operation"]["enum"] == ["list", "get"]
        assert "Examples:" in projects.description

    def test_every_operation_has_an_example(self, registry):
        for contract in registry.get_all_contracts():
            for op in contract.parameter_schema["properties"]["operation"]["enum"]:
                assert f'"operation": "{op}"' in contract.description


class TestProjects:
    """Test the projects tool."""

    @pytest.mark.asyncio
    async def test_list_paginates_full_collection(self, registry, upstream):
        projects = [{"id": f"p{i}", "name": f"Project {i}", "state": "wellFormed"} for i in range(25)]
        upstream.add("GET", f"/{ORGANIZATION}/_apis/projects", json_response(200, {"count": 25, "value": projects}))

        first = payload(await registry.invoke("projects", {"operation": "list", "listParams": {"maxResults": 10}}))
        assert first["count"] == 10
        assert first["hasMore"] is True
        assert first["continuationToken"]
        assert first["totalCount"] == 25

        seen = [p["id"] for p in first["projects"]]
        token = first["continuationToken"]
        while token:
            page = payload(await registry.invoke(
                "projects", {"operation": "list", "listParams": {"continuationToken": token}},
            ))
            seen.extend(p["id"] for p in page["projects"])
            token = page.get("continuationToken")

        assert seen == [p["id"] for p in projects]

    @pytest.mark.asyncio
    async def test_list_passes_state_filter(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/_apis/projects", json_response(200, {"value": []}))
        result = payload(await registry.invoke(
            "projects", {"operation": "list", "listParams": {"stateFilter": "wellFormed"}},
        ))
        assert result == {"count": 0, "projects": [], "hasMore": False, "totalCount": 0}
        assert upstream.requests[0].url.params["stateFilter"] == "wellFormed"

    @pytest.mark.asyncio
    async def test_invalid_token_rejected_before_upstream(self, registry, upstream):
        with pytest.raises(ClassifiedError) as exc_info:
            await registry.invoke("projects", {"operation": "list", "listParams": {"continuationToken": "%%%"}})
        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_get_with_capabilities(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/_apis/projects/Fabrikam", json_response(200, {
            "id": "p1",
            "name": "Fabrikam",
            "capabilities": {
                "versioncontrol": {"sourceControlType": "Git"},
                "processTemplate": {"templateName": "Agile"},
            },
        }))
        result = payload(await registry.invoke(
            "projects", {"operation": "get", "getParams": {"projectId": "Fabrikam", "includeCapabilities": True}},
        ))
        assert result["capabilities"]["sourceControlType"] == "Git"
        assert result["capabilities"]["processTemplate"] == "Agile"
        assert upstream.requests[0].url.params["includeCapabilities"] == "true"

    @pytest.mark.asyncio
    async def test_same_call_same_output(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/_apis/projects", json_response(200, {"value": [{"id": "p1"}]}))
        arguments = {"operation": "list", "listParams": {"maxResults": 5}}
        first = await registry.invoke("projects", arguments)
        second = await registry.invoke("projects", arguments)
        assert first.content[0].text == second.content[0].text


class TestRepositories:
    """Test the repositories tool."""

    @pytest.mark.asyncio
    async def test_branches_strip_prefix(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/Fabrikam/_apis/git/repositories/web/refs", json_response(200, {"value": [
            {"name": "refs/heads/main", "objectId": "a1"},
            {"name": "refs/heads/feature/login", "objectId": "b2"},
        ]}))
        result = payload(await registry.invoke("repositories", {
            "operation": "listBranches",
            "listBranchesParams": {"projectId": "Fabrikam", "repositoryId": "web", "filter": "feat"},
        }))

        assert [b["name"] for b in result["branches"]] == ["main", "feature/login"]
        params = upstream.requests[0].url.params
        assert params["filter"] == "heads/"
        assert params["filterContains"] == "feat"

    @pytest.mark.asyncio
    async def test_repository_default_branch_stripped(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/Fabrikam/_apis/git/repositories", json_response(200, {"value": [
            {"id": "r1", "name": "web", "defaultBranch": "refs/heads/main", "project": {"name": "Fabrikam"}},
        ]}))
        result = payload(await registry.invoke(
            "repositories", {"operation": "list", "listParams": {"projectId": "Fabrikam"}},
        ))
        assert result["repositories"][0]["defaultBranch"] == "main"
        assert result["repositories"][0]["project"] == "Fabrikam"


class TestWorkItems:
    """Test the workItems tool."""

    @pytest.mark.asyncio
    async def test_create_with_title_only(self, registry, upstream):
        upstream.add("POST", f"/{ORGANIZATION}/Fabrikam/_apis/wit/workitems/$Task", json_response(200, {
            "id": 7, "fields": {"System.Title": "Write docs", "System.WorkItemType": "Task"},
        }))
        result = payload(await registry.invoke("workItems", {
            "operation": "create",
            "createParams": {"projectId": "Fabrikam", "type": "Task", "title": "Write docs"},
        }))

        request = upstream.requests[0]
        assert request.headers["Content-Type"] == JSON_PATCH
        assert request_json(request) == [{"op": "add", "path": "/fields/System.Title", "value": "Write docs"}]
        assert result["id"] == 7
        assert result["title"] == "Write docs"

    @pytest.mark.asyncio
    async def test_create_patch_order(self, registry, upstream):
        upstream.add("POST", f"/{ORGANIZATION}/Fabrikam/_apis/wit/workitems/$Bug", json_response(200, {"id": 8}))
        await registry.invoke("workItems", {
            "operation": "create",
            "createParams": {
                "projectId": "Fabrikam",
                "type": "Bug",
                "title": "Crash on save",
                "description": "Steps...",
                "assignedTo": "dev@contoso.com",
            },
        })
        paths = [op["path"] for op in request_json(upstream.requests[0])]
        assert paths == ["/fields/System.Title", "/fields/System.Description", "/fields/System.AssignedTo"]

    @pytest.mark.asyncio
    async def test_get_uses_organization_endpoint_without_project(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/_apis/wit/workitems/42", json_response(200, {"id": 42, "relations": [
            {"rel": "System.LinkTypes.Hierarchy-Reverse", "url": "https://x/1", "attributes": {"name": "Parent"}},
        ]}))
        result = payload(await registry.invoke(
            "workItems", {"operation": "get", "getParams": {"id": 42, "expand": "Relations"}},
        ))
        assert result["id"] == 42
        assert result["relations"][0]["name"] == "Parent"
        assert upstream.requests[0].url.params["$expand"] == "Relations"

    @pytest.mark.asyncio
    async def test_get_uses_default_project(self, make_client, upstream):
        registry = build_registry(make_client(upstream, project="Fabrikam"))
        upstream.add("GET", f"/{ORGANIZATION}/Fabrikam/_apis/wit/workitems/42", json_response(200, {"id": 42}))
        result = payload(await registry.invoke("workItems", {"operation": "get", "getParams": {"id": 42}}))
        assert result["id"] == 42

    @pytest.mark.asyncio
    async def test_string_id_is_soft_error(self, registry, upstream):
        result = await registry.invoke("workItems", {"operation": "get", "getParams": {"id": "42"}})
        assert result.isError
        assert upstream.requests == []


class TestPullRequests:
    """Test the pullRequests tool."""

    @pytest.mark.asyncio
    async def test_missing_pull_request_is_not_found(self, registry, upstream, sleep):
        with pytest.raises(ClassifiedError) as exc_info:
            await registry.invoke("pullRequests", {
                "operation": "get",
                "getParams": {"projectId": "Fabrikam", "repositoryId": "web", "pullRequestId": -1},
            })
        error = exc_info.value
        assert error.kind == ErrorKind.NOT_FOUND
        assert error.upstream_status == 404
        assert "-1" in error.user_message
        assert len(upstream.requests) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_list_filters_and_branch_names(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/Fabrikam/_apis/git/repositories/web/pullrequests", json_response(200, {
            "value": [{
                "pullRequestId": 17,
                "title": "Add login",
                "status": "active",
                "createdBy": {"displayName": "Ana"},
                "sourceRefName": "refs/heads/feature/login",
                "targetRefName": "refs/heads/main",
            }],
        }))
        result = payload(await registry.invoke("pullRequests", {
            "operation": "list",
            "listParams": {"projectId": "Fabrikam", "repositoryId": "web", "status": "active"},
        }))

        pr = result["pullRequests"][0]
        assert pr["sourceBranch"] == "feature/login"
        assert pr["targetBranch"] == "main"
        assert pr["createdBy"] == "Ana"
        assert upstream.requests[0].url.params["searchCriteria.status"] == "active"


class TestPipelines:
    """Test the pipelines tool."""

    @pytest.mark.asyncio
    async def test_list_follows_upstream_cursor(self, registry, upstream):
        path = f"/{ORGANIZATION}/Fabrikam/_apis/pipelines"
        upstream.add(
            "GET", path,
            json_response(200, {"value": [{"id": 1}, {"id": 2}]}, headers={CONTINUATION_HEADER: "up-1"}),
            json_response(200, {"value": [{"id": 3}]}),
        )

        first = payload(await registry.invoke(
            "pipelines", {"operation": "list", "listParams": {"projectId": "Fabrikam", "maxResults": 2}},
        ))
        assert [p["id"] for p in first["pipelines"]] == [1, 2]
        assert decode_token(first["continuationToken"]) == {"continuationToken": "up-1", "top": 2}

        second = payload(await registry.invoke("pipelines", {
            "operation": "list",
            "listParams": {"projectId": "Fabrikam", "continuationToken": first["continuationToken"]},
        }))
        assert [p["id"] for p in second["pipelines"]] == [3]
        assert second["hasMore"] is False
        assert upstream.requests[1].url.params["continuationToken"] == "up-1"
        assert upstream.requests[1].url.params["$top"] == "2"

    @pytest.mark.asyncio
    async def test_get_pipeline(self, registry, upstream):
        upstream.add("GET", f"/{ORGANIZATION}/Fabrikam/_apis/pipelines/3", json_response(200, {
            "id": 3, "name": "CI", "configuration": {"type": "yaml", "path": "azure-pipelines.yml"},
        }))
        result = payload(await registry.invoke(
            "pipelines", {"operation": "get", "getParams": {"projectId": "Fabrikam", "pipelineId": 3}},
        ))
        assert result["configuration"]["path"] == "azure-pipelines.yml"
