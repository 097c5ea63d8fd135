"""Operation handlers for the Azure DevOps entity tools.

All handlers follow the same pattern:
- Accept: validated parameter dict (unset optional fields omitted) and the
  shared AdoApiClient
- Make one upstream call (through the client's retry loop) and shape the
  response with the formatters module
- Return a JSON-serializable dict; the entity tool serializes it
- Raw failures are classified with (tool name, handler name) context; no
  handler retries on its own

Parameter validation has already happened in the entity tool envelope.
"""
import logging
from typing import Optional
from urllib.parse import quote

from ado_core.client import JSON_PATCH, AdoApiClient
from ado_core.errors import classified
from ado_core.pagination import ContinuationPaginator, OffsetPaginator, PaginationState, normalize

from . import formatters

logger = logging.getLogger("ado-mcp.handlers")

PROJECTS = "projects"
REPOSITORIES = "repositories"
WORK_ITEMS = "workItems"
PULL_REQUESTS = "pullRequests"
PIPELINES = "pipelines"


def _state(params: dict) -> PaginationState:
    return normalize(params.get("maxResults"), params.get("continuationToken"))


# ============================================================================
# Project Handlers
# ============================================================================

async def handle_list_projects(params: dict, client: AdoApiClient) -> dict:
    """List projects in the organization, one page at a time."""
    query = {"stateFilter": params.get("stateFilter")}
    paginator = OffsetPaginator(lambda: client.get_all("projects", params=query))
    with classified(PROJECTS, "list_projects"):
        page = await paginator.page(_state(params))
    logger.info(f"Listed {len(page.items)} of {page.count} projects (hasMore={page.has_more})")
    return formatters.format_page(page, "projects", formatters.format_project)


async def handle_get_project(params: dict, client: AdoApiClient) -> dict:
    """Get one project by id or name.

    includeCapabilities adds source control type and process template.
    """
    project_id = params["projectId"]
    query = {"includeCapabilities": params.get("includeCapabilities")}
    with classified(PROJECTS, "get_project", f"Project: '{project_id}'."):
        result = await client.get(f"projects/{quote(project_id, safe='')}", params=query)
    logger.info(f"Retrieved project {project_id}: {result.get('name')}")
    return formatters.format_project_details(result)


# ============================================================================
# Repository Handlers
# ============================================================================

async def handle_list_repositories(params: dict, client: AdoApiClient) -> dict:
    """List Git repositories of a project."""
    project_id = params["projectId"]
    paginator = OffsetPaginator(lambda: client.get_list("git/repositories", project=project_id))
    with classified(REPOSITORIES, "list_repositories", f"Project: '{project_id}'."):
        page = await paginator.page(_state(params))
    logger.info(f"Listed {len(page.items)} of {page.count} repositories in {project_id}")
    return formatters.format_page(page, "repositories", formatters.format_repository)


async def handle_get_repository(params: dict, client: AdoApiClient) -> dict:
    project_id = params["projectId"]
    repository_id = params["repositoryId"]
    hint = f"Repository: '{repository_id}' in project '{project_id}'."
    with classified(REPOSITORIES, "get_repository", hint):
        result = await client.get(f"git/repositories/{quote(repository_id, safe='')}", project=project_id)
    logger.info(f"Retrieved repository {repository_id} in {project_id}")
    return formatters.format_repository(result)


async def handle_list_branches(params: dict, client: AdoApiClient) -> dict:
    """List branches (refs/heads/*) of a repository; names come back without the prefix."""
    project_id = params["projectId"]
    repository_id = params["repositoryId"]
    query = {"filter": "heads/", "filterContains": params.get("filter")}
    resource = f"git/repositories/{quote(repository_id, safe='')}/refs"
    paginator = OffsetPaginator(lambda: client.get_all(resource, project=project_id, params=query))
    hint = f"Repository: '{repository_id}' in project '{project_id}'."
    with classified(REPOSITORIES, "list_branches", hint):
        page = await paginator.page(_state(params))
    logger.info(f"Listed {len(page.items)} of {page.count} branches in {repository_id}")
    return formatters.format_page(page, "branches", formatters.format_branch)


# ============================================================================
# Work Item Handlers
# ============================================================================

def build_work_item_patch(
    title: str,
    description: Optional[str] = None,
    assigned_to: Optional[str] = None,
) -> list[dict]:
    """JSON-patch document for a new work item.

    Order is fixed: title, then description, then assignee.
    """
    patch = [{"op": "add", "path": "/fields/System.Title", "value": title}]
    if description is not None:
        patch.append({"op": "add", "path": "/fields/System.Description", "value": description})
    if assigned_to is not None:
        patch.append({"op": "add", "path": "/fields/System.AssignedTo", "value": assigned_to})
    return patch


async def handle_get_work_item(params: dict, client: AdoApiClient) -> dict:
    """Get a work item by numeric id.

    Uses the given project, else the configured default project, else the
    organization-level endpoint.
    """
    work_item_id = params["id"]
    query = {"$expand": params.get("expand")}
    with classified(WORK_ITEMS, "get_work_item", f"Work item: {work_item_id}."):
        result = await client.get(
            f"wit/workitems/{work_item_id}",
            project=params.get("projectId"),
            use_default_project=True,
            params=query,
        )
    logger.info(f"Retrieved work item {work_item_id}")
    return formatters.format_work_item(result)


async def handle_create_work_item(params: dict, client: AdoApiClient) -> dict:
    project_id = params["projectId"]
    item_type = params["type"]
    patch = build_work_item_patch(params["title"], params.get("description"), params.get("assignedTo"))
    hint = f"Work item type '{item_type}' in project '{project_id}'."
    with classified(WORK_ITEMS, "create_work_item", hint):
        result = await client.post(
            f"wit/workitems/${quote(item_type, safe='')}",
            project=project_id,
            json=patch,
            content_type=JSON_PATCH,
        )
    logger.info(f"Created {item_type} {result.get('id')} in {project_id} ({len(patch)} field patches)")
    return formatters.format_work_item(result)


# ============================================================================
# Pull Request Handlers
# ============================================================================

async def handle_list_pull_requests(params: dict, client: AdoApiClient) -> dict:
    """List pull requests of a repository, optionally filtered by status, creator or reviewer."""
    project_id = params["projectId"]
    repository_id = params["repositoryId"]
    query = {
        "searchCriteria.status": params.get("status"),
        "searchCriteria.creatorId": params.get("creatorId"),
        "searchCriteria.reviewerId": params.get("reviewerId"),
    }
    resource = f"git/repositories/{quote(repository_id, safe='')}/pullrequests"
    paginator = OffsetPaginator(lambda: client.get_list(resource, project=project_id, params=query))
    hint = f"Repository: '{repository_id}' in project '{project_id}'."
    with classified(PULL_REQUESTS, "list_pull_requests", hint):
        page = await paginator.page(_state(params))
    logger.info(f"Listed {len(page.items)} of {page.count} pull requests in {repository_id}")
    return formatters.format_page(page, "pullRequests", formatters.format_pull_request)


async def handle_get_pull_request(params: dict, client: AdoApiClient) -> dict:
    project_id = params["projectId"]
    repository_id = params["repositoryId"]
    pull_request_id = params["pullRequestId"]
    hint = f"Pull request {pull_request_id} in repository '{repository_id}' of project '{project_id}'."
    resource = f"git/repositories/{quote(repository_id, safe='')}/pullrequests/{pull_request_id}"
    with classified(PULL_REQUESTS, "get_pull_request", hint):
        result = await client.get(resource, project=project_id)
    logger.info(f"Retrieved pull request {pull_request_id} in {repository_id}")
    return formatters.format_pull_request(result)


# ============================================================================
# Pipeline Handlers
# ============================================================================

async def handle_list_pipelines(params: dict, client: AdoApiClient) -> dict:
    """List pipelines using the upstream's own continuation token."""
    project_id = params["projectId"]

    async def fetch_page(token: Optional[str], top: int) -> tuple[list, Optional[str]]:
        query = {"$top": top, "continuationToken": token, "orderBy": params.get("orderBy")}
        return await client.get_page("pipelines", project=project_id, params=query)

    with classified(PIPELINES, "list_pipelines", f"Project: '{project_id}'."):
        page = await ContinuationPaginator(fetch_page).page(_state(params))
    logger.info(f"Listed {len(page.items)} pipelines in {project_id} (hasMore={page.has_more})")
    return formatters.format_page(page, "pipelines", formatters.format_pipeline)


async def handle_get_pipeline(params: dict, client: AdoApiClient) -> dict:
    project_id = params["projectId"]
    pipeline_id = params["pipelineId"]
    hint = f"Pipeline {pipeline_id} in project '{project_id}'."
    with classified(PIPELINES, "get_pipeline", hint):
        result = await client.get(f"pipelines/{pipeline_id}", project=project_id)
    logger.info(f"Retrieved pipeline {pipeline_id} in {project_id}")
    return formatters.format_pipeline_details(result)
