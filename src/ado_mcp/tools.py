"""Azure DevOps tool definitions.

Each resource is a plain configuration record fed into EntityTool.from_config.
Adding a resource means adding a record here plus its handlers; no new class.
"""
from typing import Optional

from mcp.types import Tool

from ado_core.client import AdoApiClient

from . import handlers
from .entity_tool import EntityTool, EntityToolConfig, FieldSpec, OperationSpec
from .registry import ToolRegistry

PROJECT_STATES = ("all", "createPending", "deleted", "deleting", "new", "unchanged", "wellFormed")
WORK_ITEM_EXPAND = ("None", "Relations", "Fields", "Links", "All")
PULL_REQUEST_STATUSES = ("active", "abandoned", "completed", "all")

MAX_RESULTS = FieldSpec(type="integer", description="Items per page (default: 25, clamped to 1..100)")
CONTINUATION_TOKEN = FieldSpec(type="string", description="Token from a previous page to continue listing")
PROJECT_ID = FieldSpec(type="string", required=True, description="Project name or ID")
REPOSITORY_ID = FieldSpec(type="string", required=True, description="Repository name or ID")


PROJECTS = EntityToolConfig(
    name=handlers.PROJECTS,
    description="Work with Azure DevOps projects of the configured organization.",
    operations=[
        OperationSpec(
            name="list",
            handler=handlers.handle_list_projects,
            description="List projects with pagination",
            fields={
                "maxResults": MAX_RESULTS,
                "continuationToken": CONTINUATION_TOKEN,
                "stateFilter": FieldSpec(type="string", enum=PROJECT_STATES, description="Filter by project state"),
            },
            example={"maxResults": 10},
        ),
        OperationSpec(
            name="get",
            handler=handlers.handle_get_project,
            description="Get details of a project",
            fields={
                "projectId": PROJECT_ID,
                "includeCapabilities": FieldSpec(
                    type="boolean",
                    description="Include source control and process template details",
                ),
            },
            example={"projectId": "Fabrikam", "includeCapabilities": True},
        ),
    ],
)

REPOSITORIES = EntityToolConfig(
    name=handlers.REPOSITORIES,
    description="Work with Git repositories and their branches.",
    operations=[
        OperationSpec(
            name="list",
            handler=handlers.handle_list_repositories,
            description="List repositories of a project",
            fields={
                "projectId": PROJECT_ID,
                "maxResults": MAX_RESULTS,
                "continuationToken": CONTINUATION_TOKEN,
            },
            example={"projectId": "Fabrikam"},
        ),
        OperationSpec(
            name="get",
            handler=handlers.handle_get_repository,
            description="Get details of a repository",
            fields={"projectId": PROJECT_ID, "repositoryId": REPOSITORY_ID},
            example={"projectId": "Fabrikam", "repositoryId": "web"},
        ),
        OperationSpec(
            name="listBranches",
            handler=handlers.handle_list_branches,
            description="List branches of a repository (names without refs/heads/)",
            fields={
                "projectId": PROJECT_ID,
                "repositoryId": REPOSITORY_ID,
                "filter": FieldSpec(type="string", description="Only branches whose name contains this text"),
                "maxResults": MAX_RESULTS,
                "continuationToken": CONTINUATION_TOKEN,
            },
            example={"projectId": "Fabrikam", "repositoryId": "web", "filter": "release"},
        ),
    ],
)

WORK_ITEMS = EntityToolConfig(
    name=handlers.WORK_ITEMS,
    description="Read and create Azure Boards work items.",
    operations=[
        OperationSpec(
            name="get",
            handler=handlers.handle_get_work_item,
            description="Get a work item by ID",
            fields={
                "id": FieldSpec(type="integer", required=True, description="Work item ID"),
                "expand": FieldSpec(type="string", enum=WORK_ITEM_EXPAND, description="Expand option"),
                "projectId": FieldSpec(type="string", description="Project name or ID (default: configured project)"),
            },
            example={"id": 42, "expand": "Relations"},
        ),
        OperationSpec(
            name="create",
            handler=handlers.handle_create_work_item,
            description="Create a work item",
            fields={
                "projectId": PROJECT_ID,
                "type": FieldSpec(type="string", required=True, description="Work item type (e.g., Bug, Task, User Story)"),
                "title": FieldSpec(type="string", required=True, description="Work item title"),
                "description": FieldSpec(type="string", description="Work item description (HTML allowed)"),
                "assignedTo": FieldSpec(type="string", description="Assignee email or display name"),
            },
            example={"projectId": "Fabrikam", "type": "Task", "title": "Update release notes"},
        ),
    ],
)

PULL_REQUESTS = EntityToolConfig(
    name=handlers.PULL_REQUESTS,
    description="Read pull requests of Git repositories.",
    operations=[
        OperationSpec(
            name="list",
            handler=handlers.handle_list_pull_requests,
            description="List pull requests of a repository",
            fields={
                "projectId": PROJECT_ID,
                "repositoryId": REPOSITORY_ID,
                "status": FieldSpec(type="string", enum=PULL_REQUEST_STATUSES, description="Pull request status (default: active)"),
                "creatorId": FieldSpec(type="string", description="Only pull requests created by this identity ID"),
                "reviewerId": FieldSpec(type="string", description="Only pull requests with this reviewer identity ID"),
                "maxResults": MAX_RESULTS,
                "continuationToken": CONTINUATION_TOKEN,
            },
            example={"projectId": "Fabrikam", "repositoryId": "web", "status": "active"},
        ),
        OperationSpec(
            name="get",
            handler=handlers.handle_get_pull_request,
            description="Get a pull request by ID",
            fields={
                "projectId": PROJECT_ID,
                "repositoryId": REPOSITORY_ID,
                "pullRequestId": FieldSpec(type="integer", required=True, description="Pull request ID"),
            },
            example={"projectId": "Fabrikam", "repositoryId": "web", "pullRequestId": 17},
        ),
    ],
)

PIPELINES = EntityToolConfig(
    name=handlers.PIPELINES,
    description="Read Azure Pipelines definitions.",
    operations=[
        OperationSpec(
            name="list",
            handler=handlers.handle_list_pipelines,
            description="List pipelines of a project",
            fields={
                "projectId": PROJECT_ID,
                "orderBy": FieldSpec(type="string", description="Sort expression, e.g. 'name asc'"),
                "maxResults": MAX_RESULTS,
                "continuationToken": CONTINUATION_TOKEN,
            },
            example={"projectId": "Fabrikam", "maxResults": 50},
        ),
        OperationSpec(
            name="get",
            handler=handlers.handle_get_pipeline,
            description="Get a pipeline by ID",
            fields={
                "projectId": PROJECT_ID,
                "pipelineId": FieldSpec(type="integer", required=True, description="Pipeline ID"),
            },
            example={"projectId": "Fabrikam", "pipelineId": 3},
        ),
    ],
)

TOOL_CONFIGS: list[EntityToolConfig] = [PROJECTS, REPOSITORIES, WORK_ITEMS, PULL_REQUESTS, PIPELINES]


def build_registry(client: AdoApiClient, configs: Optional[list[EntityToolConfig]] = None) -> ToolRegistry:
    """Build every entity tool once, in a fixed order."""
    registry = ToolRegistry()
    for config in configs or TOOL_CONFIGS:
        registry.register(EntityTool.from_config(config, client))
    return registry


def get_tools(registry: ToolRegistry) -> list[Tool]:
    """MCP tool list for discovery, in registration order."""
    return [
        Tool(name=contract.name, description=contract.description, inputSchema=contract.parameter_schema)
        for contract in registry.get_all_contracts()
    ]
