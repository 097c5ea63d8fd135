"""Shared formatting functions for MCP responses.

Shapes raw Azure DevOps payloads into the compact objects returned by the
tools, and wraps results and errors into MCP protocol types.
"""
import json
from typing import Any, Callable, Optional

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    CallToolResult,
    ErrorData,
    TextContent,
)

from ado_core.errors import ClassifiedError, ErrorKind, UnknownToolError
from ado_core.pagination import Page

BRANCH_PREFIX = "refs/heads/"


def strip_branch_prefix(ref: Optional[str]) -> Optional[str]:
    """refs/heads/main -> main; other refs are left alone."""
    if ref and ref.startswith(BRANCH_PREFIX):
        return ref[len(BRANCH_PREFIX):]
    return ref


def _display_name(identity: Optional[dict]) -> Optional[str]:
    if not identity:
        return None
    return identity.get("displayName") or identity.get("uniqueName")


# ============================================================================
# Resource shaping
# ============================================================================


def format_project(proj: dict) -> dict:
    """Format a project for list output."""
    return {
        "id": proj.get("id"),
        "name": proj.get("name"),
        "description": proj.get("description"),
        "state": proj.get("state"),
        "visibility": proj.get("visibility"),
        "lastUpdateTime": proj.get("lastUpdateTime"),
        "url": proj.get("url"),
    }


def format_project_details(proj: dict) -> dict:
    """Format a single project, including team and capabilities when present."""
    result = format_project(proj)
    result["revision"] = proj.get("revision")
    team = proj.get("defaultTeam")
    if team:
        result["defaultTeam"] = {"id": team.get("id"), "name": team.get("name")}
    capabilities = proj.get("capabilities")
    if capabilities:
        result["capabilities"] = {
            "sourceControlType": (capabilities.get("versioncontrol") or {}).get("sourceControlType"),
            "processTemplate": (capabilities.get("processTemplate") or {}).get("templateName"),
            "processTemplateId": (capabilities.get("processTemplate") or {}).get("templateTypeId"),
        }
    return result


def format_repository(repo: dict) -> dict:
    return {
        "id": repo.get("id"),
        "name": repo.get("name"),
        "project": (repo.get("project") or {}).get("name"),
        "defaultBranch": strip_branch_prefix(repo.get("defaultBranch")),
        "size": repo.get("size"),
        "isDisabled": repo.get("isDisabled", False),
        "remoteUrl": repo.get("remoteUrl"),
        "webUrl": repo.get("webUrl"),
    }


def format_branch(ref: dict) -> dict:
    return {
        "name": strip_branch_prefix(ref.get("name")),
        "objectId": ref.get("objectId"),
        "creator": _display_name(ref.get("creator")),
        "isLocked": ref.get("isLocked", False),
    }


def format_work_item(item: dict) -> dict:
    fields = item.get("fields") or {}
    assigned = fields.get("System.AssignedTo")
    result = {
        "id": item.get("id"),
        "rev": item.get("rev"),
        "type": fields.get("System.WorkItemType"),
        "title": fields.get("System.Title"),
        "state": fields.get("System.State"),
        "assignedTo": _display_name(assigned) if isinstance(assigned, dict) else assigned,
        "description": fields.get("System.Description"),
        "areaPath": fields.get("System.AreaPath"),
        "iterationPath": fields.get("System.IterationPath"),
        "createdDate": fields.get("System.CreatedDate"),
        "changedDate": fields.get("System.ChangedDate"),
        "url": item.get("url"),
    }
    relations = item.get("relations")
    if relations:
        result["relations"] = [
            {"rel": rel.get("rel"), "url": rel.get("url"), "name": (rel.get("attributes") or {}).get("name")}
            for rel in relations
        ]
    return result


def format_pull_request(pr: dict) -> dict:
    return {
        "pullRequestId": pr.get("pullRequestId"),
        "title": pr.get("title"),
        "description": pr.get("description"),
        "status": pr.get("status"),
        "isDraft": pr.get("isDraft", False),
        "createdBy": _display_name(pr.get("createdBy")),
        "creationDate": pr.get("creationDate"),
        "sourceBranch": strip_branch_prefix(pr.get("sourceRefName")),
        "targetBranch": strip_branch_prefix(pr.get("targetRefName")),
        "mergeStatus": pr.get("mergeStatus"),
        "repository": (pr.get("repository") or {}).get("name"),
        "reviewers": [
            {"displayName": r.get("displayName"), "vote": r.get("vote", 0), "isRequired": r.get("isRequired", False)}
            for r in pr.get("reviewers") or []
        ],
        "url": pr.get("url"),
    }


def format_pipeline(pipeline: dict) -> dict:
    return {
        "id": pipeline.get("id"),
        "name": pipeline.get("name"),
        "folder": pipeline.get("folder"),
        "revision": pipeline.get("revision"),
        "url": pipeline.get("url"),
    }


def format_pipeline_details(pipeline: dict) -> dict:
    result = format_pipeline(pipeline)
    configuration = pipeline.get("configuration")
    if configuration:
        result["configuration"] = {
            "type": configuration.get("type"),
            "path": configuration.get("path"),
            "repository": (configuration.get("repository") or {}).get("id"),
        }
    return result


def format_page(page: Page, key: str, shape: Callable[[dict], dict]) -> dict:
    """List payload: {count, <key>: [...], hasMore, continuationToken?}."""
    result: dict[str, Any] = {
        "count": len(page.items),
        key: [shape(item) for item in page.items],
        "hasMore": page.has_more,
    }
    if page.continuation_token:
        result["continuationToken"] = page.continuation_token
    if page.count is not None:
        result["totalCount"] = page.count
    return result


# ============================================================================
# Protocol wrapping
# ============================================================================


def format_result(result: Any) -> CallToolResult:
    """Single text item holding the serialized result."""
    return CallToolResult(content=[TextContent(type="text", text=json.dumps(result, indent=2))])


def format_validation_error(tool: str, operation: str, violations: list[dict]) -> CallToolResult:
    """Soft error: the caller must fix its input and call again."""
    body = {
        "error": "validation_failed",
        "tool": tool,
        "operation": operation,
        "message": f"Invalid parameters for {tool}.{operation}",
        "violations": violations,
    }
    return CallToolResult(content=[TextContent(type="text", text=json.dumps(body, indent=2))], isError=True)


_ERROR_CODES: dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION: INVALID_REQUEST,
    ErrorKind.AUTHORIZATION: INVALID_REQUEST,
    ErrorKind.NOT_FOUND: INVALID_REQUEST,
    ErrorKind.VALIDATION: INVALID_PARAMS,
}


def format_error(error: ClassifiedError) -> ErrorData:
    """Hard error payload for the JSON-RPC response."""
    code = METHOD_NOT_FOUND if isinstance(error, UnknownToolError) else _ERROR_CODES.get(error.kind, INTERNAL_ERROR)
    return ErrorData(code=code, message=error.user_message, data=error.to_dict())
