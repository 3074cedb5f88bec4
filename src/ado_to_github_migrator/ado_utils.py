"""
Azure DevOps Boards REST client.

Reads work items, their comments and iterations, and (in production runs)
tags migrated work items. Only the handful of endpoints the migration needs
are wrapped; every call goes through one ``requests.Session``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests

from . import utils
from .exceptions import AdoApiError
from .models import ADO_BASE_URL, CLOSED_STATES, WorkItem, WorkItemComment, work_item_web_url

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

logger: logging.Logger = logging.getLogger(__name__)

_TOKEN_ENV_VAR: Final[str] = "ADO_PAT"  # noqa: S105
_DEFAULT_TOKEN_PASS_PATH: Final[str] = "azure-devops/cli/pat"  # noqa: S105

API_VERSION: Final[str] = "7.1"
COMMENTS_API_VERSION: Final[str] = "7.1-preview.4"

# Maximum ids per WIQL page and per work items batch request
PAGE_SIZE: Final[int] = 200
REQUEST_TIMEOUT_SECONDS: Final[int] = 60


def get_token(token: str | None = None, pass_path: str | None = None) -> str | None:
    """Get the ADO PAT from the argument, a pass path, env var ADO_PAT, or the default pass location."""
    return utils.resolve_token(
        token, env_var=_TOKEN_ENV_VAR, pass_path=pass_path, default_pass_path=_DEFAULT_TOKEN_PASS_PATH
    )


def _wiql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_wiql(
    project: str,
    area_path: str,
    *,
    after_id: int = 0,
    include_closed: bool = False,
    closed_states: Iterable[str] = CLOSED_STATES,
) -> str:
    """WIQL selecting work items under an area path with an id greater than ``after_id``."""
    clauses = [
        f"[System.TeamProject] = {_wiql_literal(project)}",
        f"[System.Id] > {int(after_id)}",
    ]
    if area_path:
        clauses.append(f"[System.AreaPath] UNDER {_wiql_literal(area_path)}")
    if not include_closed:
        states = ", ".join(_wiql_literal(s) for s in sorted(closed_states))
        clauses.append(f"[System.State] NOT IN ({states})")
    return f"SELECT [System.Id] FROM WorkItems WHERE {' AND '.join(clauses)} ORDER BY [System.Id] ASC"


class AdoClient:
    """Minimal Azure DevOps work item tracking client."""

    def __init__(
        self,
        org: str,
        project: str,
        token: str | None,
        *,
        session: requests.Session | None = None,
        base_url: str = ADO_BASE_URL,
    ) -> None:
        self.org: str = org
        self.project: str = project
        self.base_url: str = base_url.rstrip("/")
        self.session: requests.Session = session or requests.Session()
        if token:
            self.session.auth = ("", token)
        self.session.headers.setdefault("Accept", "application/json")

    @property
    def project_url(self) -> str:
        return f"{self.base_url}/{quote(self.org)}/{quote(self.project)}"

    def web_url(self, work_item_id: int) -> str:
        return work_item_web_url(self.org, self.project, work_item_id)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:  # noqa: ANN401 - JSON payload
        params: dict[str, Any] = kwargs.pop("params", {})
        params.setdefault("api-version", API_VERSION)
        try:
            response = self.session.request(method, url, params=params, timeout=REQUEST_TIMEOUT_SECONDS, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            msg = f"Azure DevOps request {method} {url} failed: {e}"
            raise AdoApiError(msg) from e
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            # ADO answers with an HTML sign-in page when the PAT is rejected
            msg = f"Azure DevOps returned a non-JSON response for {method} {url} (check the PAT)"
            raise AdoApiError(msg) from e

    def validate_access(self) -> None:
        _ = self._request("GET", f"{self.base_url}/{quote(self.org)}/_apis/projects/{quote(self.project)}")
        logger.info("Azure DevOps API access validated")

    def query_work_item_ids(
        self,
        area_path: str,
        *,
        after_id: int = 0,
        include_closed: bool = False,
        page_size: int = PAGE_SIZE,
    ) -> list[int]:
        """Return the ids of all matching work items in ascending order.

        WIQL results are paged by id cursor: each page asks for items with an
        id greater than the largest seen so far, until a short page arrives.
        """
        ids: list[int] = []
        cursor = after_id
        while True:
            wiql = build_wiql(self.project, area_path, after_id=cursor, include_closed=include_closed)
            data = self._request(
                "POST",
                f"{self.project_url}/_apis/wit/wiql",
                params={"$top": page_size},
                json={"query": wiql},
            )
            page = [int(ref["id"]) for ref in data.get("workItems", [])]
            ids.extend(page)
            logger.debug(f"WIQL page after id {cursor}: {len(page)} work items")
            if len(page) < page_size:
                break
            cursor = max(page)

        logger.info(f"Found {len(ids)} work items under area path '{area_path}'")
        return ids

    def get_work_item(self, work_item_id: int) -> WorkItem:
        data = self._request(
            "GET",
            f"{self.project_url}/_apis/wit/workitems/{work_item_id}",
            params={"$expand": "all"},
        )
        return WorkItem.from_api(data, web_url=self.web_url(work_item_id))

    def get_work_items(self, ids: Sequence[int]) -> list[WorkItem]:
        """Fetch full work items in batches, preserving the order of ``ids``."""
        items: list[WorkItem] = []
        for start in range(0, len(ids), PAGE_SIZE):
            chunk = list(ids[start : start + PAGE_SIZE])
            data = self._request(
                "POST",
                f"{self.project_url}/_apis/wit/workitemsbatch",
                json={"ids": chunk, "$expand": "all", "errorPolicy": "omit"},
            )
            by_id = {int(v["id"]): v for v in data.get("value", []) if v}
            for item_id in chunk:
                payload = by_id.get(item_id)
                if payload is None:
                    logger.warning(f"Work item {item_id} could not be fetched, skipping")
                    continue
                items.append(WorkItem.from_api(payload, web_url=self.web_url(item_id)))
        return items

    def iter_work_items(
        self, area_path: str, *, after_id: int = 0, include_closed: bool = False
    ) -> Iterator[WorkItem]:
        ids = self.query_work_item_ids(area_path, after_id=after_id, include_closed=include_closed)
        yield from self.get_work_items(ids)

    def get_comments(self, work_item_id: int) -> list[WorkItemComment]:
        """All discussion comments of a work item, oldest first."""
        comments: list[WorkItemComment] = []
        params: dict[str, Any] = {"api-version": COMMENTS_API_VERSION, "order": "asc"}
        while True:
            data = self._request(
                "GET",
                f"{self.project_url}/_apis/wit/workItems/{work_item_id}/comments",
                params=dict(params),
            )
            comments.extend(WorkItemComment.from_api(c) for c in data.get("comments", []) if not c.get("isDeleted"))
            token = data.get("continuationToken")
            if not token:
                break
            params["continuationToken"] = token
        return comments

    def update_work_item(self, work_item_id: int, *, tags: Sequence[str], note: str) -> None:
        """Replace the tags of a work item and add a discussion note."""
        patch = [
            {"op": "add", "path": "/fields/System.Tags", "value": "; ".join(tags)},
            {"op": "add", "path": "/fields/System.History", "value": note},
        ]
        _ = self._request(
            "PATCH",
            f"{self.project_url}/_apis/wit/workitems/{work_item_id}",
            json=patch,
            headers={"Content-Type": "application/json-patch+json"},
        )
        logger.debug(f"Updated work item {work_item_id} tags to {list(tags)}")

    def get_iterations(self, depth: int = 10) -> list[dict[str, Any]]:
        """Flatten the iteration tree into ``{"name", "path", "start_date", "finish_date"}`` dicts."""
        data = self._request(
            "GET",
            f"{self.project_url}/_apis/wit/classificationnodes/Iterations",
            params={"$depth": depth},
        )

        iterations: list[dict[str, Any]] = []

        def _walk(node: dict[str, Any]) -> None:
            attributes: dict[str, Any] = node.get("attributes") or {}
            iterations.append(
                {
                    "name": node.get("name", ""),
                    "path": node.get("path", ""),
                    "start_date": attributes.get("startDate"),
                    "finish_date": attributes.get("finishDate"),
                }
            )
            for child in node.get("children") or []:
                _walk(child)

        for child in data.get("children") or []:
            _walk(child)
        return iterations
