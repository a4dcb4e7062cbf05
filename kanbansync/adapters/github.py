"""GitHub adapter: issues over REST, Projects (v2) board over GraphQL."""

import base64
from datetime import datetime
from typing import Any, Dict, List
from urllib.parse import urlparse

import requests

from kanbansync.adapters.base import RemoteNotFound, RemoteWriteFailure, TrackerAdapter, TrackerError
from kanbansync.models import (
    DATE,
    NUMBER,
    SINGLE_SELECT,
    TEXT,
    Milestone,
    Project,
    ProjectField,
    ProjectItem,
    RemoteComment,
    RemoteIssue,
)

RAW_CONTENT_URL = "https://raw.githubusercontent.com"
_AUTH_HOSTS = ("github.com", "githubusercontent.com")
_SUPPORTED_FIELD_TYPES = {TEXT, NUMBER, DATE, SINGLE_SELECT}

ORG_PROJECT_QUERY = """
query($login: String!, $number: Int!) {
  organization(login: $login) { projectV2(number: $number) { id title } }
}
"""

USER_PROJECT_QUERY = """
query($login: String!, $number: Int!) {
  user(login: $login) { projectV2(number: $number) { id title } }
}
"""

PROJECT_FIELDS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 100) {
        nodes {
          ... on ProjectV2FieldCommon { id name dataType }
          ... on ProjectV2SingleSelectField { id name dataType options { id name } }
        }
      }
    }
  }
}
"""

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) {
    item { id }
  }
}
"""

SET_FIELD_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $value: ProjectV2FieldValue!) {
  updateProjectV2ItemFieldValue(
    input: { projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: $value }
  ) {
    projectV2Item { id }
  }
}
"""

DELETE_ITEM_MUTATION = """
mutation($projectId: ID!, $itemId: ID!) {
  deleteProjectV2Item(input: { projectId: $projectId, itemId: $itemId }) { deletedItemId }
}
"""

PROJECT_ITEMS_QUERY = """
query($projectId: ID!, $cursor: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          fieldValues(first: 50) {
            nodes {
              ... on ProjectV2ItemFieldTextValue { text field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldNumberValue { number field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldDateValue { date field { ... on ProjectV2FieldCommon { name } } }
              ... on ProjectV2ItemFieldSingleSelectValue { name field { ... on ProjectV2FieldCommon { name } } }
            }
          }
          content {
            ... on Issue {
              id
              number
              title
              body
              state
              url
              assignees(first: 10) { nodes { login } }
              labels(first: 20) { nodes { name } }
              milestone { title }
              comments(first: 100) { nodes { databaseId body createdAt author { login } } }
            }
          }
        }
      }
    }
  }
}
"""


def _parse_iso(s: str | None) -> datetime | None:
    if not s:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _issue_from_api(data: Dict[str, Any]) -> RemoteIssue:
    labels = [lb["name"] for lb in (data.get("labels") or []) if isinstance(lb, dict) and "name" in lb]
    assignees = [a["login"] for a in (data.get("assignees") or []) if isinstance(a, dict) and "login" in a]
    milestone = data.get("milestone") or {}
    return RemoteIssue(
        number=data["number"],
        node_id=data.get("node_id") or "",
        title=data.get("title") or "",
        body=data.get("body") or "",
        labels=labels,
        assignees=assignees,
        state=data.get("state", "open"),
        milestone=milestone.get("title"),
        html_url=data.get("html_url"),
    )


def _comment_from_api(data: Dict[str, Any]) -> RemoteComment:
    user = data.get("user") or {}
    return RemoteComment(
        id=data["id"],
        body=data.get("body") or "",
        author=user.get("login", ""),
        created_at=_parse_iso(data.get("created_at")),
    )


def _field_from_graphql(data: Dict[str, Any]) -> ProjectField | None:
    if not data.get("id") or not data.get("name"):
        return None
    data_type = data.get("dataType") or ""
    options = {o["name"]: o["id"] for o in (data.get("options") or [])}
    return ProjectField(
        id=data["id"],
        name=data["name"],
        data_type=data_type if data_type in _SUPPORTED_FIELD_TYPES else "UNSUPPORTED",
        options=options,
    )


def _item_from_graphql(node: Dict[str, Any]) -> ProjectItem:
    field_values: Dict[str, Any] = {}
    for fv in (node.get("fieldValues") or {}).get("nodes") or []:
        name = ((fv or {}).get("field") or {}).get("name")
        if not name:
            continue
        for key in ("text", "number", "date", "name"):
            if key in fv:
                field_values[name] = fv[key]
                break

    content = node.get("content") or {}
    issue = None
    comments: List[RemoteComment] = []
    if content.get("number") and content.get("title"):
        issue = RemoteIssue(
            number=content["number"],
            node_id=content.get("id") or "",
            title=content["title"],
            body=content.get("body") or "",
            labels=[lb["name"] for lb in (content.get("labels") or {}).get("nodes") or []],
            assignees=[a["login"] for a in (content.get("assignees") or {}).get("nodes") or []],
            state=content.get("state") or "open",
            milestone=(content.get("milestone") or {}).get("title"),
            html_url=content.get("url"),
        )
        for c in (content.get("comments") or {}).get("nodes") or []:
            comments.append(
                RemoteComment(
                    id=c.get("databaseId") or 0,
                    body=c.get("body") or "",
                    author=(c.get("author") or {}).get("login") or "unknown",
                    created_at=_parse_iso(c.get("createdAt")),
                )
            )
    return ProjectItem(id=node["id"], issue=issue, field_values=field_values, comments=comments)


class GitHubAdapter(TrackerAdapter):
    """GitHub API implementation."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        graphql_url: str = "https://api.github.com/graphql",
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._graphql_url = graphql_url
        self._session = requests.Session()
        self._session.headers["Authorization"] = f"token {token}"
        self._session.headers["Accept"] = "application/vnd.github+json"

    def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> requests.Response:
        url = f"{self._api_url}{path}" if path.startswith("/") else f"{self._api_url}/{path}"
        try:
            resp = self._session.request(method, url, params=params, json=json, timeout=30)
        except requests.RequestException as e:
            error_cls = TrackerError if method == "GET" else RemoteWriteFailure
            raise error_cls(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            msg = resp.text or resp.reason or str(resp.status_code)
            try:
                msg = resp.json().get("message", msg)
            except Exception:
                pass
            if resp.status_code in (404, 410):
                raise RemoteNotFound(f"{resp.status_code}: {msg}")
            if method != "GET":
                raise RemoteWriteFailure(f"{resp.status_code}: {msg}")
            raise TrackerError(f"{resp.status_code}: {msg}")
        return resp

    def _paginate(self, path: str, params: Dict[str, Any] | None = None) -> List[Dict[str, Any]]:
        """GET every page of a REST list endpoint (follows Link: next)."""
        out: List[Dict[str, Any]] = []
        resp = self._request("GET", path, params={**(params or {}), "per_page": 100})
        out.extend(resp.json() or [])
        next_link = (resp.links or {}).get("next")
        while next_link:
            try:
                resp = self._session.request("GET", next_link["url"], timeout=30)
            except requests.RequestException as e:
                raise TrackerError(f"GET {next_link['url']} failed: {e}") from e
            if resp.status_code >= 400:
                raise TrackerError(f"{resp.status_code}: {resp.text or resp.reason}")
            out.extend(resp.json() or [])
            next_link = (resp.links or {}).get("next")
        return out

    def _graphql(self, query: str, variables: Dict[str, Any], mutation: bool = False) -> Dict[str, Any]:
        error_cls = RemoteWriteFailure if mutation else TrackerError
        try:
            resp = self._session.request(
                "POST",
                self._graphql_url,
                json={"query": query, "variables": variables},
                timeout=30,
            )
        except requests.RequestException as e:
            raise error_cls(f"GraphQL request failed: {e}") from e
        if resp.status_code >= 400:
            raise error_cls(f"{resp.status_code}: {resp.text or resp.reason}")
        payload = resp.json() or {}
        errors = payload.get("errors")
        if errors:
            msg = "; ".join(str(e.get("message", e)) for e in errors)
            if any(e.get("type") == "NOT_FOUND" for e in errors):
                raise RemoteNotFound(msg)
            raise error_cls(msg)
        return payload.get("data") or {}

    # --- issues ---

    def get_issue(self, repo: str, issue_number: int) -> RemoteIssue:
        data = self._request("GET", f"/repos/{repo}/issues/{issue_number}").json()
        if "pull_request" in data:
            raise RemoteNotFound(f"#{issue_number} is a pull request")
        return _issue_from_api(data)

    def create_issue(
        self,
        repo: str,
        title: str,
        body: str,
        labels: List[str] | None = None,
        assignees: List[str] | None = None,
    ) -> RemoteIssue:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = labels
        if assignees:
            payload["assignees"] = assignees
        resp = self._request("POST", f"/repos/{repo}/issues", json=payload)
        return _issue_from_api(resp.json())

    def update_issue(
        self,
        repo: str,
        issue_number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: List[str] | None = None,
        assignees: List[str] | None = None,
        milestone: int | None = None,
        state: str | None = None,
    ) -> RemoteIssue:
        payload: Dict[str, Any] = {}
        for key, value in (
            ("title", title),
            ("body", body),
            ("labels", labels),
            ("assignees", assignees),
            ("milestone", milestone),
            ("state", state),
        ):
            if value is not None:
                payload[key] = value
        resp = self._request("PATCH", f"/repos/{repo}/issues/{issue_number}", json=payload)
        return _issue_from_api(resp.json())

    def search_issues_by_title(self, repo: str, title: str) -> List[RemoteIssue]:
        escaped = title.replace('"', '\\"')
        q = f'repo:{repo} is:issue "{escaped}" in:title'
        data = self._request("GET", "/search/issues", params={"q": q}).json()
        return [
            _issue_from_api(d)
            for d in (data.get("items") or [])
            if "pull_request" not in d and d.get("title") == title
        ]

    # --- comments ---

    def get_issue_comments(self, repo: str, issue_number: int) -> List[RemoteComment]:
        data = self._paginate(f"/repos/{repo}/issues/{issue_number}/comments")
        return [_comment_from_api(d) for d in data]

    def create_comment(self, repo: str, issue_number: int, body: str) -> RemoteComment:
        resp = self._request("POST", f"/repos/{repo}/issues/{issue_number}/comments", json={"body": body})
        return _comment_from_api(resp.json())

    def update_comment(self, repo: str, comment_id: int, body: str) -> RemoteComment:
        resp = self._request("PATCH", f"/repos/{repo}/issues/comments/{comment_id}", json={"body": body})
        return _comment_from_api(resp.json())

    # --- labels, milestones, files ---

    def list_labels(self, repo: str) -> List[str]:
        return [d["name"] for d in self._paginate(f"/repos/{repo}/labels") if "name" in d]

    def create_label(self, repo: str, name: str, color: str = "ededed") -> None:
        self._request("POST", f"/repos/{repo}/labels", json={"name": name, "color": color})

    def list_milestones(self, repo: str) -> List[Milestone]:
        data = self._paginate(f"/repos/{repo}/milestones", params={"state": "open"})
        return [Milestone(number=d["number"], title=d.get("title") or "") for d in data]

    def raw_file_url(self, repo: str, path: str, branch: str) -> str:
        """URL a file committed by upload_file is served from."""
        return f"{RAW_CONTENT_URL}/{repo}/{branch}/{path.lstrip('/')}"

    def upload_file(self, repo: str, path: str, content: bytes, branch: str, message: str) -> str:
        payload = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        try:
            self._request("PUT", f"/repos/{repo}/contents/{path.lstrip('/')}", json=payload)
        except RemoteWriteFailure as e:
            # 422 without sha: the file already exists; names are content-derived.
            if not str(e).startswith("422"):
                raise
        return self.raw_file_url(repo, path, branch)

    def download_file(self, url: str, timeout: int = 30) -> bytes:
        host = urlparse(url).hostname or ""
        try:
            if host.endswith(_AUTH_HOSTS):
                resp = self._session.request("GET", url, timeout=timeout)
            else:
                resp = requests.get(url, timeout=timeout)
        except requests.RequestException as e:
            raise TrackerError(f"Download failed for {url}: {e}") from e
        if resp.status_code != 200:
            raise TrackerError(f"Download failed for {url}: {resp.status_code}")
        return resp.content

    # --- project board ---

    def get_project(self, owner: str, number: int) -> Project:
        for query, key in ((ORG_PROJECT_QUERY, "organization"), (USER_PROJECT_QUERY, "user")):
            try:
                data = self._graphql(query, {"login": owner, "number": number})
            except TrackerError:
                continue
            project = (data.get(key) or {}).get("projectV2")
            if project and project.get("id"):
                return Project(id=project["id"], title=project.get("title") or "")
        raise RemoteNotFound(f"Project v2 #{number} not found for owner {owner}")

    def list_project_fields(self, project_id: str) -> List[ProjectField]:
        data = self._graphql(PROJECT_FIELDS_QUERY, {"projectId": project_id})
        nodes = ((data.get("node") or {}).get("fields") or {}).get("nodes") or []
        return [f for f in (_field_from_graphql(n or {}) for n in nodes) if f is not None]

    def add_project_item(self, project_id: str, content_node_id: str) -> str:
        data = self._graphql(
            ADD_ITEM_MUTATION,
            {"projectId": project_id, "contentId": content_node_id},
            mutation=True,
        )
        item_id = ((data.get("addProjectV2ItemById") or {}).get("item") or {}).get("id")
        if not item_id:
            raise RemoteWriteFailure(f"Board did not return an item for {content_node_id}")
        return item_id

    def set_project_field_value(
        self,
        project_id: str,
        item_id: str,
        field_id: str,
        value: Dict[str, Any],
    ) -> None:
        self._graphql(
            SET_FIELD_MUTATION,
            {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "value": value},
            mutation=True,
        )

    def delete_project_item(self, project_id: str, item_id: str) -> None:
        self._graphql(DELETE_ITEM_MUTATION, {"projectId": project_id, "itemId": item_id}, mutation=True)

    def list_project_items(self, project_id: str) -> List[ProjectItem]:
        items: List[ProjectItem] = []
        cursor: str | None = None
        while True:
            data = self._graphql(PROJECT_ITEMS_QUERY, {"projectId": project_id, "cursor": cursor})
            page = (data.get("node") or {}).get("items") or {}
            items.extend(_item_from_graphql(n) for n in page.get("nodes") or [] if n)
            info = page.get("pageInfo") or {}
            if not info.get("hasNextPage"):
                break
            cursor = info.get("endCursor")
        return items
