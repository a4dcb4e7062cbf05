"""Parsed view of one task file's frontmatter header and body.

The header is parsed into TaskRecord right at the file boundary. Writes never
go through this model: the store patches individual header keys on the raw
mapping so unknown keys and formatting choices survive.
"""

import re
from datetime import date, datetime
from pathlib import Path
from typing import Annotated, Any, Dict, List

from pydantic import BaseModel, BeforeValidator, Field

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

LIST_KEYS = ("assignees", "labels", "relationships", "comments", "commentHistory", "subIssues")
DATE_KEYS = ("plannedStart", "plannedEnd", "actualStart", "actualEnd")
SCALAR_KEYS = ("priority", "sprint", "size", "estimate", "devHours", "qaHours")

# (header key, TaskRecord attribute, board field name); status uses the configured field name
BOARD_FIELDS = (
    ("sprint", "sprint", "Sprint"),
    ("priority", "priority", "Priority"),
    ("size", "size", "Size"),
    ("estimate", "estimate", "Estimate"),
    ("devHours", "dev_hours", "Dev Hours"),
    ("qaHours", "qa_hours", "QA Hours"),
    ("plannedStart", "planned_start", "Planned Start"),
    ("plannedEnd", "planned_end", "Planned End"),
    ("actualStart", "actual_start", "Actual Start"),
    ("actualEnd", "actual_end", "Actual End"),
)


class TaskValidationError(Exception):
    """Raised in strict mode when task headers fail schema checks."""

    def __init__(self, violations: List[str]) -> None:
        super().__init__(f"{len(violations)} task file validation error(s)")
        self.violations = violations


def _as_str_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and v != ""]
    return [str(value)]


def _as_issue_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().lstrip("#").isdigit():
        return int(value.strip().lstrip("#"))
    return None


def _as_date_string(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and is_date_string(value):
        return value.strip()
    return None


def _as_scalar(value: Any) -> str | int | float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int, float)):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return None


def _as_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value).strip() or None


def is_date_string(value: str) -> bool:
    """True for a real calendar date in YYYY-MM-DD form."""
    if not DATE_RE.match(value.strip()):
        return False
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


StrList = Annotated[List[str], BeforeValidator(_as_str_list)]
IssueNumber = Annotated[int | None, BeforeValidator(_as_issue_number)]
DateString = Annotated[str | None, BeforeValidator(_as_date_string)]
Scalar = Annotated[str | int | float | None, BeforeValidator(_as_scalar)]
OptionalStr = Annotated[str | None, BeforeValidator(_as_optional_str)]


class SubIssueRecord(BaseModel):
    """Nested task declared in a parent's subIssues list."""

    title: str = Field(default="", description="Sub-issue title")
    description: str = Field(default="", description="Sub-issue body text")
    issue: IssueNumber = Field(default=None, description="Remote issue number once synced")
    status: OptionalStr = Field(default=None, description="Board status of the sub-issue")
    labels: StrList = Field(default_factory=list)
    assignees: StrList = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_header(cls, value: Any) -> "SubIssueRecord | None":
        """Read one subIssues entry: a title string, an issue number, or a
        mapping."""
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, int):
            return cls(issue=value)
        if isinstance(value, str):
            return cls(title=value.strip()) if value.strip() else None
        if isinstance(value, dict):
            return cls.model_validate(value)
        return None

    def to_header(self) -> Dict[str, Any]:
        """Mapping written back into the parent's subIssues list."""
        out: Dict[str, Any] = {}
        if self.title:
            out["title"] = self.title
        if self.description:
            out["description"] = self.description
        if self.issue is not None:
            out["issue"] = self.issue
        if self.status:
            out["status"] = self.status
        if self.labels:
            out["labels"] = list(self.labels)
        if self.assignees:
            out["assignees"] = list(self.assignees)
        return out


def _as_sub_issues(value: Any) -> List[SubIssueRecord]:
    out = []
    for entry in value if isinstance(value, list) else []:
        record = SubIssueRecord.from_header(entry)
        if record is not None:
            out.append(record)
    return out


class TaskRecord(BaseModel):
    """One Markdown task file: header fields plus free-text body."""

    path: Path = Field(..., description="Current on-disk location")
    title: str = Field(..., description="Issue title (falls back to the file stem)")
    description: str = Field(default="", description="Issue description")
    body: str = Field(default="", description="Free text after the header")
    issue: IssueNumber = Field(default=None, description="Remote issue number, absent until first sync")
    status: OptionalStr = Field(default=None, description="Board status; drives folder placement")
    milestone: OptionalStr = Field(default=None, description="Milestone title")
    assignees: StrList = Field(default_factory=list)
    labels: StrList = Field(default_factory=list)
    relationships: StrList = Field(default_factory=list)
    sub_issues: Annotated[List[SubIssueRecord], BeforeValidator(_as_sub_issues)] = Field(
        default_factory=list, alias="subIssues"
    )
    comments: StrList = Field(default_factory=list, description="Pending comments awaiting posting")
    comment_history: StrList = Field(
        default_factory=list, alias="commentHistory", description="Posted comments (wire format)"
    )

    priority: Scalar = None
    sprint: Scalar = None
    size: Scalar = None
    estimate: Scalar = None
    dev_hours: Scalar = Field(default=None, alias="devHours")
    qa_hours: Scalar = Field(default=None, alias="qaHours")
    planned_start: DateString = Field(default=None, alias="plannedStart")
    planned_end: DateString = Field(default=None, alias="plannedEnd")
    actual_start: DateString = Field(default=None, alias="actualStart")
    actual_end: DateString = Field(default=None, alias="actualEnd")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @classmethod
    def from_document(cls, path: Path, fields: Dict[str, Any], body: str) -> "TaskRecord":
        """Build the record leniently; invalid values are dropped."""
        data = dict(fields)
        title = data.get("title")
        data["title"] = str(title).strip() if title not in (None, "") else ""
        if not data["title"]:
            data["title"] = Path(path).stem
        description = data.get("description")
        data["description"] = "" if description is None else str(description)
        data["path"] = Path(path)
        data["body"] = body or ""
        return cls.model_validate(data)

    def field_values(self, status_field: str = "Status") -> Dict[str, Any]:
        """Board field name -> raw header value for every recognized field."""
        values: Dict[str, Any] = {status_field: self.status}
        for _key, attr, board_name in BOARD_FIELDS:
            values[board_name] = getattr(self, attr)
        return values


def validate_task_data(fields: Dict[str, Any]) -> List[str]:
    """Schema violations of a raw header mapping (empty list when valid)."""
    violations = []
    title = fields.get("title")
    if title is not None and not isinstance(title, str):
        violations.append(f"title must be a string, got {type(title).__name__}")
    issue = fields.get("issue")
    if issue is not None and _as_issue_number(issue) is None:
        violations.append(f"issue must be a positive integer, got {issue!r}")
    for key in LIST_KEYS:
        value = fields.get(key)
        if value is not None and not isinstance(value, list):
            violations.append(f"{key} must be a list, got {type(value).__name__}")
    for key in DATE_KEYS:
        value = fields.get(key)
        if value in (None, ""):
            continue
        if _as_date_string(value) is None:
            violations.append(f"{key} must be a YYYY-MM-DD date, got {value!r}")
    for key in SCALAR_KEYS:
        value = fields.get(key)
        if value is not None and _as_scalar(value) is None:
            violations.append(f"{key} must be a string or number, got {type(value).__name__}")
    sub_issues = fields.get("subIssues")
    for i, entry in enumerate(sub_issues if isinstance(sub_issues, list) else []):
        if not isinstance(entry, (str, int, dict)) or isinstance(entry, bool):
            violations.append(f"subIssues[{i}] must be a title, issue number or mapping")
        elif isinstance(entry, dict) and not entry.get("title") and entry.get("issue") is None:
            violations.append(f"subIssues[{i}] needs a title or an issue number")
    return violations
