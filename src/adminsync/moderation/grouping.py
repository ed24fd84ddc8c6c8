"""Group moderation reports by the message they point at.

The backend sometimes populates a report's message reference and sometimes
sends the bare id. Both shapes name the same message, so reports are keyed
by the resolved id. A report whose reference cannot be resolved gets its own
group rather than sharing an "unknown" bucket with unrelated reports.
"""

from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from adminsync.utils.logging import get_logger
from adminsync.utils.time import format_display_date

logger = get_logger(__name__)

FALLBACK_PREFIX = "fallback-"
NO_CONTENT = "N/A"
DEFAULT_STATUS = "pending"


def as_text(value: Any) -> Optional[str]:
    """Loose backend text: scalars become strings, anything else None."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return None


class EntityId(BaseModel):
    """Reference given as a bare id string."""

    kind: Literal["id"] = "id"
    id: Optional[str] = None


class InlineEntity(BaseModel):
    """Reference given as the populated record."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: Literal["inline"] = "inline"
    id: Optional[str] = Field(None, alias="_id")
    content: Optional[str] = None
    created_at: Optional[str] = Field(None, alias="createdAt")
    user_id: Optional[Any] = Field(None, alias="userId")

    @field_validator("content", "created_at", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return as_text(value)


EntityRef = Annotated[Union[EntityId, InlineEntity], Field(discriminator="kind")]


def coerce_entity_ref(value: Any) -> Optional[Dict[str, Any]]:
    """Tag a raw reference so it validates as EntityId or InlineEntity."""
    if value is None:
        return None
    if isinstance(value, (EntityId, InlineEntity)):
        return value.model_dump(by_alias=True)
    if isinstance(value, str):
        return {"kind": "id", "id": value}
    if isinstance(value, dict):
        data = {k: v for k, v in value.items() if k != "kind"}
        if "_id" not in data and "id" in data:
            data["_id"] = data.pop("id")
        if data.get("_id") is not None:
            data["_id"] = str(data["_id"])
        return {"kind": "inline", **data}
    # numbers and other scalars are ids too
    return {"kind": "id", "id": str(value)}


class ReportRecord(BaseModel):
    """One pending moderation report."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    reported_entity_ref: Optional[EntityRef] = Field(None, alias="messageId")
    group_key: Optional[str] = Field(None, alias="groupId")
    reporter_ref: Optional[Any] = Field(None, alias="reporterId")
    reason: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[str] = Field(None, alias="createdAt")
    status: str = DEFAULT_STATUS

    @field_validator("reported_entity_ref", mode="before")
    @classmethod
    def _tag_reference(cls, value: Any) -> Any:
        return coerce_entity_ref(value)

    @field_validator("id", "group_key", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("reason", "description", "created_at", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return as_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return as_text(value) or DEFAULT_STATUS

    @property
    def reporter_label(self) -> str:
        ref = self.reporter_ref
        if isinstance(ref, dict):
            return ref.get("email") or ref.get("_id") or "unknown"
        return str(ref) if ref else "unknown"


def resolve_identity(ref: Optional[Union[EntityId, InlineEntity]]) -> Optional[str]:
    """
    Resolve a reference to its entity id.

    Returns:
        The id, or None if the reference is missing or carries an empty id
    """
    if ref is None:
        return None
    return ref.id or None


class ReportGroup(BaseModel):
    """Reports against one message, in arrival order."""

    key: str
    entity_ref: Optional[EntityRef] = None
    group_key: Optional[str] = None
    reports: List[ReportRecord]

    @property
    def is_fallback(self) -> bool:
        return self.key.startswith(FALLBACK_PREFIX)

    @property
    def report_count(self) -> int:
        return len(self.reports)

    @property
    def content(self) -> str:
        if isinstance(self.entity_ref, InlineEntity) and self.entity_ref.content:
            return self.entity_ref.content
        return NO_CONTENT

    @property
    def created_at(self) -> str:
        if isinstance(self.entity_ref, InlineEntity) and self.entity_ref.created_at:
            return self.entity_ref.created_at
        return ""

    @property
    def display_date(self) -> str:
        return format_display_date(self.created_at or None)


def _as_record(report: Union[ReportRecord, Dict[str, Any]]) -> ReportRecord:
    if isinstance(report, ReportRecord):
        return report
    return ReportRecord.model_validate(report)


def group_reports(reports: Iterable[Union[ReportRecord, Dict[str, Any]]]) -> List[ReportGroup]:
    """
    Group reports by resolved message identity.

    Groups come out in first-seen order and each group keeps its reports in
    input order. The display reference of a group is the first populated
    record among its reports, falling back to the first report's bare id.

    Args:
        reports: ReportRecords or raw report dicts

    Returns:
        List of ReportGroup, one per distinct message
    """
    groups: Dict[str, ReportGroup] = {}
    for position, raw in enumerate(reports):
        report = _as_record(raw)
        identity = resolve_identity(report.reported_entity_ref)
        if identity is None:
            suffix = report.id if report.id else f"#{position}"
            key = f"{FALLBACK_PREFIX}{suffix}"
            logger.debug(f"Report {report.id} has no resolvable message; grouping alone as {key}")
        else:
            key = identity

        group = groups.get(key)
        if group is None:
            groups[key] = ReportGroup(
                key=key,
                entity_ref=report.reported_entity_ref,
                group_key=report.group_key,
                reports=[report],
            )
            continue

        group.reports.append(report)
        if not isinstance(group.entity_ref, InlineEntity) and isinstance(report.reported_entity_ref, InlineEntity):
            group.entity_ref = report.reported_entity_ref
        if group.group_key is None:
            group.group_key = report.group_key

    return list(groups.values())


class ReportGrouper:
    """Memoized group_reports: recomputes only when given a different list object."""

    def __init__(self):
        self._source: Optional[Sequence[Any]] = None
        self._groups: List[ReportGroup] = []

    def __call__(self, reports: Sequence[Union[ReportRecord, Dict[str, Any]]]) -> List[ReportGroup]:
        if self._source is not None and reports is self._source:
            return self._groups
        self._groups = group_reports(reports)
        self._source = reports
        return self._groups
