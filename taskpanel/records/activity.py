"""
Activity records — append-only audit entries, one typed payload per kind.

The backend stores a loose key/value payload. Here each activity kind maps to
a variant model selected by its `type` discriminator, so message formatting
can dispatch on the variant and be checked for exhaustiveness.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ActivityType(str, Enum):
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_EDITED = "task_edited"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_COMPLETED = "task_completed"
    PRIORITY_CHANGED = "priority_changed"
    DUE_DATE_CHANGED = "due_date_changed"
    COMMENT_ADDED = "comment_added"
    COMMENT_REPLY_ADDED = "comment_reply_added"
    COMMENT_EDITED = "comment_edited"
    COMMENT_DELETED = "comment_deleted"
    TAG_ADDED = "tag_added"
    TAG_REMOVED = "tag_removed"
    COLLABORATOR_ADDED = "collaborator_added"
    COLLABORATOR_ROLE_UPDATED = "collaborator_role_updated"
    COLLABORATOR_REMOVED = "collaborator_removed"
    SUBTASK_ADDED = "subtask_added"
    SUBTASK_COMPLETED = "subtask_completed"
    SUBTASK_REOPENED = "subtask_reopened"
    SUBTASK_UPDATED = "subtask_updated"
    SUBTASK_DELETED = "subtask_deleted"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class ActivityPayload(BaseModel):
    """Base payload. Unknown keys (e.g. description) are kept."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    description: Optional[str] = None


class StatusChangePayload(ActivityPayload):
    from_status: Optional[str] = Field(default=None, alias="from")
    to_status: Optional[str] = Field(default=None, alias="to")


class TaskFieldPayload(ActivityPayload):
    field: Optional[str] = None


class PriorityPayload(ActivityPayload):
    priority: Optional[str] = None


class DueDatePayload(ActivityPayload):
    due_date: Optional[str] = None


class CommentPayload(ActivityPayload):
    comment_id: Optional[str] = None
    content: Optional[str] = None
    parent_id: Optional[str] = None


class CommentEditPayload(ActivityPayload):
    comment_id: Optional[str] = None
    old_content: Optional[str] = None
    new_content: Optional[str] = None


class CommentDeletePayload(ActivityPayload):
    comment_id: Optional[str] = None
    soft_delete: bool = False
    had_replies: bool = False
    content: Optional[str] = None


class TagPayload(ActivityPayload):
    tag_id: Optional[str] = None
    tag_name: Optional[str] = None
    tag_color: Optional[str] = None


class CollaboratorAddedPayload(ActivityPayload):
    collaborator_id: Optional[str] = None
    user_name: Optional[str] = None
    role: Optional[str] = None
    added_by: Optional[str] = None


class CollaboratorRolePayload(ActivityPayload):
    collaborator_id: Optional[str] = None
    user_name: Optional[str] = None
    old_role: Optional[str] = None
    new_role: Optional[str] = None


class CollaboratorRemovedPayload(ActivityPayload):
    collaborator_id: Optional[str] = None
    user_name: Optional[str] = None
    role: Optional[str] = None
    removed_by: Optional[str] = None
    self_removed: bool = False


class SubtaskPayload(ActivityPayload):
    subtask_id: Optional[str] = None
    title: Optional[str] = None


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

class ActivityBase(BaseModel):
    id: Union[int, str]
    task_id: str
    actor: str = Field(description="User ID of whoever made the change")
    created_at: datetime

    @field_validator("payload", mode="before", check_fields=False)
    @classmethod
    def default_payload(cls, v: Any) -> Any:
        return {} if v is None else v


class TaskLifecycleActivity(ActivityBase):
    type: Literal["task_created", "task_completed"]
    payload: ActivityPayload = Field(default_factory=ActivityPayload)


class TaskFieldActivity(ActivityBase):
    type: Literal["task_updated", "task_edited"]
    payload: TaskFieldPayload = Field(default_factory=TaskFieldPayload)


class StatusChangedActivity(ActivityBase):
    type: Literal["task_status_changed"]
    payload: StatusChangePayload = Field(default_factory=StatusChangePayload)


class PriorityChangedActivity(ActivityBase):
    type: Literal["priority_changed"]
    payload: PriorityPayload = Field(default_factory=PriorityPayload)


class DueDateChangedActivity(ActivityBase):
    type: Literal["due_date_changed"]
    payload: DueDatePayload = Field(default_factory=DueDatePayload)


class CommentActivity(ActivityBase):
    type: Literal["comment_added", "comment_reply_added"]
    payload: CommentPayload = Field(default_factory=CommentPayload)


class CommentEditedActivity(ActivityBase):
    type: Literal["comment_edited"]
    payload: CommentEditPayload = Field(default_factory=CommentEditPayload)


class CommentDeletedActivity(ActivityBase):
    type: Literal["comment_deleted"]
    payload: CommentDeletePayload = Field(default_factory=CommentDeletePayload)


class TagActivity(ActivityBase):
    type: Literal["tag_added", "tag_removed"]
    payload: TagPayload = Field(default_factory=TagPayload)


class CollaboratorAddedActivity(ActivityBase):
    type: Literal["collaborator_added"]
    payload: CollaboratorAddedPayload = Field(default_factory=CollaboratorAddedPayload)


class CollaboratorRoleActivity(ActivityBase):
    type: Literal["collaborator_role_updated"]
    payload: CollaboratorRolePayload = Field(default_factory=CollaboratorRolePayload)


class CollaboratorRemovedActivity(ActivityBase):
    type: Literal["collaborator_removed"]
    payload: CollaboratorRemovedPayload = Field(default_factory=CollaboratorRemovedPayload)


class SubtaskActivity(ActivityBase):
    type: Literal[
        "subtask_added",
        "subtask_completed",
        "subtask_reopened",
        "subtask_updated",
        "subtask_deleted",
    ]
    payload: SubtaskPayload = Field(default_factory=SubtaskPayload)


class GenericActivity(ActivityBase):
    """Fallback for kinds this client does not know yet."""
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


VARIANTS = (
    TaskLifecycleActivity,
    TaskFieldActivity,
    StatusChangedActivity,
    PriorityChangedActivity,
    DueDateChangedActivity,
    CommentActivity,
    CommentEditedActivity,
    CommentDeletedActivity,
    TagActivity,
    CollaboratorAddedActivity,
    CollaboratorRoleActivity,
    CollaboratorRemovedActivity,
    SubtaskActivity,
)

KnownActivity = Annotated[Union[VARIANTS], Field(discriminator="type")]
Activity = Union[KnownActivity, GenericActivity]

_adapter: TypeAdapter = TypeAdapter(KnownActivity)


def variant_types(variant: type) -> List[str]:
    """The `type` values a variant model accepts."""
    return list(get_args(variant.model_fields["type"].annotation))


def _check_exhaustive() -> None:
    covered = {t for v in VARIANTS for t in variant_types(v)}
    missing = {t.value for t in ActivityType} - covered
    if missing:
        raise RuntimeError(f"Activity kinds without a variant: {sorted(missing)}")


_check_exhaustive()


def parse_activity(data: Dict[str, Any]) -> Activity:
    """
    Validate one backend activity row into its typed variant.

    Unknown kinds become GenericActivity; a known kind with a malformed
    payload raises pydantic.ValidationError.
    """
    if data.get("type") not in ActivityType._value2member_map_:
        return GenericActivity.model_validate(data)
    return _adapter.validate_python(data)


@dataclass
class ActivityPage:
    """One page of activity, newest first."""

    items: List[Any] = field(default_factory=list)
    limit: int = 20
    offset: int = 0
    type: Optional[str] = None

    @property
    def has_more(self) -> bool:
        # The backend returns exactly `limit` rows when more may be available
        return len(self.items) == self.limit

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit
