# signal_wizard/models.py
"""
Signal Wizard Data Models

Pydantic models for the in-progress signal draft and the persisted wire format.
Wire models serialize with camelCase keys (``model_dump(by_alias=True)``) and
accept either spelling on input.
"""

from datetime import date, time as TimeOfDay
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import ErrorKind, QueryDepthError


# =============================================================================
# ENUMS
# =============================================================================

class StepId(str, Enum):
    """Wizard steps, in display order."""
    QUERY = "query"
    ENTITIES = "entities"
    FILTERS = "filters"
    ANOMALY = "anomaly"
    NOTIFICATION_POLICY = "notification_policy"
    ALERT_METHODS = "alert_methods"
    REVIEW = "review"


class LogicalOp(str, Enum):
    """Structured query combinators."""
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class WorkflowScope(str, Enum):
    """What the query step runs against."""
    ALL = "all"
    SPECIFIC_TEMPLATE = "specific_template"


class EntityType(str, Enum):
    """Referenced entity kinds."""
    PERSON = "person"
    COMPANY = "company"
    TOPIC = "topic"


class NotificationPolicy(str, Enum):
    """When a signal delivers."""
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    DIGEST = "digest"


class SelectionPolicy(str, Enum):
    """How matched content is curated for delivery."""
    ALL_MATCHES = "all_matches"
    AI_SUMMARY = "ai_summary"
    TOP_N = "top_n"

    @property
    def requires_volume_data(self) -> bool:
        return self is SelectionPolicy.TOP_N


class NewsletterFormat(str, Enum):
    """Layout of summarized deliveries."""
    BULLETS = "bullets"
    PARAGRAPHS = "paragraphs"
    HEADLINES = "headlines"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


WEEKDAY_ORDER = list(Weekday)


class DeliveryType(str, Enum):
    """Where a signal's matches are sent."""
    DASHBOARD = "dashboard"
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"


# =============================================================================
# STRUCTURED QUERY
# =============================================================================

class WireModel(BaseModel):
    """Base for models that cross the API boundary."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Clause(WireModel):
    """A single typed condition."""
    field: str
    operator: str
    value: Any = None


class QueryNode(WireModel):
    """An AND/OR/NOT combinator over clauses and nested nodes."""
    op: LogicalOp
    children: List[Union["QueryNode", Clause]] = Field(default_factory=list)


QueryNode.model_rebuild()

# A structured query is always rooted at a combinator node.
StructuredQuery = QueryNode
QueryItem = Union[QueryNode, Clause]


def query_depth(item: QueryItem) -> int:
    """Depth of a query tree; a bare clause or an empty node has depth 1."""
    if isinstance(item, Clause) or not item.children:
        return 1
    return 1 + max(query_depth(child) for child in item.children)


def ensure_query_depth(item: QueryItem, limit: int) -> QueryItem:
    """Reject trees nested deeper than ``limit``."""
    depth = query_depth(item)
    if depth > limit:
        raise QueryDepthError(depth, limit)
    return item


# =============================================================================
# FILTER STATE
# =============================================================================

def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class DateWindow(WireModel):
    """Inclusive publication date range; either bound may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode="after")
    def _check_order(self) -> "DateWindow":
        if self.start and self.end and self.start > self.end:
            raise ValueError("date window start must not be after end")
        return self


class FilterState(WireModel):
    """Flat UI representation of the signal's filter clauses."""
    sources_included: List[str] = Field(default_factory=list)
    sources_excluded: List[str] = Field(default_factory=list)
    labels_included: List[str] = Field(default_factory=list)
    labels_excluded: List[str] = Field(default_factory=list)
    locations_included: List[str] = Field(default_factory=list)
    locations_excluded: List[str] = Field(default_factory=list)
    date_window: Optional[DateWindow] = None
    show_reprints: bool = True
    opaque_clauses: List[Union[QueryNode, Clause]] = Field(default_factory=list)

    @field_validator(
        "sources_included", "sources_excluded",
        "labels_included", "labels_excluded",
        "locations_included", "locations_excluded",
    )
    @classmethod
    def _unique_in_order(cls, values: List[str]) -> List[str]:
        return _dedupe(values)

    @property
    def is_empty(self) -> bool:
        return self == FilterState()


# =============================================================================
# DRAFT PARTS
# =============================================================================

class EntityRef(WireModel):
    """A referenced person, company or topic."""
    id: str
    type: EntityType
    name: str = ""

    @property
    def key(self) -> Tuple[str, EntityType]:
        return (self.id, self.type)


class AnomalyConfig(WireModel):
    """Volume-spike threshold for TOP_N selection."""
    volume_field: str
    threshold: float = Field(gt=0)


class SelectionConfig(WireModel):
    """Selection-policy specific options."""
    newsletter_format: NewsletterFormat = NewsletterFormat.BULLETS
    max_items: int = Field(default=10, ge=1, le=100)


class SchedulePolicy(WireModel):
    """Days and local time a non-immediate signal delivers."""
    days: List[Weekday] = Field(default_factory=list)
    time: TimeOfDay
    timezone: str = "UTC"

    @field_validator("days")
    @classmethod
    def _week_order(cls, days: List[Weekday]) -> List[Weekday]:
        return sorted(set(days), key=WEEKDAY_ORDER.index)

    @property
    def is_complete(self) -> bool:
        return bool(self.days)


class DeliveryMethod(WireModel):
    """A delivery target; ``config_id`` points at e.g. an email list or Slack channel."""
    type: DeliveryType
    config_id: Optional[str] = None

    @property
    def key(self) -> Tuple[DeliveryType, Optional[str]]:
        return (self.type, self.config_id)


DASHBOARD_METHOD = DeliveryMethod(type=DeliveryType.DASHBOARD)


def _normalize_delivery_methods(methods: List[DeliveryMethod]) -> List[DeliveryMethod]:
    """Dashboard first, no duplicates."""
    result = [DASHBOARD_METHOD.model_copy()]
    seen = {DASHBOARD_METHOD.key}
    for method in methods:
        if method.type is DeliveryType.DASHBOARD or method.key in seen:
            continue
        seen.add(method.key)
        result.append(method)
    return result


# =============================================================================
# SIGNAL DRAFT
# =============================================================================

class SignalDraft(BaseModel):
    """The in-progress signal definition shared by all wizard steps."""
    model_config = ConfigDict(validate_assignment=False)

    name: str = ""
    raw_query: str = ""
    enhanced_query: Optional[QueryNode] = None
    workflow: WorkflowScope = WorkflowScope.ALL
    template_id: Optional[str] = None
    entities: List[EntityRef] = Field(default_factory=list)
    suggestions: List[EntityRef] = Field(default_factory=list)
    filters: FilterState = Field(default_factory=FilterState)
    anomaly_config: Optional[AnomalyConfig] = None
    notification_policy: NotificationPolicy = NotificationPolicy.IMMEDIATE
    selection_policy: Optional[SelectionPolicy] = None
    selection_config: SelectionConfig = Field(default_factory=SelectionConfig)
    schedule_policy: Optional[SchedulePolicy] = None
    delivery_methods: List[DeliveryMethod] = Field(default_factory=lambda: [DASHBOARD_METHOD.model_copy()])
    is_edit_mode: bool = False
    signal_id: Optional[str] = None
    original_filters: Optional[FilterState] = None
    validation_errors: Dict[StepId, ErrorKind] = Field(default_factory=dict)

    @field_validator("entities")
    @classmethod
    def _unique_entities(cls, entities: List[EntityRef]) -> List[EntityRef]:
        seen = set()
        result = []
        for entity in entities:
            if entity.key not in seen:
                seen.add(entity.key)
                result.append(entity)
        return result

    @field_validator("delivery_methods")
    @classmethod
    def _dashboard_always(cls, methods: List[DeliveryMethod]) -> List[DeliveryMethod]:
        return _normalize_delivery_methods(methods)

    @property
    def has_filter_changes(self) -> bool:
        """Whether filters differ from the snapshot taken when editing began."""
        if self.original_filters is None:
            return not self.filters.is_empty
        return self.filters != self.original_filters


# =============================================================================
# WIRE FORMAT
# =============================================================================

class SignalPayload(WireModel):
    """Body of create/update signal requests."""
    name: str = ""
    query: str = ""
    enhanced_query: Optional[QueryNode] = None
    workflow: WorkflowScope = WorkflowScope.ALL
    template_id: Optional[str] = None
    entities: List[EntityRef] = Field(default_factory=list)
    filters: QueryNode = Field(default_factory=lambda: QueryNode(op=LogicalOp.AND))
    anomaly_config: Optional[AnomalyConfig] = None
    notification_policy: NotificationPolicy = NotificationPolicy.IMMEDIATE
    selection_policy: SelectionPolicy = SelectionPolicy.ALL_MATCHES
    selection_config: SelectionConfig = Field(default_factory=SelectionConfig)
    schedule_policy: Optional[SchedulePolicy] = None
    delivery_methods: List[DeliveryMethod] = Field(default_factory=lambda: [DASHBOARD_METHOD.model_copy()])


class PersistedSignal(SignalPayload):
    """A saved signal as returned by ``GET /signals/{id}``."""
    id: str
