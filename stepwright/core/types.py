"""
Core data models and types for stepwright.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class StepStatus(str, Enum):
    """Terminal status of a single step."""

    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionStatus(str, Enum):
    """Status of an execution record."""

    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class ProgressStatus(str, Enum):
    """Status carried by a step-progress event."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PASSED = "passed"


class RunState(str, Enum):
    """States of the per-run state machine."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    STEP_RUNNING = "step_running"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    RUN_PASSED = "run_passed"
    RUN_FAILED = "run_failed"


class IntentKind(str, Enum):
    """Discriminator values of the action intent variants."""

    OPEN_BROWSER = "open_browser"
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE_TEXT = "type_text"
    SEARCH = "search"
    SELECT_ITEM = "select_item"
    ADD_TO_COLLECTION = "add_to_collection"
    WAIT = "wait"
    SCROLL = "scroll"
    PRESS_KEY = "press_key"
    UNCLASSIFIED = "unclassified"


class TestCase(BaseModel):
    """A named, ordered list of natural-language steps.

    Owned by the external record store; the engine only reads it.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., description="Test case name")
    steps: List[str] = Field(default_factory=list, description="Ordered step descriptions")
    external_ref: Optional[str] = Field(
        None, description="Identifier in an external ticket system"
    )


# Action intents -----------------------------------------------------------


class OpenBrowser(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["open_browser"] = "open_browser"


class Navigate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["navigate"] = "navigate"
    url: str


class Click(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["click"] = "click"
    target: str


class TypeText(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["type_text"] = "type_text"
    target: str
    value: str


class Search(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["search"] = "search"
    query: str


class SelectItem(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["select_item"] = "select_item"
    ordinal: int = Field(1, ge=1)


class AddToCollection(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["add_to_collection"] = "add_to_collection"


class Wait(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["wait"] = "wait"
    duration_ms: int = Field(2000, ge=0)


class Scroll(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["scroll"] = "scroll"


class PressKey(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["press_key"] = "press_key"
    key: str


class Unclassified(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["unclassified"] = "unclassified"
    raw_text: str


ActionIntent = Annotated[
    Union[
        OpenBrowser,
        Navigate,
        Click,
        TypeText,
        Search,
        SelectItem,
        AddToCollection,
        Wait,
        Scroll,
        PressKey,
        Unclassified,
    ],
    Field(discriminator="kind"),
]


# Execution records ----------------------------------------------------------


class StepResult(BaseModel):
    """Outcome of one step; step 0 is browser initialization."""

    model_config = ConfigDict(frozen=True)

    step_number: int = Field(..., ge=0)
    description: str
    status: StepStatus
    message: str = ""
    artifact: Optional[str] = Field(None, description="Screenshot reference")
    timestamp: datetime = Field(default_factory=utc_now)


class StepSummary(BaseModel):
    """Step result with the artifact reduced to a presence marker."""

    step_number: int
    description: str
    status: StepStatus
    message: str = ""
    has_artifact: bool = False
    timestamp: datetime


class ExecutionSummary(BaseModel):
    """List-view projection of an execution record."""

    execution_id: str
    test_case_id: str
    test_case_name: str
    status: ExecutionStatus
    started_at: datetime
    duration_ms: Optional[int] = None
    completed_at: Optional[datetime] = None
    step_results: List[StepSummary] = Field(default_factory=list)


class ExecutionRecord(BaseModel):
    """Full record of one run, owned by a single orchestrator until frozen."""

    execution_id: str = Field(default_factory=new_id)
    test_case_id: str
    test_case_name: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    step_results: List[StepResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    duration_ms: Optional[int] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def summary(self) -> ExecutionSummary:
        return ExecutionSummary(
            execution_id=self.execution_id,
            test_case_id=self.test_case_id,
            test_case_name=self.test_case_name,
            status=self.status,
            started_at=self.started_at,
            duration_ms=self.duration_ms,
            completed_at=self.completed_at,
            step_results=[
                StepSummary(
                    step_number=result.step_number,
                    description=result.description,
                    status=result.status,
                    message=result.message,
                    has_artifact=result.artifact is not None,
                    timestamp=result.timestamp,
                )
                for result in self.step_results
            ],
        )


# Events --------------------------------------------------------------------


class StepProgress(BaseModel):
    """Point-in-time snapshot of a run, emitted on every state transition."""

    execution_id: str
    test_case_id: str
    test_case_name: str
    current_step: int
    total_steps: int
    step_description: str
    status: ProgressStatus
    message: str = ""
    artifact: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class LiveFrame(BaseModel):
    """A single best-effort screencast frame."""

    execution_id: str
    frame: str = Field(..., description="data: URL of a JPEG frame")
    timestamp: datetime = Field(default_factory=utc_now)


class ScheduledRunStarted(BaseModel):
    """Notification that a schedule fired and started a run."""

    schedule_id: str
    execution_id: str
    test_case_id: str
    test_case_name: str
    started_at: datetime = Field(default_factory=utc_now)


# Scheduling -----------------------------------------------------------------


class TriggerKind(str, Enum):
    ONE_SHOT = "one_shot"
    RECURRING = "recurring"


class Schedule(BaseModel):
    """A one-shot or recurring trigger for a test case."""

    id: str = Field(default_factory=new_id)
    test_case_id: str
    scheduled_time: Optional[datetime] = None
    cron_expression: Optional[str] = None
    enabled: bool = True
    last_run: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("scheduled_time")
    @classmethod
    def ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("cron_expression")
    @classmethod
    def strip_expression(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def require_single_trigger(self) -> "Schedule":
        if self.scheduled_time is not None and self.cron_expression is not None:
            raise ValueError("A schedule cannot have both scheduled_time and cron_expression")
        if self.scheduled_time is None and self.cron_expression is None:
            raise ValueError("A schedule requires scheduled_time or cron_expression")
        return self

    @property
    def trigger(self) -> TriggerKind:
        if self.scheduled_time is not None:
            return TriggerKind.ONE_SHOT
        return TriggerKind.RECURRING


class UpcomingRun(BaseModel):
    schedule_id: str
    test_case_id: str
    test_case_name: str
    trigger: TriggerKind
    next_run: datetime


# Page inspection ------------------------------------------------------------


class ElementInfo(BaseModel):
    """Summary of one interactive element on the page."""

    index: int
    tag: str
    id: Optional[str] = None
    classes: Optional[str] = None
    text: Optional[str] = None
    placeholder: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    href: Optional[str] = None
    aria_label: Optional[str] = None
    role: Optional[str] = None
    value: Optional[str] = None

    def searchable_text(self) -> str:
        parts = [self.text, self.placeholder, self.aria_label, self.name, self.id, self.classes]
        return " ".join(part for part in parts if part).lower()


class PageSnapshot(BaseModel):
    """Bounded snapshot of the interactive elements of a page."""

    url: str = ""
    title: str = ""
    elements: List[ElementInfo] = Field(default_factory=list)


class ElementSuggestion(BaseModel):
    """Selector proposed for an unclassified step."""

    selector: Optional[str] = None
    confidence: str = "low"
    reason: str = ""
    source: Literal["ai", "scored"] = "scored"
    score: int = 0
    element: Optional[ElementInfo] = None


class FrameConfig(BaseModel):
    """Live-frame stream parameters."""

    quality: int = Field(30, ge=1, le=100)
    max_width: int = 1024
    max_height: int = 576
    every_nth_frame: int = Field(3, ge=1)
    max_fps: int = Field(5, ge=1)

    @property
    def min_interval_ms(self) -> int:
        return 1000 // self.max_fps
