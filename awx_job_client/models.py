from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    pending = "pending"
    waiting = "waiting"
    running = "running"
    successful = "successful"
    failed = "failed"
    error = "error"
    canceled = "canceled"

    @property
    def is_in_flight(self) -> bool:
        return self in IN_FLIGHT_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.is_in_flight


IN_FLIGHT_STATUSES = frozenset(
    {JobStatus.pending, JobStatus.waiting, JobStatus.running}
)

# max_attempts value that disables the attempt bound
UNBOUNDED = None


class JobSnapshot(BaseModel):
    id: int
    status: JobStatus
    name: Optional[str] = None
    failed: bool = False
    started: Optional[str] = None
    finished: Optional[str] = None
    elapsed: Optional[float] = None
    raw_response: dict
    elapsed_time: float = 0.0


class WatchConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(default=1.0, ge=0)
    max_attempts: Optional[Annotated[int, Field(ge=1)]] = 10
    timeout: Optional[Annotated[float, Field(gt=0)]] = None

    @property
    def bounded(self) -> bool:
        return self.max_attempts is not UNBOUNDED


class BackoffConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    backoff_factor: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=32.0, ge=0)
    jitter: bool = True


class WorkflowJobLaunch(BaseModel):
    model_config = ConfigDict(extra="allow")

    workflow_job: int = 0
    id: Optional[int] = None
    ignored_fields: dict = Field(default_factory=dict)

    @field_validator("workflow_job", mode="before")
    @classmethod
    def _null_job_is_no_job(cls, value):
        return 0 if value is None else value


class WorkflowJobTemplate(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    description: str = ""
    inventory: Optional[int] = None
    organization: Optional[int] = None


class ListResponse(BaseModel):
    count: int = 0
    next: Optional[str] = None
    previous: Optional[str] = None
    results: List[dict] = Field(default_factory=list)


class APIResponse(BaseModel):
    status: int
    reason: Optional[str] = None
    method: str
    url: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class LaunchResult(BaseModel):
    launch: WorkflowJobLaunch
    job: JobSnapshot
