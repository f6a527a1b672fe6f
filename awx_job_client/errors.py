from typing import Iterable, Optional

from awx_job_client.models import JobSnapshot, WorkflowJobLaunch


class AWXClientError(Exception):
    """Base class for every error raised by the client.

    `launch` holds the launch acknowledgment when one was received before the
    error, and is None otherwise.
    """

    launch: Optional[WorkflowJobLaunch] = None


class TransportError(AWXClientError):
    """The request could not be sent or its response could not be decoded"""


class APIError(AWXClientError):
    """The server answered with a non-2xx status"""

    def __init__(self, status: int, message: str, url: Optional[str] = None):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(f"HTTP {status} at {url}: {message}")


class ResourceNotFoundError(APIError):
    def __init__(self, collection: str, name: str):
        self.collection = collection
        self.name = name
        super().__init__(404, f"{collection} named {name!r} can't be found")


class ValidationError(AWXClientError):
    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Mandatory input arguments are absent: {', '.join(self.missing_fields)}"
        )


class LaunchError(AWXClientError):
    def __init__(self, template_id: int, launch: WorkflowJobLaunch):
        self.template_id = template_id
        self.launch = launch
        super().__init__(
            f"Launching template {template_id} returned invalid job id {launch.workflow_job}"
        )


class AttemptsExhaustedError(AWXClientError):
    """The job was still in flight after the configured number of polls"""

    def __init__(self, max_attempts: int, snapshot: JobSnapshot):
        self.max_attempts = max_attempts
        self.snapshot = snapshot
        super().__init__(
            f"The maximum number {max_attempts} of checking job {snapshot.id} "
            f"status has been reached (last status: {snapshot.status.value})"
        )


class WatchTimeoutError(AWXClientError, TimeoutError):
    def __init__(self, job_id: int, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job {job_id} did not complete within {timeout} seconds")
