import asyncio

import pydantic
from loguru import logger

from awx_job_client.errors import TransportError
from awx_job_client.models import JobSnapshot
from awx_job_client.transport import Transport

_SNAPSHOT_FIELDS = ("id", "status", "name", "failed", "started", "finished", "elapsed")


class JobPoller:
    """Fetches the current status snapshot of a workflow job. Never retries."""

    endpoint_template = "/api/v2/workflow_jobs/{job_id}/"

    def __init__(self, transport: Transport):
        self.transport = transport
        self.logger = logger

    async def poll(self, job_id: int) -> JobSnapshot:
        if isinstance(job_id, bool) or not isinstance(job_id, int) or job_id <= 0:
            raise ValueError(f"job id must be a positive integer, got {job_id!r}")

        start_time = asyncio.get_running_loop().time()
        response = await self.transport.get_json(
            self.endpoint_template.format(job_id=job_id)
        )
        self.transport.check_response(response)

        data = response.data
        if not isinstance(data, dict):
            raise TransportError(f"Job {job_id} status response is not an object")
        try:
            snapshot = JobSnapshot(
                **{key: data[key] for key in _SNAPSHOT_FIELDS if key in data},
                raw_response=data,
                elapsed_time=asyncio.get_running_loop().time() - start_time,
            )
        except pydantic.ValidationError as e:
            self.logger.error(f"Unreadable status for job {job_id}: {e}")
            raise TransportError(f"Unreadable status for job {job_id}") from e

        self.logger.debug(f"Job {job_id} is {snapshot.status.value}")
        return snapshot
