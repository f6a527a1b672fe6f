from typing import Optional

import pydantic
from loguru import logger

from awx_job_client.errors import AWXClientError, LaunchError, TransportError
from awx_job_client.models import LaunchResult, WatchConfig, WorkflowJobLaunch
from awx_job_client.poller import JobPoller
from awx_job_client.transport import Transport
from awx_job_client.watcher import JobWatchStrategy, PollingWatcher


class Launcher:
    """Launches workflow jobs and hands them to a watch strategy.

    The launcher holds no polling logic; whatever the strategy returns or
    raises is passed through to the caller. Client errors from the watch get
    the launch acknowledgment attached as `launch`.
    """

    endpoint_template = "/api/v2/workflow_job_templates/{template_id}/launch/"

    def __init__(self, transport: Transport, poller: Optional[JobPoller] = None):
        self.transport = transport
        self.poller = poller or JobPoller(transport)
        self.logger = logger

    async def trigger(self, template_id: int) -> WorkflowJobLaunch:
        """Starts a workflow job from the template and returns the acknowledgment"""
        response = await self.transport.post_json(
            self.endpoint_template.format(template_id=template_id)
        )
        self.transport.check_response(response)

        data = response.data if response.data is not None else {}
        if not isinstance(data, dict):
            self.logger.error(f"Template {template_id} launch answered with {data!r}")
            raise TransportError(f"Launch response for template {template_id} is not an object")
        try:
            launch = WorkflowJobLaunch.model_validate(data)
        except pydantic.ValidationError as e:
            self.logger.error(
                f"Template {template_id} launch returned job id {data.get('workflow_job')!r}"
            )
            raise LaunchError(template_id, WorkflowJobLaunch()) from e
        if launch.workflow_job <= 0:
            self.logger.error(
                f"Template {template_id} launch returned job id {launch.workflow_job}"
            )
            raise LaunchError(template_id, launch)

        self.logger.info(f"Template {template_id} launched workflow job {launch.workflow_job}")
        return launch

    async def launch(
        self,
        template_id: int,
        watcher: Optional[JobWatchStrategy] = None,
        config: Optional[WatchConfig] = None,
    ) -> LaunchResult:
        launch = await self.trigger(template_id)
        watcher = watcher or PollingWatcher()
        try:
            job = await watcher.watch(
                self.poller, launch.workflow_job, config or WatchConfig()
            )
        except AWXClientError as e:
            e.launch = launch
            raise
        return LaunchResult(launch=launch, job=job)
