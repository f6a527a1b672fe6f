from typing import Optional

import aiohttp
from loguru import logger

from awx_job_client.launcher import Launcher
from awx_job_client.models import JobSnapshot, LaunchResult, WatchConfig
from awx_job_client.poller import JobPoller
from awx_job_client.resources import workflow_job_templates
from awx_job_client.transport import Transport
from awx_job_client.watcher import JobWatchStrategy, PollingWatcher, StatusCallback


class AWXClient:
    def __init__(
        self,
        base_url: str,
        config: Optional[WatchConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 30.0,
    ):
        self.config = config or WatchConfig()
        self.logger = logger
        self.transport = Transport(base_url, session=session, request_timeout=request_timeout)
        self.poller = JobPoller(self.transport)
        self.launcher = Launcher(self.transport, self.poller)
        self.workflow_job_templates = workflow_job_templates(self.transport)
        self.default_watcher = PollingWatcher(on_status_change=on_status_change)

    async def __aenter__(self) -> "AWXClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def launch(
        self,
        template_id: int,
        watcher: Optional[JobWatchStrategy] = None,
        config: Optional[WatchConfig] = None,
    ) -> LaunchResult:
        """Launch a workflow job template and wait for the job using the given strategy"""
        return await self.launcher.launch(
            template_id,
            watcher=watcher or self.default_watcher,
            config=config or self.config,
        )

    async def launch_by_name(
        self,
        name: str,
        watcher: Optional[JobWatchStrategy] = None,
        config: Optional[WatchConfig] = None,
    ) -> LaunchResult:
        template = await self.workflow_job_templates.get_by_name(name)
        self.logger.debug(f"Resolved workflow job template {name!r} to id {template.id}")
        return await self.launch(template.id, watcher=watcher, config=config)

    async def get_job(self, job_id: int) -> JobSnapshot:
        return await self.poller.poll(job_id)
