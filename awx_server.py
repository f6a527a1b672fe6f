from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple, Union

from aiohttp import web
from loguru import logger


class AWXServer:
    """Local stand-in for the AWX workflow job template and workflow job endpoints.

    Every launched job walks through `status_script`, one entry per status
    request; the last entry repeats once the script is exhausted.
    """

    def __init__(
        self,
        status_script: Sequence[str] = ("pending", "running", "successful"),
        first_job_id: int = 1,
    ):
        self.status_script = list(status_script)
        self.next_job_id = first_job_id
        self.next_template_id = 1
        self.templates: Dict[int, dict] = {}
        self.jobs: Dict[int, dict] = {}
        self.poll_counts: Dict[int, int] = defaultdict(int)
        self.requests: List[str] = []
        # when set, launches answer with this job id instead of creating a job
        self.launch_job_id: Optional[int] = None
        # (status, body, content type) sent instead of the normal launch or status answer
        self.launch_response: Optional[Tuple[int, Union[str, bytes], str]] = None
        self.status_response: Optional[Tuple[int, Union[str, bytes], str]] = None
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application(middlewares=[self._record])
        self.app.router.add_get("/api/v2/workflow_job_templates/", self.handle_list)
        self.app.router.add_post("/api/v2/workflow_job_templates/", self.handle_create)
        self.app.router.add_patch(
            "/api/v2/workflow_job_templates/{id:\\d+}/", self.handle_update
        )
        self.app.router.add_delete(
            "/api/v2/workflow_job_templates/{id:\\d+}/", self.handle_delete
        )
        self.app.router.add_post(
            "/api/v2/workflow_job_templates/{id:\\d+}/launch/", self.handle_launch
        )
        self.app.router.add_get("/api/v2/workflow_jobs/{id:\\d+}/", self.handle_status)
        self.logger = logger

    @web.middleware
    async def _record(self, request, handler):
        self.requests.append(f"{request.method} {request.path}")
        return await handler(request)

    def _canned(self, canned: Tuple[int, Union[str, bytes], str]) -> web.Response:
        status, body, content_type = canned
        if isinstance(body, str):
            body = body.encode("utf-8")
        return web.Response(status=status, body=body, headers={"Content-Type": content_type})

    def add_template(self, name: str, template_id: Optional[int] = None, **fields) -> dict:
        if template_id is None:
            template_id = self.next_template_id
        self.next_template_id = max(self.next_template_id, template_id + 1)
        template = {"id": template_id, "name": name, "description": "", **fields}
        self.templates[template_id] = template
        return template

    def _template_or_404(self, request) -> dict:
        template = self.templates.get(int(request.match_info["id"]))
        if template is None:
            raise web.HTTPNotFound(
                text='{"detail": "Not found."}', content_type="application/json"
            )
        return template

    async def handle_list(self, request):
        results = list(self.templates.values())
        name = request.query.get("name")
        if name is not None:
            results = [t for t in results if t["name"] == name]
        return web.json_response(
            {"count": len(results), "next": None, "previous": None, "results": results}
        )

    async def handle_create(self, request):
        data = await request.json()
        template = self.add_template(**data)
        self.logger.info(f"Created workflow job template {template['id']}")
        return web.json_response(template, status=201)

    async def handle_update(self, request):
        template = self._template_or_404(request)
        template.update(await request.json())
        return web.json_response(template)

    async def handle_delete(self, request):
        template = self._template_or_404(request)
        del self.templates[template["id"]]
        return web.Response(status=204)

    async def handle_launch(self, request):
        template = self._template_or_404(request)
        if self.launch_response is not None:
            return self._canned(self.launch_response)
        if self.launch_job_id is not None:
            self.logger.info(f"Returning fixed job id {self.launch_job_id}")
            return web.json_response(
                {"workflow_job": self.launch_job_id, "ignored_fields": {}}, status=201
            )

        job_id = self.next_job_id
        self.next_job_id += 1
        self.jobs[job_id] = {
            "id": job_id,
            "name": template["name"],
            "workflow_job_template": template["id"],
        }
        self.logger.info(f"Launched job {job_id} from template {template['id']}")
        return web.json_response(
            {"workflow_job": job_id, "id": job_id, "ignored_fields": {}}, status=201
        )

    async def handle_status(self, request):
        job_id = int(request.match_info["id"])
        job = self.jobs.get(job_id)
        if job is None:
            return web.json_response({"detail": "Not found."}, status=404)

        if self.status_response is not None:
            self.logger.info(f"Returning canned status response for job {job_id}")
            return self._canned(self.status_response)

        index = min(self.poll_counts[job_id], len(self.status_script) - 1)
        self.poll_counts[job_id] += 1
        status = self.status_script[index]
        self.logger.info(f"Returning {status} status for job {job_id}")
        return web.json_response(
            {
                **job,
                "status": status,
                "failed": status in ("failed", "error"),
                "elapsed": float(index),
            }
        )

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
