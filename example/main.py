import asyncio

from awx_server import AWXServer
from awx_job_client.client import AWXClient
from awx_job_client.errors import AWXClientError
from awx_job_client.models import BackoffConfig, WatchConfig
from awx_job_client.watcher import BackoffWatcher


async def status_changed(snapshot):
    print(f"Job {snapshot.id} status changed to: {snapshot.status.value}")
    print(f"Request time: {snapshot.elapsed_time:.6f}s")


async def main():
    PORT = 8000
    server = AWXServer(
        status_script=["pending", "waiting", "running", "running", "successful"],
        first_job_id=7,
    )
    server.add_template("deploy", template_id=42, inventory=1)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = WatchConfig(poll_interval=0.5, max_attempts=10, timeout=60.0)
    watcher = BackoffWatcher(
        backoff=BackoffConfig(backoff_factor=1.5, max_delay=4.0),
        on_status_change=status_changed,
    )

    async with AWXClient(f"http://localhost:{PORT}", config) as client:
        try:
            result = await client.launch_by_name("deploy", watcher=watcher)
            print(f"Launched workflow job: {result.launch.workflow_job}")
            print(f"Final status: {result.job.status.value}")
        except AWXClientError as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
