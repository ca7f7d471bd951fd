import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from .api import filesystems
from .dependencies import (
    get_filesystem_controller,
    get_mount_monitor,
    get_settings,
    get_status_history,
)
from .logging_config import setup_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging(settings)

    config_info = settings.config_file_info
    logging.info(f"Configuration loaded from: {config_info['active_config_file']}")
    logging.info(f"Running on hostname: {config_info['hostname']}")
    if len(config_info["all_available_configs"]) > 1:
        logging.info(
            f"Available config files: {', '.join(config_info['all_available_configs'])}"
        )

    logging.info("Mount Agent starting up...")
    logging.info(f"Filesystem storage: {settings.filesystems_path}")
    logging.info(f"Mount root: {settings.mount_root_path}")

    status_history = get_status_history()
    await status_history.start()

    controller = get_filesystem_controller()
    await controller.load_filesystems()

    mount_monitor = get_mount_monitor()
    await mount_monitor.start_monitoring()

    yield

    # Shutdown
    logging.info("Mount Agent shutting down...")
    await mount_monitor.stop_monitoring()
    await controller.shutdown()
    await status_history.stop()
    logging.info("Alle background tasks stoppet")


app = FastAPI(
    title="Mount Agent",
    description="Supervises FUSE mount helpers for configured remote filesystems",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logging.debug(f"Incoming request: {request.method} {request.url.path}")
    response = await call_next(request)
    logging.debug(f"Response: {response.status_code} for {request.url.path}")
    return response


app.include_router(filesystems.router)


@app.get("/health")
async def health():
    """Detaljeret health check."""
    controller = get_filesystem_controller()
    return {
        "status": "healthy",
        "service": "mount-agent",
        "filesystems": len(controller.list_filesystems()),
        "monitoring": get_mount_monitor().is_running,
    }


def run() -> None:
    uvicorn.run(
        "mount_agent.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
