from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware

from .audit import AuditLog
from .config import Settings, settings
from .logger import logger
from .robot import RobotCommandExecutor, RobotLink
from .routers import commands, schedules, system, ws
from .schedules import Scheduler, ScheduleStore
from .websocket.hub import BroadcastHub


def create_app(config: Settings = settings) -> FastAPI:
    """Build the bridge application.

    The scheduler and its collaborators are created in the lifespan handler
    and exposed on ``app.state``; the scheduler is disposed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up the schedule engine...")
        audit_log_file = (
            config.logs_dir / config.audit.log_file if config.audit.enabled else None
        )
        app.state.audit = AuditLog(audit_log_file, max_entries=config.audit.max_entries)
        app.state.hub = BroadcastHub()
        # Empty until the host attaches its MQTT session via app.state.robot.attach()
        app.state.robot = RobotLink()
        app.state.scheduler = Scheduler(
            store=ScheduleStore(config.schedules.storage_path),
            execute=RobotCommandExecutor(app.state.robot),
            broadcast=app.state.hub.broadcast,
            add_audit=app.state.audit.add,
            strict_patch_validation=config.schedules.strict_patch_validation,
        )
        logger.info("Startup complete.")
        try:
            yield
        finally:
            logger.info("Shutting down...")
            app.state.scheduler.dispose()
            app.state.robot.detach()

    app = FastAPI(lifespan=lifespan, title="Roomba Bridge")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system.router, prefix="/api")
    app.include_router(schedules.router, prefix="/api")
    # Registered last: its "/{command}" path would otherwise shadow other POST routes
    app.include_router(commands.router, prefix="/api")
    app.include_router(ws.router)

    if config.static_path is not None:
        app.mount(
            "/",
            StaticFiles(directory=config.static_path.resolve(), html=True),
            name="static",
        )

    return app


app = create_app()
