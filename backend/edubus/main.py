from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edubus.api.routes import health, notifications, route_schedules, routes, schedules, trips
from edubus.core.config import get_settings
from edubus.core.exceptions import AppError
from edubus.db.bootstrap import ensure_runtime_schema_compatibility

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema_compatibility()
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(schedules.router, prefix=f"{settings.api_prefix}/schedules", tags=["schedules"])
app.include_router(route_schedules.router, prefix=f"{settings.api_prefix}/route-schedules", tags=["route-schedules"])
app.include_router(routes.router, prefix=f"{settings.api_prefix}/routes", tags=["routes"])
app.include_router(trips.router, prefix=f"{settings.api_prefix}/trips", tags=["trips"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
