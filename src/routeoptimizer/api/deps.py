"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from routeoptimizer.config import Settings
from routeoptimizer.services import JobOrchestrator, OrchestratorContext, StatusQueryService


# ─────────────────────────────────────────────────────────────────────────────
# Application state (populated by the lifespan)
# ─────────────────────────────────────────────────────────────────────────────

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_context(request: Request) -> OrchestratorContext:
    return request.app.state.context


def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator


def get_status_service(request: Request) -> StatusQueryService:
    return request.app.state.status_service


# ─────────────────────────────────────────────────────────────────────────────
# Type aliases for cleaner signatures
# ─────────────────────────────────────────────────────────────────────────────

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
ContextDep = Annotated[OrchestratorContext, Depends(get_context)]
OrchestratorDep = Annotated[JobOrchestrator, Depends(get_orchestrator)]
StatusServiceDep = Annotated[StatusQueryService, Depends(get_status_service)]
