"""FastAPI backend wiring feasibility_engine + advisor + project store + excel.

Run: uvicorn backend.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
from anthropic import AsyncAnthropic
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from backend.advisor import analyze_feasibility
from backend.config import settings
from backend.excel_generator import generate_excel
from backend.project_store import LocalTable, Repository, SupabaseTable
from feasibility_engine import compute_feasibility
from project_model import (
    DEFAULT_CUB,
    LandRecord,
    ProjectInput,
    StandardType,
    apply_land,
    apply_standard,
    default_project,
    to_document,
)

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)-8s %(message)s")
log = logging.getLogger("api")

LOCAL_SAVE_MESSAGE = "Salvo localmente. Configure o Supabase para salvar na nuvem."

# ---------------------------------------------------------------------------
# Lifespan: manage httpx client, Anthropic client and repositories
# ---------------------------------------------------------------------------

_http_client: httpx.AsyncClient | None = None
_anthropic: AsyncAnthropic | None = None
_projects: Repository | None = None
_lands: Repository | None = None


def _build_repositories(client: httpx.AsyncClient) -> None:
    global _projects, _lands
    local_dir = Path(settings.LOCAL_STORE_DIR)
    _projects = Repository(
        SupabaseTable(client, settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY,
                      settings.PROJECTS_TABLE, timeout=settings.REQUEST_TIMEOUT),
        LocalTable(local_dir / "projects.json"),
    )
    _lands = Repository(
        SupabaseTable(client, settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY,
                      settings.LANDS_TABLE, timeout=settings.REQUEST_TIMEOUT),
        LocalTable(local_dir / "lands.json"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _http_client, _anthropic
    _http_client = httpx.AsyncClient(follow_redirects=True)
    _build_repositories(_http_client)
    if settings.ANTHROPIC_API_KEY:
        _anthropic = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        log.info("Anthropic client initialized")
    else:
        _anthropic = None
        log.warning("ANTHROPIC_API_KEY not set, advisor returns a placeholder")
    if not _projects.remote.configured:
        log.warning("Supabase not configured, using local store at %s", settings.LOCAL_STORE_DIR)
    log.info("Server started")
    yield
    await _http_client.aclose()
    log.info("Server stopped")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.APP_NAME,
    description="Real estate development feasibility: costs, VGV, cash flow and dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request/Response models
# ---------------------------------------------------------------------------

class StandardRequest(BaseModel):
    project: ProjectInput
    standard: StandardType


class ApplyLandRequest(BaseModel):
    project: ProjectInput
    land: LandRecord


class AdvisorRequest(BaseModel):
    project: ProjectInput
    question: str | None = None


class DatabaseSettingsRequest(BaseModel):
    url: str
    key: str


def _repos() -> tuple[Repository, Repository]:
    if not _projects or not _lands:
        raise HTTPException(500, "Server not ready")
    return _projects, _lands


def _normalize(records: list[dict[str, Any]], model: type[BaseModel]) -> list[dict]:
    """Validate stored documents, upgrading legacy shapes; skip broken rows."""
    out = []
    for record in records:
        try:
            out.append(to_document(model.model_validate(record)))
        except ValidationError as exc:
            log.warning("Skipping invalid %s record %s: %s", model.__name__, record.get("id"), exc)
    return out


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

@app.get("/api/projects/default")
async def get_default_project() -> dict:
    """Starter scenario for a new project."""
    return to_document(default_project())


@app.get("/api/cub")
async def get_cub_table() -> dict:
    """Default construction cost per m² (CUB) by finishing standard."""
    return {std.value: value for std, value in DEFAULT_CUB.items()}


@app.post("/api/projects/standard")
async def change_standard(req: StandardRequest) -> dict:
    """Switch the finishing standard, refreshing the flat CUB value."""
    return to_document(apply_standard(req.project, req.standard))


@app.post("/api/feasibility")
async def run_feasibility(project: ProjectInput) -> dict:
    """Compute the full feasibility result for a scenario."""
    return compute_feasibility(project)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

@app.get("/api/projects")
async def list_projects() -> dict:
    projects, _ = _repos()
    records, source = await projects.fetch_all()
    return {"source": source, "projects": _normalize(records, ProjectInput)}


@app.post("/api/projects")
async def save_project(project: ProjectInput) -> dict:
    projects, _ = _repos()
    saved, source = await projects.save(to_document(project))
    return {
        "source": source,
        "project": saved,
        "message": LOCAL_SAVE_MESSAGE if source == "local" else "Projeto salvo com sucesso.",
    }


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str) -> dict:
    projects, _ = _repos()
    source = await projects.delete(project_id)
    return {"source": source, "deleted": project_id}


@app.get("/api/projects/{project_id}/feasibility")
async def project_feasibility(project_id: str) -> dict:
    """Load a saved snapshot and recompute its result."""
    projects, _ = _repos()
    try:
        record, source = await projects.get(project_id)
        if record is None:
            raise HTTPException(404, f"Project {project_id} not found")
        project = ProjectInput.model_validate(record)
        return {"source": source, "project": to_document(project), "result": compute_feasibility(project)}
    except HTTPException:
        raise
    except Exception as exc:
        log.error("Feasibility error: %s", exc, exc_info=True)
        raise HTTPException(500, str(exc))


# ---------------------------------------------------------------------------
# Land registry
# ---------------------------------------------------------------------------

@app.get("/api/lands")
async def list_lands() -> dict:
    _, lands = _repos()
    records, source = await lands.fetch_all()
    return {"source": source, "lands": _normalize(records, LandRecord)}


@app.post("/api/lands")
async def save_land(land: LandRecord) -> dict:
    _, lands = _repos()
    saved, source = await lands.save(to_document(land))
    return {"source": source, "land": saved}


@app.delete("/api/lands/{land_id}")
async def delete_land(land_id: str) -> dict:
    _, lands = _repos()
    source = await lands.delete(land_id)
    return {"source": source, "deleted": land_id}


@app.post("/api/lands/apply")
async def use_land_in_project(req: ApplyLandRequest) -> dict:
    """Copy a registry land's area and price into the project."""
    return to_document(apply_land(req.project, req.land))


# ---------------------------------------------------------------------------
# Advisor and export
# ---------------------------------------------------------------------------

@app.post("/api/advisor")
async def advisor(req: AdvisorRequest) -> dict:
    """Narrative commentary on the scenario (placeholder text on failure)."""
    result = compute_feasibility(req.project)
    text = await analyze_feasibility(
        _anthropic, req.project, result, req.question, model=settings.ADVISOR_MODEL,
    )
    return {"analysis": text}


@app.post("/api/excel")
async def download_excel(project: ProjectInput) -> Response:
    """Generate and download the .xlsx feasibility report."""
    try:
        result = compute_feasibility(project)
        xlsx_bytes = generate_excel(project, result)
        return Response(
            content=xlsx_bytes,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={
                "Content-Disposition": f'attachment; filename="viabilidade_{project.id or "projeto"}.xlsx"',
            },
        )
    except Exception as exc:
        log.error("Excel error: %s", exc, exc_info=True)
        raise HTTPException(500, str(exc))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _mask(key: str) -> str:
    return f"{key[:6]}…{key[-4:]}" if len(key) > 12 else ("*" * len(key))


@app.get("/api/settings/database")
async def get_database_settings() -> dict:
    projects, _ = _repos()
    return {
        "url": settings.SUPABASE_URL,
        "key": _mask(settings.SUPABASE_ANON_KEY),
        "configured": projects.remote.configured,
        "connected": await projects.remote.test_connection(),
    }


@app.post("/api/settings/database")
async def update_database_settings(req: DatabaseSettingsRequest) -> dict:
    """Point the stores at another Supabase project (kept in memory)."""
    if not _http_client:
        raise HTTPException(500, "Server not ready")
    settings.SUPABASE_URL = req.url.strip()
    settings.SUPABASE_ANON_KEY = req.key.strip()
    _build_repositories(_http_client)
    log.info("Database settings updated: %s", settings.SUPABASE_URL)
    return await get_database_settings()


@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "anthropic": _anthropic is not None,
        "database": bool(_projects and _projects.remote.configured),
    }
