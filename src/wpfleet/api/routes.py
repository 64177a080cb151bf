# src/wpfleet/api/routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from wpfleet.api.auth import SESSION_USER_KEY, authenticate_user, login_session, logout_session, require_auth
from wpfleet.api.schemas import (DashboardStats, LoginRequest, MaintenanceLog, MessageResponse, Report,
                                 ReportCreate, Site, SiteCreate, SiteUpdate, UserOut, UserResponse,
                                 WorkflowStarted)
from wpfleet.engine.dashboard import compute_dashboard_stats
from wpfleet.engine.job_manager import JobManager, SiteBusyError
from wpfleet.engine.report_service import ReportService
from wpfleet.engine.storage import Storage

router = APIRouter()


def get_store(request: Request) -> Storage:
    return request.app.state.store


def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


def _user_out(user) -> UserResponse:
    return UserResponse(user=UserOut(id=user.id, username=user.username, email=user.email))


def _get_site_or_404(store: Storage, site_id: int) -> Site:
    site = store.get_site(site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


@router.get("/health")
def health_check():
    return {"status": "ok"}


# Auth

@router.post(
    "/api/auth/login",
    summary="Log in and start a session",
    tags=["Auth"],
    response_model=UserResponse,
    responses={
        200: {"description": "Logged in"},
        401: {"description": "Invalid credentials"},
    },
)
def login(body: LoginRequest, request: Request, store: Storage = Depends(get_store)):
    user = authenticate_user(store, body.username, body.password)
    if not user:
        logging.info(f"Failed login for username={body.username}")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    login_session(request, user)
    logging.info(f"[user_id={user.id}] Logged in.")
    return _user_out(user)


@router.post("/api/auth/logout", tags=["Auth"], response_model=MessageResponse)
def logout(request: Request):
    logout_session(request)
    return MessageResponse(message="Logged out successfully")


@router.get("/api/auth/me", tags=["Auth"], response_model=UserResponse)
def current_user(request: Request, store: Storage = Depends(get_store)):
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return _user_out(user)


# Sites

@router.get("/api/sites", tags=["Sites"], response_model=List[Site],
            dependencies=[Depends(require_auth)])
def list_sites(store: Storage = Depends(get_store)):
    return store.list_sites()


@router.get(
    "/api/sites/{site_id}",
    tags=["Sites"],
    response_model=Site,
    responses={404: {"description": "Site not found"}},
    dependencies=[Depends(require_auth)],
)
def get_site(site_id: int, store: Storage = Depends(get_store)):
    return _get_site_or_404(store, site_id)


@router.post(
    "/api/sites",
    summary="Register a WordPress site",
    tags=["Sites"],
    status_code=201,
    response_model=Site,
    responses={
        201: {"description": "Site created"},
        400: {"description": "Invalid site data"},
    },
    dependencies=[Depends(require_auth)],
)
def create_site(body: SiteCreate, store: Storage = Depends(get_store)):
    site = store.create_site(body.model_dump())
    logging.info(f"[site_id={site.id}] Created site {site.name} ({site.url})")
    return site


@router.put(
    "/api/sites/{site_id}",
    summary="Update site fields",
    tags=["Sites"],
    response_model=Site,
    responses={404: {"description": "Site not found"}},
    dependencies=[Depends(require_auth)],
)
def update_site(site_id: int, body: SiteUpdate, store: Storage = Depends(get_store)):
    site = store.update_site(site_id, body.to_patch())
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


@router.delete(
    "/api/sites/{site_id}",
    summary="Delete a site; its maintenance logs are kept",
    tags=["Sites"],
    response_model=MessageResponse,
    responses={404: {"description": "Site not found"}},
    dependencies=[Depends(require_auth)],
)
def delete_site(site_id: int, store: Storage = Depends(get_store)):
    if not store.delete_site(site_id):
        raise HTTPException(status_code=404, detail="Site not found")
    logging.info(f"[site_id={site_id}] Deleted site.")
    return MessageResponse(message="Site deleted successfully")


# Maintenance workflows

def _start_workflow(start, site: Site) -> int:
    try:
        return start(site)
    except SiteBusyError:
        raise HTTPException(status_code=409, detail="Maintenance already running for this site")


@router.post(
    "/api/maintenance/run/{site_id}",
    summary="Start full maintenance (backup, screenshots, plugin updates)",
    response_description="Id of the maintenance log tracking the run",
    tags=["Maintenance"],
    response_model=WorkflowStarted,
    responses={
        200: {"description": "Maintenance started"},
        404: {"description": "Site not found"},
        409: {"description": "A run is already in flight for the site"},
    },
    dependencies=[Depends(require_auth)],
)
def run_maintenance(site_id: int, store: Storage = Depends(get_store),
                    job_manager: JobManager = Depends(get_job_manager)):
    """
    Submit the maintenance workflow. Returns immediately; poll the logs for progress.
    """
    site = _get_site_or_404(store, site_id)
    log_id = _start_workflow(job_manager.run_maintenance, site)
    return WorkflowStarted(message="Maintenance started", log_id=log_id)


@router.post(
    "/api/maintenance/backup/{site_id}",
    summary="Start a backup",
    tags=["Maintenance"],
    response_model=WorkflowStarted,
    responses={
        200: {"description": "Backup started"},
        404: {"description": "Site not found"},
        409: {"description": "A run is already in flight for the site"},
    },
    dependencies=[Depends(require_auth)],
)
def run_backup(site_id: int, store: Storage = Depends(get_store),
               job_manager: JobManager = Depends(get_job_manager)):
    site = _get_site_or_404(store, site_id)
    log_id = _start_workflow(job_manager.run_backup, site)
    return WorkflowStarted(message="Backup started", log_id=log_id)


# Logs, reports, dashboard

@router.get("/api/logs", tags=["Logs"], response_model=List[MaintenanceLog],
            dependencies=[Depends(require_auth)])
def list_logs(site_id: Optional[int] = Query(None, alias="siteId"), store: Storage = Depends(get_store)):
    """
    Maintenance logs, newest first. With siteId, only that site's logs in creation order.
    """
    return store.list_maintenance_logs(site_id)


@router.get("/api/reports", tags=["Reports"], response_model=List[Report],
            dependencies=[Depends(require_auth)])
def list_reports(store: Storage = Depends(get_store)):
    return store.list_reports()


@router.post("/api/reports/generate", tags=["Reports"], status_code=201, response_model=Report,
             dependencies=[Depends(require_auth)])
def generate_report(body: ReportCreate, store: Storage = Depends(get_store)):
    return ReportService(store).generate(body.name, body.type, body.description)


@router.get("/api/dashboard/stats", tags=["Dashboard"], response_model=DashboardStats,
            dependencies=[Depends(require_auth)])
def dashboard_stats(store: Storage = Depends(get_store)):
    return compute_dashboard_stats(store)
