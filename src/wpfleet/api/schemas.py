# src/wpfleet/api/schemas.py
# Pydantic models for stored records and API requests/responses.
# JSON bodies use camelCase; Python code uses the snake_case field names.
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SiteStatus = Literal['ok', 'error', 'updating', 'needs_updates']
LogStatus = Literal['in_progress', 'success', 'error']


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Record(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Stored records

class User(Record):
    id: int
    username: str
    password_hash: str
    email: str
    created_at: datetime


class Site(Record):
    id: int
    name: str
    url: str
    status: SiteStatus = 'ok'
    last_backup: Optional[datetime] = None
    last_update: Optional[datetime] = None
    last_check: Optional[datetime] = None
    wp_cli_path: Optional[str] = None
    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_key: Optional[str] = None
    pages_to_scan: List[str] = Field(default_factory=list)
    plugin_update_count: int = 0
    last_error: Optional[str] = None
    created_at: datetime


class MaintenanceLog(Record):
    id: int
    site_id: int
    type: str  # full_maintenance, backup, screenshot, update, comparison
    status: LogStatus
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    completed_at: Optional[datetime] = None


class Report(Record):
    id: int
    name: str
    type: str  # weekly, monthly, backup_status, error_summary
    description: Optional[str] = None
    file_path: Optional[str] = None
    generated_at: datetime


class ComparisonResult(CamelModel):
    differences: float
    threshold: float
    passed: bool


class Screenshot(Record):
    id: int
    site_id: int
    page: str
    before_path: Optional[str] = None
    after_path: Optional[str] = None
    comparison_result: Optional[ComparisonResult] = None
    taken_at: datetime


# Requests

class LoginRequest(CamelModel):
    username: str
    password: str


class SiteCreate(CamelModel):
    name: str = Field(..., min_length=1, description="Display name of the site")
    url: str = Field(..., min_length=1, description="Public URL of the WordPress install")
    wp_cli_path: Optional[str] = Field(None, description="Path to the wp binary on the host")
    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_key: Optional[str] = None
    pages_to_scan: List[str] = Field(default_factory=list, description="Paths captured by the screenshot step")


class SiteUpdate(CamelModel):
    """Partial site update; only the fields present in the body are applied."""
    name: Optional[str] = None
    url: Optional[str] = None
    status: Optional[SiteStatus] = None
    last_backup: Optional[datetime] = None
    last_update: Optional[datetime] = None
    last_check: Optional[datetime] = None
    wp_cli_path: Optional[str] = None
    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_key: Optional[str] = None
    pages_to_scan: Optional[List[str]] = None
    plugin_update_count: Optional[int] = Field(None, ge=0)
    last_error: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        # null clears nullable fields; it is ignored for required ones
        required = {'name', 'url', 'status', 'pages_to_scan', 'plugin_update_count'}
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key not in required
        }


class ReportCreate(CamelModel):
    name: str
    type: str = Field(..., description="weekly, monthly, backup_status or error_summary")
    description: Optional[str] = None


# Responses

class UserOut(CamelModel):
    id: int
    username: str
    email: str


class UserResponse(CamelModel):
    user: UserOut


class MessageResponse(CamelModel):
    message: str


class WorkflowStarted(CamelModel):
    message: str
    log_id: int


class ActivityItem(CamelModel):
    id: int
    message: str
    status: str
    timestamp: datetime


class DashboardStats(CamelModel):
    total_sites: int
    sites_ok: int
    need_updates: int
    errors: int
    recent_activity: List[ActivityItem]
