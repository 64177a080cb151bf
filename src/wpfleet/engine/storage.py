# src/wpfleet/engine/storage.py
"""
Entity store: the storage interface and its in-memory implementation.

Records are immutable pydantic models. Every operation runs under the
store lock so workflow threads and request handlers never observe a
half-applied update; there are no multi-operation transactions.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from wpfleet.api.schemas import MaintenanceLog, Report, Screenshot, Site, User

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Storage(ABC):
    """Get/list/create/update/delete per entity type.

    Lookups on unknown ids return None (or False for deletes) instead of raising.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utc_now
        self.lock = threading.RLock()

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, username: str, password_hash: str, email: str) -> User: ...

    # Sites
    @abstractmethod
    def list_sites(self) -> List[Site]: ...

    @abstractmethod
    def get_site(self, site_id: int) -> Optional[Site]: ...

    @abstractmethod
    def create_site(self, data: Dict[str, Any]) -> Site: ...

    @abstractmethod
    def update_site(self, site_id: int, patch: Dict[str, Any]) -> Optional[Site]: ...

    @abstractmethod
    def delete_site(self, site_id: int) -> bool: ...

    # Maintenance logs
    @abstractmethod
    def list_maintenance_logs(self, site_id: Optional[int] = None) -> List[MaintenanceLog]: ...

    @abstractmethod
    def create_maintenance_log(self, data: Dict[str, Any],
                               started_at: Optional[datetime] = None) -> MaintenanceLog: ...

    @abstractmethod
    def update_maintenance_log(self, log_id: int, patch: Dict[str, Any]) -> Optional[MaintenanceLog]: ...

    # Reports
    @abstractmethod
    def list_reports(self) -> List[Report]: ...

    @abstractmethod
    def create_report(self, data: Dict[str, Any], generated_at: Optional[datetime] = None) -> Report: ...

    @abstractmethod
    def delete_report(self, report_id: int) -> bool: ...

    # Screenshots
    @abstractmethod
    def list_screenshots(self, site_id: int) -> List[Screenshot]: ...

    @abstractmethod
    def create_screenshot(self, data: Dict[str, Any]) -> Screenshot: ...


# Fields the store owns; patches never overwrite them.
SITE_FIXED_FIELDS = {'id', 'created_at'}
LOG_FIXED_FIELDS = {'id', 'started_at'}
SITE_DEFAULTS = {
    'status': 'ok',
    'last_backup': None,
    'last_update': None,
    'last_check': None,
    'plugin_update_count': 0,
    'last_error': None,
}


def clean_patch(patch: Dict[str, Any], fixed: set) -> Dict[str, Any]:
    return {k: v for k, v in patch.items() if k not in fixed}


class MemStorage(Storage):
    """Dict-backed store keyed by id, with one monotonic counter per entity type."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.users: Dict[int, User] = {}
        self.sites: Dict[int, Site] = {}
        self.maintenance_logs: Dict[int, MaintenanceLog] = {}
        self.reports: Dict[int, Report] = {}
        self.screenshots: Dict[int, Screenshot] = {}
        self._counters = {name: 1 for name in ('user', 'site', 'log', 'report', 'screenshot')}

    def _next_id(self, name: str) -> int:
        value = self._counters[name]
        self._counters[name] = value + 1
        return value

    # Users
    def get_user(self, user_id):
        with self.lock:
            return self.users.get(user_id)

    def get_user_by_username(self, username):
        with self.lock:
            return next((u for u in self.users.values() if u.username == username), None)

    def create_user(self, username, password_hash, email):
        with self.lock:
            if self.get_user_by_username(username):
                raise ValueError(f"User already exists: {username}")
            user = User(id=self._next_id('user'), username=username, password_hash=password_hash,
                        email=email, created_at=self.clock())
            self.users[user.id] = user
            return user

    # Sites
    def list_sites(self):
        with self.lock:
            return list(self.sites.values())

    def get_site(self, site_id):
        with self.lock:
            return self.sites.get(site_id)

    def create_site(self, data):
        with self.lock:
            fields = {**clean_patch(data, SITE_FIXED_FIELDS), **SITE_DEFAULTS}
            if fields.get('pages_to_scan') is None:
                fields['pages_to_scan'] = []
            site = Site(**fields, id=self._next_id('site'), created_at=self.clock())
            self.sites[site.id] = site
            return site

    def update_site(self, site_id, patch):
        with self.lock:
            site = self.sites.get(site_id)
            if site is None:
                return None
            updated = Site.model_validate({**site.model_dump(), **clean_patch(patch, SITE_FIXED_FIELDS)})
            self.sites[site_id] = updated
            return updated

    def delete_site(self, site_id):
        with self.lock:
            return self.sites.pop(site_id, None) is not None

    # Maintenance logs
    def list_maintenance_logs(self, site_id=None):
        with self.lock:
            logs = list(self.maintenance_logs.values())
        if site_id is not None:
            return [log for log in logs if log.site_id == site_id]
        # sort is stable, so equal timestamps keep insertion order
        return sorted(logs, key=lambda log: log.started_at, reverse=True)

    def create_maintenance_log(self, data, started_at=None):
        with self.lock:
            fields = clean_patch(data, LOG_FIXED_FIELDS | {'completed_at'})
            log = MaintenanceLog(**fields, id=self._next_id('log'),
                                 started_at=started_at or self.clock(),
                                 completed_at=data.get('completed_at'))
            self.maintenance_logs[log.id] = log
            return log

    def update_maintenance_log(self, log_id, patch):
        with self.lock:
            log = self.maintenance_logs.get(log_id)
            if log is None:
                return None
            updated = MaintenanceLog.model_validate({**log.model_dump(), **clean_patch(patch, LOG_FIXED_FIELDS)})
            self.maintenance_logs[log_id] = updated
            return updated

    # Reports
    def list_reports(self):
        with self.lock:
            reports = list(self.reports.values())
        return sorted(reports, key=lambda report: report.generated_at, reverse=True)

    def create_report(self, data, generated_at=None):
        with self.lock:
            report = Report(**clean_patch(data, {'id', 'generated_at'}), id=self._next_id('report'),
                            generated_at=generated_at or self.clock())
            self.reports[report.id] = report
            return report

    def delete_report(self, report_id):
        with self.lock:
            return self.reports.pop(report_id, None) is not None

    # Screenshots
    def list_screenshots(self, site_id):
        with self.lock:
            shots = [s for s in self.screenshots.values() if s.site_id == site_id]
        return sorted(shots, key=lambda shot: shot.taken_at, reverse=True)

    def create_screenshot(self, data):
        with self.lock:
            shot = Screenshot(**clean_patch(data, {'id', 'taken_at'}), id=self._next_id('screenshot'),
                              taken_at=self.clock())
            self.screenshots[shot.id] = shot
            return shot
