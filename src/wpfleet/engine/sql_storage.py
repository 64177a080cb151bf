# src/wpfleet/engine/sql_storage.py
"""
SQLAlchemy-backed implementation of the entity store.

Same contract as MemStorage; rows are converted to immutable records on the
way out so callers never hold a live session.
"""

from datetime import datetime, timezone

from wpfleet.api.schemas import MaintenanceLog, Report, Screenshot, Site, User
from wpfleet.engine.db import make_session_factory
from wpfleet.engine.models import MaintenanceLogRow, ReportRow, ScreenshotRow, SiteRow, UserRow
from wpfleet.engine.storage import (LOG_FIXED_FIELDS, SITE_DEFAULTS, SITE_FIXED_FIELDS,
                                    Storage, clean_patch)


def _utc(values):
    return {
        key: value.astimezone(timezone.utc) if isinstance(value, datetime) and value.tzinfo else value
        for key, value in values.items()
    }


def _columns(row_cls, values):
    names = {column.name for column in row_cls.__table__.columns}
    return {key: value for key, value in values.items() if key in names}


def _to_record(record_cls, row):
    if row is None:
        return None
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.name)
        # SQLite drops tzinfo; stored values are always UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        data[column.name] = value
    return record_cls.model_validate(data)


class SqlStorage(Storage):
    def __init__(self, database_url: str, clock=None):
        super().__init__(clock)
        self.database_url = database_url
        self.SessionLocal = make_session_factory(database_url)

    def _get(self, row_cls, record_cls, row_id):
        with self.lock, self.SessionLocal() as db:
            return _to_record(record_cls, db.get(row_cls, row_id))

    def _add(self, row, record_cls):
        with self.lock, self.SessionLocal() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_record(record_cls, row)

    def _update(self, row_cls, record_cls, row_id, patch):
        with self.lock, self.SessionLocal() as db:
            row = db.get(row_cls, row_id)
            if row is None:
                return None
            patch = _columns(row_cls, patch)
            # reject the whole patch before any column is written
            record_cls.model_validate({**_to_record(record_cls, row).model_dump(), **patch})
            for key, value in _utc(patch).items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return _to_record(record_cls, row)

    def _delete(self, row_cls, row_id):
        with self.lock, self.SessionLocal() as db:
            row = db.get(row_cls, row_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    # Users
    def get_user(self, user_id):
        return self._get(UserRow, User, user_id)

    def get_user_by_username(self, username):
        with self.lock, self.SessionLocal() as db:
            row = db.query(UserRow).filter(UserRow.username == username).first()
            return _to_record(User, row)

    def create_user(self, username, password_hash, email):
        with self.lock:
            if self.get_user_by_username(username):
                raise ValueError(f"User already exists: {username}")
            row = UserRow(username=username, password_hash=password_hash, email=email,
                          created_at=self.clock())
            return self._add(row, User)

    # Sites
    def list_sites(self):
        with self.lock, self.SessionLocal() as db:
            return [_to_record(Site, row) for row in db.query(SiteRow).order_by(SiteRow.id).all()]

    def get_site(self, site_id):
        return self._get(SiteRow, Site, site_id)

    def create_site(self, data):
        fields = {**clean_patch(data, SITE_FIXED_FIELDS), **SITE_DEFAULTS}
        if fields.get('pages_to_scan') is None:
            fields['pages_to_scan'] = []
        # validate before touching the database
        Site.model_validate({**fields, 'id': 0, 'created_at': self.clock()})
        return self._add(SiteRow(**_utc(_columns(SiteRow, fields)), created_at=self.clock()), Site)

    def update_site(self, site_id, patch):
        return self._update(SiteRow, Site, site_id, clean_patch(patch, SITE_FIXED_FIELDS))

    def delete_site(self, site_id):
        return self._delete(SiteRow, site_id)

    # Maintenance logs
    def list_maintenance_logs(self, site_id=None):
        with self.lock, self.SessionLocal() as db:
            query = db.query(MaintenanceLogRow)
            if site_id is not None:
                query = query.filter(MaintenanceLogRow.site_id == site_id).order_by(MaintenanceLogRow.id)
            else:
                query = query.order_by(MaintenanceLogRow.started_at.desc(), MaintenanceLogRow.id)
            return [_to_record(MaintenanceLog, row) for row in query.all()]

    def create_maintenance_log(self, data, started_at=None):
        fields = clean_patch(data, LOG_FIXED_FIELDS)
        fields.setdefault('details', {})
        row = MaintenanceLogRow(**_utc(_columns(MaintenanceLogRow, fields)), started_at=started_at or self.clock())
        return self._add(row, MaintenanceLog)

    def update_maintenance_log(self, log_id, patch):
        return self._update(MaintenanceLogRow, MaintenanceLog, log_id, clean_patch(patch, LOG_FIXED_FIELDS))

    # Reports
    def list_reports(self):
        with self.lock, self.SessionLocal() as db:
            rows = db.query(ReportRow).order_by(ReportRow.generated_at.desc(), ReportRow.id).all()
            return [_to_record(Report, row) for row in rows]

    def create_report(self, data, generated_at=None):
        row = ReportRow(**_columns(ReportRow, clean_patch(data, {'id', 'generated_at'})),
                        generated_at=generated_at or self.clock())
        return self._add(row, Report)

    def delete_report(self, report_id):
        return self._delete(ReportRow, report_id)

    # Screenshots
    def list_screenshots(self, site_id):
        with self.lock, self.SessionLocal() as db:
            rows = (db.query(ScreenshotRow)
                    .filter(ScreenshotRow.site_id == site_id)
                    .order_by(ScreenshotRow.taken_at.desc(), ScreenshotRow.id)
                    .all())
            return [_to_record(Screenshot, row) for row in rows]

    def create_screenshot(self, data):
        row = ScreenshotRow(**_columns(ScreenshotRow, clean_patch(data, {'id', 'taken_at'})),
                            taken_at=self.clock())
        return self._add(row, Screenshot)
