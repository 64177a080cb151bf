# src/wpfleet/engine/models.py
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# sqlite_autoincrement keeps ids strictly increasing, even after deletes


class UserRow(Base):
    __tablename__ = 'users'
    __table_args__ = {'sqlite_autoincrement': True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    email = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class SiteRow(Base):
    __tablename__ = 'sites'
    __table_args__ = {'sqlite_autoincrement': True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    status = Column(String, nullable=False, default='ok')  # ok, error, updating, needs_updates
    last_backup = Column(DateTime(timezone=True), nullable=True)
    last_update = Column(DateTime(timezone=True), nullable=True)
    last_check = Column(DateTime(timezone=True), nullable=True)
    wp_cli_path = Column(String, nullable=True)
    ssh_host = Column(String, nullable=True)
    ssh_user = Column(String, nullable=True)
    ssh_key = Column(Text, nullable=True)
    pages_to_scan = Column(JSON, nullable=False, default=list)
    plugin_update_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class MaintenanceLogRow(Base):
    __tablename__ = 'maintenance_logs'
    __table_args__ = {'sqlite_autoincrement': True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, nullable=False, index=True)  # no FK: logs outlive their site
    type = Column(String, nullable=False)
    status = Column(String, nullable=False)  # in_progress, success, error
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class ReportRow(Base):
    __tablename__ = 'reports'
    __table_args__ = {'sqlite_autoincrement': True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    file_path = Column(String, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False)


class ScreenshotRow(Base):
    __tablename__ = 'screenshots'
    __table_args__ = {'sqlite_autoincrement': True}
    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, nullable=False, index=True)
    page = Column(String, nullable=False)
    before_path = Column(String, nullable=True)
    after_path = Column(String, nullable=True)
    comparison_result = Column(JSON, nullable=True)  # {differences, threshold, passed}
    taken_at = Column(DateTime(timezone=True), nullable=False)
