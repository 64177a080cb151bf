# src/wpfleet/engine/report_service.py
"""
ReportService: records generated report artifacts. No file content is
produced; the stored path is a placeholder named after the report type.
"""
import logging

from wpfleet.api.schemas import Report
from wpfleet.engine.storage import Storage

REPORTS_DIR = "/reports"


def report_file_path(report_type: str, generated_at) -> str:
    epoch_ms = int(generated_at.timestamp() * 1000)
    return f"{REPORTS_DIR}/{report_type}-{epoch_ms}.pdf"


class ReportService:
    def __init__(self, store: Storage):
        self.store = store

    def generate(self, name: str, report_type: str, description=None) -> Report:
        generated_at = self.store.clock()
        report = self.store.create_report({
            "name": name,
            "type": report_type,
            "description": description,
            "file_path": report_file_path(report_type, generated_at),
        }, generated_at=generated_at)
        logging.info(f"[report_id={report.id}] Generated {report_type} report '{name}' at {report.file_path}")
        return report
