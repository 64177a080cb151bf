# src/wpfleet/engine/job_manager.py
"""
JobManager: runs maintenance workflows on background threads and tracks
their status in memory, keyed by the id of the maintenance log that
represents the run.
"""

import logging
import threading
import time
from typing import Dict, Optional

from wpfleet.api.schemas import Site
from wpfleet.engine.storage import Storage
from wpfleet.tools.base import BACKUP, SCREENSHOT, UPDATE, StepExecutor

START_DELAY = 0.1
MAX_FINISHED_JOBS = 500
PLANNED_STEPS = ["backup", "screenshot", "update", "comparison"]


class SiteBusyError(Exception):
    """A workflow is already running for the site and exclusive runs are enabled."""

    def __init__(self, site_id: int):
        super().__init__(f"Maintenance already running for site {site_id}")
        self.site_id = site_id


class JobManager:
    def __init__(self, store: Storage, executor: StepExecutor, exclusive_site_runs=False,
                 start_delay=START_DELAY, sleep=time.sleep, max_finished_jobs=MAX_FINISHED_JOBS):
        self.store = store
        self.executor = executor
        self.exclusive_site_runs = exclusive_site_runs
        self.start_delay = start_delay
        self.sleep = sleep
        self.max_finished_jobs = max_finished_jobs
        self.jobs: Dict[int, dict] = {}
        self.threads: Dict[int, threading.Thread] = {}
        self.lock = threading.Lock()

    def run_maintenance(self, site: Site) -> int:
        """Start the full backup, screenshot and update workflow. Returns the log id."""
        return self._submit(site, self._run_maintenance, {
            "site_id": site.id,
            "type": "full_maintenance",
            "status": "in_progress",
            "message": f"Starting full maintenance for {site.name}",
            "details": {"steps": list(PLANNED_STEPS)},
        })

    def run_backup(self, site: Site) -> int:
        """Start a standalone backup. Returns the log id."""
        return self._submit(site, self._run_backup, {
            "site_id": site.id,
            "type": "backup",
            "status": "in_progress",
            "message": f"Starting backup for {site.name}",
            "details": {},
        })

    def _submit(self, site, func, log_data) -> int:
        with self.lock:
            if self.exclusive_site_runs and self.active_site_runs(site.id):
                logging.warning(f"[site_id={site.id}] Rejected workflow, a run is already in flight.")
                raise SiteBusyError(site.id)
            if self.active_site_runs(site.id):
                logging.warning(f"[site_id={site.id}] Starting overlapping workflow for the same site.")
            log = self.store.create_maintenance_log(log_data)
            self.jobs[log.id] = {"status": "pending", "site_id": site.id, "type": log.type}
        logging.info(f"[log_id={log.id}] Submitted {log.type} job for site {site.id} ({site.name}).")
        thread = threading.Thread(target=self._run_job, args=(log.id, func, site), daemon=True)
        self.threads[log.id] = thread
        thread.start()
        return log.id

    def _run_job(self, log_id, func, site):
        with self.lock:
            self.jobs[log_id]["status"] = "running"
        logging.info(f"[log_id={log_id}] Started {self.jobs[log_id]['type']} job.")
        try:
            func(log_id, site)
            with self.lock:
                self.jobs[log_id]["status"] = "completed"
            logging.info(f"[log_id={log_id}] Completed job.")
        except Exception as e:
            with self.lock:
                self.jobs[log_id]["status"] = "failed"
            logging.error(f"[log_id={log_id}] Job failed: {e}")
        finally:
            with self.lock:
                self.threads.pop(log_id, None)
                self._prune_finished()

    def _prune_finished(self):
        finished = [log_id for log_id, job in self.jobs.items() if job["status"] in ("completed", "failed")]
        for log_id in finished[:max(0, len(finished) - self.max_finished_jobs)]:
            del self.jobs[log_id]

    def _run_maintenance(self, log_id, site):
        try:
            self.sleep(self.start_delay)
            self.store.update_site(site.id, {"status": "updating", "last_check": self.store.clock()})

            for step in (BACKUP, SCREENSHOT):
                result = self.executor.run_step(step, site)
                self._record_step(site.id, step, result)
                if not result.ok:
                    self.store.update_site(site.id, {"status": "error",
                                                     "last_error": result.site_error or result.message})
                    self._complete(log_id, False)
                    return

            result = self.executor.run_step(UPDATE, site)
            self._record_step(site.id, UPDATE, result)
            if result.ok:
                self.store.update_site(site.id, {
                    "status": "ok",
                    "last_update": self.store.clock(),
                    "plugin_update_count": 0,
                    "last_error": None,
                })
            else:
                self.store.update_site(site.id, {"status": "error",
                                                 "last_error": result.site_error or result.message})
            self._complete(log_id, result.ok)
        except Exception:
            self.store.update_maintenance_log(log_id, {
                "status": "error",
                "message": "Maintenance failed due to system error",
                "completed_at": self.store.clock(),
            })
            raise

    def _run_backup(self, log_id, site):
        try:
            result = self.executor.run_step(BACKUP, site)
            self.store.update_maintenance_log(log_id, {
                "status": result.status,
                "message": result.message,
                "details": result.details,
                "completed_at": self.store.clock(),
            })
            if result.ok:
                self.store.update_site(site.id, {"last_backup": self.store.clock()})
        except Exception:
            self.store.update_maintenance_log(log_id, {
                "status": "error",
                "message": "Backup failed due to system error",
                "completed_at": self.store.clock(),
            })
            raise

    def _record_step(self, site_id, step, result):
        self.store.create_maintenance_log({
            "site_id": site_id,
            "type": step,
            "status": result.status,
            "message": result.message,
            "details": result.details,
        })
        logging.info(f"[site_id={site_id}] {step} step finished: {result.status}")

    def _complete(self, log_id, success):
        self.store.update_maintenance_log(log_id, {
            "status": "success" if success else "error",
            "message": "Maintenance completed successfully" if success else "Maintenance completed with errors",
            "completed_at": self.store.clock(),
        })

    def active_site_runs(self, site_id) -> int:
        return sum(1 for job in self.jobs.values()
                   if job["site_id"] == site_id and job["status"] in ("pending", "running"))

    def get_status(self, log_id) -> dict:
        with self.lock:
            job = self.jobs.get(log_id)
            return dict(job) if job else {"status": "not_found"}

    def wait(self, log_id, timeout: Optional[float] = None) -> bool:
        """Block until the run finishes. Returns False on timeout or unknown id."""
        thread = self.threads.get(log_id)
        if thread is None:
            # finished runs drop their thread
            return self.get_status(log_id)["status"] in ("completed", "failed")
        thread.join(timeout)
        return not thread.is_alive()

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        return all([self.wait(log_id, timeout) for log_id in list(self.threads)])
