# src/wpfleet/tools/simulated.py
"""
SimulatedExecutor: stands in for the remote backup, screenshot and WP-CLI
update calls with fixed delays and synthetic results.
"""
import random
import time

from .base import BACKUP, SCREENSHOT, UPDATE, StepExecutor, StepResult

# Seconds each step pretends to take
STEP_DELAYS = {
    BACKUP: 2.0,
    SCREENSHOT: 1.0,
    UPDATE: 3.0,
}
UPDATE_SUCCESS_RATE = 0.7
BACKUP_DETAILS = {"backupSize": "150MB", "location": "backblaze-b2://bucket/backup.zip"}
UPDATE_CONFLICT_ERROR = "Plugin update failed - conflict detected"


class SimulatedExecutor(StepExecutor):
    def __init__(self, rng=None, success_rate=UPDATE_SUCCESS_RATE, delay_scale=1.0, sleep=time.sleep):
        self.rng = rng or random.Random()
        self.success_rate = success_rate
        self.delay_scale = delay_scale
        self.sleep = sleep

    def run_step(self, step, site):
        if step not in STEP_DELAYS:
            raise ValueError(f"Unsupported maintenance step: {step}")
        self.sleep(STEP_DELAYS[step] * self.delay_scale)
        if step == BACKUP:
            return StepResult("success", "Backup completed successfully", dict(BACKUP_DETAILS))
        if step == SCREENSHOT:
            return StepResult("success", "Pre-update screenshots captured", {"pages": list(site.pages_to_scan)})
        if self.rng.random() < self.success_rate:
            return StepResult("success", "Plugin updates completed successfully",
                              {"pluginsUpdated": site.plugin_update_count or 0})
        return StepResult("error", "Plugin update failed", {"error": "Plugin conflict detected"},
                          site_error=UPDATE_CONFLICT_ERROR)
