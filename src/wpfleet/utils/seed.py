import logging
import os
from datetime import timedelta
from typing import Dict

import yaml

from wpfleet.api.auth import hash_password
from wpfleet.engine.storage import Storage

DEMO_DATA_PATH = os.path.join(os.path.dirname(__file__), "demo_data.yaml")

SITE_CONFIG_FIELDS = ("name", "url", "wp_cli_path", "ssh_host", "ssh_user", "ssh_key", "pages_to_scan")
SITE_STATE_FIELDS = ("status", "plugin_update_count", "last_error")


def load_demo_data(file_path: str = DEMO_DATA_PATH) -> Dict:
    with open(file_path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Demo data must be a mapping: {file_path}")
    return data


def seed_store(store: Storage, admin_password: str, file_path: str = DEMO_DATA_PATH) -> Dict[str, int]:
    """
    Load the demo users, sites, logs and reports into an empty store.
    Timestamps in the file are offsets from now. Returns the number of
    records created per entity type.
    """
    data = load_demo_data(file_path)
    now = store.clock()
    counts = {"users": 0, "sites": 0, "maintenance_logs": 0, "reports": 0}

    for user in data.get("users", []):
        if store.get_user_by_username(user["username"]):
            continue
        store.create_user(user["username"], hash_password(admin_password), user["email"])
        counts["users"] += 1

    site_ids = []
    for entry in data.get("sites", []):
        site = store.create_site({k: entry[k] for k in SITE_CONFIG_FIELDS if k in entry})
        patch = {k: entry[k] for k in SITE_STATE_FIELDS if k in entry}
        for field, unit in (("last_backup", "hours"), ("last_update", "hours"), ("last_check", "minutes")):
            offset = entry.get(f"{field}_{unit}_ago")
            if offset is not None:
                patch[field] = now - timedelta(**{unit: offset})
        store.update_site(site.id, patch)
        site_ids.append(site.id)
        counts["sites"] += 1

    for entry in data.get("maintenance_logs", []):
        started_at = now - timedelta(hours=entry["started_hours_ago"])
        completed_at = None
        if entry.get("duration_minutes") is not None:
            completed_at = started_at + timedelta(minutes=entry["duration_minutes"])
        store.create_maintenance_log({
            "site_id": site_ids[entry["site"] - 1],
            "type": entry["type"],
            "status": entry["status"],
            "message": entry["message"],
            "details": entry.get("details") or {},
            "completed_at": completed_at,
        }, started_at=started_at)
        counts["maintenance_logs"] += 1

    for entry in data.get("reports", []):
        store.create_report({
            "name": entry["name"],
            "type": entry["type"],
            "description": entry.get("description"),
            "file_path": entry.get("file_path"),
        }, generated_at=now - timedelta(hours=entry["generated_hours_ago"]))
        counts["reports"] += 1

    logging.info(f"Seeded demo data: {counts}")
    return counts
