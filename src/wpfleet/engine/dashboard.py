# src/wpfleet/engine/dashboard.py
from wpfleet.api.schemas import ActivityItem, DashboardStats
from wpfleet.engine.storage import Storage

RECENT_ACTIVITY_LIMIT = 10


def compute_dashboard_stats(store: Storage) -> DashboardStats:
    """
    Summary counts over the current store contents, recomputed on every call.
    Sites in the 'updating' state count towards total_sites but no bucket.
    """
    sites = store.list_sites()
    logs = store.list_maintenance_logs()
    return DashboardStats(
        total_sites=len(sites),
        sites_ok=sum(1 for site in sites if site.status == "ok"),
        need_updates=sum(1 for site in sites if site.status == "needs_updates"),
        errors=sum(1 for site in sites if site.status == "error"),
        recent_activity=[
            ActivityItem(id=log.id, message=log.message, status=log.status, timestamp=log.started_at)
            for log in logs[:RECENT_ACTIVITY_LIMIT]
        ],
    )
