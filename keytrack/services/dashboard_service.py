# =======================================================================================
# keytrack/services/dashboard_service.py
# =======================================================================================

from typing import Dict

from sqlalchemy import text

from ..database import DatabaseManager


class DashboardService:
    """Aggregated key counts for the dashboard."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # ---------- summary ----------

    def get_summary(self) -> Dict[str, int]:
        row = self.db.fetch_one(
            """
            SELECT
              COUNT(*) AS total_keys,
              SUM(CASE WHEN status = 'available'   THEN 1 ELSE 0 END) AS available_keys,
              SUM(CASE WHEN status = 'unavailable' THEN 1 ELSE 0 END) AS unavailable_keys,
              SUM(CASE WHEN frequently_used = :yes THEN 1 ELSE 0 END) AS frequently_used_keys
            FROM key_records
            WHERE is_active = :yes
            """,
            {"yes": True},
        )

        if not row:
            return {"total_keys": 0, "available_keys": 0, "unavailable_keys": 0,
                    "frequently_used_keys": 0}

        return {
            "total_keys": int(row["total_keys"] or 0),
            "available_keys": int(row["available_keys"] or 0),
            "unavailable_keys": int(row["unavailable_keys"] or 0),
            "frequently_used_keys": int(row["frequently_used_keys"] or 0),
        }

    def ping(self) -> None:
        with self.db.get_connection() as conn:
            conn.execute(text("SELECT 1"))
