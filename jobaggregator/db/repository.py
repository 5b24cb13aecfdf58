"""Data access layer — upsert by external ID plus read queries."""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

JOB_FIELDS = (
    "title", "company", "location", "description",
    "tags", "source", "apply_link", "posted_at",
)


@dataclass
class UpsertResult:
    """Outcome of a single upsert."""

    inserted_new: bool = False
    matched_existing: bool = False


def _to_row_values(fields: dict) -> dict:
    values = {name: fields.get(name) for name in JOB_FIELDS}
    values["tags"] = json.dumps(list(values["tags"] or []), ensure_ascii=False)
    if isinstance(values["posted_at"], datetime):
        values["posted_at"] = values["posted_at"].isoformat()
    return values


def row_to_dict(row: sqlite3.Row) -> dict:
    data = dict(row)
    data["tags"] = json.loads(data.get("tags") or "[]")
    return data


class JobRepository:
    """Database operations for job listings."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ── Upsert ─────────────────────────────────────────────────────

    def upsert_job(self, external_id: str, fields: dict) -> UpsertResult:
        """Insert a job or overwrite the stored fields of the same external_id."""
        if not external_id:
            raise ValueError("external_id is required for upsert")

        values = _to_row_values(fields)
        now = datetime.now(timezone.utc).isoformat()

        existing = self.conn.execute(
            "SELECT id FROM jobs WHERE external_id = ?", (external_id,)
        ).fetchone()

        if existing:
            self._update(existing["id"], values, now)
            return UpsertResult(matched_existing=True)

        try:
            self.conn.execute(
                """INSERT INTO jobs (
                    external_id, source, title, company, location,
                    description, tags, apply_link, posted_at,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    external_id, values["source"], values["title"],
                    values["company"], values["location"],
                    values["description"], values["tags"],
                    values["apply_link"], values["posted_at"],
                    now, now,
                ),
            )
            self.conn.commit()
            return UpsertResult(inserted_new=True)
        except sqlite3.IntegrityError:
            self.conn.rollback()
            row = self.conn.execute(
                "SELECT id FROM jobs WHERE external_id = ?", (external_id,)
            ).fetchone()
            if row is None:
                # NOT NULL violation rather than a concurrent insert of the same ID
                raise
            logger.debug("Concurrent insert for %s — updating instead", external_id)
            self._update(row["id"], values, now)
            return UpsertResult(matched_existing=True)

    def _update(self, job_id: int, values: dict, now: str) -> None:
        self.conn.execute(
            """UPDATE jobs SET
                   source = ?, title = ?, company = ?, location = ?,
                   description = ?, tags = ?, apply_link = ?, posted_at = ?,
                   updated_at = ?
               WHERE id = ?""",
            (
                values["source"], values["title"], values["company"],
                values["location"], values["description"], values["tags"],
                values["apply_link"], values["posted_at"], now, job_id,
            ),
        )
        self.conn.commit()

    # ── Queries ────────────────────────────────────────────────────

    def get_job_by_external_id(self, external_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM jobs WHERE external_id = ?", (external_id,)
        ).fetchone()
        return row_to_dict(row) if row else None

    def get_jobs(
        self,
        skills: str | None = None,
        source: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """Newest jobs first, optionally filtered by title / source substring."""
        query = "SELECT * FROM jobs WHERE 1 = 1"
        params: list = []

        if skills:
            query += " AND title LIKE ?"
            params.append(f"%{skills}%")
        if source:
            query += " AND source LIKE ?"
            params.append(f"%{source}%")

        query += " ORDER BY posted_at DESC LIMIT ?"
        params.append(limit)

        return [row_to_dict(row) for row in self.conn.execute(query, params).fetchall()]

    def count_jobs(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0]

    # ── Stats ──────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        """Get summary statistics."""
        by_source = {
            row["source"]: row["cnt"]
            for row in self.conn.execute(
                "SELECT source, COUNT(*) as cnt FROM jobs GROUP BY source ORDER BY cnt DESC"
            ).fetchall()
        }
        latest = self.conn.execute("SELECT MAX(updated_at) FROM jobs").fetchone()[0]

        return {
            "total": self.count_jobs(),
            "by_source": by_source,
            "last_updated": latest,
        }
