"""
Voice catalogue: mirror the ElevenLabs voice list locally and serve
filtered listings from the mirror.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.db import Database, from_json, to_json, utcnow_iso
from retailiq.logger import get_logger

logger = get_logger(__name__)

SORTABLE_COLUMNS = ("name", "category", "gender", "accent", "age", "use_case", "created_at", "updated_at")
FILTER_COLUMNS = ("category", "gender", "accent", "age", "use_case")
FACETS = {
    "categories": "category",
    "genders": "gender",
    "accents": "accent",
    "ages": "age",
    "useCases": "use_case",
}

_INSERT_VOICE = """
INSERT INTO elevenlabs_voices (id, name, description, category, gender, accent, age, use_case,
                               preview_url, labels, created_at, updated_at)
VALUES (:id, :name, :description, :category, :gender, :accent, :age, :use_case,
        :preview_url, :labels, :created_at, :updated_at)
"""


def voice_row(voice: Dict[str, Any], now: str) -> Dict[str, Any]:
    """Map an ElevenLabs voice object to a mirror row."""
    labels = voice.get("labels") or {}
    return {
        "id": voice.get("voice_id"),
        "name": voice.get("name"),
        "description": voice.get("description") or None,
        "category": voice.get("category") or None,
        "gender": labels.get("gender") or None,
        "accent": labels.get("accent") or None,
        "age": labels.get("age") or None,
        "use_case": labels.get("use_case") or None,
        "preview_url": voice.get("preview_url") or None,
        "labels": labels,
        "created_at": now,
        "updated_at": now,
    }


class VoiceService:
    """Voice mirror maintenance and listing."""

    BATCH_SIZE = 100
    DEFAULT_LIMIT = 50

    def __init__(self, database: Database, elevenlabs: Optional[ElevenLabsClient] = None) -> None:
        self.db = database
        self.elevenlabs = elevenlabs

    def sync(self) -> dict:
        """
        Replace the mirror with the current ElevenLabs catalogue.

        The delete and every batch insert run in one transaction, so a
        failed batch leaves the previous mirror in place.
        """
        voices = self.elevenlabs.list_voices()
        logger.info("Found %d voices from ElevenLabs", len(voices))

        now = utcnow_iso()
        rows = [voice_row(v, now) for v in voices]
        inserted = 0
        with self.db.transaction() as tx:
            tx.execute("DELETE FROM elevenlabs_voices")
            for start in range(0, len(rows), self.BATCH_SIZE):
                batch = rows[start:start + self.BATCH_SIZE]
                inserted += tx.execute_many(_INSERT_VOICE, [{**r, "labels": to_json(r["labels"])} for r in batch])
                logger.debug("Inserted batch %d: %d voices", start // self.BATCH_SIZE + 1, len(batch))

        logger.info("Successfully synced %d voices to database", inserted)
        return {
            "success": True,
            "message": f"Successfully synced {inserted} voices from ElevenLabs",
            "voicesCount": inserted,
            "voices": [{"id": r["id"], "name": r["name"], "category": r["category"]} for r in rows],
        }

    def _facet(self, column: str) -> List[Any]:
        rows = self.db.fetch_all(
            f"SELECT DISTINCT {column} AS value FROM elevenlabs_voices WHERE {column} IS NOT NULL"
        )
        return sorted(r["value"] for r in rows if r["value"])

    def list_voices(
        self,
        *,
        category: Optional[str] = None,
        gender: Optional[str] = None,
        accent: Optional[str] = None,
        age: Optional[str] = None,
        use_case: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        sort_by: str = "name",
        sort_order: str = "asc",
    ) -> dict:
        """Filtered, sorted page of the mirror plus facet values for the filters."""
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        filters = {"category": category, "gender": gender, "accent": accent, "age": age, "use_case": use_case}
        clauses: List[str] = []
        params: Dict[str, Any] = {}
        for column in FILTER_COLUMNS:
            if filters[column]:
                clauses.append(f"{column} = :{column}")
                params[column] = filters[column]
        if search:
            clauses.append("(LOWER(name) LIKE LOWER(:search) OR LOWER(description) LIKE LOWER(:search))")
            params["search"] = f"%{search}%"

        sort_column = sort_by if sort_by in SORTABLE_COLUMNS else "name"
        direction = "ASC" if sort_order == "asc" else "DESC"

        sql = "SELECT * FROM elevenlabs_voices"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {sort_column} {direction}"
        if limit > 0:
            sql += " LIMIT :limit OFFSET :offset"
            params.update(limit=limit, offset=offset)

        voices = self.db.fetch_all(sql, params)
        if limit <= 0:
            # SQLite has no OFFSET without LIMIT
            voices = voices[offset:]
        for voice in voices:
            voice["labels"] = from_json(voice.get("labels"))
        total = self.db.fetch_value("SELECT COUNT(*) FROM elevenlabs_voices") or 0

        return {
            "voices": voices,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": limit > 0 and len(voices) == limit,
            },
            "filters": {key: self._facet(column) for key, column in FACETS.items()},
            "meta": {
                "count": len(voices),
                "query_params": {
                    **filters,
                    "search": search,
                    "limit": limit,
                    "offset": offset,
                    "sort_by": sort_column,
                    "sort_order": sort_order,
                },
            },
        }
