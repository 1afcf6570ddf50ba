"""
Knowledge base ingestion: push a document to ElevenLabs and record it locally.
"""

from __future__ import annotations

import uuid

from retailiq.core.elevenlabs import ElevenLabsClient
from retailiq.db import Database, utcnow_iso
from retailiq.logger import get_logger

logger = get_logger(__name__)


def resolve_content_type(kind: str, content: str) -> str:
    """A "file" whose content is itself a link is ingested as a URL."""
    if kind == "file" and isinstance(content, str) and content.startswith("http"):
        return "url"
    return kind


class KnowledgeBaseService:
    def __init__(self, database: Database, elevenlabs: ElevenLabsClient) -> None:
        self.db = database
        self.elevenlabs = elevenlabs

    def create_document(self, *, content: str, kind: str, user_id: str) -> dict:
        kind = resolve_content_type(kind, content)
        uploaded = self.elevenlabs.add_knowledge_base_document(kind, content)

        doc_id = str(uuid.uuid4())
        self.db.execute(
            """
            INSERT INTO knowledge_base_documents (id, name, content, created_by, knowledge_base_id, type, created_at)
            VALUES (:id, :name, :content, :created_by, :knowledge_base_id, :type, :created_at)
            """,
            {
                "id": doc_id,
                "name": uploaded.get("name"),
                "content": content,
                "created_by": user_id,
                "knowledge_base_id": uploaded.get("id"),
                "type": kind,
                "created_at": utcnow_iso(),
            },
        )
        logger.info("Stored knowledge base document %s (%s)", uploaded.get("id"), kind)
        return self.db.fetch_one("SELECT * FROM knowledge_base_documents WHERE id = :id", {"id": doc_id})
