"""Mock outbound sender: appends sent replies to sent_items.json."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.outbound")


class JsonOutboxSender:
    """Writes every reply to a JSON list instead of a mail server."""

    def __init__(self, sent_items_path: Path):
        self._sent_items_path = Path(sent_items_path)
        logger.info("outbound.init", sent_items_path=str(self._sent_items_path))

    def _load_sent(self) -> list[dict[str, Any]]:
        if not self._sent_items_path.exists():
            logger.debug("outbound.sent_missing", sent_items_path=str(self._sent_items_path))
            return []
        with self._sent_items_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        items = data if isinstance(data, list) else data.get("value", [])
        return items or []

    def _save_sent(self, items: list[dict[str, Any]]) -> None:
        self._sent_items_path.parent.mkdir(parents=True, exist_ok=True)
        with self._sent_items_path.open("w", encoding="utf-8") as f:
            json.dump(items, f, indent=2, default=str)
        logger.info("outbound.sent_written", count=len(items), sent_items_path=str(self._sent_items_path))

    def sent_items(self) -> list[dict[str, Any]]:
        return self._load_sent()

    def send(self, recipient: str, subject: str, body: str) -> dict[str, Any]:
        item = {
            "id": f"sent_{uuid.uuid4().hex[:12]}",
            "to": recipient,
            "subject": subject,
            "body": body,
            "sentDateTime": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        sent = self._load_sent()
        sent.append(item)
        self._save_sent(sent)
        logger.info("outbound.sent", recipient=recipient, subject=subject, sent_id=item["id"])
        return item
