import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from portal.models.contact import CONTACT_KINDS

logger = logging.getLogger(__name__)

EXPORT_PATH = os.getenv("SITE_PROMPT_PATH", os.path.join("public", "promt-site.ia"))


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SnapshotExporter:
    """Writes a flat text report of cards, tasks, categories and contacts."""

    def __init__(self, store, path: str | os.PathLike = EXPORT_PATH) -> None:
        self._store = store
        self.path = Path(path)

    async def export(self, now: datetime | None = None) -> Path | None:
        now = now or datetime.now(timezone.utc)
        try:
            report = await asyncio.to_thread(self._render, now)
            await asyncio.to_thread(self._write, report)
        except Exception:
            logger.exception("Failed to generate site prompt")
            return None
        logger.info("Wrote site prompt to %s", self.path)
        return self.path

    def _render(self, now: datetime) -> str:
        cards = self._store.get_all_cards()
        tasks = self._store.get_all_tasks()
        categories = self._store.get_all_categories()

        lines: list[str] = ["SITE PROMPT GENERATION", f"generated_at: {now.isoformat()}", ""]

        lines.append("--- CARDS ---")
        for card in cards:
            lines.append(f"id: {card.id}")
            lines.append(f"title: {_text(card.title)}")
            lines.append(f"subtitle: {_text(card.subtitle)}")
            lines.append(f"image: {_text(card.image)}")
            lines.append(f"scheduleWeekdays: {_text(card.schedule_weekdays)}")
            lines.append("")

        lines.append("--- TASKS ---")
        for task in tasks:
            lines.append(f"id: {task.id} title: {_text(task.title)} completed: {_text(task.completed)}")
        lines.append("")

        lines.append("--- CATEGORIES ---")
        for category in categories:
            lines.append(f"id: {category.id} name: {_text(category.name)}")

        lines.extend(self._render_contacts())
        return "\n".join(lines)

    def _render_contacts(self) -> list[str]:
        lines = ["", "--- CONTACTS (/contacts) ---"]
        try:
            for kind in CONTACT_KINDS:
                lines.append(f"section: {kind}")
                for item in self._store.get_contacts_by_kind(kind):
                    lines.append(f"- name: {_text(item.name)}")
                    if kind == "ramais":
                        lines.append(f"  ramal: {_text(item.number)}")
                        lines.append(f"  departamento: {_text(item.department)}")
                        if item.setor:
                            lines.append(f"  setor: {item.setor}")
                    if item.image:
                        lines.append(f"  image: {item.image}")
                lines.append("")
        except Exception:
            logger.debug("Contacts unavailable for site prompt", exc_info=True)
            return []
        return lines

    def _write(self, report: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(report, encoding="utf-8")
