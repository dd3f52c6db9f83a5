"""
Configuration result export.

Everything a configuration produced: instances, their completions, every
match with its rater responses, and the final winner. The JSON document is
shaped by the API layer; the CSV flattening (one row per instance) lives
here.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.infra.db.models import Configuration, PromptInstance
from prompt_rater.infra.db.repositories import PromptInstanceRepository
from prompt_rater.services.lifecycle import LifecycleManager

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


@dataclass
class ConfigurationExport:
    configuration: Configuration
    instances: Sequence[PromptInstance]
    exported_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_completions(self) -> int:
        return sum(len(i.completions) for i in self.instances)

    @property
    def total_matches(self) -> int:
        return sum(len(i.rating_matches) for i in self.instances)

    @property
    def completed_matches(self) -> int:
        return sum(1 for i in self.instances for m in i.rating_matches if m.is_complete)

    def filename(self, fmt: ExportFormat) -> str:
        safe = re.sub(r"[^a-zA-Z0-9]", "_", self.configuration.name)
        return f"{safe}_export.{fmt.value}"


def preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


async def load_export(session: AsyncSession, tenant_id: str, config_id: str) -> ConfigurationExport:
    config = await LifecycleManager(session, tenant_id).get_configuration(config_id)
    instances = await PromptInstanceRepository(session).list_for_export(config.id)
    logger.info(f"Exporting configuration {config.id}: {len(instances)} instance(s)")
    return ConfigurationExport(configuration=config, instances=instances)


def render_csv(export: ConfigurationExport) -> str:
    """One row per instance: its variables, status, counts and final winner."""
    keys = export.configuration.variable_keys
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([
        "instance_id",
        *keys,
        "instance_status",
        "completion_count",
        "match_count",
        "final_winner_index",
        "final_winner_output_preview",
    ])
    for instance in export.instances:
        data = instance.data or {}
        winner = instance.final_winner
        writer.writerow([
            instance.id,
            *[data.get(key, "") for key in keys],
            instance.status,
            len(instance.completions),
            len(instance.rating_matches),
            winner.winning_completion.index if winner else "",
            preview(winner.winning_completion.output) if winner else "",
        ])
    return buffer.getvalue()
