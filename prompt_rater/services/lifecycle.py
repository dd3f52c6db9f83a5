"""
Configuration lifecycle manager.

Owns the DRAFT -> EXECUTING -> COMPLETED state of a configuration and the
rule that a configuration has at most one QUEUED/RUNNING generation run.
Also hosts the configuration and instance CRUD the admin console needs.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.errors import (
    NoPendingWorkError,
    NotFoundError,
    RunAlreadyInProgressError,
    ValidationError,
)
from prompt_rater.infra.db.models import (
    Configuration,
    ConfigurationStatus,
    GenerationRun,
    GenerationRunStatus,
    PromptInstance,
    PromptInstanceStatus,
    RatingMatch,
)
from prompt_rater.infra.db.repositories import (
    CompletionRepository,
    ConfigurationRepository,
    FinalWinnerRepository,
    GenerationRunRepository,
    PromptInstanceRepository,
    RatingMatchRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 10

UPDATABLE_FIELDS = (
    "name",
    "description",
    "prompt_template",
    "model_provider",
    "model_name",
    "generations_per_instance",
    "rubric",
    "tags",
    "variables",
)


@dataclass
class ConfigurationDetail:
    configuration: Configuration
    instance_stats: dict[str, int]
    total_instances: int
    recent_runs: Sequence[GenerationRun]


@dataclass
class InstanceUploadResult:
    created: list[PromptInstance] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class InstanceDetail:
    instance: PromptInstance
    completion_count: int
    match_count: int


class LifecycleManager:
    """Tenant-scoped configuration lifecycle operations."""

    def __init__(self, session: AsyncSession, tenant_id: str):
        self.session = session
        self.tenant_id = tenant_id
        self.configs = ConfigurationRepository(session, tenant_id=tenant_id)
        self.instances = PromptInstanceRepository(session)
        self.runs = GenerationRunRepository(session)

    async def get_configuration(self, config_id: str, for_update: bool = False) -> Configuration:
        """Load a configuration of this tenant or raise NotFoundError."""
        if for_update:
            config = await self.configs.get_for_update(config_id)
        else:
            config = await self.configs.get_by_id(config_id)
        if config is None:
            raise NotFoundError("Configuration not found")
        return config

    # ------------------------------------------------------------------
    # Generation runs
    # ------------------------------------------------------------------

    async def start_run(self, config_id: str) -> GenerationRun:
        """Queue a generation run over the configuration's PENDING instances.

        Raises:
            NotFoundError: configuration missing or owned by another tenant
            NoPendingWorkError: nothing is PENDING
            RunAlreadyInProgressError: a run is QUEUED/RUNNING or the configuration is EXECUTING
            ValidationError: the configuration is COMPLETED and must be reset first
        """
        config = await self.get_configuration(config_id, for_update=True)

        pending = await self.instances.count_by_status(config.id, [PromptInstanceStatus.PENDING.value])
        if pending == 0:
            raise NoPendingWorkError()

        active = await self.runs.get_active(config.id)
        if active is not None or config.status == ConfigurationStatus.EXECUTING.value:
            raise RunAlreadyInProgressError()

        if config.status == ConfigurationStatus.COMPLETED.value:
            raise ValidationError("Configuration is completed. Reset it before starting a new run.")

        try:
            run = await self.runs.create(
                configuration_id=config.id,
                provider=config.model_provider,
                model_name=config.model_name,
                total_instances=pending,
                processed_count=0,
                status=GenerationRunStatus.QUEUED.value,
            )
        except IntegrityError as e:
            # Lost the race against a concurrent start_run
            raise RunAlreadyInProgressError() from e

        await self.configs.set_status(config, ConfigurationStatus.EXECUTING.value)
        logger.info(f"Queued generation run {run.id} for configuration {config.id} ({pending} instance(s))")
        return run

    async def get_run_history(self, config_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[GenerationRun]:
        """Most recent runs, newest first, never more than ten."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return await self.runs.get_history(config_id, self.tenant_id, limit=limit)

    # ------------------------------------------------------------------
    # Configuration CRUD
    # ------------------------------------------------------------------

    async def create_configuration(self, created_by_id: Optional[str], **fields: Any) -> Configuration:
        if not fields.get("name") or not fields.get("prompt_template"):
            raise ValidationError("Name and prompt template are required")
        _validate_generations(fields.get("generations_per_instance"))

        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
        values.setdefault("model_provider", "OPENAI")
        values.setdefault("model_name", "gpt-4")
        values.setdefault("generations_per_instance", 2)
        values.setdefault("tags", [])
        values.setdefault("variables", [])
        config = await self.configs.create(
            created_by_id=created_by_id,
            status=ConfigurationStatus.DRAFT.value,
            **values,
        )
        logger.info(f"Created configuration {config.id} ({config.name}) for tenant {self.tenant_id}")
        return config

    async def list_configurations(self) -> Sequence[tuple[Configuration, int, int]]:
        return await self.configs.list_with_counts()

    async def get_detail(self, config_id: str) -> ConfigurationDetail:
        config = await self.get_configuration(config_id)
        stats = await self.instances.status_counts(config.id)
        recent = await self.runs.get_history(config.id, self.tenant_id, limit=DEFAULT_HISTORY_LIMIT)
        return ConfigurationDetail(
            configuration=config,
            instance_stats=stats,
            total_instances=sum(stats.values()),
            recent_runs=recent,
        )

    async def update_configuration(self, config_id: str, **changes: Any) -> Configuration:
        """Update editable fields. Status only moves through lifecycle operations."""
        config = await self.get_configuration(config_id)
        if "name" in changes and not changes["name"]:
            raise ValidationError("Name cannot be empty")
        if "prompt_template" in changes and not changes["prompt_template"]:
            raise ValidationError("Prompt template cannot be empty")
        if "generations_per_instance" in changes:
            _validate_generations(changes["generations_per_instance"])
        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        return await self.configs.update(config, **values)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def add_instances(self, config_id: str, rows: Sequence[dict[str, Any]]) -> InstanceUploadResult:
        """Create PENDING instances from uploaded rows.

        Rows missing a required variable are reported and skipped; the rest
        are created. When the configuration declares variables, undeclared
        keys are dropped.
        """
        config = await self.get_configuration(config_id)
        required = config.required_variable_keys
        declared = config.variable_keys
        result = InstanceUploadResult()

        to_create = []
        for i, row in enumerate(rows, start=1):
            if not isinstance(row, dict):
                result.errors.append(f"Row {i}: Expected an object of variable values")
                continue
            missing = [key for key in required if row.get(key) is None or str(row.get(key)).strip() == ""]
            if missing:
                result.errors.append(f"Row {i}: Missing required fields: {', '.join(missing)}")
                continue
            keys = declared or list(row.keys())
            data = {key: str(row[key]) for key in keys if row.get(key) is not None}
            to_create.append(PromptInstance(
                configuration_id=config.id,
                data=data,
                status=PromptInstanceStatus.PENDING.value,
            ))

        if to_create:
            self.session.add_all(to_create)
            await self.session.flush()
        result.created = to_create
        logger.info(
            f"Uploaded {len(to_create)} instance(s) to configuration {config.id} "
            f"({len(result.errors)} row error(s))"
        )
        return result

    async def list_instances(self, config_id: str) -> list[tuple[PromptInstance, int, int]]:
        config = await self.get_configuration(config_id)
        return await self.instances.list_with_counts(config.id)

    async def _get_instance(self, instance_id: str) -> PromptInstance:
        instance = await self.instances.get_for_tenant(instance_id, self.tenant_id)
        if instance is None:
            raise NotFoundError("Instance not found")
        return instance

    async def get_instance(self, instance_id: str) -> InstanceDetail:
        instance = await self._get_instance(instance_id)
        match_count = await RatingMatchRepository(self.session).count_for_instance(instance.id)
        return InstanceDetail(instance=instance, completion_count=len(instance.completions), match_count=match_count)

    async def delete_instance(self, instance_id: str) -> PromptInstance:
        """Delete an instance with its completions, matches, responses and final winner.

        An instance the worker is generating cannot be deleted; cancel the
        run first.
        """
        instance = await self._get_instance(instance_id)
        if instance.status == PromptInstanceStatus.GENERATING.value:
            raise ValidationError("Instance is being generated. Cancel the run before deleting it.")

        deleted_matches = await RatingMatchRepository(self.session).delete_for_instance(instance.id)
        await FinalWinnerRepository(self.session).delete_for_instance(instance.id)
        deleted_completions = await CompletionRepository(self.session).delete_for_instance(instance.id)
        await self.instances.delete(instance.id)

        logger.info(
            f"Deleted instance {instance.id} of configuration {instance.configuration_id} "
            f"({deleted_completions} completion(s), {deleted_matches} match(es))"
        )
        return instance


def _validate_generations(value: Optional[int]) -> None:
    if value is not None and value < 2:
        raise ValidationError("generationsPerInstance must be at least 2")


@dataclass
class RatingsOverview:
    matches: Sequence[RatingMatch]
    variables: list
    total_matches: int = 0
    completed_matches: int = 0
    pending_matches: int = 0
    total_responses: int = 0


async def get_ratings(session: AsyncSession, tenant_id: str, config_id: str) -> RatingsOverview:
    """All matches of a configuration, newest first, with a progress summary."""
    config = await LifecycleManager(session, tenant_id).get_configuration(config_id)
    matches = await RatingMatchRepository(session).list_for_configuration(config.id)
    completed = sum(1 for m in matches if m.is_complete)
    return RatingsOverview(
        matches=matches,
        variables=config.variables or [],
        total_matches=len(matches),
        completed_matches=completed,
        pending_matches=len(matches) - completed,
        total_responses=sum(len(m.responses) for m in matches),
    )


async def get_instance_completions(session: AsyncSession, tenant_id: str, instance_id: str) -> PromptInstance:
    return await LifecycleManager(session, tenant_id)._get_instance(instance_id)
