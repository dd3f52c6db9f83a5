"""
Configurations API Routes.

CRUD for configurations, instance upload and management, and the ratings
overview.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import AdminSession, require_admin
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.lifecycle import LifecycleManager, get_instance_completions, get_ratings

from ..schemas import (
    CompletionResponse,
    ConfigurationCreate,
    ConfigurationDetail,
    ConfigurationList,
    ConfigurationResponse,
    ConfigurationSummary,
    ConfigurationUpdate,
    InstanceCompletions,
    InstanceConfigurationRef,
    InstanceDeleted,
    InstanceDetailResponse,
    InstanceResponse,
    InstanceSummary,
    InstanceUpload,
    InstanceUploadResponse,
    RatingMatchResponse,
    RatingsResponse,
    RatingsSummary,
)
from .helpers import to_run

logger = logging.getLogger(__name__)
router = APIRouter(tags=["configs"])


@router.get("/configs", response_model=ConfigurationList)
async def list_configs(
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ConfigurationList:
    """List the tenant's configurations, newest first."""
    rows = await LifecycleManager(db, admin.tenant_id).list_configurations()
    items = [
        ConfigurationSummary(
            **ConfigurationResponse.model_validate(config).model_dump(),
            instance_count=instances,
            run_count=runs,
        )
        for config, instances, runs in rows
    ]
    return ConfigurationList(items=items, total=len(items))


@router.post("/configs", response_model=ConfigurationResponse, status_code=201)
async def create_config(
    data: ConfigurationCreate,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ConfigurationResponse:
    config = await LifecycleManager(db, admin.tenant_id).create_configuration(
        created_by_id=admin.user_id,
        **data.model_dump(),
    )
    return ConfigurationResponse.model_validate(config)


@router.get("/configs/{config_id}", response_model=ConfigurationDetail)
async def get_config(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ConfigurationDetail:
    """Configuration with instance counts by status and its latest runs."""
    detail = await LifecycleManager(db, admin.tenant_id).get_detail(config_id)
    return ConfigurationDetail(
        **ConfigurationResponse.model_validate(detail.configuration).model_dump(),
        instance_stats=detail.instance_stats,
        total_instances=detail.total_instances,
        recent_runs=[to_run(r) for r in detail.recent_runs],
    )


@router.patch("/configs/{config_id}", response_model=ConfigurationResponse)
async def update_config(
    config_id: str,
    data: ConfigurationUpdate,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ConfigurationResponse:
    config = await LifecycleManager(db, admin.tenant_id).update_configuration(
        config_id, **data.model_dump(exclude_unset=True)
    )
    return ConfigurationResponse.model_validate(config)


@router.get("/configs/{config_id}/instances", response_model=list[InstanceSummary])
async def list_instances(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[InstanceSummary]:
    rows = await LifecycleManager(db, admin.tenant_id).list_instances(config_id)
    return [
        InstanceSummary(
            **InstanceResponse.model_validate(instance).model_dump(),
            completion_count=completions,
            match_count=matches,
        )
        for instance, completions, matches in rows
    ]


@router.post("/configs/{config_id}/instances", response_model=InstanceUploadResponse, status_code=201)
async def upload_instances(
    config_id: str,
    data: InstanceUpload,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstanceUploadResponse:
    """
    Upload input rows as PENDING instances.

    Rows missing required variables are skipped and reported in ``errors``;
    the remaining rows are still created.
    """
    result = await LifecycleManager(db, admin.tenant_id).add_instances(config_id, data.rows)
    return InstanceUploadResponse(
        created=len(result.created),
        errors=result.errors,
        instances=[InstanceResponse.model_validate(i) for i in result.created],
    )


@router.get("/configs/{config_id}/ratings", response_model=RatingsResponse)
async def list_ratings(
    config_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> RatingsResponse:
    overview = await get_ratings(db, admin.tenant_id, config_id)
    return RatingsResponse(
        matches=[RatingMatchResponse.model_validate(m) for m in overview.matches],
        summary=RatingsSummary(
            total_matches=overview.total_matches,
            completed_matches=overview.completed_matches,
            pending_matches=overview.pending_matches,
            total_responses=overview.total_responses,
        ),
        variables=overview.variables,
    )


@router.get("/instances/{instance_id}/completions", response_model=InstanceCompletions)
async def list_instance_completions(
    instance_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstanceCompletions:
    instance = await get_instance_completions(db, admin.tenant_id, instance_id)
    return InstanceCompletions(
        instance=InstanceResponse.model_validate(instance),
        completions=[CompletionResponse.model_validate(c) for c in instance.completions],
        configuration_name=instance.configuration.name,
        prompt_template=instance.configuration.prompt_template,
    )


@router.get("/instances/{instance_id}", response_model=InstanceDetailResponse)
async def get_instance(
    instance_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstanceDetailResponse:
    detail = await LifecycleManager(db, admin.tenant_id).get_instance(instance_id)
    instance = detail.instance
    return InstanceDetailResponse(
        **InstanceResponse.model_validate(instance).model_dump(),
        configuration=InstanceConfigurationRef.model_validate(instance.configuration),
        completions=[CompletionResponse.model_validate(c) for c in instance.completions],
        completion_count=detail.completion_count,
        match_count=detail.match_count,
    )


@router.delete("/instances/{instance_id}", response_model=InstanceDeleted)
async def delete_instance(
    instance_id: str,
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstanceDeleted:
    """Delete an instance with everything generated and rated for it."""
    instance = await LifecycleManager(db, admin.tenant_id).delete_instance(instance_id)
    return InstanceDeleted(configuration_id=instance.configuration_id)
