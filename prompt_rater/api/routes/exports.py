"""
Export API Routes.
"""
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_rater.auth.session import AdminSession, require_admin
from prompt_rater.infra.db.session import get_db
from prompt_rater.services.export import ExportFormat, load_export, render_csv

from .helpers import to_export_document

logger = logging.getLogger(__name__)
router = APIRouter(tags=["exports"])


@router.get("/exports/{config_id}")
async def export_config(
    config_id: str,
    fmt: ExportFormat = Query(ExportFormat.JSON, alias="format"),
    admin: AdminSession = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Download a configuration's results as a JSON document or a CSV with
    one row per instance.
    """
    export = await load_export(db, admin.tenant_id, config_id)
    headers = {"Content-Disposition": f'attachment; filename="{export.filename(fmt)}"'}
    if fmt == ExportFormat.CSV:
        return Response(content=render_csv(export), media_type="text/csv", headers=headers)
    document = to_export_document(export)
    return JSONResponse(content=document.model_dump(mode="json", by_alias=True), headers=headers)
