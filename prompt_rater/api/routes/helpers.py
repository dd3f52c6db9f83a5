"""
Helpers shared by route modules: ORM -> schema conversion.
"""
from prompt_rater.infra.db.models import Completion, GenerationRun, PromptInstance, RatingMatch
from prompt_rater.services.export import ConfigurationExport, preview
from prompt_rater.services.run_tracker import RunDetail, RunSnapshot

from ..schemas import (
    ExportCompletion,
    ExportConfiguration,
    ExportDocument,
    ExportFinalWinner,
    ExportInstance,
    ExportMatch,
    ExportOption,
    ExportRating,
    ExportWinner,
    QueuedRun,
    RecentCompletion,
    RunConfigurationInfo,
    RunDetailResponse,
    RunResponse,
)


def to_run(run: GenerationRun) -> RunResponse:
    return RunResponse.model_validate(run)


def to_queued_run(snapshot: RunSnapshot) -> QueuedRun:
    run = snapshot.run
    return QueuedRun(
        **to_run(run).model_dump(),
        configuration=RunConfigurationInfo.model_validate(run.configuration),
        instance_stats=snapshot.instance_stats,
    )


def to_run_detail(detail: RunDetail) -> RunDetailResponse:
    run = detail.run
    return RunDetailResponse(
        **to_run(run).model_dump(),
        configuration=RunConfigurationInfo.model_validate(run.configuration),
        instance_stats=detail.instance_stats,
        completions=[RecentCompletion.model_validate(c) for c in detail.recent_completions],
    )


# ============================================================================
# Export
# ============================================================================

def _option(completion: Completion) -> ExportOption:
    return ExportOption(id=completion.id, index=completion.index, output_preview=preview(completion.output))


def _export_match(match: RatingMatch) -> ExportMatch:
    return ExportMatch(
        id=match.id,
        round=match.round,
        option_a=_option(match.option_a),
        option_b=_option(match.option_b),
        outcome=match.outcome,
        winner=ExportWinner(id=match.winner.id, index=match.winner.index) if match.winner else None,
        is_complete=match.is_complete,
        responses=[ExportRating.model_validate(r) for r in match.responses],
    )


def _export_instance(instance: PromptInstance) -> ExportInstance:
    winner = instance.final_winner
    return ExportInstance(
        id=instance.id,
        data=instance.data or {},
        status=instance.status,
        completions=[ExportCompletion.model_validate(c) for c in instance.completions],
        rating_matches=[_export_match(m) for m in instance.rating_matches],
        final_winner=ExportFinalWinner(
            completion_id=winner.winning_completion_id,
            completion_index=winner.winning_completion.index,
            output_preview=preview(winner.winning_completion.output),
            determined_at=winner.determined_at,
        ) if winner else None,
    )


def to_export_document(export: ConfigurationExport) -> ExportDocument:
    return ExportDocument(
        configuration=ExportConfiguration.model_validate(export.configuration),
        instances=[_export_instance(i) for i in export.instances],
        exported_at=export.exported_at,
        total_instances=len(export.instances),
        total_completions=export.total_completions,
        total_matches=export.total_matches,
        completed_matches=export.completed_matches,
    )
