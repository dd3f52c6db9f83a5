from __future__ import annotations

import asyncio
from pathlib import Path

import typer
import uvicorn

from prompt_rater.cli.client import ApiClient


app = typer.Typer(help="Prompt Rater CLI")
run_app = typer.Typer(help="Manage generation runs")
app.add_typer(run_app, name="runs")

DEFAULT_BASE_URL = "http://127.0.0.1:8000/api/v1"


@app.callback()
def main(
	ctx: typer.Context,
	base_url: str = typer.Option(DEFAULT_BASE_URL, envvar="PROMPT_RATER_URL", help="API base URL"),
	user_id: str = typer.Option("cli", envvar="PROMPT_RATER_USER_ID", help="User id sent as X-User-Id"),
	tenant_id: str = typer.Option("", envvar="PROMPT_RATER_TENANT_ID", help="Tenant id sent as X-Tenant-Id"),
	role: str = typer.Option("TENANT_ADMIN", envvar="PROMPT_RATER_ROLE", help="Role sent as X-User-Role"),
	api_key: str = typer.Option("", envvar="PROMPT_RATER_API_KEY", help="Gateway API key"),
):
	ctx.obj = {
		"base_url": base_url,
		"user_id": user_id,
		"tenant_id": tenant_id,
		"role": role,
		"api_key": api_key or None,
	}


def _client(ctx: typer.Context) -> ApiClient:
	opts = ctx.obj
	if not opts["tenant_id"]:
		typer.echo("A tenant id is required (--tenant-id or PROMPT_RATER_TENANT_ID)", err=True)
		raise typer.Exit(code=2)
	return ApiClient(
		opts["base_url"],
		user_id=opts["user_id"],
		tenant_id=opts["tenant_id"],
		role=opts["role"],
		api_key=opts["api_key"],
	)


@app.command()
def serve(
	host: str = typer.Option("127.0.0.1", help="Host interface"),
	port: int = typer.Option(8000, help="Port to bind"),
	reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
	"""Start the Prompt Rater API server."""
	uvicorn.run(
		"prompt_rater.main:create_app",
		host=host,
		port=port,
		reload=reload,
		factory=True,
	)


@app.command("init-db")
def init_db():
	"""Create database tables."""
	from prompt_rater.infra.db.session import close_db, init_db as _init_db

	async def _run():
		await _init_db()
		await close_db()

	asyncio.run(_run())
	typer.echo("Database initialized")


@app.command()
def queue(ctx: typer.Context):
	"""Show the tenant's run queue."""
	snapshot = _client(ctx).get_queue()
	s = snapshot.summary
	typer.echo(
		f"queued={s.queued_runs} running={s.running_runs} completed={s.completed_runs} "
		f"failed={s.failed_runs} pending_instances={s.total_pending_instances}"
	)
	for r in snapshot.runs:
		typer.echo(f"{r.id}\t{r.status}\t{r.progress}%\t{r.configuration.name}")


@app.command()
def execute(
	ctx: typer.Context,
	config_id: str = typer.Argument(..., help="Configuration ID"),
):
	"""Queue a generation run for a configuration."""
	resp = _client(ctx).execute(config_id)
	typer.echo(f"{resp.run_id}\t{resp.message}")


@app.command("force-complete")
def force_complete(
	ctx: typer.Context,
	config_id: str = typer.Argument(..., help="Configuration ID"),
):
	"""Mark a stuck configuration complete and seed its rating matches."""
	resp = _client(ctx).force_complete(config_id)
	typer.echo(resp.model_dump_json(indent=2, by_alias=True))


@app.command()
def reset(
	ctx: typer.Context,
	config_id: str = typer.Argument(..., help="Configuration ID"),
	mode: str = typer.Option("soft", help="soft (statuses only) or hard (also delete generated data)"),
):
	"""Reset a configuration back to DRAFT."""
	if mode == "hard":
		typer.confirm("Hard reset deletes all completions, matches, winners and runs. Continue?", abort=True)
	resp = _client(ctx).reset(config_id, mode=mode)
	typer.echo(resp.message)
	for key, value in resp.results.items():
		typer.echo(f"  {key}: {value}")


@app.command()
def export(
	ctx: typer.Context,
	config_id: str = typer.Argument(..., help="Configuration ID"),
	fmt: str = typer.Option("json", "--format", help="json or csv"),
	output: Path = typer.Option(..., "--output", "-o", help="File to write"),
):
	"""Download a configuration's results."""
	data = _client(ctx).export(config_id, fmt=fmt)
	output.write_bytes(data)
	typer.echo(f"Wrote {len(data)} bytes to {output}")


@run_app.command("trigger")
def runs_trigger(ctx: typer.Context):
	"""Ask the worker to process the queue now."""
	typer.echo(_client(ctx).trigger_worker())


@run_app.command("cancel")
def runs_cancel(
	ctx: typer.Context,
	run_id: str = typer.Argument(..., help="Run ID"),
):
	"""Cancel a queued or running run."""
	typer.echo(_client(ctx).cancel_run(run_id))


@run_app.command("retry")
def runs_retry(
	ctx: typer.Context,
	run_id: str = typer.Argument(..., help="Run ID"),
):
	"""Retry a failed run."""
	typer.echo(_client(ctx).retry_run(run_id))


if __name__ == "__main__":
	app()
