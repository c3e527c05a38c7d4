"""
CLI интерфейс perfbudget.

Использует Rich для вывода, httpx для обращения к серверу.
"""

from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from cli.api_client import ApiClient, ApiError
from cli.wizard import WizardStep, run_wizard
from perfbudget.core.assertions import evaluate
from perfbudget.core.build_context import get_build_metadata
from perfbudget.core.config import load_rc_chain, merged_section, parse_cli_overrides, rc_section, resolve_rule_set
from perfbudget.core.errors import PerfBudgetError
from perfbudget.core.models import parse_report
from perfbudget.core.report import AssertionReporter, write_results_json
from perfbudget.core.results import DEFAULT_RESULTS_DIR, load_local_results

app = typer.Typer(
    name="perfbudget",
    help="perfbudget — store audit runs and assert performance budgets in CI",
)
console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

DEFAULT_SERVER_URL = "http://localhost:9001"


def fail(message: str) -> None:
    """Вывести ошибку и выйти с кодом 1."""
    err_console.print(f"[red]{escape(message)}[/red]", soft_wrap=True)
    raise typer.Exit(1)


def _rc_chain(rc_file: Optional[Path]) -> List:
    return load_rc_chain(rc_file) if rc_file else []


def _server_url(explicit: Optional[str], chain: List) -> str:
    return explicit or merged_section(chain, "report").get("serverBaseUrl") or DEFAULT_SERVER_URL


class AnnouncingServer(uvicorn.Server):
    """uvicorn Server, который печатает реальный порт после привязки сокета."""

    async def startup(self, sockets=None):
        await super().startup(sockets=sockets)
        if self.should_exit:
            return
        for listener in self.servers:
            for sock in listener.sockets:
                console.print(f"Server listening on port {sock.getsockname()[1]}")
                return


@app.callback()
def main():
    """Загрузить .env перед любой командой."""
    load_dotenv()


@app.command()
def server(
    port: int = typer.Option(9001, "--port", "-p", help="Port to listen on (0 picks a free port)"),
    storage_method: str = typer.Option("sql", "--storage-method", help="sql or redis"),
    sql_database_path: str = typer.Option("perfbudget.db", "--sql-database-path"),
    redis_url: str = typer.Option("redis://localhost:6379", "--redis-url"),
    log_level: str = typer.Option("INFO", "--log-level"),
):
    """🗄  Запустить сервер хранения результатов."""
    from backend.config import Settings
    from backend.main import configure_logging, create_app

    settings = Settings(
        storage_method=storage_method,
        sql_database_path=sql_database_path,
        redis_url=redis_url,
        port=port,
        log_level=log_level,
    )
    configure_logging(settings.log_level)
    config = uvicorn.Config(create_app(settings), host=settings.host, port=settings.port)
    AnnouncingServer(config).run()


@app.command()
def wizard():
    """🧙 Создать новый проект на сервере."""

    def ask(step: WizardStep, error: Optional[str]) -> str:
        if error:
            console.print(f"[red]{escape(error)}[/red]")
        hint = f" [dim]({escape(step.default)})[/dim]" if step.default else ""
        return console.input(f"[bold green]?[/] {escape(step.prompt)}{hint} ")

    answers = run_wizard(ask)

    try:
        with ApiClient(answers["server_base_url"]) as client:
            project = client.create_project(answers["project_name"], answers["external_url"])
    except ApiError as e:
        fail(e.message)

    console.print(f"Created project {escape(project['name'])} ({project['id']})!")
    console.print(f"Use token [bold]{project['token']}[/bold] to connect.")


@app.command()
def report(
    server_base_url: Optional[str] = typer.Option(None, "--server-base-url", "--serverBaseUrl"),
    token: str = typer.Option("", "--token", envvar="PERFBUDGET_TOKEN", help="Project write token"),
    results_dir: Path = typer.Option(DEFAULT_RESULTS_DIR, "--results-dir"),
    rc_file: Optional[Path] = typer.Option(None, "--rc-file"),
):
    """📤 Загрузить локальные отчёты на сервер."""
    try:
        chain = _rc_chain(rc_file)
    except PerfBudgetError as e:
        fail(e.message)
    base_url = _server_url(server_base_url, chain)

    if not token:
        fail("Missing project token (use --token or PERFBUDGET_TOKEN)")

    results = load_local_results(results_dir)
    if not results:
        fail(f"No results found in {results_dir}")

    try:
        with ApiClient(base_url, token=token) as client:
            project = client.find_project_by_token(token)
            console.print(f"Saving CI project {escape(project['name'])} ({project['id']})")

            metadata = get_build_metadata()
            build = client.create_build(project["id"], asdict(metadata))
            console.print(f"Saving CI build ({build['id']})")

            for result in results:
                url = result.report().requested_url
                run = client.create_run(project["id"], build["id"], url, result.lhr)
                console.print(f"Saved LHR to {escape(base_url)} ({run['id']})", soft_wrap=True)
    except ApiError as e:
        fail(e.message)
    except PerfBudgetError as e:
        fail(e.message)

    console.print("Done saving build results")


@app.command(
    "assert",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def assert_(
    ctx: typer.Context,
    rc_file: Optional[Path] = typer.Option(None, "--rc-file"),
    results_dir: Path = typer.Option(DEFAULT_RESULTS_DIR, "--results-dir"),
    server_base_url: Optional[str] = typer.Option(None, "--server-base-url", "--serverBaseUrl"),
    project_id: Optional[str] = typer.Option(None, "--project-id"),
    build_id: Optional[str] = typer.Option(None, "--build-id"),
):
    """✅ Проверить бюджеты. Переопределения: --assertions.<audit>=<level>."""
    try:
        chain = _rc_chain(rc_file)
        overrides = parse_cli_overrides(ctx.args)
        rule_set = resolve_rule_set(rc_section(chain, "assert"), overrides)

        if project_id and build_id:
            with ApiClient(_server_url(server_base_url, chain)) as client:
                lhrs = [run["lhr"] for run in client.list_runs(project_id, build_id)]
        else:
            lhrs = [result.lhr for result in load_local_results(results_dir)]

        reports = [parse_report(lhr) for lhr in lhrs]
    except ApiError as e:
        fail(e.message)
    except PerfBudgetError as e:
        fail(e.message)

    if not reports:
        fail("No results found to assert against")
    if not rule_set.active_rules:
        fail("No assertions to use")

    try:
        outcome = evaluate(rule_set.rules, reports)
    except PerfBudgetError as e:
        fail(e.message)

    exit_code = AssertionReporter(console, err_console).render(outcome)
    write_results_json(outcome, results_dir)
    raise typer.Exit(exit_code)


@app.command()
def healthcheck(
    server_base_url: str = typer.Option(DEFAULT_SERVER_URL, "--server-base-url", "--serverBaseUrl"),
):
    """🏥 Проверить статус сервера."""
    try:
        with ApiClient(server_base_url) as client:
            data = client.health()
    except ApiError as e:
        console.print(f"🔴 Server unavailable: {escape(e.message)}")
        raise typer.Exit(1)

    storage = data.get("storage") or {}
    console.print(f"🟢 Server: {data.get('status')}")
    console.print(f"   Storage: {storage.get('status', 'N/A')} ({storage.get('latency_ms', '-')} ms)")


if __name__ == "__main__":
    app()
