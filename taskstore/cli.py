import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from pydantic import ValidationError

from taskstore.core.config import get_settings
from taskstore.core.db.pool import PoolManager, close_pool, init_pool
from taskstore.core.errors import TaskStoreError
from taskstore.core.logger import configure_loggers, setup_logger
from taskstore.todo import PriorityLevel, Task, TaskRepository, ensure_schema

logger = setup_logger(__name__, include_location=True)

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, help="Manage tasks stored in Postgres.")

_overrides: dict = {}


@app.callback()
def main(
    pg_params: Optional[str] = typer.Option(
        None, "--pg-params", envvar="TASKSTORE_PG_PARAMS",
        help="libpq connection string (defaults to POSTGRES_* settings)",
    ),
    pool_max_size: Optional[int] = typer.Option(None, "--pool-max-size", min=1, help="Maximum pooled connections"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
):
    """Connection settings shared by every command."""
    try:
        settings = get_settings(reload=True)
    except ValidationError as e:
        typer.echo(f"Invalid settings: {e}", err=True)
        raise typer.Exit(code=2)
    _overrides.clear()
    _overrides.update({"pg_params": pg_params, "pool_max_size": pool_max_size})
    configure_loggers(
        level="DEBUG" if verbose else settings.log_level,
        use_json=settings.log_json,
    )


def _run(operation: Callable[[PoolManager], Awaitable[T]]) -> T:
    """Open the shared pool, run one operation against it, close the pool."""
    try:
        options = get_settings().db_options(**_overrides)
    except ValidationError as e:
        typer.echo(f"Invalid connection settings: {e}", err=True)
        raise typer.Exit(code=2)

    async def runner():
        pool = await init_pool(options)
        try:
            return await operation(pool)
        finally:
            await close_pool()

    try:
        return asyncio.run(runner())
    except TaskStoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _format_task(task: Task) -> str:
    status = f"done {task.completed_at.isoformat()}" if task.is_completed else "open"
    expires = f" expires {task.expired_at.isoformat()}" if task.expired_at else ""
    return f"{task.id}  [{task.priority.value:<6}] {status:<10} {task.description}{expires}"


def _echo_tasks(tasks: List[Task], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([t.model_dump(mode="json") for t in tasks], indent=2))
        return
    if not tasks:
        typer.echo("No tasks.")
    for task in tasks:
        typer.echo(_format_task(task))


def _parse_priority(value: str) -> PriorityLevel:
    try:
        return PriorityLevel.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--priority")


def _parse_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise typer.BadParameter(f"not a valid task id: {value!r}", param_hint="TASK_ID")


@app.command("init-db")
def init_db():
    """Create the priority_level type and todo table when missing."""
    _run(ensure_schema)
    typer.echo("Schema ready.")


@app.command("add")
def add_task(
    description: str = typer.Argument(..., help="What needs doing"),
    priority: str = typer.Option("Medium", "--priority", "-p", help="Low, Medium or High"),
    expires: Optional[datetime] = typer.Option(
        None, "--expires", help="Expiration timestamp, UTC (e.g. 2026-12-31T18:00:00)",
    ),
):
    """Create and save a new task."""
    level = _parse_priority(priority)
    if expires is not None and expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    task = Task.new(description, level, expires)
    _run(lambda pool: TaskRepository(pool).save(task))
    typer.echo(_format_task(task))


@app.command("list")
def list_tasks(
    as_json: bool = typer.Option(False, "--json", help="Print tasks as JSON"),
):
    """List every stored task."""
    tasks = _run(lambda pool: TaskRepository(pool).list_all())
    _echo_tasks(tasks, as_json)


@app.command("show")
def show_task(
    task_id: str = typer.Argument(..., help="Task id"),
    as_json: bool = typer.Option(False, "--json", help="Print the task as JSON"),
):
    """Show one task."""
    parsed = _parse_id(task_id)
    task = _run(lambda pool: TaskRepository(pool).get_by_id(parsed))
    _echo_tasks([task], as_json)


@app.command("toggle")
def toggle_task(task_id: str = typer.Argument(..., help="Task id")):
    """Flip a task between open and completed, then save it."""
    parsed = _parse_id(task_id)

    async def toggle(pool: PoolManager) -> Task:
        repo = TaskRepository(pool)
        task = await repo.get_by_id(parsed)
        return await repo.save(task.toggle_complete())

    typer.echo(_format_task(_run(toggle)))


@app.command("delete")
def delete_task(task_id: str = typer.Argument(..., help="Task id")):
    """Delete a task. Unknown ids are not an error."""
    parsed = _parse_id(task_id)
    _run(lambda pool: TaskRepository(pool).delete_by_id(parsed))
    typer.echo(f"Deleted {parsed}")


@app.command("demo")
def demo():
    """Walk one task through save, toggle, re-save and delete, printing each state."""

    async def walkthrough(pool: PoolManager) -> None:
        repo = TaskRepository(pool)
        task = Task.new("Publish this draft", PriorityLevel.HIGH, None)

        await repo.save(task)
        typer.echo(f"saved:     {_format_task(task)}")

        task.toggle_complete()
        await repo.save(task)
        typer.echo(f"completed: {_format_task(task)}")

        stored = await repo.list_all()
        typer.echo(f"stored ({len(stored)}):")
        for item in stored:
            typer.echo(f"  {_format_task(item)}")

        await repo.delete(task)
        remaining = await repo.list_all()
        typer.echo(f"after delete ({len(remaining)}):")
        for item in remaining:
            typer.echo(f"  {_format_task(item)}")

    _run(walkthrough)


if __name__ == "__main__":
    app()
