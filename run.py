"""Entry-point for the Course Desk application."""

from __future__ import annotations

import inspect
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from coursedesk.bootstrap import initialize_app
from coursedesk.logging_utils import build_default_handlers, configure_logging
from coursedesk.services.storage import CourseRepository
from coursedesk.ui.modern import ModernUI
from coursedesk.web import create_app


LOGGER = logging.getLogger("coursedesk.cli")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# multipart boundaries and form fields on top of the file itself
_REQUEST_OVERHEAD_BYTES = 1024 * 1024


cli = typer.Typer(add_completion=False, help="Course Desk management commands")


def _prepare_logging(storage_root: Path) -> None:
    configure_logging(handlers=build_default_handlers(storage_root))


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
) -> None:
    """Run the FastAPI web application."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    repository = CourseRepository(app_config)
    app = create_app(repository, config=app_config)

    config_kwargs = {}
    if app_config.max_upload_bytes > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = (
                app_config.max_upload_bytes + _REQUEST_OVERHEAD_BYTES
            )
        else:
            LOGGER.debug(
                "uvicorn.Config has no 'limit_max_request_size'; relying on upload validation.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving Course Desk on http://%s:%s/", host, port)
    server.run()


@cli.command()
def overview() -> None:
    """Render an overview of courses, lessons and their files."""

    config = initialize_app()
    _prepare_logging(config.storage_root)
    ModernUI(CourseRepository(config)).run()


@cli.command("add-course")
def add_course(
    title: str = typer.Argument(..., help="Course title"),
    description: str = typer.Option("", help="Course description"),
) -> None:
    """Create a course."""

    repository = CourseRepository(initialize_app())
    course_id = repository.add_course(title, description)
    typer.echo(f"Created course {course_id}: {title}")


@cli.command("add-module")
def add_module(
    course_id: int = typer.Argument(..., help="Identifier of the parent course"),
    title: str = typer.Argument(..., help="Module title"),
    description: str = typer.Option("", help="Module description"),
) -> None:
    """Create a module inside a course."""

    repository = CourseRepository(initialize_app())
    if repository.get_course(course_id) is None:
        raise typer.BadParameter(f"Course {course_id} does not exist", param_hint="COURSE_ID")
    module_id = repository.add_module(course_id, title, description)
    typer.echo(f"Created module {module_id}: {title}")


@cli.command("add-lesson")
def add_lesson(
    module_id: int = typer.Argument(..., help="Identifier of the parent module"),
    title: str = typer.Argument(..., help="Lesson title"),
    description: str = typer.Option("", help="Lesson description"),
    quiz_link: Optional[str] = typer.Option(None, help="External quiz URL"),
) -> None:
    """Create a lesson inside a module."""

    repository = CourseRepository(initialize_app())
    if repository.get_module(module_id) is None:
        raise typer.BadParameter(f"Module {module_id} does not exist", param_hint="MODULE_ID")
    lesson_id = repository.add_lesson(module_id, title, description, quiz_link=quiz_link)
    typer.echo(f"Created lesson {lesson_id}: {title}")


if __name__ == "__main__":
    cli()
