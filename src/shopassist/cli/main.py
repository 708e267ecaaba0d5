"""ShopAssist CLI - Main entry point."""

import json
from pathlib import Path
from typing import Annotated

import typer

import shopassist
from shopassist.cli.context import CLIContext, get_database_url
from shopassist.cli.output import OutputFormatter
from shopassist.command.classifier import classify_text
from shopassist.core.config import configure_logging, get_settings
from shopassist.core.types import CommandContext, Scalar
from shopassist.query.validator import SafetyValidator

app = typer.Typer(
    name="shopassist",
    help="ShopAssist CLI - natural-language commands for the repair shop",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="SHOPASSIST_DATABASE_URL",
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON (machine-readable)"),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    settings = get_settings()
    ctx.obj = CLIContext(
        database_url=get_database_url(database, settings),
        json_output=json_output,
        settings=settings,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"ShopAssist v{shopassist.__version__}")


@app.command()
def classify(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Command text")],
) -> None:
    """Show the intent a command is classified as.

    Examples:

        shopassist classify "open repair orders"
        shopassist classify "decode VIN 1HGBH41JXMN109186"
    """
    cli_ctx: CLIContext = ctx.obj
    OutputFormatter(cli_ctx.json_output).print_intent(classify_text(text))


def _parse_param(value: str) -> Scalar:
    """Read a --param value as JSON when possible, otherwise as text."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return value
    if isinstance(parsed, dict | list):
        return value
    return parsed


@app.command()
def validate(
    ctx: typer.Context,
    sql: Annotated[str | None, typer.Argument(help="SQL to check")] = None,
    params: Annotated[
        list[str] | None,
        typer.Option("--param", "-p", help="Positional parameter value ($1, $2, ...)"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
) -> None:
    """Check SQL against the safety rules without running it.

    Exits with code 1 when the query is rejected.

    Examples:

        shopassist validate "SELECT id FROM customers LIMIT 10"
        shopassist validate "SELECT * FROM customers WHERE id = $1 LIMIT 1" -p 7
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    if from_file:
        sql_text = Path(from_file).read_text()
    elif sql is not None:
        sql_text = sql
    else:
        raise typer.BadParameter("Either provide SQL or use --file")

    validator = SafetyValidator(allowed_tables=cli_ctx.settings.allowed_tables)
    verdict = validator.validate(sql_text, [_parse_param(p) for p in params or []])
    formatter.print_verdict(verdict)
    if not verdict.safe:
        raise typer.Exit(code=1)


@app.command()
def ask(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Command text")],
    context: Annotated[
        str | None,
        typer.Option("--context", "-c", help='Context JSON, e.g. \'{"workOrderId": 19}\''),
    ] = None,
) -> None:
    """Run a command through the full pipeline.

    Examples:

        shopassist ask "find customer Bob Johnson"
        shopassist ask "parts on this RO" --context '{"workOrderId": 19}'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        payload = json.loads(context) if context else None
        response = cli_ctx.get_gateway().handle(text, CommandContext.from_payload(payload))
        formatter.print_response(response)
    except json.JSONDecodeError as e:
        formatter.print_error(ValueError(f"Invalid --context JSON: {e}"))
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Bind port")] = None,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from shopassist.api.app import create_app

    cli_ctx: CLIContext = ctx.obj
    settings = cli_ctx.settings.model_copy(update={"database_url": cli_ctx.database_url})
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
