"""CLI for compdb-capture.

Commands:
- run: Wrap a build and write compile_commands.json from its output
- scan: Build compile_commands.json from a saved build log
- classify: Explain how a single line is classified
- init-config: Write a config file with the current settings
"""

import logging
import sys
from pathlib import Path

import click

from .capture import BuildLaunchError, capture_lines, run_build
from .classifier import Accepted, ExtractionPolicy
from .config import DEFAULT_CONFIG_NAME, ConfigError, load_config, save_config
from .logging import setup_logging
from .sink import RecordSink, SinkError

EXTRACTION_CHOICE = click.Choice([policy.value for policy in ExtractionPolicy])


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help=f"Config file (default: ./{DEFAULT_CONFIG_NAME} if present)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log why each line was skipped")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.pass_context
def main(ctx, config_path: Path | None, verbose: bool, json_logs: bool):
    """compdb-capture - build compile_commands.json from build output."""
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING, json_format=json_logs)

    try:
        config = load_config(config_path=config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def _prepare(ctx, output: Path | None, extraction: str | None):
    config = ctx.obj["config"]
    if output is not None:
        config.output.path = str(output)
    if extraction is not None:
        config.classifier.extraction = extraction
    return config, config.classifier.build()


@main.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option(
    "--output", "-o", type=click.Path(path_type=Path, dir_okay=False), help="Database path"
)
@click.option("--extraction", type=EXTRACTION_CHOICE, help="Source file extraction policy")
@click.option("--echo/--quiet", default=True, help="Mirror the build's output")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx, output: Path | None, extraction: str | None, echo: bool, command: tuple[str, ...]):
    """Run COMMAND and record its compile steps.

    Put `--` before the build command when it has options of its own:

        compdb-capture run -- make -j8
    """
    config, classifier = _prepare(ctx, output, extraction)

    try:
        with RecordSink.open(config.output.path) as sink:
            result = run_build(
                list(command),
                classifier,
                sink,
                echo=click.echo if echo else None,
            )
    except (SinkError, BuildLaunchError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Wrote {config.output.path}: {result.stats.summary()}", err=True)
    if not result.ok:
        click.echo(f"Build exited with status {result.exit_status}", err=True)
    ctx.exit(result.exit_status)


@main.command()
@click.argument("logfile", type=click.File("r", encoding="utf-8", errors="replace"), default="-")
@click.option(
    "--output", "-o", type=click.Path(path_type=Path, dir_okay=False), help="Database path"
)
@click.option("--extraction", type=EXTRACTION_CHOICE, help="Source file extraction policy")
@click.pass_context
def scan(ctx, logfile, output: Path | None, extraction: str | None):
    """Record the compile steps found in a saved build log (or stdin)."""
    config, classifier = _prepare(ctx, output, extraction)

    try:
        with RecordSink.open(config.output.path) as sink:
            stats = capture_lines(logfile, classifier, sink)
    except SinkError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Wrote {config.output.path}: {stats.summary()}", err=True)


@main.command()
@click.argument("line")
@click.option("--extraction", type=EXTRACTION_CHOICE, help="Source file extraction policy")
@click.pass_context
def classify(ctx, line: str, extraction: str | None):
    """Show whether LINE counts as a compile step, and why."""
    _, classifier = _prepare(ctx, None, extraction)
    outcome = classifier.classify(line)

    if isinstance(outcome, Accepted):
        click.echo(click.style("accepted", fg="green"))
        click.echo(outcome.record.to_json())
        return

    click.echo(click.style("rejected", fg="red"))
    for reason in sorted(reason.value for reason in outcome.reasons):
        click.echo(f"  {reason}")
    sys.exit(1)


@main.command("init-config")
@click.argument(
    "path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_CONFIG_NAME,
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init_config(ctx, path: Path, force: bool):
    """Write the effective configuration to PATH."""
    if path.exists() and not force:
        raise click.ClickException(f"{path} exists (use --force to overwrite)")

    save_config(ctx.obj["config"], path)
    click.echo(f"Wrote {path}")


if __name__ == "__main__":
    main()
