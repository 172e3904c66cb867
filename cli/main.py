"""
CLI Interface - команды docdeploy

Команды:
- docdeploy run   - deploy для push события (exit 0 / 1)
- docdeploy plan  - показать шаги без выполнения
- docdeploy check - pre-flight проверки окружения
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click

from core.config import Config, load_config
from core.exceptions import ConfigError
from core.logging_config import setup_logging
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.trigger import PushEvent
from cli.display import Display, DisplayMode


def _event_from_options(config: Config, ref: Optional[str], sha: Optional[str],
                        repository: Optional[str]) -> PushEvent:
    """Event from the environment, with CLI flags taking precedence"""
    event = PushEvent.from_env()
    if ref:
        event.ref = ref if ref.startswith("refs/") else f"refs/heads/{ref}"
    if sha:
        event.sha = sha
    if repository:
        event.repository = repository
    if not os.environ.get('GITHUB_SERVER_URL'):
        event.server_url = config.server_url
    return event


def _load(ctx, **overrides) -> Config:
    try:
        return load_config(
            env_file=ctx.obj.get('env_file'),
            yaml_file=ctx.obj.get('yaml_file'),
            **overrides
        )
    except ConfigError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option('--config', '-c', 'env_file', type=click.Path(exists=True), help='Path to .env config file')
@click.option('--file', '-f', 'yaml_file', type=click.Path(exists=True), help='YAML deploy config')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, env_file: Optional[str], yaml_file: Optional[str], verbose: bool):
    """docdeploy - build API docs and publish them to a pages branch"""
    ctx.ensure_object(dict)
    ctx.obj['env_file'] = env_file
    ctx.obj['yaml_file'] = yaml_file
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--ref', help='Pushed ref or branch (default: $GITHUB_REF)')
@click.option('--sha', help='Commit to deploy (default: $GITHUB_SHA)')
@click.option('--repository', '-r', help='owner/name (default: $GITHUB_REPOSITORY)')
@click.option('--workspace', '-w', type=click.Path(file_okay=False), help='Worker checkout directory')
@click.option('--keep-files/--no-keep-files', default=None, help='Keep previously published files')
@click.option('--dry-run', is_flag=True, help='Log commands instead of running them; never push')
@click.option('--quiet', '-q', is_flag=True, help='Only progress and result')
@click.pass_context
def run(ctx, ref, sha, repository, workspace, keep_files, dry_run, quiet):
    """Run fetch -> toolchain -> generate -> publish for a push event"""
    config = _load(ctx, keep_files=keep_files, dry_run=dry_run or None, workspace_dir=workspace)
    setup_logging(
        level="DEBUG" if ctx.obj['verbose'] else "WARNING",
        log_dir=config.log_dir,
        json_format=True
    )

    event = _event_from_options(config, ref, sha, repository)
    display = Display(mode=DisplayMode.QUIET if quiet else DisplayMode.VERBOSE)
    display.header(f"docdeploy - {event.repository or Path(config.workspace_dir).resolve().name}")
    display.info(f"Ref: {event.ref or '<none>'}")
    display.info(f"Commit: {event.sha or '<local HEAD>'}")
    display.info(f"Mode: {'merge (keep_files)' if config.keep_files else 'mirror'}")
    if config.dry_run:
        display.info("DRY RUN (no changes will be made)")
    display.separator()

    orchestrator = PipelineOrchestrator(config)
    total = len(orchestrator.steps)

    def on_step_start(index, step):
        display.step_start(index, total, step.description or step.name)

    def on_step_complete(index, result):
        display.commands(result.commands)
        display.step_complete(result.name, result.message, result.duration_ms)

    orchestrator.set_callbacks(
        on_step_start=on_step_start,
        on_step_complete=on_step_complete,
        on_progress=display.progress
    )

    state = orchestrator.run(event)

    if state.failed_step:
        display.error(f"{state.failed_step} failed: {state.error}")
    display.final_report(orchestrator.get_stats())
    sys.exit(0 if state.succeeded else 1)


@cli.command()
@click.option('--ref', help='Pushed ref or branch (default: $GITHUB_REF)')
@click.option('--sha', help='Commit to deploy (default: $GITHUB_SHA)')
@click.option('--repository', '-r', help='owner/name (default: $GITHUB_REPOSITORY)')
@click.pass_context
def plan(ctx, ref, sha, repository):
    """Show whether the event triggers a deploy and the commands it would run"""
    config = _load(ctx)
    setup_logging(level="DEBUG" if ctx.obj['verbose'] else "WARNING")

    event = _event_from_options(config, ref, sha, repository)
    display = Display()
    orchestrator = PipelineOrchestrator(config)
    commands = orchestrator.plan(event)

    if not commands:
        display.warning(f"{event.ref or '<no ref>'} does not trigger a deploy (branches: {', '.join(config.branches)})")
        return

    display.header(f"Plan for {event.ref}")
    display.plan(commands)


@cli.command()
@click.pass_context
def check(ctx):
    """Pre-flight checks: binaries and credential"""
    config = _load(ctx)
    display = Display()
    warnings = config.get_validation_errors()
    if not warnings:
        display.success("All checks passed")
        return
    for warning in warnings:
        display.warning(warning)
    sys.exit(1)


def main():
    """Entry point"""
    cli(obj={})


if __name__ == '__main__':
    main()
