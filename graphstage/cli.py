"""
CLI interface for graphstage.

Provides commands to inspect the operation catalog, show the stage chain a
pipeline script compiles to, and run it.

Exit codes follow Compiler.compile_and_run(): 0 success, 1 execution
failure, 2 planning failure (including configuration and script errors).
"""

import importlib
import json
from pathlib import Path
from typing import Optional

import click

from graphstage import __version__
from graphstage.compiler import Compiler
from graphstage.config import ConfigError, GraphStageConfig, load_config
from graphstage.errors import EXIT_OK, EXIT_PLANNING_ERROR, PlanningError
from graphstage.schemas import Op
from graphstage.script import ScriptError, apply_script, load_script
from graphstage.substrate import InMemoryStorage, LocalStorage, NoOpSubstrate, Substrate
from graphstage.utils import print_banner, print_error, print_info, print_success, setup_logging


def _load_config(config_path: Optional[Path]) -> GraphStageConfig:
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"✗ Config error: {e}", err=True)
        raise SystemExit(EXIT_PLANNING_ERROR)

    setup_logging(
        config.get_log_file_path(),
        log_level=config.get_log_level(),
        log_format=config.get_log_format(),
        console_output=config.should_log_to_console(),
    )
    return config


def _apply_script(compiler: Compiler, script: Path) -> None:
    try:
        apply_script(compiler, load_script(script))
    except (ScriptError, PlanningError) as e:
        click.echo(f"✗ {script}: {e}", err=True)
        raise SystemExit(EXIT_PLANNING_ERROR)


def _load_substrate(spec: str) -> Substrate:
    """Instantiate a substrate from a "module:ClassName" reference."""
    module_name, _, class_name = spec.partition(":")
    if not module_name or not class_name:
        raise click.BadParameter(f"expected module:ClassName, got {spec!r}", param_hint="--substrate")
    try:
        substrate_class = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(f"cannot load {spec}: {e}", param_hint="--substrate")
    return substrate_class()


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: $GRAPHSTAGE_CONFIG or ./graphstage.yaml)",
)


@click.group()
@click.version_option(version=__version__, prog_name="graphstage")
def main():
    """
    graphstage - Graph pipeline compiler.

    Compile graph operation scripts into chains of batch stages.
    """
    pass


@main.command("ops")
def list_ops():
    """List catalog operations and whether they need grouping."""
    for op in Op:
        click.echo(f"{op.value:<20} {op.kind.value}")


@main.command("plan")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@config_option
@click.option("--json", "as_json", is_flag=True, help="Print the composed pipeline as JSON")
def plan(script: Path, config_path: Optional[Path], as_json: bool):
    """
    Show the stage chain SCRIPT compiles to.

    Nothing is read, written or deleted.

    Examples:

        graphstage plan friends.yaml

        graphstage plan friends.yaml --config prod.yaml --json
    """
    config = _load_config(config_path)
    compiler = Compiler(config, storage=InMemoryStorage())
    _apply_script(compiler, script)

    try:
        pipeline = compiler.compile()
    except PlanningError as e:
        print_error(f"Planning failed: {e}")
        raise SystemExit(EXIT_PLANNING_ERROR)

    if as_json:
        click.echo(json.dumps(pipeline.to_dict(), indent=2))
        return

    print_banner(config.name)
    if pipeline.is_empty:
        print_info("No operations: nothing to run")
        return
    kind = "derivation" if pipeline.derivation else "statistics"
    print_info(f"{len(pipeline)} stage(s), {len(pipeline.intermediates)} intermediate location(s), {kind}")
    for stage in pipeline.stages:
        click.echo(f"{stage.index + 1}. {stage.name}")
        click.echo(f"   in:  {stage.input_location or '-'} ({stage.input_format})")
        click.echo(f"   out: {stage.output_location or '-'} ({stage.output_format})")


@main.command("run")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@config_option
@click.option("--dry-run", is_flag=True, help="Log each stage instead of submitting it")
@click.option("--substrate", "substrate_ref", default=None, help="Substrate class as module:ClassName")
def run(script: Path, config_path: Optional[Path], dry_run: bool, substrate_ref: Optional[str]):
    """
    Compile SCRIPT and run its stages in order.

    Examples:

        graphstage run friends.yaml --dry-run

        graphstage run friends.yaml --substrate mycluster.substrate:ClusterSubstrate
    """
    if dry_run and substrate_ref:
        raise click.UsageError("--dry-run and --substrate are mutually exclusive")
    if not dry_run and not substrate_ref:
        raise click.UsageError("either --dry-run or --substrate is required")

    config = _load_config(config_path)
    if dry_run:
        storage = InMemoryStorage()
        substrate: Substrate = NoOpSubstrate(storage)
        click.echo("=== DRY RUN MODE === (no stages submitted)")
    else:
        storage = LocalStorage()
        substrate = _load_substrate(substrate_ref)

    compiler = Compiler(config, storage=storage, substrate=substrate)
    _apply_script(compiler, script)

    report = compiler.run()
    if report.status == EXIT_OK:
        print_success(f"{config.name} completed ({len(report.pipeline or ())} stage(s))")
        return

    if report.failure == "planning":
        print_error(f"Planning failed: {report.error}")
    else:
        print_error(f"Execution failed: {report.error}")
    raise SystemExit(report.status)
