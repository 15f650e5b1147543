"""
CLI commands for Orthrus SAST.

Provides the main command-line interface using Click.
"""

from __future__ import annotations

import platform
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from orthrus import __version__
from orthrus.context.tree_sitter_parser import TreeSitterParser
from orthrus.core.config import PROJECT_CONFIG_NAME, OrthrusConfig, validate_config
from orthrus.core.engine import ScanEngine
from orthrus.core.errors import ConfigError, InternalGraphError, RuleLoadError
from orthrus.core.progress import create_cli_progress_callback
from orthrus.models.base import Severity
from orthrus.models.finding import ScanResult
from orthrus.models.program import SourceUnit
from orthrus.reporting import ConsoleReporter, ReportConfig, ReporterRegistry
from orthrus.rules.loader import RuleLoader, load_rules
from orthrus.rules.ruleset import RuleSet
from orthrus.utils.logging import setup_logging

# Status output goes to stderr; stdout carries reports.
console = Console(stderr=True)

# Exit codes
EXIT_SUCCESS = 0
EXIT_FINDINGS = 1
EXIT_CONFIG_ERROR = 2
EXIT_RUNTIME_ERROR = 3

SEVERITY_CHOICES = ["critical", "high", "medium", "low", "info"]


@click.group()
@click.version_option(version=__version__, prog_name="orthrus")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output (DEBUG level)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output (ERROR level)")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Write logs to file",
)
@click.option("--json-logs", is_flag=True, help="Output logs in JSON format")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    log_file: Optional[Path],
    json_logs: bool,
) -> None:
    """Orthrus SAST - static taint analysis for Python, JavaScript and Java.

    Tracks untrusted input from sources to dangerous sinks and reports
    every path that no sanitizer interrupts.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["log_file"] = log_file
    ctx.obj["json_logs"] = json_logs

    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    else:
        level = "WARNING"

    setup_logging(
        level=level,
        log_file=log_file,
        json_format=json_logs,
    )


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Write the report to this file instead of stdout",
)
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["json", "sarif", "console"]),
    help="Output format (default: from configuration, console)",
)
@click.option(
    "-r",
    "--rules",
    "catalogues",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Extra rule catalogue (can be specified multiple times)",
)
@click.option(
    "--fail-on",
    type=click.Choice(SEVERITY_CHOICES),
    help="Exit with code 1 if any finding is at least this severe",
)
@click.option(
    "--exclude",
    multiple=True,
    help="Glob patterns to exclude (can be specified multiple times)",
)
@click.option(
    "--languages",
    help="Comma-separated list of languages to analyze",
)
@click.option("--workers", type=click.IntRange(min=1), help="Number of worker processes")
@click.option(
    "--min-confidence",
    type=click.FloatRange(0.0, 1.0),
    help="Hide findings below this confidence",
)
@click.option(
    "--min-severity",
    type=click.Choice(SEVERITY_CHOICES),
    help="Hide findings below this severity",
)
@click.option("--strict", is_flag=True, help="Abort on internal graph errors")
@click.option("--no-default-rules", is_flag=True, help="Do not load the built-in catalogue")
@click.option(
    "--disable",
    multiple=True,
    help="Rule id to skip (can be specified multiple times)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be analyzed without running",
)
@click.pass_context
def scan(
    ctx: click.Context,
    paths: tuple[Path, ...],
    output: Optional[Path],
    output_format: Optional[str],
    catalogues: tuple[Path, ...],
    fail_on: Optional[str],
    exclude: tuple[str, ...],
    languages: Optional[str],
    workers: Optional[int],
    min_confidence: Optional[float],
    min_severity: Optional[str],
    strict: bool,
    no_default_rules: bool,
    disable: tuple[str, ...],
    dry_run: bool,
) -> None:
    """Scan files or directories for taint vulnerabilities.

    PATHS are the files and directories to scan.

    Examples:

        orthrus scan ./my-project

        orthrus scan ./src --format sarif -o results.sarif

        orthrus scan . --exclude "**/tests/**" --languages python,java --fail-on high
    """
    quiet = ctx.obj.get("quiet", False)

    cli_args = {
        "verbose": ctx.obj.get("verbose"),
        "quiet": quiet,
        "log_file": ctx.obj.get("log_file"),
        "json_logs": ctx.obj.get("json_logs"),
        "format": output_format,
        "rules": catalogues,
        "exclude": exclude,
        "languages": languages,
        "workers": workers,
        "min_confidence": min_confidence,
        "min_severity": min_severity,
        "strict": strict,
        "no_default_rules": no_default_rules,
        "disable": disable,
    }

    project_path = paths[0] if paths[0].is_dir() else paths[0].parent
    try:
        cfg = OrthrusConfig.load(cli_args=cli_args, project_path=project_path)
    except (ConfigError, ValidationError, OSError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    setup_logging(
        level=_console_level(cfg.logging.level),
        log_file=cfg.logging.file,
        json_format=cfg.logging.json_format,
        max_file_size_mb=cfg.logging.max_file_size_mb,
        backup_count=cfg.logging.backup_count,
    )

    if not quiet:
        for warning in validate_config(cfg):
            console.print(f"[yellow]Warning:[/] {warning}")

    try:
        rule_set = load_rules(
            *cfg.rules.catalogues, include_defaults=cfg.rules.include_defaults
        ).without(cfg.rules.disabled)
    except RuleLoadError as e:
        console.print(f"[red]Rule error:[/] {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    if not len(rule_set):
        console.print("[red]Rule error:[/] every rule is disabled")
        sys.exit(EXIT_CONFIG_ERROR)

    if dry_run:
        engine = ScanEngine(rule_set, cfg)
        units = engine.discover(paths)
        _print_config_summary(cfg, rule_set)
        _print_discovery_summary(engine, units)
        console.print("\n[green]Dry run complete. No analysis performed.[/]")
        return

    try:
        result = _run_scan(paths, cfg, rule_set, quiet)
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted[/]")
        sys.exit(EXIT_RUNTIME_ERROR)
    except InternalGraphError as e:
        console.print(f"\n[red]Internal graph error (strict mode):[/] {e}")
        sys.exit(EXIT_RUNTIME_ERROR)
    except Exception as e:
        console.print(f"\n[red]Scan failed:[/] {e}")
        if ctx.obj.get("verbose"):
            console.print_exception()
        sys.exit(EXIT_RUNTIME_ERROR)

    try:
        _write_results(result, cfg, rule_set, output)
    except OSError as e:
        console.print(f"[red]Failed to write report:[/] {e}")
        sys.exit(EXIT_RUNTIME_ERROR)

    exit_code = EXIT_SUCCESS
    if fail_on:
        threshold = Severity.from_string(fail_on)
        if any(finding.severity.at_least(threshold) for finding in result.findings):
            exit_code = EXIT_FINDINGS

    sys.exit(exit_code)


@cli.group()
def rules() -> None:
    """Inspect and validate rule catalogues."""
    pass


@rules.command("list")
@click.option(
    "-r",
    "--rules",
    "catalogues",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Extra rule catalogue (can be specified multiple times)",
)
@click.option("--no-default-rules", is_flag=True, help="Do not load the built-in catalogue")
@click.option("--language", help="Only rules that apply to this language")
def rules_list(catalogues: tuple[Path, ...], no_default_rules: bool, language: Optional[str]) -> None:
    """List the rules a scan would run with.

    Examples:

        orthrus rules list

        orthrus rules list -r custom.yaml --language java
    """
    try:
        rule_set = load_rules(*catalogues, include_defaults=not no_default_rules)
    except RuleLoadError as e:
        console.print(f"[red]Rule error:[/] {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    table = Table(title="Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Severity")
    table.add_column("Title")
    table.add_column("CWE", style="green")
    table.add_column("Languages", style="dim")
    table.add_column("Patterns", justify="right")

    selected = rule_set.for_language(language.lower()) if language else list(rule_set)
    for rule in selected:
        table.add_row(
            rule.id,
            rule.severity.value,
            rule.title,
            rule.cwe or "-",
            ", ".join(rule.languages) or "all",
            f"{len(rule.sources)}/{len(rule.sinks)}/{len(rule.sanitizers)}",
        )

    Console().print(table)


@rules.command("validate")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
def rules_validate(files: tuple[Path, ...]) -> None:
    """Validate rule catalogue files.

    Exits with code 2 if any file has problems.

    Examples:

        orthrus rules validate custom.yaml
    """
    loader = RuleLoader()
    failed = False

    for path in files:
        problems = loader.validate_file(path)
        if problems:
            failed = True
            console.print(f"[red]✗[/] {path}")
            for problem in problems:
                console.print(f"    {problem}")
        else:
            count = len(loader.load_file(path))
            console.print(f"[green]✓[/] {path} ({count} rules)")

    if failed:
        sys.exit(EXIT_CONFIG_ERROR)


@cli.command()
def languages() -> None:
    """List supported programming languages."""
    table = Table(title="Supported Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Extensions", style="green")

    parser = TreeSitterParser()
    for lang in sorted(parser.get_supported_languages()):
        table.add_row(lang, ", ".join(parser.get_extensions_for_language(lang)))

    Console().print(table)


@cli.command()
def version() -> None:
    """Show version and system information."""
    out = Console()
    out.print(Panel.fit(
        f"[bold]Orthrus SAST[/] v{__version__}\n\n"
        "Static taint analysis for Python, JavaScript and Java",
        title="Version Info",
    ))

    table = Table(title="System Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("Python", platform.python_version())
    table.add_row("Platform", platform.platform())
    for package in ("tree-sitter", "tree-sitter-python", "tree-sitter-javascript", "tree-sitter-java"):
        table.add_row(package, _installed_version(package))

    out.print(table)


@cli.command()
@click.argument("path", type=click.Path(file_okay=False, path_type=Path), default=".")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(path: Path, force: bool) -> None:
    """Initialize .orthrus.yml configuration in a directory.

    Examples:

        orthrus init

        orthrus init ./my-project --force
    """
    config_path = path / PROJECT_CONFIG_NAME
    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration already exists:[/] {config_path}")
        console.print("Use --force to overwrite")
        return

    path.mkdir(parents=True, exist_ok=True)
    OrthrusConfig().to_yaml(config_path)

    console.print(f"[green]Created configuration:[/] {config_path}")
    console.print("Run 'orthrus scan .' to analyze your codebase.")


def _console_level(level: str) -> str:
    # INFO is the progress bar's job during a scan
    return "WARNING" if level == "INFO" else level


def _installed_version(package: str) -> str:
    try:
        return package_version(package)
    except PackageNotFoundError:
        return "not installed"


def _print_config_summary(cfg: OrthrusConfig, rule_set: RuleSet) -> None:
    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Languages", ", ".join(cfg.analysis.languages))
    table.add_row("Exclude Patterns", f"{len(cfg.analysis.exclude_patterns)} patterns")
    table.add_row("Workers", str(cfg.analysis.workers))
    table.add_row("Strict", "Yes" if cfg.analysis.strict else "No")
    table.add_row("Rules", ", ".join(rule_set.ids))
    table.add_row("Report Formats", ", ".join(cfg.reporting.formats))
    table.add_row("Min Severity", cfg.reporting.min_severity)
    table.add_row("Min Confidence", f"{cfg.reporting.min_confidence:.2f}")

    console.print(table)


def _print_discovery_summary(engine: ScanEngine, units: list[SourceUnit]) -> None:
    counts: dict[str, int] = {}
    for unit in units:
        language = unit.language or engine.parser.detect_language(unit.path) or "unknown"
        counts[language] = counts.get(language, 0) + 1

    table = Table(title=f"Files to Scan ({len(units)})")
    table.add_column("Language", style="cyan")
    table.add_column("Files", justify="right")
    for language in sorted(counts):
        table.add_row(language, str(counts[language]))

    console.print(table)


def _run_scan(paths: tuple[Path, ...], cfg: OrthrusConfig, rule_set: RuleSet, quiet: bool) -> ScanResult:
    """Run the scan engine with progress tracking."""
    repository = ", ".join(str(p) for p in paths)
    if quiet:
        return ScanEngine(rule_set, cfg).scan(paths, repository=repository)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("[cyan]Scanning...", total=100)
        engine = ScanEngine(rule_set, cfg, progress_callback=create_cli_progress_callback(progress, task_id))
        return engine.scan(paths, repository=repository)


def _write_results(
    result: ScanResult,
    cfg: OrthrusConfig,
    rule_set: RuleSet,
    output: Optional[Path],
) -> None:
    """
    Emit one report per configured format.

    Console output goes to the terminal. With a single file format the report
    goes to `output`, or stdout; with several, each goes to the output directory.
    """
    report_config = ReportConfig.from_settings(cfg.reporting)

    file_formats = [fmt for fmt in cfg.reporting.formats if fmt != "console"]
    for fmt in cfg.reporting.formats:
        if fmt == "console" and not output:
            ConsoleReporter(config=report_config, rules=rule_set, console=Console()).display(result)
            continue

        try:
            reporter = ReporterRegistry.create(fmt, config=report_config, rules=rule_set)
        except ValueError as e:
            console.print(f"[yellow]{e}[/]")
            continue

        target = reporter.default_path(cfg.reporting.output_dir) if len(file_formats) > 1 else output
        if target is None:
            reporter.emit(result, click.get_text_stream("stdout"))
        else:
            written = reporter.write(result, target)
            console.print(f"[green]Results written to:[/] {written}")


if __name__ == "__main__":
    cli()
