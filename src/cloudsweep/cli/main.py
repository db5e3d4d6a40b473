"""Main CLI entry point using Typer."""

import logging
import signal
import sys
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..cleanup.audit import AuditStorage
from ..cleanup.cleaner import ResourceCleaner
from ..cleanup.preflight import run_preflight
from ..cleanup.safety import ProtectionPolicy
from ..errors import CloudSweepError, ConfigError
from ..models.deletion_report import RunConfig
from ..models.resource import ResourceFilter
from ..providers import ADAPTERS, get_adapter
from ..providers.azure import STATE_BLOB, STATE_CONTAINER_PREFIX
from ..providers.base import ProviderAdapter
from ..report.reporter import OutcomeReporter
from ..utils.logging import setup_logging
from .config import Config

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="cloudsweep",
    help="cloudsweep - dependency-ordered cleanup of GCP and Azure deployments",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Config file (default: $CLOUDSWEEP_CONFIG or ~/.cloudsweep/config.yaml)",
    ),
):
    """cloudsweep - dependency-ordered cleanup of GCP and Azure deployments."""
    global config

    # Load configuration
    try:
        config = Config.load(config_path)
    except ConfigError as e:
        console.print(f"✗ Configuration error: {e.message}", style="bold red")
        raise typer.Exit(code=2)

    # Setup logging
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose, log_file=config.log_file)

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"cloudsweep version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")


def parse_labels(labels: Optional[List[str]]) -> dict:
    """Parse repeated ``key=value`` options into a label selector."""
    selector = {}
    for item in labels or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Label must be key=value, got '{item}'", param_hint="--label")
        selector[key.strip()] = value.strip()
    return selector


def _current_config() -> Config:
    return config if config is not None else Config()


def _build_filter(prefix: Optional[List[str]], label: Optional[List[str]], region: Optional[List[str]]) -> ResourceFilter:
    try:
        return ResourceFilter(
            name_prefixes=tuple(prefix or ()),
            label_selector=parse_labels(label),
            regions=tuple(region or ()),
        )
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        console.print("Pass at least one --prefix or --label.", style="yellow")
        raise typer.Exit(code=2)


def _make_adapter(provider: str, scope: str) -> ProviderAdapter:
    try:
        return get_adapter(provider, scope, timeout=_current_config().call_timeout)
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=2)


def _resolve_scopes(provider: str, scope: Optional[str], all_scopes: bool) -> List[str]:
    """Scopes to operate on: the given one, or every scope visible to the caller."""
    if not all_scopes:
        if not scope:
            console.print("✗ Pass --scope or --all-scopes", style="bold red")
            raise typer.Exit(code=2)
        return [scope]

    try:
        scopes = _make_adapter(provider, scope or "").list_scopes()
    except CloudSweepError as e:
        console.print(f"✗ Could not list scopes: {e.message}", style="bold red")
        raise typer.Exit(code=2)

    if not scopes:
        console.print("✗ No scopes visible to the current credentials", style="bold red")
        raise typer.Exit(code=2)
    return scopes


def _export_path(export: str, scope: str, multiple: bool) -> str:
    if not multiple:
        return export
    path = Path(export)
    return str(path.with_name(f"{path.stem}-{scope}{path.suffix}"))


@contextmanager
def _cancel_on_interrupt(cancel_event: threading.Event) -> Iterator[None]:
    """Turn the first Ctrl-C into a graceful cancellation."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        console.print("\n⚠ Cancelling: in-flight deletions will finish, nothing new starts", style="yellow")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@app.command()
def discover(
    provider: str = typer.Option(..., "--provider", help=f"Cloud provider ({', '.join(sorted(ADAPTERS))})"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Project id (gcp) or subscription id (azure)"),
    all_scopes: bool = typer.Option(False, "--all-scopes", help="Every project/subscription visible to you"),
    prefix: Optional[List[str]] = typer.Option(None, "--prefix", help="Resource name prefix (repeatable)"),
    label: Optional[List[str]] = typer.Option(None, "--label", help="Label selector key=value (repeatable)"),
    region: Optional[List[str]] = typer.Option(None, "--region", help="Restrict to region (repeatable)"),
):
    """List matching resources and the order they would be deleted in."""
    resource_filter = _build_filter(prefix, label, region)
    scopes = _resolve_scopes(provider, scope, all_scopes)
    reporter = OutcomeReporter(no_color=console.no_color)

    for scope_id in scopes:
        adapter = _make_adapter(provider, scope_id)
        cleaner = ResourceCleaner(adapter)
        try:
            graph, plan = cleaner.discover(resource_filter)
        except (CloudSweepError, ValueError) as e:
            console.print(f"✗ Discovery failed for {scope_id}: {e}", style="bold red")
            raise typer.Exit(code=2)

        console.print(f"\n[bold]{provider}:{scope_id}[/bold] - {len(graph)} resource(s), {len(plan)} batch(es)")
        if len(plan):
            console.print(reporter.plan_table(plan))
        else:
            console.print("No matching resources found.", style="yellow")
        for warning in graph.warnings:
            console.print(f"⚠ {warning}", style="yellow", markup=False)


@app.command()
def clean(
    provider: str = typer.Option(..., "--provider", help=f"Cloud provider ({', '.join(sorted(ADAPTERS))})"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Project id (gcp) or subscription id (azure)"),
    all_scopes: bool = typer.Option(False, "--all-scopes", help="Every project/subscription visible to you"),
    prefix: Optional[List[str]] = typer.Option(None, "--prefix", help="Resource name prefix (repeatable)"),
    label: Optional[List[str]] = typer.Option(None, "--label", help="Label selector key=value (repeatable)"),
    region: Optional[List[str]] = typer.Option(None, "--region", help="Restrict to region (repeatable)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview deletions without deleting anything"),
    confirm: bool = typer.Option(False, "--confirm", help="Confirm deletion (required unless --dry-run)"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, help="Concurrent deletions per batch"),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", min=1, help="Attempts per resource"),
    protect: Optional[List[str]] = typer.Option(None, "--protect", help="Never delete names matching REGEX (repeatable)"),
    export: Optional[str] = typer.Option(None, "--export", help="Write the report to this file"),
    export_format: str = typer.Option("json", "--format", help="Export format: json or csv"),
    no_audit: bool = typer.Option(False, "--no-audit", help="Do not write an audit log"),
):
    """Delete matching resources in dependency order (or preview with --dry-run)."""
    if not dry_run and not confirm:
        console.print("✗ Deletion requires --confirm (or use --dry-run to preview)", style="bold red")
        raise typer.Exit(code=1)
    if export_format not in ("json", "csv"):
        console.print(f"✗ Unknown export format '{export_format}'. Must be json or csv", style="bold red")
        raise typer.Exit(code=2)

    cfg = _current_config()
    resource_filter = _build_filter(prefix, label, region)
    scopes = _resolve_scopes(provider, scope, all_scopes)
    policy = _policy(provider, protect)
    audit_storage = None if (dry_run or no_audit) else AuditStorage(cfg.audit_dir)
    reporter = OutcomeReporter(no_color=console.no_color)
    cancel_event = threading.Event()

    exit_code = 0
    with _cancel_on_interrupt(cancel_event):
        for scope_id in scopes:
            if cancel_event.is_set():
                break

            run_config = RunConfig(
                provider=provider,
                scope_id=scope_id,
                resource_filter=resource_filter,
                dry_run=dry_run,
                concurrency=concurrency or cfg.concurrency,
                max_attempts=max_attempts or cfg.max_attempts,
                backoff_base=cfg.backoff_base,
                call_timeout=cfg.call_timeout,
            )
            cleaner = ResourceCleaner(
                _make_adapter(provider, scope_id),
                policy=policy,
                audit_storage=audit_storage,
                cancel_event=cancel_event,
            )

            try:
                if dry_run:
                    report = cleaner.preview(run_config)
                else:
                    report = cleaner.execute(run_config, confirmed=True)
            except (CloudSweepError, ValueError) as e:
                console.print(f"✗ Cleanup of {scope_id} failed: {e}", style="bold red")
                raise typer.Exit(code=2)

            if report.outcomes:
                console.print(reporter.outcome_table(report))
            else:
                console.print(f"No matching resources found in {scope_id}.", style="yellow")
            console.print(reporter.summary_line(report), markup=False)
            for warning in report.warnings:
                console.print(f"⚠ {warning}", style="yellow", markup=False)

            if export:
                path = _export_path(export, scope_id, len(scopes) > 1)
                if export_format == "csv":
                    reporter.export_csv(report, path)
                else:
                    reporter.export_json(report, path)
                console.print(f"✓ Report exported to {path}", style="green")

            if audit_storage is not None:
                console.print(f"Audit log: operation {report.operation_id}", style="dim")

            exit_code = max(exit_code, report.exit_code)

    if exit_code:
        raise typer.Exit(code=exit_code)


@app.command()
def preflight(
    provider: str = typer.Option(..., "--provider", help=f"Cloud provider ({', '.join(sorted(ADAPTERS))})"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Project id (gcp) or subscription id (azure)"),
    all_scopes: bool = typer.Option(False, "--all-scopes", help="Every project/subscription visible to you"),
    region: Optional[List[str]] = typer.Option(
        None, "--region", help="Azure region to check Functions quota in, main region first (repeatable, default: eastus)"
    ),
):
    """Check required providers or APIs, and on azure roles, DENY policies and quota, before deploying."""
    missing = 0
    warnings = 0
    for scope_id in _resolve_scopes(provider, scope, all_scopes):
        try:
            results = run_preflight(_make_adapter(provider, scope_id), regions=region or ())
        except CloudSweepError as e:
            console.print(f"✗ Preflight failed for {scope_id}: {e.message}", style="bold red")
            raise typer.Exit(code=2)

        table = Table(title=f"Preflight {provider}:{scope_id}")
        table.add_column("Requirement")
        table.add_column("State")
        for result in results:
            style = "green" if result.ok else ("yellow" if result.advisory else "red")
            table.add_row(escape(result.name), f"[{style}]{escape(result.state)}[/{style}]")
            missing += 1 if result.blocking else 0
            warnings += 1 if result.advisory and not result.ok else 0
        console.print(table)

    if warnings:
        console.print(f"⚠ {warnings} warning(s)", style="yellow")
    if missing:
        console.print(f"✗ {missing} requirement(s) missing", style="bold red")
        raise typer.Exit(code=1)
    console.print("✓ All requirements met", style="green")


@app.command("release-locks")
def release_locks(
    scope: str = typer.Option(..., "--scope", help="Subscription id"),
    storage_account: str = typer.Option(..., "--storage-account", help="Storage account holding Terraform state"),
    container_prefix: str = typer.Option(STATE_CONTAINER_PREFIX, "--container-prefix", help="State container name prefix"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List locked state blobs without breaking their leases"),
):
    """Break leases left on Terraform state blobs by interrupted azure deployments."""
    adapter = _make_adapter("azure", scope)
    try:
        locked = adapter.release_state_locks(storage_account, container_prefix=container_prefix, dry_run=dry_run)
    except CloudSweepError as e:
        console.print(f"✗ Releasing locks failed: {e.message}", style="bold red")
        raise typer.Exit(code=2)

    if not locked:
        console.print("✓ No locked state blobs", style="green")
        return
    verb = "Locked" if dry_run else "Released"
    for container in locked:
        console.print(f"{verb}: {container}/{STATE_BLOB}")
    console.print(f"✓ {len(locked)} lock(s) {'found' if dry_run else 'released'}", style="green")


@app.command()
def protections(
    provider: str = typer.Option(..., "--provider", help=f"Cloud provider ({', '.join(sorted(ADAPTERS))})"),
    protect: Optional[List[str]] = typer.Option(None, "--protect", help="Additional name REGEX (repeatable)"),
):
    """List the protection rules in effect for a provider."""
    policy = _policy(provider, protect)

    table = Table(title=f"Protection rules ({provider})")
    table.add_column("Priority", justify="right")
    table.add_column("Rule")
    table.add_column("Type")
    table.add_column("Kinds")
    table.add_column("Pattern")
    table.add_column("Description")

    for rule in policy.rules:
        table.add_row(
            str(rule.priority),
            rule.rule_id,
            rule.rule_type.value,
            ", ".join(k.value for k in rule.kinds) or "any",
            escape(", ".join(f"{k}={v}" for k, v in rule.patterns.items())),
            escape(rule.description or ""),
        )
    console.print(table)


def _policy(provider: str, protect: Optional[List[str]]) -> ProtectionPolicy:
    extra = list(_current_config().protection_rules)
    try:
        extra.extend(ProtectionPolicy.name_rule(regex) for regex in protect or [])
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=2)
    return ProtectionPolicy.for_provider(provider.lower(), extra)


# Audit commands group
audit_app = typer.Typer(help="Audit log commands")
app.add_typer(audit_app, name="audit")


@audit_app.command("list")
def audit_list(
    since: Optional[str] = typer.Option(None, "--since", help="Only runs on or after this date (YYYY-MM-DD)"),
    until: Optional[str] = typer.Option(None, "--until", help="Only runs on or before this date (YYYY-MM-DD)"),
):
    """List recorded cleanup runs."""
    try:
        since_dt = datetime.fromisoformat(since) if since else None
        until_dt = datetime.fromisoformat(until) if until else None
    except ValueError as e:
        console.print(f"✗ Invalid date: {e}", style="bold red")
        raise typer.Exit(code=2)

    operations = AuditStorage(_current_config().audit_dir).query_operations(since=since_dt, until=until_dt)
    if not operations:
        console.print("No audit logs found.", style="yellow")
        return

    table = Table(title="Cleanup runs")
    table.add_column("Operation")
    table.add_column("Started")
    table.add_column("Scope")
    table.add_column("Status")
    table.add_column("Deleted", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Total", justify="right")

    for data in operations:
        operation = data["operation"]
        summary = operation.get("summary") or {}
        table.add_row(
            operation["operation_id"],
            operation["timestamp"],
            f"{operation['provider']}:{operation['scope_id']}",
            operation["status"],
            str(summary.get("deleted", 0)),
            str(summary.get("failed", 0)),
            str(summary.get("total", 0)),
        )
    console.print(table)


@audit_app.command("show")
def audit_show(operation_id: str = typer.Argument(..., help="Operation ID")):
    """Show every record of one cleanup run."""
    data = AuditStorage(_current_config().audit_dir).get_operation(operation_id)
    if data is None:
        console.print(f"✗ Operation '{operation_id}' not found", style="bold red")
        raise typer.Exit(code=1)

    operation = data["operation"]
    console.print(f"[bold]{operation['operation_id']}[/bold] {operation['provider']}:{operation['scope_id']}")
    console.print(f"Status: {operation['status']} | Started: {operation['timestamp']}")

    table = Table()
    table.add_column("Batch", justify="right")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Detail")
    for record in data.get("records", []):
        batch_index = record.get("batch_index")
        table.add_row(
            str(batch_index + 1) if batch_index is not None else "-",
            record["kind"],
            escape(record["display_name"]),
            record["status"],
            escape(record.get("error") or record.get("reason") or ""),
        )
    console.print(table)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
