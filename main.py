#!/usr/bin/env python3
"""Token Health Monitor - CLI Entry Point."""
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from __version__ import __version__

console = Console()


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from utils.retry import RetryPolicy
    from config import load_config
    from models.database import Database
    from alerts.rules_manager import RulesManager
    from alerts.engine import AlertEngine
    from alerts.dispatcher import AlertDispatcher
    from alerts.channels import ConsoleChannel, FileChannel
    from monitor.monitor import HealthMonitor
    from monitor.source import JsonlMetricsSource

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config["logging"]["level"], config["logging"].get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    retry = RetryPolicy.from_config(config)
    rules = RulesManager(config["engine"]["rules_path"])
    channels = [FileChannel(config["alerts"]["log_path"])]  # Always log to file

    # Console only if running interactively
    if config["alerts"].get("console", True) and sys.stdout.isatty():
        channels.append(ConsoleChannel(console))

    dispatcher = AlertDispatcher(db, channels, retry,
                                 background=config["engine"].get("background_dispatch", True))
    alert_engine = AlertEngine(rules, dispatcher)
    alert_engine.warm_start(db)

    monitor = HealthMonitor(alert_engine, db, config, retry)
    source = JsonlMetricsSource(config["monitor"]["source_path"])

    return {
        "config": config, "db": db, "rules": rules, "dispatcher": dispatcher,
        "alert_engine": alert_engine, "monitor": monitor, "source": source,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="tokenhealth")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Token Health Monitor - Health scores, anti-noise alerts & score history."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.call_on_close(lambda: _close_components(ctx.obj["_components"]))
    return ctx.obj["_components"]


def _close_components(c):
    c["dispatcher"].close()
    c["db"].close()


def _read_snapshots(path):
    from monitor.source import JsonlMetricsSource
    return JsonlMetricsSource(path).read_all()


def _score_style(band):
    return f"[{band.style}]{band.icon} {band.label}[/{band.style}]"


# ──────────────────────────────────────────────────────
# SCORING
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--liquidity", type=float, default=None, help="Pool liquidity in USD")
@click.option("--holders", type=int, default=None, help="Holder count")
@click.option("--fresh", type=float, default=None, help="Fresh-wallet ratio (0-1)")
@click.option("--sniper", type=float, default=None, help="Sniper ratio (0-1)")
@click.option("--insider", type=float, default=None, help="Insider ratio (0-1)")
@click.option("--top10", type=float, default=None, help="Top-10 holder share (0-1)")
def score(liquidity, holders, fresh, sniper, insider, top10):
    """Score ad-hoc metrics and show every component."""
    from models.metrics import MetricSnapshot
    from scoring.health import band_for, health_score, score_components

    snapshot = MetricSnapshot(
        entity_id="adhoc", observed_at=datetime.now(timezone.utc),
        liquidity_usd=liquidity, holders_count=holders, fresh_ratio=fresh,
        sniper_ratio=sniper, insider_ratio=insider, top10_share=top10,
    )
    components = score_components(snapshot)
    value = health_score(snapshot)
    band = band_for(value)

    table = Table(title="Health Score", show_header=True)
    table.add_column("Component")
    table.add_column("Points", justify="right")
    labels = [
        ("fresh_score", "Fresh wallets", "+"),
        ("liquidity_score", "Liquidity", "+"),
        ("sniper_penalty", "Snipers", "-"),
        ("insider_penalty", "Insiders", "-"),
        ("concentration_penalty", "Top-10 concentration", "-"),
    ]
    for key, label, sign in labels:
        table.add_row(label, f"{sign}{components[key]:.2f}")
    table.add_row("[bold]Score[/bold]", f"[bold]{value:.2f}[/bold]")
    console.print(table)
    console.print(f"Band: {_score_style(band)}")


# ──────────────────────────────────────────────────────
# MONITOR
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def ingest(ctx, file):
    """Process a JSON-lines snapshot file once through the monitor."""
    c = _get_components(ctx)
    snapshots = _read_snapshots(file)
    results = c["monitor"].process_batch(snapshots)
    c["dispatcher"].close()

    fired = sum(len(r.fired) for r in results)
    stale = sum(1 for r in results if r.stale)
    console.print(f"[green]✓[/green] Processed {len(snapshots)} snapshots "
                  f"({stale} dropped as stale), {fired} alert(s) fired")


@cli.command()
@click.option("--once", is_flag=True, help="Run a single tick and exit")
@click.pass_context
def run(ctx, once):
    """Poll the configured source and evaluate snapshots periodically."""
    from monitor.scheduler import MonitorScheduler

    c = _get_components(ctx)
    cfg = c["config"]["monitor"]
    scheduler = MonitorScheduler(
        c["monitor"], c["source"], rules_manager=c["rules"], dispatcher=c["dispatcher"],
        interval_seconds=cfg["poll_interval"],
        maintenance_minutes=cfg.get("maintenance_interval_minutes", 60),
    )

    if once:
        results = scheduler.run_once()
        c["dispatcher"].close()
        fired = sum(len(r.fired) for r in results)
        console.print(f"Tick complete: {len(results)} snapshots, {fired} alert(s) fired")
        return

    console.print(f"[bold]Watching {cfg['source_path']}[/bold] every {cfg['poll_interval']}s "
                  f"(Ctrl+C to stop)")
    scheduler.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        scheduler.stop()


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Delete alerts and score history past their retention window."""
    c = _get_components(ctx)
    removed = c["monitor"].cleanup()
    console.print(f"[green]✓[/green] Removed {removed['alerts']} alerts, "
                  f"{removed['score_history']} score snapshots")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert management."""
    pass


@alerts.command("check")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def alerts_check(ctx, file):
    """Evaluate snapshots from FILE and report the alerts that fire."""
    c = _get_components(ctx)
    triggered = []
    for snapshot in _read_snapshots(file):
        triggered.extend(c["alert_engine"].check(snapshot))
    c["dispatcher"].close()

    if triggered:
        console.print(f"[bold yellow]{len(triggered)} alert(s) triggered:[/bold yellow]")
        console.print(c["alert_engine"].format_alert_summary(triggered), markup=False)
    else:
        console.print("[green]All clear - no alerts triggered[/green]")


@alerts.command("test")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def alerts_test(ctx, file):
    """Test all rules (ignoring debounce and sustain) against the latest snapshot per token."""
    c = _get_components(ctx)
    latest = {}
    for s in _read_snapshots(file):
        if s.entity_id not in latest or s.observed_at >= latest[s.entity_id].observed_at:
            latest[s.entity_id] = s

    if not latest:
        console.print("[dim]No snapshots in file[/dim]")
        return

    from utils.formatters import format_entity

    for snapshot in latest.values():
        results = c["alert_engine"].test_rules(snapshot)
        table = Table(title=f"Alert Rules Test - {format_entity(snapshot.entity_id, snapshot.symbol)}",
                      show_header=True)
        table.add_column("Rule")
        table.add_column("Condition")
        table.add_column("Score")
        table.add_column("Muted")
        table.add_column("Would Fire")
        table.add_column("Enabled")

        for r in results:
            fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
            muted_str = "[red]muted[/red]" if r["muted"] else ""
            if r["missing"]:
                fire_str = f"[yellow]no data: {', '.join(r['missing'])}[/yellow]"
            en_str = "✓" if r["enabled"] else "✗"
            table.add_row(r["name"], r["condition"], f"{r['health_score']:.2f}",
                          muted_str, fire_str, en_str)
        console.print(table)


@alerts.command("history")
@click.option("--entity", default=None, help="Only alerts for this token")
@click.option("--limit", default=50, help="Maximum rows")
@click.pass_context
def alerts_history(ctx, entity, limit):
    """Show past alerts."""
    from utils.formatters import format_timestamp

    c = _get_components(ctx)
    if entity:
        recent = c["db"].get_alerts(entity, limit=limit)
    else:
        recent = c["db"].get_recent_alerts(limit=limit)
    if not recent:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Alert History", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Token")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    for a in recent:
        table.add_row(format_timestamp(a.fired_at), a.severity, a.rule_name,
                      a.entity_id, f"{a.health_score:.1f}", a.status)
    console.print(table)


@alerts.command("rules")
@click.pass_context
def alerts_rules(ctx):
    """List all configured alert rules."""
    c = _get_components(ctx)
    rules = c["rules"].get_all_rules()
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Hard Mute")
    table.add_column("Debounce")
    table.add_column("Sustain")
    table.add_column("Severity")
    table.add_column("Enabled")
    for r in rules:
        table.add_row(
            r.id, r.name, r.condition.describe(),
            r.hard_mute.describe() if r.hard_mute else "-",
            f"{r.debounce.total_seconds() / 60:g}m", f"{r.sustain.total_seconds() / 60:g}m",
            r.severity.value, "[green]✓[/green]" if r.enabled else "[red]✗[/red]",
        )
    console.print(table)

    for err in c["rules"].errors:
        console.print(f"[red]Skipped:[/red] {escape(err)}")


@alerts.command("stats")
@click.option("--days", default=30, help="Days to look back")
@click.pass_context
def alerts_stats(ctx, days):
    """Alert counts by kind and status."""
    c = _get_components(ctx)
    stats = c["db"].get_alert_stats(days=days)
    if not stats:
        console.print(f"[dim]No alerts in the last {days}d[/dim]")
        return
    table = Table(title=f"Alert Stats (last {days}d)", show_header=True)
    table.add_column("Kind")
    table.add_column("Active", justify="right")
    table.add_column("Resolved", justify="right")
    for kind, counts in sorted(stats.items()):
        table.add_row(kind, str(counts.get("active", 0)), str(counts.get("resolved", 0)))
    console.print(table)


# ──────────────────────────────────────────────────────
# SCORE HISTORY
# ──────────────────────────────────────────────────────
@cli.group()
def history():
    """Score history."""
    pass


@history.command("show")
@click.argument("entity")
@click.option("--limit", default=50, help="Maximum rows")
@click.pass_context
def history_show(ctx, entity, limit):
    """Show recorded score snapshots for ENTITY."""
    from scoring.health import band_for
    from utils.formatters import format_pct, format_timestamp, format_usd

    c = _get_components(ctx)
    entries = c["db"].get_score_history(entity, limit=limit)
    if not entries:
        console.print(f"[dim]No score history for {entity}[/dim]")
        return
    table = Table(title=f"Score History - {entity}", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Band")
    table.add_column("Liquidity", justify="right")
    table.add_column("Holders", justify="right")
    table.add_column("Fresh", justify="right")
    table.add_column("Snipers", justify="right")
    table.add_column("Insiders", justify="right")
    for e in entries:
        table.add_row(
            format_timestamp(e.snapshot_time), f"{e.health_score:.2f}",
            _score_style(band_for(e.health_score)),
            format_usd(e.liquidity_usd, compact=True),
            str(e.holders_count) if e.holders_count is not None else "N/A",
            format_pct(e.fresh_ratio), format_pct(e.sniper_ratio), format_pct(e.insider_ratio),
        )
    console.print(table)


@history.command("stats")
@click.pass_context
def history_stats(ctx):
    """Summary of the score history table."""
    c = _get_components(ctx)
    stats = c["db"].get_snapshot_stats()
    console.print(f"Snapshots: {stats['total_snapshots']}")
    console.print(f"Tokens:    {stats['unique_entities']}")
    console.print(f"Earliest:  {stats['earliest_snapshot'] or 'N/A'}")
    console.print(f"Latest:    {stats['latest_snapshot'] or 'N/A'}")


if __name__ == "__main__":
    cli()
