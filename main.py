#!/usr/bin/env python3
"""opsalert - CLI Entry Point."""
import sys
import json
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {
    "critical": "bold white on red",
    "warning": "bold yellow",
    "info": "bold blue",
}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of the alerting service."""
    from utils.logger import setup_logging
    from config import load_config
    from alerts.service import AlertingService

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    service = AlertingService(config)
    return {"config": config, "service": service}


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="opsalert")
@click.pass_context
def cli(ctx, config_path, verbose):
    """opsalert - Threshold alerting with escalation and multi-channel notifications."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _parse_assignments(pairs):
    """Parse ('cpu_usage=85', ...) into a metrics dict."""
    values = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected NAME=VALUE, got {pair!r}")
        name, raw = pair.split("=", 1)
        try:
            values[name.strip()] = float(raw)
        except ValueError:
            raise click.BadParameter(f"Not a number: {raw!r}")
    return values


def _load_metrics(service, metrics_file=None, assignments=()):
    """Record one snapshot built from a JSON file and/or NAME=VALUE pairs."""
    data = {}
    if metrics_file:
        with open(metrics_file) as f:
            data.update(json.load(f))
    data.update(_parse_assignments(assignments))
    if not data:
        return None
    data.pop("timestamp", None)
    return service.record_metrics(data)


def _sev(severity):
    value = severity.value if hasattr(severity, "value") else str(severity)
    style = SEVERITY_STYLES.get(value, "")
    return f"[{style}]{value.upper()}[/]" if style else value.upper()


# ──────────────────────────────────────────────────────
# RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--metrics-file", type=click.Path(dir_okay=False), default=None,
              help="JSON snapshot written by an external collector; re-read every tick")
@click.pass_context
def run(ctx, metrics_file):
    """Run the evaluation loop until interrupted."""
    c = _get_components(ctx)
    service = c["service"]

    if metrics_file:
        def _refresh():
            if Path(metrics_file).exists():
                try:
                    _load_metrics(service, metrics_file)
                except (OSError, ValueError) as e:
                    console.print(f"[red]Could not read {metrics_file}: {e}[/red]")
        _refresh()
        service.evaluation_loop.before_tick(_refresh)

    service.start()
    interval = c["config"]["alerting"]["evaluation_interval_seconds"]
    console.print(f"[bold]opsalert running[/bold] (evaluating every {interval}s). Ctrl-C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        service.stop()


# ──────────────────────────────────────────────────────
# CHECK
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("values", nargs=-1)
@click.option("--metrics-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--notify", is_flag=True, help="Send notifications for triggered alerts")
@click.pass_context
def check(ctx, values, metrics_file, notify):
    """Evaluate all enabled rules once against the given metrics (NAME=VALUE ...)."""
    c = _get_components(ctx)
    service = c["service"]
    if _load_metrics(service, metrics_file, values) is None:
        console.print("[red]No metrics given.[/red] Pass NAME=VALUE pairs or --metrics-file.")
        sys.exit(1)

    if not notify:
        service.engine.escalate = None
    result = service.evaluate()

    if result.triggered:
        console.print(f"[bold yellow]{len(result.triggered)} alert(s) triggered:[/bold yellow]")
        for a in result.triggered:
            console.print(f"  {_sev(a.severity)} {a.message}")
    else:
        console.print("[green]All clear - no alerts triggered[/green]")
    for rule_id in result.errors:
        console.print(f"[red]Rule {rule_id} failed to evaluate[/red]")

    if notify:
        service.drain()
        service.stop()
        for entry in service.get_notification_history(limit=50):
            status = "[green]sent[/green]" if entry.success else f"[red]failed: {entry.error}[/red]"
            console.print(f"  {entry.channel_type} {entry.channel_id}: {status}")


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Active alert inspection."""
    pass


@alerts.command("list")
@click.argument("values", nargs=-1)
@click.option("--metrics-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.pass_context
def alerts_list(ctx, values, metrics_file):
    """Evaluate the given metrics once and list the resulting active alerts."""
    c = _get_components(ctx)
    service = c["service"]
    service.engine.escalate = None
    if _load_metrics(service, metrics_file, values) is not None:
        service.evaluate()

    active = service.get_active_alerts()
    if not active:
        console.print("[green]No active alerts[/green]")
        return

    table = Table(title="Active Alerts", show_header=True)
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_column("Threshold", justify="right")
    table.add_column("Triggered")
    for a in active:
        table.add_row(_sev(a.severity), a.rule_name, a.metric, f"{a.current_value:.2f}",
                      f"{a.threshold:g}", a.triggered_at.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.group()
def rules():
    """Alert rule inspection."""
    pass


@rules.command("list")
@click.pass_context
def rules_list(ctx):
    """List all configured alert rules."""
    c = _get_components(ctx)
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Severity")
    table.add_column("Cooldown")
    table.add_column("Policy")
    table.add_column("Enabled")
    for r in c["service"].get_alert_rules():
        table.add_row(r.id, r.name, f"{r.metric} {r.operator.value} {r.threshold:g}", _sev(r.severity),
                      f"{r.cooldown_minutes:g}m", r.escalation_policy_id or "-",
                      "[green]✓[/green]" if r.enabled else "[red]✗[/red]")
    console.print(table)


@rules.command("test")
@click.argument("values", nargs=-1)
@click.option("--metrics-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.pass_context
def rules_test(ctx, values, metrics_file):
    """Test all rules (ignoring cooldowns) against the given metrics."""
    c = _get_components(ctx)
    service = c["service"]
    _load_metrics(service, metrics_file, values)
    results = service.engine.test_rules()

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Metric")
    table.add_column("Condition")
    table.add_column("Current")
    table.add_column("Would Fire")
    table.add_column("Enabled")

    for r in results:
        fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        en_str = "✓" if r["enabled"] else "✗"
        val = f"{r['current_value']:.2f}" if r["current_value"] is not None else "N/A"
        table.add_row(r["name"], r["metric"], f"{r['operator']} {r['threshold']:g}",
                      val, fire_str, en_str)
    console.print(table)


# ──────────────────────────────────────────────────────
# CHANNELS
# ──────────────────────────────────────────────────────
@cli.group()
def channels():
    """Notification channel management."""
    pass


@channels.command("list")
@click.pass_context
def channels_list(ctx):
    """List notification channels in delivery order."""
    c = _get_components(ctx)
    table = Table(title="Notification Channels", show_header=True)
    table.add_column("Priority", justify="right")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Enabled")
    for ch in c["service"].get_notification_channels():
        table.add_row(str(ch.priority), ch.id, ch.name, ch.type.value,
                      "[green]✓[/green]" if ch.enabled else "[red]✗[/red]")
    console.print(table)


@channels.command("test")
@click.argument("channel_id")
@click.pass_context
def channels_test(ctx, channel_id):
    """Send a synthetic test alert through one channel."""
    c = _get_components(ctx)
    service = c["service"]
    if service.test_notification_channel(channel_id):
        console.print(f"[green]Test notification sent via {channel_id}[/green]")
        return
    entries = service.get_notification_history(limit=1)
    reason = entries[0].error if entries and entries[0].channel_id == channel_id else "unknown channel"
    console.print(f"[red]Test notification failed:[/red] {reason}")
    sys.exit(1)


# ──────────────────────────────────────────────────────
# POLICIES
# ──────────────────────────────────────────────────────
@cli.group()
def policies():
    """Escalation policies."""
    pass


@policies.command("list")
@click.pass_context
def policies_list(ctx):
    """Show escalation policies and their steps."""
    c = _get_components(ctx)
    for p in c["service"].get_escalation_policies():
        state = "" if p.enabled else " [red](disabled)[/red]"
        console.print(f"[bold]{p.name}[/bold] [dim]{p.id}[/dim]{state}")
        for step in p.rules:
            line = f"  +{step.delay_minutes:g}m → {', '.join(step.channel_ids) or '(none)'}"
            if step.repeats:
                line += f" (every {step.repeat_interval_minutes:g}m, max {step.max_repeats}x)"
            console.print(line)


# ──────────────────────────────────────────────────────
# OVERVIEW
# ──────────────────────────────────────────────────────
@cli.command()
@click.argument("values", nargs=-1)
@click.option("--metrics-file", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def overview(ctx, values, metrics_file, as_json):
    """Show the system overview for the given metrics."""
    c = _get_components(ctx)
    service = c["service"]
    _load_metrics(service, metrics_file, values)
    data = service.get_system_overview()

    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    table = Table(title="System Overview", show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Status", data["status"])
    table.add_row("Uptime", f"{data['uptime']:.0f}s")
    table.add_row("Requests", str(data["total_requests"]))
    table.add_row("Error rate", f"{data['error_rate'] * 100:.2f}%")
    table.add_row("Avg latency", f"{data['average_response_time']:.0f}ms")
    table.add_row("CPU", f"{data['system_load']['cpu']:.1f}%")
    table.add_row("Memory", f"{data['system_load']['memory']:.1f}%")
    alerts = data["alerts"]
    table.add_row("Alerts", f"{alerts['active']} active "
                            f"({alerts['critical']} critical, {alerts['warning']} warning, {alerts['info']} info)")
    console.print(table)


if __name__ == "__main__":
    cli()
