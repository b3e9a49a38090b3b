"""
Clawsec CLI

Commands:
    clawsec serve                — Start the enforcement boundary
    clawsec status               — Show configuration status and rule enablement
    clawsec audit                — Query the audit trail of a running server
    clawsec approve ID           — Approve a pending action (native method)
    clawsec deny ID              — Deny a pending action (native method)

Remote commands talk to ``--url`` (default ``$CLAWSEC_URL`` or
http://127.0.0.1:8000).
"""

from __future__ import annotations

import json
import os
import sys

import click
import httpx

from clawsec import __version__
from clawsec.config.loader import CONFIG_ENV_VAR, FileConfigProvider

DEFAULT_URL = "http://127.0.0.1:8000"

_url_option = click.option(
    "--url",
    default=lambda: os.environ.get("CLAWSEC_URL", DEFAULT_URL),
    show_default=DEFAULT_URL,
    help="Base URL of a running clawsec server",
)


@click.group()
@click.version_option(version=__version__, prog_name="clawsec")
def cli() -> None:
    """Clawsec — enforcement and approvals for agent tool calls"""


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Port number")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--reload", is_flag=True, help="Auto-reload on changes")
def serve(host: str, port: int, config_path: str | None, reload: bool) -> None:
    """Start the enforcement boundary."""
    import uvicorn

    from clawsec.logging import configure_logging

    if config_path:
        os.environ[CONFIG_ENV_VAR] = config_path

    config = FileConfigProvider(config_path).load_config()
    if "CLAWSEC_LOG_LEVEL" not in os.environ:
        configure_logging(
            level=config.global_.log_level,
            json_output=os.environ.get("CLAWSEC_LOG_JSON", "") == "1",
        )

    _print_header("Clawsec Enforcement Boundary")
    click.echo(f"  Binding: {host}:{port}")
    click.echo(f"  Reload: {'enabled' if reload else 'disabled'}")
    click.echo()

    uvicorn.run("clawsec.api.server:app", host=host, port=port, reload=reload)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--json-output", is_flag=True, help="Output as JSON")
def status(config_path: str | None, json_output: bool) -> None:
    """Show configuration validity, enabled rules and issues."""
    provider = FileConfigProvider(config_path)
    config = provider.load_config()
    result = provider.validate(config)

    issues = [f"{issue.path}: {issue.message}" for issue in result.errors]
    if not config.global_enabled:
        issues.append("Plugin is globally disabled")
    enabled = [name for name, rule in config.rules.items() if rule.enabled]
    disabled = [name for name, rule in config.rules.items() if not rule.enabled]
    path = provider.path

    if json_output:
        click.echo(
            json.dumps(
                {
                    "configPath": str(path) if path else None,
                    "configValid": result.valid,
                    "globalEnabled": config.global_enabled,
                    "enabledRules": enabled,
                    "disabledRules": disabled,
                    "approvalMethods": [m.value for m in config.approval.configured_methods],
                    "issues": issues,
                },
                indent=2,
            )
        )
    else:
        _print_header("Clawsec Status")
        click.echo(f"  Version: {__version__}")
        click.echo(f"  Config: {path if path else '(none - using defaults)'}")
        click.echo(f"  Valid: {'yes' if result.valid else 'no'}")
        click.echo(f"  Enabled: {'yes' if config.global_enabled else 'no'}")
        click.echo(f"\n  Enabled rules:  {', '.join(enabled) or '(none)'}")
        click.echo(f"  Disabled rules: {', '.join(disabled) or '(none)'}")
        methods = ", ".join(m.value for m in config.approval.configured_methods)
        click.echo(f"  Approval methods: {methods or '(none)'}")
        if issues:
            click.echo("\n  Issues:")
            for issue in issues:
                click.echo(f"    - {issue}")

    if not result.valid:
        sys.exit(1)


@cli.command()
@click.option("--category", "-c", default=None, help="Only entries of this category")
@click.option("--limit", "-n", default=10, type=int, show_default=True, help="Maximum entries")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@_url_option
def audit(category: str | None, limit: int, json_output: bool, url: str) -> None:
    """Show the newest audit entries."""
    params: dict[str, str | int] = {"limit": limit}
    if category:
        params["category"] = category
    data = _request("GET", url, "/audit", params=params)

    if json_output:
        click.echo(json.dumps(data, indent=2))
        return

    entries = data.get("entries", [])
    _print_header("Audit Trail")
    if not entries:
        click.echo("  No audit entries found.")
        return
    for entry in entries:
        click.echo(
            f"  {entry['timestamp'][:19]}  {entry['action']:8s} [{entry['severity']:8s}] "
            f"{entry['category']:14s} {entry['tool_name']:16s} {entry.get('reason', '')[:50]}"
        )
    click.echo(f"\n  Showing {len(entries)} of {data.get('totalEntries', len(entries))} entries")


@cli.command()
@click.argument("approval_id")
@click.option("--by", "decided_by", default=None, help="Name recorded as the approver")
@click.option("--reason", default="", help="Reason recorded with the decision")
@_url_option
def approve(approval_id: str, decided_by: str | None, reason: str, url: str) -> None:
    """Approve a pending action."""
    _decide("approve", approval_id, decided_by, reason, url)


@cli.command()
@click.argument("approval_id")
@click.option("--by", "decided_by", default=None, help="Name recorded as the approver")
@click.option("--reason", default="", help="Reason recorded with the decision")
@_url_option
def deny(approval_id: str, decided_by: str | None, reason: str, url: str) -> None:
    """Deny a pending action."""
    _decide("deny", approval_id, decided_by, reason, url)


def _decide(verb: str, approval_id: str, decided_by: str | None, reason: str, url: str) -> None:
    body = {"decidedBy": decided_by or os.environ.get("USER") or "cli", "reason": reason}
    data = _request("POST", url, f"/{verb}/{approval_id}", json=body)
    if data.get("resolved"):
        click.echo(f"  Approval {approval_id}: {data['status']}")
    else:
        click.echo(f"  Approval {approval_id} was not changed: {data.get('message', '')}")


def _request(method: str, base_url: str, path: str, **kwargs) -> dict:
    try:
        response = httpx.request(method, base_url.rstrip("/") + path, timeout=10.0, **kwargs)
    except httpx.HTTPError as exc:
        raise click.ClickException(f"Cannot reach clawsec at {base_url}: {exc}") from exc
    try:
        data = response.json()
    except ValueError:
        data = {"message": response.text}
    if response.status_code >= 400:
        raise click.ClickException(data.get("message") or f"HTTP {response.status_code}")
    return data


def _print_header(title: str) -> None:
    click.echo(f"\n  {'=' * 60}")
    click.echo(f"  {title}")
    click.echo(f"  {'=' * 60}\n")


if __name__ == "__main__":
    cli()
