"""CLI entry point for the Cloudonix Voice-AI connector.

Usage:
    cx-vcc configure -d example.com -a <cloudonix-key>     # Register a domain
    cx-vcc service -p vapi -a <key> -n trunk -d example.com  # Provider key + trunk
    cx-vcc addnumber -d example.com -p vapi -n +12025551234
    cx-vcc display --remote                                # Show local + remote state
    cx-vcc sync --provider 11labs                          # Prune stale numbers
    cx-vcc --config path/to/config.yaml display            # Custom config path
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import click

from cx_voice_connector import __version__
from cx_voice_connector.config import ConfigStore
from cx_voice_connector.exceptions import ConnectorError
from cx_voice_connector.providers import PROVIDER_ALIASES, supported_providers
from cx_voice_connector.reconcile import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    ClientFactory,
    Reconciler,
    default_client_factory,
)
from cx_voice_connector import workflows


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

PROVIDER_CHOICES = supported_providers() + list(PROVIDER_ALIASES)


@dataclass
class CliState:
    """Objects shared by every command of one invocation."""
    store: ConfigStore
    client_factory: ClientFactory = default_client_factory


def _run(coro):
    """Run a workflow coroutine, turning connector errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except ConnectorError as e:
        raise click.ClickException(str(e)) from e


def _echo_numbers(rows: list[dict], indent: str = "    ") -> None:
    if not rows:
        click.echo(f"{indent}(no phone numbers)")
        return
    for row in rows:
        line = f"{indent}{row['number']}"
        if row.get("id"):
            line += f"  id={row['id']}"
        if row.get("sipUri"):
            line += f"  sip={row['sipUri']}"
        if row.get("source") == "local":
            line += "  [local]"
        click.echo(line)
        if row.get("credentialId"):
            gateways = ", ".join(g for g in row.get("gateways", []) if g)
            click.echo(f"{indent}  credential={row['credentialId']} ({row.get('credentialName') or '-'}) "
                       f"gateways={gateways or '-'}")
        if row.get("error"):
            click.echo(f"{indent}  error: {row['error']}")


@click.group()
@click.option("--config", "config_path", default=None,
              help="Path to config YAML (default: $CX_VCC_CONFIG or ~/.cx-vcc/config.yaml)")
@click.option("--log-level", default="INFO", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
@click.option("--debug", is_flag=True, help="Shortcut for --log-level DEBUG")
@click.version_option(__version__, prog_name="cx-vcc")
@click.pass_context
def main(ctx, config_path: Optional[str], log_level: str, debug: bool):
    """Connect Cloudonix domains to Voice-AI providers (VAPI, Retell, 11Labs)."""
    logging.getLogger().setLevel(logging.DEBUG if debug else getattr(logging, log_level))
    if ctx.obj is None:
        ctx.obj = CliState(ConfigStore(config_path))
    logger.debug("Using config at %s", ctx.obj.store.path)


@main.command()
@click.option("--domain", "-d", required=True, help="Cloudonix domain name")
@click.option("--apikey", "-a", required=True, help="Cloudonix API key")
@click.pass_obj
def configure(state: CliState, domain: str, apikey: str):
    """Register a Cloudonix domain."""
    record = _run(workflows.configure_domain(state.store, domain, apikey))
    click.echo(f"Domain {record.domain_name} configured")
    click.echo(f"  Inbound SIP URI: {record.inbound_sip_uri}")


@main.command()
@click.option("--domain", "-d", required=True, help="Cloudonix domain name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete(state: CliState, domain: str, yes: bool):
    """Delete a domain and everything recorded under it."""
    if not yes and not click.confirm(f"Delete domain {domain} and all its provider settings?", default=False):
        click.echo("Operation cancelled")
        return
    try:
        workflows.delete_domain(state.store, domain)
    except ConnectorError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Domain {domain} deleted")


@main.command()
@click.option("--provider", "-p", required=True, type=click.Choice(PROVIDER_CHOICES, case_sensitive=False))
@click.option("--apikey", "-a", required=True, help="Provider API key")
@click.option("--name", "-n", default=None, help="SIP trunk name (requires --domain)")
@click.option("--domain", "-d", default=None, help="Domain to create the SIP trunk for")
@click.pass_obj
def service(state: CliState, provider: str, apikey: str, name: Optional[str], domain: Optional[str]):
    """Store a Voice-AI provider API key and optionally create a SIP trunk."""
    trunk = _run(workflows.configure_provider(
        state.store, provider, apikey, name=name, domain_name=domain, client_factory=state.client_factory,
    ))
    click.echo(f"{provider} configured")
    if trunk:
        click.echo(f"  SIP trunk: {trunk['id']} ({trunk.get('status', 'created')})")


@main.command()
@click.option("--domain", "-d", required=True, help="Cloudonix domain name")
@click.option("--provider", "-p", required=True, type=click.Choice(PROVIDER_CHOICES, case_sensitive=False))
@click.option("--number", "-n", required=True, help="Phone number in E.164 format")
@click.pass_obj
def addnumber(state: CliState, domain: str, provider: str, number: str):
    """Attach a phone number to a provider through the domain's trunk."""
    record = _run(workflows.add_number(
        state.store, domain, provider, number, client_factory=state.client_factory,
    ))
    click.echo(f"Phone number {record.number} added")
    click.echo(f"  SIP URI: {record.sip_uri}")


@main.command()
@click.option("--domain", "-d", default=None, help="Only show this domain")
@click.option("--remote", "-r", is_flag=True, help="Also list numbers reported by each provider")
@click.pass_obj
def display(state: CliState, domain: Optional[str], remote: bool):
    """Show the local configuration, and optionally the remote numbers."""
    try:
        config = state.store.read_all()
        view = workflows.describe_config(config, domain)
    except ConnectorError as e:
        raise click.ClickException(str(e)) from e

    if not view["domains"]:
        click.echo("No domains configured")
    for entry in view["domains"]:
        click.echo(f"Domain: {entry['domain']}")
        click.echo(f"  API key: {entry['apiKey']}")
        click.echo(f"  Alias: {entry['alias']}  auto alias: {entry['autoAlias']}")
        click.echo(f"  Inbound SIP URI: {entry['inboundSipUri']}")
        for name, section in entry["providers"].items():
            click.echo(f"  {name}: trunk {section['trunkCredentialId']}")
            _echo_numbers(section["phoneNumbers"])

    click.echo("Providers:")
    for entry in view["providers"]:
        click.echo(f"  {entry['provider']}: API key {entry['apiKey']}, URL {entry['apiUrl']}")
        if entry["phoneNumbers"]:
            _echo_numbers(entry["phoneNumbers"])

    if not remote:
        return

    views = _run(workflows.describe_remote(config, client_factory=state.client_factory))
    click.echo("Remote phone numbers:")
    for entry in views:
        if not entry["configured"]:
            click.echo(f"  {entry['provider']}: not configured")
            continue
        click.echo(f"  {entry['provider']}:")
        if entry["error"]:
            click.echo(f"    remote listing failed, showing local configuration: {entry['error']}")
        _echo_numbers(entry["phoneNumbers"])


@main.command()
@click.option("--domain", "-d", default=None, help="Only reconcile numbers of this domain")
@click.option("--provider", "-p", default=None, type=click.Choice(PROVIDER_CHOICES, case_sensitive=False))
@click.pass_context
def sync(ctx, domain: Optional[str], provider: Optional[str]):
    """Remove locally recorded numbers that no longer exist remotely."""
    state: CliState = ctx.obj
    reconciler = Reconciler(state.store, client_factory=state.client_factory)
    report = _run(reconciler.sync(provider=provider, domain=domain))

    for result in report.results:
        if result.status == STATUS_SKIPPED:
            click.echo(f"{result.display_name}: not configured, skipping")
        elif result.status == STATUS_FAILED:
            click.echo(f"{result.display_name}: sync failed: {result.error}")
        elif result.removed:
            click.echo(f"{result.display_name}: removed {len(result.removed)} phone number(s): "
                       f"{', '.join(result.removed)}")
        else:
            click.echo(f"{result.display_name}: in sync")

    click.echo(f"Total removed: {report.total_removed}")
    ctx.exit(report.exit_code)


if __name__ == "__main__":
    main()
