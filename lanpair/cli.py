#!/usr/bin/env python3
"""
lanpair CLI

Command-line interface for the LAN pairing transport.

Usage:
    lanpair init                                  # Create this device's certificate
    lanpair connect HOST [--pair]                 # Open a control channel
    lanpair send FILE                             # Wait for a peer and upload FILE
    lanpair receive HOST PORT OUTPUT --size N     # Download from a peer's upload port
    lanpair devices                               # List known devices
    lanpair forget DEVICE_ID                      # Unpair a device
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.table import Table

from .config import Config, load_config
from .events import ChannelEvent, TransferEvent
from .protocol import (
    LanChannel, LocalCertificate, PeerTrust, ConnectError, TYPE_PAIR,
    identity_packet, pair_packet, certificate_fingerprint,
)
from .storage import init_trust_store
from .transfer import (
    download_channel, upload_channel, create_transfer,
    open_file_source, open_file_sink,
)

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def load_certificate(config: Config) -> LocalCertificate:
    return LocalCertificate.load_or_create(config.data_dir, config.device_id)


async def lookup_trust(config: Config, device_id: Optional[str]) -> PeerTrust:
    """Trust record for device_id from the store, or a throwaway unpaired one."""
    if device_id is None:
        return PeerTrust('anonymous')

    store = await init_trust_store(config.data_dir)
    try:
        return await store.get_trust(device_id)
    finally:
        await store.close()


def run_async(coro):
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(), default=None,
              help='JSON config file')
@click.option('--data-dir', default=None, help='Data directory')
@click.pass_context
def cli(ctx, verbose, config_path, data_dir):
    """lanpair - authenticated LAN channels and file transfers."""
    config = load_config(Path(config_path) if config_path else None)
    if data_dir:
        config.data_dir = Path(data_dir)

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--save-config', type=click.Path(dir_okay=False), default=None,
              help='Also write the effective configuration to this JSON file')
@click.pass_context
def init(ctx, save_config):
    """Create (or show) this device's certificate."""
    config = ctx.obj['config']
    certificate = load_certificate(config)

    if save_config:
        config.device_id = certificate.device_id
        config.save(Path(save_config))
        console.print(f"[green]✓ Config written to {save_config}[/green]")

    console.print(Panel.fit(
        f"[bold green]Device Certificate[/bold green]\n\n"
        f"Device ID: [cyan]{certificate.device_id}[/cyan]\n"
        f"Certificate: [blue]{certificate.cert_path}[/blue]\n"
        f"Fingerprint:\n[green]{certificate.fingerprint}[/green]",
        title="Identity"
    ))


@cli.command()
@click.argument('host')
@click.option('--port', '-p', type=int, default=None, help='Peer TCP port')
@click.option('--device-id', '-d', default=None, help='Peer device id (defaults to HOST)')
@click.option('--pair', is_flag=True, help='Request pairing and pin the peer on acceptance')
@click.pass_context
def connect(ctx, host, port, device_id, pair):
    """Open a control channel and print received packets."""
    config = ctx.obj['config']
    certificate = load_certificate(config)
    device_id = device_id or host

    async def run():
        store = await init_trust_store(config.data_dir)
        trust = await store.get_trust(device_id)

        identity = identity_packet(
            certificate.device_id, config.device_name, config.device_type,
            tcp_host=config.host, tcp_port=config.tcp_port,
        )
        channel = LanChannel(
            host, port or config.tcp_port, certificate, trust,
            identity=identity,
            keepalive=config.keepalive,
            max_packet_size=config.max_packet_size,
        )

        packets: asyncio.Queue = asyncio.Queue()
        channel.on(ChannelEvent.RECEIVED, packets.put_nowait)
        channel.on(ChannelEvent.DISCONNECTED, lambda: packets.put_nowait(None))

        try:
            await channel.open()
        except ConnectError as e:
            console.print(f"[red]✗ {e}[/red]")
            await store.close()
            return

        fingerprint = certificate_fingerprint(channel.peer_certificate) \
            if channel.peer_certificate else 'none'
        console.print(Panel.fit(
            f"[bold green]Connected[/bold green]\n\n"
            f"Peer: [cyan]{device_id}[/cyan] at [yellow]{host}:{channel.port}[/yellow]\n"
            f"Paired: [{'green' if trust.paired else 'yellow'}]"
            f"{'Yes' if trust.paired else 'No'}[/]\n"
            f"Peer fingerprint:\n[green]{fingerprint}[/green]",
            title="Control Channel"
        ))
        if trust.paired:
            await store.touch(device_id)
        else:
            await store.save(trust)

        if pair and not trust.paired:
            await channel.send(pair_packet(True))
            console.print("[dim]Pair request sent, waiting for the peer...[/dim]")

        try:
            while True:
                packet = await packets.get()
                if packet is None:
                    break

                console.print(f"[cyan]{packet.type}[/cyan] {json.dumps(packet.body)}")

                if pair and packet.type == TYPE_PAIR:
                    if packet.body.get('pair') and await store.pin(trust):
                        console.print(f"[green]✓ Paired with {device_id}[/green]")
                    elif not packet.body.get('pair'):
                        console.print(f"[yellow]Pairing rejected by {device_id}[/yellow]")
        finally:
            await channel.close()
            await store.close()

        console.print("[yellow]Disconnected[/yellow]")

    run_async(run())


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--device-id', '-d', default=None, help='Receiving device id')
@click.pass_context
def send(ctx, file_path, device_id):
    """Wait for a peer to connect and upload a file to it."""
    config = ctx.obj['config']
    certificate = load_certificate(config)
    file_path = Path(file_path)
    size = file_path.stat().st_size

    async def run():
        trust = await lookup_trust(config, device_id)
        source = await open_file_source(file_path)

        channel = upload_channel(
            certificate, trust, source,
            host=config.host,
            port=config.upload_port_min,
            port_ceiling=config.upload_port_max,
            keepalive=config.keepalive,
        )

        try:
            port = await channel.listen()
            console.print(Panel.fit(
                f"[bold]Ready to send[/bold]\n\n"
                f"File: [cyan]{file_path.name}[/cyan]\n"
                f"Size: [yellow]{size:,} bytes[/yellow]\n"
                f"Port: [yellow]{port}[/yellow]",
                title="Upload"
            ))
            await channel.open()
        except ConnectError as e:
            console.print(f"[red]✗ {e}[/red]")
            await source.close()
            return

        await pump(channel, size, f"Sending {file_path.name}", config.chunk_size)

    run_async(run())


@cli.command()
@click.argument('host')
@click.argument('port', type=int)
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--size', '-s', type=int, required=True, help='Expected size in bytes')
@click.option('--device-id', '-d', default=None, help='Sending device id')
@click.pass_context
def receive(ctx, host, port, output, size, device_id):
    """Download a file from a peer's upload port."""
    config = ctx.obj['config']
    certificate = load_certificate(config)
    output_path = Path(output)

    async def run():
        trust = await lookup_trust(config, device_id)
        sink = await open_file_sink(output_path)

        channel = download_channel(host, port, certificate, trust, sink,
                                   keepalive=config.keepalive)
        try:
            await channel.open()
        except ConnectError as e:
            console.print(f"[red]✗ {e}[/red]")
            await sink.close()
            return

        if await pump(channel, size, f"Receiving {output_path.name}", config.chunk_size):
            console.print(f"[green]✓ Saved to: {output_path}[/green]")

    run_async(run())


async def pump(channel: LanChannel, size: int, description: str,
               chunk_size: int) -> bool:
    """Run a transfer over a connected channel with a progress bar."""
    transfer = create_transfer(channel, size, chunk_size=chunk_size)
    reasons = []
    transfer.on(TransferEvent.FAILED, reasons.append)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=100)
        transfer.on(TransferEvent.PROGRESS,
                    lambda percent: progress.update(task, completed=percent))

        transfer.start()
        try:
            result = await transfer.wait()
        except asyncio.CancelledError:
            transfer.cancel()
            raise
        finally:
            await channel.close()

    if result == TransferEvent.SUCCEEDED:
        console.print(f"[green]✓ Transferred {format_size(size)} "
                      f"in {transfer.elapsed_seconds:.1f}s[/green]")
        return True

    reason = reasons[0] if reasons else result.value if result else 'unknown'
    console.print(f"[red]✗ Transfer failed: {reason}[/red]")
    return False


@cli.command()
@click.pass_context
def devices(ctx):
    """List known devices."""
    config = ctx.obj['config']

    async def run():
        store = await init_trust_store(config.data_dir)
        try:
            rows = await store.list_devices()
        finally:
            await store.close()

        if not rows:
            console.print("[yellow]No known devices[/yellow]")
            return

        table = Table(title="Known Devices")
        table.add_column("Device ID", style="cyan")
        table.add_column("Name")
        table.add_column("Paired")
        table.add_column("Fingerprint", style="green")
        table.add_column("Last Seen", style="dim")

        for row in rows:
            fingerprint = certificate_fingerprint(bytes(row['certificate']))[:23] + "..." \
                if row['paired'] else ''
            table.add_row(
                row['device_id'],
                row['name'],
                "[green]Yes[/green]" if row['paired'] else "[yellow]No[/yellow]",
                fingerprint,
                str(row['last_seen'] or ''),
            )

        console.print(table)

    run_async(run())


@cli.command()
@click.argument('device_id')
@click.pass_context
def forget(ctx, device_id):
    """Unpair a device (drop its pinned certificate)."""
    config = ctx.obj['config']

    async def run():
        store = await init_trust_store(config.data_dir)
        try:
            removed = await store.unpair(device_id)
        finally:
            await store.close()

        if removed:
            console.print(f"[green]✓ Forgot {device_id}[/green]")
        else:
            console.print(f"[yellow]Unknown device: {device_id}[/yellow]")

    run_async(run())


if __name__ == '__main__':
    cli()
