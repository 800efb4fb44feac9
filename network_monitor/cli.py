"""Command-line interface for network monitor."""

import argparse
import logging
import signal
import sys
import time
from typing import List, Optional

from rich import box
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .alerts.alert_manager import AlertManager
from .alerts.watchlist import Watchlist
from .attribution.process_mapper import ProcessMapper
from .attribution.procfs import ProcfsReader
from .capture.engine import FrameSource, LiveCapture, PcapFileSource
from .capture.interface_manager import InterfaceManager
from .capture.platform_adapter import get_platform_adapter
from .classification.descriptions import DescriptionDatabase
from .config import ConfigError, MonitorConfig
from .models.packet import DecodedPacket
from .processing.packet_processor import PacketProcessor
from .storage.packet_store import PacketStore

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(verbose: int = 0) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


class MonitorApp:
    """Wires the store, rule databases, attribution and ingestion thread together."""

    def __init__(self, config: Optional[MonitorConfig] = None):
        self.config = config or MonitorConfig()

        self.store = PacketStore(
            max_packets=self.config.store.max_packets,
            history_length=self.config.store.history_length,
        )
        self.alert_manager = AlertManager(
            max_alerts=self.config.watchlist.max_alerts,
            log_file=self.config.watchlist.log_file,
        )
        self.watchlist = Watchlist(self.alert_manager)
        self.descriptions = DescriptionDatabase()
        self.process_mapper: Optional[ProcessMapper] = None
        self.processor: Optional[PacketProcessor] = None

        self._running = False
        self._start_time = 0.0

    def load_rules(self) -> None:
        """Load watchlist and descriptions from configured paths or the config dir."""
        if self.config.descriptions.path:
            self.descriptions.load(self.config.descriptions.path)
        else:
            self.descriptions.load_default(install=self.config.descriptions.install_default)

        if self.config.watchlist.path:
            self.watchlist.load(self.config.watchlist.path)
        else:
            self.watchlist.load_default(install=True)

    def initialize(self, source: FrameSource) -> List[str]:
        """Create the pipeline around source. Returns list of issues."""
        issues = []

        if isinstance(source, LiveCapture):
            issues.extend(source.check_ready())
            self.store.set_interface_name(source.interface)
        elif isinstance(source, PcapFileSource):
            self.store.set_interface_name(source.path)

        self.load_rules()

        attribution = self.config.attribution
        if attribution.enabled:
            self.process_mapper = ProcessMapper(
                reader=ProcfsReader(attribution.proc_root),
                cache_ttl=attribution.cache_ttl_ms / 1000.0,
            )
            if not self.process_mapper.is_supported:
                logger.warning("Process attribution is not available on this system")

        self.processor = PacketProcessor(
            source=source,
            store=self.store,
            watchlist=self.watchlist,
            descriptions=self.descriptions,
            process_mapper=self.process_mapper,
            process_enabled=attribution.enabled,
            batch_timeout=self.config.capture.batch_timeout,
        )
        return issues

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._start_time = time.time()
        self.processor.start()

    def stop(self) -> None:
        self._running = False
        if self.processor:
            self.processor.stop()

    @property
    def is_running(self) -> bool:
        return self._running and self.processor is not None and self.processor.is_running()

    @property
    def duration(self) -> float:
        if self._start_time == 0:
            return 0.0
        return time.time() - self._start_time

    def get_packets_table(self, count: int, show_flags: bool = False) -> Table:
        table = Table(box=box.SIMPLE, expand=True, header_style="bold cyan")
        table.add_column("Time", no_wrap=True)
        table.add_column("Source")
        table.add_column("Destination")
        table.add_column("Proto")
        table.add_column("Len", justify="right")
        table.add_column("Host / Info")
        table.add_column("Process")
        if show_flags:
            table.add_column("TCP flags")

        for pkt in self.store.get_recent(count):
            style = "bold red" if pkt.watchlist_match else None
            row = [
                pkt.timestamp_str(),
                _endpoint(pkt.src_ip, pkt.src_port),
                _endpoint(pkt.dst_ip, pkt.dst_port),
                pkt.protocol_name(),
                str(pkt.original_length),
                _host_info(pkt),
                f"{pkt.process_name} ({pkt.pid})" if pkt.pid else "",
            ]
            if show_flags:
                flags = pkt.get_tcp_flags()
                row.append(flags.to_string() if flags else "")
            table.add_row(*row, style=style)
        return table

    def get_protocol_table(self) -> Table:
        stats = self.store.get_stats()
        table = Table(title="Protocols", box=box.ROUNDED, header_style="bold cyan")
        table.add_column("Protocol", style="bold")
        table.add_column("Packets", justify="right")
        table.add_column("Bytes", justify="right")

        ranked = sorted(stats.protocol_counts.items(), key=lambda kv: kv[1], reverse=True)
        for name, count in ranked[:10]:
            table.add_row(name, f"{count:,}", _format_bytes(stats.protocol_bytes.get(name, 0)))
        return table

    def get_stats_panel(self) -> Panel:
        stats = self.store.get_stats()
        lines = [
            Text(f"Packets:   {stats.packets_received:,}"),
            Text(f"Bytes:     {_format_bytes(stats.bytes_received)}"),
            Text(f"Rate:      {stats.packets_per_second:.1f} pps"),
            Text(f"Bandwidth: {stats.bandwidth_mbps:.2f} Mbps"),
            Text(f"Stored:    {self.store.size():,}"),
        ]
        if self.process_mapper is not None:
            lines.append(Text(
                f"Sockets:   {self.process_mapper.socket_table_size()}"
                f" ({self.process_mapper.cache_size()} owned)"
            ))
        return Panel(Text("\n").join(lines), title=stats.name or "Statistics", border_style="cyan")

    def get_alerts_panel(self, highlight: bool = False) -> Panel:
        alerts = self.alert_manager.get_recent_alerts(5)

        if not alerts:
            content = Text("No alerts", style="green")
        else:
            content = Text("\n").join(
                Text(f"{a.timestamp.strftime('%H:%M:%S')} {a.format_short()}", style="yellow")
                for a in alerts
            )

        title = f"Alerts ({self.alert_manager.alert_count()})"
        border = "bold red" if highlight else ("red" if alerts else "green")
        return Panel(content, title=title, border_style=border)

    def run_live_dashboard(self, duration: int = 0) -> None:
        """Run live dashboard with Rich until stopped, duration elapses or capture fails."""
        end_time = time.time() + duration if duration > 0 else float('inf')
        refresh = self.config.dashboard.refresh_rate
        visible = self.config.dashboard.visible_packets

        with Live(console=console, refresh_per_second=4, screen=True) as live:
            while self.is_running and time.time() < end_time:
                self.store.update_rates()

                header = Text(
                    f"Network Monitor v{__version__} | "
                    f"Duration: {self.duration:.0f}s | "
                    f"Watchlist: {self.watchlist.size()} | "
                    f"Descriptions: {self.descriptions.size()}",
                    style="bold white on blue",
                    justify="center",
                )

                layout = Layout()
                layout.split(
                    Layout(header, name="header", size=1),
                    Layout(name="body"),
                    Layout(name="footer", size=9),
                )
                layout["body"].update(self.get_packets_table(visible))
                layout["footer"].split_row(
                    Layout(self.get_stats_panel(), name="stats"),
                    Layout(self.get_protocol_table(), name="protocols"),
                    Layout(self.get_alerts_panel(self.alert_manager.has_new_alerts()), name="alerts", ratio=2),
                )

                live.update(layout)
                time.sleep(refresh)


def _endpoint(ip: str, port: int) -> str:
    if not ip:
        return ""
    if port:
        return f"[{ip}]:{port}" if ":" in ip else f"{ip}:{port}"
    return ip


def _host_info(pkt: DecodedPacket) -> str:
    parts = [p for p in (pkt.hostname, pkt.description or pkt.app_info) if p]
    return " - ".join(parts)


def _format_bytes(n: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.0f} {unit}" if unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def list_interfaces() -> None:
    """List available network interfaces."""
    mgr = InterfaceManager()

    table = Table(title="Available Network Interfaces", box=box.ROUNDED)
    table.add_column("Interface", style="bold cyan")
    table.add_column("IP Address")
    table.add_column("MAC Address")
    table.add_column("MTU", justify="right")
    table.add_column("Status")

    for info in mgr.get_all():
        status = "UP" if info.is_up else "DOWN"
        status_style = "green" if info.is_up else "red"

        table.add_row(
            info.name,
            info.ipv4_address or "N/A",
            info.mac_address or "N/A",
            str(info.mtu or ""),
            Text(status, style=status_style),
        )

    console.print(table)

    try:
        adapter = get_platform_adapter()
    except RuntimeError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return

    info = adapter.get_platform_info()
    capture_ok = "[green]yes[/green]" if adapter.check_privileges() else "[red]no (run as root)[/red]"
    attribution_ok = "[green]yes[/green]" if adapter.supports_process_attribution() else "[yellow]no[/yellow]"
    console.print(f"[dim]{info['system']} {info['release']} ({info['machine']}), Python {info['python_version']}[/dim]")
    console.print(f"Capture privileges: {capture_ok}  Process attribution: {attribution_ok}")


def load_config(args) -> MonitorConfig:
    config = MonitorConfig.load(args.config)

    if getattr(args, "watchlist", None):
        config.watchlist.path = args.watchlist
    if getattr(args, "descriptions", None):
        config.descriptions.path = args.descriptions
    if getattr(args, "alert_log", None):
        config.watchlist.log_file = args.alert_log
    if getattr(args, "processes", False):
        config.attribution.enabled = True
    return config


def run_capture(args, config: MonitorConfig) -> int:
    """Run live capture with the dashboard."""
    if args.interface:
        config.capture.interface = args.interface
    if args.filter:
        config.capture.bpf_filter = args.filter
    if args.duration:
        config.capture.duration = args.duration

    interface = config.capture.interface
    if not interface:
        interface = InterfaceManager().default_interface()
        if not interface:
            console.print("[red]No active interfaces found. Specify with --interface[/red]")
            return 1
        console.print(f"[yellow]Auto-detected interface: {interface}[/yellow]")

    source = LiveCapture(
        interface=interface,
        bpf_filter=config.capture.bpf_filter,
        batch_size=config.capture.batch_size,
        snaplen=config.capture.snaplen,
        promiscuous=config.capture.promiscuous,
    )

    app = MonitorApp(config)
    issues = app.initialize(source)
    if issues:
        console.print("[red]Cannot start capture:[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        return 1

    def signal_handler(sig, frame):
        app.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.start()
    try:
        app.run_live_dashboard(duration=config.capture.duration)
    finally:
        app.stop()

    error = app.processor.get_error()
    if error:
        console.print(f"[red]Capture stopped: {error}[/red]")

    console.print(Group(app.get_stats_panel(), app.get_protocol_table(), app.get_alerts_panel()))
    return 1 if error else 0


def run_replay(args, config: MonitorConfig) -> int:
    """Decode a capture file through the pipeline and print a summary."""
    app = MonitorApp(config)
    app.initialize(PcapFileSource(args.file, batch_size=max(config.capture.batch_size, 100)))

    app.start()
    app.processor.join()

    error = app.processor.get_error()
    if error:
        console.print(f"[red]{error}[/red]")
        return 1

    stats = app.processor.get_stats()
    console.print(
        f"[green]Replayed {stats.frames_processed:,} frames from {args.file}"
        f" ({stats.processing_errors} errors)[/green]"
    )
    if args.show:
        console.print(app.get_packets_table(args.show, show_flags=True))
    console.print(Group(app.get_stats_panel(), app.get_protocol_table(), app.get_alerts_panel()))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="network-monitor",
        description="Real-time packet capture with process attribution and watchlist alerting.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("interfaces", help="List available network interfaces")

    rules = argparse.ArgumentParser(add_help=False)
    rules.add_argument("--processes", action="store_true", help="Attribute packets to local processes")
    rules.add_argument("--watchlist", help="Watchlist file (TYPE:PATTERN:LABEL per line)")
    rules.add_argument("--descriptions", help="Descriptions file (PATTERN:CATEGORY:DESCRIPTION per line)")
    rules.add_argument("--alert-log", help="Append alerts to this file")

    capture_parser = subparsers.add_parser("capture", parents=[rules], help="Capture live traffic")
    capture_parser.add_argument("-i", "--interface", help="Interface to capture on")
    capture_parser.add_argument("-f", "--filter", help="BPF filter expression (e.g., 'tcp port 443')")
    capture_parser.add_argument(
        "-d", "--duration",
        type=int,
        default=0,
        help="Capture duration in seconds (0 = continuous)",
    )

    replay_parser = subparsers.add_parser("replay", parents=[rules], help="Process a pcap file")
    replay_parser.add_argument("file", help="pcap or pcapng file")
    replay_parser.add_argument(
        "-n", "--show",
        type=int,
        default=0,
        help="Print the last N decoded packets",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "interfaces":
        list_interfaces()
        return

    if args.command not in ("capture", "replay"):
        parser.print_help()
        return

    try:
        config = load_config(args)
    except (ConfigError, OSError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    if args.command == "capture":
        sys.exit(run_capture(args, config))
    sys.exit(run_replay(args, config))


if __name__ == "__main__":
    main()
