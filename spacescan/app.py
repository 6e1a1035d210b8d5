from __future__ import annotations

import os
import sys
import signal
import argparse
import logging
from typing import IO, List, Optional

from PySide6.QtCore import QCoreApplication, QTimer

from .config import ScanConfig, bundle_predicate
from .controller import AccessCallback, PermissionProvider, ScanController, ScanObserver
from .log_config import setup_logging, shutdown_logging
from .models import ScanStatus, Snapshot
from .utils import format_bytes
from .views import flatten_hierarchy, item_count
from .volumes import list_volumes

APP_NAME = "spacescan"


EXIT_CODES = {
    ScanStatus.COMPLETED: 0,
    ScanStatus.FAILED: 1,
    ScanStatus.IDLE: 1,  # no path selected
    ScanStatus.CANCELLED: 130,
}


class ConsolePermissionProvider(PermissionProvider):
    """Asks on stdin for a readable folder when the requested one isn't."""

    def __init__(self, stdin: Optional[IO[str]] = None, stdout: Optional[IO[str]] = None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stderr
        self.asking = False

    def ask(self, suggested_path: str) -> Optional[str]:
        self.stdout.write(f"Cannot read {suggested_path}.\nFolder to analyze (empty to cancel): ")
        self.stdout.flush()
        self.asking = True
        try:
            line = self.stdin.readline()
        except KeyboardInterrupt:
            self.stdout.write("\n")
            return None
        finally:
            self.asking = False
        answer = line.strip()
        return os.path.expanduser(answer) if answer else None

    def request_access(self, suggested_path: str, callback: AccessCallback) -> None:
        # answer from the event loop, not from inside start()
        QTimer.singleShot(0, lambda: callback(self.ask(suggested_path)))


class ConsoleReporter(ScanObserver):
    def __init__(self, out: IO[str], quiet: bool = False):
        self.out = out
        self.quiet = quiet
        self.final: Optional[Snapshot] = None
        self.status = ScanStatus.IDLE

    def on_snapshot(self, snapshot: Snapshot):
        if snapshot.final:
            self.final = snapshot
        if self.quiet:
            return
        s = snapshot.stats
        line = f"\r{s.formatted_size:>12}  {s.file_count} files  {s.folder_count} folders  {s.formatted_duration}"
        if s.volume_used:
            line += f"  ~{s.progress_ratio() * 100:.0f}%"
        self.out.write(line)
        if snapshot.final:
            self.out.write("\n")
        self.out.flush()

    def on_status_change(self, status: ScanStatus):
        self.status = status


def interrupt(controller: ScanController, provider: ConsolePermissionProvider, app: QCoreApplication):
    """Ctrl-C: cancel a running scan, else abandon the prompt or quit."""
    if controller.stop():
        return
    if provider.asking:
        # only an exception breaks out of the blocked readline
        raise KeyboardInterrupt
    app.quit()


def print_report(snapshot: Snapshot, status: ScanStatus, out: IO[str], depth: int = 2, top: int = 20):
    root = snapshot.root
    s = snapshot.stats
    out.write(f"{root.path}  [{status.value}]\n")
    out.write(f"Total size: {s.formatted_size}   Folders: {s.folder_count}   "
              f"Files: {s.file_count}   Time: {s.formatted_duration}\n")
    shown = 0
    for level, entity in flatten_hierarchy(root, max_depth=depth):
        if level == 0:
            if shown >= top:
                break
            shown += 1
        name = entity.name + (os.sep if entity.is_dir else "")
        extra = f"  ({item_count(entity)} files)" if entity.is_dir else ""
        out.write(f"{format_bytes(entity.size):>12}  {'  ' * level}{name}{extra}\n")


def print_volumes(out: IO[str]):
    for v in list_volumes():
        out.write(f"{v.mountpoint:<24} {v.fstype:<8} {format_bytes(v.used):>12} used of "
                  f"{format_bytes(v.total):>12} ({v.used_ratio * 100:.0f}%)\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Show what takes space under a folder.")
    parser.add_argument("path", nargs="?", default=os.path.expanduser("~"), help="folder to analyze (default: home)")
    parser.add_argument("--no-hidden", action="store_true", help="skip hidden files and folders")
    parser.add_argument("--follow-symlinks", action="store_true", help="descend into symlinked folders")
    parser.add_argument("--threshold-mb", type=float, default=10.0, help="MiB scanned between progress updates")
    parser.add_argument("--bundle", action="append", default=[], metavar="SUFFIX",
                        help="treat folders ending in SUFFIX as single entries (repeatable)")
    parser.add_argument("--depth", type=int, default=2, help="levels shown in the report")
    parser.add_argument("--top", type=int, default=20, help="top-level entries shown in the report")
    parser.add_argument("--volumes", action="store_true", help="list mounted volumes and exit")
    parser.add_argument("-q", "--quiet", action="store_true", help="no progress output")
    parser.add_argument("-v", "--verbose", action="store_true", help="log skipped entries")
    return parser


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    if args.threshold_mb <= 0:
        raise ValueError("--threshold-mb must be positive")
    return ScanConfig(
        include_hidden=not args.no_hidden,
        follow_symlinks=args.follow_symlinks,
        snapshot_threshold=max(1, int(args.threshold_mb * 1024 * 1024)),
        skip_descendants=bundle_predicate(*args.bundle) if args.bundle else None,
    )


def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        if args.volumes:
            print_volumes(sys.stdout)
            return 0
        try:
            config = config_from_args(args)
        except ValueError as e:
            parser.error(str(e))

        app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
        app.setApplicationName(APP_NAME)

        provider = ConsolePermissionProvider()
        controller = ScanController(config, permission_provider=provider)
        reporter = ConsoleReporter(sys.stderr, quiet=args.quiet)
        controller.attach(reporter)
        controller.error.connect(lambda msg: sys.stderr.write(f"error: {msg}\n"))
        controller.path_declined.connect(lambda _msg: app.quit())

        def on_status(status: ScanStatus):
            if status in (ScanStatus.COMPLETED, ScanStatus.FAILED):
                QTimer.singleShot(0, app.quit)

        def on_snapshot(snap: Snapshot):
            # a cancelled scan still delivers its final snapshot after the status change
            if snap.final and controller.status is ScanStatus.CANCELLED:
                QTimer.singleShot(0, app.quit)

        controller.status_changed.connect(on_status)
        controller.snapshot_ready.connect(on_snapshot)

        previous_handler = signal.signal(signal.SIGINT, lambda *_: interrupt(controller, provider, app))
        # let the Python SIGINT handler run while Qt's loop is idle
        ticker = QTimer()
        ticker.timeout.connect(lambda: None)
        ticker.start(200)
        try:
            QTimer.singleShot(0, lambda: controller.start(args.path))
            app.exec()
        finally:
            ticker.stop()
            signal.signal(signal.SIGINT, previous_handler)
            controller.shutdown()
            app.processEvents()

        status = controller.status
        if reporter.final is not None and status is not ScanStatus.IDLE:
            print_report(reporter.final, status, sys.stdout, depth=args.depth, top=args.top)
        return EXIT_CODES.get(status, 1)
    finally:
        shutdown_logging()


def main():
    sys.exit(run())
