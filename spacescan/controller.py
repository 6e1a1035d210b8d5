from __future__ import annotations
import os
import logging
from typing import Callable, Dict, Optional

from PySide6.QtCore import QObject, QThread, Qt, Signal, Slot

from .config import ScanConfig
from .models import ScanStatus, Snapshot
from .scanner import ScanOutcome, scan_tree
from .volumes import estimate_used_bytes

log = logging.getLogger(__name__)

NO_PATH_SELECTED = "No path selected"

AccessCallback = Callable[[Optional[str]], None]


class ScanAlreadyRunning(RuntimeError):
    pass


# -------------------- Cancel flag --------------------
class CancelFlag:
    def __init__(self):
        self._cancel = False

    def cancel(self):
        self._cancel = True

    def __call__(self):
        return self._cancel


# -------------------- Collaborators --------------------
class PermissionProvider:
    """Turns an unreadable root into a path the user agreed to scan.

    ``request_access`` must return without waiting for the user and later
    call ``callback`` on the controller's thread with the approved path, or
    with ``None`` when the user declined.
    """

    def request_access(self, suggested_path: str, callback: AccessCallback) -> None:
        raise NotImplementedError


class ScanObserver:
    def on_snapshot(self, snapshot: Snapshot) -> None:
        pass

    def on_status_change(self, status: ScanStatus) -> None:
        pass


# -------------------- Worker thread --------------------
class ScanThread(QThread):
    snapshot = Signal(int, object)  # scan_id, Snapshot
    failed = Signal(int, str)
    done = Signal(int)

    def __init__(self, scan_id: int, root: str, config: ScanConfig, volume_used: int = 0):
        super().__init__()
        self.scan_id = scan_id
        self.root = root
        self.config = config
        self.volume_used = volume_used
        self.cancel_flag = CancelFlag()
        self.outcome: Optional[ScanOutcome] = None

    def run(self):
        try:
            def publish(snap: Snapshot):
                self.snapshot.emit(self.scan_id, snap)
            self.outcome = scan_tree(self.root, self.config, publish=publish,
                                     cancel_flag=self.cancel_flag,
                                     volume_used=self.volume_used)
            if self.outcome.error:
                self.failed.emit(self.scan_id, self.outcome.error)
        except Exception as e:
            log.exception("scan worker for %s failed", self.root)
            self.failed.emit(self.scan_id, str(e))
        finally:
            self.done.emit(self.scan_id)


# -------------------- Controller --------------------
class ScanController(QObject):
    """Owns the scan lifecycle: ``IDLE -> RUNNING -> COMPLETED|CANCELLED|FAILED``.

    One ``ScanThread`` at a time builds the tree; its snapshots arrive here
    through queued connections and are re-emitted as ``snapshot_ready`` on
    the controller's thread. Status changes are emitted synchronously from
    ``start``/``stop`` and from the worker notifications.
    """

    snapshot_ready = Signal(object)   # Snapshot
    status_changed = Signal(object)   # ScanStatus
    error = Signal(str)
    path_resolved = Signal(str)
    path_declined = Signal(str)

    def __init__(self, config: Optional[ScanConfig] = None,
                 permission_provider: Optional[PermissionProvider] = None,
                 estimate_volume: bool = True, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.config = config or ScanConfig()
        self.permission_provider = permission_provider
        self.estimate_volume = estimate_volume
        self.root_path: Optional[str] = None
        self.error_message: Optional[str] = None
        self.last_snapshot: Optional[Snapshot] = None
        self._status = ScanStatus.IDLE
        self._scan_id = 0
        self._access_request = 0
        self._thread: Optional[ScanThread] = None
        self._final_delivered = False
        self._threads: Dict[int, ScanThread] = {}

    @property
    def status(self) -> ScanStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is ScanStatus.RUNNING

    def attach(self, observer: ScanObserver):
        self.snapshot_ready.connect(observer.on_snapshot)
        self.status_changed.connect(observer.on_status_change)

    def _set_status(self, status: ScanStatus):
        if status is self._status:
            return
        log.debug("status %s -> %s", self._status.value, status.value)
        self._status = status
        self.status_changed.emit(status)

    # ---------- Start / stop
    def start(self, path: str):
        if self._status is ScanStatus.RUNNING:
            raise ScanAlreadyRunning(f"a scan of {self.root_path} is already running")

        path = os.path.abspath(os.path.expanduser(path))
        if os.access(path, os.R_OK):
            self._begin(path)
            return

        log.info("%s is not readable, asking for access", path)
        self._access_request += 1
        token = self._access_request
        if self.permission_provider is None:
            self._on_access(token, None)
            return
        self.permission_provider.request_access(path, lambda approved: self._on_access(token, approved))

    def _on_access(self, token: int, approved: Optional[str]):
        if token != self._access_request:
            log.debug("ignoring stale access answer %r", approved)
            return
        if not approved:
            log.info(NO_PATH_SELECTED)
            self.path_declined.emit(NO_PATH_SELECTED)
            return
        if self._status is ScanStatus.RUNNING:
            log.warning("access granted for %s but another scan is running", approved)
            return
        approved = os.path.abspath(approved)
        self.path_resolved.emit(approved)
        self._begin(approved)

    def _begin(self, path: str):
        if not os.path.isdir(path):
            msg = f"Not a directory: {path}" if os.path.exists(path) else f"Path does not exist: {path}"
            log.error("cannot scan %s: %s", path, msg)
            self.root_path = path
            self.error_message = msg
            self._set_status(ScanStatus.FAILED)
            self.error.emit(msg)
            return

        if self._status is not ScanStatus.IDLE:
            self._set_status(ScanStatus.IDLE)

        self._scan_id += 1
        self.root_path = path
        self.error_message = None
        self.last_snapshot = None
        self._final_delivered = False
        volume_used = estimate_used_bytes([path]) if self.estimate_volume else 0

        thread = ScanThread(self._scan_id, path, self.config, volume_used)
        thread.snapshot.connect(self._on_snapshot, Qt.QueuedConnection)
        thread.failed.connect(self._on_failed, Qt.QueuedConnection)
        thread.done.connect(self._on_done, Qt.QueuedConnection)
        self._threads[self._scan_id] = thread
        self._thread = thread

        log.info("scanning %s", path)
        self._set_status(ScanStatus.RUNNING)
        thread.start()

    def stop(self) -> bool:
        if self._status is not ScanStatus.RUNNING or self._thread is None:
            return False
        if self._final_delivered:
            # worker already finished; completion is only waiting on done
            return False
        log.info("cancelling scan of %s", self.root_path)
        self._thread.cancel_flag.cancel()
        self._set_status(ScanStatus.CANCELLED)
        return True

    def wait(self, timeout_ms: Optional[int] = None) -> bool:
        """Block until the current worker exits.

        Its last notifications are still queued afterwards; they are
        delivered by the event loop (or ``processEvents()``).
        """
        thread = self._thread
        if thread is None:
            return True
        return thread.wait() if timeout_ms is None else thread.wait(timeout_ms)

    def shutdown(self):
        self.stop()
        for thread in list(self._threads.values()):
            thread.cancel_flag.cancel()
            thread.wait()

    # ---------- Worker notifications
    @Slot(int, object)
    def _on_snapshot(self, scan_id: int, snap: Snapshot):
        if scan_id != self._scan_id:
            log.debug("dropping snapshot %d of superseded scan %d", snap.sequence, scan_id)
            return
        if snap.final:
            self._final_delivered = True
        self.last_snapshot = snap
        self.snapshot_ready.emit(snap)

    @Slot(int, str)
    def _on_failed(self, scan_id: int, msg: str):
        if scan_id != self._scan_id:
            return
        self.error_message = msg
        if self._status is ScanStatus.RUNNING:
            self._set_status(ScanStatus.FAILED)
        self.error.emit(msg)

    @Slot(int)
    def _on_done(self, scan_id: int):
        thread = self._threads.pop(scan_id, None)
        if thread is not None:
            thread.wait()
        if scan_id != self._scan_id:
            return
        self._thread = None
        if self._status is ScanStatus.RUNNING:
            self._set_status(ScanStatus.COMPLETED)
