"""Metric probes: CPU/memory, disks, URL reachability and scheduled jobs.

Probes are read-only. They return values and never touch the MetricCache;
the scheduler stores whatever a probe returns.

Failure contract:
- CPU/memory: (0.0, 0.0) when the platform query fails
- Disks: empty tuple when enumeration fails
- URLs: one UrlSample per target; transport failures map to status 0
- Jobs: empty tuple plus a warning when the scheduler cannot be read
"""

import asyncio
import contextlib
import csv
import io
import locale
import os
import socket
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import aiohttp
import psutil
import structlog

from .errors import MonitorError
from .models import DiskSample, MetricFamily, SystemSample, TaskSample, UrlSample

logger = structlog.get_logger(__name__)

TASK_QUERY_TIMEOUT_SECONDS = 30

# Filesystems that never count as fixed local volumes
_NETWORK_FSTYPES = {"nfs", "nfs4", "cifs", "smbfs", "smb3", "afpfs", "9p", "sshfs", "fuse.sshfs"}
_SKIPPED_FSTYPES = {"squashfs", "iso9660", "udf", "overlay", "tmpfs", "devtmpfs"}

_SCHTASKS_STATES = {
    "ready": "Ready",
    "running": "Running",
    "disabled": "Disabled",
    "queued": "Queued",
    "unknown": "Unknown",
    # zh-TW
    "就緒": "Ready",
    "執行中": "Running",
    "已停用": "Disabled",
    "已排入佇列": "Queued",
}

# Column positions of `schtasks /Query /FO CSV /V`; header text is localized
_SCHTASKS_TASK_NAME = 1
_SCHTASKS_STATUS = 3
_SCHTASKS_LAST_RESULT = 6

# Well-known Task Scheduler "Last Result" codes
_SCHTASKS_RESULTS = {
    "0": "completed successfully",
    "1": "incorrect function",
    "267008": "task is ready to run",
    "267009": "task is currently running",
    "267010": "task is disabled",
    "267011": "task has not yet run",
    "267014": "task was terminated",
    "2147750687": "an instance of the task is already running",
}

_SYSTEMD_STATES = {
    "active": "Active",
    "inactive": "Inactive",
    "failed": "Failed",
    "activating": "Starting",
    "deactivating": "Stopping",
    "reloading": "Reloading",
}


# ---------------------------------------------------------------------------
# Host identity
# ---------------------------------------------------------------------------


def resolve_host_identity() -> str:
    """Return the first non-loopback IPv4 address of this host.

    Falls back to interface addresses reported by psutil, then to the
    host name. Resolved once at startup.
    """
    hostname = socket.gethostname()
    addresses: list[str] = []
    try:
        _, _, addresses = socket.gethostbyname_ex(hostname)
    except OSError as exc:
        logger.debug("host_address_lookup_failed", hostname=hostname, error=str(exc))

    for address in addresses:
        if not address.startswith("127."):
            return address

    try:
        for _, interface_addresses in psutil.net_if_addrs().items():
            for addr in interface_addresses:
                if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                    return addr.address
    except Exception as exc:  # noqa: BLE001
        logger.debug("interface_address_lookup_failed", error=str(exc))

    if addresses:
        return addresses[0]
    return hostname or "unknown-host"


# ---------------------------------------------------------------------------
# CPU / memory / disks
# ---------------------------------------------------------------------------


def collect_cpu_memory() -> tuple[float, float]:
    """Return (cpu_percent, memory_percent); (0.0, 0.0) if the query fails.

    cpu_percent uses interval=None: the average since the previous call,
    so it must be primed once before the first real sample.
    """
    try:
        cpu = float(psutil.cpu_percent(interval=None))
        memory = float(psutil.virtual_memory().percent)
    except Exception as exc:  # noqa: BLE001
        logger.warning("cpu_memory_query_failed", error=str(exc))
        return 0.0, 0.0
    return cpu, memory


def _is_fixed_volume(partition: Any) -> bool:
    opts = {opt.strip().lower() for opt in (partition.opts or "").split(",")}
    if "cdrom" in opts or "removable" in opts:
        return False
    fstype = (partition.fstype or "").lower()
    # Windows reports an empty fstype for drives that are not ready
    if not fstype:
        return False
    return fstype not in _NETWORK_FSTYPES and fstype not in _SKIPPED_FSTYPES


def collect_disk_usage() -> tuple[DiskSample, ...]:
    """Return used percent for every ready fixed volume, in enumeration order."""
    try:
        partitions = psutil.disk_partitions(all=False)
    except Exception as exc:  # noqa: BLE001
        logger.warning("disk_enumeration_failed", error=str(exc))
        return ()

    samples: list[DiskSample] = []
    seen: set[str] = set()
    for partition in partitions:
        if partition.mountpoint in seen or not _is_fixed_volume(partition):
            continue
        seen.add(partition.mountpoint)
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except OSError as exc:
            logger.debug("disk_not_ready", drive=partition.mountpoint, error=str(exc))
            continue
        if usage.total <= 0:
            continue
        used_percent = (1 - usage.free / usage.total) * 100
        samples.append(DiskSample(drive=partition.mountpoint, used_percent=used_percent))
    return tuple(samples)


# ---------------------------------------------------------------------------
# URLs
# ---------------------------------------------------------------------------


def _describe_transport_error(exc: BaseException) -> str:
    text = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {text}" if text else name


async def probe_url(session: aiohttp.ClientSession, url: str, timeout_seconds: int) -> UrlSample:
    """GET one URL and classify the outcome.

    Any HTTP response, whatever its status, is reported as
    (status, "Success"). Transport failures are reported as status 0.
    """
    try:
        async with session.get(url, allow_redirects=True) as response:
            return UrlSample(url=url, status_code=response.status, message="Success")
    except asyncio.TimeoutError:
        return UrlSample(url=url, status_code=0, message=f"Timed out after {timeout_seconds}s")
    except (aiohttp.ClientError, OSError, ValueError) as exc:
        return UrlSample(url=url, status_code=0, message=_describe_transport_error(exc))


async def collect_url_status(urls: list[str], timeout_seconds: int) -> tuple[UrlSample, ...]:
    """Probe every URL in order with one shared session.

    Certificates are not verified: targets are internal hosts that commonly
    use self-signed certificates, and reachability is all that is measured.
    """
    if not urls:
        return ()
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    connector = aiohttp.TCPConnector(ssl=False)
    results: list[UrlSample] = []
    async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
        for url in urls:
            results.append(await probe_url(session, url, timeout_seconds))
    return tuple(results)


# ---------------------------------------------------------------------------
# Scheduled jobs
# ---------------------------------------------------------------------------


def _normalize_task_folder(folder: str) -> str:
    folder = folder.strip().replace("/", "\\") or "\\"
    if not folder.startswith("\\"):
        folder = "\\" + folder
    if len(folder) > 1:
        folder = folder.rstrip("\\")
    return folder


def _describe_last_result(code: str) -> str:
    code = code.strip()
    known = _SCHTASKS_RESULTS.get(code)
    return f"{code} ({known})" if known else code


def _schtasks_rows(text: str) -> list[tuple[str, str, str]]:
    """(task_path, status, last_result) of every task row, by column position.

    Header lines, repeated once per folder in verbose output, are skipped:
    a task path always starts with a backslash, a header cell never does.
    """
    rows: list[tuple[str, str, str]] = []
    for row in csv.reader(io.StringIO(text)):
        if len(row) <= _SCHTASKS_LAST_RESULT:
            continue
        task_path = row[_SCHTASKS_TASK_NAME].strip()
        if not task_path.startswith("\\"):
            continue
        rows.append((task_path, row[_SCHTASKS_STATUS].strip(), row[_SCHTASKS_LAST_RESULT].strip()))
    return rows


def parse_schtasks_csv(text: str, folder: str) -> tuple[TaskSample, ...]:
    """Parse `schtasks /Query /FO CSV /V` output, keeping jobs directly in folder."""
    folder = _normalize_task_folder(folder)
    samples: list[TaskSample] = []
    seen: set[str] = set()
    for task_path, raw_state, last_result in _schtasks_rows(text):
        if task_path in seen:
            continue
        parent, _, name = task_path.rpartition("\\")
        if (parent or "\\") != folder:
            continue
        seen.add(task_path)
        description = _SCHTASKS_STATES.get(raw_state.lower(), "Undefined")
        if last_result:
            description = f"{description} [last result: {_describe_last_result(last_result)}]"
        samples.append(TaskSample(name=name, description=description, raw_state=raw_state))
    return tuple(samples)


def parse_systemctl_units(text: str) -> tuple[TaskSample, ...]:
    """Parse `systemctl list-units --plain --no-legend` output."""
    samples: list[TaskSample] = []
    for line in text.splitlines():
        parts = line.strip().lstrip("●*").split(None, 4)
        if len(parts) < 4:
            continue
        unit, _load, active, sub = parts[:4]
        description = _SYSTEMD_STATES.get(active, "Undefined")
        samples.append(
            TaskSample(name=unit, description=f"{description} [{sub}]", raw_state=f"{active}/{sub}")
        )
    return tuple(samples)


async def _run_command(cmd: list[str], timeout_seconds: int) -> str:
    """Run a read-only command and return its decoded stdout.

    Raises:
        MonitorError: If the command is missing, times out, or fails.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise MonitorError(
            code="task_backend_not_found",
            message=f"{cmd[0]} is not available on this host",
            details={"command": cmd},
        ) from exc
    try:
        stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise MonitorError(
            code="task_query_timeout",
            message=f"{cmd[0]} did not answer within {timeout_seconds}s",
            details={"command": cmd},
            retryable=True,
        ) from exc
    finally:
        # Timed out or cancelled by stop: never leave the child running
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    encoding = locale.getpreferredencoding(False) or "utf-8"
    if process.returncode != 0:
        raise MonitorError(
            code="task_query_failed",
            message=stderr_b.decode(encoding, errors="replace").strip() or "non-zero exit",
            details={"command": cmd, "returncode": process.returncode},
            retryable=True,
        )
    return stdout_b.decode(encoding, errors="replace")


async def collect_task_states(folder: str, backend: str = "auto") -> tuple[TaskSample, ...]:
    """Return the state of every job in a scheduler folder.

    Raises:
        MonitorError: If the job scheduler cannot be queried.
    """
    if backend == "auto":
        backend = "schtasks" if os.name == "nt" else "systemd"

    if backend == "schtasks":
        normalized = _normalize_task_folder(folder)
        folder_arg = normalized if normalized == "\\" else normalized + "\\"
        output = await _run_command(
            ["schtasks", "/Query", "/FO", "CSV", "/V", "/TN", folder_arg],
            TASK_QUERY_TIMEOUT_SECONDS,
        )
        if output.strip() and not output.lstrip().startswith("INFO:") and not _schtasks_rows(output):
            raise MonitorError(
                code="task_output_unrecognized",
                message="schtasks output contained no task rows",
                details={"folder": normalized, "first_line": output.strip().splitlines()[0][:200]},
            )
        return parse_schtasks_csv(output, folder)

    cmd = ["systemctl", "list-units", "--all", "--plain", "--no-legend", "--no-pager"]
    pattern = folder.strip()
    if pattern and pattern != "\\":
        cmd.append(pattern)
    output = await _run_command(cmd, TASK_QUERY_TIMEOUT_SECONDS)
    return parse_systemctl_units(output)


# ---------------------------------------------------------------------------
# Probe set
# ---------------------------------------------------------------------------


class MetricProbes:
    """The probe for each metric family, configured once at startup."""

    def __init__(
        self,
        urls: Optional[list[str]] = None,
        url_enabled: bool = False,
        url_timeout_seconds: int = 10,
        task_enabled: bool = False,
        task_folder: str = "\\",
        task_backend: str = "auto",
    ):
        self.urls = list(urls or [])
        self.url_enabled = url_enabled
        self.url_timeout_seconds = url_timeout_seconds
        self.task_enabled = task_enabled
        self.task_folder = task_folder
        self.task_backend = task_backend
        # Prime the CPU counter so the first real sample is meaningful
        collect_cpu_memory()

    async def sample_system(self) -> SystemSample:
        """Disk family: CPU/memory pair plus fixed volume usage."""
        cpu, memory = collect_cpu_memory()
        disks = await asyncio.to_thread(collect_disk_usage)
        return SystemSample(cpu_percent=cpu, memory_percent=memory, disks=disks)

    async def sample_urls(self) -> tuple[UrlSample, ...]:
        if not self.url_enabled:
            return ()
        return await collect_url_status(self.urls, self.url_timeout_seconds)

    async def sample_tasks(self) -> tuple[TaskSample, ...]:
        if not self.task_enabled:
            return ()
        try:
            return await collect_task_states(self.task_folder, self.task_backend)
        except MonitorError as exc:
            logger.warning(
                "task_scheduler_read_failed",
                folder=self.task_folder,
                backend=self.task_backend,
                **exc.to_dict(),
            )
            return ()

    def by_family(self) -> dict[MetricFamily, Callable[[], Awaitable[Any]]]:
        return {
            MetricFamily.DISK: self.sample_system,
            MetricFamily.URL: self.sample_urls,
            MetricFamily.TASK: self.sample_tasks,
        }
