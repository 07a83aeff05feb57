"""System report encoders: listening ports and processes.

Pure parsers for ``ss``, ``netstat``, ``ps`` and ``lsof`` output.
"""
from __future__ import annotations

from safeshell.reports.models import PortEntry, PortsReport, ProcessEntry, ProcessesReport

PS_ARGS = ("-eo", "pid=,user=,pcpu=,pmem=,comm=")

_LISTENING_STATES = frozenset({"LISTEN", "UNCONN"})


def ss_args(listen_only: bool) -> list[str]:
    return ["-tuln" if listen_only else "-tuan"]


def netstat_args(listen_only: bool) -> list[str]:
    return ["-tuln" if listen_only else "-tuan"]


def _split_endpoint(endpoint: str) -> tuple[str, int] | None:
    address, sep, port = endpoint.rpartition(":")
    if not sep or not port.isdigit():
        return None
    return address.strip("[]"), int(port)


def _collect(entries: list[PortEntry], listen_only: bool) -> PortsReport:
    seen: set[tuple[int, str, str]] = set()
    unique: list[PortEntry] = []
    for entry in entries:
        if listen_only and entry.state is not None and entry.state not in _LISTENING_STATES:
            continue
        key = (entry.port, entry.proto, entry.address)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    unique.sort(key=lambda e: (e.port, e.proto, e.address))
    return PortsReport(ports=unique)


def parse_ss(output: str, *, listen_only: bool = False) -> PortsReport:
    """Parse ``ss -tuln`` / ``ss -tuan`` output."""
    entries: list[PortEntry] = []
    for line in output.splitlines()[1:]:
        cols = line.split()
        if len(cols) < 5:
            continue
        endpoint = _split_endpoint(cols[4])
        if endpoint is None:
            continue
        address, port = endpoint
        entries.append(PortEntry(port=port, proto=cols[0], state=cols[1], address=address))
    return _collect(entries, listen_only)


def parse_netstat(output: str, *, listen_only: bool = False) -> PortsReport:
    """Parse ``netstat -tuln`` / ``netstat -tuan`` output."""
    entries: list[PortEntry] = []
    for line in output.splitlines():
        cols = line.split()
        if len(cols) < 4 or not cols[0].startswith(("tcp", "udp")):
            continue
        endpoint = _split_endpoint(cols[3])
        if endpoint is None:
            continue
        address, port = endpoint
        state = cols[5] if len(cols) > 5 else None
        entries.append(PortEntry(port=port, proto=cols[0], state=state, address=address))
    return _collect(entries, listen_only)


def _to_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


def parse_ps(output: str, *, name_filter: str | None = None, limit: int = 20) -> ProcessesReport:
    """Parse ``ps -eo pid=,user=,pcpu=,pmem=,comm=`` output.

    *name_filter* keeps processes whose name contains it (case-insensitive).
    """
    needle = name_filter.lower() if name_filter else None
    processes: list[ProcessEntry] = []
    for line in output.splitlines():
        cols = line.split(None, 4)
        if len(cols) < 5 or not cols[0].isdigit():
            continue
        pid, user, cpu, mem, name = cols
        if needle is not None and needle not in name.lower():
            continue
        processes.append(
            ProcessEntry(pid=int(pid), name=name, user=user, cpu=_to_float(cpu), mem=_to_float(mem))
        )
        if len(processes) >= limit:
            break
    return ProcessesReport(processes=processes)


def parse_lsof(output: str, *, port: int) -> ProcessesReport:
    """Parse ``lsof -nP -i :PORT`` output into one entry per pid."""
    processes: list[ProcessEntry] = []
    seen: set[int] = set()
    for line in output.splitlines()[1:]:
        cols = line.split()
        if len(cols) < 3 or not cols[1].isdigit():
            continue
        pid = int(cols[1])
        if pid in seen:
            continue
        seen.add(pid)
        processes.append(ProcessEntry(pid=pid, name=cols[0], user=cols[2], port=port))
    return ProcessesReport(processes=processes)
