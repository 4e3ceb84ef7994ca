"""
Health / introspection document served on every unmatched route.

Host figures come from psutil; the engine section from EnginePool.status().
Each probe degrades to "unknown" instead of failing the request.
"""

import ipaddress
import os
import platform
import socket
import sys
import time
from datetime import UTC, datetime
from typing import Any

import psutil

from pagerelay.engine.pool import EnginePool
from pagerelay.utils.logging import get_logger

logger = get_logger(__name__)

ENDPOINT_DOCS = {
    "proxy": "/proxy?url=",
    "screenshot": "/screenshot?url=&fullpage=true",
    "headers": "/headers?url=",
    "pdf": "/pdf?url=",
}

_MB = 1024 * 1024


def format_uptime(seconds: float) -> str:
    """HH:MM:SS, wrapping at 24h like the clock part of an ISO timestamp."""
    total = int(seconds) % 86400
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _uptime_section() -> dict[str, Any]:
    seconds = max(0.0, time.time() - psutil.boot_time())
    return {"human": format_uptime(seconds), "seconds": round(seconds, 2)}


def _memory_section() -> dict[str, Any]:
    vm = psutil.virtual_memory()
    total_mb = vm.total / _MB
    free_mb = vm.available / _MB
    usage = 100 - (free_mb / total_mb) * 100 if total_mb else 0.0
    return {
        "totalMB": round(total_mb, 2),
        "freeMB": round(free_mb, 2),
        "usagePercent": round(usage, 2),
    }


def _cpu_model() -> str:
    model = platform.processor()
    if model:
        return model
    # platform.processor() is empty on most Linux builds
    try:
        with open("/proc/cpuinfo", encoding="utf-8") as f:
            for line in f:
                if line.lower().startswith("model name"):
                    return line.split(":", 1)[1].strip()
    except OSError:
        pass
    return "unknown"


def _cpu_section() -> dict[str, Any]:
    return {"model": _cpu_model(), "cores": psutil.cpu_count(logical=True) or 0}


def _system_section() -> dict[str, Any]:
    try:
        loadavg = [round(v, 2) for v in psutil.getloadavg()]
    except (AttributeError, OSError):
        loadavg = [0.0, 0.0, 0.0]
    return {
        "hostname": socket.gethostname(),
        "platform": sys.platform,
        "arch": platform.machine(),
        "release": platform.release(),
        "loadavg": loadavg,
    }


def _family_name(family: int) -> str:
    if family == socket.AF_INET:
        return "IPv4"
    if family == socket.AF_INET6:
        return "IPv6"
    return "link"


def primary_ipv4(interfaces: dict[str, list[dict[str, Any]]]) -> str:
    """First non-internal IPv4 address, or 'unknown'."""
    for addresses in interfaces.values():
        for addr in addresses:
            if addr["family"] != "IPv4":
                continue
            try:
                if ipaddress.ip_address(addr["address"]).is_loopback:
                    continue
            except ValueError:
                continue
            return addr["address"]
    return "unknown"


def _network_section() -> dict[str, Any]:
    interfaces: dict[str, list[dict[str, Any]]] = {}
    for name, addrs in psutil.net_if_addrs().items():
        interfaces[name] = [
            {
                "family": _family_name(a.family),
                "address": a.address,
                "netmask": a.netmask,
            }
            for a in addrs
        ]
    return {"ip": primary_ipv4(interfaces), "interfaces": interfaces}


def _process_section() -> dict[str, Any]:
    rss = psutil.Process(os.getpid()).memory_info().rss
    return {
        "pid": os.getpid(),
        "python": platform.python_version(),
        "cwd": os.getcwd(),
        "memoryUsageMB": round(rss / _MB, 2),
    }


def _safe(section: str, probe) -> Any:
    try:
        return probe()
    except (OSError, psutil.Error) as e:
        logger.warning("Health probe failed", section=section, error=str(e))
        return "unknown"


def build_health_document(pool: EnginePool | None = None) -> dict[str, Any]:
    """Assemble the health document.

    Args:
        pool: Engine pool whose status is reported (omitted when None).
    """
    document: dict[str, Any] = {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "uptime": _safe("uptime", _uptime_section),
        "memory": _safe("memory", _memory_section),
        "cpu": _safe("cpu", _cpu_section),
        "system": _safe("system", _system_section),
        "network": _safe("network", _network_section),
        "process": _safe("process", _process_section),
        "docs": dict(ENDPOINT_DOCS),
    }
    if pool is not None:
        document["engine"] = pool.status()
    logger.debug("health_check served")
    return document
