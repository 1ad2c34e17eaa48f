# Built-in snapshot producers for metrics read straight from /proc and /sys.
# storage, storage_latency and storage_health come from external collectors.
import logging
import os
import shutil
import time

from .state import write_json
from .timeutil import elapsed_ms

log = logging.getLogger(__name__)

PSEUDO_FS = {
    "proc", "sysfs", "devtmpfs", "devpts", "tmpfs", "cgroup", "cgroup2", "securityfs",
    "pstore", "debugfs", "tracefs", "configfs", "mqueue", "hugetlbfs", "autofs",
    "fusectl", "binfmt_misc", "bpf", "overlay", "squashfs", "nsfs", "rpc_pipefs",
}


def read(path, default=""):
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return default


def read_int(path):
    try:
        return int(read(path, "0"))
    except ValueError:
        return 0


# -------- cpu --------

def read_proc_stat(path="/proc/stat"):
    # First "cpu" line: aggregate jiffies across all cores
    with open(path) as f:
        parts = f.readline().split()
    vals = list(map(int, parts[1:])) + [0] * 10
    user, nice, system, idle, iowait, irq, softirq, steal, *_ = vals
    idle_all = idle + iowait
    total = idle_all + user + nice + system + irq + softirq + steal
    return {"total": total, "idle": idle_all, "iowait": iowait}


def collect_cpu(interval=1.0, stat_path="/proc/stat", sleep=time.sleep):
    before = read_proc_stat(stat_path)
    sleep(interval)
    after = read_proc_stat(stat_path)
    td = after["total"] - before["total"]
    idle = after["idle"] - before["idle"]
    iowait = after["iowait"] - before["iowait"]
    return {
        "usage_percent": round((1 - idle / max(td, 1)) * 100.0, 2),
        "iowait_percent": round(iowait / max(td, 1) * 100.0, 2),
        "cores": os.cpu_count(),
        "load_average": list(os.getloadavg()),
        "sampling_interval_s": interval,
        "raw_counters": {"before": before, "after": after},
    }


# -------- memory --------

def collect_memory(meminfo_path="/proc/meminfo"):
    mm = {}
    with open(meminfo_path) as f:
        for line in f:
            key, _, rest = line.partition(":")
            fields = rest.split()
            if fields and fields[0].isdigit():
                mm[key] = int(fields[0])  # kB
    total = mm.get("MemTotal", 0)
    available = mm.get("MemAvailable", mm.get("MemFree", 0))
    swap_total = mm.get("SwapTotal", 0)
    swap_free = mm.get("SwapFree", 0)
    return {
        "total_kb": total,
        "available_kb": available,
        "used_kb": max(total - available, 0),
        "used_percent": round((1.0 - available / max(total, 1)) * 100.0, 2),
        "buffers_kb": mm.get("Buffers", 0),
        "cached_kb": mm.get("Cached", 0),
        "swap_total_kb": swap_total,
        "swap_used_kb": max(swap_total - swap_free, 0),
    }


# -------- network --------

COUNTERS = ("rx_bytes", "tx_bytes", "rx_packets", "tx_packets", "rx_errors", "tx_errors")


def nic_stats(iface, sys_net="/sys/class/net"):
    # Kernel counters (ever-increasing totals)
    return {name: read_int(f"{sys_net}/{iface}/statistics/{name}") for name in COUNTERS}


def interfaces(sys_net="/sys/class/net"):
    try:
        return sorted(n for n in os.listdir(sys_net) if n != "lo")
    except OSError:
        return []


def collect_network(interval=1.0, sys_net="/sys/class/net", sleep=time.sleep):
    names = interfaces(sys_net)
    before = {iface: nic_stats(iface, sys_net) for iface in names}
    sleep(interval)
    result = {}
    for iface in names:
        after = nic_stats(iface, sys_net)
        span = max(interval, 1e-6)
        result[iface] = {
            **after,
            "mac": read(f"{sys_net}/{iface}/address") or None,
            "rx_bytes_per_s": round((after["rx_bytes"] - before[iface]["rx_bytes"]) / span, 2),
            "tx_bytes_per_s": round((after["tx_bytes"] - before[iface]["tx_bytes"]) / span, 2),
        }
    return {"interfaces": result, "sampling_interval_s": interval}


# -------- filesystem --------

def mounts(mounts_path="/proc/mounts"):
    seen = set()
    with open(mounts_path) as f:
        for line in f:
            parts = line.split()
            if len(parts) < 3:
                continue
            device, mountpoint, fstype = parts[:3]
            if fstype in PSEUDO_FS or mountpoint in seen:
                continue
            seen.add(mountpoint)
            yield device, mountpoint.replace("\\040", " "), fstype


def collect_filesystem(mounts_path="/proc/mounts"):
    entries = []
    for device, mountpoint, fstype in mounts(mounts_path):
        try:
            usage = shutil.disk_usage(mountpoint)
        except OSError:
            continue
        entries.append({
            "device": device,
            "mountpoint": mountpoint,
            "fstype": fstype,
            "total_bytes": usage.total,
            "used_bytes": usage.used,
            "free_bytes": usage.free,
            "used_percent": round(usage.used / max(usage.total, 1) * 100.0, 2),
        })
    return {"filesystems": entries}


def _producers(context):
    cfg = context.config
    return {
        "cpu": lambda: collect_cpu(cfg.cpu_sampling_interval),
        "memory": collect_memory,
        "network": lambda: collect_network(cfg.net_sampling_interval),
        "filesystem": collect_filesystem,
    }


BUILTIN_METRICS = ("cpu", "memory", "network", "filesystem")


def collect(context, names=None, producers=None):
    """Run the built-in producers and write ``<state>/<metric>.json``.

    Disabled metrics are skipped. A producer that fails is logged and leaves
    the previous snapshot in place; the others still run.
    """
    producers = producers or _producers(context)
    written = []
    for name in names or BUILTIN_METRICS:
        if name not in producers:
            log.warning("No built-in collector for %s", name)
            continue
        if not context.metric_enabled(name):
            log.info("Skipping %s collection: disabled", name)
            continue
        started = time.perf_counter()
        try:
            snapshot = producers[name]()
        except (OSError, ValueError) as exc:
            log.error("Collector %s failed: %s", name, exc)
            continue
        snapshot["collected_at"] = int(time.time())
        snapshot["profiling"] = {"duration_ms": elapsed_ms(started)}
        write_json(context.path(f"{name}.json"), snapshot)
        written.append(name)
    return written
