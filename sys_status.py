import platform
from time import time

import psutil

MB = 1024 * 1024


def _disk_lines() -> list:
    lines = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (PermissionError, OSError):
            continue
        lines.append(
            f"{part.device}: {usage.used // MB} / {usage.total // MB} MB"
        )
    return lines


def sys_status() -> str:
    """帮助信息末尾附带的系统状态。"""
    mem = psutil.virtual_memory()
    swap = psutil.swap_memory()
    cpu = psutil.cpu_percent(interval=None)

    uptime = int(time() - psutil.boot_time())
    days, rest = divmod(uptime, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    disks = "\n  ".join(_disk_lines()) or "Unknown"

    return (
        "System Status:\n"
        f"Mem Usage: {mem.used // MB} / {mem.total // MB} MB\n"
        f"Swap Usage: {swap.used // MB} / {swap.total // MB} MB\n"
        f"CPU Usage: {cpu:.2f} %\n"
        f"Disk Usage:\n  {disks}\n"
        f"Uptime: {days} d {hours} h {minutes} m\n"
        f"OS: {platform.system() or 'Unknown'} "
        f"{platform.release() or 'Unknown'} {platform.version() or 'Unknown'}\n"
    )
