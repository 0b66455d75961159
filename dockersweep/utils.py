"""
Utility functions.

Shared helper functions used across dockersweep modules.
"""

import re
import subprocess
from datetime import datetime, timedelta, timezone
from typing import List, Tuple, Union


def run_command(cmd: List[str], check: bool = True) -> Tuple[int, str, str]:
    """
    Run a shell command and capture output.
    
    Args:
        cmd: Command as list of arguments
        check: If True, raise exception on non-zero exit code
        
    Returns:
        Tuple[int, str, str]: (exit_code, stdout, stderr)
        
    Raises:
        subprocess.CalledProcessError: If check=True and command fails
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.CalledProcessError as e:
        if check:
            raise
        return e.returncode, e.stdout or "", e.stderr or ""


def get_host_disk_usage(path: str = "/") -> List[str]:
    """
    Get the `df -h` header and usage line for a filesystem.
    
    Args:
        path: Mount point to report on
        
    Returns:
        List[str]: Header line followed by the usage line
        
    Raises:
        RuntimeError: If df cannot be run or reports an error
    """
    try:
        returncode, stdout, stderr = run_command(["df", "-h", path], check=False)
    except OSError as e:
        raise RuntimeError(f"Failed to run df: {e}")

    if returncode != 0:
        raise RuntimeError(f"df failed with exit code {returncode}: {stderr.strip()}")

    return stdout.splitlines()[:2]


def format_size(num_bytes: Union[int, float, None]) -> str:
    """
    Format a byte count the way the docker CLI does (decimal units).
    
    Examples:
        0 -> '0B'
        1500 -> '1.5kB'
        2_300_000_000 -> '2.3GB'
    """
    if not num_bytes:
        return "0B"

    size = float(num_bytes)
    if abs(size) < 1000:
        return f"{int(size)}B"

    size /= 1000
    for unit in ("kB", "MB", "GB"):
        rounded = float(f"{size:.3g}")
        # 999.5kB rounds to 1000kB, so carry it to 1MB
        if abs(rounded) < 1000:
            return f"{rounded:g}{unit}"
        size = rounded / 1000
    return f"{size:.3g}TB"


# Engine timestamps carry nanoseconds, e.g. 2024-05-01T10:20:30.123456789Z
_TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?$'
)


def parse_engine_timestamp(value: Union[str, int, float, None]) -> datetime:
    """
    Parse a creation timestamp reported by the container engine.
    
    Accepts RFC 3339 strings with any number of fractional digits and
    unix epoch seconds (as used by the image list endpoint).
    
    Args:
        value: Timestamp string or epoch seconds
        
    Returns:
        datetime: Timezone-aware datetime
        
    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    if not value:
        raise ValueError("Empty timestamp")

    match = _TIMESTAMP_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Unrecognized timestamp: {value}")

    base, fraction, offset = match.groups()
    parsed = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")

    if fraction:
        # datetime only holds microseconds
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))

    if offset and offset != "Z":
        sign = 1 if offset[0] == "+" else -1
        offset_delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6]))
        return parsed.replace(tzinfo=timezone.utc) - sign * offset_delta

    return parsed.replace(tzinfo=timezone.utc)
