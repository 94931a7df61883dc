"""
Parsers for hdc textual output.

hdc reports everything as free text: device listings, install outcomes and
bundle dumps. The functions here turn that text into Device records and
success/failure verdicts.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models.device import Device, sort_usb_first

logger = logging.getLogger(__name__)

EMPTY_MARKER = "[Empty]"

# Echoed invocation lines that precede the real listing
LISTING_MARKERS = ("list targets", "list devices")

SKIPPED_PREFIXES = (
    "环境变量:",
    "当前目录:",
    "运行:",
    "-",
)

# Banner and help text, matched anywhere in a line
SKIPPED_FRAGMENTS = (
    "List of devices",
    "OpenHarmony",
    "commands",
    "help",
    "Print hdc",
    "尝试替代命令",
)

DEFAULT_FAILURE_MARKERS = (
    "[Fail]",
    "package was not found",
    "Not any installation package was found",
    "error:",
)

DEFAULT_NO_PACKAGE_MARKERS = (
    "Not any installation package was found",
    "package was not found",
)

_BUNDLE_NAME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$')


@dataclass
class DeviceListing:
    """Parsed result of a device listing."""
    devices: List[Device] = field(default_factory=list)
    no_devices: bool = False


def _is_skipped_line(line: str) -> bool:
    return line.startswith(SKIPPED_PREFIXES) or any(fragment in line for fragment in SKIPPED_FRAGMENTS)


def parse_device_list(output: str) -> DeviceListing:
    """
    Parse the output of `hdc list targets` into devices.

    Lines before the echoed listing command are discarded; when the output has
    no such line it is parsed from its first line. Devices are deduplicated by
    id (first occurrence wins) and USB devices are ordered before network ones.

    Args:
        output: Raw merged output of the listing command

    Returns:
        DeviceListing; `no_devices` is set when hdc reports the [Empty] marker
    """
    if EMPTY_MARKER in output:
        return DeviceListing(devices=[], no_devices=True)

    lines = output.splitlines()
    start = 0
    for index, line in enumerate(lines):
        if any(marker in line for marker in LISTING_MARKERS):
            start = index + 1
            break

    devices: List[Device] = []
    seen = set()
    for raw_line in lines[start:]:
        line = raw_line.strip()
        if not line or _is_skipped_line(line):
            continue

        tokens = line.split()
        device = Device.from_listing_tokens(tokens)
        if device.device_id in seen:
            continue
        seen.add(device.device_id)
        devices.append(device)

    devices = sort_usb_first(devices)
    logger.debug(f"Parsed {len(devices)} device(s) from listing")
    return DeviceListing(devices=devices, no_devices=not devices)


def find_failure_marker(output: str,
                        markers: Sequence[str] = DEFAULT_FAILURE_MARKERS) -> Optional[str]:
    """
    Find the first output line reporting a failure.

    A marker ending in ':' (such as 'error:') only matches at the start of a
    line; every other marker matches anywhere in the line.

    Args:
        output: Raw command output
        markers: Failure markers to look for

    Returns:
        The first matching line, stripped, or None
    """
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        for marker in markers:
            if marker.endswith(":"):
                if line.lower().startswith(marker.lower()):
                    return line
            elif marker in line:
                return line
    return None


def has_no_package_marker(output: str,
                          markers: Sequence[str] = DEFAULT_NO_PACKAGE_MARKERS) -> bool:
    """Check for hdc's 'no installable package recognised' report."""
    return any(marker in output for marker in markers)


def parse_bundle_list(output: str) -> List[str]:
    """
    Extract bundle names from `bm dump -a` output.

    Returns:
        Bundle names in output order, without duplicates
    """
    bundles: List[str] = []
    for raw_line in output.splitlines():
        token = raw_line.strip()
        if token and _BUNDLE_NAME_PATTERN.match(token) and token not in bundles:
            bundles.append(token)
    return bundles


def bundle_is_listed(output: str, bundle_name: str) -> bool:
    """Check whether a bundle dump lists the given bundle."""
    if not bundle_name:
        return False
    return bundle_name in parse_bundle_list(output)
