"""
Firmware image checks and backup extraction for MULTI-Module flash images.

This module covers the structural checks that do not need the signature:
- USB bootloader support detection ("MapleLeafLabs" descriptor residue)
- Firmware size validation against the module flash capacity
- Bootloader header detection at the start of a backup
- Carving firmware (+ optional EEPROM) out of a raw flash backup

Everything is recognized by fixed byte patterns and fixed offsets; there are
no length-prefixed records to follow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Tuple, Union

from multi_firmware_tools.eeprom import find_valid_page, get_eeprom_data_from_backup
from multi_firmware_tools.scanner import find_pattern, read_all, read_window

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
EepromProbe = Callable[[bytes], int]

# UTF-16 "Maple" / "LeafLabs" USB string descriptors, each followed by the
# descriptor length/type bytes of the next one.
USB_SUPPORT_MARKER = (
    b"M\x00a\x00p\x00l\x00e\x00\x12\x03"
    b"L\x00e\x00a\x00f\x00L\x00a\x00b\x00s\x00\x12\x01"
)

# First 32 bytes of the MULTI-Module bootloader (stack pointer + vectors)
BOOTLOADER_HEADER = bytes.fromhex(
    "00500020"
    "3f000008"
    "39010008"
    "39010008"
    "39010008"
    "39010008"
    "39010008"
    "00000000"
)


@dataclass(frozen=True)
class FlashLayout:
    """Flash geometry and size limits for the module."""

    max_input_size: int = 256000
    usb_capacity: int = 120832
    standard_capacity: int = 129024
    eeprom_size: int = 2048
    bootloader_size: int = 8192
    backup_sizes: Tuple[int, ...] = (120 * 1024, 128 * 1024)
    signature_tail_size: int = 24

    @property
    def bootloader_backup_size(self) -> int:
        """Backup size that may include the bootloader region."""
        return max(self.backup_sizes)

    def base_capacity(self, usb_support: bool) -> int:
        """Maximum firmware size without the EEPROM reserve."""
        return self.usb_capacity if usb_support else self.standard_capacity


DEFAULT_LAYOUT = FlashLayout()


class FirmwareToolError(Exception):
    """Base exception for firmware tool operations."""


class InputTooLarge(FirmwareToolError):
    """Raised when a file exceeds the hard size ceiling."""

    def __init__(self, actual: int, limit: int) -> None:
        super().__init__("Selected firmware file is too large.")
        self.actual = actual
        self.limit = limit


class SizeExceeded(FirmwareToolError):
    """Raised when firmware does not fit the module flash."""

    def __init__(self, actual: int, maximum: int) -> None:
        super().__init__(
            "Firmware file is too large.\n\n"
            f"Selected file is {actual // 1024:,} KB, maximum size is {maximum // 1024:,} KB."
        )
        self.actual = actual
        self.maximum = maximum


class BackupNotFound(FirmwareToolError):
    """Raised when the backup file does not exist."""

    def __init__(self, path: PathLike) -> None:
        super().__init__("Backup file not found. Please read the MULTI-Module again.")
        self.path = str(path)


class BackupSizeInvalid(FirmwareToolError):
    """Raised when a backup is neither 120 KiB nor 128 KiB."""

    def __init__(self, actual: int) -> None:
        super().__init__(f"Incorrect backup file size ({actual:,} bytes).")
        self.actual = actual


class UserCancelled(FirmwareToolError):
    """Raised when the user cancels a prompt. Not an error condition."""


@dataclass(frozen=True)
class BackupLayout:
    """Byte range to carve out of a raw flash backup."""

    total_size: int
    bootloader_present: bool
    include_eeprom: bool
    start_offset: int
    end_offset: int

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    @property
    def region(self) -> str:
        return f"0x{self.start_offset:05X}-0x{self.end_offset:05X}"


def has_usb_support(data: bytes) -> bool:
    """
    Check raw firmware bytes for the USB bootloader descriptor strings.

    A match at offset 0 is treated as not found.
    """
    return find_pattern(data, USB_SUPPORT_MARKER) > 0


def check_for_usb_support(path: PathLike, *, layout: FlashLayout = DEFAULT_LAYOUT) -> bool:
    """Check whether a firmware file was built with USB / Flash from TX support."""
    supported = has_usb_support(read_all(path, limit=layout.max_input_size))
    logger.debug("USB support in %s: %s", path, supported)
    return supported


def maximum_firmware_size(
    data: bytes,
    *,
    eeprom_probe: EepromProbe = find_valid_page,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> int:
    """Compute the largest firmware size allowed for this image's configuration."""
    max_size = layout.base_capacity(has_usb_support(data))
    if eeprom_probe(get_eeprom_data_from_backup(data)) >= 0:
        max_size += layout.eeprom_size
    return max_size


def check_firmware_file_size(
    path: PathLike,
    *,
    eeprom_probe: EepromProbe = find_valid_page,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> int:
    """
    Check that a compiled firmware file will fit on the module.

    Returns:
        The maximum permitted size for the file's configuration.

    Raises:
        InputTooLarge: File exceeds the hard ceiling (checked before scanning).
        SizeExceeded: File exceeds the computed capacity.
    """
    length = Path(path).stat().st_size
    if length > layout.max_input_size:
        raise InputTooLarge(length, layout.max_input_size)

    max_size = maximum_firmware_size(read_all(path), eeprom_probe=eeprom_probe, layout=layout)
    logger.info("Firmware %s is %d bytes, maximum is %d bytes", path, length, max_size)
    if length > max_size:
        raise SizeExceeded(length, max_size)
    return max_size


def firmware_contains_bootloader(path: PathLike) -> bool:
    """Compare the first 32 bytes of a file against the bootloader header."""
    header = read_window(path, 0, len(BOOTLOADER_HEADER))
    if header == BOOTLOADER_HEADER:
        logger.debug("Backup file contains bootloader")
        return True
    logger.debug("Backup file does not contain bootloader")
    return False


def compute_backup_layout(
    path: PathLike,
    include_eeprom: bool,
    *,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> BackupLayout:
    """
    Work out which bytes of a raw flash backup hold the firmware.

    Raises:
        BackupNotFound: The backup file does not exist.
        BackupSizeInvalid: The backup is not one of the known flash sizes.
    """
    backup = Path(path)
    if not backup.exists():
        raise BackupNotFound(backup)

    total_size = backup.stat().st_size
    logger.debug("Backup file is %d bytes long.", total_size)
    if total_size not in layout.backup_sizes:
        raise BackupSizeInvalid(total_size)

    bootloader_present = False
    if total_size == layout.bootloader_backup_size:
        bootloader_present = firmware_contains_bootloader(backup)
    start = layout.bootloader_size if bootloader_present else 0
    end = total_size if include_eeprom else total_size - layout.eeprom_size

    if not 0 <= start <= end <= total_size:
        raise FirmwareToolError(
            f"Invalid backup range 0x{start:05X}-0x{end:05X} for a {total_size:,} byte backup."
        )
    return BackupLayout(
        total_size=total_size,
        bootloader_present=bootloader_present,
        include_eeprom=include_eeprom,
        start_offset=start,
        end_offset=end,
    )


def read_backup_region(path: PathLike, backup_layout: BackupLayout) -> bytes:
    """Read exactly the bytes between the layout's start and end offsets."""
    logger.debug(
        "Capturing %d bytes between %d and %d",
        backup_layout.length,
        backup_layout.start_offset,
        backup_layout.end_offset,
    )
    data = read_window(path, backup_layout.start_offset, backup_layout.length)
    if len(data) != backup_layout.length:
        raise FirmwareToolError(
            f"Backup truncated while reading {backup_layout.region} "
            f"(got {len(data)} of {backup_layout.length} bytes)"
        )
    return data


def save_backup_region(path: PathLike, backup_layout: BackupLayout, destination: PathLike) -> int:
    """Write the layout's byte range verbatim to destination. Returns bytes written."""
    data = read_backup_region(path, backup_layout)
    with open(destination, "wb") as f:
        f.write(data)
    logger.info("Firmware backup saved to '%s'.", destination)
    return len(data)


def extract_backup(
    path: PathLike,
    destination: PathLike,
    include_eeprom: bool,
    *,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> BackupLayout:
    """Extract the firmware (and optionally EEPROM) from a backup into a new file."""
    backup_layout = compute_backup_layout(path, include_eeprom, layout=layout)
    save_backup_region(path, backup_layout, destination)
    return backup_layout
