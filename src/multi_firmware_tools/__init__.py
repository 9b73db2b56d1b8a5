"""
Multi Firmware Tools - firmware signature and backup utility for MULTI-Module

Signature decoding, size validation and flash backup extraction.
"""

__version__ = "0.1.0"

from multi_firmware_tools.signature import (
    FirmwareMetadata,
    get_firmware_signature,
    read_firmware_signature,
)
from multi_firmware_tools.firmware_tools import (
    BackupLayout,
    check_firmware_file_size,
    extract_backup,
    firmware_contains_bootloader,
)

__all__ = [
    "FirmwareMetadata",
    "get_firmware_signature",
    "read_firmware_signature",
    "BackupLayout",
    "check_firmware_file_size",
    "extract_backup",
    "firmware_contains_bootloader",
    "__version__",
]
