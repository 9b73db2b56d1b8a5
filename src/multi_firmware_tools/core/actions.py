"""
Core workflow actions for Multi Firmware Tools.

This module exposes functions that any front end (CLI or GUI) can call.
Library errors are converted into OperationResult objects carrying a stable
code and a message that can be shown verbatim; user prompts are supplied as
callables so no presentation mechanism is assumed.
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional, Union

from multi_firmware_tools.eeprom import find_valid_page
from multi_firmware_tools.firmware_tools import (
    DEFAULT_LAYOUT,
    BackupNotFound,
    EepromProbe,
    FirmwareToolError,
    FlashLayout,
    UserCancelled,
    check_firmware_file_size,
    compute_backup_layout,
    firmware_contains_bootloader,
    save_backup_region,
)
from multi_firmware_tools.signature import ModuleType, read_firmware_signature

from .messages import MessageCode, code_for_exception
from .results import OperationResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Returns True (include), False (exclude) or None (cancel)
IncludeEepromPrompt = Callable[[], Optional[bool]]
# Returns a destination path or None (cancel)
DestinationPrompt = Callable[[], Optional[PathLike]]


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "multi_firmware_tools"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def _failure(operation: str, exc: Exception, path: PathLike) -> OperationResult:
    code = code_for_exception(exc)
    if code is MessageCode.E_IO_ERROR:
        logger.error("%s failed: %s", operation, exc)
    return OperationResult.failure(
        operation=operation,
        error=str(exc),
        code=code.value,
        path=str(path),
    )


def inspect_firmware(firmware_path: PathLike) -> OperationResult:
    """
    Read the build signature of a firmware file.

    Returns:
        OperationResult with:
            - ok: True if a signature was decoded
            - metadata["signature"]: FirmwareMetadata.to_dict()
            - code: W_NO_SIGNATURE or W_SIGNATURE_PARSE_FAILED when no
              metadata is available
    """
    with _capture_logs() as logs:
        try:
            info = read_firmware_signature(firmware_path)
            result = OperationResult.success(
                operation="inspect_firmware",
                path=str(firmware_path),
                bytes_len=Path(firmware_path).stat().st_size,
            )
            result.metadata["signature"] = info.to_dict()
            if info.module_type is ModuleType.UNKNOWN:
                result.add_warning("Firmware reports an unknown module type.")
        except (FirmwareToolError, OSError) as e:
            result = _failure("inspect_firmware", e, firmware_path)
        result.logs = logs
        return result


def check_firmware_size(
    firmware_path: PathLike,
    eeprom_probe: EepromProbe = find_valid_page,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> OperationResult:
    """
    Check that a firmware file fits in the module flash.

    Returns:
        OperationResult with metadata["size"] and, when the size gate was
        passed, metadata["max_size"].
    """
    with _capture_logs() as logs:
        try:
            size = Path(firmware_path).stat().st_size
            max_size = check_firmware_file_size(
                firmware_path, eeprom_probe=eeprom_probe, layout=layout
            )
            result = OperationResult.success(
                operation="check_size",
                path=str(firmware_path),
                bytes_len=size,
            )
            result.metadata["size"] = size
            result.metadata["max_size"] = max_size
        except (FirmwareToolError, OSError) as e:
            result = _failure("check_size", e, firmware_path)
            actual = getattr(e, "actual", None)
            if actual is not None:
                result.metadata["size"] = actual
            maximum = getattr(e, "maximum", None) or getattr(e, "limit", None)
            if maximum is not None:
                result.metadata["max_size"] = maximum
        result.logs = logs
        return result


def check_bootloader(file_path: PathLike) -> OperationResult:
    """Report whether a file starts with the MULTI-Module bootloader."""
    try:
        present = firmware_contains_bootloader(file_path)
    except OSError as e:
        return _failure("check_bootloader", e, file_path)
    result = OperationResult.success(operation="check_bootloader", path=str(file_path))
    result.metadata["bootloader_present"] = present
    return result


def save_firmware_backup(
    backup_path: PathLike,
    confirm_include_eeprom: IncludeEepromPrompt,
    choose_destination: DestinationPrompt,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> OperationResult:
    """
    Extract the firmware from a module flash backup and save it.

    The backup must exist before the user is asked anything. Cancelling either
    prompt returns a cancelled result with no error.

    Returns:
        OperationResult with region, bytes_len, metadata["destination"],
        metadata["bootloader_present"], metadata["include_eeprom"] and
        metadata["sha256"].
    """
    operation = "save_backup"
    logger.debug("Backup file is %s", backup_path)

    with _capture_logs() as logs:
        try:
            if not Path(backup_path).exists():
                raise BackupNotFound(backup_path)

            include_eeprom = confirm_include_eeprom()
            if include_eeprom is None:
                raise UserCancelled("EEPROM prompt cancelled")

            backup_layout = compute_backup_layout(backup_path, include_eeprom, layout=layout)

            destination = choose_destination()
            if not destination:
                raise UserCancelled("Destination selection cancelled")

            written = save_backup_region(backup_path, backup_layout, destination)
            data_hash = hashlib.sha256(Path(destination).read_bytes()).hexdigest()

            result = OperationResult.success(
                operation=operation,
                path=str(backup_path),
                region=backup_layout.region,
                bytes_len=written,
            )
            result.metadata.update({
                "destination": str(destination),
                "bootloader_present": backup_layout.bootloader_present,
                "include_eeprom": backup_layout.include_eeprom,
                "start_offset": backup_layout.start_offset,
                "end_offset": backup_layout.end_offset,
                "sha256": data_hash,
                "message": f"Backup saved to '{destination}'.",
            })
        except UserCancelled:
            logger.debug("save_backup cancelled by user")
            result = OperationResult.user_cancelled(
                operation=operation,
                code=MessageCode.I_USER_CANCELLED.value,
                path=str(backup_path),
            )
        except (FirmwareToolError, OSError) as e:
            result = _failure(operation, e, backup_path)
        result.logs = logs
        return result
