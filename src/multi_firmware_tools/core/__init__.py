"""
Core module for Multi Firmware Tools.

This module provides the single source of truth for:
- Value parsing (parsing.py)
- Result objects (results.py)
- Unified inspect/check/backup workflows (actions.py)
- Standardized messages (messages.py)

Front ends should call into this module rather than implementing their own
logic.
"""

from .parsing import parse_offset, parse_yes_no_cancel
from .results import OperationResult
from .messages import (
    MessageLevel,
    MessageCode,
    MessageItem,
    code_for_exception,
    result_to_messages,
)
from .actions import (
    inspect_firmware,
    check_firmware_size,
    check_bootloader,
    save_firmware_backup,
)

__all__ = [
    # Parsing
    "parse_offset",
    "parse_yes_no_cancel",
    # Results
    "OperationResult",
    # Messages
    "MessageLevel",
    "MessageCode",
    "MessageItem",
    "code_for_exception",
    "result_to_messages",
    # Actions
    "inspect_firmware",
    "check_firmware_size",
    "check_bootloader",
    "save_firmware_backup",
]
