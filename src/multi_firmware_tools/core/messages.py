"""
Standardized message system for Multi Firmware Tools.

Provides structured message items with stable codes so that every front end
can display firmware and backup problems consistently.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any

from multi_firmware_tools.firmware_tools import (
    BackupNotFound,
    BackupSizeInvalid,
    InputTooLarge,
    SizeExceeded,
    UserCancelled,
)
from multi_firmware_tools.signature import NoSignatureFound, SignatureParseFailed

from .results import OperationResult


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class MessageCode(Enum):
    """Stable codes for known conditions."""
    # Firmware file
    E_INPUT_TOO_LARGE = "E_INPUT_TOO_LARGE"
    E_SIZE_EXCEEDED = "E_SIZE_EXCEEDED"

    # Signature
    W_NO_SIGNATURE = "W_NO_SIGNATURE"
    W_SIGNATURE_PARSE_FAILED = "W_SIGNATURE_PARSE_FAILED"

    # Backup
    E_BACKUP_NOT_FOUND = "E_BACKUP_NOT_FOUND"
    E_BACKUP_SIZE_INVALID = "E_BACKUP_SIZE_INVALID"

    # Filesystem
    E_IO_ERROR = "E_IO_ERROR"

    # Flow
    I_USER_CANCELLED = "I_USER_CANCELLED"

    # Generic
    E_UNKNOWN = "E_UNKNOWN"


# Default remediation hints for each code
REMEDIATIONS: Dict[MessageCode, str] = {
    MessageCode.E_INPUT_TOO_LARGE:
        "Check that the selected file is a compiled MULTI-Module firmware (.bin).",
    MessageCode.E_SIZE_EXCEEDED:
        "Disable protocols or features in the build configuration to reduce the firmware size.",
    MessageCode.W_NO_SIGNATURE:
        "Firmware built with older tooling has no signature; details cannot be shown.",
    MessageCode.W_SIGNATURE_PARSE_FAILED:
        "The signature is damaged. Rebuild the firmware or download it again.",
    MessageCode.E_BACKUP_NOT_FOUND:
        "Read the MULTI-Module again to create a new backup.",
    MessageCode.E_BACKUP_SIZE_INVALID:
        "Backups must be exactly 120 KB or 128 KB. Read the MULTI-Module again.",
    MessageCode.E_IO_ERROR:
        "Check file permissions and free disk space.",
    MessageCode.I_USER_CANCELLED:
        "",
    MessageCode.E_UNKNOWN:
        "Check logs for more details.",
}

_EXCEPTION_CODES = (
    (InputTooLarge, MessageCode.E_INPUT_TOO_LARGE),
    (SizeExceeded, MessageCode.E_SIZE_EXCEEDED),
    (NoSignatureFound, MessageCode.W_NO_SIGNATURE),
    (SignatureParseFailed, MessageCode.W_SIGNATURE_PARSE_FAILED),
    (BackupNotFound, MessageCode.E_BACKUP_NOT_FOUND),
    (BackupSizeInvalid, MessageCode.E_BACKUP_SIZE_INVALID),
    (UserCancelled, MessageCode.I_USER_CANCELLED),
    (OSError, MessageCode.E_IO_ERROR),
)


def code_for_exception(exc: BaseException) -> MessageCode:
    """Map an exception to its stable message code."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return MessageCode.E_UNKNOWN


@dataclass
class MessageItem:
    """
    Structured message with stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: MessageCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        """Set default remediation if not provided."""
        if not self.remediation and self.code in REMEDIATIONS:
            self.remediation = REMEDIATIONS[self.code]

    @classmethod
    def warn(cls, code: MessageCode, title: str, detail: str = "") -> "MessageItem":
        """Create a WARN-level message."""
        return cls(MessageLevel.WARN, code, title, detail)

    @classmethod
    def error(cls, code: MessageCode, title: str, detail: str = "") -> "MessageItem":
        """Create an ERROR-level message."""
        return cls(MessageLevel.ERROR, code, title, detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/display."""
        return {
            "level": self.level.value,
            "code": self.code.value,
            "title": self.title,
            "detail": self.detail,
            "remediation": self.remediation,
        }


def result_to_messages(result: OperationResult) -> List[MessageItem]:
    """
    Convert an OperationResult's warnings and errors to MessageItems.

    Errors carry the result's code; signature problems are reported as
    warnings since the firmware itself may still be usable.
    """
    try:
        code = MessageCode(result.code) if result.code else MessageCode.E_UNKNOWN
    except ValueError:
        code = MessageCode.E_UNKNOWN

    items = [MessageItem.warn(MessageCode.E_UNKNOWN, w) for w in result.warnings]
    for err in result.errors:
        if code.value.startswith("W_"):
            items.append(MessageItem.warn(code, err))
        else:
            items.append(MessageItem.error(code, err))
    return items
