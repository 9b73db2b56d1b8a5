"""
MULTI-Module firmware signature decoding.

The build tool appends a short ASCII signature to every firmware image, e.g.

    multi-stm-bcsid-01020304      (v1, textual flags)
    multi-x1a2b3c4d-01030037      (v2, bit-packed hex flag word)

The signature is normally the last line of the file; older images may carry
it elsewhere, so a full scan is used as a fallback.

v2 flag word layout:

    Bits   Mask    Meaning
    0-1    0x003   Module type (0=AVR, 1=STM32, 3=OrangeRX, 2 unused)
    2-6    0x07C   Channel order index (see CHANNEL_ORDERS)
    7      0x080   Bootloader support
    8      0x100   CHECK_FOR_BOOTLOADER
    9      0x200   INVERT_TELEMETRY
    10     0x400   MULTI_STATUS
    11     0x800   MULTI_TELEMETRY
    12     0x1000  DEBUG_SERIAL

Bits 10-11 together give the telemetry type: 2=OpenTX, 1=erskyTx.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from multi_firmware_tools.firmware_tools import DEFAULT_LAYOUT, FirmwareToolError, FlashLayout
from multi_firmware_tools.scanner import find_pattern, read_all, read_tail

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = b"multi-"

# Multi-bit fields
MODULE_TYPE_MASK = 0x3
CHANNEL_ORDER_MASK = 0x7C
CHANNEL_ORDER_SHIFT = 2
# Single-bit flags
BOOTLOADER_SUPPORT_MASK = 0x80
CHECK_FOR_BOOTLOADER_MASK = 0x100
INVERT_TELEMETRY_MASK = 0x200
MULTI_STATUS_MASK = 0x400
MULTI_TELEMETRY_MASK = 0x800
SERIAL_DEBUG_MASK = 0x1000

# Bits 10-11 together select the telemetry type
MULTI_TELEMETRY_TYPE_MASK = MULTI_STATUS_MASK | MULTI_TELEMETRY_MASK

CHANNEL_ORDER_UNKNOWN = "Unknown"

CHANNEL_ORDERS: Tuple[str, ...] = (
    "AETR", "AERT", "ARET", "ARTE", "ATRE", "ATER",
    "EATR", "EART", "ERAT", "ERTA", "ETRA", "ETAR",
    "TEAR", "TERA", "TREA", "TRAE", "TARE", "TAER",
    "RETA", "REAT", "RAET", "RATE", "RTAE", "RTEA",
)

_V1_RE = re.compile(r"multi-(avr|stm|orx)-([a-z]{5})-([0-9]{8})")
_V2_RE = re.compile(r"multi-x([a-z0-9]{8})-([0-9]{8})")
_FLAG_WORD_RE = re.compile(r"[0-9a-f]{8}")


class NoSignatureFound(FirmwareToolError):
    """Raised when no signature in a known format is present."""


class SignatureParseFailed(FirmwareToolError):
    """Raised when a v2 signature matched but its flag word could not be read."""


class ModuleType(Enum):
    """Target hardware family."""
    AVR = "AVR"
    STM32 = "STM32"
    ORANGE_RX = "OrangeRX"
    UNKNOWN = "Unknown"


class TelemetryType(Enum):
    """Telemetry protocol the firmware was built for."""
    OPENTX = "OpenTX"
    ERSKYTX = "erskyTx"
    UNDEFINED = "Undefined"


class SignatureFormat(Enum):
    """Signature grammar versions."""
    V1 = "v1"
    V2 = "v2"
    UNRECOGNIZED = "unrecognized"


_V1_MODULE_TYPES = {
    "avr": ModuleType.AVR,
    "stm": ModuleType.STM32,
    "orx": ModuleType.ORANGE_RX,
}

# v2 value 2 is unused
_V2_MODULE_TYPES = {
    0: ModuleType.AVR,
    1: ModuleType.STM32,
    3: ModuleType.ORANGE_RX,
}

_V2_TELEMETRY_TYPES = {
    MULTI_TELEMETRY_MASK: TelemetryType.OPENTX,
    MULTI_STATUS_MASK: TelemetryType.ERSKYTX,
}


@dataclass(frozen=True)
class SignatureMatch:
    """Result of matching text against the signature grammars."""
    format: SignatureFormat
    text: str
    groups: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FirmwareMetadata:
    """Build information decoded from a firmware signature."""
    signature: str
    signature_format: SignatureFormat
    module_type: ModuleType
    channel_order: str
    bootloader_support: bool
    check_for_bootloader: bool
    multi_telemetry_type: TelemetryType
    invert_telemetry: bool
    debug_serial: bool
    version: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "signature": self.signature,
            "format": self.signature_format.value,
            "module_type": self.module_type.value,
            "channel_order": self.channel_order,
            "bootloader_support": self.bootloader_support,
            "check_for_bootloader": self.check_for_bootloader,
            "multi_telemetry_type": self.multi_telemetry_type.value,
            "invert_telemetry": self.invert_telemetry,
            "debug_serial": self.debug_serial,
            "version": self.version,
        }


def channel_order_from_index(index: int) -> str:
    """Map a 5-bit channel order index to e.g. 'AETR'. Out of range gives 'Unknown'."""
    if 0 <= index < len(CHANNEL_ORDERS):
        return CHANNEL_ORDERS[index]
    return CHANNEL_ORDER_UNKNOWN


def channel_order_to_index(order: str) -> int:
    """Inverse of channel_order_from_index."""
    try:
        return CHANNEL_ORDERS.index(order.upper())
    except ValueError:
        raise ValueError(f"Unknown channel order '{order}'")


def parse_version(digits: str) -> str:
    """
    Convert 8 version digits to a dotted string.

    "01020304" -> "1.2.3.4", "00000100" -> "0.0.1.0"
    """
    if len(digits) != 8 or not digits.isdigit():
        raise ValueError(f"Version must be 8 digits, got '{digits}'")
    return ".".join(str(int(digits[i:i + 2])) for i in range(0, 8, 2))


def format_version(version: str) -> str:
    """Inverse of parse_version: "1.3.0.55" -> "01030055"."""
    parts = version.split(".")
    if len(parts) != 4:
        raise ValueError(f"Version must have four parts, got '{version}'")
    numbers = [int(p) for p in parts]
    if any(not 0 <= n <= 99 for n in numbers):
        raise ValueError(f"Version parts must be 0-99, got '{version}'")
    return "".join(f"{n:02d}" for n in numbers)


def classify_signature(text: str) -> SignatureMatch:
    """Decide which grammar, if any, a signature string follows."""
    match = _V1_RE.fullmatch(text)
    if match:
        return SignatureMatch(SignatureFormat.V1, text, match.groups())
    match = _V2_RE.fullmatch(text)
    if match:
        return SignatureMatch(SignatureFormat.V2, text, match.groups())
    return SignatureMatch(SignatureFormat.UNRECOGNIZED, text)


def _decode_v1(match: SignatureMatch) -> FirmwareMetadata:
    module, flags, version = match.groups
    if flags[2] == "t":
        telemetry = TelemetryType.OPENTX
    elif flags[2] == "s":
        telemetry = TelemetryType.ERSKYTX
    else:
        telemetry = TelemetryType.UNDEFINED

    return FirmwareMetadata(
        signature=match.text,
        signature_format=SignatureFormat.V1,
        module_type=_V1_MODULE_TYPES.get(module, ModuleType.UNKNOWN),
        # v1 predates channel order metadata
        channel_order=CHANNEL_ORDER_UNKNOWN,
        bootloader_support=flags[0] == "b",
        check_for_bootloader=flags[1] == "c",
        multi_telemetry_type=telemetry,
        invert_telemetry=flags[3] == "i",
        debug_serial=flags[4] == "d",
        version=parse_version(version),
    )


def decode_flag_word(flags: int) -> Dict[str, Any]:
    """Split a v2 flag word into its fields."""
    telemetry = flags & MULTI_TELEMETRY_TYPE_MASK
    return {
        "module_type": _V2_MODULE_TYPES.get(flags & MODULE_TYPE_MASK, ModuleType.UNKNOWN),
        "channel_order": channel_order_from_index(
            (flags & CHANNEL_ORDER_MASK) >> CHANNEL_ORDER_SHIFT
        ),
        "bootloader_support": bool(flags & BOOTLOADER_SUPPORT_MASK),
        "check_for_bootloader": bool(flags & CHECK_FOR_BOOTLOADER_MASK),
        "invert_telemetry": bool(flags & INVERT_TELEMETRY_MASK),
        "multi_telemetry_type": _V2_TELEMETRY_TYPES.get(telemetry, TelemetryType.UNDEFINED),
        "debug_serial": bool(flags & SERIAL_DEBUG_MASK),
    }


def _decode_v2(match: SignatureMatch) -> FirmwareMetadata:
    flag_hex, version = match.groups
    if not _FLAG_WORD_RE.fullmatch(flag_hex):
        raise SignatureParseFailed(
            "Unable to read the details from the firmware file - "
            "the signature could not be parsed."
        )
    flags = int(flag_hex, 16)
    return FirmwareMetadata(
        signature=match.text,
        signature_format=SignatureFormat.V2,
        version=parse_version(version),
        **decode_flag_word(flags),
    )


def decode_signature(text: str) -> FirmwareMetadata:
    """
    Decode a signature string.

    Raises:
        NoSignatureFound: Neither grammar matches.
        SignatureParseFailed: v2 matched but the flag word is not valid hex.
    """
    match = classify_signature(text)
    if match.format is SignatureFormat.V1:
        return _decode_v1(match)
    if match.format is SignatureFormat.V2:
        return _decode_v2(match)
    raise NoSignatureFound("No firmware signature found.")


def encode_flag_word(
    module_type: ModuleType = ModuleType.STM32,
    channel_order: str = "AETR",
    bootloader_support: bool = False,
    check_for_bootloader: bool = False,
    invert_telemetry: bool = False,
    multi_telemetry_type: TelemetryType = TelemetryType.UNDEFINED,
    debug_serial: bool = False,
) -> int:
    """Build a v2 flag word the way the firmware build does."""
    module_values = {v: k for k, v in _V2_MODULE_TYPES.items()}
    telemetry_values = {v: k for k, v in _V2_TELEMETRY_TYPES.items()}

    flags = module_values.get(module_type, 2)
    flags |= channel_order_to_index(channel_order) << CHANNEL_ORDER_SHIFT
    if bootloader_support:
        flags |= BOOTLOADER_SUPPORT_MASK
    if check_for_bootloader:
        flags |= CHECK_FOR_BOOTLOADER_MASK
    if invert_telemetry:
        flags |= INVERT_TELEMETRY_MASK
    flags |= telemetry_values.get(multi_telemetry_type, 0)
    if debug_serial:
        flags |= SERIAL_DEBUG_MASK
    return flags


def format_v2_signature(flags: int, version: str) -> str:
    """Render a v2 signature string."""
    if not 0 <= flags <= 0xFFFFFFFF:
        raise ValueError(f"Flag word must fit in 32 bits, got 0x{flags:X}")
    return f"multi-x{flags:08x}-{format_version(version)}"


def encode_signature(metadata: FirmwareMetadata) -> str:
    """Render metadata as a v2 signature string."""
    flags = encode_flag_word(
        module_type=metadata.module_type,
        channel_order=metadata.channel_order,
        bootloader_support=metadata.bootloader_support,
        check_for_bootloader=metadata.check_for_bootloader,
        invert_telemetry=metadata.invert_telemetry,
        multi_telemetry_type=metadata.multi_telemetry_type,
        debug_serial=metadata.debug_serial,
    )
    return format_v2_signature(flags, metadata.version)


def _last_line(data: bytes) -> bytes:
    lines = data.splitlines()
    return lines[-1] if lines else b""


def find_signature_text(
    path: Union[str, Path],
    *,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> str:
    """
    Locate the candidate signature text in a firmware file.

    Reads only the last 24 bytes first; the file is scanned only when the
    last line there is not a signature. The scan stops at the firmware
    size ceiling.
    """
    length = layout.signature_tail_size
    candidate = _last_line(read_tail(path, length))

    if not candidate.startswith(SIGNATURE_PREFIX):
        data = read_all(path, limit=layout.max_input_size)
        offset = find_pattern(data, SIGNATURE_PREFIX)
        if offset >= 0:
            candidate = data[offset:offset + length]

    text = candidate.decode("ascii", errors="replace")
    logger.debug("Firmware signature candidate: %r", text)
    return text


def read_firmware_signature(
    path: Union[str, Path],
    *,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> FirmwareMetadata:
    """Read and decode the signature of a firmware file (raises on failure)."""
    return decode_signature(find_signature_text(path, layout=layout))


def get_firmware_signature(
    path: Union[str, Path],
    *,
    layout: FlashLayout = DEFAULT_LAYOUT,
) -> Optional[FirmwareMetadata]:
    """
    Read the signature of a firmware file if it is present.

    Returns None when no signature is found. SignatureParseFailed still
    propagates so callers can report it.
    """
    try:
        return read_firmware_signature(path, layout=layout)
    except NoSignatureFound:
        logger.debug("No firmware signature in %s", path)
        return None
