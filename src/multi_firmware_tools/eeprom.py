"""
EEPROM region helpers for MULTI-Module STM32 images.

The firmware keeps its settings in the last 2 KiB of flash using the ST
EEPROM emulation scheme: two 1 KiB pages, each starting with a 16-bit
little-endian page status word.
"""

import logging
import struct
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

EEPROM_SIZE = 2048
EEPROM_PAGE_SIZE = 1024

# Page status words
ERASED = 0xFFFF
RECEIVE_DATA = 0xEEEE
VALID_PAGE = 0x0000

NO_VALID_PAGE = -1


def get_eeprom_data_from_backup(source: Union[bytes, str, Path]) -> bytes:
    """
    Return the EEPROM region (final 2048 bytes) of an image.

    Accepts raw bytes or a path. Returns b"" if the image is too short to
    hold an EEPROM region.
    """
    if isinstance(source, (str, Path)):
        with open(source, "rb") as f:
            data = f.read()
    else:
        data = source

    if len(data) < EEPROM_SIZE:
        return b""
    return bytes(data[-EEPROM_SIZE:])


def page_status(eeprom_data: bytes, page_offset: int) -> int:
    """Read the status word at the start of a page."""
    return struct.unpack_from("<H", eeprom_data, page_offset)[0]


def find_valid_page(eeprom_data: bytes) -> int:
    """
    Find the page holding the current EEPROM data.

    Returns the byte offset of the valid page within eeprom_data (0 or 1024),
    or NO_VALID_PAGE (-1) if there is none.
    """
    if len(eeprom_data) != EEPROM_SIZE:
        return NO_VALID_PAGE

    status0 = page_status(eeprom_data, 0)
    status1 = page_status(eeprom_data, EEPROM_PAGE_SIZE)
    logger.debug("EEPROM page status: page0=0x%04X page1=0x%04X", status0, status1)
    for offset, status in ((0, status0), (EEPROM_PAGE_SIZE, status1)):
        if status == RECEIVE_DATA:
            logger.debug("EEPROM page at 0x%03X is receiving a page transfer", offset)
        elif status not in (ERASED, VALID_PAGE):
            logger.warning("EEPROM page at 0x%03X has unknown status 0x%04X", offset, status)

    if status0 == VALID_PAGE:
        return 0
    if status1 == VALID_PAGE:
        return EEPROM_PAGE_SIZE
    return NO_VALID_PAGE
