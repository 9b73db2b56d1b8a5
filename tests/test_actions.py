"""Tests for core workflow actions."""

import pytest

from multi_firmware_tools.core.actions import (
    check_bootloader,
    check_firmware_size,
    inspect_firmware,
    save_firmware_backup,
)
from multi_firmware_tools.core.messages import (
    MessageCode,
    MessageLevel,
    code_for_exception,
    result_to_messages,
)
from multi_firmware_tools.firmware_tools import BOOTLOADER_HEADER, SizeExceeded

KIB = 1024


def _never_called():
    pytest.fail("prompt should not be shown")


def _backup_file(tmp_path, size=128 * KIB, bootloader=True):
    data = bytearray(bytes(i % 253 for i in range(size)))
    data[:32] = BOOTLOADER_HEADER if bootloader else b"\x00" * 32
    path = tmp_path / "backup.bin"
    path.write_bytes(bytes(data))
    return path, bytes(data)


class TestInspectFirmware:
    def test_decoded(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 256 + b"multi-stm-bcsid-01020304")
        result = inspect_firmware(fw)
        assert result.ok
        assert result.metadata["signature"]["module_type"] == "STM32"
        assert result.metadata["signature"]["version"] == "1.2.3.4"
        assert result.bytes_len == 280

    def test_unknown_module_type_warns(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 256 + b"multi-x00000002-01020304")
        result = inspect_firmware(fw)
        assert result.ok
        assert result.warnings == ["Firmware reports an unknown module type."]

    def test_no_signature(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 256)
        result = inspect_firmware(fw)
        assert not result.ok
        assert result.code == MessageCode.W_NO_SIGNATURE.value
        assert "signature" not in result.metadata

    def test_parse_failed_is_reported_distinctly(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 256 + b"multi-xnothexxx-01020304")
        result = inspect_firmware(fw)
        assert not result.ok
        assert result.code == MessageCode.W_SIGNATURE_PARSE_FAILED.value
        assert "could not be parsed" in result.errors[0]

    def test_missing_file_is_io_error(self, tmp_path):
        result = inspect_firmware(tmp_path / "missing.bin")
        assert result.code == MessageCode.E_IO_ERROR.value


class TestCheckFirmwareSize:
    def test_fits(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 1000)
        result = check_firmware_size(fw)
        assert result.ok
        assert result.metadata == {"size": 1000, "max_size": 129024}

    def test_too_large_for_capacity(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 129025)
        result = check_firmware_size(fw, eeprom_probe=lambda data: -1)
        assert not result.ok
        assert result.code == MessageCode.E_SIZE_EXCEEDED.value
        assert result.metadata["max_size"] == 129024
        assert "maximum size is 126 KB" in result.errors[0]

    def test_input_too_large(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\x00" * 256001)
        result = check_firmware_size(fw)
        assert result.code == MessageCode.E_INPUT_TOO_LARGE.value
        assert result.errors[0] == "Selected firmware file is too large."


class TestCheckBootloader:
    def test_present(self, tmp_path):
        path, _ = _backup_file(tmp_path)
        result = check_bootloader(path)
        assert result.ok
        assert result.metadata["bootloader_present"] is True

    def test_missing_file(self, tmp_path):
        result = check_bootloader(tmp_path / "missing.bin")
        assert not result.ok
        assert result.code == MessageCode.E_IO_ERROR.value


class TestSaveFirmwareBackup:
    def test_saves_firmware_without_eeprom(self, tmp_path):
        path, data = _backup_file(tmp_path)
        out = tmp_path / "saved.bin"

        result = save_firmware_backup(path, lambda: False, lambda: str(out))

        assert result.ok
        assert result.bytes_len == 120832
        assert result.region == "0x02000-0x1F800"
        assert result.metadata["bootloader_present"] is True
        assert result.metadata["include_eeprom"] is False
        assert out.read_bytes() == data[8192:129024]
        assert result.metadata["message"] == f"Backup saved to '{out}'."

    def test_saves_with_eeprom(self, tmp_path):
        path, data = _backup_file(tmp_path, bootloader=False)
        out = tmp_path / "saved.bin"

        result = save_firmware_backup(path, lambda: True, lambda: out)

        assert result.ok
        assert out.read_bytes() == data

    def test_missing_backup_checked_before_prompting(self, tmp_path):
        result = save_firmware_backup(tmp_path / "missing.bin", _never_called, _never_called)
        assert not result.ok
        assert result.code == MessageCode.E_BACKUP_NOT_FOUND.value
        assert "Please read the MULTI-Module again" in result.errors[0]

    def test_cancel_eeprom_prompt(self, tmp_path):
        path, _ = _backup_file(tmp_path)
        result = save_firmware_backup(path, lambda: None, _never_called)
        assert result.cancelled
        assert not result.ok
        assert result.errors == []
        assert result.code == MessageCode.I_USER_CANCELLED.value

    def test_cancel_destination(self, tmp_path):
        path, _ = _backup_file(tmp_path)
        result = save_firmware_backup(path, lambda: True, lambda: None)
        assert result.cancelled
        assert list(tmp_path.iterdir()) == [path]

    def test_invalid_size_checked_before_destination(self, tmp_path):
        path = tmp_path / "backup.bin"
        path.write_bytes(b"\x00" * 100)
        result = save_firmware_backup(path, lambda: True, _never_called)
        assert result.code == MessageCode.E_BACKUP_SIZE_INVALID.value
        assert result.errors[0].startswith("Incorrect backup file size")

    def test_unwritable_destination_is_io_error(self, tmp_path):
        path, _ = _backup_file(tmp_path)
        out = tmp_path / "no_such_dir" / "saved.bin"
        result = save_firmware_backup(path, lambda: True, lambda: out)
        assert result.code == MessageCode.E_IO_ERROR.value


class TestMessages:
    def test_code_for_exception(self):
        assert code_for_exception(SizeExceeded(10, 5)) is MessageCode.E_SIZE_EXCEEDED
        assert code_for_exception(PermissionError("denied")) is MessageCode.E_IO_ERROR
        assert code_for_exception(RuntimeError("x")) is MessageCode.E_UNKNOWN

    def test_signature_problems_are_warnings(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\xFF" * 64)
        items = result_to_messages(inspect_firmware(fw))
        assert len(items) == 1
        assert items[0].level is MessageLevel.WARN
        assert items[0].code is MessageCode.W_NO_SIGNATURE
        assert items[0].remediation

    def test_size_problems_are_errors(self, tmp_path):
        fw = tmp_path / "fw.bin"
        fw.write_bytes(b"\x00" * 256001)
        items = result_to_messages(check_firmware_size(fw))
        assert items[0].level is MessageLevel.ERROR
        assert items[0].to_dict()["code"] == "E_INPUT_TOO_LARGE"
