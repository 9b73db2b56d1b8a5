import pytest


from multi_firmware_tools.firmware_tools import (
    BOOTLOADER_HEADER,
    USB_SUPPORT_MARKER,
    BackupNotFound,
    BackupSizeInvalid,
    FirmwareToolError,
    FlashLayout,
    InputTooLarge,
    SizeExceeded,
    check_firmware_file_size,
    check_for_usb_support,
    compute_backup_layout,
    extract_backup,
    firmware_contains_bootloader,
    has_usb_support,
)

KIB = 1024


def _no_eeprom(data: bytes) -> int:
    return -1


def _has_eeprom(data: bytes) -> int:
    return 0


def _write(tmp_path, name: str, data: bytes):
    path = tmp_path / name
    path.write_bytes(data)
    return path


def _pattern(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


def _backup(size: int, bootloader: bool) -> bytes:
    data = bytearray(_pattern(size))
    if bootloader:
        data[:32] = BOOTLOADER_HEADER
    else:
        data[:32] = b"\xFF" * 32
    return bytes(data)


def test_bootloader_header_is_32_bytes():
    assert len(BOOTLOADER_HEADER) == 32
    assert BOOTLOADER_HEADER.startswith(b"\x00P\x00 ")


class TestUsbSupport:
    def test_marker_found(self):
        assert has_usb_support(b"\x00" * 100 + USB_SUPPORT_MARKER + b"\x00" * 10)

    def test_marker_absent(self):
        assert not has_usb_support(b"M\x00a\x00p\x00l\x00e\x00" * 50)

    def test_marker_at_offset_zero_is_not_found(self):
        assert not has_usb_support(USB_SUPPORT_MARKER + b"\x00" * 100)

    def test_from_file(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\xFF" * 4096 + USB_SUPPORT_MARKER)
        assert check_for_usb_support(fw)


class TestFirmwareSize:
    def test_exact_standard_capacity_accepted(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\xFF" * 129024)
        assert check_firmware_file_size(fw) == 129024

    def test_one_byte_over_rejected(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\xFF" * 129025)
        with pytest.raises(SizeExceeded) as ei:
            check_firmware_file_size(fw, eeprom_probe=_no_eeprom)
        assert ei.value.actual == 129025
        assert ei.value.maximum == 129024
        assert "Selected file is 126 KB, maximum size is 126 KB." in str(ei.value)

    def test_hard_ceiling_checked_before_scanning(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\x00" * 256001)

        def probe(data):
            pytest.fail("EEPROM probe should not run for oversized input")

        with pytest.raises(InputTooLarge) as ei:
            check_firmware_file_size(fw, eeprom_probe=probe)
        assert str(ei.value) == "Selected firmware file is too large."

    def test_hard_ceiling_itself_is_allowed_through_gate(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\xFF" * 256000)
        with pytest.raises(SizeExceeded):
            check_firmware_file_size(fw, eeprom_probe=_no_eeprom)

    def test_usb_capacity(self, tmp_path):
        body = b"\xFF" * (120832 - len(USB_SUPPORT_MARKER) - 16)
        data = b"\x00" * 16 + USB_SUPPORT_MARKER + body
        assert len(data) == 120832
        fw = _write(tmp_path, "fw.bin", data)
        assert check_firmware_file_size(fw, eeprom_probe=_no_eeprom) == 120832

        fw_over = _write(tmp_path, "fw_over.bin", data + b"\xFF")
        with pytest.raises(SizeExceeded) as ei:
            check_firmware_file_size(fw_over, eeprom_probe=_no_eeprom)
        assert ei.value.maximum == 120832

    def test_eeprom_adds_reserve(self, tmp_path):
        fw = _write(tmp_path, "fw.bin", b"\xFF" * (129024 + 2048))
        assert check_firmware_file_size(fw, eeprom_probe=_has_eeprom) == 131072

    def test_default_probe_detects_valid_page(self, tmp_path):
        data = bytearray(b"\xFF" * (129024 + 2048))
        data[-2048:-2046] = b"\x00\x00"
        fw = _write(tmp_path, "fw.bin", bytes(data))
        assert check_firmware_file_size(fw) == 131072

    def test_custom_layout(self, tmp_path):
        layout = FlashLayout(standard_capacity=1024)
        fw = _write(tmp_path, "fw.bin", b"\xFF" * 1025)
        with pytest.raises(SizeExceeded):
            check_firmware_file_size(fw, eeprom_probe=_no_eeprom, layout=layout)


class TestBootloaderDetection:
    def test_match(self, tmp_path):
        path = _write(tmp_path, "b.bin", BOOTLOADER_HEADER + b"\x00" * 100)
        assert firmware_contains_bootloader(path)

    def test_single_byte_difference(self, tmp_path):
        header = bytearray(BOOTLOADER_HEADER)
        header[31] = 0x01
        path = _write(tmp_path, "b.bin", bytes(header) + b"\x00" * 100)
        assert not firmware_contains_bootloader(path)

    def test_short_file_is_false(self, tmp_path):
        path = _write(tmp_path, "b.bin", BOOTLOADER_HEADER[:31])
        assert not firmware_contains_bootloader(path)

    def test_high_bytes_compared_exactly(self, tmp_path):
        header = bytearray(BOOTLOADER_HEADER)
        header[4] = 0xBF
        path = _write(tmp_path, "b.bin", bytes(header))
        assert not firmware_contains_bootloader(path)


class TestBackupLayout:
    def test_128k_with_bootloader_without_eeprom(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(128 * KIB, bootloader=True))
        layout = compute_backup_layout(path, include_eeprom=False)
        assert layout.bootloader_present is True
        assert layout.start_offset == 8192
        assert layout.end_offset == 131072 - 2048
        assert layout.length == 120832

    def test_128k_with_bootloader_with_eeprom(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(128 * KIB, bootloader=True))
        layout = compute_backup_layout(path, include_eeprom=True)
        assert (layout.start_offset, layout.end_offset) == (8192, 131072)

    def test_128k_without_bootloader(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(128 * KIB, bootloader=False))
        layout = compute_backup_layout(path, include_eeprom=False)
        assert layout.bootloader_present is False
        assert (layout.start_offset, layout.end_offset) == (0, 129024)

    def test_120k_never_skips_bootloader(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(120 * KIB, bootloader=True))
        layout = compute_backup_layout(path, include_eeprom=True)
        assert layout.bootloader_present is False
        assert (layout.start_offset, layout.end_offset) == (0, 122880)

    @pytest.mark.parametrize("size", [0, 120 * KIB - 1, 124 * KIB, 128 * KIB + 1])
    def test_invalid_size(self, tmp_path, size):
        path = _write(tmp_path, "backup.bin", b"\x00" * size)
        with pytest.raises(BackupSizeInvalid) as ei:
            compute_backup_layout(path, include_eeprom=True)
        assert ei.value.actual == size

    def test_missing(self, tmp_path):
        with pytest.raises(BackupNotFound):
            compute_backup_layout(tmp_path / "missing.bin", include_eeprom=True)

    def test_impossible_range_rejected(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(128 * KIB, bootloader=True))
        with pytest.raises(FirmwareToolError, match="Invalid backup range"):
            compute_backup_layout(
                path, include_eeprom=False, layout=FlashLayout(bootloader_size=130 * KIB)
            )

    def test_region_string(self, tmp_path):
        path = _write(tmp_path, "backup.bin", _backup(128 * KIB, bootloader=True))
        assert compute_backup_layout(path, include_eeprom=False).region == "0x02000-0x1F800"


class TestExtractBackup:
    def test_extracts_exact_range(self, tmp_path):
        data = _backup(128 * KIB, bootloader=True)
        path = _write(tmp_path, "backup.bin", data)
        out = tmp_path / "firmware.bin"

        layout = extract_backup(path, out, include_eeprom=False)

        extracted = out.read_bytes()
        assert len(extracted) == 120832
        assert extracted == data[8192:129024]
        assert layout.length == len(extracted)

    def test_extracts_with_eeprom(self, tmp_path):
        data = _backup(120 * KIB, bootloader=False)
        path = _write(tmp_path, "backup.bin", data)
        out = tmp_path / "firmware.bin"

        extract_backup(path, out, include_eeprom=True)
        assert out.read_bytes() == data

    def test_invalid_backup_writes_nothing(self, tmp_path):
        path = _write(tmp_path, "backup.bin", b"\x00" * 1000)
        out = tmp_path / "firmware.bin"
        with pytest.raises(BackupSizeInvalid):
            extract_backup(path, out, include_eeprom=True)
        assert not out.exists()
