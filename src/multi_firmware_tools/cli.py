"""
Multi Firmware Tools CLI

Command-line interface for inspecting MULTI-Module firmware files and saving
firmware backups.
"""

import sys
import logging
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler

from multi_firmware_tools.firmware_tools import check_for_usb_support
from multi_firmware_tools.scanner import hexdump_lines, read_window

# Import from core module for unified logic
from multi_firmware_tools.core.parsing import (
    parse_offset as _parse_offset_core,
    parse_yes_no_cancel as _parse_yes_no_cancel_core,
)
from multi_firmware_tools.core.results import OperationResult
from multi_firmware_tools.core.actions import (
    inspect_firmware as core_inspect_firmware,
    check_firmware_size as core_check_firmware_size,
    check_bootloader as core_check_bootloader,
    save_firmware_backup as core_save_firmware_backup,
)
from multi_firmware_tools.core.messages import (
    MessageItem,
    MessageLevel,
    result_to_messages,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logger = logging.getLogger("multi_firmware_tools")

# Setup Rich console
console = Console()

app = typer.Typer(help="🔧 MULTI-Module firmware inspection and backup tool")


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Global options."""
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_structured_message(item: MessageItem, verbose: bool = False) -> None:
    """Print a structured message with optional remediation."""
    if item.level == MessageLevel.ERROR:
        style = "red"
        icon = "❌"
    elif item.level == MessageLevel.WARN:
        style = "yellow"
        icon = "⚠️"
    else:
        style = "blue"
        icon = "ℹ️"

    console.print(f"{icon} [{item.code.value}] {item.title}", style=style)
    if verbose and item.detail:
        console.print(f"   {item.detail}", style="dim")
    if verbose and item.remediation:
        console.print(f"   → {item.remediation}", style="cyan")


def print_messages_from_result(result: OperationResult, verbose: bool = True) -> None:
    """Print all warnings and errors from an OperationResult."""
    for item in result_to_messages(result):
        print_structured_message(item, verbose=verbose)


def finish(result: OperationResult, output_json: bool = False) -> None:
    """Emit JSON if requested and exit non-zero on failure."""
    logger.debug(result.to_summary())
    if output_json:
        console.print_json(json.dumps(result.to_dict()))
    elif not result.ok and not result.cancelled:
        print_messages_from_result(result)
    if not result.ok and not result.cancelled:
        sys.exit(1)


def parse_offset(value: Optional[str]) -> Optional[int]:
    """
    Parse offset value from string, supporting multiple formats.

    CLI wrapper around core.parsing.parse_offset that converts
    ValueError to typer.BadParameter for proper CLI error handling.
    """
    try:
        return _parse_offset_core(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def parse_yes_no_cancel(value: str) -> Optional[bool]:
    """CLI wrapper around core.parsing.parse_yes_no_cancel."""
    try:
        return _parse_yes_no_cancel_core(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


@app.command()
def info(
    firmware: str = typer.Argument(..., help="Path to firmware .bin file"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """Show the build details embedded in a firmware file."""
    result = core_inspect_firmware(firmware)

    if result.ok and not output_json:
        sig = result.metadata["signature"]
        print_header("Firmware Signature")

        table = Table(title=Path(firmware).name)
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Signature", sig["signature"])
        table.add_row("Format", sig["format"])
        table.add_row("Module Type", sig["module_type"])
        table.add_row("Version", sig["version"])
        table.add_row("Channel Order", sig["channel_order"])
        table.add_row("Bootloader Support", _yes_no(sig["bootloader_support"]))
        table.add_row("Check for Bootloader", _yes_no(sig["check_for_bootloader"]))
        table.add_row("Telemetry Type", sig["multi_telemetry_type"])
        table.add_row("Invert Telemetry", _yes_no(sig["invert_telemetry"]))
        table.add_row("Debug Serial", _yes_no(sig["debug_serial"]))

        console.print(table)
        for warning in result.warnings:
            print_warning(warning)

    finish(result, output_json)


@app.command("check-size")
def check_size(
    firmware: str = typer.Argument(..., help="Path to firmware .bin file"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """Check that a firmware file will fit on the module."""
    result = core_check_firmware_size(firmware)

    if result.ok and not output_json:
        size = result.metadata["size"]
        max_size = result.metadata["max_size"]
        print_success(f"Firmware fits: {size:,} of {max_size:,} bytes")

    finish(result, output_json)


@app.command("usb-support")
def usb_support(
    firmware: str = typer.Argument(..., help="Path to firmware .bin file"),
) -> None:
    """Check whether a firmware was built with USB / Flash from TX support."""
    if not Path(firmware).exists():
        print_error(f"File not found: {firmware}")
        sys.exit(1)

    if check_for_usb_support(firmware):
        print_success("Firmware includes USB support")
    else:
        print_warning("Firmware does not include USB support")


@app.command("has-bootloader")
def has_bootloader(
    file: str = typer.Argument(..., help="Path to firmware or backup file"),
) -> None:
    """Check whether a file starts with the MULTI-Module bootloader."""
    result = core_check_bootloader(file)
    if result.ok:
        if result.metadata["bootloader_present"]:
            print_success("File contains the bootloader")
        else:
            print_warning("File does not contain the bootloader")
    finish(result)


@app.command("save-backup")
def save_backup(
    backup: str = typer.Argument(..., help="Flash backup read from the module"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output .bin file"),
    include_eeprom: Optional[bool] = typer.Option(
        None,
        "--include-eeprom/--exclude-eeprom",
        help="Keep the EEPROM (settings) region. Prompts if omitted.",
    ),
) -> None:
    """
    Save the firmware from a module flash backup.

    Strips the bootloader if present and, unless requested, the EEPROM data.
    """
    print_header("Save Backup")

    def confirm_include_eeprom() -> Optional[bool]:
        if include_eeprom is not None:
            return include_eeprom
        while True:
            answer = typer.prompt("Include the EEPROM data in the backup? [yes/no/cancel]", default="no")
            try:
                return parse_yes_no_cancel(answer)
            except typer.BadParameter as e:
                print_error(str(e))

    def choose_destination() -> Optional[str]:
        if out:
            return out
        answer = typer.prompt("Choose a location to save the backup (blank to cancel)", default="")
        return answer.strip() or None

    result = core_save_firmware_backup(backup, confirm_include_eeprom, choose_destination)

    if result.cancelled:
        print_warning("Backup cancelled")
    elif result.ok:
        table = Table(title="Backup Results")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Source", result.path)
        table.add_row("Bootloader", "Stripped" if result.metadata["bootloader_present"] else "Not present")
        table.add_row("EEPROM", "Included" if result.metadata["include_eeprom"] else "Excluded")
        table.add_row("Region", result.region)
        table.add_row("Bytes", f"{result.bytes_len:,}")
        table.add_row("SHA256", result.metadata["sha256"])

        console.print(table)
        print_success(result.metadata["message"])

    finish(result)


@app.command()
def peek(
    file: str = typer.Argument(..., help="Path to any binary file"),
    offset: str = typer.Option("0", "--offset", "-o", help="Offset: decimal (8192), hex (0x2000), or suffix (2000h)"),
    length: int = typer.Option(64, "--length", "-n", min=1, help="Number of bytes to show"),
) -> None:
    """Hex dump a window of a file."""
    start = parse_offset(offset) or 0

    path = Path(file)
    if not path.exists():
        print_error(f"File not found: {file}")
        sys.exit(1)

    data = read_window(path, start, length)
    if not data:
        print_warning(f"No data at offset 0x{start:X} (file is {path.stat().st_size:,} bytes)")
        return
    console.print("\n".join(hexdump_lines(data, base=start)), markup=False, highlight=False)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
