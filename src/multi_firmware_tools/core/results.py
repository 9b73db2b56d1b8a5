"""
Result objects for core operations.

Provides a unified result structure that the CLI (or any other front end)
can use to display operation outcomes consistently.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any


@dataclass
class OperationResult:
    """
    Unified result object for all core operations.

    The CLI prints a readable summary; other front ends can render the same data.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "check_size", "save_backup")
        path: File the operation worked on
        region: Byte range description (e.g., "0x02000-0x1F800")
        bytes_len: Number of bytes processed
        code: Stable code of the failure or cancellation, empty on success
        cancelled: The user cancelled a prompt (not an error)
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    path: str = ""
    region: str = ""
    bytes_len: int = 0
    code: str = ""
    cancelled: bool = False
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def to_summary(self) -> str:
        """
        Generate a human-readable summary string.

        Suitable for CLI output or simple logging.
        """
        if self.cancelled:
            status = "CANCELLED"
        else:
            status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.path:
            lines.append(f"  File: {self.path}")
        if self.region:
            lines.append(f"  Region: {self.region}")
        if self.bytes_len:
            lines.append(f"  Bytes: {self.bytes_len:,}")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "path": self.path,
            "region": self.region,
            "bytes_len": self.bytes_len,
            "code": self.code,
            "cancelled": self.cancelled,
            "warnings": self.warnings,
            "errors": self.errors,
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def success(
        cls,
        operation: str,
        path: str = "",
        region: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(
            ok=True,
            operation=operation,
            path=path,
            region=region,
            bytes_len=bytes_len,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        code: str = "",
        path: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(
            ok=False,
            operation=operation,
            code=code,
            path=path,
            **kwargs,
        )
        result.errors.append(error)
        return result

    @classmethod
    def user_cancelled(
        cls,
        operation: str,
        code: str = "",
        path: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a result for a silent, user-initiated abort."""
        return cls(
            ok=False,
            operation=operation,
            code=code,
            path=path,
            cancelled=True,
            **kwargs,
        )
