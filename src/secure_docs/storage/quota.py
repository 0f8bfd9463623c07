from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..db.repository import MetadataRepository
from ..exceptions import QuotaExceededError
from ..settings import MIB
from .types import QuotaStatus, utcnow

AVERAGE_UPLOAD_BYTES = 2 * MIB

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_file_size(size: int | float) -> str:
    """Human readable size, base 1024, one decimal: ``1536 -> '1.5 KB'``."""
    if size <= 0:
        return "0 B"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 1):g} {_SIZE_UNITS[unit]}"


@dataclass(frozen=True)
class UsageReport:
    total_files: int
    total_bytes: int
    average_bytes: float
    largest_bytes: int
    smallest_bytes: int
    capacity_bytes: int
    remaining_bytes: int
    usage_ratio: float
    is_warning: bool
    is_critical: bool
    is_full: bool
    estimated_remaining_uploads: int

    @property
    def usage_percentage(self) -> int:
        return round(self.usage_ratio * 100)

    def formatted(self) -> dict[str, str]:
        return {
            "total_size": format_file_size(self.total_bytes),
            "remaining_space": format_file_size(self.remaining_bytes),
            "capacity": format_file_size(self.capacity_bytes),
            "average_file_size": format_file_size(self.average_bytes),
        }


class QuotaLedger:
    """Aggregate usage of non-expired documents against a fixed capacity.

    Usage is always read from the metadata table, so it survives restarts and
    is shared by every instance. The check itself is not atomic; see
    ``QuotaGuard`` for serializing concurrent uploads.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        *,
        capacity_bytes: int,
        warning_threshold: float = 0.8,
        critical_threshold: float = 0.95,
        clock: Callable[[], datetime] = utcnow,
    ):
        if capacity_bytes <= 0:
            raise ValueError("capacity_bytes must be positive")
        self.repository = repository
        self.capacity_bytes = capacity_bytes
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self._clock = clock

    async def current_usage_bytes(self) -> int:
        return await self.repository.active_usage_bytes(self._clock())

    async def would_exceed(self, additional_bytes: int) -> bool:
        return await self.current_usage_bytes() + additional_bytes > self.capacity_bytes

    async def usage_ratio(self) -> float:
        return await self.current_usage_bytes() / self.capacity_bytes

    def status_for(self, usage_bytes: int) -> QuotaStatus:
        ratio = usage_bytes / self.capacity_bytes
        return QuotaStatus(
            usage_bytes=usage_bytes,
            capacity_bytes=self.capacity_bytes,
            ratio=ratio,
            is_warning=ratio >= self.warning_threshold,
            is_critical=ratio >= self.critical_threshold,
            is_full=ratio >= 1.0,
        )

    async def status(self) -> QuotaStatus:
        return self.status_for(await self.current_usage_bytes())

    async def check(self, additional_bytes: int) -> QuotaStatus:
        """Status as it would be after adding ``additional_bytes``.

        Raises:
            QuotaExceededError: If usage plus the new bytes exceeds capacity.
        """
        usage = await self.current_usage_bytes()
        if usage + additional_bytes > self.capacity_bytes:
            raise QuotaExceededError(usage, additional_bytes, self.capacity_bytes)
        return self.status_for(usage + additional_bytes)

    async def report(self, *, average_upload_bytes: int = AVERAGE_UPLOAD_BYTES) -> UsageReport:
        stats = await self.repository.usage_stats(self._clock())
        status = self.status_for(stats.total_bytes)
        return UsageReport(
            total_files=stats.total_files,
            total_bytes=stats.total_bytes,
            average_bytes=stats.average_bytes,
            largest_bytes=stats.largest_bytes,
            smallest_bytes=stats.smallest_bytes,
            capacity_bytes=self.capacity_bytes,
            remaining_bytes=status.remaining_bytes,
            usage_ratio=status.ratio,
            is_warning=status.is_warning,
            is_critical=status.is_critical,
            is_full=status.is_full,
            estimated_remaining_uploads=status.remaining_bytes // max(1, average_upload_bytes),
        )


__all__ = ["QuotaLedger", "UsageReport", "format_file_size", "AVERAGE_UPLOAD_BYTES"]
