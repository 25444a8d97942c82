"""Tab-delimited bid/ask tick loader with per-row validation."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from core.market_metadata import normalize_instrument

from .models import Tick, iso_utc

logger = logging.getLogger(__name__)

TICK_FILE_PATTERNS: tuple[str, ...] = ("*.csv", "*.txt", "*.tsv")
_HEADER_MARKERS: tuple[str, ...] = ("Date", "<DATE>")
_DATE_COL, _TIME_COL, _BID_COL, _ASK_COL = 0, 1, 2, 3


def _parse_timestamp(date_raw: str, time_raw: str) -> datetime | None:
    date_part = date_raw.strip().replace(".", "-").replace("/", "-")
    time_part = time_raw.strip()
    if not date_part or not time_part:
        return None
    try:
        value = datetime.fromisoformat(f"{date_part}T{time_part}")
    except ValueError:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_price(raw: str) -> float | None:
    try:
        value = float(raw.strip().replace(",", "."))
    except ValueError:
        return None
    if value != value or value <= 0:
        return None
    return value


def parse_tick_row(columns: list[str]) -> Tick | None:
    """Parse one ``date, time, bid, ask`` row into a mid-price tick, or None when invalid."""
    cells = [cell for cell in columns if cell.strip()]
    if len(cells) < 4:
        return None

    bid = _parse_price(cells[_BID_COL])
    ask = _parse_price(cells[_ASK_COL])
    if bid is None or ask is None:
        return None

    timestamp = _parse_timestamp(cells[_DATE_COL], cells[_TIME_COL])
    if timestamp is None:
        return None
    return Tick(timestamp=timestamp, mid_price=(bid + ask) / 2.0)


def instrument_from_filename(path: str | Path) -> str:
    """Derive the canonical instrument from a tick export name (``XAUUSDm.csv`` -> ``XAU_USD``)."""
    return normalize_instrument(Path(path).stem)


@dataclass(frozen=True)
class TickLoad:
    """Result of reading one tick file."""

    path: Path
    instrument: str
    ticks: tuple[Tick, ...]
    rows_read: int
    rows_skipped: int
    capped: bool

    @property
    def first_time_utc(self) -> str | None:
        return iso_utc(self.ticks[0].timestamp) if self.ticks else None

    @property
    def last_time_utc(self) -> str | None:
        return iso_utc(self.ticks[-1].timestamp) if self.ticks else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": str(self.path),
            "instrument": self.instrument,
            "ticks": len(self.ticks),
            "rows_read": self.rows_read,
            "rows_skipped": self.rows_skipped,
            "capped": self.capped,
            "first_time_utc": self.first_time_utc,
            "last_time_utc": self.last_time_utc,
        }


class TickFeeder:
    """Discover and load tick files stored as ``date<TAB>time<TAB>bid<TAB>ask`` exports."""

    def __init__(self, data_dir: str | Path, max_ticks_per_file: int = 500_000):
        self.data_dir = Path(data_dir)
        self.max_ticks_per_file = max(1, int(max_ticks_per_file))

    def list_tick_files(self) -> list[Path]:
        """Return tick files found directly inside ``data_dir``."""
        if not self.data_dir.exists() or not self.data_dir.is_dir():
            return []
        found: set[Path] = set()
        for pattern in TICK_FILE_PATTERNS:
            found.update(path for path in self.data_dir.glob(pattern) if path.is_file())
        return sorted(found)

    def _read(self, path: Path) -> tuple[list[Tick], int, int, bool]:
        ticks: list[Tick] = []
        rows_read = 0
        rows_skipped = 0
        capped = False
        with path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
            for row in csv.reader(handle, delimiter="\t"):
                line = "\t".join(row)
                if not line.strip() or any(marker in line for marker in _HEADER_MARKERS):
                    continue
                rows_read += 1
                tick = parse_tick_row(row)
                if tick is None:
                    rows_skipped += 1
                    continue
                ticks.append(tick)
                if len(ticks) >= self.max_ticks_per_file:
                    capped = True
                    break
        return ticks, rows_read, rows_skipped, capped

    def load_file(self, path: str | Path, instrument: str | None = None) -> TickLoad:
        """Read one file and return its ticks sorted by timestamp."""
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Tick file not found: {file_path}")

        inst = normalize_instrument(instrument) if instrument else instrument_from_filename(file_path)
        ticks, rows_read, rows_skipped, capped = self._read(file_path)
        ticks.sort(key=lambda tick: tick.timestamp)

        if rows_skipped:
            logger.warning("Skipped %s malformed rows in %s", rows_skipped, file_path.name)
        if capped:
            logger.info("Tick cap of %s reached for %s", self.max_ticks_per_file, file_path.name)
        logger.debug("Loaded ticks %s rows=%s", file_path.name, len(ticks))

        return TickLoad(
            path=file_path,
            instrument=inst,
            ticks=tuple(ticks),
            rows_read=rows_read,
            rows_skipped=rows_skipped,
            capped=capped,
        )

    def _resolve_files(self, tick_files: list[str] | tuple[str, ...] | None) -> list[Path]:
        if not tick_files:
            return self.list_tick_files()
        resolved: list[Path] = []
        for item in tick_files:
            path = Path(item)
            resolved.append(path if path.is_absolute() else self.data_dir / path)
        return resolved

    def load_all(
        self,
        tick_files: list[str] | tuple[str, ...] | None = None,
        instruments: list[str] | tuple[str, ...] | None = None,
    ) -> dict[str, list[Tick]]:
        """
        Load every tick file and group the ticks per instrument.

        Missing, unreadable, empty or unrecognised files are logged and skipped.
        When ``instruments`` is given, other instruments are ignored.
        """
        allowed = {normalize_instrument(item) for item in (instruments or [])}
        grouped: dict[str, list[Tick]] = {}

        for path in self._resolve_files(tick_files):
            if not path.exists():
                logger.warning("Tick file not found, skipping: %s", path)
                continue
            try:
                instrument = instrument_from_filename(path)
            except ValueError:
                logger.warning("Cannot derive instrument from file name, skipping: %s", path.name)
                continue
            if allowed and instrument not in allowed:
                logger.debug("Ignoring %s (%s not selected)", path.name, instrument)
                continue

            try:
                load = self.load_file(path, instrument=instrument)
            except OSError as exc:
                logger.warning("Failed to read %s: %s", path, exc)
                continue

            if not load.ticks:
                logger.warning("Zero valid ticks loaded from %s", path.name)
                continue

            logger.info("Loaded %s valid ticks for %s from %s", len(load.ticks), instrument, path.name)
            grouped.setdefault(instrument, []).extend(load.ticks)

        for instrument, ticks in grouped.items():
            ticks.sort(key=lambda tick: tick.timestamp)
        return grouped

    def build_manifest(self, tick_files: list[str] | tuple[str, ...] | None = None) -> dict[str, Any]:
        """Build a coverage manifest for the selected tick files."""
        files: dict[str, dict[str, Any]] = {}
        ticks_total = 0
        valid_file_count = 0

        for path in self._resolve_files(tick_files):
            entry: dict[str, Any] = {
                "file_path": str(path),
                "exists": bool(path.exists()),
                "instrument": None,
                "ticks": 0,
                "rows_skipped": 0,
                "first_time_utc": None,
                "last_time_utc": None,
                "error": None,
            }
            if not path.exists():
                entry["error"] = "file_missing"
                files[path.name] = entry
                continue

            try:
                load = self.load_file(path)
                entry.update(load.to_dict())
                ticks_total += len(load.ticks)
                if load.ticks:
                    valid_file_count += 1
            except (OSError, ValueError) as exc:
                entry["error"] = f"{type(exc).__name__}: {exc}"
            files[path.name] = entry

        return {
            "data_dir": str(self.data_dir),
            "file_count": len(files),
            "valid_file_count": valid_file_count,
            "ticks_total": ticks_total,
            "max_ticks_per_file": self.max_ticks_per_file,
            "files": files,
        }
