"""
Reader for tab-delimited well treatment telemetry exports.

File layout:
- line 1: column names
- line 2: units
- line 3: separator
- remaining lines: one tab-separated record per line, first field a
  `MM:dd:yyyy:HH:mm:ss` timestamp

Every data line yields a LineOutcome (a reading or a skip reason); the
outcomes of a file are summarized in a ParseReport.
"""

import logging
import re
import sys
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import PROCESSING_CONFIG
from .records import Dataset, Reading


logger = logging.getLogger(__name__)

STAGE_PATTERN = re.compile(r"_STG (\d+)")

# Fields before the optional TmtB600_3050 column
_LEADING_CHANNELS = [
    "TrPress", "AnPress", "BhPress", "SlurRate",
    "CfldRate", "PropCon", "BhPropCon", "NetPress",
]

# Fields after it, up to J475Conc
_TRAILING_CHANNELS = [
    "TmtProp", "TmtCfld", "TmtSlur", "B525Conc", "B534Conc",
    "J604Conc", "U028Conc", "J627Conc", "PcmGuarConc", "J475Conc",
]


@dataclass(frozen=True)
class LineOutcome:
    """Result of parsing a single data line"""
    line_number: int
    reading: Optional[Reading] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reading is not None


@dataclass
class ParseReport:
    """Per-file parse statistics"""
    source: str
    total_lines: int = 0
    parsed_lines: int = 0
    blank_lines: int = 0
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def record(self, outcome: LineOutcome) -> None:
        self.total_lines += 1
        if outcome.ok:
            self.parsed_lines += 1
        else:
            self.skipped.append((outcome.line_number, outcome.reason or "unknown"))

    def summary(self) -> str:
        return (
            f"{self.source}: {self.parsed_lines} parsed, "
            f"{self.skipped_count} skipped, {self.blank_lines} blank"
        )


def _parse_float(value: str) -> Optional[float]:
    """Numeric field value, None when empty or not a number"""
    try:
        return float(value.strip())
    except ValueError:
        return None


def parse_line(line: str, line_number: int = 0) -> LineOutcome:
    """Parse one tab-separated data line"""
    parts = line.rstrip("\r\n").split("\t")

    if len(parts) < PROCESSING_CONFIG["min_fields"]:
        return LineOutcome(line_number, reason=f"expected at least "
                           f"{PROCESSING_CONFIG['min_fields']} fields, got {len(parts)}")

    try:
        time = datetime.strptime(parts[0].strip(), PROCESSING_CONFIG["timestamp_format"])
    except ValueError:
        return LineOutcome(line_number, reason=f"invalid timestamp {parts[0]!r}")

    values: Dict[str, Optional[float]] = {
        name: _parse_float(parts[1 + i]) for i, name in enumerate(_LEADING_CHANNELS)
    }

    offset = 0
    if len(parts) == PROCESSING_CONFIG["fields_with_tmt"]:
        values["TmtB600_3050"] = _parse_float(parts[9])
        offset = 1

    for i, name in enumerate(_TRAILING_CHANNELS):
        values[name] = _parse_float(parts[9 + offset + i])

    if len(parts) > 19 + offset:
        values["J218Conc"] = _parse_float(parts[19 + offset])

    return LineOutcome(line_number, reading=Reading(time=time, **values))


class WellDataReader:
    """
    Reads well telemetry exports into Datasets.

    Malformed lines are skipped and reported, never raised.
    """

    def __init__(self, header_lines: int = PROCESSING_CONFIG["header_lines"]):
        self.header_lines = header_lines

    def read_file(self, path: Union[str, Path]) -> Tuple[Dataset, ParseReport]:
        """Read one file; dataset name is the file stem"""
        path = Path(path)
        report = ParseReport(source=path.name)
        readings: List[Reading] = []

        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line_number, line in enumerate(f, start=1):
                if line_number <= self.header_lines:
                    continue
                if not line.strip():
                    report.blank_lines += 1
                    continue

                outcome = parse_line(line, line_number)
                report.record(outcome)
                if outcome.ok:
                    readings.append(outcome.reading)
                else:
                    logger.debug(f"{path.name}:{line_number}: {outcome.reason}")

        if report.skipped_count:
            logger.warning(report.summary())
        else:
            logger.debug(report.summary())

        return Dataset(name=path.stem, readings=tuple(readings)), report

    def read_directory(
        self,
        directory: Union[str, Path],
        pattern: str = PROCESSING_CONFIG["file_pattern"],
        max_workers: int = PROCESSING_CONFIG["max_workers"]
    ) -> Dict[str, Tuple[Dataset, ParseReport]]:
        """
        Read every matching file, ordered by stage number.

        Files that cannot be read are logged and left out.
        """
        files = order_by_stage(Path(directory).glob(pattern))
        logger.info(f"Reading {len(files)} files from {directory}")

        results: Dict[str, Tuple[Dataset, ParseReport]] = {}

        if max_workers > 1 and len(files) > 1:
            with ProcessPoolExecutor(max_workers=max_workers) as executor:
                future_to_file = {
                    executor.submit(_read_file_worker, path, self.header_lines): path
                    for path in files
                }
                for future in as_completed(future_to_file):
                    path = future_to_file[future]
                    try:
                        results[path.stem] = future.result()
                    except OSError as e:
                        logger.error(f"Failed to read {path}: {e}")
        else:
            for path in files:
                try:
                    results[path.stem] = self.read_file(path)
                except OSError as e:
                    logger.error(f"Failed to read {path}: {e}")

        # Stage order regardless of completion order
        return {path.stem: results[path.stem] for path in files if path.stem in results}


def _read_file_worker(path: Path, header_lines: int) -> Tuple[Dataset, ParseReport]:
    """Worker function for parallel file reading"""
    return WellDataReader(header_lines).read_file(path)


def stage_number(path: Union[str, Path]) -> int:
    """Stage number from a `..._STG <n>...` file name, sys.maxsize if absent"""
    match = STAGE_PATTERN.search(Path(path).stem)
    return int(match.group(1)) if match else sys.maxsize


def order_by_stage(paths) -> List[Path]:
    return sorted((Path(p) for p in paths), key=lambda p: (stage_number(p), p.name))


def read_well_file(path: Union[str, Path]) -> Tuple[Dataset, ParseReport]:
    return WellDataReader().read_file(path)


def read_directory(
    directory: Union[str, Path],
    pattern: str = PROCESSING_CONFIG["file_pattern"],
    max_workers: int = PROCESSING_CONFIG["max_workers"]
) -> Dict[str, Tuple[Dataset, ParseReport]]:
    return WellDataReader().read_directory(directory, pattern, max_workers)
