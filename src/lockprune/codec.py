# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Lockfile codec: raw text <-> LockfileDocument.

Parsing splits the file at every line that starts with the block marker
(`[[package]]` by default). Everything before the first marker is the header
and is never interpreted. Each block keeps its exact original text, so
serialization is plain concatenation and round-trips byte for byte.

Within a block:
- name / version / source come from the first line starting with `name = `,
  `version = ` or `source = `
- dependencies come from DependencyListScanner, an explicit two-state machine
  over the `dependencies = [` ... `]` delimiters

Flow: read_lockfile -> parse_lockfile -> (graph work) -> serialize_lockfile -> write_lockfile
"""

import logging
import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from lockprune.errors import LockfileIOError
from lockprune.models import (
    DEFAULT_BLOCK_MARKER,
    AnomalyType,
    DependencySpec,
    LockfileDocument,
    PackageRecord,
    ParseAnomaly,
)

logger = logging.getLogger(__name__)

NAME_KEY = "name"
VERSION_KEY = "version"
SOURCE_KEY = "source"

_QUOTED_TOKEN = re.compile(r'"([^"]*)"')


def first_quoted_token(line: str) -> Optional[str]:
    """Return the text between the first pair of double quotes, or None."""
    match = _QUOTED_TOKEN.search(line)
    return match.group(1) if match else None


class ListState:
    """States of the dependency list scanner."""

    OUTSIDE = "outside_list"
    INSIDE = "inside_list"


class DependencyListScanner:
    """State machine that extracts dependency tokens from a package block.

    OUTSIDE --`dependencies = [`--> INSIDE --`]`--> OUTSIDE

    While INSIDE, every line holding a quoted token contributes its first
    quoted token; anything after the token (a version or source suffix inside
    the quotes is split off later, trailing text outside the quotes is ignored).
    One-line lists such as `dependencies = []` or `dependencies = ["a", "b"]`
    are handled without entering INSIDE.

    Usage:
        scanner = DependencyListScanner()
        for line in block.splitlines():
            scanner.feed(line)
        tokens = scanner.tokens
        closed = scanner.is_closed
    """

    LIST_OPEN = "dependencies = ["
    LIST_CLOSE = ("]", "],")

    def __init__(self) -> None:
        self.state = ListState.OUTSIDE
        self.tokens: List[str] = []
        self._opened = False

    @property
    def is_closed(self) -> bool:
        """False if a list was opened and never closed."""
        return self.state == ListState.OUTSIDE

    @property
    def saw_list(self) -> bool:
        return self._opened

    def feed(self, line: str) -> None:
        """Advance the machine by one line."""
        stripped = line.strip()

        if self.state == ListState.OUTSIDE:
            if stripped == self.LIST_OPEN:
                self.state = ListState.INSIDE
                self._opened = True
            elif stripped.startswith(self.LIST_OPEN) and stripped.endswith("]"):
                self._opened = True
                inline = stripped[len(self.LIST_OPEN) : -1]
                self.tokens.extend(_QUOTED_TOKEN.findall(inline))
            return

        if stripped in self.LIST_CLOSE:
            self.state = ListState.OUTSIDE
            return

        token = first_quoted_token(stripped)
        if token is not None:
            self.tokens.append(token)


def split_blocks(text: str, marker: str = DEFAULT_BLOCK_MARKER) -> Tuple[str, List[str]]:
    """Split lockfile text into (header, blocks).

    Each block starts at a line beginning with marker and runs to the next
    such line or the end of the text. header + "".join(blocks) == text.
    """
    pattern = re.compile(r"^" + re.escape(marker), re.MULTILINE)
    starts = [match.start() for match in pattern.finditer(text)]
    if not starts:
        return text, []

    ends = starts[1:] + [len(text)]
    blocks = [text[start:end] for start, end in zip(starts, ends)]
    return text[: starts[0]], blocks


def _key_value(lines: List[str], key: str) -> Optional[str]:
    """Value of the first `key = "..."` line, or None if there is none."""
    prefix = f"{key} = "
    for line in lines:
        if line.startswith(prefix):
            return first_quoted_token(line)
    return None


def parse_block(block: str, index: int) -> Tuple[PackageRecord, List[ParseAnomaly]]:
    """Parse one package block into a record plus any anomalies found in it."""
    lines = block.splitlines()
    name = _key_value(lines, NAME_KEY)
    version = _key_value(lines, VERSION_KEY)
    source = _key_value(lines, SOURCE_KEY)

    scanner = DependencyListScanner()
    for line in lines:
        scanner.feed(line)

    specs = tuple(DependencySpec.from_token(token) for token in scanner.tokens)
    record = PackageRecord(
        name=name or "",
        version=version or "",
        dependency_specs=tuple(spec for spec in specs if spec.name),
        raw_block=block,
        index=index,
        source=source or "",
    )

    anomalies: List[ParseAnomaly] = []
    if not name:
        anomalies.append(
            ParseAnomaly(
                anomaly_type=AnomalyType.MISSING_NAME,
                record_index=index,
                message=f"Package block #{index} has no name line",
            )
        )
    if not version:
        anomalies.append(
            ParseAnomaly(
                anomaly_type=AnomalyType.MISSING_VERSION,
                record_index=index,
                message=f"Package block #{index} ({name or '?'}) has no version line",
                name=name or None,
            )
        )
    if not scanner.is_closed:
        anomalies.append(
            ParseAnomaly(
                anomaly_type=AnomalyType.UNTERMINATED_DEPENDENCIES,
                record_index=index,
                message=(
                    f"Package block #{index} ({name or '?'}) opens a dependency list "
                    f"that is never closed"
                ),
                name=name or None,
            )
        )
    return record, anomalies


def parse_lockfile(text: str, marker: str = DEFAULT_BLOCK_MARKER) -> LockfileDocument:
    """Parse lockfile text into a LockfileDocument.

    Never raises for malformed blocks: problems are collected as ParseAnomaly
    entries and logged, and parsing continues with the next block.

    Args:
        text: Full lockfile contents.
        marker: Block-start marker.

    Returns:
        LockfileDocument with the verbatim header and one record per block.
    """
    header, blocks = split_blocks(text, marker)
    document = LockfileDocument(header=header)

    for index, block in enumerate(blocks):
        record, anomalies = parse_block(block, index)
        document.records.append(record)
        for anomaly in anomalies:
            logger.warning(
                anomaly.message,
                extra={"extra_fields": {"anomaly": anomaly.to_dict()}},
            )
        document.anomalies.extend(anomalies)

    logger.debug(
        f"Parsed {len(document.records)} package blocks "
        f"({len(document.anomalies)} anomalies)"
    )
    return document


def serialize_lockfile(header: str, records: Iterable[PackageRecord]) -> str:
    """Rebuild lockfile text from a header and records, in the order given.

    Blocks are never reformatted: each record contributes its raw_block as is.
    """
    return header + "".join(record.raw_block for record in records)


def read_lockfile(
    path: Union[str, Path], marker: str = DEFAULT_BLOCK_MARKER
) -> LockfileDocument:
    """Read and parse a lockfile from disk.

    The file is read with newline translation disabled so CRLF files
    round-trip unchanged.

    Raises:
        LockfileIOError: If the file cannot be read or is not valid UTF-8.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8", newline="") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise LockfileIOError(str(path), "read", str(e)) from e

    document = parse_lockfile(text, marker)
    document.source_path = str(path)
    logger.info(f"Loaded {len(document.records)} packages from {path}")
    return document


def _output_mode(path: Path) -> int:
    """Permission bits for the output: the existing file's, else 0666 minus umask."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_lockfile(path: Union[str, Path], text: str) -> None:
    """Write lockfile text atomically.

    Content goes to a temporary file next to the target which is then renamed
    over it, so a failed write never leaves a truncated output behind. The
    output keeps the permission bits of the file it replaces; a new file gets
    the usual 0666 minus umask.

    Raises:
        LockfileIOError: If the file cannot be written.
    """
    path = Path(path)
    tmp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            f.write(text)
        os.chmod(tmp_name, _output_mode(path))
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise LockfileIOError(str(path), "write", str(e)) from e

    logger.info(f"Wrote {path}")
