"""Incremental JSON metadata journal.

The journal is a JSON array of metadata records written one record at a time,
so a partially completed run still leaves a readable file:

    first record:   [<record>
    later records:  ,<record>
    N-th record:    ,<record>]

A run that stops early leaves the array unterminated. `read_journal` repairs
this by appending the closing bracket, and cuts back a half-written trailing
record to the last complete one, before giving up.
"""

from __future__ import annotations

import os
from typing import Any, Mapping

import simplejson as json
from loguru import logger

from mdscope.types import JournalUnreadable
from mdscope.util.save import dumps


class MetadataJournal:
    """Single sequential writer of one run's journal file.

    Parameters
    ----------
    path : str
        Journal file. Truncated when the first record is written.
    n_records : int
        Number of records in a complete run; the array is closed after the
        last one.
    """

    def __init__(self, path: str, n_records: int):
        if n_records < 1:
            raise ValueError(f"A journal needs at least one record, got {n_records}")
        self.path = path
        self.n_records = n_records
        self.n_written = 0

    @property
    def closed(self) -> bool:
        return self.n_written >= self.n_records

    def append(self, record: Mapping[str, Any]) -> None:
        if self.closed:
            raise JournalUnreadable(
                f"Journal {self.path} already holds all {self.n_records} records"
            )
        text = dumps(dict(record))
        if self.n_written == 0:
            mode, text = "w", "[" + text
        else:
            mode, text = "a", "," + text
        self.n_written += 1
        if self.closed:
            text += "]"
        with open(self.path, mode) as f:
            f.write(text)


def parse_journal_text(text: str) -> tuple[list[dict], bool]:
    """Parse journal text, repairing truncation.

    Returns
    -------
    tuple[list[dict], bool]
        (records, repaired)

    Raises
    ------
    JournalUnreadable
        If the text cannot be parsed even after repair.
    """
    stripped = text.strip()
    if not stripped:
        return [], False
    try:
        return _as_records(json.loads(stripped)), False
    except json.JSONDecodeError:
        pass

    # unterminated array, possibly ending in a dangling separator
    candidate = stripped.rstrip().rstrip(",")
    if not candidate.endswith("]"):
        try:
            return _as_records(json.loads(candidate + "]")), True
        except json.JSONDecodeError:
            pass

    # half-written trailing record: cut back to the last complete one
    end = len(candidate)
    while (end := candidate.rfind("}", 0, end)) >= 0:
        try:
            return _as_records(json.loads(candidate[: end + 1] + "]")), True
        except json.JSONDecodeError:
            continue

    # only the first record was started
    if candidate.startswith("[") and candidate[1:].lstrip().startswith("{"):
        return [], True
    raise JournalUnreadable("Metadata journal could not be parsed, even after repair")


def _as_records(obj) -> list[dict]:
    if not isinstance(obj, list) or not all(isinstance(r, dict) for r in obj):
        raise JournalUnreadable("Metadata journal is not an array of records")
    return obj


def read_journal(path: str) -> list[dict]:
    """Read a journal file, repairing a truncated one (the file is not modified)."""
    if not os.path.exists(path):
        raise JournalUnreadable(f"No metadata journal at {path}")
    with open(path, "r") as f:
        text = f.read()
    records, repaired = parse_journal_text(text)
    if repaired:
        logger.warning(
            "Metadata journal {} was truncated, recovered {} records.",
            path,
            len(records),
        )
    return records
