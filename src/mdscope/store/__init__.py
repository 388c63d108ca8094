"""
Image storage: indexed frames, the metadata journal and dataset reconstruction.

See Also
--------
mdscope.store.store : IndexedImageStore
mdscope.store.journal : Incremental JSON journal writer/reader
mdscope.store.reconstruct : Recovering a dataset's structure from its journal
"""

from .filenames import get_filename, indexed_filename, linear_filename
from .journal import MetadataJournal, parse_journal_text, read_journal
from .reconstruct import ReconstructedDataset, reconstruct_from_journal, run_length
from .store import IndexedImageStore, LoadedIndices

__all__ = [
    "get_filename",
    "indexed_filename",
    "linear_filename",
    "MetadataJournal",
    "parse_journal_text",
    "read_journal",
    "ReconstructedDataset",
    "reconstruct_from_journal",
    "run_length",
    "IndexedImageStore",
    "LoadedIndices",
]
