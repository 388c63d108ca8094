"""Indexed image store.

Frames are addressed by their 1-based (slice, channel, position, time)
coordinate. The store keeps

- the metadata journal (one record per frame, see `store.journal`),
- optionally the pixels on disk, either one TIFF per frame (`perFrame`) or one
  raw little-endian uint16 file with frame `k` at byte offset
  `frame_size_bytes * (k - 1)` (`appendRaw`),
- optionally an in-memory 6-D uint16 buffer of shape
  (rows, cols, slices, channels, positions, times), possibly covering only a
  subset of each axis (`loaded_indices`).

A subset is given per axis as a sequence of 1-based indices; `None` or an empty
sequence selects the whole axis. Any index that is not an integer in range
raises `InvalidIndexSet`, on every axis.
"""

from __future__ import annotations

import itertools
import os
from typing import NamedTuple, Sequence

import numpy as np
import psutil
import tifffile
from loguru import logger
from tqdm import tqdm

from mdscope.types import (
    FILE_ORDER,
    FILE_TYPE,
    JOURNAL_SUFFIX,
    PERSIST,
    RAW_DTYPE,
    RAW_EXT,
    STATE_SUFFIX,
    TIFF_EXT,
    AcquisitionPlan,
    AxisSizes,
    ConfirmationRequired,
    CoordinateOutOfRange,
    DuplicateFrame,
    FrameCoordinate,
    FrameShapeMismatch,
    IllegalStateTransition,
    InvalidIndexSet,
    MetadataRecord,
    PresetMap,
)
from mdscope.util import DEFAULT_FILE_PREFIX, load_json, rescale_intensity, save_json
from mdscope.util.indexing import to_counter

from .filenames import get_filename
from .journal import MetadataJournal, read_journal
from .reconstruct import ReconstructedDataset, reconstruct_from_journal

STORE_STATE_VERSION = 1


def record_coordinate(rec: dict) -> FrameCoordinate | None:
    """Frame coordinate named by a journal record, None if it names none."""
    try:
        return FrameCoordinate(
            int(rec["slice_number"]),
            int(rec["channel_number"]),
            int(rec["position_number"]),
            int(rec["time_number"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


class LoadedIndices(NamedTuple):
    """1-based indices held along each axis of the in-memory buffer."""

    slices: tuple[int, ...]
    channels: tuple[int, ...]
    positions: tuple[int, ...]
    times: tuple[int, ...]

    @property
    def shape(self) -> tuple[int, int, int, int]:
        return (len(self.slices), len(self.channels), len(self.positions), len(self.times))


class IndexedImageStore:
    """Frames and metadata of one acquisition.

    Parameters
    ----------
    frame_shape : tuple[int, int]
        (rows, cols) of every frame.
    plan : AcquisitionPlan, optional
        Plan of the run. Can be set later with `set_plan`.
    presets : PresetMap, optional
        Channel presets (and background images) of the run.
    directory : str, optional
        Dataset directory. Without one, nothing is written to disk and the
        journal is kept in memory only.
    prefix : str
        File name prefix.
    file_order : str
        Frame file naming convention, see `FILE_ORDER`.
    """

    def __init__(
        self,
        frame_shape: tuple[int, int],
        plan: AcquisitionPlan | None = None,
        presets: PresetMap | None = None,
        *,
        directory: str | None = None,
        prefix: str = DEFAULT_FILE_PREFIX,
        file_order: str = FILE_ORDER.INDEXED,
    ):
        frame_shape = tuple(int(n) for n in frame_shape)
        if len(frame_shape) != 2 or min(frame_shape) < 1:
            raise FrameShapeMismatch(f"Invalid frame shape {frame_shape}")
        if file_order not in (FILE_ORDER.INDEXED, FILE_ORDER.LINEAR):
            raise ValueError(f"Invalid file order: {file_order}")
        self.frame_shape: tuple[int, int] = frame_shape
        self.presets = presets or PresetMap()
        self.directory = os.path.abspath(directory) if directory else None
        self.prefix = prefix
        self.file_order = file_order

        self.plan: AcquisitionPlan | None = None
        self.records: list[dict] = []
        self._written: set[FrameCoordinate] = set()
        self.images: np.ndarray | None = None
        self.loaded_indices: LoadedIndices | None = None
        self._journal: MetadataJournal | None = None
        if plan is not None:
            self.set_plan(plan)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(prefix={self.prefix}, "
            + f"frame_shape={self.frame_shape}, plan={self.plan}, "
            + f"n_written={self.n_written})"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def n_written(self) -> int:
        return len(self.records)

    @property
    def frame_size_bytes(self) -> int:
        return self.frame_shape[0] * self.frame_shape[1] * np.dtype(RAW_DTYPE).itemsize

    @property
    def sizes(self) -> AxisSizes:
        return self._require_plan().sizes

    @property
    def complete(self) -> bool:
        return self.plan is not None and self.n_written >= self.plan.n_frames

    @property
    def journal_path(self) -> str:
        return self._path(self.prefix + JOURNAL_SUFFIX)

    @property
    def state_path(self) -> str:
        return self._path(self.prefix + STATE_SUFFIX)

    @property
    def raw_path(self) -> str:
        return self._path(f"{self.prefix}.{RAW_EXT}")

    def _path(self, name: str) -> str:
        if self.directory is None:
            raise ValueError("Store has no directory")
        return os.path.join(self.directory, name)

    def _require_plan(self) -> AcquisitionPlan:
        if self.plan is None:
            raise ValueError("Store has no acquisition plan")
        return self.plan

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def set_plan(self, plan: AcquisitionPlan, presets: PresetMap | None = None) -> None:
        """Bind the store to a new run."""
        if self.records:
            raise IllegalStateTransition(
                f"Store already holds {self.n_written} frames of a previous run"
            )
        if tuple(plan.frame_shape) != self.frame_shape:
            raise FrameShapeMismatch(
                f"Plan frame shape {plan.frame_shape} != store frame shape "
                + f"{self.frame_shape}"
            )
        self.plan = plan
        if presets is not None:
            self.presets = presets
        self.images = None
        self.loaded_indices = None
        self._journal = None
        if self.directory is not None:
            os.makedirs(self.directory, exist_ok=True)
            self._journal = MetadataJournal(self.journal_path, plan.n_frames)
        logger.debug("Store bound to {}", plan)

    def ingest(
        self,
        coordinate: FrameCoordinate,
        pixels: np.ndarray,
        record: MetadataRecord | dict,
        persist: str = PERSIST.NONE,
        keep_in_memory: bool = True,
    ) -> str | None:
        """Record one acquired frame.

        Returns
        -------
        str | None
            Name of the file the pixels were written to, if any.

        Raises
        ------
        FrameShapeMismatch
            If `pixels` is not `frame_shape`.
        TypeError
            If `pixels` is not uint16.
        CoordinateOutOfRange
            If the run is complete or `coordinate` lies outside the plan.
        DuplicateFrame
            If the frame at `coordinate` is already stored.
        ConfirmationRequired
            If the in-memory buffer does not fit in the available memory.

        Nothing is written unless every check passes.
        """
        plan = self._require_plan()
        pixels = np.asarray(pixels)
        if pixels.shape != self.frame_shape:
            raise FrameShapeMismatch(
                f"Frame shape {pixels.shape} != store frame shape {self.frame_shape}"
            )
        if pixels.dtype != np.uint16:
            raise TypeError(f"Frames must be uint16, got {pixels.dtype}")
        if self.complete:
            raise CoordinateOutOfRange(
                f"Store already holds all {plan.n_frames} frames of the run"
            )
        coordinate = FrameCoordinate(*coordinate)
        counter = to_counter(plan.acquisition_order, plan.sizes, coordinate)
        if coordinate in self._written:
            raise DuplicateFrame(f"Frame {tuple(coordinate)} already stored")
        rec = record.to_dict() if isinstance(record, MetadataRecord) else dict(record)
        if record_coordinate(rec) != coordinate:
            raise ValueError(
                f"Record coordinate {record_coordinate(rec)} != frame coordinate "
                + f"{tuple(coordinate)}"
            )
        if persist not in (PERSIST.NONE, PERSIST.PER_FRAME, PERSIST.APPEND_RAW):
            raise ValueError(f"Invalid persist mode: {persist}")
        if persist != PERSIST.NONE and self.directory is None:
            raise ValueError(f"Persist mode '{persist}' needs a store directory")
        if keep_in_memory and self.images is None:
            self.allocate()

        filename = None
        match persist:
            case PERSIST.PER_FRAME:
                filename = self.get_filename(coordinate)
                tifffile.imwrite(self._path(filename), pixels)
            case PERSIST.APPEND_RAW:
                self._write_raw(counter, pixels)
                filename = os.path.basename(self.raw_path)

        if self._journal is not None:
            self._journal.append(rec)
        self.records.append(rec)
        self._written.add(coordinate)

        if keep_in_memory:
            self._put(coordinate, pixels)
        logger.trace("Stored frame {} at {}", counter, tuple(coordinate))
        return filename

    def _write_raw(self, counter: int, pixels: np.ndarray) -> None:
        mode = "r+b" if self.records and os.path.exists(self.raw_path) else "w+b"
        with open(self.raw_path, mode) as f:
            f.seek(self.frame_size_bytes * (counter - 1))
            f.write(pixels.astype(RAW_DTYPE).tobytes(order="C"))

    def _read_raw(self, counter: int) -> np.ndarray | None:
        offset = self.frame_size_bytes * (counter - 1)
        if not os.path.exists(self.raw_path):
            return None
        if os.path.getsize(self.raw_path) < offset + self.frame_size_bytes:
            return None
        data = np.fromfile(
            self.raw_path,
            dtype=RAW_DTYPE,
            count=self.frame_shape[0] * self.frame_shape[1],
            offset=offset,
        )
        return data.reshape(self.frame_shape).astype(np.uint16)

    def _put(self, coordinate: FrameCoordinate, pixels: np.ndarray) -> None:
        local = self._local_index(coordinate)
        if local is None:
            return
        self.images[(slice(None), slice(None), *local)] = pixels

    def _local_index(self, coordinate: FrameCoordinate) -> tuple[int, ...] | None:
        """Buffer index of `coordinate`, None if it is not loaded."""
        try:
            return tuple(
                held.index(i) for held, i in zip(self.loaded_indices, coordinate)
            )
        except ValueError:
            return None

    def get_frame(self, coordinate: FrameCoordinate) -> np.ndarray:
        """Frame at `coordinate` from the in-memory buffer."""
        if self.images is None:
            raise ValueError("No images in memory, use load_images() first")
        local = self._local_index(FrameCoordinate(*coordinate))
        if local is None:
            raise InvalidIndexSet(f"Frame {tuple(coordinate)} is not loaded")
        return self.images[(slice(None), slice(None), *local)]

    # ------------------------------------------------------------------
    # File naming
    # ------------------------------------------------------------------

    def get_filename(self, coordinate: FrameCoordinate) -> str:
        plan = self.plan
        return get_filename(
            self.file_order,
            self.prefix,
            coordinate,
            acquisition_order=plan.acquisition_order if plan else None,
            sizes=plan.sizes if plan else None,
            ext=TIFF_EXT,
        )

    def set_file_order(self, file_order: str, confirm: bool = False) -> None:
        """Change the naming convention. Files already written keep their names."""
        if file_order not in (FILE_ORDER.INDEXED, FILE_ORDER.LINEAR):
            raise ValueError(f"Invalid file order: {file_order}")
        if file_order == self.file_order:
            return
        if not confirm:
            raise ConfirmationRequired(
                f"Changing file order from '{self.file_order}' to '{file_order}' "
                + "changes which files are read, pass confirm=True."
            )
        logger.info("File order {} -> {}", self.file_order, file_order)
        self.file_order = file_order

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def check_indices(
        self,
        slices: Sequence[int] | None = None,
        channels: Sequence[int] | None = None,
        positions: Sequence[int] | None = None,
        times: Sequence[int] | None = None,
    ) -> LoadedIndices:
        """Validate an axis subset. `None` or empty selects the whole axis."""
        sizes = self.sizes
        checked = []
        for name, requested, n in zip(
            ("slice", "channel", "position", "time"),
            (slices, channels, positions, times),
            sizes,
        ):
            if requested is None or len(requested) == 0:
                checked.append(tuple(range(1, n + 1)))
                continue
            indices = []
            for i in requested:
                if isinstance(i, bool) or not isinstance(i, (int, np.integer)):
                    raise InvalidIndexSet(f"{name} index {i!r} is not an integer")
                if not 1 <= i <= n:
                    raise InvalidIndexSet(f"{name} index {i} outside [1, {n}]")
                indices.append(int(i))
            if len(set(indices)) != len(indices):
                raise InvalidIndexSet(f"Repeated {name} indices in {tuple(indices)}")
            checked.append(tuple(indices))
        return LoadedIndices(*checked)

    def allocate(
        self,
        slices: Sequence[int] | None = None,
        channels: Sequence[int] | None = None,
        positions: Sequence[int] | None = None,
        times: Sequence[int] | None = None,
        confirm: bool = False,
    ) -> np.ndarray:
        """Allocate a zeroed buffer for an axis subset.

        Raises `ConfirmationRequired` if the buffer is larger than the available
        memory, unless `confirm` is set.
        """
        indices = self.check_indices(slices, channels, positions, times)
        shape = (*self.frame_shape, *indices.shape)
        nbytes = int(np.prod(shape)) * np.dtype(np.uint16).itemsize
        available = psutil.virtual_memory().available
        if nbytes > available:
            if not confirm:
                raise ConfirmationRequired(
                    f"Image buffer needs {nbytes / 1e9:.2f} GB, only "
                    + f"{available / 1e9:.2f} GB available. Pass confirm=True "
                    + "to allocate anyway."
                )
            logger.warning("Allocating {:.2f} GB beyond available memory.", nbytes / 1e9)
        self.images = np.zeros(shape, dtype=np.uint16)
        self.loaded_indices = indices
        logger.debug("Allocated image buffer {}", shape)
        return self.images

    def load_images(
        self,
        file_type: str = FILE_TYPE.TIFF,
        slices: Sequence[int] | None = None,
        channels: Sequence[int] | None = None,
        positions: Sequence[int] | None = None,
        times: Sequence[int] | None = None,
        confirm: bool = False,
        progress: bool = True,
    ) -> np.ndarray:
        """Load an axis subset from disk into the in-memory buffer.

        Frames missing on disk are filled with ones and reported in a warning.
        """
        if file_type not in (FILE_TYPE.TIFF, FILE_TYPE.RAW):
            raise ValueError(f"Invalid file type: {file_type}")
        plan = self._require_plan()
        self.allocate(slices, channels, positions, times, confirm=confirm)
        idx = self.loaded_indices
        missing = 0
        for local in tqdm(
            itertools.product(*(range(n) for n in idx.shape)),
            total=int(np.prod(idx.shape)),
            desc="Loading images",
            disable=not progress,
        ):
            coordinate = FrameCoordinate(*(held[i] for held, i in zip(idx, local)))
            if file_type == FILE_TYPE.TIFF:
                frame = self._read_tiff(coordinate)
            else:
                frame = self._read_raw(
                    to_counter(plan.acquisition_order, plan.sizes, coordinate)
                )
            if frame is None:
                missing += 1
                frame = np.ones(self.frame_shape, dtype=np.uint16)
            self.images[(slice(None), slice(None), *local)] = frame
        if missing:
            logger.warning("{} frames not found on disk, filled with ones.", missing)
        return self.images

    def _read_tiff(self, coordinate: FrameCoordinate) -> np.ndarray | None:
        path = self._path(self.get_filename(coordinate))
        if not os.path.exists(path):
            return None
        frame = tifffile.imread(path)
        if frame.shape != self.frame_shape:
            raise FrameShapeMismatch(
                f"{path} has shape {frame.shape}, expected {self.frame_shape}"
            )
        return frame.astype(np.uint16)

    def unload_images(self) -> None:
        self.images = None
        self.loaded_indices = None

    def scale_dynamic_range(self, n_bits: int = 16) -> np.ndarray:
        """Stretch the in-memory buffer onto the full `n_bits` range."""
        if self.images is None:
            raise ValueError("No images in memory, use load_images() first")
        self.images = rescale_intensity(self.images, n_bits)
        return self.images

    # ------------------------------------------------------------------
    # Backgrounds, state & reconstruction
    # ------------------------------------------------------------------

    def set_background_image(
        self, channel: str, image: np.ndarray, overwrite: bool = False
    ) -> None:
        image = np.asarray(image)
        if image.shape != self.frame_shape:
            raise FrameShapeMismatch(
                f"Background shape {image.shape} != frame shape {self.frame_shape}"
            )
        self.presets = self.presets.with_background(channel, image, overwrite=overwrite)

    def reconstruct(self) -> ReconstructedDataset:
        return reconstruct_from_journal(self.records, frame_shape=self.frame_shape)

    def save_state(self) -> str:
        """Write the store descriptor (and background images) to the dataset directory."""
        state = {
            "version": STORE_STATE_VERSION,
            "frame_shape": self.frame_shape,
            "prefix": self.prefix,
            "file_order": self.file_order,
            "plan": self.plan.to_dict() if self.plan is not None else None,
            "presets": self.presets.to_dict(),
            "backgrounds": {},
        }
        for channel, image in self.presets.backgrounds.items():
            name = f"{self.prefix}_bg_{channel}.{TIFF_EXT}"
            tifffile.imwrite(self._path(name), np.asarray(image))
            state["backgrounds"][channel] = name
        save_json(self.state_path, state)
        logger.info("Saved store state to {}", self.state_path)
        return self.state_path

    def load_state(self) -> None:
        """Restore frame shape, plan, presets and file order from `<prefix>_store.json`."""
        state = load_json(self.state_path)
        backgrounds = {
            channel: tifffile.imread(self._path(name))
            for channel, name in state.get("backgrounds", {}).items()
        }
        presets = PresetMap.from_dict(state.get("presets", {}))
        self.presets = PresetMap(presets=presets.presets, backgrounds=backgrounds)
        self.frame_shape = tuple(int(n) for n in state["frame_shape"])
        self.file_order = state.get("file_order", FILE_ORDER.INDEXED)
        plan = state.get("plan")
        self.plan = AcquisitionPlan.from_dict(plan) if plan else None
        logger.debug("Loaded store state from {}", self.state_path)

    @classmethod
    def from_directory(
        cls, directory: str, prefix: str = DEFAULT_FILE_PREFIX
    ) -> IndexedImageStore:
        """Reopen a dataset from its saved state, or from its journal alone."""
        directory = os.path.abspath(directory)
        state_path = os.path.join(directory, prefix + STATE_SUFFIX)
        journal_path = os.path.join(directory, prefix + JOURNAL_SUFFIX)
        records = read_journal(journal_path) if os.path.exists(journal_path) else []

        if os.path.exists(state_path):
            frame_shape = tuple(load_json(state_path)["frame_shape"])
            store = cls(frame_shape, directory=directory, prefix=prefix)
            store.load_state()
        else:
            logger.warning("No store state in {}, reconstructing from journal.", directory)
            rec = reconstruct_from_journal(records)
            plan = rec.to_plan()
            store = cls(
                plan.frame_shape,
                presets=rec.to_presets(),
                directory=directory,
                prefix=prefix,
            )
            store.plan = plan
        store.records = list(records)
        store._written = {record_coordinate(rec) for rec in records}
        return store
