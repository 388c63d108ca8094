import os
import types

import numpy as np
import pytest

from mdscope.store import IndexedImageStore
from mdscope.types import (
    FILE_ORDER,
    FILE_TYPE,
    PERSIST,
    AcquisitionPlan,
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
from mdscope.util import iter_coordinates, to_counter

SHAPE = (4, 6)
PRESETS = PresetMap.from_dict({"bf": {"exposure_ms": 10}, "gfp": {"exposure_ms": 50}})


@pytest.fixture
def plan():
    return AcquisitionPlan(
        z_offsets_um=[0.0, 2.0],
        channels=["bf", "gfp"],
        positions_um=[(0, 0, 0), (100, 0, 0)],
        frame_shape=SHAPE,
    )


def record(plan, coord):
    return MetadataRecord(
        slice_number=coord.slice,
        channel_number=coord.channel,
        position_number=coord.position,
        time_number=coord.time,
        channel=plan.channel_name(coord.channel),
        preset=dict(PRESETS.resolve(plan.channel_name(coord.channel)).settings),
        position_um=plan.position_um(coord.position),
        slice_um=plan.z_offset_um(coord.slice),
        frame_shape=SHAPE,
    )


def frame_for(plan, coord):
    """Frame whose pixels all equal the frame counter."""
    k = to_counter(plan.acquisition_order, plan.sizes, coord)
    return np.full(SHAPE, k, dtype=np.uint16)


def fill(store, plan, persist, keep_in_memory=True, n=None):
    names = []
    for i, coord in enumerate(iter_coordinates(plan.acquisition_order, plan.sizes)):
        if n is not None and i == n:
            break
        names.append(
            store.ingest(
                coord,
                frame_for(plan, coord),
                record(plan, coord),
                persist=persist,
                keep_in_memory=keep_in_memory,
            )
        )
    return names


def test_per_frame_indexed(tmp_path, plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    names = fill(store, plan, PERSIST.PER_FRAME)
    assert names[0] == "UVM_sl1_ch1_p1_t1.tiff"
    assert names[-1] == "UVM_sl2_ch2_p2_t1.tiff"
    assert all(os.path.exists(tmp_path / name) for name in names)
    assert os.path.exists(tmp_path / "UVM_metadata.json")
    assert store.complete and store.n_written == 8
    assert store.images.shape == (*SHAPE, 2, 2, 2, 1)
    np.testing.assert_array_equal(store.get_frame((2, 1, 2, 1)), np.full(SHAPE, 6))


def test_per_frame_linear(tmp_path, plan):
    store = IndexedImageStore(
        SHAPE, plan, directory=str(tmp_path), prefix="run", file_order=FILE_ORDER.LINEAR
    )
    store.presets = PRESETS
    names = fill(store, plan, PERSIST.PER_FRAME)
    assert names == [f"run{k}.tiff" for k in range(8)]


def test_linear_filename_out_of_range_falls_back(plan):
    store = IndexedImageStore(SHAPE, plan, file_order=FILE_ORDER.LINEAR)
    assert store.get_filename(FrameCoordinate(9, 1, 1, 1)) == "UVM0.tiff"


def test_linear_filename_without_plan_falls_back():
    store = IndexedImageStore(SHAPE, file_order=FILE_ORDER.LINEAR)
    assert store.get_filename(FrameCoordinate(2, 1, 1, 1)) == "UVM0.tiff"


def test_append_raw_offsets(tmp_path, plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    fill(store, plan, PERSIST.APPEND_RAW, keep_in_memory=False)
    assert store.images is None
    assert store.frame_size_bytes == SHAPE[0] * SHAPE[1] * 2
    assert os.path.getsize(store.raw_path) == 8 * store.frame_size_bytes
    raw = np.fromfile(store.raw_path, dtype="<u2")
    for k in range(1, 9):
        start = (k - 1) * SHAPE[0] * SHAPE[1]
        assert np.all(raw[start : start + SHAPE[0] * SHAPE[1]] == k)

    images = store.load_images(FILE_TYPE.RAW, progress=False)
    np.testing.assert_array_equal(images[:, :, 1, 0, 1, 0], np.full(SHAPE, 6))


def test_memory_only(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    fill(store, plan, PERSIST.NONE)
    assert store.n_written == 8
    assert store.records[3]["channel"] == "gfp"
    with pytest.raises(ValueError):
        store.journal_path


def test_persist_needs_directory(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    coord = FrameCoordinate(1, 1, 1, 1)
    with pytest.raises(ValueError):
        store.ingest(coord, frame_for(plan, coord), record(plan, coord), PERSIST.PER_FRAME)


def test_ingest_validation(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    coord = FrameCoordinate(1, 1, 1, 1)
    with pytest.raises(FrameShapeMismatch):
        store.ingest(coord, np.zeros((6, 4), dtype=np.uint16), record(plan, coord))
    with pytest.raises(TypeError):
        store.ingest(coord, np.zeros(SHAPE, dtype=np.float32), record(plan, coord))
    with pytest.raises(CoordinateOutOfRange):
        store.ingest(FrameCoordinate(3, 1, 1, 1), frame_for(plan, coord), record(plan, coord))
    assert store.n_written == 0

    fill(store, plan, PERSIST.NONE)
    with pytest.raises(CoordinateOutOfRange):
        store.ingest(coord, frame_for(plan, coord), record(plan, coord))



def test_ingest_rejected_by_memory_check_writes_nothing(tmp_path, plan, monkeypatch):
    monkeypatch.setattr(
        "mdscope.store.store.psutil.virtual_memory",
        lambda: types.SimpleNamespace(available=1),
    )
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    coord = FrameCoordinate(1, 1, 1, 1)
    with pytest.raises(ConfirmationRequired):
        store.ingest(coord, frame_for(plan, coord), record(plan, coord), PERSIST.PER_FRAME)
    assert store.n_written == 0
    assert not os.path.exists(store.journal_path)
    assert not os.path.exists(tmp_path / "UVM_sl1_ch1_p1_t1.tiff")

    store.ingest(
        coord,
        frame_for(plan, coord),
        record(plan, coord),
        PERSIST.PER_FRAME,
        keep_in_memory=False,
    )
    assert store.n_written == 1


def test_ingest_rejects_duplicate_frames(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    coord = FrameCoordinate(1, 1, 1, 1)
    store.ingest(coord, frame_for(plan, coord), record(plan, coord))
    with pytest.raises(DuplicateFrame):
        store.ingest(coord, frame_for(plan, coord), record(plan, coord))
    assert store.n_written == 1
    assert not store.complete


def test_ingest_rejects_mismatched_record(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    coord = FrameCoordinate(1, 1, 1, 1)
    other = FrameCoordinate(2, 1, 1, 1)
    with pytest.raises(ValueError, match="Record coordinate"):
        store.ingest(coord, frame_for(plan, coord), record(plan, other))
    assert store.n_written == 0

def test_set_plan(plan):
    store = IndexedImageStore(SHAPE)
    with pytest.raises(FrameShapeMismatch):
        store.set_plan(AcquisitionPlan(frame_shape=(8, 8)))
    store.set_plan(plan, PRESETS)
    fill(store, plan, PERSIST.NONE, n=1)
    with pytest.raises(IllegalStateTransition):
        store.set_plan(plan)


class TestCheckIndices:
    @pytest.fixture
    def store(self, plan):
        return IndexedImageStore(SHAPE, plan, PRESETS)

    def test_none_and_empty_select_all(self, store):
        idx = store.check_indices(None, [], positions=[2])
        assert idx.slices == (1, 2)
        assert idx.channels == (1, 2)
        assert idx.positions == (2,)
        assert idx.times == (1,)
        assert idx.shape == (2, 2, 1, 1)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"slices": [0]},
            {"slices": [3]},
            {"channels": [1.5]},
            {"positions": [1, 1]},
            {"times": [2]},
            {"times": [True]},
            {"channels": ["1"]},
        ],
    )
    def test_invalid(self, store, kwargs):
        with pytest.raises(InvalidIndexSet):
            store.check_indices(**kwargs)

    def test_allocate_subset(self, store):
        images = store.allocate(slices=[2], channels=[2, 1])
        assert images.shape == (*SHAPE, 1, 2, 2, 1)
        assert images.dtype == np.uint16
        assert store.loaded_indices.channels == (2, 1)

    def test_allocate_beyond_memory(self, store, monkeypatch):
        monkeypatch.setattr(
            "mdscope.store.store.psutil.virtual_memory",
            lambda: types.SimpleNamespace(available=10),
        )
        with pytest.raises(ConfirmationRequired):
            store.allocate()
        assert store.allocate(confirm=True).shape == (*SHAPE, 2, 2, 2, 1)


def test_load_subset_and_missing_frames(tmp_path, plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    fill(store, plan, PERSIST.PER_FRAME, keep_in_memory=False, n=5)
    images = store.load_images(positions=[2], progress=False)
    assert images.shape == (*SHAPE, 2, 2, 1, 1)
    # counter 5 is (1, 1, 2, 1) and was written; counter 6 onwards was not
    np.testing.assert_array_equal(images[:, :, 0, 0, 0, 0], np.full(SHAPE, 5))
    np.testing.assert_array_equal(images[:, :, 1, 1, 0, 0], np.ones(SHAPE))

    np.testing.assert_array_equal(store.get_frame((1, 1, 2, 1)), np.full(SHAPE, 5))
    with pytest.raises(InvalidIndexSet):
        store.get_frame((1, 1, 1, 1))


def test_file_order_change_needs_confirmation(plan):
    store = IndexedImageStore(SHAPE, plan)
    with pytest.raises(ConfirmationRequired):
        store.set_file_order(FILE_ORDER.LINEAR)
    assert store.file_order == FILE_ORDER.INDEXED
    store.set_file_order(FILE_ORDER.LINEAR, confirm=True)
    assert store.get_filename(FrameCoordinate(2, 1, 1, 1)) == "UVM1.tiff"
    with pytest.raises(ValueError):
        store.set_file_order("random", confirm=True)


def test_background_overwrite(plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS)
    store.set_background_image("bf", np.ones(SHAPE))
    with pytest.raises(ConfirmationRequired):
        store.set_background_image("bf", np.zeros(SHAPE))
    np.testing.assert_array_equal(store.presets.background("bf"), np.ones(SHAPE))
    store.set_background_image("bf", np.zeros(SHAPE), overwrite=True)
    np.testing.assert_array_equal(store.presets.background("bf"), np.zeros(SHAPE))
    with pytest.raises(FrameShapeMismatch):
        store.set_background_image("gfp", np.zeros((2, 2)))


def test_save_state_and_reopen(tmp_path, plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    fill(store, plan, PERSIST.PER_FRAME, keep_in_memory=False)
    store.set_background_image("gfp", np.full(SHAPE, 7, dtype=np.uint16))
    store.save_state()
    assert os.path.exists(tmp_path / "UVM_bg_gfp.tiff")

    reopened = IndexedImageStore.from_directory(str(tmp_path))
    assert reopened.plan == plan
    assert reopened.presets.resolve("bf").settings == {"exposure_ms": 10}
    np.testing.assert_array_equal(reopened.presets.background("gfp"), np.full(SHAPE, 7))
    assert reopened.n_written == 8
    images = reopened.load_images(progress=False)
    np.testing.assert_array_equal(images[:, :, 1, 1, 1, 0], np.full(SHAPE, 8))


def test_load_state_into_store(tmp_path, plan):
    store = IndexedImageStore(
        SHAPE, plan, PRESETS, directory=str(tmp_path), file_order=FILE_ORDER.LINEAR
    )
    store.save_state()

    other = IndexedImageStore((2, 2), directory=str(tmp_path))
    other.load_state()
    assert other.frame_shape == SHAPE
    assert other.plan == plan
    assert other.file_order == FILE_ORDER.LINEAR
    assert other.presets.channels == ("bf", "gfp")


def test_reopen_from_journal_only(tmp_path, plan):
    store = IndexedImageStore(SHAPE, plan, PRESETS, directory=str(tmp_path))
    fill(store, plan, PERSIST.PER_FRAME, keep_in_memory=False)

    reopened = IndexedImageStore.from_directory(str(tmp_path))
    assert reopened.plan.sizes == plan.sizes
    assert reopened.plan.acquisition_order == plan.acquisition_order
    assert reopened.plan.channels == ("bf", "gfp")
    assert reopened.plan.z_offsets_um == (0.0, 2.0)
    assert reopened.frame_shape == SHAPE
    assert reopened.presets.resolve("gfp").settings == {"exposure_ms": 50}
    images = reopened.load_images(progress=False)
    np.testing.assert_array_equal(images[:, :, 0, 1, 0, 0], np.full(SHAPE, 3))
