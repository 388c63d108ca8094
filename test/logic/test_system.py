import os
import sys
import threading

import numpy as np
import pytest

from mdscope.acq import AcquisitionEngine, run_acquisition
from mdscope.device import MockStageCamera
from mdscope.store import IndexedImageStore, read_journal
from mdscope.system import ScopeConfig, ScopeSystem, save_presets
from mdscope.types import ACQ_ORDER, PERSIST, AcquisitionPlan, PresetMap
from mdscope.util import load_json

SHAPE = (16, 16)
PRESETS = PresetMap.from_dict(
    {"bf": {"exposure_ms": 10, "intensity": 1.0}, "gfp": {"exposure_ms": 100, "intensity": 0.2}}
)


def make_plan(order=ACQ_ORDER.ZCXYT, times=()):
    return AcquisitionPlan(
        z_offsets_um=[-2.0, -1.0, 0.0, 1.0, 2.0],
        channels=["bf", "gfp"],
        positions_um=[(0, 0, 0), (100, 0, 0)],
        time_delays_s=times,
        frame_shape=SHAPE,
        acquisition_order=order,
    )


@pytest.fixture
def driver():
    scope = MockStageCamera(frame_shape=SHAPE, noise=False)
    scope.open()
    yield scope
    scope.close()


class FakeClock:
    def __init__(self):
        self.t = 0.0
        self.sleeps = []

    def __call__(self):
        return self.t

    def sleep(self, dt):
        self.sleeps.append(dt)
        self.t += dt


class StoppingScope(MockStageCamera):
    """Sets `stop_event` once `stop_after` frames have been captured."""

    def __init__(self, stop_event, stop_after, **kwargs):
        super().__init__(**kwargs)
        self.stop_event = stop_event
        self.stop_after = stop_after

    def capture_frame(self):
        frame = super().capture_frame()
        if self._n_frames == self.stop_after:
            self.stop_event.set()
        return frame


class TestRunAcquisition:
    def test_complete_run(self, driver):
        plan = make_plan()
        store = IndexedImageStore(SHAPE)
        engine = AcquisitionEngine(store, PRESETS)
        run_acquisition(engine, plan, driver)
        assert store.n_written == 20
        assert store.complete
        assert not engine.aborted
        # slices change every frame, channels every 5 frames
        assert driver._n_moves == 20
        assert driver._n_channel_changes == 4

    def test_channel_fastest(self, driver):
        engine = AcquisitionEngine(IndexedImageStore(SHAPE), PRESETS)
        run_acquisition(engine, make_plan(ACQ_ORDER.CZXYT), driver)
        assert driver._n_moves == 10
        assert driver._n_channel_changes == 20

    def test_channel_settings_reach_driver(self, driver):
        store = IndexedImageStore(SHAPE)
        run_acquisition(AcquisitionEngine(store, PRESETS), make_plan(), driver)
        # gfp frames are dimmer through the preset's intensity
        bright = store.images[:, :, :, 0].mean()
        dim = store.images[:, :, :, 1].mean()
        assert dim < bright
        assert store.records[-1]["preset"] == {"exposure_ms": 100, "intensity": 0.2}

    def test_stop_event(self):
        stop_event = threading.Event()
        scope = StoppingScope(stop_event, 3, frame_shape=SHAPE)
        scope.open()
        store = IndexedImageStore(SHAPE)
        engine = AcquisitionEngine(store, PRESETS)
        run_acquisition(engine, make_plan(), scope, stop_event=stop_event)
        assert engine.aborted
        assert store.n_written == 3
        assert not store.complete

    def test_waits_for_time_points(self, driver):
        clock = FakeClock()
        store = IndexedImageStore(SHAPE)
        engine = AcquisitionEngine(store, PRESETS, clock=clock)
        run_acquisition(
            engine,
            make_plan(times=[0.0, 2.0]),
            driver,
            poll_interval_s=0.5,
            sleep=clock.sleep,
        )
        assert clock.sleeps == [0.5] * 4
        assert store.n_written == 40
        assert store.records[20]["time_s"] == pytest.approx(2.0)

    def test_track_focus(self):
        scope = MockStageCamera(frame_shape=SHAPE, noise=False, focal_plane_um=1.0)
        scope.open()
        store = IndexedImageStore(SHAPE)
        engine = AcquisitionEngine(store, PRESETS)
        run_acquisition(engine, make_plan(), scope, track_focus=True)
        # best focus of the first stack is one slice above the middle
        assert engine.focus_offset_um == pytest.approx(1.0)
        assert store.records[9]["focus_offset_um"] == 0.0
        assert store.records[10]["focus_offset_um"] == pytest.approx(1.0)
        assert scope.get_position()[2] == pytest.approx(3.0)

    def test_rejects_non_driver(self):
        engine = AcquisitionEngine(IndexedImageStore(SHAPE), PRESETS)
        with pytest.raises(TypeError):
            run_acquisition(engine, make_plan(), object())


class TestScopeSystem:
    @pytest.fixture
    def config(self, tmp_path):
        presets_path = str(tmp_path / "presets.json")
        save_presets(presets_path, PRESETS)
        return ScopeConfig(
            scope_name="Bench",
            save_dir=str(tmp_path / "data"),
            persist=PERSIST.PER_FRAME,
            poll_interval_s=0.01,
            presets_path=presets_path,
            driver_config={"frame_shape": SHAPE, "noise": False},
        )

    def test_init(self, config):
        system = ScopeSystem(config)
        assert isinstance(system.driver, MockStageCamera)
        assert system.driver.frame_shape == SHAPE
        assert system.presets.channels == ("bf", "gfp")
        assert not system.is_connected()

    def test_unknown_driver(self, config):
        config.driver_type = "Microscope9000"
        with pytest.raises(ValueError):
            ScopeSystem(config)

    def test_acquire_needs_connection(self, config):
        with pytest.raises(RuntimeError):
            ScopeSystem(config).acquire(make_plan())

    def test_acquire(self, config):
        system = ScopeSystem(config)
        assert system.startup() == {"MockStageCamera": (True, "Connected to MockStageCamera")}
        store = system.acquire(make_plan())
        system.packdown()
        assert not system.is_connected()

        assert store.n_written == 20
        assert store.directory.startswith(config.save_dir)
        assert len(read_journal(store.journal_path)) == 20
        assert os.path.exists(store.state_path)
        assert os.path.exists(os.path.join(store.directory, "UVM_acquisition.log"))
        assert os.path.exists(os.path.join(store.directory, "UVM_sl1_ch1_p1_t1.tiff"))
        scope_info = load_json(os.path.join(store.directory, "UVM_scope.json"))
        assert scope_info["scope_name"] == "Bench"
        assert scope_info["driver_type"] == "MockStageCamera"
        assert scope_info["command"] == " ".join(sys.argv)
        assert scope_info["driver"]["n_frames"] == 20
        assert scope_info["aborted"] is False

        reopened = IndexedImageStore.from_directory(store.directory)
        assert reopened.plan == store.plan
        np.testing.assert_array_equal(reopened.load_images(progress=False), store.images)

    def test_acquire_stopped_run_keeps_state(self, config, tmp_path):
        stop_event = threading.Event()
        system = ScopeSystem(
            config, driver=StoppingScope(stop_event, 7, frame_shape=SHAPE)
        )
        system.startup()
        store = system.acquire(
            make_plan(), directory=str(tmp_path / "stopped"), stop_event=stop_event
        )
        assert store.n_written == 7
        scope_info = load_json(os.path.join(store.directory, "UVM_scope.json"))
        assert scope_info["aborted"] is True

    def test_acquire_closes_dataset_log_on_failed_write(self, config, tmp_path, monkeypatch):
        removed = []
        monkeypatch.setattr(
            "mdscope.system.system.remove_dataset_log", lambda handler: removed.append(handler)
        )
        scope = MockStageCamera(frame_shape=SHAPE, noise=False)
        monkeypatch.setattr(scope, "unroll_metadata", lambda: {"bad": object()})
        system = ScopeSystem(config, driver=scope)
        system.startup()
        with pytest.raises(TypeError):
            system.acquire(make_plan(), directory=str(tmp_path / "bad"))
        assert len(removed) == 1


class TestMockStageCamera:
    def test_config_validation(self):
        with pytest.raises(ValueError, match="frame_shape"):
            MockStageCamera(frame_shape="64x64")
        with pytest.raises(ValueError, match="focal_plane_um"):
            MockStageCamera(focal_plane_um="high")

    def test_focus_depends_on_stage_z(self):
        scope = MockStageCamera(frame_shape=SHAPE, noise=False, focal_plane_um=2.0)
        frames = []
        for z in (0.0, 2.0):
            scope.move_to((0.0, 0.0, z))
            frames.append(scope.capture_frame().astype(float))
        assert frames[1].std() > frames[0].std()

    def test_metadata(self, driver):
        driver.move_to((1.0, 2.0, 3.0))
        metadata = driver.unroll_metadata()
        assert metadata["frame_shape"] == SHAPE
        assert metadata["position_um"] == (1.0, 2.0, 3.0)
        assert metadata["connected"] is True
        assert metadata["pattern"] == {"shape": SHAPE, "dtype": "float64"}
        assert not any(key.startswith("MockStageCamera") for key in metadata)
        assert repr(driver) == "MockStageCamera(connected)"

    def test_subclass_metadata_hides_private_state(self):
        scope = StoppingScope(threading.Event(), 3, frame_shape=SHAPE, noise=False)
        metadata = scope.unroll_metadata()
        assert "MockStageCamera__rng" not in metadata
        assert "StoppingScope__rng" not in metadata
        assert metadata["frame_shape"] == SHAPE
