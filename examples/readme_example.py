import mdscope.correct
import mdscope.system
import mdscope.types
import mdscope.util

mdscope.util.start_log(log_to_stdout=True)  # also logs to ~/.mdscope/mdscope.log

system = mdscope.system.ScopeSystem(
    "mock",
    presets=mdscope.types.PresetMap.from_dict(
        {"bf": {"exposure_ms": 10, "intensity": 1.0}}
    ),
)
system.startup()  # connect the (mock) stage and camera

plan = mdscope.types.AcquisitionPlan(
    z_offsets_um=[-2.0, -1.0, 0.0, 1.0, 2.0],
    channels=["bf"],
    positions_um=[(0.0, 0.0, 0.0), (200.0, 0.0, 0.0)],
    frame_shape=system.driver.frame_shape,
)
store = system.acquire(plan, progress=True)
system.packdown()

pipeline = mdscope.correct.CorrectionPipeline(store)
pipeline.run(mdscope.correct.Refocus(radius=1))
pipeline.export_corrected(store.directory + "/corrected", "UVM", write_valid_focus_only=True)
