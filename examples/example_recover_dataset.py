"""Recover a dataset whose run was interrupted, from its metadata journal alone."""

import sys

import mdscope.correct
import mdscope.store
import mdscope.util

mdscope.util.start_log(log_to_stdout=True, log_level="INFO")

directory = sys.argv[1]

# the journal is repaired on read if the run was cut off mid-write
dataset = mdscope.store.reconstruct_from_journal(
    mdscope.store.read_journal(directory + "/UVM_metadata.json")
)
print(dataset.acquisition_order, tuple(dataset.sizes), dataset.warnings)

store = mdscope.store.IndexedImageStore.from_directory(directory)
store.load_images(channels=[1])  # first channel only

pipeline = mdscope.correct.CorrectionPipeline(store)
pipeline.run(mdscope.correct.Refocus(radius=1, return_method="all"))
pipeline.run(mdscope.correct.ZStackAlignment())
pipeline.export_corrected(directory + "/corrected", "UVM")
