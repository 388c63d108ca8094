# -*- coding: utf-8 -*-
"""
The scope system: a configured driver plus the presets and storage settings
used to run acquisitions with it.
"""

from __future__ import annotations

import os
import threading
from typing import TYPE_CHECKING

from loguru import logger

from mdscope.acq import AcquisitionEngine, run_acquisition
from mdscope.device import Device, get_valid_device_types
from mdscope.store import IndexedImageStore
from mdscope.types import AcquisitionPlan, PresetMap
from mdscope.util import (
    add_dataset_log,
    get_command_string,
    get_dataset_dir,
    remove_dataset_log,
    save_json,
)

from .base_config import ScopeConfig
from .presets import load_presets
from .sysconfig import load_scope_config

if TYPE_CHECKING:
    from queue import Queue

    from mdscope.types import Notification


class ScopeSystem:
    """A microscope: driver, channel presets and storage settings.

    Parameters
    ----------
    config : str | ScopeConfig
        Scope name (looked up with `load_scope_config`) or a configuration.
    driver : Device, optional
        Driver to use instead of constructing `config.driver_type`.
    presets : PresetMap, optional
        Channel presets, by default read from `config.presets_path`.
    """

    def __init__(
        self,
        config: str | ScopeConfig,
        driver: Device | None = None,
        presets: PresetMap | None = None,
    ):
        if isinstance(config, str):
            logger.info("Loading scope configuration '{}'", config)
            config = load_scope_config(config)
        self.config = config
        self.presets = presets if presets is not None else load_presets(config.presets_path)
        self.driver = driver if driver is not None else self._init_driver()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.config.scope_name}, driver={self.driver})"

    def _init_driver(self) -> Device:
        device_types = get_valid_device_types()
        try:
            device_class = device_types[self.config.driver_type]
        except KeyError:
            raise ValueError(f"Unknown driver type: {self.config.driver_type}") from None
        logger.info("Initialising driver {}", device_class.__name__)
        return device_class(**self.config.driver_config)

    def startup(self) -> dict[str, tuple[bool, str]]:
        """Connect the driver."""
        ok, msg = self.driver.open()
        if not ok:
            logger.error("Failed to connect {}: {}", type(self.driver).__name__, msg)
        return {type(self.driver).__name__: (ok, msg)}

    def packdown(self) -> None:
        if self.driver.is_connected():
            self.driver.close()

    def is_connected(self) -> bool:
        return self.driver.is_connected()

    def new_dataset_dir(self) -> str:
        return get_dataset_dir(self.config.save_dir, self.config.file_prefix)

    def acquire(
        self,
        plan: AcquisitionPlan,
        *,
        directory: str | None = None,
        stop_event: threading.Event | None = None,
        notif_queue: Queue[Notification] | None = None,
        progress: bool = False,
    ) -> IndexedImageStore:
        """Run `plan` into a new dataset directory.

        The driver must be connected (see `startup`). The store state and the
        driver's metadata are written next to the frames when the run ends,
        including stopped runs, along with a log of the acquisition.
        """
        if not self.is_connected():
            raise RuntimeError("Driver not connected, call startup() first")
        directory = directory or self.new_dataset_dir()
        os.makedirs(directory, exist_ok=True)
        store = IndexedImageStore(
            plan.frame_shape,
            presets=self.presets,
            directory=directory,
            prefix=self.config.file_prefix,
            file_order=self.config.file_order,
        )
        engine = AcquisitionEngine(
            store,
            self.presets,
            persist=self.config.persist,
            keep_in_memory=self.config.keep_in_memory,
            notif_queue=notif_queue,
        )
        log_handler = add_dataset_log(directory, self.config.file_prefix)
        try:
            run_acquisition(
                engine,
                plan,
                self.driver,
                poll_interval_s=self.config.poll_interval_s,
                track_focus=self.config.track_focus,
                stop_event=stop_event,
                progress=progress,
            )
        finally:
            try:
                store.save_state()
                save_json(
                    os.path.join(directory, f"{self.config.file_prefix}_scope.json"),
                    {
                        "scope_name": self.config.scope_name,
                        "driver_type": self.config.driver_type,
                        "command": get_command_string(),
                        "driver": self.driver.unroll_metadata(),
                        "aborted": engine.aborted,
                        "focus_offset_um": engine.focus_offset_um,
                    },
                )
            finally:
                remove_dataset_log(log_handler)
        return store
