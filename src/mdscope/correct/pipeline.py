"""Ordered, idempotence-guarded corrections on a derived image buffer.

The pipeline never modifies the store's raw images. On the first correction it
copies the loaded raw buffer (loading it if needed) and from then on each
correction replaces the corrected buffer with its output. The correction log
records the names applied, in order; a name already in the log is skipped
unless `force=True`.
"""

from __future__ import annotations

import itertools
import os
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import tifffile
from loguru import logger

from mdscope.types import CorrectionError, MissingZStack, PresetMap
from mdscope.util import rescale_intensity, to_uint16

from .alignment import align_time_series, align_z_stacks
from .flatfield import PolynomialFlatField
from .kinds import (
    PCA,
    RETURN_METHOD,
    Alignment,
    ChannelRegistration,
    Correction,
    Deconvolution,
    FlatField,
    PhaseRetrieval,
    Refocus,
    ZStackAlignment,
)
from .pca import project_stack
from .refocus import refocus
from .registration import estimate_channel_transforms, register_channels

if TYPE_CHECKING:
    from mdscope.store import IndexedImageStore
    from mdscope.types import FlatFieldProtocol


class CorrectionPipeline:
    """Corrections applied to an `IndexedImageStore`'s images.

    Parameters
    ----------
    store : IndexedImageStore
        Source of the raw images (and plan, for channel names and z spacing).
    presets : PresetMap, optional
        Channel presets and background images, by default the store's.
    flat_field : FlatFieldProtocol, optional
        Default model for `FlatField` corrections.

    Attributes
    ----------
    corrected : np.ndarray | None
        (rows, cols, S, C, P, T) corrected buffer.
    correction_log : list[str]
        Names of the corrections applied, in order.
    focus_valid : np.ndarray | None
        (C, P, T) flags, False where refocusing hit a stack edge.
    """

    def __init__(
        self,
        store: IndexedImageStore,
        presets: PresetMap | None = None,
        *,
        flat_field: FlatFieldProtocol | None = None,
    ):
        self.store = store
        self.presets = presets if presets is not None else store.presets
        self.flat_field = flat_field if flat_field is not None else PolynomialFlatField()
        self.corrected: np.ndarray | None = None
        self.correction_log: list[str] = []
        self.focus_valid: np.ndarray | None = None
        self.best_focus: np.ndarray | None = None
        self.pca_coeffs: np.ndarray | None = None
        self.registration_transforms: list[np.ndarray] | None = None

    # ------------------------------------------------------------------
    # Buffer lifecycle
    # ------------------------------------------------------------------

    def _ensure_corrected(self) -> np.ndarray:
        if self.corrected is None:
            if self.store.images is None:
                logger.info("Loading raw images for correction.")
                self.store.load_images()
            self.corrected = self.store.images.copy()
            self.focus_valid = np.ones(self.corrected.shape[3:], dtype=bool)
        return self.corrected

    def unload_corrected(self) -> None:
        """Drop the corrected buffer and its log. The next correction starts from raw."""
        self.corrected = None
        self.correction_log = []
        self.focus_valid = None
        self.best_focus = None
        logger.info("Unloaded corrected images.")

    def scale_dynamic_range(self, n_bits: int = 16) -> np.ndarray:
        self.corrected = rescale_intensity(self._ensure_corrected(), n_bits)
        return self.corrected

    # ------------------------------------------------------------------
    # Applying corrections
    # ------------------------------------------------------------------

    def apply(
        self,
        name: str,
        requires_zstack: bool,
        transform: Callable[[np.ndarray], np.ndarray],
        force: bool = False,
        recreate: bool = False,
    ) -> bool:
        """Apply `transform` to the corrected buffer and log `name`.

        Parameters
        ----------
        name : str
            Correction name for the log.
        requires_zstack : bool
            Fail with `MissingZStack` if the corrected buffer has one slice.
        transform : Callable[[np.ndarray], np.ndarray]
            Maps the 6-D buffer to a new 6-D buffer with the same pixel axes.
        force : bool
            Apply even if `name` is already in the log.
        recreate : bool
            If a z-stack is needed but the corrected buffer has lost it (e.g. to
            refocusing) while the raw images have one, start again from raw.

        Returns
        -------
        bool
            Whether the transform ran.
        """
        if name in self.correction_log and not force:
            logger.warning("{} correction already applied, pass force=True to repeat it.", name)
            return False
        images = self._ensure_corrected()
        if requires_zstack and images.shape[2] == 1:
            raw = self.store.images
            if recreate and raw is not None and raw.shape[2] > 1:
                logger.warning(
                    "{} needs a z-stack, recreating corrected images from raw (dropping {}).",
                    name,
                    self.correction_log,
                )
                self.unload_corrected()
                images = self._ensure_corrected()
            else:
                raise MissingZStack(
                    f"{name} needs a z-stack but the corrected images have a single "
                    + "slice. Unload corrected images to start from the raw data."
                )
        result = np.asarray(transform(images))
        if result.ndim != 6 or result.shape[:2] != images.shape[:2]:
            raise CorrectionError(
                f"{name} returned shape {result.shape}, expected 6-D with pixel axes "
                + f"{images.shape[:2]}"
            )
        self.corrected = result
        self.correction_log.append(name)
        logger.info("Applied {} correction, images now {}.", name, result.shape)
        return True

    def run(self, correction: Correction, force: bool = False, recreate: bool = False) -> bool:
        """Run one of the correction kinds in `mdscope.correct.kinds`."""
        match correction:
            case FlatField(model=model):
                model = model if model is not None else self.flat_field
                transform = lambda images: self._flat_field(images, model)
            case Deconvolution():
                transform = lambda images: self._deconvolve(images, correction)
            case Refocus():
                transform = lambda images: self._refocus(images, correction)
            case Alignment():
                transform = lambda images: align_time_series(
                    images,
                    correction.force_stack_alignment,
                    correction.use_best_focus,
                    correction.method,
                )
            case ZStackAlignment():
                transform = lambda images: align_z_stacks(
                    images, correction.auto_crop, correction.method
                )
            case ChannelRegistration():
                transform = lambda images: self._register(images, correction)
            case PCA():
                transform = lambda images: self._pca(images, correction)
            case PhaseRetrieval(focus_radius=radius):
                if radius and (force or correction.name not in self.correction_log):
                    self.run(
                        Refocus(radius=radius, return_method=RETURN_METHOD.ALL),
                        force=force,
                        recreate=recreate,
                    )
                transform = lambda images: self._phase_retrieval(images, correction)
            case _:
                raise TypeError(f"Unknown correction: {correction!r}")
        return self.apply(
            correction.name,
            correction.requires_zstack,
            transform,
            force=force,
            recreate=recreate,
        )

    # ------------------------------------------------------------------
    # Per-kind transforms
    # ------------------------------------------------------------------

    def _channel(self, c: int) -> tuple[str | None, dict[str, Any]]:
        """Name and preset settings of buffer channel `c` (0-based)."""
        idx = self.store.loaded_indices
        number = idx.channels[c] if idx is not None and c < len(idx.channels) else c + 1
        plan = self.store.plan
        name = plan.channel_name(number) if plan is not None else None
        if name is None or name not in self.presets:
            return name, {}
        return name, dict(self.presets.resolve(name).settings)

    @staticmethod
    def _map_units(func, units, max_workers: int | None):
        if max_workers and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                return list(pool.map(func, units))
        return [func(u) for u in units]

    def _flat_field(self, images: np.ndarray, model: FlatFieldProtocol) -> np.ndarray:
        n_c, n_p, n_t = images.shape[3:]
        out = np.empty_like(images)
        for c in range(n_c):
            name, settings = self._channel(c)
            for p, t in itertools.product(range(n_p), range(n_t)):
                out[:, :, :, c, p, t] = to_uint16(
                    model.correct_image(images[:, :, :, c, p, t], name, settings)
                )
        return out

    def _deconvolve(self, images: np.ndarray, kind: Deconvolution) -> np.ndarray:
        z_step = kind.z_step_um
        if z_step is None:
            z_step = self.store.plan.z_step_um if self.store.plan is not None else 0.0
        units = list(itertools.product(*(range(n) for n in images.shape[3:])))

        def deconvolve_unit(unit):
            c, p, t = unit
            name, settings = self._channel(c)
            return kind.deconvolver.correct_image(
                images[:, :, :, c, p, t], name, z_step, settings, kind.edge_taper
            )

        out = np.empty_like(images)
        results = self._map_units(deconvolve_unit, units, kind.max_workers)
        for (c, p, t), result in zip(units, results):
            out[:, :, :, c, p, t] = to_uint16(result)
        return out

    def _refocus(self, images: np.ndarray, kind: Refocus) -> np.ndarray:
        result = refocus(images, kind.method, kind.radius, kind.return_method, kind.parfocal)
        self.best_focus = result.best_focus
        self.focus_valid = result.focus_valid
        return result.images

    def _register(self, images: np.ndarray, kind: ChannelRegistration) -> np.ndarray:
        transforms = kind.transforms
        if transforms is None:
            transforms = estimate_channel_transforms(images, kind.fixed_channel)
        self.registration_transforms = [np.asarray(m, dtype=float) for m in transforms]
        return register_channels(images, self.registration_transforms)

    def _pca(self, images: np.ndarray, kind: PCA) -> np.ndarray:
        rows, cols, n_slices, n_c, n_p, n_t = images.shape
        units = list(itertools.product(range(n_c), range(n_p), range(n_t)))
        if kind.use_existing_coeffs:
            if self.pca_coeffs is None or self.pca_coeffs.shape[0] != n_slices:
                raise CorrectionError("No stored PCA coefficients for this number of slices")
            stored = self.pca_coeffs
        else:
            stored = None

        def project_unit(unit):
            c, p, t = unit
            coeffs = stored[:, :, c, p, t] if stored is not None else None
            return project_stack(images[:, :, :, c, p, t], coeffs)

        results = self._map_units(project_unit, units, kind.max_workers)
        n_out = results[0][0].shape[2]
        projected = np.empty((rows, cols, n_out, n_c, n_p, n_t))
        coeffs = np.empty((n_slices, n_out, n_c, n_p, n_t))
        for (c, p, t), (proj, unit_coeffs) in zip(units, results):
            projected[:, :, :, c, p, t] = proj
            coeffs[:, :, c, p, t] = unit_coeffs
        self.pca_coeffs = coeffs
        return rescale_intensity(projected, 16)

    def _phase_retrieval(self, images: np.ndarray, kind: PhaseRetrieval) -> np.ndarray:
        n_c, n_p, n_t = images.shape[3:]
        results = {}
        for c in range(n_c):
            name, _ = self._channel(c)
            background = None
            if kind.use_background:
                background = self.presets.background(name)
                if background is None:
                    raise CorrectionError(f"No background image for channel {name}")
            for p, t in itertools.product(range(n_p), range(n_t)):
                phase = np.asarray(kind.solver.solve(images[:, :, :, c, p, t], background))
                if phase.ndim == 2:
                    phase = phase[:, :, np.newaxis]
                results[c, p, t] = phase
        n_out = {r.shape[2] for r in results.values()}
        if len(n_out) != 1:
            raise CorrectionError(f"Phase solver returned differing slice counts {n_out}")
        out = np.empty((*images.shape[:2], n_out.pop(), n_c, n_p, n_t))
        for (c, p, t), phase in results.items():
            out[:, :, :, c, p, t] = phase
        return rescale_intensity(out, 16)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_corrected(
        self, directory: str, prefix: str, write_valid_focus_only: bool = False
    ) -> list[str]:
        """Write the corrected buffer as one TIFF per image.

        Files are named `<prefix>_sl<S>_ch<C>_p<P>_t<T>.tif`. With
        `write_valid_focus_only`, positions with any invalid focus flag are
        skipped and the remaining positions numbered contiguously from 1.

        Returns
        -------
        list[str]
            Paths written.
        """
        if self.corrected is None:
            raise CorrectionError("No corrected images to export")
        images = self.corrected
        n_s, n_c, n_p, n_t = images.shape[2:]
        os.makedirs(directory, exist_ok=True)
        written = []
        out_p = 0
        for p in range(n_p):
            if (
                write_valid_focus_only
                and self.focus_valid is not None
                and not self.focus_valid[:, p, :].all()
            ):
                logger.info("Skipping position {} in export: invalid focus.", p + 1)
                continue
            out_p += 1
            for s, c, t in itertools.product(range(n_s), range(n_c), range(n_t)):
                path = os.path.join(
                    directory, f"{prefix}_sl{s + 1}_ch{c + 1}_p{out_p}_t{t + 1}.tif"
                )
                tifffile.imwrite(path, to_uint16(images[:, :, s, c, p, t]))
                written.append(path)
        logger.info("Exported {} corrected images to {}", len(written), directory)
        return written
