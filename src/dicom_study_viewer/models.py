"""models.py — Immutable Study / Series / Instance hierarchy.

Design notes:
    - Every type is a frozen dataclass and every sequence is a ``tuple``,
      so a hierarchy can be shared between the store, the sync engine
      and the UI without copying.
    - There are no back-references.  A consumer that needs the parent of a
      :class:`Series` looks it up by identifier through
      :class:`~dicom_study_viewer.viewer_state.ViewerStateStore`, because the
      whole hierarchy may be replaced at any time.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Tuple

DEFAULT_BITS_ALLOCATED = 16
DEFAULT_BITS_STORED = 16
DEFAULT_HIGH_BIT = 15
DEFAULT_PHOTOMETRIC = "MONOCHROME2"


# ---------------------------------------------------------------------------
# InstanceRecord
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class InstanceRecord:
    """Flat per-image metadata as produced by the metadata extractor.

    Carries the series- and study-level attributes of the source file next
    to the image attributes; :func:`~dicom_study_viewer.assembler.assemble_study`
    folds a batch of these into a :class:`Study`.
    """

    sop_instance_uid: str = ""
    sop_class_uid: str = ""
    instance_number: int = 0
    pixel_ref: Any = None

    # --- Pixel geometry / encoding ---
    rows: int = 0
    columns: int = 0
    bits_allocated: int = DEFAULT_BITS_ALLOCATED
    bits_stored: int = DEFAULT_BITS_STORED
    high_bit: int = DEFAULT_HIGH_BIT
    pixel_representation: int = 0
    samples_per_pixel: int = 1
    photometric_interpretation: str = DEFAULT_PHOTOMETRIC

    # --- Series level ---
    series_instance_uid: str = ""
    series_number: int | None = None
    series_description: str = ""
    modality: str = ""

    # --- Study level ---
    study_instance_uid: str = ""
    patient_name: str = ""
    patient_id: str = ""
    study_date: str = ""
    study_description: str = ""


# ---------------------------------------------------------------------------
# Instance
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Instance:
    """One loadable image.

    ``pixel_ref`` is opaque to the core; only the rendering adapter knows
    how to resolve it into pixel data.
    """

    id: str
    instance_number: int
    pixel_ref: Any
    sop_class_uid: str = ""
    rows: int = 0
    columns: int = 0
    bits_allocated: int = DEFAULT_BITS_ALLOCATED
    bits_stored: int = DEFAULT_BITS_STORED
    high_bit: int = DEFAULT_HIGH_BIT
    pixel_representation: int = 0
    samples_per_pixel: int = 1
    photometric_interpretation: str = DEFAULT_PHOTOMETRIC

    @property
    def is_signed(self) -> bool:
        return self.pixel_representation == 1

    @property
    def is_color(self) -> bool:
        return self.samples_per_pixel > 1


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Series:
    """Ordered, non-empty group of instances sharing a grouping key."""

    id: str
    series_number: int
    description: str
    modality: str
    instances: Tuple[Instance, ...]

    def __len__(self) -> int:
        return len(self.instances)

    def __iter__(self) -> Iterator[Instance]:
        return iter(self.instances)

    def index_of(self, instance_id: str) -> int:
        """Return the position of *instance_id* in this series, or ``-1``."""
        for idx, instance in enumerate(self.instances):
            if instance.id == instance_id:
                return idx
        return -1


# ---------------------------------------------------------------------------
# Study
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Study:
    """Root of the hierarchy; owns an ordered, non-empty tuple of series."""

    id: str
    patient_name: str
    patient_id: str
    study_date: str
    description: str
    series: Tuple[Series, ...]

    @property
    def instance_count(self) -> int:
        return sum(len(s) for s in self.series)

    def get_series(self, series_id: str | None) -> Series | None:
        """Return the series identified by *series_id*, or ``None``."""
        if series_id is None:
            return None
        return next((s for s in self.series if s.id == series_id), None)

    def series_of(self, instance_id: str) -> Series | None:
        """Return the series that contains *instance_id*, or ``None``."""
        return next(
            (s for s in self.series if s.index_of(instance_id) >= 0), None
        )

    def find_instance(self, instance_id: str) -> Instance | None:
        """Return the instance identified by *instance_id*, or ``None``."""
        series = self.series_of(instance_id)
        if series is None:
            return None
        return series.instances[series.index_of(instance_id)]

    def contains(self, instance: Instance | None) -> bool:
        """``True`` if *instance* (compared by value) belongs to this study."""
        if instance is None:
            return False
        return self.find_instance(instance.id) == instance
