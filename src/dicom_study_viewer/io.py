"""io.py — DICOM I/O utilities.

Public API:
    read_file_bytes(path) -> bytes            (coroutine)
        Read a source file off the event loop; raises ``FileReadError``.

    MetadataExtractor.extract(buffer, pixel_ref) -> InstanceRecord
        Parse the header of one DICOM file with pydicom.  Missing optional
        tags get documented defaults; only unreadable or corrupt input is a
        hard failure (``MetadataParseError``).

    collect_dicom_files(paths) -> list[pathlib.Path]
        Expand files and folders into the DICOM files they contain.

Pixel data is never decoded here; that is the rendering adapter's concern.
"""
import asyncio
import io
import logging
import pathlib
from typing import Any, Iterable

import pydicom
from pydicom.errors import InvalidDicomError
from pydicom.misc import is_dicom

from .errors import FileReadError, MetadataParseError
from .models import (
    DEFAULT_BITS_ALLOCATED,
    DEFAULT_BITS_STORED,
    DEFAULT_HIGH_BIT,
    DEFAULT_PHOTOMETRIC,
    InstanceRecord,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------
async def read_file_bytes(path) -> bytes:
    """Return the raw bytes of *path*, read in a worker thread.

    Raises:
        FileReadError: If the file cannot be opened or read.
    """
    file_path = pathlib.Path(path)
    try:
        return await asyncio.to_thread(file_path.read_bytes)
    except OSError as exc:
        raise FileReadError(f"Cannot read {file_path}: {exc}") from exc


def is_dicom_file(path) -> bool:
    """Return ``True`` if *path* is a regular file with a DICOM preamble."""
    file_path = pathlib.Path(path)
    if not file_path.is_file():
        return False
    try:
        return is_dicom(file_path)
    except OSError:
        return False


def collect_dicom_files(paths: Iterable[Any]) -> list[pathlib.Path]:
    """Expand *paths* (files or folders) into a sorted list of DICOM files.

    Explicit file arguments are kept as given so that a non-DICOM file
    surfaces as a parse error during loading instead of vanishing silently.
    Folder contents are filtered with :func:`is_dicom_file`.
    """
    files: list[pathlib.Path] = []
    for entry in paths:
        path = pathlib.Path(entry)
        if path.is_dir():
            found = sorted(f for f in path.rglob("*") if is_dicom_file(f))
            logger.info("Found %d DICOM file(s) in %s", len(found), path)
            files.extend(found)
        else:
            files.append(path)
    return files


# ---------------------------------------------------------------------------
# Metadata extraction
# ---------------------------------------------------------------------------
def _text(ds: pydicom.Dataset, keyword: str) -> str:
    value = ds.get(keyword)
    if value is None:
        return ""
    return str(value).strip()


def _int(ds: pydicom.Dataset, keyword: str, default: int | None) -> int | None:
    value = ds.get(keyword)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Non-integer %s=%r; using %r", keyword, value, default)
        return default


class MetadataExtractor:
    """Turn the bytes of one DICOM file into an :class:`InstanceRecord`.

    Example::

        extractor = MetadataExtractor()
        record = extractor.extract(path.read_bytes(), pixel_ref=str(path))
    """

    def __init__(self, force: bool = False) -> None:
        # force=True accepts files without the DICM preamble.
        self.force = force

    def extract(self, buffer: bytes, pixel_ref: Any = None) -> InstanceRecord:
        """Parse *buffer* and return its metadata record.

        Args:
            buffer:    Raw file content.
            pixel_ref: Opaque reference stored on the record so the
                rendering adapter can later resolve the pixels.

        Raises:
            MetadataParseError: If *buffer* is not readable DICOM.
        """
        if not buffer:
            raise MetadataParseError(f"Empty input for {pixel_ref!r}")
        try:
            ds = pydicom.dcmread(
                io.BytesIO(buffer), stop_before_pixels=True, force=self.force
            )
        except (InvalidDicomError, EOFError, ValueError, TypeError, KeyError) as exc:
            raise MetadataParseError(
                f"Cannot parse DICOM content of {pixel_ref!r}: {exc}"
            ) from exc

        try:
            record = self._record_from_dataset(ds, pixel_ref)
        except (ValueError, TypeError) as exc:
            raise MetadataParseError(
                f"Corrupt DICOM header in {pixel_ref!r}: {exc}"
            ) from exc

        logger.debug(
            "Extracted instance %s (series %s, #%d) from %r",
            record.sop_instance_uid,
            record.series_instance_uid,
            record.instance_number,
            pixel_ref,
        )
        return record

    def _record_from_dataset(self, ds: pydicom.Dataset, pixel_ref: Any) -> InstanceRecord:
        return InstanceRecord(
            sop_instance_uid=_text(ds, "SOPInstanceUID"),
            sop_class_uid=_text(ds, "SOPClassUID"),
            instance_number=_int(ds, "InstanceNumber", 0),
            pixel_ref=pixel_ref,
            rows=_int(ds, "Rows", 0),
            columns=_int(ds, "Columns", 0),
            bits_allocated=_int(ds, "BitsAllocated", DEFAULT_BITS_ALLOCATED),
            bits_stored=_int(ds, "BitsStored", DEFAULT_BITS_STORED),
            high_bit=_int(ds, "HighBit", DEFAULT_HIGH_BIT),
            pixel_representation=_int(ds, "PixelRepresentation", 0),
            samples_per_pixel=_int(ds, "SamplesPerPixel", 1),
            photometric_interpretation=(
                _text(ds, "PhotometricInterpretation") or DEFAULT_PHOTOMETRIC
            ),
            series_instance_uid=_text(ds, "SeriesInstanceUID"),
            series_number=_int(ds, "SeriesNumber", None),
            series_description=_text(ds, "SeriesDescription"),
            modality=_text(ds, "Modality"),
            study_instance_uid=_text(ds, "StudyInstanceUID"),
            patient_name=_text(ds, "PatientName"),
            patient_id=_text(ds, "PatientID"),
            study_date=_text(ds, "StudyDate"),
            study_description=_text(ds, "StudyDescription"),
        )
