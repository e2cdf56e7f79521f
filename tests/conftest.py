"""
Shared fixtures for the dicom_study_viewer tests.

Synthetic DICOM files are written with pydicom so no patient data is
needed.  Matplotlib is forced onto the headless Agg backend.
"""

import asyncio
import pathlib

import matplotlib

matplotlib.use("Agg")

import pytest  # noqa: E402
from pydicom.dataset import FileDataset, FileMetaDataset  # noqa: E402
from pydicom.uid import ExplicitVRLittleEndian, generate_uid  # noqa: E402

from dicom_study_viewer.errors import ToolBindError  # noqa: E402
from dicom_study_viewer.models import InstanceRecord  # noqa: E402

CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"
SERIES_A = "1.2.826.0.1.3680043.1.1"
SERIES_B = "1.2.826.0.1.3680043.1.2"


# ═══════════════════════════════════════════════════════════════════════════════
# SYNTHETIC DICOM
# ═══════════════════════════════════════════════════════════════════════════════

def write_dicom(path: pathlib.Path, **attrs) -> pathlib.Path:
    """Write a header-only DICOM file with *attrs* as top-level elements."""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = attrs.get("SOPClassUID", CT_IMAGE_STORAGE)
    file_meta.MediaStorageSOPInstanceUID = attrs.get("SOPInstanceUID", generate_uid())
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    file_meta.ImplementationClassUID = generate_uid()

    ds = FileDataset(str(path), {}, file_meta=file_meta, preamble=b"\x00" * 128)
    ds.is_little_endian = True
    ds.is_implicit_VR = False
    for keyword, value in attrs.items():
        setattr(ds, keyword, value)
    ds.save_as(str(path))
    return path


def ct_attrs(series_uid: str, instance_number: int, series_number: int = 1, **extra) -> dict:
    attrs = {
        "SOPClassUID": CT_IMAGE_STORAGE,
        "SOPInstanceUID": generate_uid(),
        "StudyInstanceUID": "1.2.3.4",
        "SeriesInstanceUID": series_uid,
        "SeriesNumber": series_number,
        "SeriesDescription": f"Series {series_number}",
        "InstanceNumber": instance_number,
        "Modality": "CT",
        "PatientName": "TEST^SUBJECT",
        "PatientID": "12345",
        "StudyDate": "20250101",
        "StudyDescription": "Synthetic study",
        "Rows": 4,
        "Columns": 4,
        "BitsAllocated": 16,
        "BitsStored": 12,
        "HighBit": 11,
        "PixelRepresentation": 0,
        "SamplesPerPixel": 1,
        "PhotometricInterpretation": "MONOCHROME2",
    }
    attrs.update(extra)
    return attrs


@pytest.fixture
def dicom_dir(tmp_path):
    """Folder with two series (numbers 2 and 1), written out of order."""
    folder = tmp_path / "study"
    folder.mkdir()
    write_dicom(folder / "b3.dcm", **ct_attrs(SERIES_B, 3, series_number=2))
    write_dicom(folder / "a2.dcm", **ct_attrs(SERIES_A, 2, series_number=1))
    write_dicom(folder / "b1.dcm", **ct_attrs(SERIES_B, 1, series_number=2))
    write_dicom(folder / "a1.dcm", **ct_attrs(SERIES_A, 1, series_number=1))
    (folder / "notes.txt").write_text("not dicom")
    return folder


# ═══════════════════════════════════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

def make_record(uid: str, series: str = "S1", number: int = 1, **kw) -> InstanceRecord:
    kw.setdefault("pixel_ref", f"/data/{uid}.dcm")
    return InstanceRecord(
        sop_instance_uid=uid,
        series_instance_uid=series,
        instance_number=number,
        **kw,
    )


@pytest.fixture
def records():
    return [
        make_record("I3", "S1", 3, series_number=5, modality="CT",
                    patient_name="First^Patient", patient_id="P1",
                    study_instance_uid="STUDY", study_date="20240101",
                    study_description="Head"),
        make_record("I1", "S1", 1, series_number=5, modality="CT"),
        make_record("J1", "S2", 1, series_number=2, modality="MR"),
        make_record("I2", "S1", 2, series_number=5, modality="CT"),
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# FAKE RENDERING ADAPTER
# ═══════════════════════════════════════════════════════════════════════════════

class FakeAdapter:
    """Rendering adapter double whose pixel loads complete on demand."""

    TOOLS = ("Pan", "Zoom", "WindowLevel", "StackScroll")

    def __init__(self, fail_create: bool = False):
        self.fail_create = fail_create
        self.calls = []
        self.images = []
        self.pending = {}
        self.created = 0
        self.destroyed = 0

    def create_surface(self, host):
        self.calls.append(("create_surface", host))
        if self.fail_create:
            raise RuntimeError("no display")
        self.created += 1

    async def load_pixel_data(self, ref):
        self.calls.append(("load_pixel_data", ref))
        future = asyncio.get_running_loop().create_future()
        self.pending.setdefault(ref, []).append(future)
        return await future

    def _next_future(self, ref):
        """Oldest outstanding load of *ref*."""
        futures = self.pending[ref]
        future = futures.pop(0)
        if not futures:
            del self.pending[ref]
        return future

    def resolve(self, ref, pixels):
        self._next_future(ref).set_result(pixels)

    def fail(self, ref, exc):
        self._next_future(ref).set_exception(exc)

    def set_image(self, pixels):
        self.calls.append(("set_image", pixels))
        self.images.append(pixels)

    def set_window_level(self, width, center):
        self.calls.append(("set_window_level", width, center))

    def set_zoom(self, factor):
        self.calls.append(("set_zoom", factor))

    def set_pan(self, x, y):
        self.calls.append(("set_pan", x, y))

    def bind_tool(self, name):
        if name is not None and name not in self.TOOLS:
            raise ToolBindError(f"Unknown tool '{name}'")
        self.calls.append(("bind_tool", name))

    def reset_camera(self):
        self.calls.append(("reset_camera",))

    def render(self):
        self.calls.append(("render",))

    def destroy(self):
        self.calls.append(("destroy",))
        self.destroyed += 1

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


async def settle(rounds: int = 10):
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)
