"""assembler.py — Fold a flat batch of instance records into a Study.

Assembly rules:
    - Records are grouped by ``series_instance_uid``.  A record without a
      usable key becomes the only member of its own series, identified as
      ``series-<index>`` where ``<index>`` is its position in the batch.
      Key-less records never join a series whose UID happens to read
      ``series-<index>``; such a clash gets a ``-<n>`` suffix instead.
    - Instances are ordered by instance number.  ``sorted`` is stable, so
      duplicate numbers keep the order in which they were encountered.
    - The first instance of a group (after sorting) is the representative:
      it supplies the series number, modality and description.
    - Series are ordered by series number, ties in order of first encounter.
    - Study-level fields come from the first record of the batch in its
      input order.  Conflicting study attributes across files are not
      reconciled.

The function is pure: same input order, same (value-equal) output.
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from .errors import EmptyInputError
from .models import Instance, InstanceRecord, Series, Study

logger = logging.getLogger(__name__)

DEFAULT_MODALITY = "OT"

# A real series UID, or (None, index) for a record without one.
GroupKey = Union[str, Tuple[None, int]]
Group = List[Tuple[InstanceRecord, Instance]]


def _instance_from_record(record: InstanceRecord, index: int) -> Instance:
    return Instance(
        id=record.sop_instance_uid or f"instance-{index}",
        instance_number=record.instance_number,
        pixel_ref=record.pixel_ref,
        sop_class_uid=record.sop_class_uid,
        rows=record.rows,
        columns=record.columns,
        bits_allocated=record.bits_allocated,
        bits_stored=record.bits_stored,
        high_bit=record.high_bit,
        pixel_representation=record.pixel_representation,
        samples_per_pixel=record.samples_per_pixel,
        photometric_interpretation=record.photometric_interpretation,
    )


def _group_records(records: Sequence[InstanceRecord]) -> Dict[GroupKey, Group]:
    """Group records by series key, preserving first-encounter order."""
    groups: Dict[GroupKey, Group] = {}
    for index, record in enumerate(records):
        key: GroupKey = record.series_instance_uid or (None, index)
        groups.setdefault(key, []).append(
            (record, _instance_from_record(record, index))
        )
    return groups


def _series_ids(keys: Iterable[GroupKey]) -> Dict[GroupKey, str]:
    """Map group keys to series ids; key-less groups get ``series-<index>``."""
    keys = list(keys)
    taken = {key for key in keys if isinstance(key, str)}
    ids: Dict[GroupKey, str] = {}
    for key in keys:
        if isinstance(key, str):
            ids[key] = key
            continue
        base = candidate = f"series-{key[1]}"
        suffix = 1
        while candidate in taken:
            candidate = f"{base}-{suffix}"
            suffix += 1
        taken.add(candidate)
        ids[key] = candidate
    return ids


def _build_series(series_id: str, members: Group) -> Series:
    ordered = sorted(members, key=lambda pair: pair[1].instance_number)
    representative, _ = ordered[0]

    if representative.series_number is not None:
        series_number = representative.series_number
    else:
        series_number = representative.instance_number

    return Series(
        id=series_id,
        series_number=series_number,
        description=representative.series_description or f"Series {series_number}",
        modality=representative.modality or DEFAULT_MODALITY,
        instances=tuple(instance for _, instance in ordered),
    )


def assemble_study(records: Sequence[InstanceRecord]) -> Study:
    """Build a :class:`Study` from one batch of instance records.

    Args:
        records: Metadata records in discovery order.

    Returns:
        The assembled study; its series and instances are sorted as
        described in the module docstring.

    Raises:
        EmptyInputError: If *records* is empty.
    """
    if not records:
        raise EmptyInputError("Cannot assemble a study from zero instances")

    groups = _group_records(records)
    series_ids = _series_ids(groups)
    series_list = sorted(
        (_build_series(series_ids[key], members) for key, members in groups.items()),
        key=lambda s: s.series_number,
    )

    first = records[0]
    study = Study(
        id=first.study_instance_uid or first.sop_instance_uid or "study",
        patient_name=first.patient_name,
        patient_id=first.patient_id,
        study_date=first.study_date,
        description=first.study_description,
        series=tuple(series_list),
    )
    logger.info(
        "Assembled study %s: %d series, %d instances",
        study.id, len(study.series), study.instance_count,
    )
    return study
