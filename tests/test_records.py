# tests/test_records.py

import logging
import unittest

import pytest

from strucsync.records import (
    ConversionRecord,
    ConversionStatus,
    NativeRef,
    ProgressReport,
    Snapshot,
    summarize,
)


class TestConversionRecord(unittest.TestCase):
    def setUp(self):
        self.record = ConversionRecord(source_id="abc", type_name="Element1D", application_id="beam-1")

    def test_status_moves_forward(self):
        self.record.set_status(ConversionStatus.CREATED)
        self.record.set_status(ConversionStatus.REMOVED)
        self.assertEqual(self.record.status, ConversionStatus.REMOVED)

    def test_status_never_moves_back(self):
        self.record.set_status(ConversionStatus.UPDATED)
        with self.assertRaises(ValueError):
            self.record.set_status(ConversionStatus.UNKNOWN)

    def test_removed_is_final(self):
        self.record.set_status(ConversionStatus.REMOVED)
        with self.assertRaises(ValueError):
            self.record.set_status(ConversionStatus.CREATED)

    def test_update_deduplicates_ids(self):
        self.record.update(created_ids=["g1", "g1", ""], converted=[NativeRef("Frame", "1")] * 2)
        self.assertEqual(self.record.created_ids, ["g1"])
        self.assertEqual(self.record.converted, [NativeRef("Frame", "1")])

    def test_merge_treats_unknown_as_created(self):
        other = ConversionRecord(source_id="abc", type_name="Element1D", created_ids=["g2"])
        self.record.merge(other)
        self.assertEqual(self.record.status, ConversionStatus.CREATED)
        self.assertEqual(self.record.created_ids, ["g2"])

    def test_clone_is_independent(self):
        self.record.fallback.append(ConversionRecord(source_id="child", type_name="Line"))
        copy = self.record.clone()
        copy.created_ids.append("x")
        copy.fallback[0].log.append("changed")
        self.assertEqual(self.record.created_ids, [])
        self.assertEqual(self.record.fallback[0].log, [])


def test_native_ref_tokens():
    ref = NativeRef.parse("Frame::B12")
    assert ref == NativeRef("Frame", "B12")
    assert str(ref) == "Frame::B12"
    with pytest.raises(ValueError):
        NativeRef.parse("Frame-B12")


def test_snapshot_survives_disk(tmp_path):
    record = ConversionRecord(source_id="abc", type_name="Element2D", application_id="slab-1")
    record.update(status=ConversionStatus.CREATED, created_ids=["slab-1"], converted=[NativeRef("Area", "3")])
    record.fallback.append(ConversionRecord(source_id="child", type_name="Mesh", status=ConversionStatus.SKIPPED))

    path = Snapshot.capture([record]).save(tmp_path / "nested" / "run.snapshot.json")
    loaded = Snapshot.load(path)

    assert loaded.created_at is not None
    found = loaded.find("slab-1")
    assert found.converted == [NativeRef("Area", "3")]
    assert found.fallback[0].status == ConversionStatus.SKIPPED
    assert loaded.find(None) is None


def test_missing_snapshot_means_empty_baseline(tmp_path):
    assert Snapshot.load(tmp_path / "absent.json").records == []
    assert Snapshot.load(None).records == []


def test_summary_counts_and_report(caplog):
    records = [
        ConversionRecord(source_id=str(i), type_name="T", status=status)
        for i, status in enumerate(
            [ConversionStatus.CREATED, ConversionStatus.CREATED, ConversionStatus.FAILED, ConversionStatus.REMOVED]
        )
    ]
    assert summarize(records) == {"Created": 2, "Updated": 0, "Failed": 1, "Skipped": 0}

    report = ProgressReport()
    with caplog.at_level(logging.WARNING):
        report.log("heads up", level=logging.WARNING)
    assert report.entries == ["heads up"]
    assert "heads up" in caplog.text
    for record in records:
        report.update_record(record)
    assert report.counts()["Created"] == 2
