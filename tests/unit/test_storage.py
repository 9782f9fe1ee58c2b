"""Tests for the shared filesystem helpers."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from miniharness.core.storage import (
    allocate_dir,
    allocate_file,
    append_jsonl,
    max_counter,
    read_json,
    read_jsonl,
    utc_now,
    write_json,
)


class TestAllocation:
    def test_allocate_dir_sequence(self, tmp_path):
        parent = tmp_path / "agents"
        assert allocate_dir(parent, "a", 3)[0] == "a001"
        assert allocate_dir(parent, "a", 3)[0] == "a002"
        (parent / "a010").mkdir()
        (parent / "notes").mkdir()
        assert allocate_dir(parent, "a", 3)[0] == "a011"

    def test_concurrent_dir_allocation_is_unique(self, tmp_path):
        parent = tmp_path / "agents"
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: allocate_dir(parent, "a", 3)[0], range(40)))
        assert len(set(ids)) == 40
        assert sorted(ids) == [f"a{n:03d}" for n in range(1, 41)]

    def test_concurrent_file_allocation_is_unique(self, tmp_path):
        parent = tmp_path / "mq"

        def claim(_):
            return allocate_file(parent, 4, ".json", lambda ident: f'{{"id": "{ident}"}}')

        with ThreadPoolExecutor(max_workers=8) as pool:
            claimed = list(pool.map(claim, range(30)))
        ids = [ident for ident, _ in claimed]
        assert len(set(ids)) == 30
        for ident, path in claimed:
            assert read_json(path) == {"id": ident}

    def test_max_counter(self):
        names = ["0001.json", "0012.json", "x.json", "0003.txt", "a"]
        assert max_counter(names, "", ".json") == 12
        assert max_counter(["a001", "a020", "b999"], "a") == 20
        assert max_counter([]) == 0


class TestJsonHelpers:
    def test_read_json_missing_or_bad(self, tmp_path):
        assert read_json(tmp_path / "nope.json") is None
        bad = tmp_path / "bad.json"
        bad.write_text("{oops")
        assert read_json(bad) is None

    def test_write_then_read(self, tmp_path):
        path = tmp_path / "meta.json"
        write_json(path, {"id": "a001"})
        assert read_json(path) == {"id": "a001"}

    def test_jsonl_skips_malformed_lines(self, tmp_path):
        path = tmp_path / "output.jsonl"
        append_jsonl(path, {"type": "content", "content": "hi"})
        with open(path, "a") as f:
            f.write("not json\n\n")
        append_jsonl(path, {"type": "done"})
        records = read_jsonl(path)
        assert [r["type"] for r in records] == ["content", "done"]
        assert all("timestamp" in r for r in records)
        assert read_jsonl(tmp_path / "missing.jsonl") == []

    def test_timestamps_sort_chronologically(self):
        stamps = [utc_now() for _ in range(50)]
        assert stamps == sorted(stamps)
        assert stamps[0].endswith("Z")
        assert len({len(s) for s in stamps}) == 1
