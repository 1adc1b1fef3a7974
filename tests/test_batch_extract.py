import json

import batch_extract
from adaptive_scraper.services import extraction_engine
from adaptive_scraper.normalizers.records import BatchResult, ExtractedRecord, ExtractionResult


class FakeEngine:
    def __init__(self):
        self.targets = None

    def extract_batch(self, targets, operator_id=None):
        self.targets = targets
        self.operator_id = operator_id
        return BatchResult(results=[
            ExtractionResult(records=[ExtractedRecord(title="a"), ExtractedRecord(title="b")], url=t.url, domain="x")
            for t in targets
        ])


def _url_file(tmp_path, content):
    path = tmp_path / "urls.txt"
    path.write_text(content, encoding="utf-8")
    return path


def test_read_urls_skips_blanks_and_comments(tmp_path):
    path = _url_file(tmp_path, "# dealers\nhttps://a.example.com\n\n  https://b.example.com  \n")
    assert batch_extract.read_urls(path) == ["https://a.example.com", "https://b.example.com"]


def test_inline_run_writes_output(tmp_path, monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr(batch_extract, "setup_logging", lambda level: None)
    monkeypatch.setattr(extraction_engine, "get_engine", lambda: engine)
    output = tmp_path / "out.json"

    code = batch_extract.main([
        str(_url_file(tmp_path, "https://a.example.com\n")),
        "--operator", "3",
        "--dynamic",
        "--output", str(output),
    ])

    assert code == 0
    assert engine.operator_id == 3
    assert engine.targets[0].allow_dynamic_loading is True
    assert json.loads(output.read_text())["total_records"] == 2


def test_empty_file(tmp_path, monkeypatch):
    monkeypatch.setattr(batch_extract, "setup_logging", lambda level: None)
    assert batch_extract.main([str(_url_file(tmp_path, "# nothing\n"))]) == 1
