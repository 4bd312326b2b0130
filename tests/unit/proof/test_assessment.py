"""Tests for proof block parsing and assessment."""

from __future__ import annotations

import json

from missionctl.proof.assessment import assess_proof, parse_proof_report
from missionctl.proof.classifier import AlwaysRequireProof, KeywordProofClassifier
from missionctl.proof.generator import ChangedFile
from tests.helpers import make_task


def block(payload: dict) -> str:
    return f"```json\n{json.dumps(payload)}\n```"


def test_parse_takes_last_valid_block() -> None:
    output = "\n\n".join(
        [
            block({"result": "analysis_only", "changed_files": []}),
            block({"note": "not a proof"}),
            "```json\n{broken\n```",
            block({"result": "Implemented", "changed_files": ["a.py", {"path": "b.py", "status": "Created"}]}),
            block({"unrelated": True}),
        ]
    )
    report = parse_proof_report(output)
    assert report is not None
    assert report.result == "implemented"
    assert report.changed_files == [ChangedFile("a.py"), ChangedFile("b.py", "created")]


def test_parse_drops_malformed_entries() -> None:
    payload = {
        "result": "implemented",
        "changed_files": ["", {"path": "  "}, {"status": "modified"}, 7, {"path": "ok.py"}],
        "verification": ["fine", 3],
        "summary": 12,
    }
    report = parse_proof_report(block(payload))
    assert report is not None
    assert report.changed_files == [ChangedFile("ok.py")]
    assert report.verification == ["fine"]
    assert report.summary is None


def test_parse_without_block() -> None:
    assert parse_proof_report(None) is None
    assert parse_proof_report("plain text") is None


class TestAssess:
    def test_verified(self) -> None:
        task = make_task(output_text=block({"result": "implemented", "changed_files": ["a.py"]}))
        assessment = assess_proof(task, classifier=AlwaysRequireProof())
        assert assessment.state == "verified"
        assert assessment.label == "Proof Verified"
        assert assessment.detail == "Reported 1 changed file(s)."

    def test_not_required(self) -> None:
        task = make_task(title="Write a poem", output_text="Roses are red")
        assessment = assess_proof(task, classifier=KeywordProofClassifier())
        assert assessment.state == "not_required"
        assert assessment.label == "Proof N/A"
        assert not assessment.requires_proof

    def test_missing_report(self) -> None:
        assessment = assess_proof(make_task(output_text="did stuff"), classifier=AlwaysRequireProof())
        assert assessment.state == "missing"
        assert assessment.detail == "No implementation report was found in task output."

    def test_analysis_only_counts_as_missing(self) -> None:
        output = block({"result": "analysis_only", "changed_files": []})
        assessment = assess_proof(make_task(), output, AlwaysRequireProof())
        assert assessment.state == "missing"
        assert assessment.report is not None

    def test_invalid(self) -> None:
        output = block({"result": "implemented", "changed_files": []})
        assessment = assess_proof(make_task(), output, AlwaysRequireProof())
        assert assessment.state == "invalid"
        assert assessment.label == "Proof Invalid"

    def test_explicit_output_overrides_task_output(self) -> None:
        task = make_task(output_text=block({"result": "implemented", "changed_files": ["a.py"]}))
        assert assess_proof(task, "", AlwaysRequireProof()).state == "missing"
