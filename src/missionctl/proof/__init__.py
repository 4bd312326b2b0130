"""Completion proof: classify, generate, assess and verify proof blocks."""

from missionctl.proof.assessment import ProofAssessment, assess_proof, parse_proof_report
from missionctl.proof.backfill import BackfillResult, backfill_proofs
from missionctl.proof.classifier import AlwaysRequireProof, KeywordProofClassifier, ProofClassifier, classifier_for
from missionctl.proof.generator import ChangedFile, ProofGenerator, ProofReport, append_proof
from missionctl.proof.requeue import RequeueResult, find_suspicious, requeue_suspicious

__all__ = [
    "AlwaysRequireProof",
    "BackfillResult",
    "ChangedFile",
    "KeywordProofClassifier",
    "ProofAssessment",
    "ProofClassifier",
    "ProofGenerator",
    "ProofReport",
    "RequeueResult",
    "append_proof",
    "assess_proof",
    "backfill_proofs",
    "classifier_for",
    "find_suspicious",
    "parse_proof_report",
    "requeue_suspicious",
]
