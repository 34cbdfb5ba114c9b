"""Readiness gates for each workflow phase.

Every gate is a pure function of a ``Case`` and returns a ``GateResult``.
Callers use them to enable actions; services re-check them before
committing any change that depends on them.
"""

from dataclasses import asdict, dataclass

from caseflow.errors import ReadinessNotMet
from caseflow.models.case import Case, CaseDocumentType, CaseStatus


@dataclass(frozen=True)
class GateResult:
    ready: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.ready

    def require(self) -> None:
        if not self.ready:
            raise ReadinessNotMet(
                self.reason or "Phase is not ready", details=self.reason
            )


READY = GateResult(True)


def _has_text(document) -> bool:
    raw = (document.original_text or "").strip()
    cleaned = (document.cleaned_text or "").strip()
    return bool(raw or cleaned)


def can_run_analysis(case: Case) -> GateResult:
    complaints_a = case.documents_of_type(CaseDocumentType.complaint_a)
    complaints_b = case.documents_of_type(CaseDocumentType.complaint_b)
    if len(complaints_a) != 1 or len(complaints_b) != 1:
        return GateResult(False, "Both complaints must be uploaded to run analysis")
    if not _has_text(complaints_a[0]) or not _has_text(complaints_b[0]):
        return GateResult(
            False, "Both complaints must have extracted text to run analysis"
        )
    if len(case.complainants) < 2:
        return GateResult(False, "Two complainants are required for analysis")
    return READY


def _requires_comparison(case: Case) -> GateResult:
    if case.comparison_result is None:
        return GateResult(False, "Run the statement comparison first")
    return READY


def can_run_policy_alignment(case: Case) -> GateResult:
    return _requires_comparison(case)


def can_run_decision_support(case: Case) -> GateResult:
    return _requires_comparison(case)


def can_generate_action(case: Case) -> GateResult:
    if case.selected_recommendation is None:
        return GateResult(False, "Select a recommended action first")
    return READY


def can_finalize(case: Case, bypass: bool = False) -> GateResult:
    if case.status != CaseStatus.awaiting_action:
        return GateResult(
            False,
            f"Case must be awaiting action to finalize (status is {case.status.value})",
        )
    if bypass:
        return READY
    generated = case.generated_document
    if generated is None:
        return GateResult(False, "No action document has been generated")
    if not generated.is_approved:
        return GateResult(False, "The action document has not passed supervisor review")
    return READY


def evaluate(case: Case) -> dict:
    return {
        "case_id": case.id,
        "status": case.status,
        "analysis_version": case.analysis_version,
        "reanalysis_required": case.reanalysis_required,
        "can_run_analysis": asdict(can_run_analysis(case)),
        "can_run_policy_alignment": asdict(can_run_policy_alignment(case)),
        "can_run_decision_support": asdict(can_run_decision_support(case)),
        "can_generate_action": asdict(can_generate_action(case)),
        "can_finalize": asdict(can_finalize(case)),
    }
