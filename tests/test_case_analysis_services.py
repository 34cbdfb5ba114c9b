import asyncio
import logging
import threading

import pytest
from fastapi import HTTPException

from caseflow.errors import (
    AnalysisError,
    CaseLocked,
    PolicyError,
    ReadinessNotMet,
    RecommendationError,
    StaleResult,
)
from caseflow.models.case import (
    AuditAction,
    CaseStatus,
    ComparisonResult,
    PolicyMatch,
    Recommendation,
    RecommendedAction,
    ReviewStatus,
)
from caseflow.schemas.case import CaseDocumentCreate, InvolvedEmployeeCreate
from caseflow.schemas.intelligence import RecommendationPayload
from caseflow.services.case_analysis import (
    DECISION_SUPPORT,
    POLICY_ALIGNMENT,
    CaseAnalysis,
    build_comparison_request,
    invalidate_downstream,
)
from caseflow.services.case_integrity import case_integrity
from caseflow.services.case_locks import case_locks
from caseflow.services.case_status import case_status


def _add_witness_statement(db_session, case_id, text="I saw them arguing"):
    witness = case_integrity.add_person(
        db_session, case_id, InvolvedEmployeeCreate(name="Lee Park")
    )
    case_integrity.add_document(
        db_session,
        case_id,
        CaseDocumentCreate(
            document_type="witness_statement",
            original_text=text,
            employee_id=witness.id,
        ),
    )
    return witness


async def _until_awaited(mock, count):
    while mock.await_count < count:
        await asyncio.sleep(0.01)


class TestBuildComparisonRequest:
    def test_carries_both_parties(self, ready_case) -> None:
        request = build_comparison_request(ready_case)
        assert request.complainant_a.name == "Dana Reyes"
        assert request.complainant_b.name == "Sam Okafor"
        assert request.complaint_a.text == "Sam shouted at me during handover."
        assert request.case_details.case_number == ready_case.case_number
        assert request.witness_statements == []

    def test_witness_and_prior_history(self, db_session, ready_case, complainants) -> None:
        _add_witness_statement(db_session, ready_case.id)
        _, second = complainants
        case_integrity.add_document(
            db_session,
            ready_case.id,
            CaseDocumentCreate(
                document_type="warning_document",
                original_text="x" * 800,
                employee_id=second.id,
            ),
        )
        db_session.refresh(ready_case)
        request = build_comparison_request(ready_case)
        assert [w.witness_name for w in request.witness_statements] == ["Lee Park"]
        assert len(request.prior_history) == 1
        history = request.prior_history[0]
        assert history.type == "warning_document"
        assert history.employee_name == "Sam Okafor"
        assert len(history.summary) == 500


class TestRunAnalysis:
    @pytest.mark.asyncio
    async def test_first_analysis(self, db_session, ready_case, fake_intelligence) -> None:
        case = await CaseAnalysis.run_analysis(
            db_session, ready_case.id, fake_intelligence, actor="sup"
        )
        assert case.status == CaseStatus.pending_review
        assert case.comparison_result is not None
        assert case.comparison_result.analysis_version == 1
        assert case.policy_matches == []
        assert case.recommendations == []
        assert case.auto_run_policy_alignment is True
        assert case.auto_run_decision_support is True
        assert case.analysis_version == 1
        assert case.audit_entries[-1].action == AuditAction.analysis_performed
        fake_intelligence.run_comparison.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_ready(self, db_session, case, complainants, fake_intelligence) -> None:
        with pytest.raises(ReadinessNotMet):
            await CaseAnalysis.run_analysis(db_session, case.id, fake_intelligence)
        fake_intelligence.run_comparison.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_collaborator_failure_changes_nothing(
        self, db_session, ready_case, fake_intelligence
    ) -> None:
        fake_intelligence.run_comparison.side_effect = AnalysisError("service down")
        audit_count = len(ready_case.audit_entries)
        with pytest.raises(AnalysisError):
            await CaseAnalysis.run_analysis(db_session, ready_case.id, fake_intelligence)
        db_session.refresh(ready_case)
        assert ready_case.status == CaseStatus.in_progress
        assert ready_case.analysis_version == 0
        assert ready_case.comparison_result is None
        assert len(ready_case.audit_entries) == audit_count

    @pytest.mark.asyncio
    async def test_reanalysis_after_selection(
        self, db_session, selected_case, fake_intelligence
    ) -> None:
        first_result = selected_case.comparison_result.id
        _add_witness_statement(db_session, selected_case.id)
        fake_intelligence.run_comparison.return_value = (
            fake_intelligence.run_comparison.return_value.model_copy(
                update={"neutral_summary": "Re-analysed with witness input."}
            )
        )

        case = await CaseAnalysis.run_analysis(
            db_session, selected_case.id, fake_intelligence
        )
        assert case.status == CaseStatus.pending_review
        assert case.comparison_result.id != first_result
        assert case.comparison_result.neutral_summary == "Re-analysed with witness input."
        assert case.policy_matches == []
        assert case.recommendations == []
        assert case.selected_recommendation is None
        assert case.analysis_version == 2
        request = fake_intelligence.run_comparison.await_args.args[0]
        assert request.witness_statements[0].text == "I saw them arguing"

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(
        self, db_session, ready_case, payloads, fake_intelligence, caplog
    ) -> None:
        async def finish_after_competing_run(request):
            CaseAnalysis.apply_comparison(
                db_session,
                ready_case.id,
                0,
                payloads.comparison(neutral_summary="competing run"),
            )
            return payloads.comparison(neutral_summary="late run")

        fake_intelligence.run_comparison.side_effect = finish_after_competing_run
        with caplog.at_level(logging.WARNING):
            case = await CaseAnalysis.run_analysis(
                db_session, ready_case.id, fake_intelligence
            )
        assert case.analysis_version == 1
        assert case.comparison_result.neutral_summary == "competing run"
        assert "Discarding stale comparison result" in caplog.text

    @pytest.mark.asyncio
    async def test_result_for_closed_case(
        self, db_session, ready_case, payloads, fake_intelligence
    ) -> None:
        async def close_meanwhile(request):
            ready_case.status = CaseStatus.closed
            db_session.commit()
            return payloads.comparison()

        fake_intelligence.run_comparison.side_effect = close_meanwhile
        with pytest.raises(CaseLocked):
            await CaseAnalysis.run_analysis(db_session, ready_case.id, fake_intelligence)

    @pytest.mark.asyncio
    async def test_result_from_superseded_evidence_is_discarded(
        self, db_session, ready_case, payloads, fake_intelligence, caplog
    ) -> None:
        gates = {False: asyncio.Event(), True: asyncio.Event()}

        async def comparison(request):
            with_witness = bool(request.witness_statements)
            await gates[with_witness].wait()
            summary = "with witness" if with_witness else "older evidence"
            return payloads.comparison(neutral_summary=summary)

        fake_intelligence.run_comparison.side_effect = comparison
        older = asyncio.create_task(
            CaseAnalysis.run_analysis(db_session, ready_case.id, fake_intelligence)
        )
        await _until_awaited(fake_intelligence.run_comparison, 1)
        _add_witness_statement(db_session, ready_case.id)
        newer = asyncio.create_task(
            CaseAnalysis.run_analysis(db_session, ready_case.id, fake_intelligence)
        )
        await _until_awaited(fake_intelligence.run_comparison, 2)

        gates[False].set()
        with caplog.at_level(logging.WARNING):
            case = await older
        assert case.analysis_version == 0
        assert case.comparison_result is None
        assert "Discarding stale comparison result" in caplog.text

        gates[True].set()
        case = await newer
        assert case.analysis_version == 1
        assert case.comparison_result.neutral_summary == "with witness"
        assert case.reanalysis_required is False

    @pytest.mark.asyncio
    async def test_waiting_for_case_lock_keeps_loop_running(
        self, db_session, ready_case, fake_intelligence
    ) -> None:
        held = threading.Event()
        release = threading.Event()

        def hold_case():
            with case_locks.hold(ready_case.id):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_case)
        holder.start()
        held.wait(5)
        analysis = asyncio.create_task(
            CaseAnalysis.run_analysis(db_session, ready_case.id, fake_intelligence)
        )
        ticks = 0
        for _ in range(5):
            await asyncio.sleep(0.01)
            ticks += 1
        assert ticks == 5
        assert not analysis.done()
        fake_intelligence.run_comparison.assert_not_awaited()

        release.set()
        case = await analysis
        holder.join()
        assert case.analysis_version == 1


class TestApplyComparison:
    def test_version_is_monotonic(self, db_session, ready_case, payloads) -> None:
        versions = []
        for _ in range(3):
            case = CaseAnalysis.apply_comparison(
                db_session, ready_case.id, ready_case.analysis_version, payloads.comparison()
            )
            versions.append(case.analysis_version)
        assert versions == [1, 2, 3]
        results = db_session.query(ComparisonResult).all()
        assert len(results) == 3
        assert [r.is_active for r in results].count(True) == 1

    def test_wrong_version_raises(self, db_session, analyzed_case, payloads) -> None:
        with pytest.raises(StaleResult) as exc:
            CaseAnalysis.apply_comparison(
                db_session, analyzed_case.id, 0, payloads.comparison()
            )
        assert exc.value.current_version == 1

    def test_reanalysis_in_pending_review_writes_no_status_entry(
        self, db_session, analyzed_case, payloads
    ) -> None:
        before = len(analyzed_case.audit_entries)
        case = CaseAnalysis.apply_comparison(
            db_session, analyzed_case.id, 1, payloads.comparison()
        )
        new_actions = [e.action for e in case.audit_entries[before:]]
        assert new_actions == [AuditAction.analysis_performed]

    def test_records_evidence_revision(self, db_session, ready_case, payloads) -> None:
        revision = ready_case.evidence_revision
        case = CaseAnalysis.apply_comparison(
            db_session, ready_case.id, 0, payloads.comparison(), evidence_revision=revision
        )
        assert case.comparison_result.evidence_revision == revision
        assert case.reanalysis_required is False

        _add_witness_statement(db_session, ready_case.id)
        db_session.refresh(case)
        assert case.reanalysis_required is True

    def test_superseded_evidence_raises(self, db_session, ready_case, payloads) -> None:
        with pytest.raises(StaleResult) as exc:
            CaseAnalysis.apply_comparison(
                db_session,
                ready_case.id,
                0,
                payloads.comparison(),
                evidence_revision=ready_case.evidence_revision - 1,
            )
        assert "evidence revision" in str(exc.value)
        db_session.refresh(ready_case)
        assert ready_case.analysis_version == 0
        assert ready_case.comparison_result is None


class TestInvalidateDownstream:
    def test_clears_everything_downstream(self, db_session, generated_case) -> None:
        session = generated_case.review_session
        assert invalidate_downstream(generated_case) is True
        assert generated_case.recommendations == []
        assert generated_case.generated_document is None
        assert session.status == ReviewStatus.cancelled

    def test_idempotent(self, db_session, recommended_case) -> None:
        assert invalidate_downstream(recommended_case) is True
        assert invalidate_downstream(recommended_case) is False

    def test_nothing_to_clear(self, analyzed_case) -> None:
        assert invalidate_downstream(analyzed_case) is False


class TestPolicyAlignment:
    @pytest.mark.asyncio
    async def test_stores_matches(
        self, db_session, analyzed_case, active_policy, fake_intelligence
    ) -> None:
        case = await CaseAnalysis.run_policy_alignment(
            db_session, analyzed_case.id, fake_intelligence
        )
        assert [m.section_number for m in case.policy_matches] == ["4.2"]
        assert case.policy_matches[0].policy_id == active_policy.id
        assert case.auto_run_policy_alignment is False
        request = fake_intelligence.match_policy.await_args.args[0]
        assert request.policy.title == "Workplace Conduct"
        assert request.comparison.neutral_summary.startswith("Two employees")

    @pytest.mark.asyncio
    async def test_rerun_replaces_matches(
        self, db_session, analyzed_case, active_policy, fake_intelligence
    ) -> None:
        await CaseAnalysis.run_policy_alignment(
            db_session, analyzed_case.id, fake_intelligence
        )
        case = await CaseAnalysis.run_policy_alignment(
            db_session, analyzed_case.id, fake_intelligence
        )
        assert len(case.policy_matches) == 1

    @pytest.mark.asyncio
    async def test_requires_active_policy(
        self, db_session, analyzed_case, fake_intelligence
    ) -> None:
        with pytest.raises(ReadinessNotMet):
            await CaseAnalysis.run_policy_alignment(
                db_session, analyzed_case.id, fake_intelligence
            )

    @pytest.mark.asyncio
    async def test_result_discarded_after_reanalysis(
        self, db_session, analyzed_case, active_policy, payloads, fake_intelligence, caplog
    ) -> None:
        async def reanalysed_meanwhile(request):
            CaseAnalysis.apply_comparison(
                db_session,
                analyzed_case.id,
                1,
                payloads.comparison(neutral_summary="re-run"),
            )
            return payloads.policy_matches()

        fake_intelligence.match_policy.side_effect = reanalysed_meanwhile
        with caplog.at_level(logging.WARNING):
            case = await CaseAnalysis.run_policy_alignment(
                db_session, analyzed_case.id, fake_intelligence
            )
        assert case.analysis_version == 2
        assert case.policy_matches == []
        assert case.auto_run_policy_alignment is True
        assert db_session.query(PolicyMatch).count() == 0
        assert "Discarding stale policy alignment result" in caplog.text

    @pytest.mark.asyncio
    async def test_requires_comparison(
        self, db_session, ready_case, active_policy, fake_intelligence
    ) -> None:
        with pytest.raises(ReadinessNotMet):
            await CaseAnalysis.run_policy_alignment(
                db_session, ready_case.id, fake_intelligence
            )
        fake_intelligence.match_policy.assert_not_awaited()


class TestDecisionSupport:
    @pytest.mark.asyncio
    async def test_stores_recommendations(
        self, db_session, analyzed_case, fake_intelligence
    ) -> None:
        case = await CaseAnalysis.run_decision_support(
            db_session, analyzed_case.id, fake_intelligence
        )
        assert [r.action for r in case.recommendations] == [
            RecommendedAction.coaching,
            RecommendedAction.counseling,
        ]
        assert case.selected_recommendation is None
        assert case.auto_run_decision_support is False
        assert case.status == CaseStatus.pending_review

    @pytest.mark.asyncio
    async def test_empty_result_raises(
        self, db_session, analyzed_case, fake_intelligence
    ) -> None:
        fake_intelligence.get_recommendations.return_value = RecommendationPayload(
            recommendations=[]
        )
        with pytest.raises(RecommendationError):
            await CaseAnalysis.run_decision_support(
                db_session, analyzed_case.id, fake_intelligence
            )

    @pytest.mark.asyncio
    async def test_result_discarded_after_reanalysis(
        self, db_session, analyzed_case, payloads, fake_intelligence, caplog
    ) -> None:
        async def reanalysed_meanwhile(request):
            CaseAnalysis.apply_comparison(
                db_session,
                analyzed_case.id,
                1,
                payloads.comparison(neutral_summary="re-run"),
            )
            return payloads.recommendations()

        fake_intelligence.get_recommendations.side_effect = reanalysed_meanwhile
        with caplog.at_level(logging.WARNING):
            case = await CaseAnalysis.run_decision_support(
                db_session, analyzed_case.id, fake_intelligence
            )
        assert case.analysis_version == 2
        assert case.recommendations == []
        assert case.auto_run_decision_support is True
        assert db_session.query(Recommendation).count() == 0
        assert "Discarding stale decision support result" in caplog.text

    @pytest.mark.asyncio
    async def test_rerun_clears_selection(
        self, db_session, generated_case, fake_intelligence, payloads
    ) -> None:
        fake_intelligence.get_recommendations.return_value = payloads.recommendations(
            RecommendedAction.written_warning
        )
        case = await CaseAnalysis.run_decision_support(
            db_session, generated_case.id, fake_intelligence
        )
        assert case.status == CaseStatus.pending_review
        assert case.selected_recommendation is None
        assert case.generated_document is None
        assert [r.action for r in case.recommendations] == [
            RecommendedAction.written_warning
        ]


class TestGenerateAction:
    @pytest.mark.asyncio
    async def test_opens_review(self, db_session, selected_case, fake_intelligence) -> None:
        case = await CaseAnalysis.generate_action(
            db_session, selected_case.id, fake_intelligence
        )
        generated = case.generated_document
        assert generated.title == "Coaching plan"
        assert generated.action == RecommendedAction.coaching
        assert [s["id"] for s in generated.sections] == ["summary", "expectations"]
        assert case.review_session.status == ReviewStatus.pending
        assert case.status == CaseStatus.awaiting_action

    @pytest.mark.asyncio
    async def test_requires_selection(
        self, db_session, recommended_case, fake_intelligence
    ) -> None:
        with pytest.raises(ReadinessNotMet):
            await CaseAnalysis.generate_action(
                db_session, recommended_case.id, fake_intelligence
            )

    @pytest.mark.asyncio
    async def test_selection_changed_while_drafting(
        self, db_session, selected_case, payloads, fake_intelligence
    ) -> None:
        other = selected_case.recommendations[1]

        async def switch_selection(request):
            case_status.select_recommendation(db_session, selected_case.id, other.id)
            return payloads.generated_document()

        fake_intelligence.generate_action_document.side_effect = switch_selection
        case = await CaseAnalysis.generate_action(
            db_session, selected_case.id, fake_intelligence
        )
        assert case.generated_document is None
        assert case.selected_recommendation.id == other.id

    @pytest.mark.asyncio
    async def test_regeneration_cancels_open_review(
        self, db_session, generated_case, fake_intelligence
    ) -> None:
        first = generated_case.review_session
        case = await CaseAnalysis.generate_action(
            db_session, generated_case.id, fake_intelligence
        )
        db_session.refresh(first)
        assert first.status == ReviewStatus.cancelled
        assert case.review_session.id != first.id
        assert len(case.review_sessions) == 2


class TestAutoRun:
    def test_consume_is_one_shot(self, db_session, analyzed_case) -> None:
        assert CaseAnalysis.consume_auto_run(db_session, analyzed_case.id, POLICY_ALIGNMENT)
        assert not CaseAnalysis.consume_auto_run(
            db_session, analyzed_case.id, POLICY_ALIGNMENT
        )
        db_session.refresh(analyzed_case)
        assert analyzed_case.auto_run_decision_support is True

    def test_invalid_phase(self, db_session, analyzed_case) -> None:
        with pytest.raises(HTTPException) as exc:
            CaseAnalysis.consume_auto_run(db_session, analyzed_case.id, "comparison")
        assert exc.value.status_code == 400

    def test_locked_case_does_not_consume(self, db_session, analyzed_case) -> None:
        analyzed_case.status = CaseStatus.escalated
        db_session.commit()
        assert not CaseAnalysis.consume_auto_run(
            db_session, analyzed_case.id, DECISION_SUPPORT
        )

    @pytest.mark.asyncio
    async def test_pending_phases_run_in_order(
        self, db_session, analyzed_case, active_policy, fake_intelligence
    ) -> None:
        case = await CaseAnalysis.run_pending_phases(
            db_session, analyzed_case.id, fake_intelligence
        )
        assert len(case.policy_matches) == 1
        assert len(case.recommendations) == 2
        assert case.auto_run_policy_alignment is False
        assert case.auto_run_decision_support is False
        recommendation_request = fake_intelligence.get_recommendations.await_args.args[0]
        assert recommendation_request.policy_matches[0].section_number == "4.2"

    @pytest.mark.asyncio
    async def test_policy_alignment_deferred_without_policy(
        self, db_session, analyzed_case, fake_intelligence
    ) -> None:
        case = await CaseAnalysis.run_pending_phases(
            db_session, analyzed_case.id, fake_intelligence
        )
        fake_intelligence.match_policy.assert_not_awaited()
        assert case.auto_run_policy_alignment is True
        assert case.auto_run_decision_support is False
        assert len(case.recommendations) == 2

    @pytest.mark.asyncio
    async def test_failed_phase_keeps_its_flag(
        self, db_session, analyzed_case, active_policy, fake_intelligence
    ) -> None:
        fake_intelligence.match_policy.side_effect = PolicyError("service down")
        with pytest.raises(PolicyError):
            await CaseAnalysis.run_pending_phases(
                db_session, analyzed_case.id, fake_intelligence
            )
        db_session.refresh(analyzed_case)
        assert analyzed_case.auto_run_policy_alignment is True
        assert analyzed_case.auto_run_decision_support is True
        fake_intelligence.get_recommendations.assert_not_awaited()

        fake_intelligence.match_policy.side_effect = None
        case = await CaseAnalysis.run_pending_phases(
            db_session, analyzed_case.id, fake_intelligence
        )
        assert len(case.policy_matches) == 1
        assert len(case.recommendations) == 2
        assert case.auto_run_policy_alignment is False
        assert case.auto_run_decision_support is False

    @pytest.mark.asyncio
    async def test_nothing_pending(
        self, db_session, analyzed_case, fake_intelligence
    ) -> None:
        CaseAnalysis.consume_auto_run(db_session, analyzed_case.id, POLICY_ALIGNMENT)
        CaseAnalysis.consume_auto_run(db_session, analyzed_case.id, DECISION_SUPPORT)
        await CaseAnalysis.run_pending_phases(
            db_session, analyzed_case.id, fake_intelligence
        )
        fake_intelligence.match_policy.assert_not_awaited()
        fake_intelligence.get_recommendations.assert_not_awaited()
