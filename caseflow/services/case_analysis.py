"""Analysis phases and the re-analysis invalidation cascade.

Every phase follows the same shape: snapshot ``analysis_version`` and build
the collaborator request under the case lock, await the collaborator with
the lock released, then re-enter the lock and apply the result only if the
version is unchanged. Results computed against an older version, or against
evidence that has since changed, are logged and discarded.

The locked sections are synchronous and run in a worker thread through
``asyncio.to_thread`` so that waiting on a case lock never blocks the event
loop. Sections that write also take the case row lock, which serializes
writers across processes.
"""

import asyncio
import logging
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from caseflow.errors import ReadinessNotMet, RecommendationError, StaleResult
from caseflow.models.case import (
    PRIOR_HISTORY_TYPES,
    AuditAction,
    Case,
    CaseDocumentType,
    CaseStatus,
    ComparisonResult,
    GeneratedDocument,
    InvolvedEmployee,
    PolicyMatch,
    Recommendation,
    ReviewSession,
    ReviewStatus,
)
from caseflow.models.policy import WorkplacePolicy
from caseflow.schemas.intelligence import (
    ActionDocumentRequest,
    CaseDetailsInput,
    ComparisonPayload,
    ComparisonRequest,
    GeneratedDocumentPayload,
    PartyInput,
    PolicyInput,
    PolicyMatchPayload,
    PolicyMatchRequest,
    PolicySectionInput,
    PriorHistoryInput,
    RecommendationOptionPayload,
    RecommendationPayload,
    RecommendationRequest,
    StatementInput,
    WitnessStatementInput,
)
from caseflow.services.case_audit import CaseAudit
from caseflow.services.case_locks import case_locks
from caseflow.services.case_status import retire_generated_document, transition
from caseflow.services.case_store import ensure_mutable, load_case
from caseflow.services.event import EventType, publish_event
from caseflow.services.intelligence import CaseIntelligence
from caseflow.services.readiness import (
    can_generate_action,
    can_run_analysis,
    can_run_decision_support,
    can_run_policy_alignment,
)
from caseflow.services.workplace_policy import workplace_policies

logger = logging.getLogger(__name__)

POLICY_ALIGNMENT = "policy_alignment"
DECISION_SUPPORT = "decision_support"

_AUTO_RUN_FLAGS = {
    POLICY_ALIGNMENT: "auto_run_policy_alignment",
    DECISION_SUPPORT: "auto_run_decision_support",
}

_PRIOR_HISTORY_SUMMARY_CHARS = 500


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------


def _case_details(case: Case) -> CaseDetailsInput:
    return CaseDetailsInput(
        case_number=case.case_number,
        category=case.category.value,
        incident_date=case.incident_date.isoformat(),
        location=case.location or "",
        department=case.department or "",
    )


def _party(employee: InvolvedEmployee) -> PartyInput:
    return PartyInput(
        name=employee.name,
        role=employee.role or "",
        department=employee.department or "",
        employee_number=employee.employee_number,
    )


def _prior_history(case: Case) -> list[PriorHistoryInput]:
    history = []
    for document in case.documents:
        if document.document_type not in PRIOR_HISTORY_TYPES:
            continue
        history.append(
            PriorHistoryInput(
                type=document.document_type.value,
                document_date=document.created_at.date().isoformat(),
                summary=document.text[:_PRIOR_HISTORY_SUMMARY_CHARS],
                employee_name=document.employee.name if document.employee else None,
            )
        )
    return history


def build_comparison_request(case: Case) -> ComparisonRequest:
    complaint_a, complaint_b = case.complaint_a, case.complaint_b
    witness_statements = [
        WitnessStatementInput(
            witness_name=document.employee.name if document.employee else "Unknown",
            text=document.text,
        )
        for document in case.documents_of_type(CaseDocumentType.witness_statement)
    ]
    return ComparisonRequest(
        complaint_a=StatementInput(
            text=complaint_a.text, detected_language=complaint_a.detected_language
        ),
        complainant_a=_party(case.complainant_a),
        complaint_b=StatementInput(
            text=complaint_b.text, detected_language=complaint_b.detected_language
        ),
        complainant_b=_party(case.complainant_b),
        case_details=_case_details(case),
        witness_statements=witness_statements,
        prior_history=_prior_history(case),
    )


def comparison_payload(result: ComparisonResult) -> ComparisonPayload:
    return ComparisonPayload(
        **{field: getattr(result, field) for field in ComparisonPayload.model_fields}
    )


def _policy_input(policy: WorkplacePolicy) -> PolicyInput:
    return PolicyInput(
        id=policy.id,
        title=policy.title,
        version=policy.version,
        sections=[
            PolicySectionInput(
                id=section.id,
                section_number=section.section_number,
                title=section.title,
                content=section.content or "",
                section_type=section.section_type.value,
            )
            for section in policy.sections
        ],
    )


def _match_payloads(case: Case) -> list[PolicyMatchPayload]:
    return [
        PolicyMatchPayload(
            section_number=match.section_number,
            section_title=match.section_title,
            relevance_explanation=match.relevance_explanation,
            match_confidence=match.match_confidence,
        )
        for match in case.policy_matches
    ]


def _recommendation_option(rec: Recommendation) -> RecommendationOptionPayload:
    return RecommendationOptionPayload(
        action=rec.action,
        reasoning=rec.reasoning,
        risk_assessment=rec.risk_assessment,
        suggested_next_steps=rec.suggested_next_steps or [],
        confidence=rec.confidence,
    )


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def invalidate_downstream(case: Case) -> bool:
    """Deactivate policy matches, recommendations and the generated document.

    Returns whether anything was active. Calling it again is a no-op.
    """
    changed = False
    for match in case.policy_matches:
        match.is_active = False
        changed = True
    if retire_generated_document(case, "Superseded by re-analysis"):
        changed = True
    for rec in case.recommendations:
        rec.is_active = False
        rec.is_selected = False
        changed = True
    return changed


def _ensure_current(case: Case, expected_version: int) -> None:
    if case.analysis_version != expected_version:
        raise StaleResult(case.id, expected_version, case.analysis_version)


def _reload(db: Session, case_id) -> Case:
    case = load_case(db, case_id)
    db.refresh(case)
    return case


def _discard(db: Session, case_id, phase: str, exc: StaleResult) -> Case:
    logger.warning("Discarding stale %s result: %s", phase, exc)
    return _reload(db, case_id)


# ---------------------------------------------------------------------------
# Snapshots (read under the case lock before a collaborator call)
# ---------------------------------------------------------------------------


def _prepare_comparison(db: Session, case_id):
    case = load_case(db, case_id)
    with case_locks.hold(case.id):
        db.refresh(case)
        ensure_mutable(case)
        can_run_analysis(case).require()
        return (
            case.id,
            case.analysis_version,
            case.evidence_revision,
            build_comparison_request(case),
        )


def _prepare_policy_alignment(db: Session, case_id):
    case = load_case(db, case_id)
    with case_locks.hold(case.id):
        db.refresh(case)
        ensure_mutable(case)
        can_run_policy_alignment(case).require()
        policy = workplace_policies.get_active(db)
        if policy is None:
            raise ReadinessNotMet(
                "No active workplace policy to align against",
                details="No active workplace policy to align against",
            )
        request = PolicyMatchRequest(
            policy=_policy_input(policy),
            comparison=comparison_payload(case.comparison_result),
            case_details=_case_details(case),
        )
        return case.id, case.analysis_version, policy.id, request


def _prepare_decision_support(db: Session, case_id):
    case = load_case(db, case_id)
    with case_locks.hold(case.id):
        db.refresh(case)
        ensure_mutable(case)
        can_run_decision_support(case).require()
        request = RecommendationRequest(
            case_details=_case_details(case),
            comparison=comparison_payload(case.comparison_result),
            policy_matches=_match_payloads(case) or None,
            prior_history=_prior_history(case) or None,
        )
        return case.id, case.analysis_version, request


def _prepare_action_document(db: Session, case_id):
    case = load_case(db, case_id)
    with case_locks.hold(case.id):
        db.refresh(case)
        ensure_mutable(case)
        can_generate_action(case).require()
        selected = case.selected_recommendation
        request = ActionDocumentRequest(
            case_details=_case_details(case),
            recommendation=_recommendation_option(selected),
            comparison=comparison_payload(case.comparison_result),
            complainants=[_party(c) for c in case.complainants],
            policy_matches=_match_payloads(case) or None,
        )
        return case.id, case.analysis_version, selected.id, request


def _pending_snapshot(db: Session, case_id):
    case = _reload(db, case_id)
    has_policy = workplace_policies.get_active(db) is not None
    return case.id, case.auto_run_policy_alignment, has_policy


class CaseAnalysis:
    # ------------------------------------------------------------------
    # Apply (synchronous, under the case lock)
    # ------------------------------------------------------------------

    @staticmethod
    def apply_comparison(
        db: Session,
        case_id: str,
        expected_version: int,
        payload: ComparisonPayload,
        actor: str | None = None,
        evidence_revision: int | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            _ensure_current(case, expected_version)
            if (
                evidence_revision is not None
                and evidence_revision != case.evidence_revision
            ):
                raise StaleResult(
                    case.id,
                    expected_version,
                    case.analysis_version,
                    reason=(
                        f"was built from evidence revision {evidence_revision}, "
                        f"current is {case.evidence_revision}"
                    ),
                )

            previous = case.comparison_result
            if previous is not None:
                previous.is_active = False
            invalidate_downstream(case)
            if case.status != CaseStatus.pending_review:
                transition(
                    case, CaseStatus.pending_review, "Statements analyzed", actor=actor
                )
            case.analysis_version += 1
            if evidence_revision is None:
                evidence_revision = case.evidence_revision
            case.comparison_results.append(
                ComparisonResult(
                    analysis_version=case.analysis_version,
                    evidence_revision=evidence_revision,
                    **payload.model_dump(),
                )
            )
            case.auto_run_policy_alignment = True
            case.auto_run_decision_support = True
            CaseAudit.append(
                case,
                AuditAction.analysis_performed,
                f"Statement comparison completed (analysis version {case.analysis_version})",
                actor=actor,
                new_value=str(case.analysis_version),
            )
            db.commit()
            db.refresh(case)
        logger.info(
            "Applied comparison to case %s, analysis version %d",
            case.id,
            case.analysis_version,
        )
        publish_event(
            EventType.analysis_completed,
            entity_type="case",
            entity_id=case.id,
            actor=actor,
            case_id=case.id,
            payload={"analysis_version": case.analysis_version},
        )
        return case

    @staticmethod
    def apply_policy_matches(
        db: Session,
        case_id: str,
        expected_version: int,
        policy_id: uuid.UUID,
        matches: list[PolicyMatchPayload],
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            _ensure_current(case, expected_version)

            for match in case.policy_matches:
                match.is_active = False
            for match in matches:
                case.policy_match_history.append(
                    PolicyMatch(
                        analysis_version=case.analysis_version,
                        policy_id=policy_id,
                        section_number=match.section_number,
                        section_title=match.section_title,
                        relevance_explanation=match.relevance_explanation,
                        match_confidence=match.match_confidence,
                    )
                )
            case.auto_run_policy_alignment = False
            CaseAudit.append(
                case,
                AuditAction.policy_match_completed,
                f"Matched {len(matches)} policy section(s)",
                actor=actor,
            )
            db.commit()
            db.refresh(case)
        logger.info("Applied %d policy matches to case %s", len(matches), case.id)
        publish_event(
            EventType.policy_alignment_completed,
            entity_type="case",
            entity_id=case.id,
            actor=actor,
            case_id=case.id,
            payload={"matches": len(matches), "policy_id": str(policy_id)},
        )
        return case

    @staticmethod
    def apply_recommendations(
        db: Session,
        case_id: str,
        expected_version: int,
        payload: RecommendationPayload,
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            _ensure_current(case, expected_version)

            had_selection = case.selected_recommendation is not None
            for rec in case.recommendations:
                rec.is_active = False
                rec.is_selected = False
            if had_selection:
                retire_generated_document(case, "Recommendations regenerated")
                if case.status == CaseStatus.awaiting_action:
                    transition(
                        case,
                        CaseStatus.pending_review,
                        "Recommendations regenerated",
                        actor=actor,
                    )
            for option in payload.recommendations:
                case.recommendation_history.append(
                    Recommendation(
                        analysis_version=case.analysis_version, **option.model_dump()
                    )
                )
            case.auto_run_decision_support = False
            CaseAudit.append(
                case,
                AuditAction.recommendation_generated,
                f"Generated {len(payload.recommendations)} recommendation(s)",
                actor=actor,
            )
            db.commit()
            db.refresh(case)
        logger.info(
            "Applied %d recommendations to case %s",
            len(payload.recommendations),
            case.id,
        )
        publish_event(
            EventType.decision_support_completed,
            entity_type="case",
            entity_id=case.id,
            actor=actor,
            case_id=case.id,
            payload={"recommendations": len(payload.recommendations)},
        )
        return case

    @staticmethod
    def apply_generated_document(
        db: Session,
        case_id: str,
        expected_version: int,
        recommendation_id: uuid.UUID,
        payload: GeneratedDocumentPayload,
        actor: str | None = None,
    ) -> Case:
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            ensure_mutable(case)
            _ensure_current(case, expected_version)
            selected = case.selected_recommendation
            if selected is None or selected.id != recommendation_id:
                raise StaleResult(
                    case.id,
                    expected_version,
                    case.analysis_version,
                    reason="was drafted for a recommendation that is no longer selected",
                )

            retire_generated_document(case, "Replaced by a newly generated document")
            document = GeneratedDocument(
                id=uuid.uuid4(),
                recommendation_id=selected.id,
                analysis_version=case.analysis_version,
                action=selected.action,
                title=payload.title,
                sections=[section.model_dump() for section in payload.sections],
                talking_points=payload.talking_points,
                policy_references=payload.policy_references,
                follow_up_timeline=payload.follow_up_timeline,
            )
            case.generated_documents.append(document)
            case.review_sessions.append(
                ReviewSession(
                    generated_document=document,
                    generated_document_id=document.id,
                    status=ReviewStatus.pending,
                )
            )
            CaseAudit.append(
                case,
                AuditAction.action_generated,
                f"Generated {selected.action.value} document",
                actor=actor,
                new_value=selected.action.value,
            )
            db.commit()
            db.refresh(case)
        logger.info("Stored generated document %s for case %s", document.id, case.id)
        publish_event(
            EventType.action_generated,
            entity_type="generated_document",
            entity_id=document.id,
            actor=actor,
            case_id=case.id,
            payload={"action": document.action.value},
        )
        return case

    @staticmethod
    def consume_auto_run(db: Session, case_id: str, phase: str) -> bool:
        """Clear the one-shot auto-run flag for ``phase``; return whether it was set."""
        flag = _AUTO_RUN_FLAGS.get(phase)
        if flag is None:
            raise HTTPException(status_code=400, detail=f"Invalid phase: {phase}")
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            if case.is_locked or not getattr(case, flag):
                db.rollback()
                return False
            setattr(case, flag, False)
            db.commit()
        logger.debug("Consumed %s auto-run flag for case %s", phase, case.id)
        return True

    @staticmethod
    def restore_auto_run(db: Session, case_id: str, phase: str) -> None:
        """Set the auto-run flag for ``phase`` again after a failed pending run."""
        flag = _AUTO_RUN_FLAGS[phase]
        db.rollback()
        case = load_case(db, case_id)
        with case_locks.hold(case.id):
            db.refresh(case, with_for_update=True)
            if not case.is_locked:
                setattr(case, flag, True)
            db.commit()
        logger.info("Restored %s auto-run flag for case %s", phase, case.id)

    # ------------------------------------------------------------------
    # Phases (locked sections run in a worker thread, the collaborator is
    # awaited with the lock released)
    # ------------------------------------------------------------------

    @staticmethod
    async def run_analysis(
        db: Session,
        case_id: str,
        intelligence: CaseIntelligence,
        actor: str | None = None,
    ) -> Case:
        case_id, expected_version, evidence_revision, request = await asyncio.to_thread(
            _prepare_comparison, db, case_id
        )
        payload = await intelligence.run_comparison(request)
        try:
            return await asyncio.to_thread(
                CaseAnalysis.apply_comparison,
                db,
                case_id,
                expected_version,
                payload,
                actor=actor,
                evidence_revision=evidence_revision,
            )
        except StaleResult as exc:
            return await asyncio.to_thread(_discard, db, case_id, "comparison", exc)

    @staticmethod
    async def run_policy_alignment(
        db: Session,
        case_id: str,
        intelligence: CaseIntelligence,
        actor: str | None = None,
    ) -> Case:
        case_id, expected_version, policy_id, request = await asyncio.to_thread(
            _prepare_policy_alignment, db, case_id
        )
        matches = await intelligence.match_policy(request)
        try:
            return await asyncio.to_thread(
                CaseAnalysis.apply_policy_matches,
                db,
                case_id,
                expected_version,
                policy_id,
                matches,
                actor=actor,
            )
        except StaleResult as exc:
            return await asyncio.to_thread(
                _discard, db, case_id, "policy alignment", exc
            )

    @staticmethod
    async def run_decision_support(
        db: Session,
        case_id: str,
        intelligence: CaseIntelligence,
        actor: str | None = None,
    ) -> Case:
        case_id, expected_version, request = await asyncio.to_thread(
            _prepare_decision_support, db, case_id
        )
        payload = await intelligence.get_recommendations(request)
        if not payload.recommendations:
            raise RecommendationError(
                "Decision support returned no recommendations",
                details={"case_id": str(case_id)},
            )
        try:
            return await asyncio.to_thread(
                CaseAnalysis.apply_recommendations,
                db,
                case_id,
                expected_version,
                payload,
                actor=actor,
            )
        except StaleResult as exc:
            return await asyncio.to_thread(
                _discard, db, case_id, "decision support", exc
            )

    @staticmethod
    async def generate_action(
        db: Session,
        case_id: str,
        intelligence: CaseIntelligence,
        actor: str | None = None,
    ) -> Case:
        case_id, expected_version, recommendation_id, request = await asyncio.to_thread(
            _prepare_action_document, db, case_id
        )
        payload = await intelligence.generate_action_document(request)
        try:
            return await asyncio.to_thread(
                CaseAnalysis.apply_generated_document,
                db,
                case_id,
                expected_version,
                recommendation_id,
                payload,
                actor=actor,
            )
        except StaleResult as exc:
            return await asyncio.to_thread(_discard, db, case_id, "action document", exc)

    @staticmethod
    async def _run_flagged(
        db: Session,
        case_id: uuid.UUID,
        phase: str,
        run,
        intelligence: CaseIntelligence,
        actor: str | None,
    ) -> None:
        consumed = await asyncio.to_thread(
            CaseAnalysis.consume_auto_run, db, case_id, phase
        )
        if not consumed:
            return
        try:
            await run(db, case_id, intelligence, actor=actor)
        except Exception:
            await asyncio.to_thread(CaseAnalysis.restore_auto_run, db, case_id, phase)
            raise

    @staticmethod
    async def run_pending_phases(
        db: Session,
        case_id: str,
        intelligence: CaseIntelligence,
        actor: str | None = None,
    ) -> Case:
        """Run the phases flagged by the last analysis, policy alignment first.

        A phase that fails keeps its flag, and the error stops the run before
        any later phase starts.
        """
        case_id, policy_pending, has_policy = await asyncio.to_thread(
            _pending_snapshot, db, case_id
        )
        if policy_pending:
            if has_policy:
                await CaseAnalysis._run_flagged(
                    db,
                    case_id,
                    POLICY_ALIGNMENT,
                    CaseAnalysis.run_policy_alignment,
                    intelligence,
                    actor,
                )
            else:
                logger.info(
                    "Deferring policy alignment for case %s: no active policy", case_id
                )
        await CaseAnalysis._run_flagged(
            db,
            case_id,
            DECISION_SUPPORT,
            CaseAnalysis.run_decision_support,
            intelligence,
            actor,
        )
        return await asyncio.to_thread(_reload, db, case_id)


case_analysis = CaseAnalysis()
