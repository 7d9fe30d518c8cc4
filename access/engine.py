"""
Access Decision Engine
======================
Orchestrates the decision cache, authorization checker, consent verifier
and restriction evaluator into a single authorization call.

Every evaluation that is not served from the cache schedules exactly one
audit write, whatever the outcome. Unexpected failures anywhere in the
pipeline fail closed: the caller receives a denial with risk tier
``critical`` and the ``error`` field populated, never a raw exception.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, TypeVar
import structlog

from core.models import (
    AccessDecision,
    AccessRequest,
    AuditContext,
    AuditOutcome,
    AuditRecord,
    ConsentOutcome,
    utcnow,
)
from core.exceptions import CollaboratorTimeoutError, MalformedCollaboratorResponseError
from core.utils import generate_id, redact_id
from .authorization import AuthorizationChecker
from .collaborators import AuditSink, ConsentVerifier, UserDirectory
from .decision_cache import DEFAULT_TTL_SECONDS, DecisionCache, RequestFingerprint
from .policy_tables import PolicyTables
from .restrictions import RestrictionEvaluator

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def build_audit_record(
    request: AccessRequest,
    decision: AccessDecision,
    outcome: AuditOutcome,
    context: AuditContext,
) -> AuditRecord:
    """Assemble the immutable audit record for one decision attempt."""
    return AuditRecord(
        record_id=generate_id("access"),
        timestamp=utcnow(),
        outcome=outcome,
        requester_id=request.requester_id,
        requester_role=request.requester_role,
        subject_id=request.subject_id,
        data_categories=request.data_categories,
        purpose=request.purpose,
        access_type=request.access_type,
        facility_id=request.facility_id,
        provider_id=request.provider_id,
        service_type=request.service_type,
        emergency_override=request.emergency_override,
        justification=request.justification,
        allowed=decision.allowed,
        consent_verified=decision.consent_verified,
        risk_tier=decision.risk_tier,
        audit_required=decision.audit_required,
        error=decision.error,
        network_origin=context.network_origin,
        user_agent=context.user_agent,
        session_id=context.session_id,
    )


class AccessDecisionEngine:
    """
    Consent-gated access authorization.

    Collaborators are injected; the engine holds no global state. The
    decision cache is the only state shared between concurrent
    evaluations.
    """

    NOTHING_RELEASABLE = "No requested data category is releasable"

    def __init__(
        self,
        user_directory: UserDirectory,
        consent_verifier: ConsentVerifier,
        audit_sink: AuditSink,
        policy: Optional[PolicyTables] = None,
        cache: Optional[DecisionCache] = None,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        collaborator_timeout: Optional[float] = None,
        evaluation_timeout: Optional[float] = None,
        context_provider: Optional[Callable[[], AuditContext]] = None,
    ):
        """
        Initialize the access decision engine.

        Args:
            user_directory: Identity/role/permission lookup.
            consent_verifier: Per-category consent lookup.
            audit_sink: Durable audit record destination.
            policy: Role/permission policy tables (defaults when None).
            cache: Decision cache (a fresh one with ``cache_ttl`` when None).
            cache_ttl: Seconds a decision stays servable.
            collaborator_timeout: Upper bound in seconds for each collaborator call.
            evaluation_timeout: Default upper bound for a whole evaluation.
            context_provider: Supplies audit context when evaluate() gets none.
        """
        self.user_directory = user_directory
        self.consent_verifier = consent_verifier
        self.audit_sink = audit_sink
        self.collaborator_timeout = collaborator_timeout
        self.evaluation_timeout = evaluation_timeout
        self.cache = cache or DecisionCache(default_ttl=cache_ttl)
        self.authorizer = AuthorizationChecker(user_directory, policy, call_guard=self._guarded)
        self.restrictions = RestrictionEvaluator()
        self._context_provider = context_provider

        self._pending_audits: Set[asyncio.Task] = set()
        self._audit_attempts = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def evaluate(
        self,
        request: AccessRequest,
        context: Optional[AuditContext] = None,
        timeout: Optional[float] = None,
    ) -> AccessDecision:
        """
        Decide on an access request.

        Args:
            request: The access request.
            context: Caller network/session context for the audit record.
            timeout: Seconds before the evaluation is abandoned as a
                systemic fault (engine default when None).

        Returns:
            A well-formed AccessDecision, never an exception.
        """
        fingerprint = RequestFingerprint.from_request(request)
        cached = self.cache.lookup(fingerprint)
        if cached is not None:
            logger.debug(
                "Using cached access decision",
                subject_id=redact_id(request.subject_id),
                requester_id=request.requester_id,
            )
            return cached

        logger.info(
            "Verifying data access",
            subject_id=redact_id(request.subject_id),
            requester_id=request.requester_id,
            access_type=request.access_type.value,
            categories=len(request.data_categories),
            emergency=request.emergency_override,
        )

        timeout = self.evaluation_timeout if timeout is None else timeout
        try:
            if timeout is not None:
                decision, outcome = await asyncio.wait_for(self._decide(request), timeout)
            else:
                decision, outcome = await self._decide(request)
        except asyncio.CancelledError:
            self._emit_audit(
                request,
                AccessDecision.fault(request.data_categories, "Verification cancelled"),
                AuditOutcome.SYSTEMIC_FAULT,
                context,
            )
            raise
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError) and timeout is not None:
                message = f"Verification timed out after {timeout:.2f}s"
            else:
                message = f"Verification failed: {e}"
            logger.error(
                "Data access verification failed",
                subject_id=redact_id(request.subject_id),
                requester_id=request.requester_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            decision = AccessDecision.fault(request.data_categories, message)
            outcome = AuditOutcome.SYSTEMIC_FAULT
        else:
            # Faults are transient and never memoized; policy answers are.
            self.cache.store(fingerprint, decision)

        self._emit_audit(request, decision, outcome, context)

        log_method = logger.info if decision.allowed else logger.warning
        log_method(
            "Data access decided",
            subject_id=redact_id(request.subject_id),
            requester_id=request.requester_id,
            outcome=outcome.value,
            allowed=decision.allowed,
            restricted=len(decision.restricted),
            risk_tier=decision.risk_tier.value,
        )
        return decision

    def clear_cache(self) -> None:
        """Drop every memoized decision."""
        self.cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        """Cache size and key digests; never cached decisions."""
        return self.cache.stats().to_dict()

    async def drain_audit(self) -> None:
        """Wait until every scheduled audit write has finished."""
        while self._pending_audits:
            await asyncio.gather(*list(self._pending_audits), return_exceptions=True)

    @property
    def audit_attempts(self) -> int:
        """Number of audit writes scheduled since construction."""
        return self._audit_attempts

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _decide(self, request: AccessRequest) -> Tuple[AccessDecision, AuditOutcome]:
        categories = request.data_categories

        authorization = await self.authorizer.check(request)
        if not authorization.authorized:
            return (
                AccessDecision.denied(categories, f"User not authorized: {authorization.reason}"),
                AuditOutcome.DENIED_UNAUTHORIZED,
            )

        consent = await self._verify_consent(request)
        if not consent.consent_valid:
            logger.warning(
                "Consent verification failed",
                subject_id=redact_id(request.subject_id),
                justification=consent.justification,
            )
            return (
                AccessDecision.denied(
                    categories, f"Consent verification failed: {consent.justification}"
                ),
                AuditOutcome.DENIED_NO_CONSENT,
            )

        result = self.restrictions.evaluate(categories, consent)
        allowed = bool(result.allowed)
        decision = AccessDecision(
            allowed=allowed,
            consent_verified=True,
            accessible=result.allowed,
            restricted=result.restricted,
            risk_tier=consent.risk_tier,
            audit_required=result.audit_required,
            restriction_reasons=result.reasons,
            denial_reason=None if allowed else self.NOTHING_RELEASABLE,
        )
        return decision, AuditOutcome.COMPLETED

    async def _verify_consent(self, request: AccessRequest) -> ConsentOutcome:
        raw: Any = await self._guarded(
            "ConsentVerifier",
            "verify",
            self.consent_verifier.verify(
                subject_id=request.subject_id,
                requester_id=request.requester_id,
                requester_role=request.requester_role,
                categories=list(request.data_categories),
                purpose=request.purpose,
                facility_id=request.facility_id,
                provider_id=request.provider_id,
                service_type=request.service_type,
                emergency_override=request.emergency_override,
            ),
        )
        if isinstance(raw, ConsentOutcome):
            return raw
        if isinstance(raw, dict):
            return ConsentOutcome.model_validate(raw)
        raise MalformedCollaboratorResponseError("ConsentVerifier", "verify", raw)

    async def _guarded(self, collaborator: str, operation: str, call: Awaitable[T]) -> T:
        if self.collaborator_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.collaborator_timeout)
        except asyncio.TimeoutError:
            raise CollaboratorTimeoutError(collaborator, operation, self.collaborator_timeout)

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def _emit_audit(
        self,
        request: AccessRequest,
        decision: AccessDecision,
        outcome: AuditOutcome,
        context: Optional[AuditContext],
    ) -> None:
        if context is None:
            context = self._context_provider() if self._context_provider else AuditContext()
        try:
            record = build_audit_record(request, decision, outcome, context)
        except Exception as e:
            logger.critical(
                "Audit record could not be built",
                requester_id=request.requester_id,
                outcome=outcome.value,
                error=str(e),
            )
            return

        self._audit_attempts += 1
        task = asyncio.get_running_loop().create_task(self._write_audit(record))
        self._pending_audits.add(task)
        task.add_done_callback(self._pending_audits.discard)

    async def _write_audit(self, record: AuditRecord) -> bool:
        try:
            written = await self._guarded("AuditSink", "write", self.audit_sink.write(record))
        except Exception as e:
            logger.error(
                "Failed to write audit record",
                record_id=record.record_id,
                outcome=record.outcome.value,
                error=str(e),
            )
            return False
        if written is False:
            logger.error("Audit sink rejected record", record_id=record.record_id)
            return False
        logger.debug(
            "Data access logged",
            record_id=record.record_id,
            allowed=record.allowed,
            subject_id=redact_id(record.subject_id),
        )
        return True


def create_engine(
    user_directory: UserDirectory,
    consent_verifier: ConsentVerifier,
    audit_sink: Optional[AuditSink] = None,
    config: Optional[Dict[str, Any]] = None,
) -> AccessDecisionEngine:
    """
    Build an engine from configuration.

    Args:
        user_directory: User directory collaborator.
        consent_verifier: Consent verifier collaborator.
        audit_sink: Audit sink; built from the ``audit`` section when None.
        config: Full configuration dict; loaded from config.yaml when None.

    Returns:
        Configured AccessDecisionEngine.
    """
    from config.config_loader import (
        get_audit_config,
        get_engine_defaults,
        get_policy_config,
        load_config,
    )
    from audit import create_audit_sink

    cfg = config if config is not None else load_config()
    engine_cfg = get_engine_defaults(cfg)

    if audit_sink is None:
        audit_sink = create_audit_sink(get_audit_config(cfg))

    engine = AccessDecisionEngine(
        user_directory=user_directory,
        consent_verifier=consent_verifier,
        audit_sink=audit_sink,
        policy=PolicyTables.from_config(get_policy_config(cfg)),
        cache_ttl=engine_cfg["cache_ttl_seconds"],
        collaborator_timeout=engine_cfg["collaborator_timeout_seconds"],
        evaluation_timeout=engine_cfg["evaluation_timeout_seconds"],
    )
    logger.info(
        "Access decision engine created",
        cache_ttl=engine_cfg["cache_ttl_seconds"],
        collaborator_timeout=engine_cfg["collaborator_timeout_seconds"],
        audit_sink=type(audit_sink).__name__,
    )
    return engine
