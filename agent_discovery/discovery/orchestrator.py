"""
Discovery Orchestrator
Runs one conversational turn end to end.

Each turn has a single commit point:
    A. under the session lock: get-or-create, snapshot, pin
    B. unlocked: classify, plan, synthesize, persist the agent
    C. under the session lock: commit user turn, requirements, reply and
       binding at once. If another turn committed in between, the plan is
       rebuilt on the fresh state while the lock is held.

A turn cancelled before C leaves the session exactly as it was.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.constants import DiscoveryStep, IntentType, Role, SessionStatus
from agent_discovery.core.errors import InvalidTurnRequest, SessionNotFound
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery import responders
from agent_discovery.discovery.intent import IntentClassifier, is_question
from agent_discovery.discovery.requirements import merge, slot_answer, union_preserving_order
from agent_discovery.discovery.responders import GeneralInfoResponder, Reply
from agent_discovery.discovery.session_store import Session, SessionStore, TurnCommit
from agent_discovery.discovery.state_machine import next_step
from agent_discovery.discovery.synthesizer import ConfigurationSynthesizer, validate_configuration
from agent_discovery.discovery.templates import select
from agent_discovery.schemas.api_models import (
    GeneratedConfiguration,
    IntentClassification,
    Requirements,
    RequirementsUpdate,
    TurnRequest,
    TurnResponse,
)
from agent_discovery.services.agent_store import AgentRepository

logger = get_logger(__name__)

# Data steps and the requirement field that answers them
_DATA_STEP_FIELDS = {
    DiscoveryStep.BUSINESS_TYPE: "business_type",
    DiscoveryStep.KEY_FEATURES: "key_features",
    DiscoveryStep.TARGET_AUDIENCE: "target_audience",
}


@dataclass
class TurnPlan:
    """Everything a turn intends to write, computed before the commit"""
    intent: IntentType
    reply: Reply
    status: SessionStatus
    pending_step: Optional[DiscoveryStep]
    update: RequirementsUpdate = field(default_factory=RequirementsUpdate)
    is_correction: bool = False
    merged: Optional[Requirements] = None
    configuration: Optional[GeneratedConfiguration] = None
    bound_agent_id: Optional[str] = None

    def to_commit(self, user_text: str) -> TurnCommit:
        return TurnCommit(
            user_text=user_text,
            assistant_text=self.reply.message,
            update=self.update,
            is_correction=self.is_correction,
            status=self.status,
            pending_step=self.pending_step,
            configuration=self.configuration,
            bound_agent_id=self.bound_agent_id,
        )


class DiscoveryOrchestrator:
    """
    Root of the discovery engine

    Usage:
        orchestrator = DiscoveryOrchestrator(store, classifier, synthesizer, agents)
        response = await orchestrator.handle_turn(
            TurnRequest(owner_id="usr_42", message="J'ai un restaurant coréen")
        )
    """

    def __init__(
        self,
        store: SessionStore,
        classifier: IntentClassifier,
        synthesizer: ConfigurationSynthesizer,
        agent_repository: AgentRepository,
        general_responder: Optional[GeneralInfoResponder] = None,
        settings: Optional[Settings] = None
    ):
        self.store = store
        self.classifier = classifier
        self.synthesizer = synthesizer
        self.agent_repository = agent_repository
        self.general_responder = general_responder or GeneralInfoResponder()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle_turn(self, request: TurnRequest) -> TurnResponse:
        """
        Process one user turn

        Raises:
            InvalidTurnRequest: Missing message, or new session without owner
            SessionNotFound: Unknown session id and no owner to create it for
        """
        message = (request.message or "").strip()
        if not message:
            raise InvalidTurnRequest("message is required")
        if not request.session_id and not request.owner_id:
            raise InvalidTurnRequest("owner_id is required to start a session")

        snapshot = await self._open(request)
        try:
            return await self._run_turn(snapshot, message)
        finally:
            self.store.unpin(snapshot.session_id)

    async def reset_session(self, session_id: str) -> Session:
        """Clear a session back to discovery; the only way out of COMPLETE"""
        async with self.store.lock(session_id):
            return await self.store.reset(session_id)

    async def get_session(self, session_id: str) -> Session:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # ------------------------------------------------------------------
    # Turn phases
    # ------------------------------------------------------------------

    async def _open(self, request: TurnRequest) -> Session:
        if request.session_id:
            async with self.store.lock(request.session_id):
                session = await self.store.get_or_create(request.session_id, request.owner_id)
                self.store.pin(session.session_id)
                return session

        session = await self.store.get_or_create(None, request.owner_id)
        self.store.pin(session.session_id)
        return session

    async def _run_turn(self, snapshot: Session, message: str) -> TurnResponse:
        session_id = snapshot.session_id
        try:
            classification = await self.classifier.classify(
                message, snapshot.requirements, snapshot.bound_agent_id, snapshot.pending_step
            )
            logger.info(
                f"Session {session_id}: intent={classification.type.value} "
                f"source={classification.source} correction={classification.is_correction}"
            )
            plan = await self._plan(snapshot, message, classification, snapshot.pending_step)

            async with self.store.lock(session_id):
                current = await self.store.get(session_id)
                if current is None:
                    raise SessionNotFound(session_id)
                if current.version != snapshot.version:
                    logger.info(f"Session {session_id} changed during the turn, re-planning on fresh state")
                    stale = plan
                    plan = await self._plan(
                        current, message, classification, snapshot.pending_step, previous=stale
                    )
                    if stale.bound_agent_id and stale.bound_agent_id != plan.bound_agent_id:
                        await self._discard_agent(session_id, stale.bound_agent_id)
                committed = await self.store.commit_turn(session_id, plan.to_commit(message))

            return self._response(committed, plan)

        except (InvalidTurnRequest, SessionNotFound):
            raise
        except Exception as e:
            logger.error(f"Turn failed for session {session_id}: {e}", exc_info=True)
            return TurnResponse(
                success=False,
                message=responders.APOLOGY,
                session_id=session_id,
                bound_agent_id=snapshot.bound_agent_id,
                error=str(e),
                step=snapshot.pending_step,
                status=snapshot.status,
            )

    async def _discard_agent(self, session_id: str, agent_id: str) -> None:
        """Remove an agent synthesized from requirements that never got committed"""
        try:
            await self.agent_repository.delete_agent(agent_id)
            logger.info(f"Discarded agent {agent_id} built from stale requirements (session {session_id})")
        except Exception as e:
            logger.warning(f"Could not discard stale agent {agent_id} for session {session_id}: {e}")

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def _plan(
        self,
        session: Session,
        message: str,
        classification: IntentClassification,
        asked_step: Optional[DiscoveryStep],
        previous: Optional[TurnPlan] = None
    ) -> TurnPlan:
        """
        Decide what the turn writes and replies

        `asked_step` is the question the user was shown, which stays the
        reference even when planning again on a fresher session.
        """
        update = classification.extracted.model_copy(deep=True)
        if session.status == SessionStatus.COMPLETE:
            return await self._plan_after_completion(session, message, classification, update)
        return await self._plan_discovery(session, message, classification, update, asked_step, previous)

    async def _plan_discovery(
        self,
        session: Session,
        message: str,
        classification: IntentClassification,
        update: RequirementsUpdate,
        asked_step: Optional[DiscoveryStep],
        previous: Optional[TurnPlan]
    ) -> TurnPlan:
        intent = classification.type
        correction = classification.is_correction

        if intent == IntentType.DEPLOY:
            merged = merge(session.requirements, update, correction)
            step = next_step(merged)
            if not step.is_complete:
                return TurnPlan(
                    intent=intent,
                    reply=responders.deploy_before_configuration(step.question),
                    status=SessionStatus.DISCOVERY,
                    pending_step=step.step,
                    update=update,
                    is_correction=correction,
                    merged=merged,
                )
            return await self._plan_completion(session, merged, update, correction, intent, previous)

        if intent == IntentType.GENERAL_INFO and is_question(message):
            merged = merge(session.requirements, update, correction)
            step = next_step(merged)
            reply = await self.general_responder.answer(
                message, self._history(session), follow_up=step.question
            )
            return TurnPlan(
                intent=intent,
                reply=reply,
                status=SessionStatus.DISCOVERY,
                pending_step=None if step.is_complete else step.step,
                update=update,
                is_correction=correction,
                merged=merged,
            )

        # Anything else during discovery fills slots
        if intent in (IntentType.GENERAL_INFO, IntentType.INTEGRATE):
            intent = IntentType.FILL_SLOT

        if asked_step is not None:
            update = self._with_slot_answer(asked_step, update, message)

        if update.is_empty() and not session.turns:
            return TurnPlan(
                intent=intent,
                reply=responders.greeting(),
                status=SessionStatus.DISCOVERY,
                pending_step=DiscoveryStep.BUSINESS_TYPE,
                update=update,
                merged=session.requirements,
            )

        merged = merge(session.requirements, update, correction)
        step = next_step(merged)
        if step.is_complete:
            return await self._plan_completion(session, merged, update, correction, intent, previous)

        return TurnPlan(
            intent=intent,
            reply=responders.question_reply(step.question, update),
            status=SessionStatus.DISCOVERY,
            pending_step=step.step,
            update=update,
            is_correction=correction,
            merged=merged,
        )

    @staticmethod
    def _with_slot_answer(pending: DiscoveryStep, update: RequirementsUpdate, message: str) -> RequirementsUpdate:
        """
        Use the raw reply as the answer to the question asked last

        The reply fills the pending slot unless classification left it empty
        because the user answered another data question instead. Integrations
        mentioned in passing ("envoyer des emails") do not count as such.
        """
        answer = slot_answer(pending, message)
        update = update.model_copy(deep=True)

        field_name = _DATA_STEP_FIELDS.get(pending)
        if field_name is not None:
            answered_elsewhere = update.complexity is not None or any(
                getattr(update, other) for other in _DATA_STEP_FIELDS.values() if other != field_name
            )
            if not getattr(update, field_name) and not answered_elsewhere:
                setattr(update, field_name, getattr(answer, field_name))
            return update

        update.answered_steps = union_preserving_order(update.answered_steps, answer.answered_steps)
        if update.complexity is None:
            update.complexity = answer.complexity
        return update

    async def _plan_completion(
        self,
        session: Session,
        merged: Requirements,
        update: RequirementsUpdate,
        correction: bool,
        intent: IntentType,
        previous: Optional[TurnPlan]
    ) -> TurnPlan:
        if previous is not None and previous.configuration is not None:
            if previous.merged == merged:
                return previous

        template = select(merged.business_type)
        config = await self.synthesizer.synthesize(template, merged)

        review = validate_configuration(config)
        if not review.is_valid:
            logger.warning(f"Generated configuration has issues: {review.issues}")

        agent_id = None
        try:
            agent_id = await self.agent_repository.create_agent(config, owner_id=session.owner_id)
        except Exception as e:
            logger.warning(f"Could not persist configuration for session {session.session_id}: {e}")

        logger.info(
            f"Session {session.session_id} completed discovery "
            f"(template={template.id}, agent={agent_id or 'not persisted'})"
        )
        return TurnPlan(
            intent=intent,
            reply=responders.confirmation(config, review, template.recommendations, persisted=agent_id is not None),
            status=SessionStatus.COMPLETE,
            pending_step=None,
            update=update,
            is_correction=correction,
            merged=merged,
            configuration=config,
            bound_agent_id=agent_id,
        )

    async def _plan_after_completion(
        self,
        session: Session,
        message: str,
        classification: IntentClassification,
        update: RequirementsUpdate
    ) -> TurnPlan:
        intent = classification.type
        config = session.configuration

        if intent == IntentType.DEPLOY:
            reply = responders.deploy_options(config)
            update = RequirementsUpdate()
        elif intent == IntentType.INTEGRATE:
            update = RequirementsUpdate(integrations_needed=update.integrations_needed)
            reply = responders.integration_options(config, update.integrations_needed)
        elif intent == IntentType.GENERAL_INFO:
            reply = await self.general_responder.answer(message, self._history(session))
            update = RequirementsUpdate()
        else:
            # Personalization: requirements change, discovery is not re-entered
            merged = merge(session.requirements, update, classification.is_correction)
            reply = responders.personalization_ack(merged, config)

        return TurnPlan(
            intent=intent,
            reply=reply,
            status=SessionStatus.COMPLETE,
            pending_step=None,
            update=update,
            is_correction=classification.is_correction,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _history(self, session: Session) -> List[Tuple[Role, str]]:
        return [(turn.role, turn.text) for turn in session.recent_turns(self.settings.HISTORY_CONTEXT_TURNS)]

    @staticmethod
    def _response(session: Session, plan: TurnPlan) -> TurnResponse:
        step = DiscoveryStep.COMPLETE if session.status == SessionStatus.COMPLETE else session.pending_step
        return TurnResponse(
            success=True,
            message=plan.reply.message,
            session_id=session.session_id,
            suggested_replies=list(plan.reply.suggested_replies),
            bound_agent_id=session.bound_agent_id,
            generated_configuration=plan.configuration,
            intent=plan.intent,
            step=step,
            status=session.status,
        )
