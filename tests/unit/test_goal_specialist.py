"""
Unit tests for GoalSpecialist.
Each test replays a transcript the way the orchestrator would: the
specialist's previous reply is part of the turns it sees next.
"""

import pytest

from goalcoach.models.domain import Domain, GoalState
from goalcoach.models.schemas import ConfirmationCheck, GoalExtraction, IntentAnalysis
from goalcoach.specialists.goal import GoalSpecialist
from goalcoach.services.llm_service import LLMError

BENCH_PRESS = GoalExtraction(
    title="Bench press 225 lbs", category="health", deadline="2026-12-31", confidence=0.9
)
GOAL_ANALYSIS = IntentAnalysis(primary_intent="set a goal", domain=Domain.GOAL_SETTING, confidence=0.9)


@pytest.fixture
def build_specialist(persistence, specialist_parts):
    def build(llm_service):
        return GoalSpecialist(llm_service, persistence, **specialist_parts(llm_service))

    return build


async def first_turn(specialist, transcript, message="I want to bench press 225 lbs by the end of next year"):
    reply = await specialist.respond(transcript(message), "user-1", GOAL_ANALYSIS)
    return [message, reply.content]


class TestGoalCreation:
    """Tests for the creation and confirmation flow."""

    @pytest.mark.asyncio
    async def test_complete_goal_is_presented_for_confirmation(self, build_specialist, llm_factory, transcript, persistence):
        # Arrange
        specialist = build_specialist(llm_factory({GoalExtraction: BENCH_PRESS}))

        # Act
        reply = await specialist.respond(
            transcript("I want to bench press 225 lbs by the end of next year"), "user-1", GOAL_ANALYSIS
        )

        # Assert
        assert reply.state == GoalState.CONFIRMING.value
        assert "- Goal: Bench press 225 lbs" in reply.content
        assert "- Category: health" in reply.content
        assert "- Deadline: 2026-12-31" in reply.content
        assert "Does this look right?" in reply.content
        assert persistence.writes == []

    @pytest.mark.asyncio
    async def test_yes_saves_exactly_one_goal(self, build_specialist, llm_factory, transcript, persistence):
        # Arrange
        specialist = build_specialist(llm_factory({GoalExtraction: BENCH_PRESS}))
        history = await first_turn(specialist, transcript)

        # Act
        reply = await specialist.respond(transcript(*history, "yes"), "user-1", GOAL_ANALYSIS)

        # Assert
        assert reply.state == GoalState.FEEDBACK.value
        assert reply.entity_created is True
        assert reply.entity_type == "goal"
        assert reply.entity_id == "goal-1"
        assert 'Done! I\'ve saved your goal "Bench press 225 lbs" (ID: goal-1)' in reply.content
        assert len(persistence.creations()) == 1
        saved = persistence.goals["goal-1"]
        assert saved["category"] == "health"
        assert saved["deadline"] == "2026-12-31"

    @pytest.mark.asyncio
    async def test_missing_fields_are_asked_one_at_a_time(self, build_specialist, llm_factory, transcript):
        specialist = build_specialist(
            llm_factory(
                {
                    GoalExtraction: [
                        GoalExtraction(category="health"),
                        GoalExtraction(title="Run a 5k", deadline="2026-09-30"),
                    ]
                }
            )
        )

        first = await specialist.respond(transcript("I want to get fitter"), "user-1", GOAL_ANALYSIS)
        second = await specialist.respond(
            transcript("I want to get fitter", first.content, "Run a 5k by September"), "user-1", GOAL_ANALYSIS
        )

        assert first.state == GoalState.REFINING.value
        assert "- Category: health" in first.content
        assert "What exactly would you like to achieve?" in first.content
        assert second.state == GoalState.CONFIRMING.value
        assert "- Goal: Run a 5k" in second.content
        assert "- Category: health" in second.content
        assert "Does this look right?" in second.content

    @pytest.mark.asyncio
    async def test_refinement_during_confirmation_represents_draft(self, build_specialist, llm_factory, transcript, persistence):
        specialist = build_specialist(
            llm_factory(
                {
                    GoalExtraction: [
                        BENCH_PRESS,
                        GoalExtraction(deadline="2026-06-30", contradicted_fields=["deadline"]),
                    ]
                }
            )
        )
        history = await first_turn(specialist, transcript)

        reply = await specialist.respond(
            transcript(*history, "actually make it June 30th 2026"), "user-1", GOAL_ANALYSIS
        )

        assert reply.state == GoalState.CONFIRMING.value
        assert "- Deadline: 2026-06-30" in reply.content
        assert "- Goal: Bench press 225 lbs" in reply.content
        assert persistence.writes == []

    @pytest.mark.asyncio
    async def test_cancel_discards_draft(self, build_specialist, llm_factory, transcript, persistence):
        specialist = build_specialist(llm_factory({GoalExtraction: BENCH_PRESS}))
        history = await first_turn(specialist, transcript)

        reply = await specialist.respond(transcript(*history, "never mind"), "user-1", GOAL_ANALYSIS)

        assert reply.content == "No problem, I won't save that goal."
        assert reply.state == GoalState.INQUIRY.value
        assert persistence.writes == []

    @pytest.mark.asyncio
    async def test_cancel_while_collecting_closes_draft(self, build_specialist, llm_factory, transcript, persistence):
        """Should close the draft even before every field is known."""
        # Arrange
        llm_service = llm_factory({GoalExtraction: GoalExtraction(category="health")})
        specialist = build_specialist(llm_service)
        asking = await specialist.respond(transcript("I want to get fitter"), "user-1", GOAL_ANALYSIS)

        # Act
        turns = transcript("I want to get fitter", asking.content, "never mind")
        reply = await specialist.respond(turns, "user-1", GOAL_ANALYSIS)

        # Assert
        assert asking.state == GoalState.REFINING.value
        assert reply.content == "No problem, I won't save that goal."
        assert reply.state == GoalState.INQUIRY.value
        assert llm_service.invoke_with_structured_output.call_count == 1
        assert persistence.writes == []
        closed = transcript("I want to get fitter", asking.content, "never mind", reply.content, "hi")
        assert specialist.derive_state(closed).state == GoalState.INQUIRY.value

    @pytest.mark.asyncio
    async def test_rejection_asks_what_to_change(self, build_specialist, llm_factory, transcript, persistence):
        specialist = build_specialist(llm_factory({GoalExtraction: [BENCH_PRESS, GoalExtraction()]}))
        history = await first_turn(specialist, transcript)

        reply = await specialist.respond(transcript(*history, "no"), "user-1", GOAL_ANALYSIS)

        assert "What would you like to change about this goal?" in reply.content
        assert reply.state == GoalState.CONFIRMING.value
        assert persistence.writes == []


class TestSemanticConfirmation:
    @pytest.mark.asyncio
    async def test_indirect_confirmation_saves(self, build_specialist, llm_factory, transcript, persistence):
        specialist = build_specialist(
            llm_factory(
                {
                    GoalExtraction: [BENCH_PRESS, GoalExtraction()],
                    ConfirmationCheck: ConfirmationCheck(is_confirming=True, confidence=0.85),
                }
            )
        )
        history = await first_turn(specialist, transcript)

        reply = await specialist.respond(transcript(*history, "let's lock that in"), "user-1", GOAL_ANALYSIS)

        assert reply.entity_created is True
        assert len(persistence.creations()) == 1

    @pytest.mark.asyncio
    async def test_confidence_at_threshold_does_not_save(self, build_specialist, llm_factory, transcript, persistence):
        specialist = build_specialist(
            llm_factory(
                {
                    GoalExtraction: [BENCH_PRESS, GoalExtraction()],
                    ConfirmationCheck: ConfirmationCheck(is_confirming=True, confidence=0.6),
                }
            )
        )
        history = await first_turn(specialist, transcript)

        reply = await specialist.respond(transcript(*history, "I suppose"), "user-1", GOAL_ANALYSIS)

        assert reply.entity_created is False
        assert "Should I save this goal for you?" in reply.content
        assert persistence.writes == []


class TestSaveFailure:
    @pytest.mark.asyncio
    async def test_failed_save_offers_retry(self, build_specialist, llm_factory, transcript, persistence):
        # Arrange
        specialist = build_specialist(llm_factory({GoalExtraction: BENCH_PRESS}))
        history = await first_turn(specialist, transcript)
        persistence.fail_writes = True

        # Act
        failed = await specialist.respond(transcript(*history, "yes"), "user-1", GOAL_ANALYSIS)
        persistence.fail_writes = False
        retried = await specialist.respond(
            transcript(*history, "yes", failed.content, "save it"), "user-1", GOAL_ANALYSIS
        )

        # Assert
        assert failed.entity_created is False
        assert failed.state == GoalState.REFINING.value
        assert failed.error
        assert "Just say \"save it\"" in failed.content
        assert retried.entity_created is True
        assert persistence.goals[retried.entity_id]["title"] == "Bench press 225 lbs"
        assert len(persistence.creations()) == 1


class TestGoalRouting:
    """Tests for confidence scoring and state derivation."""

    @pytest.mark.asyncio
    async def test_mid_flow_confidence(self, build_specialist, llm_factory, transcript):
        specialist = build_specialist(llm_factory({GoalExtraction: BENCH_PRESS}))
        history = await first_turn(specialist, transcript)
        turns = transcript(*history, "yes")

        assert await specialist.confidence(turns, IntentAnalysis()) == 0.9
        moved_on = IntentAnalysis(domain=Domain.PROGRAMMING_TECHNICAL, confidence=0.95)
        assert await specialist.confidence(turns, moved_on) == 0.5
        assert specialist.can_handle(turns)

    @pytest.mark.asyncio
    async def test_signal_confidence(self, build_specialist, llm_factory, transcript):
        specialist = build_specialist(llm_factory())
        turns = transcript("I want to read 20 books this year")

        assert await specialist.confidence(turns, GOAL_ANALYSIS) == 0.8
        assert await specialist.confidence(turns, IntentAnalysis(domain=Domain.FITNESS_HEALTH)) == 0.65

    @pytest.mark.asyncio
    async def test_idle_confidence(self, build_specialist, llm_factory, transcript):
        specialist = build_specialist(llm_factory())
        turns = transcript("how do goals work here?")

        analysis = IntentAnalysis(domain=Domain.GOAL_SETTING, confidence=0.7)
        assert await specialist.confidence(turns, analysis) == 0.7
        assert await specialist.confidence(turns, IntentAnalysis()) == 0.1

    def test_state_is_derived_from_transcript(self, build_specialist, llm_factory, transcript):
        specialist = build_specialist(llm_factory())
        offer = "Great question!\n\nWould you like me to add this as a goal so we can track your progress?"

        assert specialist.derive_state(transcript("what is a smart goal?")).state == GoalState.INQUIRY.value
        assert specialist.derive_state(transcript("I want to save $5000")).state == GoalState.CREATION.value
        assert specialist.derive_state(transcript("tips for bench?", offer, "yes")).state == GoalState.CREATION.value

    @pytest.mark.asyncio
    async def test_inquiry_lists_existing_goals(self, build_specialist, llm_factory, transcript, persistence):
        llm_service = llm_factory()
        specialist = build_specialist(llm_service)
        await persistence.create_goal("user-1", {"title": "Run a marathon", "category": "health", "progress": 40})

        reply = await specialist.respond(transcript("how are my goals going?"), "user-1", GOAL_ANALYSIS)

        assert reply.state == GoalState.INQUIRY.value
        system_prompt = llm_service.invoke_with_retry.call_args.args[0][0].content
        assert "- Run a marathon (health, 40% complete)" in system_prompt

    @pytest.mark.asyncio
    async def test_model_failure_returns_fixed_reply(self, build_specialist, llm_factory, transcript):
        llm_service = llm_factory()
        llm_service.invoke_with_retry.side_effect = LLMError("provider down")
        specialist = build_specialist(llm_service)

        reply = await specialist.respond(transcript("how are my goals going?"), "user-1", GOAL_ANALYSIS)

        assert reply.model == "error-fallback"
        assert reply.error
