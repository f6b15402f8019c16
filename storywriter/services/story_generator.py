"""
Story generation built on the resilient client.

Callers get an OperationResult back from every method: failures are
classified and logged once by the ErrorHandler and never raised.
"""

import asyncio
from typing import Optional, Sequence, Tuple

from storywriter.models.error import ErrorSeverity, ErrorType
from storywriter.models.generation import InterviewStep
from storywriter.models.result import OperationResult
from storywriter.services.generation_client import TURN_SPEAKERS, ResilientGenerationClient
from storywriter.utils.errors import ErrorHandler, classify
from storywriter.utils.logging import (
    StructuredLogger,
    log_agent_message,
    log_conversation_end,
    log_story_complete,
    log_story_generating,
)

INTERVIEW_COMPLETE_MARKER = "INTERVIEW_COMPLETE"

INTERVIEW_PROMPT = (
    "Based on our conversation so far, ask the next question to help build a "
    "children's story. Ask one short, friendly question. When you know enough, "
    f"reply with {INTERVIEW_COMPLETE_MARKER} followed by a one-paragraph summary "
    "of the story idea.\n\n{transcript}"
)

STORY_PROMPT = "Create a children's story based on: {transcript}"

Turn = Tuple[str, str]


def format_turn(speaker: str, text: str) -> str:
    """
    Render one turn as a ``Speaker: text`` line.

    Speakers outside TURN_SPEAKERS are tagged ``User`` and keep their name in
    brackets, so every rendered turn is recognised as a prior turn.
    """
    name = speaker.strip()
    if name.lower() in TURN_SPEAKERS:
        return f"{name.title()}: {text.strip()}"
    return f"User: [{name}] {text.strip()}"


def format_turns(turns: Sequence[Turn]) -> str:
    return "\n".join(format_turn(speaker, text) for speaker, text in turns)


def parse_interview_response(response: str) -> InterviewStep:
    if INTERVIEW_COMPLETE_MARKER in response:
        summary = response.split(INTERVIEW_COMPLETE_MARKER, 1)[1].strip()
        return InterviewStep(complete=True, summary=summary)
    return InterviewStep(complete=False, question=response.strip())


class StoryGenerator:
    """Runs the story interview and story generation for the app screens."""

    def __init__(
        self,
        client: ResilientGenerationClient,
        error_handler: ErrorHandler,
        logger: StructuredLogger,
    ):
        self.client = client
        self.error_handler = error_handler
        self.logger = logger

    async def next_interview_step(
        self,
        turns: Sequence[Turn] = (),
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[InterviewStep]:
        """
        Ask the model for the next interview question.

        Args:
            turns: Conversation so far as (speaker, text) pairs, e.g. ("Child", "a dragon")
            cancel_event: Optional event to abandon the request

        Returns:
            OperationResult with the next InterviewStep
        """
        prompt = INTERVIEW_PROMPT.format(transcript=format_turns(turns))

        async def _step() -> InterviewStep:
            response = await self.client.generate(prompt, cancel_event)
            step = parse_interview_response(response)
            if step.complete:
                log_conversation_end(self.logger, INTERVIEW_COMPLETE_MARKER, turns=len(turns))
            else:
                log_agent_message(self.logger, step.question, turns=len(turns))
            return step

        return await self.error_handler.run_safely(
            _step,
            ErrorType.CONVERSATION,
            context={"turns": len(turns)},
        )

    async def generate_story(
        self,
        transcript: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[str]:
        """
        Generate a story from the interview transcript or summary.

        Args:
            transcript: Interview transcript or summary
            cancel_event: Optional event to abandon the request

        Returns:
            OperationResult with the story text
        """
        if not isinstance(transcript, str) or not transcript.strip():
            record = classify(
                "Transcript is required and cannot be empty",
                ErrorType.VALIDATION,
                ErrorSeverity.LOW,
            )
            self.error_handler.handle(record)
            return OperationResult.failure(record)

        transcript = transcript.strip()
        log_story_generating(self.logger, transcript_length=len(transcript), provider=self.client.provider.name)

        result = await self.error_handler.run_safely(
            lambda: self.client.generate(STORY_PROMPT.format(transcript=transcript), cancel_event),
            ErrorType.STORY_GENERATION,
            context={"transcript": transcript[:100]},
        )

        if result.ok:
            log_story_complete(self.logger, story_length=len(result.value))
        return result
