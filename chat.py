"""
Console entry point for the goal coaching assistant.
Runs one conversation against the configured models and Supabase project.
"""

import uuid
import asyncio

from goalcoach import config
from goalcoach.graph.builder import build_orchestrator
from goalcoach.utils.logger import configure_logging, get_logger

# Simple logs for console
configure_logging(level="INFO", use_structured=False)

logger = get_logger(__name__)


async def run_console_chat():
    """Async main loop for console chat interaction."""
    logger.info("console_mode_started")
    config.check_env_vars()

    orchestrator = build_orchestrator()
    conversation_id = str(uuid.uuid4())
    logger.info("conversation_started", conversation_id=conversation_id)

    print("\n" + "=" * 60)
    print("Goal Coach - Type 'exit' or 'quit' to stop")
    print("=" * 60 + "\n")

    while True:
        try:
            message = input("\nYou: ")
            if message.lower() in ["exit", "quit"]:
                break
            if not message.strip():
                continue

            result = await orchestrator.process_turn(conversation_id, None, message)
            metadata = result.handler_metadata
            print(f"-> {metadata.handler} ({metadata.domain.value}, state={metadata.state})")
            print(f"\nMarcus:\n{result.assistant_turn.content}")

        except KeyboardInterrupt:
            logger.info("conversation_interrupted_by_user")
            break

    await orchestrator.end_conversation(conversation_id)
    await orchestrator.shutdown()
    logger.info("conversation_ended", conversation_id=conversation_id)
    print("\nGoodbye! Keep going.")


if __name__ == "__main__":
    asyncio.run(run_console_chat())
