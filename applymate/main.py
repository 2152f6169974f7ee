"""Entry point: assemble the assistant and serve it over HTTP."""

import logging
import sys
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from filelock import FileLock, Timeout

from .agent import AgentLoop
from .config import Config, get_config, load_api_keys, load_config
from .coordinator import TurnCoordinator
from .errors import ConfigurationError
from .images import ImageExtractor
from .keys import CredentialPool
from .llm import GroqChatModel
from .memory import ConversationMemory
from .server import create_app
from .sheets import SheetsRecordStore
from .tools import JobTools
from .transport import RelayTransport

LOCK_FILE = Path("/tmp/applymate.lock")
LOG_DIR = Path(__file__).parent.parent / "logs"


def setup_logging() -> None:
    """Configure logging for the application."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "app.log"

    config = get_config()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_app(config: Config, api_keys: list[str]) -> FastAPI:
    """Wire the store, tools, model, memory and coordinator into the HTTP app."""
    logger = logging.getLogger(__name__)

    pool = CredentialPool(api_keys)
    logger.info(f"Loaded {len(pool)} Groq API key(s)")

    tools = JobTools(SheetsRecordStore(config))
    text_model = GroqChatModel(
        config.text_model, base_url=config.groq_base_url, timeout=config.request_timeout
    )
    agent = AgentLoop(
        text_model,
        pool,
        tools,
        max_retries=config.max_retries,
        history_trigger=config.history_trigger,
        history_keep=config.history_keep,
        repeat_call_limit=config.repeat_call_limit,
    )
    coordinator = TurnCoordinator(
        agent,
        ConversationMemory(),
        timeout=config.turn_timeout,
        recursion_limit=config.recursion_limit,
    )

    image_model = GroqChatModel(
        config.image_model, base_url=config.groq_base_url, timeout=config.image_timeout
    )
    media_dir = Path(config.media_dir)
    media_dir.mkdir(parents=True, exist_ok=True)

    return create_app(
        coordinator,
        RelayTransport(config.relay_url, timeout=config.request_timeout),
        ImageExtractor(image_model, pool),
        pool,
        media_dir,
    )


def main() -> int:
    """Main entry point with single-instance protection."""
    try:
        config = load_config()
        setup_logging()
        api_keys = load_api_keys()
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    logger = logging.getLogger(__name__)

    try:
        with FileLock(LOCK_FILE, timeout=10):
            logger.info("Acquired lock, starting ApplyMate")
            app = build_app(config, api_keys)
            uvicorn.run(app, host=config.host, port=config.port, log_config=None)
            return 0

    except Timeout:
        logger.warning("Could not acquire lock - another instance is running")
        return 0

    except Exception as e:
        logger.exception(f"ApplyMate failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
