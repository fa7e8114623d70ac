"""Main application entry point for LiveScribe."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .auto_mode import run_auto_mode
from .chat.service import ChatService
from .config import LiveScribeConfig
from .errors import LiveScribeError
from .services.transcription_service import TranscriptionService

logger = logging.getLogger(__name__)


def setup_logging(config: LiveScribeConfig, level: Optional[str] = None) -> None:
    """Set up logging configuration from YAML config."""
    level = level or config.get('logging.level', 'INFO')
    log_file_path = config.get('logging.file_path', 'data/logs/livescribe.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - warnings only so the live display stays readable
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("LiveScribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def run_transcribe(config: LiveScribeConfig, auto: bool, duration: int) -> int:
    service = TranscriptionService(config)
    controller = service.create_controller()
    if auto:
        return 0 if await run_auto_mode(controller, duration) else 1

    from .ui.transcription_screen import TranscriptionScreen
    await TranscriptionScreen(controller).run()
    return 0


async def run_chat(config: LiveScribeConfig, thinking: bool) -> int:
    from .ui.chat_screen import ChatScreen
    await ChatScreen(ChatService.from_config(config), thinking=thinking).run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="LiveScribe - Real-time voice transcription and grounded chat",
        epilog="Transcribe controls: space=start/stop recording, q=quit",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"LiveScribe v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command")

    transcribe = subparsers.add_parser("transcribe", help="Live microphone transcription")
    transcribe.add_argument(
        "--auto",
        action="store_true",
        help="Record for --duration seconds without the interactive screen, then print the transcript"
    )
    transcribe.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )

    chat = subparsers.add_parser("chat", help="Chat with search-grounded answers")
    chat.add_argument(
        "--thinking",
        action="store_true",
        help="Use the thinking model instead of search grounding"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for LiveScribe."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "transcribe"

    try:
        config = LiveScribeConfig(args.config)
        setup_logging(config, args.log_level)
        if command == "chat":
            exit_code = asyncio.run(run_chat(config, args.thinking))
        else:
            auto = getattr(args, "auto", False)
            duration = getattr(args, "duration", 10)
            exit_code = asyncio.run(run_transcribe(config, auto, duration))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        exit_code = 0
    except (LiveScribeError, FileNotFoundError) as e:
        print(f"❌ Error: {e}")
        logger.error(f"Application error: {e}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
