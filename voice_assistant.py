import argparse
import logging
import os
import sys
import warnings

# Suppress HuggingFace/FutureWarnings
warnings.filterwarnings("ignore", category=FutureWarning)
warnings.filterwarnings("ignore", module="transformers")

import config
import db_manager
from asr_engine import SpeechInput, VoiceListener
from guided_loop import GuidedLoop, InventoryLoop
from models import Session
from speech_text import format_quantity
from photo_review import PhotoReviewFlow
from tts_engine import Speaker
from vision_engine import VisionAnalyzer, VisionError

log = logging.getLogger("venuecheck")


def setup_logging(level=None):
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser():
    parser = argparse.ArgumentParser(description="Voice-guided checklists, audits and bar inventory.")
    parser.add_argument("--mode", choices=["audit", "inventory"], default="audit")
    parser.add_argument("--list", required=True, help="Checklist / inventory list id, e.g. bar_open")
    parser.add_argument("--csv", help="CSV to import the list from (defaults to the bundled data)")
    parser.add_argument("--session", help="Resume or name a session id")
    parser.add_argument("--semantic", action="store_true", default=config.SEMANTIC_FALLBACK,
                        help="Use the sentence-transformers fallback for unrecognised answers")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    return parser


def load_progress(session_id):
    """
    Answers and counts already saved for the session, so a resumed loop builds on them.
    """
    answers = {r.item_id: (r.status, r.transcript) for r in db_manager.get_responses(session_id)}
    return answers, db_manager.get_counts(session_id)


def resume_position(items, done):
    """
    First item not in done; 0 for a fresh session.
    """
    for index, item in enumerate(items):
        if item.id not in done:
            return index
    return len(items)


def print_reorder_report(rows):
    if not rows:
        return
    print("\n--- Below Par ---")
    for row in rows:
        print(f"  {row['text']}: {format_quantity(row['quantity'])} on hand, par {format_quantity(row['par_level'])}"
              f" -> order {row['order']}")


def build_analyzer():
    if not config.AI_FEATURES_ENABLED:
        return None
    try:
        return VisionAnalyzer()
    except VisionError as e:
        log.warning("Photo AI disabled: %s", e)
        return None


def build_command_parser(mode, semantic):
    if mode == "inventory" or not semantic:
        return None
    from nlp_engine import CommandParser, IntentParser
    return CommandParser(IntentParser())


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)
    print("Initializing Voice Assistant...")

    # Database (CSV -> SQLite)
    try:
        db_manager.init_db()
        csv_path = args.csv or (config.INVENTORY_CSV_PATH if args.mode == "inventory" else config.CHECKLIST_CSV_PATH)
        if args.csv or not db_manager.load_items(args.list):
            if os.path.exists(csv_path):
                db_manager.import_items_csv(csv_path, args.list)
        items = db_manager.load_items(args.list)
    except Exception as e:
        log.error("Database initialization failed: %s", e)
        return 1

    if not items:
        print(f"No items found for list '{args.list}'. Known lists: {', '.join(db_manager.list_ids()) or 'none'}")
        return 1

    session_id = db_manager.create_session(args.list, args.mode, args.session)
    answers, counts = load_progress(session_id)
    session = Session(id=session_id, items=items, kind=args.mode,
                      position=resume_position(items, counts if args.mode == "inventory" else answers))

    # Models
    try:
        log.info("Loading ASR...")
        listener = VoiceListener(dynamic_vocab=db_manager.get_unique_vocabulary())
        speech_input = SpeechInput(listener)
        log.info("Loading TTS...")
        speaker = Speaker()
        command_parser = build_command_parser(args.mode, args.semantic)
    except Exception:
        log.exception("CRITICAL ERROR loading models")
        return 1

    photo_flow = PhotoReviewFlow(session_id, mode=args.mode, analyzer=build_analyzer())
    loop_cls = InventoryLoop if args.mode == "inventory" else GuidedLoop
    loop = loop_cls(
        session,
        speaker,
        speech_input,
        db_manager.SessionStore(session_id),
        photo_flow=photo_flow,
        parser=command_parser,
        on_complete=lambda: db_manager.complete_session(session_id),
        answers=answers,
        counts=counts,
    )

    print("\n" + "=" * 45)
    print(f"  SYSTEM READY - {args.mode.upper()} '{args.list}' ({len(items)} items)")
    print(f"  Session: {session_id}")
    print("=" * 45)

    try:
        input("\nPress ENTER to start (Ctrl+C to exit)...")
        completed = loop.run()
    except (KeyboardInterrupt, EOFError):
        loop.stop()
        completed = False

    if args.mode == "inventory":
        recorded = len(db_manager.get_counts(session_id))
    else:
        recorded = len(db_manager.get_responses(session_id))
    state = "complete" if completed else f"paused at item {loop.position + 1}"
    print(f"\nSession {session_id} {state}. {recorded}/{len(items)} items recorded.")
    if args.mode == "inventory":
        print_reorder_report(db_manager.get_reorder_report(session_id, args.list))
    return 0


if __name__ == "__main__":
    sys.exit(main())
