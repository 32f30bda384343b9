"""
Guided interaction loop: speak an item, listen for one answer, act, advance.

The loop is one controller object. Speech collaborators never touch its
state directly: their callbacks post messages onto the controller's queue
and run() handles them one at a time on the calling thread. Each speak or
listen request gets a token, and callbacks carrying an old token are
dropped, so a superseded request can never move the loop.
"""

import logging
import queue

import config
from command_parser import parse_command, parse_inventory_command
from models import (
    FAIL, IDLE, LISTENING, NA, NEEDS_ATTENTION, PASS, PROCESSING, SKIPPED, SPEAKING,
    PhotoCancelled, PhotoUpdates,
)
from speech_text import format_quantity, format_size

log = logging.getLogger("venuecheck.loop")

ANSWER_STATUSES = {
    "answer_yes": PASS,
    "answer_no": FAIL,
    "answer_skip": SKIPPED,
    "answer_attention": NEEDS_ATTENTION,
    "answer_na": NA,
}

CONFIRMATIONS = {
    "answer_yes": "Recorded pass. Next.",
    "answer_no": "Recorded fail. Next.",
    "answer_skip": "Skipping.",
    "answer_attention": "Flagged for attention.",
    "answer_na": "Marked not applicable.",
}

# Messages
WAKE = "wake"
SPEECH_DONE = "speech_done"
RESULT = "result"
ERROR = "error"
END = "end"
HALT = "halt"


class GuidedLoop:
    completion_message = "You have completed the audit. Finishing session now."
    pause_message = "Audit paused."
    clarification = "I didn't catch that. Please say Yes, No, or Skip."
    no_input_message = "I'm not hearing anything, so I'll pause here."

    default_parser = staticmethod(parse_command)

    def __init__(self, session, speaker, speech_input, store, photo_flow=None,
                 parser=None, on_complete=None, max_silent_retries=None,
                 answers=None, counts=None):
        self.session = session
        self.speaker = speaker
        self.speech_input = speech_input
        self.store = store
        self.photo_flow = photo_flow
        self.parser = parser or self.default_parser
        self.on_complete = on_complete
        # 0 = never give up on silence
        self.max_silent_retries = config.MAX_SILENT_RETRIES if max_silent_retries is None else max_silent_retries

        self.active = False
        self.status = IDLE
        self.completed = False
        self.recording_note = False
        self.last_transcript = ""
        self.silent_retries = 0
        # Seeded from storage when a paused session is resumed
        self.answers = dict(answers or {})  # item_id -> (status, transcript)
        self.counts = dict(counts or {})    # item_id -> quantity

        self._events = queue.Queue()
        self._token = 0
        self._after_speech = None

    @property
    def position(self):
        return self.session.position

    # ------------------ lifecycle ------------------

    def start(self):
        if self.completed:
            return
        self.active = True
        self.silent_retries = 0
        self._go_idle()

    def run(self):
        """
        Drives the loop until it is stopped or the last item is done.
        Returns True when the session completed.
        """
        if not self.active:
            self.start()
        while self.active:
            event, token, payload = self._events.get()
            self._dispatch(event, token, payload)
        return self.completed

    def stop(self):
        """
        Deactivates the loop and releases speech resources (user left the screen).
        Safe to call from another thread.
        """
        self.active = False
        self.status = IDLE
        self.recording_note = False
        self._after_speech = None
        self.speech_input.stop_listening()
        self.speaker.stop_speaking()
        self._post(HALT)

    # ------------------ messages ------------------

    def _post(self, event, token=None, payload=None):
        self._events.put((event, token, payload))

    def _dispatch(self, event, token, payload):
        if event == WAKE:
            self._on_wake()
        elif token != self._token:
            log.debug("Dropping stale %s (token %s, current %s)", event, token, self._token)
        elif event == SPEECH_DONE:
            self._on_speech_done()
        elif event == RESULT:
            self._on_result(payload)
        elif event == ERROR:
            self._on_error(payload)
        elif event == END:
            self._on_end()

    def _say(self, text, then=None):
        self._token += 1
        token = self._token
        self.status = SPEAKING
        self._after_speech = then
        self.speaker.speak(text, lambda: self._post(SPEECH_DONE, token))

    def _listen(self):
        self._token += 1
        token = self._token
        self.status = LISTENING
        self.speech_input.start_listening(
            lambda transcript: self._post(RESULT, token, transcript),
            lambda reason: self._post(ERROR, token, reason),
            lambda: self._post(END, token),
        )

    def _go_idle(self):
        self.status = IDLE
        self._post(WAKE)

    def _on_wake(self):
        if not self.active or self.status != IDLE:
            return
        if self.session.finished:
            self._say(self.completion_message, self._finish)
            return
        item = self.session.current_item
        self._say(self.prompt_for(item, self.position), self._listen)

    def _on_speech_done(self):
        then = self._after_speech
        self._after_speech = None
        if self.active and then:
            then()

    def _on_result(self, transcript):
        if self.status != LISTENING:
            return
        self.silent_retries = 0
        self.last_transcript = transcript
        self.status = PROCESSING

        if self.recording_note:
            self._save_note(transcript)
            return

        command = self.parser(transcript)
        log.info("Heard %r -> %s", transcript, command.action)
        self.handle_command(command)

    def _on_error(self, reason):
        log.warning("Speech Error: %s", reason)
        if self.status == LISTENING:
            self._on_no_input()

    def _on_end(self):
        # Capture closed without a result: silence or timeout
        if self.status == LISTENING:
            self._on_no_input()

    def _on_no_input(self):
        self.silent_retries += 1
        if self.max_silent_retries and self.silent_retries >= self.max_silent_retries:
            log.warning("No usable answer after %d attempts; pausing.", self.silent_retries)
            self._halt(self.no_input_message)
            return

        if self.recording_note:
            self.recording_note = False
            self._say("No note recorded.", self._go_idle)
            return

        # Re-prompt the same item
        self._go_idle()

    def _halt(self, message):
        self.active = False
        self.status = IDLE
        self.recording_note = False
        self._after_speech = None
        self._token += 1
        self.speech_input.stop_listening()
        self.speaker.speak(message)

    def _finish(self):
        if self.completed:
            return
        self.completed = True
        self.active = False
        self.status = IDLE
        if self.on_complete:
            try:
                self.on_complete()
            except Exception:
                log.exception("on_complete callback failed")

    # ------------------ commands ------------------

    def prompt_for(self, item, index):
        critical = " Critical." if item.critical else ""
        return f"Item {index + 1}:{critical} {item.text}. Say Yes, No, or Add Photo."

    def handle_command(self, command):
        action = command.action
        item = self.session.current_item

        if action in ANSWER_STATUSES:
            status = ANSWER_STATUSES[action]
            self._record(item, status, command.text)
            message = CONFIRMATIONS[action]
            if status == FAIL and item.critical:
                message = "Recorded fail on a critical item. Next."
            self._say(message, self._advance)

        elif action == "record_count":
            self._record_count(item, command.value, command.text)
            self._say(f"Recorded {format_quantity(command.value)}. Next.", self._advance)

        elif action == "next":
            self._say("Skipping.", self._advance)

        elif action == "previous":
            self.session.position = max(0, self.session.position - 1)
            self._go_idle()

        elif action == "repeat":
            self._go_idle()

        elif action == "add_note":
            self.recording_note = True
            self._say("Please dictate your note now.", self._listen)

        elif action == "take_photo":
            self._say("Opening camera.", self._run_photo_flow)

        elif action == "stop":
            self._halt(self.pause_message)

        else:
            self._say(self.clarification, self._go_idle)

    def _advance(self):
        self.session.position += 1
        self._go_idle()

    def _record(self, item, status, transcript, note=None):
        self.answers[item.id] = (status, transcript)
        try:
            self.store.save_response(item.id, status, transcript, note)
        except Exception:
            # Best effort: the spoken flow never waits on storage
            log.exception("Save failed for item %s", item.id)

    def _record_count(self, item, quantity, transcript):
        self.counts[item.id] = quantity
        try:
            self.store.save_count(item.id, quantity, transcript)
        except Exception:
            log.exception("Count save failed for item %s", item.id)

    def _save_note(self, note):
        self.recording_note = False
        item = self.session.current_item
        status, transcript = self.answers.get(item.id, (NEEDS_ATTENTION, "note_dictated"))
        self._record(item, status, transcript, note)
        self._say("Note saved.", self._go_idle)

    # ------------------ photo ------------------

    def _run_photo_flow(self):
        self.status = PROCESSING
        if self.photo_flow is None:
            self._say("Photo capture is not available.", self._go_idle)
            return

        try:
            result = self.photo_flow.run(self.session.current_item, self.session.items)
        except Exception:
            log.exception("Photo review failed")
            result = PhotoCancelled(reason="error")

        if isinstance(result, PhotoUpdates):
            applied = self.apply_photo_updates(result)
            log.info("Photo review applied %d update(s).", applied)
            self._say("Photo processed. Any issues were logged.", self._go_idle)
        else:
            log.info("Photo review cancelled (%s).", result.reason)
            self._say("Photo cancelled.", self._go_idle)

    def apply_photo_updates(self, result):
        items_by_id = {i.id: i for i in self.session.items}
        applied = 0
        for item_id, delta in result.items.items():
            item = items_by_id.get(item_id)
            if item is None:
                log.warning("Photo update for unknown item %s ignored", item_id)
                continue
            if delta.status:
                self._record(item, delta.status, "photo_review", delta.note)
                applied += 1
            if delta.quantity is not None:
                # Detections add to what was already counted this session
                total = self.counts.get(item.id, 0) + delta.quantity
                self._record_count(item, total, "photo_review")
                applied += 1
        return applied


class InventoryLoop(GuidedLoop):
    """
    Same loop for counting bottles: the answer is a number.
    """

    completion_message = "That was the last item. Inventory complete."
    pause_message = "Pausing inventory."
    clarification = "I didn't catch a number. Say a quantity, skip, or scan."

    default_parser = staticmethod(parse_inventory_command)

    def prompt_for(self, item, index):
        size = format_size(item.size_ml)
        size = f" {size}." if size else ""
        return f"Item {index + 1}: {item.text}.{size} How many?"
