import os
import re
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import config  # noqa: E402
import db_manager  # noqa: E402
from models import Item, Session  # noqa: E402

SILENCE = None
ERROR = "!error"


class FakeSpeaker:
    """Finishes every utterance immediately."""

    def __init__(self):
        self.spoken = []
        self.stops = 0

    def speak(self, text, on_done=None):
        self.spoken.append(text)
        if on_done:
            on_done()

    def stop_speaking(self):
        self.stops += 1


class ScriptedSpeechInput:
    """
    Plays back a script of utterances, one per capture.
    SILENCE ends the capture with no result, ERROR fails it.
    An exhausted script behaves like silence.
    """

    def __init__(self, script):
        self.script = list(script)
        self.captures = 0
        self.stops = 0

    def start_listening(self, on_result, on_error, on_end):
        self.captures += 1
        utterance = self.script.pop(0) if self.script else SILENCE
        if utterance == ERROR:
            on_error("microphone unavailable")
        elif utterance is not SILENCE:
            on_result(utterance)
        on_end()

    def stop_listening(self):
        self.stops += 1


class BagOfWordsModel:
    """
    Stands in for a SentenceTransformer: word-count vectors, so names that
    share words are similar and names that share none are orthogonal.
    """

    def __init__(self, model_name=None):
        self.vocab = {}
        self.encoded = []

    def _vector(self, text):
        vector = np.zeros(512, dtype=np.float32)
        for word in re.sub(r"[^a-z0-9 ]", "", text.lower()).split():
            vector[self.vocab.setdefault(word, len(self.vocab))] += 1.0
        return vector

    def encode(self, sentences):
        if isinstance(sentences, str):
            self.encoded.append(sentences)
            return self._vector(sentences)
        self.encoded.extend(sentences)
        return np.stack([self._vector(s) for s in sentences])


class FakeStore:
    def __init__(self, fail_on_call=None):
        self.calls = []
        self.fail_on_call = fail_on_call

    def _check(self):
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("database unavailable")

    def save_response(self, item_id, status, transcript=None, note=None):
        self.calls.append(("response", item_id, status, transcript, note))
        self._check()

    def save_count(self, item_id, quantity, transcript=None):
        self.calls.append(("count", item_id, quantity, transcript))
        self._check()

    @property
    def responses(self):
        return [c for c in self.calls if c[0] == "response"]

    @property
    def counts(self):
        return [c for c in self.calls if c[0] == "count"]


@pytest.fixture
def speaker():
    return FakeSpeaker()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def items():
    return [
        Item(id="a", text="Ice bins clean"),
        Item(id="b", text="Walk-in cooler below 41°F", critical=True),
        Item(id="c", text="POS terminals on"),
    ]


@pytest.fixture
def session(items):
    return Session(id="s1", items=items)


@pytest.fixture
def bottles():
    return [
        Item(id="v1", text="Tito's Handmade Vodka", size_ml=1000, category="vodka"),
        Item(id="v2", text="Grey Goose Vodka", size_ml=1000, category="vodka"),
        Item(id="w1", text="Caymus Cabernet Sauvignon", size_ml=750, category="red_wine"),
    ]


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "test.db"))
    db_manager.init_db()
    return config.DB_PATH
