from unittest import mock

import numpy as np
import pytest

import nlp_engine
from nlp_engine import CommandParser, IntentParser


class FakeSentenceTransformer:
    """Every distinct phrase gets its own axis, so only exact phrases are similar."""

    def __init__(self, model_name):
        self.model_name = model_name
        self.axes = {}

    def _vector(self, text):
        index = self.axes.setdefault(text.lower(), len(self.axes))
        vector = np.zeros(256, dtype=np.float32)
        vector[index] = 1.0
        return vector

    def encode(self, sentences):
        if isinstance(sentences, str):
            return self._vector(sentences)
        return np.stack([self._vector(s) for s in sentences])


@pytest.fixture
def intent_parser(monkeypatch):
    monkeypatch.setattr(nlp_engine, "SentenceTransformer", FakeSentenceTransformer)
    return IntentParser(model_name="fake-model", threshold=0.5)


def test_anchor_phrase_is_recognised(intent_parser):
    intent, score = intent_parser.detect_intent("all good")
    assert intent == "answer_yes"
    assert score == pytest.approx(1.0)


def test_unrelated_phrase_is_unknown(intent_parser):
    intent, score = intent_parser.detect_intent("the cat sat on the mat")
    assert intent == "unknown"
    assert score < 0.5


def test_empty_phrase_is_unknown(intent_parser):
    assert intent_parser.detect_intent("") == ("unknown", 0.0)


def test_keywords_win_over_semantic_fallback():
    intent_parser = mock.Mock()
    parser = CommandParser(intent_parser)

    assert parser("yes").action == "answer_yes"
    intent_parser.detect_intent.assert_not_called()


def test_fallback_only_for_unknown():
    intent_parser = mock.Mock()
    intent_parser.detect_intent.return_value = ("answer_attention", 0.8)
    parser = CommandParser(intent_parser)

    command = parser("Tell the manager")
    assert command.action == "answer_attention"
    assert command.text == "tell the manager"
    intent_parser.detect_intent.assert_called_once_with("tell the manager")


def test_fallback_failure_keeps_keyword_result():
    intent_parser = mock.Mock()
    intent_parser.detect_intent.side_effect = RuntimeError("model not loaded")

    assert CommandParser(intent_parser)("hmm").action == "unknown"


def test_without_model_behaves_like_keywords():
    assert CommandParser()("banana").action == "unknown"
