from unittest import mock

import pytest

from asr_engine import (
    COMMAND_VOCAB, AudioDeviceError, Microphone, MicrophoneBusy, SpeechInput, build_vocab_prompt,
)


class FakeRecorder:
    def __init__(self, path="input.wav", error=None, during=None):
        self.path = path
        self.error = error
        self.during = during
        self.cancelled = 0

    def record(self, output_filename):
        if self.during:
            self.during()
        if self.error:
            raise self.error
        return self.path

    def cancel(self):
        self.cancelled += 1


def capture(speech_input):
    callbacks = mock.Mock()
    speech_input.start_listening(callbacks.on_result, callbacks.on_error, callbacks.on_end)
    return callbacks


def test_result_then_end():
    listener = mock.Mock()
    listener.transcribe.return_value = "yes"
    callbacks = capture(SpeechInput(listener, recorder=FakeRecorder(), audio_path="input.wav"))

    assert callbacks.mock_calls == [mock.call.on_result("yes"), mock.call.on_end()]
    assert Microphone.owner() is None


def test_blank_transcript_only_ends():
    listener = mock.Mock()
    listener.transcribe.return_value = "   "
    callbacks = capture(SpeechInput(listener, recorder=FakeRecorder()))

    assert callbacks.mock_calls == [mock.call.on_end()]


def test_silence_skips_transcription():
    listener = mock.Mock()
    callbacks = capture(SpeechInput(listener, recorder=FakeRecorder(path=None)))

    listener.transcribe.assert_not_called()
    assert callbacks.mock_calls == [mock.call.on_end()]


def test_device_error_then_end():
    listener = mock.Mock()
    recorder = FakeRecorder(error=AudioDeviceError("no input device"))
    callbacks = capture(SpeechInput(listener, recorder=recorder))

    assert callbacks.mock_calls == [mock.call.on_error("no input device"), mock.call.on_end()]
    assert Microphone.owner() is None


def test_busy_microphone_is_an_error():
    other = object()
    Microphone.acquire(other)
    try:
        listener = mock.Mock()
        callbacks = capture(SpeechInput(listener, recorder=FakeRecorder()))
    finally:
        Microphone.release(other)

    callbacks.on_error.assert_called_once()
    callbacks.on_end.assert_called_once_with()
    callbacks.on_result.assert_not_called()
    assert Microphone.owner() is None


def test_microphone_single_owner():
    first, second = object(), object()
    Microphone.acquire(first)
    try:
        Microphone.acquire(first)
        with pytest.raises(MicrophoneBusy):
            Microphone.acquire(second)
        Microphone.release(second)
        assert Microphone.owner() is first
    finally:
        Microphone.release(first)
    assert Microphone.owner() is None


def test_stop_listening_cancels_own_capture_only():
    listener = mock.Mock()
    listener.transcribe.return_value = ""
    recorder = FakeRecorder()
    speech_input = SpeechInput(listener, recorder=recorder)

    speech_input.stop_listening()
    assert recorder.cancelled == 0

    recorder.during = speech_input.stop_listening
    capture(speech_input)
    assert recorder.cancelled == 1


def test_vocab_prompt():
    prompt = build_vocab_prompt(["Grey Goose", "YES", "Caymus"])
    assert prompt.startswith("yes, no, ")
    assert prompt.endswith("Grey Goose, Caymus.")
    assert prompt.count("yes") == 1

    assert build_vocab_prompt(["Grey Goose"], limit=2) == "yes, no."
    assert build_vocab_prompt() == ", ".join(COMMAND_VOCAB) + "."
