import logging
import os
import sys
import threading
import time
from contextlib import contextmanager

import numpy as np
import soundfile as sf

import config

log = logging.getLogger("venuecheck.asr")

# Words the guided flows listen for. Primed into Whisper so short answers
# like "n/a" or "skip" are not turned into something else.
COMMAND_VOCAB = [
    "yes", "no", "pass", "fail", "skip", "not applicable", "needs attention", "flag",
    "next", "previous", "go back", "repeat", "stop", "pause", "add note", "take photo",
    "scan", "camera", "dozen", "and a half",
]


class VoiceListener:
    def __init__(self, dynamic_vocab=None):
        from faster_whisper import WhisperModel

        if config.PI_MODE:
            log.info("ASR Mode: LITE (CPU, Model: %s)", config.WHISPER_MODEL_SIZE)
            self.model = WhisperModel(config.WHISPER_MODEL_SIZE, device="cpu", compute_type="int8")
        else:
            try:
                self.model = WhisperModel(config.WHISPER_MODEL_SIZE, device="cuda", compute_type="float16")
                log.info("ASR Model (CUDA) loaded.")
            except Exception as e:
                log.warning("CUDA initialization failed (%s). Falling back to CPU...", e)
                self.model = WhisperModel(config.WHISPER_MODEL_SIZE, device="cpu", compute_type="int8")
                log.info("ASR Model (CPU) loaded.")

        self.vocab_prompt = build_vocab_prompt(dynamic_vocab)
        log.debug("ASR Prompt: %s...", self.vocab_prompt[:100])

    def transcribe(self, audio_path):
        """
        Transcribes the given audio file path.
        Returns the text string ("" for silence).
        """
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        segments, info = self.model.transcribe(
            audio_path,
            beam_size=config.BEAM_SIZE,
            language="en",
            initial_prompt=self.vocab_prompt,
            condition_on_previous_text=False  # Better for short commands
        )

        return " ".join(segment.text.strip() for segment in segments).strip()


def build_vocab_prompt(dynamic_vocab=None, limit=120):
    """
    Command words first, then item phrases from the database.
    Whisper only reads ~224 prompt tokens, so the list is capped.
    """
    vocab = list(COMMAND_VOCAB)
    if dynamic_vocab:
        seen = {v.lower() for v in vocab}
        for phrase in dynamic_vocab:
            if phrase.lower() not in seen:
                vocab.append(phrase)
                seen.add(phrase.lower())
    return f"{', '.join(vocab[:limit])}."


@contextmanager
def no_alsa_err():
    """
    Suppress C-level ALSA/PortAudio errors by redirecting stderr to /dev/null.
    Works on Linux/Pi to hide 'paInvalidSampleRate', etc.
    """
    if os.name == 'nt':
        yield
        return

    try:
        saved_stderr = os.dup(2)
    except OSError:
        # stderr is not a real fd (some IDEs)
        yield
        return

    devnull = os.open(os.devnull, os.O_WRONLY)
    sys.stderr.flush()
    os.dup2(devnull, 2)
    try:
        yield
    finally:
        os.dup2(saved_stderr, 2)
        os.close(saved_stderr)
        os.close(devnull)


class AudioDeviceError(Exception):
    """The microphone could not be opened."""


class AudioRecorder:
    def __init__(self):
        self.sample_rate = config.SAMPLE_RATE
        self.channels = 1
        self.device_index = config.AUDIO_CARD_INDEX
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    def record(self, output_filename, silence_threshold=None):
        """
        Records one utterance to a WAV file, stopping after a stretch of quiet.
        Returns the file name, or None when nobody spoke or the capture was cancelled.
        """
        import sounddevice as sd

        silence_threshold = silence_threshold or config.SILENCE_THRESHOLD
        self._cancelled.clear()
        recorded_frames = []

        def callback(indata, frames, time_info, status):
            if status:
                log.debug("Input stream status: %s", status)
            recorded_frames.append(indata.copy())

        with no_alsa_err():
            # Auto-Negotiate Sample Rate for USB mics
            stream = None
            rate = None
            for candidate in [self.sample_rate, 48000, 44100, 16000]:
                try:
                    stream = sd.InputStream(samplerate=candidate,
                                            device=self.device_index,
                                            channels=self.channels,
                                            blocksize=1024,
                                            callback=callback)
                    stream.start()
                    rate = candidate
                    break
                except Exception as e:
                    if stream:
                        stream.close()
                    stream = None
                    log.debug("Rate %sHz failed: %s", candidate, e)

            if not stream:
                raise AudioDeviceError(
                    f"Could not open audio device (Index {self.device_index}) with any common sample rate.")

            log.debug("Recording started at %sHz", rate)
            started_at = time.time()
            has_started = False
            silent_blocks = 0
            try:
                # Simple energy-based VAD
                while not self._cancelled.is_set():
                    sd.sleep(100)
                    if not recorded_frames:
                        continue

                    last_chunk = recorded_frames[-1]
                    amplitude = np.linalg.norm(last_chunk) / len(last_chunk) if len(last_chunk) else 0

                    if amplitude > silence_threshold:
                        has_started = True
                        silent_blocks = 0
                    elif has_started:
                        silent_blocks += 1

                    if has_started and silent_blocks > config.SILENCE_BLOCKS:
                        break
                    if not has_started and time.time() - started_at > config.NO_SPEECH_TIMEOUT:
                        log.debug("No speech before timeout.")
                        return None
                    if len(recorded_frames) * 1024 / rate > config.MAX_UTTERANCE_SECONDS:
                        break
            finally:
                stream.stop()
                stream.close()

        if self._cancelled.is_set() or not recorded_frames:
            return None

        audio_data = np.concatenate(recorded_frames, axis=0)
        sf.write(output_filename, audio_data, rate)
        return output_filename


class MicrophoneBusy(Exception):
    """Another capture session already holds the microphone."""


class Microphone:
    """
    The one microphone stream of the process. At most one owner at a time;
    owners must acquire before recording and release afterwards.
    """

    _lock = threading.Lock()
    _owner = None

    @classmethod
    def acquire(cls, owner):
        with cls._lock:
            if cls._owner is not None and cls._owner is not owner:
                raise MicrophoneBusy(f"Microphone is held by {cls._owner!r}")
            cls._owner = owner

    @classmethod
    def release(cls, owner):
        with cls._lock:
            if cls._owner is owner:
                cls._owner = None

    @classmethod
    def owner(cls):
        return cls._owner


class SpeechInput:
    """
    Callback-style capture of one utterance at a time:
    on_result(transcript) for speech, on_error(reason) on failure,
    then on_end() always.
    """

    def __init__(self, listener, recorder=None, audio_path=None):
        self.listener = listener
        self.recorder = recorder or AudioRecorder()
        self.audio_path = audio_path or os.path.join(config.BASE_DIR, "input.wav")
        self._capture_id = 0

    def start_listening(self, on_result, on_error, on_end):
        # A new capture supersedes whatever was running
        self.stop_listening()
        self._capture_id += 1
        capture_id = self._capture_id
        acquired = False
        try:
            Microphone.acquire(self)
            acquired = True
            audio_file = self.recorder.record(self.audio_path)
            if audio_file and capture_id == self._capture_id:
                t0 = time.time()
                text = self.listener.transcribe(audio_file)
                log.info("User Said: %s | ASR Time: %.2fs", text, time.time() - t0)
                if text.strip():
                    on_result(text)
        except Exception as e:
            log.warning("Speech Rec Error: %s", e)
            on_error(str(e))
        finally:
            if acquired:
                Microphone.release(self)
            on_end()

    def stop_listening(self):
        if Microphone.owner() is self:
            self.recorder.cancel()
