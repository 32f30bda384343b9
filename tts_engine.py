import logging
import os
import subprocess

import config
from speech_text import clean_for_tts

log = logging.getLogger("venuecheck.tts")


class Speaker:
    """
    Speech output. speak() blocks until playback ends, then calls on_done
    exactly once, whether playback worked or not.
    """

    def __init__(self, engine_type=None):
        self.engine_type = engine_type or config.TTS_ENGINE
        self.engine = None
        log.info("Loading TTS Engine: %s", self.engine_type)

        if self.engine_type == "piper":
            if not os.path.exists(config.PIPER_BINARY):
                log.error("Piper binary not found at %s. Run download_piper.py", config.PIPER_BINARY)
                self.engine_type = "fast"  # Fallback
            else:
                self.piper_path = config.PIPER_BINARY
                self.piper_model = config.PIPER_MODEL

        if self.engine_type == "fast":
            try:
                import pyttsx3
                self.engine = pyttsx3.init()
                voices = self.engine.getProperty('voices')
                if len(voices) > 1:
                    self.engine.setProperty('voice', voices[1].id)
            except Exception as e:
                log.warning("Fast TTS Init Failed: %s. Switching to Silent Mode.", e)
                self.engine_type = "silent"

        # Detect Audio Device Once at Startup
        self.target_device_id = None
        if config.AUDIO_OUTPUT_KEYWORD:
            try:
                import sounddevice as sd
                for i, dev in enumerate(sd.query_devices()):
                    if dev['max_output_channels'] > 0 and config.AUDIO_OUTPUT_KEYWORD.lower() in dev['name'].lower():
                        self.target_device_id = i
                        log.info("TTS Audio Output Set: %s (Index %d)", dev['name'], i)
                        break
            except Exception as e:
                log.warning("Audio Device Detection Failed: %s", e)

        log.info("TTS Engine Ready (%s).", self.engine_type)

    def speak(self, text, on_done=None):
        """
        Speaks text. Any playback still running is cut off first.
        """
        self.stop_speaking()
        try:
            if text:
                print(f"Assistant: {text}")
                self._say(clean_for_tts(text))
        except Exception as e:
            log.error("TTS Error (%s): %s", self.engine_type, e)
        finally:
            if on_done:
                on_done()

    def _say(self, text):
        if self.engine_type == "fast":
            self.engine.say(text)
            self.engine.runAndWait()

        elif self.engine_type == "piper":
            # Piper reads the text on stdin and writes a WAV
            cmd = [
                self.piper_path,
                "--model", self.piper_model,
                "--output_file", config.TTS_OUTPUT_FILE
            ]
            process = subprocess.Popen(cmd, stdin=subprocess.PIPE, stderr=subprocess.PIPE)
            _, stderr = process.communicate(input=text.encode('utf-8'))
            if process.returncode != 0:
                raise RuntimeError(f"Piper exited with {process.returncode}: {stderr.decode(errors='replace')}")
            self.play_audio(config.TTS_OUTPUT_FILE)

    def stop_speaking(self):
        try:
            if self.engine_type == "fast" and self.engine:
                self.engine.stop()
            elif self.engine_type == "piper":
                import sounddevice as sd
                sd.stop()
        except Exception as e:
            log.debug("stop_speaking: %s", e)

    def play_audio(self, file_path):
        try:
            import sounddevice as sd
            import soundfile as sf

            data, fs = sf.read(file_path)
            sd.play(data, fs, device=self.target_device_id)
            sd.wait()
        except Exception as e:
            if os.name == 'nt':
                raise
            # Fallback for Linux (Raspberry Pi)
            log.debug("sounddevice playback failed (%s), trying aplay", e)
            cmd = ["aplay", file_path]
            if config.AUDIO_CARD_INDEX is not None:
                cmd = ["aplay", "-D", f"plughw:{config.AUDIO_CARD_INDEX},0", file_path]
            subprocess.run(cmd, check=False)
