import os

# Paths
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_PATH = os.getenv("VENUECHECK_DB_PATH", os.path.join(BASE_DIR, "venuecheck.db"))
DATA_DIR = os.path.join(BASE_DIR, "data")
CHECKLIST_CSV_PATH = os.path.join(DATA_DIR, "checklists.csv")
INVENTORY_CSV_PATH = os.path.join(DATA_DIR, "inventory.csv")
PHOTO_DIR = os.getenv("VENUECHECK_PHOTO_DIR", os.path.join(BASE_DIR, "photos"))

# PI_MODE: Lite models (Piper TTS, small Whisper, CPU only).
# Default on for the tablet/Pi deployments behind the bar.
PI_MODE = os.getenv("VENUECHECK_PI_MODE", "1") == "1"

# Logging
LOG_LEVEL = os.getenv("VENUECHECK_LOG_LEVEL", "INFO")

# ASR Settings
# small.en keeps latency acceptable on a Pi; medium.en for accuracy on a desktop.
WHISPER_MODEL_SIZE = os.getenv("VENUECHECK_WHISPER_MODEL", "small.en" if PI_MODE else "medium.en")
BEAM_SIZE = 5

# Audio Settings
SAMPLE_RATE = 16000
AUDIO_CARD_INDEX = None  # None = system default input
AUDIO_OUTPUT_KEYWORD = os.getenv("VENUECHECK_AUDIO_OUTPUT", "")
SILENCE_THRESHOLD = 0.01
SILENCE_BLOCKS = 20         # ~2s of quiet after speech ends the capture
NO_SPEECH_TIMEOUT = 8.0     # seconds of nothing before giving up
MAX_UTTERANCE_SECONDS = 15

# TTS Settings
# Options: "fast" (pyttsx3 - robotic but instant), "piper" (natural, Pi friendly)
TTS_ENGINE = os.getenv("VENUECHECK_TTS_ENGINE", "piper" if PI_MODE else "fast")
PIPER_BINARY = os.path.join(BASE_DIR, "piper", "piper", "piper.exe" if os.name == 'nt' else "piper")
PIPER_MODEL = os.path.join(BASE_DIR, "piper", "en_US-amy-medium.onnx")
TTS_OUTPUT_FILE = os.path.join(BASE_DIR, "response.wav")

# Guided loop
# Consecutive captures that end without a usable answer before the loop pauses itself.
MAX_SILENT_RETRIES = int(os.getenv("VENUECHECK_MAX_SILENT_RETRIES", "3"))

# NLP Settings (optional semantic fallback for unrecognised commands)
SEMANTIC_FALLBACK = os.getenv("VENUECHECK_SEMANTIC_FALLBACK", "0") == "1"
NLP_MODEL_NAME = "all-MiniLM-L6-v2"
INTENT_THRESHOLD = 0.55

# Vision / photo review
AI_FEATURES_ENABLED = os.getenv("VENUECHECK_AI_FEATURES", "1") == "1"
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
VISION_MODEL = os.getenv("VENUECHECK_VISION_MODEL", "gpt-4o-mini")
DETECTION_MIN_CONFIDENCE = 0.5
# Cosine similarity between a detected label and an item name
MATCH_THRESHOLD = 0.5
