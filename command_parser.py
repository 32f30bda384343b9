import re

from models import VoiceCommand

# Keyword sets per action, checked top to bottom. First match wins.
# Answers come before navigation, navigation before meta-actions.
# Inside the answers, the narrow phrases ("pass item", "not applicable",
# "needs attention", "not okay") are checked before the broad yes/no words.
AUDIT_KEYWORDS = [
    # Answers
    ("answer_skip", ["skip", "skip it", "pass item"]),
    ("answer_na", ["na", "n a", "n/a", "not applicable"]),
    ("answer_attention", ["attention", "needs attention", "warning", "flag", "flag it"]),
    ("answer_no", ["not ok", "not okay", "not done", "not good", "not correct", "not checked", "not passed",
                   "not yet", "isn't done", "isn't working"]),
    ("answer_yes", ["yes", "yeah", "yep", "pass", "passed", "confirmed", "check", "checked", "correct", "ok", "okay",
                    "done"]),
    ("answer_no", ["no", "nope", "fail", "failed", "bad", "issue", "broken"]),
    # Navigation
    ("next", ["next", "next question", "next item", "continue", "go on", "move on"]),
    ("previous", ["previous", "back", "go back", "last question"]),
    ("repeat", ["repeat", "say again", "again", "what", "pardon"]),
    # Actions
    ("stop", ["stop", "pause", "quit", "exit", "cancel"]),
    ("add_note", ["note", "notes", "add note", "comment"]),
    ("take_photo", ["photo", "camera", "picture", "image"]),
]

INVENTORY_KEYWORDS = [
    ("stop", ["stop", "pause", "quit", "exit"]),
    ("next", ["next", "skip", "pass"]),
    ("previous", ["previous", "back"]),
    ("repeat", ["repeat", "again", "what"]),
    ("take_photo", ["scan", "photo", "camera", "picture"]),
]

# Every action the parsers can return
ACTIONS = (
    "answer_yes", "answer_no", "answer_skip", "answer_attention", "answer_na",
    "next", "previous", "repeat", "stop", "add_note", "take_photo",
    "record_count", "unknown",
)

SMALL_NUMBERS = {
    "zero": 0, "none": 0, "nil": 0,
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
}

TENS = {
    "twenty": 20, "thirty": 30, "forty": 40, "fifty": 50,
    "sixty": 60, "seventy": 70, "eighty": 80, "ninety": 90,
}

# What the recogniser hears when someone says a bare number
HOMOPHONES = {"to": 2, "too": 2, "for": 4, "ate": 8, "won": 1}

# Words allowed inside a spoken number ("three and a half", "half a dozen")
NUMBER_FILLERS = {"and", "a", "an"}


def _phrase_pattern(phrase):
    return re.compile(r"(?<![\w/])" + re.escape(phrase) + r"(?![\w/])")


def _compile(keyword_table):
    return [(action, [_phrase_pattern(p) for p in phrases]) for action, phrases in keyword_table]


_AUDIT_PATTERNS = _compile(AUDIT_KEYWORDS)
_INVENTORY_PATTERNS = _compile(INVENTORY_KEYWORDS)


def _normalize(transcript):
    if not transcript:
        return ""
    text = str(transcript).lower().strip()
    # Recogniser punctuation ("Yes." / "No, next!") is noise for matching
    text = re.sub(r"(?<!\d)\.|\.(?!\d)|[,!?;:\"]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _match(text, patterns):
    for action, phrase_patterns in patterns:
        if any(p.search(text) for p in phrase_patterns):
            return action
    return None


def parse_command(transcript):
    """
    Classifies one utterance of the audit/checklist flow.
    Always returns exactly one VoiceCommand; "unknown" when nothing matches.
    """
    text = _normalize(transcript)
    action = _match(text, _AUDIT_PATTERNS) if text else None
    return VoiceCommand(text=text, action=action or "unknown")


def parse_inventory_command(transcript):
    """
    Classifies one utterance of the inventory count flow.
    Navigation words win over numbers; a spoken number becomes "record_count".
    """
    text = _normalize(transcript)
    if not text:
        return VoiceCommand(text=text, action="unknown")

    action = _match(text, _INVENTORY_PATTERNS)
    if action:
        return VoiceCommand(text=text, action=action)

    value = parse_voice_number(text)
    if value is not None:
        return VoiceCommand(text=text, action="record_count", value=value)

    return VoiceCommand(text=text, action="unknown")


def _words_to_number(words, allow_homophones=False):
    total = None
    for w in words:
        if w in SMALL_NUMBERS:
            total = (total or 0) + SMALL_NUMBERS[w]
        elif w in TENS:
            total = (total or 0) + TENS[w]
        elif allow_homophones and w in HOMOPHONES:
            total = (total or 0) + HOMOPHONES[w]
        elif w == "half":
            total = 0.5 if total is None else total + 0.5
        elif w == "dozen":
            total = 12 if total is None else total * 12
        elif w == "hundred":
            total = 100 if total is None else total * 100
        elif w in NUMBER_FILLERS:
            continue
        elif total is not None:
            break  # First run of number words only
    return total


def _digit_string(words):
    digits = []
    for w in words:
        if w.isdigit():
            digits.append(w)
        elif w in SMALL_NUMBERS and SMALL_NUMBERS[w] < 10:
            digits.append(str(SMALL_NUMBERS[w]))
        elif digits:
            break
    return "".join(digits)


def parse_voice_number(transcript):
    """
    Pulls a quantity out of a spoken phrase.
    "12" -> 12.0, "three and a half" -> 3.5, "two point five" -> 2.5,
    "half a dozen" -> 6.0. Returns None when no number was said.
    """
    text = _normalize(transcript)
    if not text:
        return None

    # 1. Digits straight from the recogniser
    match = re.search(r"\d+(?:\.\d+)?", text)
    if match:
        value = float(match.group(0))
        if re.search(r"\band a half\b", text[match.end():]):
            value += 0.5
        return value

    # 2. "<n> point <m>"
    if re.search(r"\bpoint\b", text):
        whole, _, frac = text.partition("point")
        frac_digits = _digit_string(frac.split())
        if frac_digits:
            int_part = _words_to_number(whole.split()) or 0
            return float(f"{int(int_part)}.{frac_digits}")

    # 3. Number words; homophones only count for a bare one or two word answer
    words = text.split()
    value = _words_to_number(words)
    if value is None and len(words) <= 2:
        value = _words_to_number(words, allow_homophones=True)
    if value is None:
        return None
    return float(value)
