import logging

from sentence_transformers import SentenceTransformer, util

import config
from command_parser import parse_command
from models import VoiceCommand

log = logging.getLogger("venuecheck.nlp")


class IntentParser:
    """
    Semantic fallback for utterances the keyword parser does not recognise.
    "All good here" carries no keyword but is close to the "answer_yes" anchors.
    """

    def __init__(self, model_name=None, threshold=None):
        model_name = model_name or config.NLP_MODEL_NAME
        self.threshold = config.INTENT_THRESHOLD if threshold is None else threshold
        log.info("Loading NLP model: %s...", model_name)
        self.model = SentenceTransformer(model_name)

        # Anchor Sentences for each command
        self.intents = {
            "answer_yes": [
                "All good", "Looks good", "That's fine", "Everything is in order",
                "It's been done", "Already taken care of", "We're good on that", "Affirmative"
            ],
            "answer_no": [
                "It's not done", "That's not right", "It's broken", "We haven't done that",
                "Not working", "Negative", "Out of stock", "It's dirty"
            ],
            "answer_attention": [
                "Someone needs to look at this", "Needs follow up", "Tell the manager",
                "Keep an eye on it", "It's getting low", "Partially done"
            ],
            "answer_na": [
                "We don't have one", "Doesn't apply here", "We don't do that", "Irrelevant for us"
            ],
            "next": [
                "Move along", "Let's keep going", "Onto the next one", "Come back to it later"
            ],
            "repeat": [
                "I didn't hear you", "Can you say that one more time", "Sorry, come again", "Huh"
            ],
            "stop": [
                "That's enough for now", "Let's finish later", "I have to go", "End the audit"
            ],
            "take_photo": [
                "Let me show you", "I'll snap it", "Take a shot of this", "Look at this"
            ],
        }

        # Pre-compute embeddings for anchors
        self.intent_embeddings = {}
        for intent, phrases in self.intents.items():
            self.intent_embeddings[intent] = self.model.encode(phrases)

        log.info("NLP model loaded.")

    def detect_intent(self, text):
        """
        Returns (intent_name, confidence_score); "unknown" below the threshold.
        """
        if not text:
            return "unknown", 0.0

        text_emb = self.model.encode(text)

        best_intent = "unknown"
        best_score = -1.0
        for intent, anchor_embs in self.intent_embeddings.items():
            scores = util.cos_sim(text_emb, anchor_embs)[0]
            max_score = float(scores.max())
            if max_score > best_score:
                best_score = max_score
                best_intent = intent

        if best_score < self.threshold:
            return "unknown", best_score

        return best_intent, best_score


class CommandParser:
    """
    Keyword parsing first; the semantic model only sees what the keywords miss.
    Usable anywhere a parse_command-style callable is expected.
    """

    def __init__(self, intent_parser=None, keyword_parser=parse_command):
        self.intent_parser = intent_parser
        self.keyword_parser = keyword_parser

    def __call__(self, transcript):
        command = self.keyword_parser(transcript)
        if command.action != "unknown" or self.intent_parser is None:
            return command

        try:
            intent, score = self.intent_parser.detect_intent(command.text)
        except Exception as e:
            log.warning("Semantic fallback failed: %s", e)
            return command

        log.debug("Semantic fallback: %r -> %s (%.2f)", command.text, intent, score)
        return VoiceCommand(text=command.text, action=intent, value=command.value)
