"""
Photo sub-flow: capture, keep a copy, analyse, map onto items, confirm.

The loop calls PhotoReviewFlow.run() and blocks until it returns either
PhotoUpdates (per-item deltas to apply) or PhotoCancelled.
"""

import logging
import os
import shutil
import time

from sentence_transformers import SentenceTransformer, util

import config
from models import FAIL, NEEDS_ATTENTION, PASS, ItemDelta, PhotoCancelled, PhotoUpdates

log = logging.getLogger("venuecheck.photo")

SEVERITY_STATUS = {
    "critical": FAIL,
    "high": FAIL,
    "medium": NEEDS_ATTENTION,
    "low": NEEDS_ATTENTION,
}
SEVERITY_ORDER = ["low", "medium", "high", "critical"]


def console_capture():
    path = input("Photo file path (blank to cancel): ").strip().strip('"')
    return path or None


def console_confirm(lines):
    print("\n--- Photo Review ---")
    for line in lines or ["No detections. The photo is kept for reference."]:
        print(f"  {line}")
    return input("Apply? [y/N] ").strip().lower().startswith("y")


class ItemMatcher:
    """
    Semantic index over item names, encoded once per list.
    "Titos Handmade" -> "Tito's Handmade Vodka"
    """

    def __init__(self, items, model=None):
        self.items = list(items)
        self.model = model or SentenceTransformer(config.NLP_MODEL_NAME)
        self._rows = {item.id: n for n, item in enumerate(self.items)}
        self.embeddings = self.model.encode([item.text for item in self.items]) if self.items else None

    def scores(self, query):
        """
        Returns {item_id: cosine similarity} for every item.
        """
        if self.embeddings is None or not query:
            return {}
        sims = util.cos_sim(self.model.encode(query), self.embeddings)[0]
        return {item_id: float(sims[row]) for item_id, row in self._rows.items()}


def _category_matches(hint, category):
    if not hint or not category:
        return False
    hint = hint.lower().replace("_", " ")
    category = category.lower().replace("_", " ")
    return hint in category or category in hint


def map_detections_to_items(detections, items, matcher=None, threshold=None, min_confidence=None):
    """
    Attaches "matched_item_id" to each detection (None when nothing fits).
    Brand containment wins outright; otherwise the closest item name by
    embedding similarity to "brand product_name", above the threshold.
    Category hints narrow the candidates when any item carries that category.
    The matcher (and its model) is only built when a detection needs it.
    """
    threshold = config.MATCH_THRESHOLD if threshold is None else threshold
    min_confidence = config.DETECTION_MIN_CONFIDENCE if min_confidence is None else min_confidence

    mapped = []
    for det in detections:
        det = dict(det, matched_item_id=None)
        mapped.append(det)
        if det.get("confidence", 0) < min_confidence:
            continue

        candidates = [i for i in items if _category_matches(det.get("category_hint"), i.category)]
        if not candidates:
            candidates = items

        brand = (det.get("brand") or "").strip()
        label = f"{brand} {det.get('product_name') or ''}".strip()
        if not label or (brand.lower() == "unknown" and not det.get("product_name")):
            continue

        if brand and brand.lower() != "unknown":
            scores = {i.id: 1.0 for i in candidates if brand.lower() in i.text.lower()}
        else:
            scores = {}
        if not scores:
            if matcher is None:
                matcher = ItemMatcher(items)
            similarity = matcher.scores(label)
            scores = {i.id: similarity.get(i.id, 0.0) for i in candidates}

        best_item, best_score = None, 0.0
        for item in candidates:
            if item.id not in scores:
                continue
            score = scores[item.id]
            # Same bottle size breaks ties
            if det.get("size_ml") and item.size_ml and float(det["size_ml"]) == float(item.size_ml):
                score += 0.05
            if score > best_score:
                best_item, best_score = item, score

        if best_item is not None and best_score >= threshold:
            det["matched_item_id"] = best_item.id
    return mapped


def detections_to_deltas(mapped):
    """
    Each matched bottle adds one to its item.
    """
    deltas = {}
    for det in mapped:
        item_id = det.get("matched_item_id")
        if not item_id:
            continue
        if item_id not in deltas:
            deltas[item_id] = ItemDelta(quantity=0)
        deltas[item_id].quantity += 1
    return deltas


def issues_to_delta(analysis):
    """
    The worst issue decides the status of the item the photo was taken for.
    """
    issues = analysis.get("issues") or []
    if not issues:
        return ItemDelta(status=PASS, note=analysis.get("summary") or None)

    worst = max(issues, key=lambda i: SEVERITY_ORDER.index(i.get("severity", "low")))
    lines = [analysis.get("summary") or ""]
    lines += [f"[{i['severity']}] {i['description']} - {i['recommendation']}".strip(" -") for i in issues]
    return ItemDelta(status=SEVERITY_STATUS[worst["severity"]], note="\n".join(line for line in lines if line))


class PhotoReviewFlow:
    def __init__(self, session_id, mode="audit", analyzer=None, capture=None, confirm=None,
                 photo_dir=None, ai_enabled=None, matcher_model=None):
        self.session_id = session_id
        self.mode = mode
        self.analyzer = analyzer
        self.capture = capture or console_capture
        self.confirm = confirm or console_confirm
        self.photo_dir = photo_dir or config.PHOTO_DIR
        self.ai_enabled = config.AI_FEATURES_ENABLED if ai_enabled is None else ai_enabled
        self.matcher_model = matcher_model
        self._matchers = {}

    def matcher_for(self, items):
        """
        One ItemMatcher per item list, reused across photos.
        """
        key = tuple(i.id for i in items)
        if key not in self._matchers:
            self._matchers[key] = ItemMatcher(items, model=self.matcher_model)
        return self._matchers[key]

    def store_photo(self, source_path):
        if not os.path.exists(source_path):
            raise FileNotFoundError(f"Photo not found: {source_path}")
        target_dir = os.path.join(self.photo_dir, self.session_id)
        os.makedirs(target_dir, exist_ok=True)
        target = os.path.join(target_dir, f"{int(time.time() * 1000)}_{os.path.basename(source_path)}")
        shutil.copyfile(source_path, target)
        return target

    def run(self, current_item, items):
        try:
            source = self.capture()
            if not source:
                return PhotoCancelled(reason="no photo")

            photo_path = self.store_photo(source)
            deltas, lines = {}, []

            if self.ai_enabled and self.analyzer is not None:
                if self.mode == "inventory":
                    detections = self.analyzer.analyze_inventory(photo_path)
                    mapped = map_detections_to_items(detections, items, matcher=self.matcher_for(items))
                    deltas = detections_to_deltas(mapped)
                    names = {i.id: i.text for i in items}
                    lines = [f"{names[item_id]}: +{int(d.quantity)}" for item_id, d in deltas.items()]
                    unmatched = sum(1 for d in mapped if not d["matched_item_id"])
                    if unmatched:
                        lines.append(f"{unmatched} bottle(s) not matched to an item")
                else:
                    analysis = self.analyzer.analyze_compliance(photo_path, current_item.text)
                    delta = issues_to_delta(analysis)
                    deltas = {current_item.id: delta}
                    lines = [f"{current_item.text}: {delta.status}"] + (delta.note or "").splitlines()

            if not self.confirm(lines):
                return PhotoCancelled(reason="rejected")
            return PhotoUpdates(items=deltas, photo_path=photo_path)

        except Exception as e:
            log.exception("Failed to process photo")
            print(f"Failed to process photo: {e}")
            return PhotoCancelled(reason="error")
