import base64
import json
import logging
import mimetypes

from openai import OpenAI

import config

log = logging.getLogger("venuecheck.vision")

INVENTORY_PROMPT = (
    "You are counting bottles behind a bar. List every bottle you can identify in the photo. "
    "Respond with JSON only: {\"detections\": [{\"brand\": str, \"product_name\": str, "
    "\"size_ml\": number or null, \"category_hint\": str or null, \"confidence\": number 0-1}]}. "
    "One entry per physical bottle."
)

COMPLIANCE_PROMPT = (
    "You are a health inspector checking a bar or restaurant against the FDA Food Code. "
    "The staff member is answering this checklist item: \"{item}\". "
    "Respond with JSON only: {{\"summary\": str, \"compliance_score\": number 0-100, "
    "\"issues\": [{{\"description\": str, \"severity\": \"low\"|\"medium\"|\"high\"|\"critical\", "
    "\"confidence\": number 0-1, \"recommendation\": str}}]}}."
)

SEVERITIES = ("low", "medium", "high", "critical")


class VisionError(Exception):
    """The vision model could not be reached or answered nonsense."""


def encode_image(image_path):
    mime = mimetypes.guess_type(image_path)[0] or "image/jpeg"
    with open(image_path, "rb") as f:
        data = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime};base64,{data}"


class VisionAnalyzer:
    def __init__(self, client=None, model=None):
        self.model = model or config.VISION_MODEL
        if client is None:
            if not config.OPENAI_API_KEY:
                raise VisionError("OPENAI_API_KEY environment variable not set")
            client = OpenAI(api_key=config.OPENAI_API_KEY)
        self.client = client

    def _ask(self, prompt, image_path):
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": encode_image(image_path)}},
                    ],
                }],
                response_format={"type": "json_object"},
                temperature=0,
            )
            content = response.choices[0].message.content or ""
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise VisionError(f"Failed to parse vision response: {e}") from e

    def analyze_inventory(self, image_path):
        """
        Returns a list of detections:
        {"brand", "product_name", "size_ml", "category_hint", "confidence"}
        """
        result = self._ask(INVENTORY_PROMPT, image_path)
        detections = []
        for det in result.get("detections") or []:
            if not isinstance(det, dict) or (not det.get("brand") and not det.get("product_name")):
                continue
            detections.append({
                "brand": str(det.get("brand") or ""),
                "product_name": str(det.get("product_name") or ""),
                "size_ml": _number_or_none(det.get("size_ml")),
                "category_hint": det.get("category_hint") or None,
                "confidence": _number_or_none(det.get("confidence")) or 0.0,
            })
        log.info("Vision found %d bottle(s).", len(detections))
        return detections

    def analyze_compliance(self, image_path, item_text):
        """
        Returns {"summary", "compliance_score", "issues": [...]}.
        """
        result = self._ask(COMPLIANCE_PROMPT.format(item=item_text), image_path)
        if "issues" not in result:
            raise VisionError("Invalid response format: missing 'issues'")

        issues = []
        for issue in result.get("issues") or []:
            severity = str(issue.get("severity", "low")).lower()
            issues.append({
                "description": str(issue.get("description", "")),
                "severity": severity if severity in SEVERITIES else "low",
                "confidence": _number_or_none(issue.get("confidence")) or 0.0,
                "recommendation": str(issue.get("recommendation", "")),
            })
        return {
            "summary": str(result.get("summary", "")),
            "compliance_score": _number_or_none(result.get("compliance_score")),
            "issues": issues,
        }


def _number_or_none(value):
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
