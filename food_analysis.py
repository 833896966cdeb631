"""
Suggest listing fields from a photo of food.

The image is sent to a hosted vision model through the OpenAI SDK in JSON
mode; the reply is normalised into a :class:`~schemas.FoodAnalysis` that the
donate form can pre-fill. Nothing in the listing lifecycle depends on this.
"""

import base64
import binascii
import json
import logging
from typing import Optional

from fastapi import Request
from openai import OpenAI, OpenAIError

from errors import AnalysisFailed, InvalidImage
from schemas import FoodAnalysis

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an assistant that analyzes images of food to identify key details "
    "for food donation listings. Extract only the requested information in the "
    "exact JSON format specified."
)

USER_PROMPT = (
    "Analyze this food image and extract the following information in JSON format:\n\n"
    "1. title: food name\n"
    "2. description: short description, including visible ingredients if possible\n"
    "3. category: one of prepared, produce, bakery, canned, dairy, other\n"
    "4. quantity: estimated quantity (number)\n"
    "5. unit: one of servings, pounds, items, boxes\n"
    "6. serving_size: approximate number of people served, e.g. '2-4 people'\n\n"
    "Return ONLY a valid JSON object with these fields: "
    "title, description, category, quantity, unit, serving_size."
)

MIN_IMAGE_LENGTH = 100


def to_data_url(image: str) -> str:
    """Return ``image`` as a ``data:image/...;base64,`` URL, validating the payload."""
    image = image.strip()
    if image.startswith("data:image"):
        header, _, payload = image.partition(",")
        if not header.endswith(";base64") or not payload:
            raise InvalidImage()
        data_url = image
    else:
        payload = image
        data_url = f"data:image/jpeg;base64,{image}"

    if len(payload) < MIN_IMAGE_LENGTH:
        raise InvalidImage()
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImage() from exc
    return data_url


def parse_analysis(content: str) -> FoodAnalysis:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.error("Unparsable analysis reply: %r", content)
        raise AnalysisFailed("Failed to parse the AI analysis results.") from exc
    if not isinstance(data, dict):
        raise AnalysisFailed("Failed to parse the AI analysis results.")

    try:
        quantity = float(data.get("quantity") or 1)
    except (TypeError, ValueError):
        quantity = 1

    return FoodAnalysis(
        title=str(data.get("title") or ""),
        description=str(data.get("description") or ""),
        category=str(data.get("category") or "other"),
        quantity=quantity,
        unit=str(data.get("unit") or "servings"),
        serving_size=str(data.get("serving_size") or ""),
    )


class FoodAnalyzer:
    def __init__(self, client: Optional[OpenAI], model: str = "gpt-4o"):
        self.client = client
        self.model = model

    def analyze(self, image: str) -> FoodAnalysis:
        if self.client is None:
            raise AnalysisFailed("Image analysis is not configured")

        data_url = to_data_url(image)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": USER_PROMPT},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    },
                ],
                max_tokens=500,
                temperature=0.5,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error("Image analysis request failed: %s", exc)
            raise AnalysisFailed() from exc

        content = response.choices[0].message.content if response.choices else None
        return parse_analysis(content or "")


def build_food_analyzer(api_key: str, model: str) -> FoodAnalyzer:
    client = OpenAI(api_key=api_key) if api_key else None
    if client is None:
        logger.warning("OPENAI_API_KEY is not set; image analysis is disabled")
    return FoodAnalyzer(client, model)


def get_food_analyzer(request: Request) -> FoodAnalyzer:
    """FastAPI dependency returning the analyzer installed on the app."""
    return request.app.state.food_analyzer
