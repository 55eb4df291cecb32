"""
LINE Flex Message builders.

Turns AnalysisResult objects into the bubble/box/text JSON the LINE
client renders. Output dicts are built fresh on every call.
"""
import logging
from typing import Any, Dict, List, Optional

from nutrition.models import AnalysisResult, FoodItem

logger = logging.getLogger(__name__)

HEADER_COLOR = "#27ACB2"
SECTION_COLOR = "#1DB446"
LABEL_COLOR = "#555555"
VALUE_COLOR = "#111111"
ERROR_COLOR = "#ff0000"

ANALYZE_AGAIN_TEXT = "Analyze food"
NO_ALTERNATIVES_TEXT = "No specific alternatives provided"
DEFAULT_ERROR_MESSAGE = "There was an error analyzing the food."
NO_FOOD_MESSAGE = "The image you sent doesn't appear to contain any food items."

Message = Dict[str, Any]


class RenderError(TypeError):
    """Renderer was handed something that is not an AnalysisResult."""
    pass


# ── Node helpers ──────────────────────────────────────────────────────

def _text(text: str, **style: Any) -> Dict[str, Any]:
    return {"type": "text", "text": text, **style}


def _row(label: str, value: str, label_flex: int, bold: bool = False, **box: Any) -> Dict[str, Any]:
    """Horizontal label/value row, value right-aligned."""
    weight = {"weight": "bold"} if bold else {}
    return {
        "type": "box",
        "layout": "horizontal",
        **box,
        "contents": [
            _text(label, size="sm", color=LABEL_COLOR, **weight, flex=label_flex),
            _text(value, size="sm", color=VALUE_COLOR, **weight, align="end", flex=2),
        ],
    }


def _hero(image_url: str) -> Dict[str, Any]:
    return {
        "type": "image",
        "url": image_url,
        "size": "full",
        "aspectRatio": "20:13",
        "aspectMode": "cover",
    }


def _button(label: str) -> Dict[str, Any]:
    return {
        "type": "button",
        "action": {"type": "message", "label": label, "text": ANALYZE_AGAIN_TEXT},
        "style": "primary",
    }


def _item_row(item: FoodItem) -> Dict[str, Any]:
    return {
        "type": "box",
        "layout": "horizontal",
        "margin": "md",
        "contents": [
            _text(item.name, size="sm", color=LABEL_COLOR, flex=5, wrap=True),
            _text(f"{item.calories} cal", size="sm", color=VALUE_COLOR, align="end", flex=2),
        ],
    }


# ── Public builders ───────────────────────────────────────────────────

def create_text_message(text: str) -> Message:
    return {"type": "text", "text": text}


def create_error_flex(title: str, message: str, image_url: Optional[str] = None) -> Message:
    """
    Error bubble: red title, wrapped message, "Try Again" button.

    When image_url is given the source photo is shown as hero, matching
    the analysis card layout.
    """
    bubble: Dict[str, Any] = {"type": "bubble"}
    if image_url:
        bubble["hero"] = _hero(image_url)
    bubble["body"] = {
        "type": "box",
        "layout": "vertical",
        "contents": [
            _text(title, weight="bold", size="xl", color=ERROR_COLOR),
            _text(message, wrap=True, margin="md"),
        ],
    }
    bubble["footer"] = {
        "type": "box",
        "layout": "vertical",
        "contents": [_button("Try Again")],
    }
    return {"type": "flex", "altText": title, "contents": bubble}


def create_food_analysis_flex(result: AnalysisResult, image_url: Optional[str] = None) -> Message:
    """Full analysis bubble: items, total calories, macros, alternatives."""
    items: List[FoodItem] = result.items or []

    body_contents: List[Dict[str, Any]] = [
        _text("Food Items", weight="bold", color=SECTION_COLOR, size="md"),
    ]
    body_contents.extend(_item_row(item) for item in items)
    body_contents.extend([
        _row("Total Calories:", f"{result.total_calories} cal", 5, bold=True, margin="md"),
        {"type": "separator", "margin": "xl"},
        _text("Nutrition", weight="bold", color=SECTION_COLOR, size="md", margin="xl"),
        {
            "type": "box",
            "layout": "vertical",
            "margin": "md",
            "contents": [
                _row("Protein:", f"{result.total_protein}g", 3),
                _row("Carbs:", f"{result.total_carbs}g", 3, margin="sm"),
                _row("Fat:", f"{result.total_fat}g", 3, margin="sm"),
            ],
        },
    ])

    footer_button = _button("Analyze Another Food")
    footer_button["margin"] = "md"

    bubble: Dict[str, Any] = {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "contents": [_text("Food Analysis", weight="bold", size="xl", color="#ffffff")],
            "backgroundColor": HEADER_COLOR,
        },
    }
    if image_url:
        bubble["hero"] = _hero(image_url)
    bubble["body"] = {"type": "box", "layout": "vertical", "contents": body_contents}
    bubble["footer"] = {
        "type": "box",
        "layout": "vertical",
        "contents": [
            _text("Healthier Alternatives", weight="bold", color=SECTION_COLOR, size="sm"),
            _text(result.healthier_alternatives or NO_ALTERNATIVES_TEXT, wrap=True, size="xs", margin="md"),
            footer_button,
        ],
    }
    bubble["styles"] = {"footer": {"separator": True}}

    return {"type": "flex", "altText": "Food Analysis Results", "contents": bubble}


def render_result(result: AnalysisResult, image_url: Optional[str] = None) -> Message:
    """
    Pick the card for an analysis result. First match wins:

    1. result.error set      → "Analysis Error" card
    2. no food detected      → "No Food Detected" card
    3. otherwise             → full analysis card

    Raises:
        RenderError: if result is not an AnalysisResult
    """
    if not isinstance(result, AnalysisResult):
        raise RenderError(f"Cannot render {type(result).__name__}")

    if result.error:
        return create_error_flex("Analysis Error", result.message or DEFAULT_ERROR_MESSAGE, image_url)

    if not result.contains_food:
        return create_error_flex("No Food Detected", NO_FOOD_MESSAGE, image_url)

    logger.debug("[RENDER] Analysis card with %d item(s)", len(result.items))
    return create_food_analysis_flex(result, image_url)
