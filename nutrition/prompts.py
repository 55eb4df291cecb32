"""
Fixed instruction prompt for the vision model.

The JSON shape here is the contract nutrition.parser validates against.
"""

JSON_START = "<JSON_START>"
JSON_END = "<JSON_END>"

FOOD_ANALYSIS_PROMPT = f"""Analyze this image and respond with ONLY JSON in the following format.
Wrap the JSON between {JSON_START} and {JSON_END}.

If the image contains food or beverages:
{JSON_START}
{{
  "containsFood": true,
  "items": [
    {{
      "name": "Item name",
      "calories": number,
      "protein": number,
      "carbs": number,
      "fat": number
    }}
  ],
  "totalCalories": number,
  "totalProtein": number,
  "totalCarbs": number,
  "totalFat": number,
  "healthierAlternatives": "Suggestions for healthier options"
}}
{JSON_END}

If the image does NOT contain any food or beverages:
{JSON_START}
{{
  "containsFood": false,
  "items": []
}}
{JSON_END}

Ensure you return ONLY valid JSON with no additional text. Round nutritional values to whole numbers.
"""
