"""Prompt templates and quick suggestions for climate scenarios."""

from enum import Enum


class Category(str, Enum):
    """Scenario category a description belongs to."""

    EFFECT = "effect"
    SOLUTION = "solution"

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Parse a category, accepting the plural UI aliases."""
        normalized = value.strip().lower()
        aliases = {
            "effects": cls.EFFECT,
            "solutions": cls.SOLUTION,
            "improvement": cls.SOLUTION,
            "improvements": cls.SOLUTION,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


EFFECT_SUGGESTIONS: list[str] = [
    "Wildfire spreading across the landscape",
    "Severe flooding and water damage",
    "Air pollution and smog",
    "Earthquake damage and ground cracks",
    "Extreme storm and weather",
]

SOLUTION_SUGGESTIONS: list[str] = [
    "Fire brigade extinguishing forest fires with water and foam",
    "Reforestation with lush green trees and vegetation",
    "Solar panels and renewable energy infrastructure",
    "Wind turbines generating clean power",
    "Water conservation and sustainable management",
]

TRANSFORM_PROMPT = """Transform this image based on the following description: {description}.

Maintain photorealistic quality and ensure the transformation looks natural and believable. \
The result should be educational and impactful for climate literacy. Pay attention to details \
like lighting, atmosphere, and environmental elements to make the scene convincing and dramatic."""


def get_suggestions(category: Category) -> list[str]:
    """Quick-pick descriptions for a category."""
    if category is Category.SOLUTION:
        return list(SOLUTION_SUGGESTIONS)
    return list(EFFECT_SUGGESTIONS)


def get_transform_prompt(description: str) -> str:
    """Instructional text sent with the source image."""
    return TRANSFORM_PROMPT.format(description=description.strip())
