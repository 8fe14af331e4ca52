"""Turns onboarding answers into the starting prompt for a session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from async_studio.prompt.values import StructuredPrompt


@dataclass
class OnboardingData:
    industry: str = ""
    niche: str = ""
    target_audience: str = ""
    goals: list[str] = field(default_factory=list)
    style: str = ""
    tone: str = ""
    color_palette: str = ""
    formats: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OnboardingData":
        return cls(
            industry=str(data.get("industry") or ""),
            niche=str(data.get("niche") or ""),
            target_audience=str(data.get("targetAudience") or ""),
            goals=[str(g) for g in data.get("goals") or []],
            style=str(data.get("style") or ""),
            tone=str(data.get("tone") or ""),
            color_palette=str(data.get("colorPalette") or ""),
            formats=[str(f) for f in data.get("formats") or []],
        )


def build_prompt_data(data: OnboardingData) -> dict[str, Any]:
    """Fill unanswered steps with defaults. Keys match the structured prompt."""
    return {
        "industry": data.industry or "General",
        "niche": data.niche or "Not specified",
        "targetAudience": data.target_audience or "General audience",
        "goals": list(data.goals) or ["Brand awareness"],
        "style": data.style or "Modern",
        "tone": data.tone or "Professional",
        "colorPalette": data.color_palette or "#6366F1",
        "formats": list(data.formats) or ["Square"],
    }


def format_prompt_for_ai(prompt_data: dict[str, Any]) -> str:
    parts = [
        f"Create a professional marketing image for the {prompt_data['industry']} industry",
        f"focused on {prompt_data['niche']}",
        f"targeting {prompt_data['targetAudience']}",
        f"to achieve {', '.join(prompt_data['goals'])}",
        f"in a {prompt_data['style']} style with {prompt_data['tone']} tone",
        f"using {prompt_data['colorPalette']} as primary color",
        f"optimized for {', '.join(prompt_data['formats'])} format(s)",
    ]
    return ", ".join(parts) + "."


def initial_request(data: OnboardingData) -> tuple[str, StructuredPrompt]:
    prompt_data = build_prompt_data(data)
    return format_prompt_for_ai(prompt_data), StructuredPrompt(prompt_data)
