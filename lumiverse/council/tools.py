"""Council tool catalogue and result formatting.

Provides:
- COUNCIL_TOOLS: the fixed catalogue of tools a council member can be assigned
- Anthropic / OpenAI-compatible tool definition builders
- format_tool_input: renders tool arguments as readable markdown
- format_deliberation: the "Council Deliberation" block read by prompt macros
- user_control_guidance: whether members may steer the user's character
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from lumiverse.pipeline.schemas import ToolResult


@dataclass(frozen=True)
class CouncilTool:
    name: str
    display_name: str
    description: str
    prompt: str
    input_schema: dict[str, Any]


def _text(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _choice(description: str, options: list[str]) -> dict[str, Any]:
    return {"type": "string", "enum": options, "description": description}


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


_CATALOGUE = [
    CouncilTool(
        name="suggest_direction",
        display_name="Suggest Direction",
        description="Suggest where the story should go next based on current context",
        prompt=(
            "Based on the current story context, suggest a clear direction for where the "
            "narrative should go next. Weigh character motivations and arcs, plot momentum "
            "and pacing, themes and emotional beats, and potential conflicts or resolutions. "
            "Provide one specific, actionable suggestion for the next scene or story beat."
        ),
        input_schema=_schema(
            {
                "direction": _text(
                    "A clear, specific suggestion for where the story should go next, "
                    "with reasoning grounded in motivations, momentum and emotional beats."
                ),
                "priority": _choice(
                    "How urgently this direction should be pursued.", ["high", "medium", "low"]
                ),
            },
            ["direction"],
        ),
    ),
    CouncilTool(
        name="analyze_character",
        display_name="Analyze Character",
        description="Analyze a character's current state and suggest development opportunities",
        prompt=(
            "Analyze the current emotional and psychological state of the main characters in "
            "this scene: what they feel, what they want or need, which internal conflicts are "
            "present, how they might grow, and which actions would be authentic to them."
        ),
        input_schema=_schema(
            {
                "analysis": _text(
                    "The character's current emotional and psychological state, wants and "
                    "internal conflicts."
                ),
                "development_opportunities": _text(
                    "How the character could grow, change, or take authentic action."
                ),
            },
            ["analysis"],
        ),
    ),
    CouncilTool(
        name="propose_twist",
        display_name="Propose Twist",
        description="Propose an unexpected plot development or revelation",
        prompt=(
            "Propose an unexpected twist, revelation, or complication: a hidden truth, an "
            "arrival or departure, a sudden change in circumstances, or an unforeseen "
            "consequence. It must be surprising but consistent with established story elements."
        ),
        input_schema=_schema(
            {
                "twist": _text("The proposed twist, revelation, or complication."),
                "setup_elements": _text(
                    "Existing story elements that foreshadow the twist so it feels earned."
                ),
            },
            ["twist"],
        ),
    ),
    CouncilTool(
        name="voice_concern",
        display_name="Voice Concern",
        description="Voice concerns about current story trajectory or pacing",
        prompt=(
            "Raise a concern about the story's trajectory: pacing problems, inconsistent "
            "characterization, plot holes, or missed opportunities. Be constructive."
        ),
        input_schema=_schema(
            {
                "concern": _text("A specific concern about trajectory, pacing or consistency."),
                "suggestion": _text("A constructive way to address the concern."),
            },
            ["concern"],
        ),
    ),
    CouncilTool(
        name="highlight_opportunity",
        display_name="Highlight Opportunity",
        description="Point out a narrative opportunity that should be explored",
        prompt=(
            "Identify an underexplored narrative opportunity: an unresolved thread, an "
            "interesting dynamic, or a setting detail worth developing."
        ),
        input_schema=_schema(
            {
                "opportunity": _text("The opportunity and what makes it compelling."),
                "enhancement": _text("How exploring it would enhance the story."),
            },
            ["opportunity"],
        ),
    ),
    CouncilTool(
        name="worldbuilding_note",
        display_name="Worldbuilding Note",
        description="Suggest worldbuilding details or lore that could enrich the setting",
        prompt=(
            "Suggest a worldbuilding detail, piece of lore, or setting element that would "
            "enrich the current scene and fit naturally into it."
        ),
        input_schema=_schema(
            {
                "detail": _text("The worldbuilding detail or lore element."),
                "integration": _text("How to weave it into the narrative without forcing it."),
            },
            ["detail"],
        ),
    ),
    CouncilTool(
        name="full_canon",
        display_name="Full Canon Analysis",
        description=(
            "Analyze how the character should act, talk, think, and portray themselves in "
            "100% faithful source material adherence"
        ),
        prompt=(
            "Analyze how the character should behave, speak, and think with strict fidelity to "
            "the source material, grounded in their current location and established traits. "
            "Allow no deviation from canonical behavior."
        ),
        input_schema=_schema(
            {
                "character_analysis": _text("How the character should authentically behave and speak."),
                "recommended_action": _text("What the character should do, say, or think next."),
                "canon_justification": _text("Source material that justifies the recommendation."),
            },
            ["character_analysis", "recommended_action"],
        ),
    ),
    CouncilTool(
        name="au_canon",
        display_name="AU Canon Analysis",
        description=(
            "Analyze character behavior with minor flexibility for alternate universe "
            "scenarios while maintaining core authenticity"
        ),
        prompt=(
            "Analyze how the character should behave in this alternate-universe setting, "
            "allowing minor flexibility while keeping core personality traits intact."
        ),
        input_schema=_schema(
            {
                "character_analysis": _text("Expected behavior with minor AU flexibility."),
                "recommended_action": _text("What the character should do, say, or think next."),
                "au_justification": _text("How the AU circumstances shape the recommendation."),
                "canon_fidelity": _choice(
                    "How closely the recommendation follows canonical traits.",
                    ["high", "medium", "low"],
                ),
            },
            ["character_analysis", "recommended_action"],
        ),
    ),
    CouncilTool(
        name="prose_guardian",
        display_name="Prose Guardian",
        description=(
            "Analyze previous messages for repeated patterns in speech, thought, or literary "
            "structure and guide restructuring"
        ),
        prompt=(
            "Review the recent messages for repetitive patterns: recurring phrases, sentence "
            "openings, paragraph shapes, dialogue tags, or stylistic tics. Quote examples, "
            "explain their effect on the reader, and give concrete restructuring guidance."
        ),
        input_schema=_schema(
            {
                "patterns_identified": _text("Repetitive patterns found, with quoted examples."),
                "impact_analysis": _text("How these patterns affect engagement and prose quality."),
                "restructuring_guidance": _text("Actionable techniques to vary structure and rhythm."),
                "priority_fixes": _choice(
                    "How urgently these patterns need attention.",
                    ["critical", "high", "medium", "low"],
                ),
            },
            ["patterns_identified", "restructuring_guidance"],
        ),
    ),
    CouncilTool(
        name="flame_kindler",
        display_name="Flame Kindler",
        description=(
            "Analyze relationships between characters and guide their logical progression "
            "based on established history, character details, and lore"
        ),
        prompt=(
            "Analyze the significant relationships in the current scene: their status, "
            "emotional tenor and history. Recommend how each should progress, at what pace, "
            "and which complications could create dramatic tension."
        ),
        input_schema=_schema(
            {
                "relationships_analyzed": _text("Current status and history of key relationships."),
                "progression_guidance": _text("How each relationship should progress next."),
                "pacing_recommendations": _text("Recommended development speed, with justification."),
                "conflict_opportunities": _text("Friction points that could add dramatic tension."),
            },
            ["relationships_analyzed", "progression_guidance"],
        ),
    ),
]

COUNCIL_TOOLS: dict[str, CouncilTool] = {tool.name: tool for tool in _CATALOGUE}


def get_tool(name: str) -> CouncilTool | None:
    return COUNCIL_TOOLS.get(name)


def anthropic_tools(names: list[str]) -> list[dict[str, Any]]:
    """Tool definitions in Anthropic Messages API format; unknown names are skipped."""
    return [
        {"name": t.name, "description": t.description, "input_schema": t.input_schema}
        for t in (COUNCIL_TOOLS.get(n) for n in names)
        if t is not None
    ]


def openai_tools(names: list[str]) -> list[dict[str, Any]]:
    """Tool definitions in OpenAI-compatible function calling format."""
    return [
        {
            "type": "function",
            "function": {"name": t.name, "description": t.description, "parameters": t.input_schema},
        }
        for t in (COUNCIL_TOOLS.get(n) for n in names)
        if t is not None
    ]


def format_tool_input(args: Any) -> str:
    """Render tool arguments as ``**Label:** value`` paragraphs.

    Keys become title-cased labels (``setup_elements`` -> ``Setup Elements``).
    Empty values are skipped.
    """
    if not isinstance(args, dict):
        return str(args or "")
    parts = [
        f"**{key.replace('_', ' ').title()}:** {value}"
        for key, value in args.items()
        if value not in (None, "")
    ]
    if parts:
        return "\n\n".join(parts)
    return json.dumps(args)


def user_control_guidance(allow_user_control: bool) -> str:
    if allow_user_control:
        return (
            "\n\n### User Character Guidance ###\n"
            "You may plan and suggest actions, dialogue, thoughts, and development for ALL "
            "characters in the story, including {{user}} (the user's character)."
        )
    return (
        "\n\n### User Character Guidance ###\n"
        "IMPORTANT: Do NOT plan actions, dialogue, thoughts, or decisions for {{user}} (the "
        "user's character). Focus on how the non-player characters, the world, and the "
        "narrative respond to the user's input."
    )


def format_deliberation(results: list[ToolResult]) -> str:
    """Markdown deliberation block grouping successful contributions by member."""
    if not results:
        return "## Council Deliberation\n\nNo tools were executed for this generation."

    lines = [
        "## Council Deliberation",
        "",
        "The following contributions have been gathered from council members:",
        "",
    ]
    by_member: dict[str, list[ToolResult]] = {}
    for result in results:
        if result.success:
            by_member.setdefault(result.member_name, []).append(result)

    for member_name, member_results in by_member.items():
        lines.append(f"### **{member_name}** says:")
        lines.append("")
        for result in member_results:
            lines.append(f"**{result.display_name or result.tool_name}:**")
            lines.append(result.payload)
            lines.append("")
        lines.append("---")
        lines.append("")
    return "\n".join(lines)
