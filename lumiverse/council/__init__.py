"""Council layer -- council member tools, sidecar and inline.

Sidecar mode runs every member's tools against a dedicated LLM before the
main generation; inline mode registers the tools for the main model to call.
"""

from lumiverse.council.capability import CouncilCapability
from lumiverse.council.inline import InlineToolRegistry, register_inline_tools
from lumiverse.council.orchestrator import CouncilOrchestrator
from lumiverse.council.sidecar import SidecarExecutor
from lumiverse.council.tools import COUNCIL_TOOLS, CouncilTool, format_deliberation

__all__ = [
    "COUNCIL_TOOLS",
    "CouncilCapability",
    "CouncilOrchestrator",
    "CouncilTool",
    "InlineToolRegistry",
    "SidecarExecutor",
    "format_deliberation",
    "register_inline_tools",
]
