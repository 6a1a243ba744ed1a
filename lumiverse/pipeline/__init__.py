"""Pipeline module -- pre-generation context transformation.

Public API:
    ContextPipeline   - The interceptor entry point (intercept)
    PipelineSession   - Session-scoped state (cycle, capture, tool results)
    GenerationCycle   - Root vs nested invocation state machine

Schemas:
    Message, SovereignCapture, ToolResult, InterceptResult, InvocationType
"""

from lumiverse.pipeline.cycle import CycleState, GenerationCycle
from lumiverse.pipeline.interceptor import ContextPipeline
from lumiverse.pipeline.schemas import (
    InterceptResult,
    InvocationType,
    Message,
    SovereignCapture,
    ToolResult,
)
from lumiverse.pipeline.session import PipelineSession

__all__ = [
    "ContextPipeline",
    "CycleState",
    "GenerationCycle",
    "PipelineSession",
    "InterceptResult",
    "InvocationType",
    "Message",
    "SovereignCapture",
    "ToolResult",
]
