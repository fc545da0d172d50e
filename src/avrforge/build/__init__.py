"""Firmware build pipeline: classification, compilation, linking, image extraction."""

from .compiler import AvrCompiler, CompilerError, UnitResult
from .diagnostics import CompilerProblem, has_fatal_diagnostics, parse_problems
from .linker import AvrLinker, LinkerError
from .orchestrator import BuildOrchestrator, BuildStage, CompileResult, FailurePolicy
from .project_classifier import ClassificationError, ProjectKind, ProjectLayout, classify_project
from .tool_runner import ToolNotFoundError, ToolResult, ToolTimeoutError, run_tool

__all__ = [
    "AvrCompiler",
    "AvrLinker",
    "BuildOrchestrator",
    "BuildStage",
    "ClassificationError",
    "CompileResult",
    "CompilerError",
    "CompilerProblem",
    "FailurePolicy",
    "LinkerError",
    "ProjectKind",
    "ProjectLayout",
    "ToolNotFoundError",
    "ToolResult",
    "ToolTimeoutError",
    "UnitResult",
    "classify_project",
    "has_fatal_diagnostics",
    "parse_problems",
    "run_tool",
]
