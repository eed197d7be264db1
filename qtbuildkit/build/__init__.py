"""
Module compilation, build planning and scheduling.
"""

from .compiler import ModuleCompiler
from .driver import BuildDriver, BuildReport, Outcome
from .module import CodeGenRequirement, Module, ModuleArtifact
from .plan import BuildPlan, BuildPlanResolver, BuildStep
from .scheduler import BLOCKED, CANCELLED, FAILED, SUCCESS, BuildScheduler, StepResult

__all__ = [
    "ModuleCompiler",
    "BuildDriver",
    "BuildReport",
    "Outcome",
    "CodeGenRequirement",
    "Module",
    "ModuleArtifact",
    "BuildPlan",
    "BuildPlanResolver",
    "BuildStep",
    "BuildScheduler",
    "StepResult",
    "SUCCESS",
    "FAILED",
    "BLOCKED",
    "CANCELLED",
]
