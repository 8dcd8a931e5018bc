"""Stage handler registry."""

from collections.abc import Callable
from typing import Optional, Union

from daystart_jobs.transitions import PipelineStage


class StageRegistry:
    """Registry for pipeline stage handlers."""

    def __init__(self):
        self._handlers: dict[PipelineStage, Callable] = {}

    def handler(self, stage: Union[PipelineStage, str]):
        """
        Decorator to register a stage handler.

        The handler receives a context dict and the leased job, and returns
        the artifact for the stage: the script text, or the audio path.

        Usage:
            @registry.handler("script")
            async def generate_script(ctx, job):
                ...
        """
        stage = PipelineStage(stage)

        def decorator(func: Callable):
            self._handlers[stage] = func
            return func

        return decorator

    def get_handler(self, stage: Union[PipelineStage, str]) -> Optional[Callable]:
        """Get the handler for a stage."""
        return self._handlers.get(PipelineStage(stage))

    def all_handlers(self) -> dict[PipelineStage, Callable]:
        """Get all registered handlers."""
        return self._handlers.copy()


# Global registry instance
stage_registry = StageRegistry()
