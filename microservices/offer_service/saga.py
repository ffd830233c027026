"""
Saga

Ordered list of steps, each an async action with an optional compensation.
Steps run sequentially and share a context dict; the result of each action
is stored in the context under the step name. When a step raises, the
compensations of the steps that already completed run in reverse order and
the original exception is re-raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

StepCallable = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: StepCallable
    compensation: Optional[StepCallable] = None
    # Also compensate when this step itself fails (it may have partially applied)
    compensate_on_failure: bool = False


@dataclass
class Saga:
    name: str
    steps: List[SagaStep] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    completed_steps: List[str] = field(default_factory=list)
    compensation_errors: List[Tuple[str, Exception]] = field(default_factory=list)

    def add_step(
        self,
        name: str,
        action: StepCallable,
        compensation: Optional[StepCallable] = None,
        compensate_on_failure: bool = False,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation, compensate_on_failure))
        return self

    async def execute(self) -> Dict[str, Any]:
        """Run all steps; on failure compensate and re-raise"""
        executed: List[SagaStep] = []

        for step in self.steps:
            try:
                self.context[step.name] = await step.action(self.context)
            except Exception as e:
                logger.warning(f"Saga {self.name}: step '{step.name}' failed: {e}")
                self.context["error"] = e
                if step.compensate_on_failure:
                    executed.append(step)
                await self._compensate(executed)
                raise
            executed.append(step)
            self.completed_steps.append(step.name)

        return self.context

    async def _compensate(self, executed: List[SagaStep]) -> None:
        for step in reversed(executed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(self.context)
                logger.info(f"Saga {self.name}: compensated step '{step.name}'")
            except Exception as e:
                # Compensation failures never mask the original error
                self.compensation_errors.append((step.name, e))
                logger.error(f"Saga {self.name}: compensation of '{step.name}' failed: {e}")
