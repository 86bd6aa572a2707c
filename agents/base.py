"""
Base Agent class and Orchestrator
Market Intelligence & Financial Viability Engine
"""

from abc import ABC, abstractmethod
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from typing import Any, List, Optional, Dict
from dataclasses import dataclass, field
from datetime import datetime
import logging
import traceback
import time

logger = logging.getLogger(__name__)


@dataclass
class AgentResult:
    """Standardized result envelope returned by every agent."""
    agent_name: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self):
        status = "✅" if self.success else "❌"
        dur = f" ({self.duration_seconds:.1f}s)" if self.duration_seconds else ""
        return f"{status} {self.agent_name}{dur}"


class Agent(ABC):
    """
    Abstract base class for all source adapters.
    Subclasses must implement `run(query)`.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"agent.{name}")

    @abstractmethod
    def run(self, data: Any) -> Any:
        raise NotImplementedError

    def execute(self, data: Any) -> AgentResult:
        """
        Wraps `run()` with timing, structured logging, and error handling.
        """
        started_at = datetime.utcnow()
        self.logger.info(f"[{self.name}] Starting...")
        try:
            result = self.run(data)
            finished_at = datetime.utcnow()
            duration = (finished_at - started_at).total_seconds()
            self.logger.info(f"[{self.name}] Completed in {duration:.2f}s")
            return AgentResult(
                agent_name=self.name,
                success=True,
                data=result,
                started_at=started_at,
                finished_at=finished_at,
            )
        except Exception as e:
            finished_at = datetime.utcnow()
            self.logger.error(f"[{self.name}] Failed: {e}\n{traceback.format_exc()}")
            return AgentResult(
                agent_name=self.name,
                success=False,
                error=str(e),
                started_at=started_at,
                finished_at=finished_at,
            )

    def __repr__(self):
        return f"<Agent: {self.name}>"


class Orchestrator:
    """
    Concurrent fan-out orchestrator.
    Every agent receives the same input; each runs in its own worker and its
    outcome is observed independently. A slow agent is reported as timed out
    but is not cancelled, so whatever it produces later still lands in the
    caller's callbacks (cache population, logging).
    """

    def __init__(
        self,
        agents: List[Agent],
        timeout: float = 25.0,
        executor: Optional[Executor] = None,
    ):
        self.agents = agents
        self.timeout = timeout
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max(len(agents), 1), thread_name_prefix="orchestrator"
        )
        self.logger = logging.getLogger("orchestrator")
        self.run_history: List[AgentResult] = []

    def execute(self, input_data: Any) -> Dict[str, AgentResult]:
        """Run all agents on `input_data` and return their results keyed by name."""
        total_start = time.time()
        self.logger.info(
            f"🚀 Orchestrator starting — {len(self.agents)} agents in parallel"
        )

        futures = {self.executor.submit(agent.execute, input_data): agent for agent in self.agents}
        done, not_done = wait(futures, timeout=self.timeout)

        results: Dict[str, AgentResult] = {}
        for future, agent in futures.items():
            if future in done:
                results[agent.name] = future.result()
            else:
                self.logger.warning(
                    f"  ⏱️ '{agent.name}' exceeded {self.timeout:.0f}s, continuing without it"
                )
                results[agent.name] = AgentResult(
                    agent_name=agent.name,
                    success=False,
                    error=f"timed out after {self.timeout}s",
                    metadata={"timed_out": True},
                )

        self.run_history = list(results.values())
        elapsed = time.time() - total_start
        successes = sum(1 for r in self.run_history if r.success)
        self.logger.info(
            f"✅ Fan-out complete — {successes}/{len(self.agents)} succeeded "
            f"in {elapsed:.2f}s"
        )
        return results

    def summary(self) -> str:
        lines = ["Fan-out Summary:"]
        for r in self.run_history:
            lines.append(f"  {r}")
        return "\n".join(lines)
