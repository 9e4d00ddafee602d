"""
Agent Registry with capability indexing and health monitoring for Agent Foundry.

This module provides agent registration, capability lookup, status snapshots,
load-aware candidate ordering and a background health checker.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

from ..agents.base import BaseAgent
from ..models.core import AgentHealth, AgentStatus
from ..models.errors import RegistrationError
from ..utils.logging import get_logger


class HealthChecker:
    """Periodically probes agents and clears failure streaks of agents that recovered."""

    def __init__(self, check_interval_seconds: float = 30):
        self.check_interval_seconds = check_interval_seconds
        self.logger = get_logger(f"{__name__}.HealthChecker")
        self._running = False
        self._health_check_task: Optional[asyncio.Task] = None

    async def start(self, registry: 'AgentRegistry'):
        """Start the health checking background task."""
        if self._running:
            return

        self._running = True
        self._health_check_task = asyncio.create_task(self._health_check_loop(registry))
        self.logger.info("Health checker started")

    async def stop(self):
        """Stop the health checking background task."""
        self._running = False
        if self._health_check_task:
            self._health_check_task.cancel()
            try:
                await self._health_check_task
            except asyncio.CancelledError:
                pass
            self._health_check_task = None
        self.logger.info("Health checker stopped")

    async def _health_check_loop(self, registry: 'AgentRegistry'):
        while self._running:
            await self.check_all(registry)
            await asyncio.sleep(self.check_interval_seconds)

    async def check_all(self, registry: 'AgentRegistry'):
        """Probe every registered agent once."""
        for agent in registry.agents():
            await self._check_agent_health(agent)

    async def _check_agent_health(self, agent: BaseAgent):
        start_time = time.perf_counter()
        try:
            alive = await agent.health_check()
        except Exception as e:
            self.logger.warning("Health check failed", agent=agent.name, error=str(e))
            return

        if alive and agent.enabled and agent.health() == AgentHealth.UNHEALTHY:
            agent.reset_failures()
            self.logger.info("Agent recovered", agent=agent.name)

        check_time_ms = (time.perf_counter() - start_time) * 1000
        self.logger.debug("Health check passed", agent=agent.name, duration_ms=round(check_time_ms, 2))


class LoadBalancer:
    """Orders capable agents by load and picks the first usable one.

    `reserved` counts slots already promised to tasks that have been assigned
    but not yet started on an agent.
    """

    @staticmethod
    def load(agent: BaseAgent, reserved: Optional[Dict[str, int]] = None) -> int:
        return agent.active_tasks + (reserved or {}).get(agent.name, 0)

    def order_candidates(self, agents: List[BaseAgent],
                         reserved: Optional[Dict[str, int]] = None) -> List[BaseAgent]:
        """Least loaded first; sort is stable so ties keep registration order."""
        return sorted(agents, key=lambda agent: self.load(agent, reserved))

    def select_agent(self, candidates: List[BaseAgent],
                     reserved: Optional[Dict[str, int]] = None) -> Optional[BaseAgent]:
        """
        Select the first candidate that is not unhealthy and has spare capacity.

        Args:
            candidates: Agents in preference order
            reserved: Slots per agent name already promised to starting tasks

        Returns:
            The chosen agent, or None if every candidate is unhealthy or full
        """
        for agent in self.order_candidates(candidates, reserved):
            if agent.health() == AgentHealth.UNHEALTHY:
                continue
            if self.load(agent, reserved) < agent.max_concurrent_tasks:
                return agent
        return None


class AgentRegistry:
    """
    Owns the set of agents and answers capability and status queries.

    Writes build a new index and swap it in under a lock; reads use whatever
    index is current and never wait on a writer.
    """

    def __init__(self, health_check_interval_seconds: float = 30):
        self._agents: Dict[str, BaseAgent] = {}
        self._by_kind: Dict[str, Tuple[BaseAgent, ...]] = {}
        self._write_lock = asyncio.Lock()
        self.health_checker = HealthChecker(health_check_interval_seconds)
        self.load_balancer = LoadBalancer()
        self.logger = get_logger(__name__)
        self._started = False

    async def start(self):
        """Start background services."""
        if self._started:
            return

        await self.health_checker.start(self)
        self._started = True
        self.logger.info("Agent registry started", agents=len(self._agents))

    async def stop(self):
        """Stop background services and shut every agent down."""
        if not self._started:
            return

        await self.health_checker.stop()
        for name in list(self._agents):
            await self.unregister(name)

        self._started = False
        self.logger.info("Agent registry stopped")

    async def register(self, agent: BaseAgent) -> None:
        """
        Register an agent under every kind it declares.

        Raises:
            RegistrationError: If the name is taken, no kinds are declared, or
                the agent's initialize hook fails
        """
        if not agent.kinds:
            raise RegistrationError(f"Agent {agent.name} declares no task kinds")

        async with self._write_lock:
            if agent.name in self._agents:
                raise RegistrationError(f"Agent already registered: {agent.name}")

            try:
                await agent.initialize()
            except Exception as e:
                self.logger.error("Agent initialization failed", agent=agent.name, error=str(e))
                raise RegistrationError(f"Failed to initialize agent {agent.name}: {e}") from e

            agents = dict(self._agents)
            agents[agent.name] = agent
            self._agents, self._by_kind = agents, self._build_index(agents)

        self.logger.info("Registered agent", agent=agent.name, kinds=sorted(agent.kinds))

    async def unregister(self, name: str) -> bool:
        """Remove an agent and call its shutdown hook."""
        async with self._write_lock:
            agent = self._agents.get(name)
            if agent is None:
                return False
            agents = {k: v for k, v in self._agents.items() if k != name}
            self._agents, self._by_kind = agents, self._build_index(agents)

        try:
            await agent.shutdown()
        except Exception as e:
            self.logger.error("Error shutting down agent", agent=name, error=str(e))

        self.logger.info("Unregistered agent", agent=name)
        return True

    @staticmethod
    def _build_index(agents: Dict[str, BaseAgent]) -> Dict[str, Tuple[BaseAgent, ...]]:
        index: Dict[str, List[BaseAgent]] = {}
        for agent in agents.values():
            for kind in sorted(agent.kinds):
                index.setdefault(kind, []).append(agent)
        return {kind: tuple(members) for kind, members in index.items()}

    def find_capable(self, kind: str) -> List[BaseAgent]:
        """
        Agents able to handle a task kind, in preference order.

        Args:
            kind: Task kind

        Returns:
            Candidates ordered by active tasks, then registration order.
            Empty when nothing declares the kind.
        """
        return self.load_balancer.order_candidates(list(self._by_kind.get(kind, ())))

    def select(self, kind: str, reserved: Optional[Dict[str, int]] = None) -> Optional[BaseAgent]:
        """Least-loaded usable agent for a kind, if any."""
        return self.load_balancer.select_agent(self.find_capable(kind), reserved)

    def get(self, name: str) -> Optional[BaseAgent]:
        return self._agents.get(name)

    def agents(self) -> List[BaseAgent]:
        return list(self._agents.values())

    def list_agents(self) -> List[str]:
        return list(self._agents)

    def kinds(self) -> List[str]:
        return sorted(self._by_kind)

    def status_snapshot(self) -> Dict[str, AgentStatus]:
        """Current status of every agent keyed by agent name."""
        return {name: agent.status() for name, agent in self._agents.items()}

    def get_registry_status(self) -> Dict[str, Any]:
        """Get overall registry statistics."""
        statuses = self.status_snapshot().values()
        return {
            "started": self._started,
            "total_agents": len(self._agents),
            "kinds": self.kinds(),
            "healthy_agents": sum(1 for s in statuses if s.health == AgentHealth.HEALTHY),
            "degraded_agents": sum(1 for s in statuses if s.health == AgentHealth.DEGRADED),
            "unhealthy_agents": sum(1 for s in statuses if s.health == AgentHealth.UNHEALTHY),
            "health_check_interval_seconds": self.health_checker.check_interval_seconds,
        }

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: str) -> bool:
        return name in self._agents
