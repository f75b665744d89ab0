"""
Rules Service - loads pricing rules and strategies for the engine.

The rules document is JSON::

    {
      "blocks": [
        {"id": "markup", "name": "Markup", "priority": 90, "is_active": true,
         "conditions": {}, "event_type": "apply-markup", "params": {}}
      ],
      "strategies": [
        {"id": "standard", "name": "Standard", "version": 1, "is_default": true,
         "blocks": [{"block_id": "markup", "priority": 90, "is_enabled": true,
                     "config_overrides": {"value": 2}}]}
      ]
    }

A strategy picks blocks, overrides their priority and merges its
``config_overrides`` into the block params before validation.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..errors import ErrorCode, InitializationError, ValidationError
from ..rules.compile_rules import Rule, compile_block

logger = logging.getLogger(__name__)

DEFAULT_KEY = "__default__"


class RuleRepository(Protocol):
    """Source of compiled rules for a strategy."""

    async def load_rules(self, strategy_id: Optional[str] = None) -> list[Rule]: ...

    async def load_default_rules(self) -> list[Rule]: ...

    def invalidate(self) -> None: ...


class JsonRuleRepository:
    """
    Rules read from a JSON document of blocks and strategies.

    Invalid blocks are rejected and logged; with ``strict=True`` the first
    invalid block raises instead.
    """

    def __init__(self, path: Path, strict: bool = False):
        self.path = Path(path)
        self.strict = strict
        self.rejections: list[str] = []

    def _read(self) -> dict:
        if not self.path.exists():
            raise InitializationError(f"Rules file not found: {self.path}")
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InitializationError(f"Rules file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InitializationError(f"Rules file {self.path} must contain a JSON object")
        return data

    def _compile(self, block: dict, overrides: Optional[dict] = None, priority: Optional[int] = None) -> Optional[Rule]:
        try:
            return compile_block(block, overrides=overrides, priority=priority)
        except ValidationError as e:
            if self.strict:
                raise
            detail = "; ".join(e.errors)
            self.rejections.append(f"{e.message}: {detail}" if detail else e.message)
            logger.warning("Rejected pricing block %s: %s %s", block.get('id'), e.message, detail)
            return None

    def _all_active(self, blocks: list[dict]) -> list[Rule]:
        rules = []
        for block in blocks:
            if not block.get('is_active', True):
                continue
            rule = self._compile(block)
            if rule is not None:
                rules.append(rule)
        return rules

    def _strategy_rules(self, strategy: dict, blocks: list[dict]) -> list[Rule]:
        by_id = {str(b.get('id')): b for b in blocks if b.get('id') is not None}
        entries = [e for e in strategy.get('blocks', []) if e.get('is_enabled', True)]

        rules = []
        for entry in entries:
            block_id = str(entry.get('block_id'))
            block = by_id.get(block_id)
            if block is None:
                message = f"Strategy '{strategy.get('id')}' references unknown block '{block_id}'"
                if self.strict:
                    raise InitializationError(message)
                self.rejections.append(message)
                logger.warning(message)
                continue
            rule = self._compile(block, overrides=entry.get('config_overrides'), priority=entry.get('priority'))
            if rule is not None:
                rules.append(rule)
        return rules

    async def load_rules(self, strategy_id: Optional[str] = None) -> list[Rule]:
        """
        Compile the rules for a strategy, highest priority first.

        With no strategy id the default strategy is used, or every active
        block when no strategy is marked default.

        Raises:
            InitializationError: file unreadable or strategy unknown
        """
        data = await asyncio.to_thread(self._read)
        blocks = data.get('blocks', [])
        strategies = data.get('strategies', [])
        self.rejections = []

        if strategy_id is not None:
            strategy = next((s for s in strategies if str(s.get('id')) == str(strategy_id)), None)
            if strategy is None:
                raise InitializationError(
                    f"Pricing strategy '{strategy_id}' not found",
                    code=ErrorCode.STRATEGY_NOT_FOUND,
                )
        else:
            strategy = next((s for s in strategies if s.get('is_default')), None)

        if strategy is not None:
            rules = self._strategy_rules(strategy, blocks)
            logger.info("Loaded %d rules for strategy %s", len(rules), strategy.get('id'))
        else:
            rules = self._all_active(blocks)
            logger.info("Loaded %d active pricing blocks", len(rules))

        rules.sort(key=lambda r: r.priority, reverse=True)
        return rules

    async def load_default_rules(self) -> list[Rule]:
        return await self.load_rules(None)

    def invalidate(self) -> None:
        """Nothing to drop; the file is read on every load."""


class CachedRuleRepository:
    """
    Soft-TTL cache in front of another repository.

    One cell per strategy id holding ``(rules, loaded_at)``. Cells are
    replaced whole, so readers never see a half-updated cell. Expired cells
    are refreshed lazily on the next read.
    """

    def __init__(
        self,
        inner: RuleRepository,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cells: dict[str, tuple[list[Rule], float]] = {}

    async def load_rules(self, strategy_id: Optional[str] = None) -> list[Rule]:
        key = strategy_id if strategy_id is not None else DEFAULT_KEY
        now = self.clock()

        cell = self._cells.get(key)
        if cell is not None and now - cell[1] < self.ttl_seconds:
            return cell[0]

        rules = await self.inner.load_rules(strategy_id)
        self._cells[key] = (rules, now)
        logger.debug("Rules cache refreshed for %s", key)
        return rules

    async def load_default_rules(self) -> list[Rule]:
        return await self.load_rules(None)

    def invalidate(self) -> None:
        self._cells = {}
        self.inner.invalidate()
        logger.info("Pricing rules cache cleared")

    def cached_strategies(self) -> list[str]:
        return sorted(self._cells)
