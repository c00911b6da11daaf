"""One-shot actions bound to a resource's transition to ready."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from orchid_apphost.runtime._invoke import call_maybe_async, callable_name
from orchid_apphost.runtime.errors import UnknownResourceError
from orchid_apphost.runtime.models import HookFailure, ResourceReadyEvent
from orchid_apphost.runtime.registry import ResourceRegistry

logger = logging.getLogger(__name__)

HookAction = Callable[[ResourceReadyEvent], Any]


@dataclass(slots=True)
class PostReadyHook:
    """An action that fires at most once, after its resource becomes ready."""

    resource_name: str
    action: HookAction
    invoked: bool = False

    @property
    def label(self) -> str:
        return callable_name(self.action)


@dataclass(slots=True)
class HookRunner:
    """Registers hooks per resource and invokes them in registration order."""

    registry: ResourceRegistry
    _hooks: dict[str, list[PostReadyHook]] = field(default_factory=dict)

    def on_ready(self, resource_name: str, action: HookAction) -> PostReadyHook:
        """Bind ``action`` to ``resource_name``'s ready transition."""
        if not self.registry.has(resource_name):
            raise UnknownResourceError(resource_name)
        hook = PostReadyHook(resource_name=resource_name, action=action)
        self._hooks.setdefault(resource_name, []).append(hook)
        return hook

    def hooks_for(self, resource_name: str) -> list[PostReadyHook]:
        return list(self._hooks.get(resource_name, ()))

    async def run(self, event: ResourceReadyEvent) -> list[HookFailure]:
        """Invoke every pending hook for ``event.name``.

        A hook is marked invoked before it runs, so a failing hook is never
        retried. Failures are returned, not raised.
        """
        failures: list[HookFailure] = []
        for hook in self._hooks.get(event.name, ()):
            if hook.invoked:
                continue
            hook.invoked = True
            try:
                await call_maybe_async(hook.action, event)
            except Exception as exc:
                logger.exception(
                    "Post-ready hook failed",
                    extra={"resource": event.name, "hook": hook.label},
                )
                failures.append(
                    HookFailure(
                        resource=event.name,
                        hook=hook.label,
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )
            else:
                logger.info(
                    "Post-ready hook completed",
                    extra={"resource": event.name, "hook": hook.label},
                )
        self._hooks.pop(event.name, None)
        return failures

    def discard(self) -> int:
        """Drop hooks whose resource never became ready. Returns how many were dropped."""
        dropped = sum(len(hooks) for hooks in self._hooks.values())
        self._hooks.clear()
        return dropped
