# backend/core/hooks.py
import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Awaitable, TypeVar, Optional, Tuple

from backend.core.contracts import HookManager as HookManagerInterface, Container

logger = logging.getLogger(__name__)

T = TypeVar('T')

HookCallable = Callable[..., Awaitable[Any]]

@dataclass(order=True)
class HookImplementation:
    """A registered hook callable plus its ordering metadata."""
    priority: int
    func: HookCallable = field(compare=False)
    plugin_name: str = field(compare=False, default="<unknown>")

class HookManager(HookManagerInterface):
    """
    Central registry and dispatcher for hook implementations.

    Three dispatch styles are offered:
      - trigger: notification, all implementations run concurrently
      - filter:  a chain, each implementation receives the previous output
      - decide:  highest priority first, the first non-None answer wins

    Implementations only receive the keyword arguments their signature asks
    for, drawn from the shared context (container, hook_manager, ...) merged
    with the per-call keyword arguments.
    """
    def __init__(self, container: Container):
        self._hooks: Dict[str, List[HookImplementation]] = defaultdict(list)
        self._shared_context: Dict[str, Any] = {
            "container": container,
            "hook_manager": self
        }
        logger.info("HookManager initialized.")

    def add_shared_context(self, name: str, service: Any) -> None:
        if name in self._shared_context:
            logger.warning(f"Overwriting shared context for hooks: '{name}'")
        self._shared_context[name] = service

    def registered_hooks(self) -> List[str]:
        return list(self._hooks.keys())

    @staticmethod
    def _prepare_hook_args(
        func: HookCallable,
        call_context: Dict[str, Any],
        positional_data: Optional[Any] = None,
        has_positional: bool = False,
    ) -> Tuple[list, dict]:
        params = list(inspect.signature(func).parameters.values())
        hook_args: list = []
        if has_positional:
            hook_args.append(positional_data)
            # the first positional parameter receives the filtered data
            params = params[1:]

        accepts_any = any(p.kind == p.VAR_KEYWORD for p in params)
        hook_kwargs = {
            name: value for name, value in call_context.items()
            if accepts_any or any(p.name == name and p.kind != p.POSITIONAL_ONLY for p in params)
        }
        return hook_args, hook_kwargs

    def add_implementation(
        self,
        hook_name: str,
        implementation: HookCallable,
        priority: int = 10,
        plugin_name: str = "<core>"
    ):
        if not asyncio.iscoroutinefunction(implementation):
            raise TypeError(f"Hook implementation for '{hook_name}' must be an async function.")

        self._hooks[hook_name].append(
            HookImplementation(priority=priority, func=implementation, plugin_name=plugin_name)
        )
        # ascending priority
        self._hooks[hook_name].sort()
        logger.debug(f"Registered hook '{hook_name}' from plugin '{plugin_name}' with priority {priority}.")

    async def trigger(self, hook_name: str, **kwargs: Any) -> None:
        """Fire a notification hook. Return values are ignored, errors are logged."""
        if hook_name not in self._hooks:
            return

        call_context = {**self._shared_context, **kwargs}
        implementations = list(self._hooks[hook_name])
        tasks = []
        for impl in implementations:
            _, prepared_kwargs = self._prepare_hook_args(impl.func, call_context)
            tasks.append(impl.func(**prepared_kwargs))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        for impl, result in zip(implementations, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Error in NOTIFICATION hook '{hook_name}' from plugin '{impl.plugin_name}': {result}",
                    exc_info=result
                )

    async def filter(self, hook_name: str, data: T, **kwargs: Any) -> T:
        """Run a filter chain. A failing implementation is skipped and the data passes through."""
        if hook_name not in self._hooks:
            return data

        call_context = {**self._shared_context, **kwargs}
        current_data = data

        for impl in list(self._hooks[hook_name]):
            try:
                prepared_args, prepared_kwargs = self._prepare_hook_args(
                    impl.func, call_context, positional_data=current_data, has_positional=True
                )
                current_data = await impl.func(*prepared_args, **prepared_kwargs)
            except Exception as e:
                logger.error(
                    f"Error in FILTER hook '{hook_name}' from plugin '{impl.plugin_name}'. Skipping. Error: {e}",
                    exc_info=e
                )

        return current_data

    async def decide(self, hook_name: str, **kwargs: Any) -> Optional[Any]:
        """Ask implementations from highest to lowest priority; return the first non-None answer."""
        if hook_name not in self._hooks:
            return None

        call_context = {**self._shared_context, **kwargs}

        for impl in reversed(self._hooks[hook_name]):
            try:
                _, prepared_kwargs = self._prepare_hook_args(impl.func, call_context)
                result = await impl.func(**prepared_kwargs)
            except Exception as e:
                logger.error(
                    f"Error in DECIDE hook '{hook_name}' from plugin '{impl.plugin_name}'. Skipping. Error: {e}",
                    exc_info=e
                )
                continue
            if result is not None:
                logger.debug(
                    f"DECIDE hook '{hook_name}' was resolved by plugin "
                    f"'{impl.plugin_name}' with priority {impl.priority}."
                )
                return result
        return None
