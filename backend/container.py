# backend/container.py

import logging
import threading
from typing import Dict, Any, Callable, List

from backend.core.contracts import Container as ContainerInterface
from backend.core.errors import ServiceNotFoundError, CircularDependencyError

logger = logging.getLogger(__name__)


class Container(ContainerInterface):
    """A small thread-safe dependency-injection container with cycle detection."""
    def __init__(self):
        self._factories: Dict[str, Callable] = {}
        self._singletons: Dict[str, bool] = {}
        self._instances: Dict[str, Any] = {}
        # Re-entrant so factories can resolve their own dependencies
        self._lock = threading.RLock()
        # Each thread tracks its own resolution path
        self._local = threading.local()

    def _get_resolution_path(self) -> List[str]:
        if not hasattr(self._local, 'resolution_path'):
            self._local.resolution_path = []
        return self._local.resolution_path

    def register(self, name: str, factory: Callable, singleton: bool = True) -> None:
        """Register a service factory under `name`."""
        with self._lock:
            if name in self._factories:
                logger.warning(f"Overwriting service registration for '{name}'")
                self._instances.pop(name, None)
            self._factories[name] = factory
            self._singletons[name] = singleton

    def has(self, name: str) -> bool:
        return name in self._factories

    def _build(self, name: str) -> Any:
        factory = self._factories[name]
        try:
            return factory(self)
        except TypeError:
            return factory()

    def resolve(self, name: str) -> Any:
        """
        Resolve a service instance.

        Factories may take the container as their only argument or no argument
        at all. Singletons are built once under the lock.
        """
        path = self._get_resolution_path()
        if name in path:
            raise CircularDependencyError(" -> ".join(path + [name]))

        path.append(name)
        try:
            if name not in self._factories:
                raise ServiceNotFoundError(name)

            if not self._singletons.get(name, True):
                return self._build(name)

            if name in self._instances:
                return self._instances[name]

            with self._lock:
                if name in self._instances:
                    return self._instances[name]
                instance = self._build(name)
                logger.debug(f"Resolved service '{name}'. Singleton: True")
                self._instances[name] = instance
                return instance
        finally:
            path.pop()
