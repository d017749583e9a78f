# backend/core/errors.py


class PromptloomError(Exception):
    """Base class for every error raised by the platform core."""


class ServiceNotFoundError(PromptloomError, ValueError):
    """Raised by the container when a service name has no registered factory."""

    def __init__(self, name: str):
        super().__init__(f"Service '{name}' not found in container.")
        self.name = name


class CircularDependencyError(PromptloomError, RuntimeError):
    def __init__(self, path: str):
        super().__init__(f"Circular dependency detected: {path}")
        self.path = path


class PluginLoadError(PromptloomError, RuntimeError):
    """A plugin failed to import or its register_plugin raised."""

    def __init__(self, plugin_name: str):
        super().__init__(f"Unable to load plugin {plugin_name}")
        self.plugin_name = plugin_name
