# backend/core/loader.py

import json
import logging
import importlib
import importlib.resources
import traceback
from typing import List, Dict, Any

from backend.core.contracts import Container, HookManager, PluginRegisterFunc
from backend.core.errors import PluginLoadError

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


class PluginLoader:
    def __init__(self, container: Container, hook_manager: HookManager, package: str = "plugins"):
        self._container = container
        self._hook_manager = hook_manager
        self._package = package
        self.loaded: List[Dict[str, Any]] = []

    def load_plugins(self) -> List[Dict[str, Any]]:
        """Discover, order and register every plugin found under the plugins package."""
        # logging is not configured until core_logging registers, so bootstrap output uses print
        print("\n--- promptloom plugin system: loading ---")

        all_plugins = self._discover_plugins()
        if not all_plugins:
            print("warning: no plugins discovered.")
            print("--- promptloom plugin system: done ---\n")
            return []

        sorted_plugins = sorted(
            all_plugins,
            key=lambda p: (p['manifest'].get('priority', DEFAULT_PRIORITY), p['name'])
        )

        print("plugin load order:")
        for i, p_info in enumerate(sorted_plugins):
            print(f"  {i+1}. {p_info['name']} (priority: {p_info['manifest'].get('priority', DEFAULT_PRIORITY)})")

        self._register_plugins(sorted_plugins)
        self.loaded = sorted_plugins

        logger.info("All plugins loaded and registered.")
        print("--- promptloom plugin system: done ---\n")
        return sorted_plugins

    def _discover_plugins(self) -> List[Dict[str, Any]]:
        """Read the manifest.json of every sub-package of the plugins package."""
        discovered = []
        try:
            plugins_package_path = importlib.resources.files(self._package)
        except (ModuleNotFoundError, FileNotFoundError):
            return discovered

        for plugin_path in plugins_package_path.iterdir():
            if not plugin_path.is_dir() or plugin_path.name.startswith(('__', '.')):
                continue

            manifest_path = plugin_path / "manifest.json"
            if not manifest_path.is_file():
                continue

            try:
                manifest = json.loads(manifest_path.read_text(encoding='utf-8'))
            except json.JSONDecodeError:
                print(f"warning: skipping plugin '{plugin_path.name}', manifest.json is not valid JSON.")
                continue

            discovered.append({
                "name": manifest.get('name', plugin_path.name),
                "manifest": manifest,
                "import_path": f"{self._package}.{plugin_path.name}",
            })

        return discovered

    def _register_plugins(self, plugins: List[Dict[str, Any]]) -> None:
        """Import each plugin in order and call its register_plugin."""
        for plugin_info in plugins:
            plugin_name = plugin_info['name']
            import_path = plugin_info['import_path']

            try:
                plugin_module = importlib.import_module(import_path)
                register_func: PluginRegisterFunc = getattr(plugin_module, "register_plugin")
                register_func(self._container, self._hook_manager)
            except Exception as e:
                print("\n" + "=" * 80)
                print(f"!!! fatal: loading plugin '{plugin_name}' ({import_path}) failed !!!")
                print("=" * 80)
                traceback.print_exc()
                print("=" * 80)
                # a broken plugin may leave dependants half-registered, so stop here
                raise PluginLoadError(plugin_name) from e
