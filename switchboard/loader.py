"""Feature module discovery.

Feature modules live in the modules directory either as a single file
(``modules/joke.py``) or as a package directory holding a file of the
same name (``modules/factoids/factoids.py``). Each exposes a
``setup(config)`` function returning the root command(s) it provides.
Importing a module has no effect on the command tree; the returned
factories are handed to ``bootstrap.build_tree``.
"""

import importlib.util
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import structlog

from .tree import RootCommand

logger = structlog.get_logger("switchboard.modules")

SETUP_FUNCTION = "setup"

ModuleSetup = Callable[..., Union[RootCommand, Sequence[RootCommand], None]]


@dataclass
class ModuleFactory:
    """A discovered feature module.

    Attributes:
        name: Module name (file stem or directory name).
        setup: The module's ``setup(config)`` callable.
        path: File the module was imported from.
    """
    name: str
    setup: ModuleSetup
    path: Optional[Path] = None


class ModuleLoader:
    """Finds and imports feature modules from a directory.

    Args:
        modules_dir: Directory to scan.
        allowlist: If given, only modules named here are imported.
    """

    def __init__(self, modules_dir: Path, allowlist: Optional[List[str]] = None):
        self.modules_dir = modules_dir
        self.allowlist = allowlist
        self.factories: List[ModuleFactory] = []

    def _candidates(self) -> List[tuple]:
        found = []
        for entry in sorted(self.modules_dir.iterdir()):
            if entry.name.startswith(("_", ".")):
                continue
            if entry.is_dir():
                module_file = entry / f"{entry.name}.py"
                if module_file.is_file():
                    found.append((entry.name, module_file))
            elif entry.suffix == ".py":
                found.append((entry.stem, entry))
        return found

    def discover(self) -> List[ModuleFactory]:
        """Scan the modules directory and import every eligible module.

        Modules that are not allowlisted, fail to import, or define no
        ``setup`` function are logged and skipped.
        """
        if not self.modules_dir.is_dir():
            logger.info("module_loader_no_dir", path=str(self.modules_dir))
            return self.factories

        for name, module_file in self._candidates():
            if self.allowlist is not None and name not in self.allowlist:
                logger.warning(
                    "module_blocked_not_in_allowlist",
                    module=name,
                    allowlist=self.allowlist,
                )
                continue
            try:
                factory = self._load(name, module_file)
            except Exception as e:
                logger.error(
                    "module_import_failed",
                    module=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if factory is not None:
                self.factories.append(factory)

        logger.info("module_loader_complete", modules_loaded=len(self.factories))
        return self.factories

    def _load(self, name: str, module_file: Path) -> Optional[ModuleFactory]:
        module_name = f"switchboard_modules.{name}"
        spec = importlib.util.spec_from_file_location(module_name, module_file)
        if spec is None or spec.loader is None:
            logger.warning("module_not_importable", module=name, path=str(module_file))
            return None
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise

        setup = getattr(module, SETUP_FUNCTION, None)
        if not callable(setup):
            logger.warning("module_no_setup_function", module=name)
            return None

        logger.info("module_imported", module=name)
        return ModuleFactory(name=name, setup=setup, path=module_file)
