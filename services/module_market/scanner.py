"""
Module Scanner

Walks the descriptor store and turns module descriptor files into validated
module records.

Layout of the store:

    <root>/
        module-market/
            module.json
            backend/
            frontend/
        module-user/
            module.json
            backend/
        shared/            <- ignored, does not match the naming convention

Rules:
- Only immediate subdirectories whose name starts with the module prefix
  are considered, in sorted order so repeated scans are deterministic.
- A directory without a descriptor is skipped silently.
- A descriptor that cannot be read, parsed or validated becomes a
  DESCRIPTOR_PARSE_ERROR diagnostic; the scan carries on.
- When two descriptors declare the same name, the first one (by directory
  name) is kept and the other becomes a DUPLICATE_MODULE_NAME diagnostic.
"""
import json
from pathlib import Path
from typing import Dict, List, Union

import structlog
from pydantic import ValidationError

from core.exceptions import DescriptorParseError, DuplicateModuleName, RegistryRootMissing
from services.module_market.models import Diagnostic, ModuleRecord, ScanResult

logger = structlog.get_logger("module-scanner")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


class ModuleScanner:
    """Builds module records from a descriptor store. Performs only filesystem reads."""

    def __init__(
        self,
        descriptor_filename: str = "module.json",
        dir_prefix: str = "module-",
        backend_dirname: str = "backend",
        frontend_dirname: str = "frontend",
    ):
        self.descriptor_filename = descriptor_filename
        self.dir_prefix = dir_prefix
        self.backend_dirname = backend_dirname
        self.frontend_dirname = frontend_dirname

    @classmethod
    def from_settings(cls, settings) -> "ModuleScanner":
        return cls(
            descriptor_filename=settings.DESCRIPTOR_FILENAME,
            dir_prefix=settings.MODULE_DIR_PREFIX,
            backend_dirname=settings.BACKEND_DIRNAME,
            frontend_dirname=settings.FRONTEND_DIRNAME,
        )

    def scan(self, root: Union[str, Path]) -> ScanResult:
        """
        Scan `root` and return the accepted modules plus diagnostics.

        Raises:
            RegistryRootMissing: `root` is not an existing directory
            OSError: `root` itself cannot be listed
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise RegistryRootMissing(str(root))

        logger.info("Scanning module directory", root=str(root))

        modules: List[ModuleRecord] = []
        diagnostics: List[Diagnostic] = []
        seen: Dict[str, str] = {}

        for entry in sorted(root.iterdir(), key=lambda p: p.name):
            if not entry.is_dir() or not entry.name.startswith(self.dir_prefix):
                continue

            descriptor_path = entry / self.descriptor_filename
            if not descriptor_path.is_file():
                logger.debug("Skipping directory without descriptor", directory=entry.name)
                continue

            try:
                record = self.load(entry)
            except DescriptorParseError as e:
                logger.error("Failed to parse module descriptor", directory=entry.name, error=e.message)
                diagnostics.append(Diagnostic.from_exception(e))
                continue

            if record.name in seen:
                duplicate = DuplicateModuleName(record.name, str(entry), seen[record.name])
                logger.warning(
                    "Duplicate module name, keeping first",
                    module=record.name,
                    directory=entry.name,
                    kept=seen[record.name],
                )
                diagnostics.append(Diagnostic.from_exception(duplicate))
                continue

            seen[record.name] = str(entry)
            modules.append(record)
            logger.info("Loaded module", module=record.name, display_name=record.display_name)

        logger.info("Scan complete", modules=len(modules), diagnostics=len(diagnostics))
        return ScanResult(modules=tuple(modules), diagnostics=tuple(diagnostics))

    def load(self, module_dir: Path) -> ModuleRecord:
        """
        Parse and validate the descriptor in `module_dir`.

        Raises:
            DescriptorParseError: unreadable file, malformed JSON, or invalid fields
        """
        descriptor_path = module_dir / self.descriptor_filename
        try:
            raw = json.loads(descriptor_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise DescriptorParseError(f"Cannot read {descriptor_path.name}: {e}", str(module_dir)) from e
        except json.JSONDecodeError as e:
            raise DescriptorParseError(f"Malformed JSON in {descriptor_path.name}: {e}", str(module_dir)) from e

        if not isinstance(raw, dict):
            raise DescriptorParseError(
                f"{descriptor_path.name} must contain a JSON object, got {type(raw).__name__}",
                str(module_dir),
            )

        derived = {
            "hasBackend": (module_dir / self.backend_dirname).is_dir(),
            "hasFrontend": (module_dir / self.frontend_dirname).is_dir(),
            "path": str(module_dir),
        }
        try:
            return ModuleRecord.model_validate({**raw, **derived})
        except ValidationError as e:
            raise DescriptorParseError(
                f"Invalid {descriptor_path.name}: {_format_validation_error(e)}",
                str(module_dir),
            ) from e
