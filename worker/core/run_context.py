"""
run_context.py - Per-run identity and temporary-resource disposal.

A RunContext is opened once per worker invocation. Every local file or
directory a pipeline creates is registered on it as soon as it exists;
leaving the context removes all of them, whatever the outcome of the run.
"""

import logging
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    report_id: str
    run_id: str
    temp_dir: Path
    cleanup_paths: list[Path] = field(default_factory=list)

    @classmethod
    @contextmanager
    def open(cls, report_id: str, temp_root: str | Path) -> Iterator["RunContext"]:
        """Create a context for one run and dispose its resources on exit."""
        temp_dir = Path(temp_root)
        temp_dir.mkdir(parents=True, exist_ok=True)
        ctx = cls(
            report_id=report_id,
            run_id=f"{report_id}-{int(time.time() * 1000)}",
            temp_dir=temp_dir,
        )
        try:
            yield ctx
        finally:
            ctx.cleanup()

    def register(self, path: str | Path) -> Path:
        """Schedule a local path for removal when the run ends."""
        p = Path(path)
        self.cleanup_paths.append(p)
        return p

    def temp_path(self, name: str) -> Path:
        """A registered path inside the temp dir."""
        return self.register(self.temp_dir / name)

    def cleanup(self) -> None:
        for path in self.cleanup_paths:
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.debug("Cleanup of %s failed: %s", path, exc)
        self.cleanup_paths.clear()
