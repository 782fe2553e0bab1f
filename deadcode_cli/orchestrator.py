"""Runs the analysis stages in order: load, find roots, reach, report."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from .analysis import find_dead_code
from .config import AnalysisConfig
from .errors import DeadcodeError, InternalError, NoEntryPointsError
from .loader import load_program
from .models import ProgramModel, ReportUnit
from .reachability import compute_reachable

logger = logging.getLogger(__name__)


class DeadCodeOrchestrator:
    """Coordinates program loading, reachability and the report."""

    def __init__(self, config: AnalysisConfig):
        self.config = config

    def load(self, paths: Sequence[Path]) -> ProgramModel:
        return load_program(paths, include_tests=self.config.include_tests, tags=self.config.tags)

    def analyze(self, program: ProgramModel) -> List[ReportUnit]:
        if not program.roots:
            raise NoEntryPointsError()
        reachable = compute_reachable(program, program.roots)
        try:
            return find_dead_code(program, reachable, self.config)
        except DeadcodeError:
            raise
        except Exception as exc:
            logger.debug("analysis failed", exc_info=True)
            raise InternalError(f"{type(exc).__name__}: {exc}") from exc

    def run(self, paths: Sequence[Path]) -> List[ReportUnit]:
        return self.analyze(self.load(paths))
