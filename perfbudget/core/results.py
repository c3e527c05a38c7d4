"""Локальная директория результатов (lhr-*.json от внешнего аудитора)."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from perfbudget.core.models import ReportPayload, parse_report

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_DIR = Path(".perfbudgetci")


@dataclass(frozen=True)
class LocalResult:
    path: Path
    lhr: str

    def report(self) -> ReportPayload:
        return parse_report(self.lhr)


def load_local_results(results_dir: Path = DEFAULT_RESULTS_DIR) -> List[LocalResult]:
    """Прочитать lhr-*.json в порядке имён файлов (имена содержат время)."""
    if not results_dir.is_dir():
        return []
    results = [
        LocalResult(path=path, lhr=path.read_text(encoding="utf-8"))
        for path in sorted(results_dir.glob("lhr-*.json"))
    ]
    logger.debug(f"Loaded {len(results)} result(s) from {results_dir}")
    return results
