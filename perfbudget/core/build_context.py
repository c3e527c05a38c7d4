"""
Метаданные текущего CI билда: ветка, коммит, автор.

Переменные окружения PERFBUDGET_BUILD_* имеют приоритет над git.
"""

import logging
import os
import subprocess
from typing import Mapping, Optional, Sequence

from perfbudget.core.models import BuildMetadata

logger = logging.getLogger(__name__)


def _git(args: Sequence[str], cwd: Optional[str] = None) -> str:
    """Выполнить git команду; пустая строка, если git недоступен."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=10,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git {' '.join(args)} failed: {e}")
        return ""
    return result.stdout.strip()


def get_build_metadata(env: Optional[Mapping[str, str]] = None, cwd: Optional[str] = None) -> BuildMetadata:
    env = os.environ if env is None else env

    def pick(name: str, git_args: Sequence[str]) -> str:
        value = env.get(f"PERFBUDGET_BUILD_{name}")
        if value:
            return value
        return _git(git_args, cwd)

    return BuildMetadata(
        branch=pick("BRANCH", ["rev-parse", "--abbrev-ref", "HEAD"]),
        hash=pick("HASH", ["rev-parse", "HEAD"]),
        commit_message=pick("COMMIT_MESSAGE", ["log", "--format=%s", "-n", "1"]),
        author=pick("AUTHOR", ["log", "--format=%aN <%aE>", "-n", "1"]),
        external_build_url=env.get("PERFBUDGET_BUILD_URL", ""),
    )
