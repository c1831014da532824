from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from ..config import Settings
from ..errors import BuildFailure

log = logging.getLogger(__name__)


def build_command_for(settings: Settings, filter_text: Optional[str]) -> List[str]:
    command: List[str] = []
    for part in settings.build_command:
        if "{filter}" in part:
            if filter_text is None:
                continue
            part = part.replace("{filter}", filter_text)
        command.append(part)
    return command


def build_candidates(settings: Settings, filter_text: Optional[str] = None) -> List[Path]:
    """Produce the guest executables that may contain the tests.

    The build tool is opaque: every line it prints on stdout that names an
    existing file is a candidate artifact. Pre-built ``settings.artifacts``
    are appended after anything the build produced.
    """
    candidates: List[Path] = []
    if settings.build_command:
        command = build_command_for(settings, filter_text)
        log.info("building guest tests: %s", command)
        try:
            proc = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise BuildFailure(f"Failed to start guest build {command[0]!r}", str(exc)) from exc
        if proc.returncode != 0:
            raise BuildFailure(f"Failed to build tests for {settings.env_name}", proc.stderr)
        for line in proc.stdout.splitlines():
            path = Path(line.strip())
            if line.strip() and path.is_file():
                candidates.append(path)
    elif not settings.artifacts:
        raise BuildFailure(
            "guest execution is enabled but neither build_command nor artifacts is configured"
        )
    candidates.extend(Path(path) for path in settings.artifacts)
    log.debug("guest candidates: %s", candidates)
    return candidates
