from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils import CANONICALIZATION, HASH_ALGORITHM, hash_file, now_ts_ns, to_jsonable, write_json
from .runner import Orchestrator, RunRecord

REPORT_VERSION = "v1"


def build_report(
    orchestrator: Orchestrator,
    record: RunRecord,
    filter_text: Optional[str] = None,
) -> Dict[str, Any]:
    settings = orchestrator.settings
    artifacts = [
        {
            "path": str(path),
            "hash": hash_file(path) if path.is_file() else None,
        }
        for path in orchestrator.candidates
    ]
    return {
        "schema_version": REPORT_VERSION,
        "canonicalization": CANONICALIZATION,
        "hash_algorithm": HASH_ALGORITHM,
        "ts_ns": now_ts_ns(),
        "filter": filter_text,
        "guest": {
            "enabled": settings.guest_test,
            "env_name": settings.env_name,
            "timeout_multiplier": settings.timeout_multiplier,
            "timeout_floor_s": settings.timeout_floor_s,
        },
        "artifacts": artifacts,
        "counts": asdict(record),
        "ok": record.ok,
        "results": [to_jsonable(asdict(result)) for result in orchestrator.results],
    }


def write_report(path: Path, report: Dict[str, Any]) -> None:
    write_json(path, to_jsonable(report))
