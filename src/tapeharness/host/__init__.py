from .build import build_candidates
from .executor import run_on_host
from .supervisor import ProcessSupervisor
from .watcher import StreamWatcher

__all__ = [
    "build_candidates",
    "run_on_host",
    "ProcessSupervisor",
    "StreamWatcher",
]
