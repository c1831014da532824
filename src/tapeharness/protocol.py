"""Constants and line formats shared by the host supervisor and guest builds.

Changing anything here breaks compatibility between a host and guest
artifacts built against an older version.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

# Printed by the guest panic handler. Host and guest must agree byte for byte.
SENTINEL = (
    b"\n\n\n\ntapeharness_panic_terminator_q7Xk2LwT9vRbN4mYc8ZpHs3JdA6fGe1U"
    b"tWo5Ki0BxVn/EjQr+Ml7CaSy2Fh9PzDg4Lu6Tb8Ow1Nk3Rm5Xe+Yi0Hq7Jc2Vs9Ga4Bd"
    b"6Zf1Kp8Wt3Un5Ml0Ej7Qx2Ry9Cv4Ao6Si1Dh8Fg3Lk5Tb0Nz7Pm2Xw9Ue4Jr6Vc1Ka8"
    b"Hy3Gs5Ob0Mi7Qd2Wf9Tl4Rx6Zn1Ep8Bu3Cj5Ak0Vo7Sg2Yh9Im4Dt6Lw1Fq8Nz3Rb5\n\n\n\n"
)

AVAILABLE_PREFIX = "Available tests:"


def handshake_line(test_name: str, env_name: str) -> str:
    return f"Running test: {test_name} in {env_name} vm"


def availability_line(keys: Iterable[Tuple[str, str]]) -> str:
    return AVAILABLE_PREFIX + "".join(f" ({name}, {source})" for name, source in keys)


def split_lines(data: bytes) -> List[str]:
    """Split guest output on ``\\n`` only; other line breaks are line content."""
    lines = data.split(b"\n")
    if lines and not lines[-1]:
        lines.pop()
    return [line.removesuffix(b"\r").decode("utf-8", errors="replace") for line in lines]
