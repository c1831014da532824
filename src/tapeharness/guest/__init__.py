from .dispatcher import GuestDispatcher, entrypoint, run_guest
from .entropy import PRNG_SEED, EntropySource, SeededEntropy

__all__ = [
    "GuestDispatcher",
    "entrypoint",
    "run_guest",
    "PRNG_SEED",
    "EntropySource",
    "SeededEntropy",
]
