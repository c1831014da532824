#!/usr/bin/env python3
import time

from tapeharness.orchestrator.runner import test_runner
from tapeharness.registry import Failure, TestRegistry

registry = TestRegistry()


def _hang() -> None:
    while True:
        time.sleep(0.05)


@registry.test
def prints_and_passes() -> None:
    print("hello from the guest")


@registry.test
def panics_unexpectedly() -> None:
    print("about to fail")
    raise AssertionError("left != right")


@registry.test(should_panic="overflow")
def panics_with_other_message() -> None:
    raise ValueError("division by zero")


@registry.test
def returns_failure() -> Failure:
    return Failure("bad checksum")


@registry.test
def hangs() -> None:
    _hang()


@registry.test(should_panic=True)
def hangs_expecting_panic() -> None:
    _hang()


@registry.test(should_panic=True)
def passes_but_should_panic() -> None:
    pass


if __name__ == "__main__":
    test_runner(registry)
