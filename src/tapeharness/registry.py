from __future__ import annotations

import importlib
import importlib.util
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Literal, Optional, Tuple, Union

from .errors import RegistryError

TestKind = Literal["static", "bench", "dynamic"]
Invocation = Callable[[], Any]


@dataclass(frozen=True)
class ShouldPanic:
    expected: bool = False
    message: Optional[str] = None

    @classmethod
    def with_message(cls, message: str) -> "ShouldPanic":
        return cls(expected=True, message=message)

    @classmethod
    def coerce(cls, value: Union["ShouldPanic", bool, str, None]) -> "ShouldPanic":
        if isinstance(value, ShouldPanic):
            return value
        if isinstance(value, str):
            return cls.with_message(value)
        return YES if value else NO

    def describe(self) -> str:
        if not self.expected:
            return "no"
        if self.message is None:
            return "yes"
        return f"yes (expected: {self.message!r})"


NO = ShouldPanic()
YES = ShouldPanic(expected=True)


@dataclass(frozen=True)
class Failure:
    """Returned by a test to report failure without raising."""

    detail: str = "test returned failure"


@dataclass(frozen=True)
class TestDescriptor:
    __test__ = False

    name: str
    source_file: str
    invocation: Optional[Invocation] = field(default=None, compare=False, repr=False)
    ignore: bool = False
    should_panic: ShouldPanic = NO
    kind: TestKind = "static"

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.source_file)


def source_file_for(func: Callable[..., Any]) -> str:
    code = getattr(func, "__code__", None)
    filename = code.co_filename if code is not None else "<unknown>"
    path = Path(filename)
    if not path.is_absolute():
        return path.as_posix()
    try:
        return path.resolve().relative_to(Path.cwd().resolve()).as_posix()
    except ValueError:
        return path.as_posix()


class TestRegistry:
    """Static list of tests, fixed before any run starts."""

    __test__ = False

    def __init__(self, tests: Iterable[TestDescriptor] = ()) -> None:
        self._tests: List[TestDescriptor] = []
        self._keys: set[Tuple[str, str]] = set()
        self._frozen = False
        for descriptor in tests:
            self.add(descriptor)

    def add(self, descriptor: TestDescriptor) -> TestDescriptor:
        if self._frozen:
            raise RegistryError(f"registry is frozen; cannot add {descriptor.name}")
        if descriptor.key in self._keys:
            raise RegistryError(
                f"duplicate test {descriptor.name} in {descriptor.source_file}"
            )
        self._keys.add(descriptor.key)
        self._tests.append(descriptor)
        return descriptor

    def test(
        self,
        func: Optional[Invocation] = None,
        *,
        ignore: bool = False,
        should_panic: Union[ShouldPanic, bool, str, None] = False,
        name: Optional[str] = None,
        source_file: Optional[str] = None,
        kind: TestKind = "static",
    ) -> Any:
        def register(target: Invocation) -> Invocation:
            self.add(
                TestDescriptor(
                    name=name or target.__name__,
                    source_file=source_file or source_file_for(target),
                    invocation=target,
                    ignore=ignore,
                    should_panic=ShouldPanic.coerce(should_panic),
                    kind=kind,
                )
            )
            return target

        if func is not None:
            return register(func)
        return register

    def freeze(self) -> Tuple[TestDescriptor, ...]:
        self._frozen = True
        return tuple(self._tests)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def tests(self) -> Tuple[TestDescriptor, ...]:
        return tuple(self._tests)

    def find(self, name: str, source_file: str) -> Optional[TestDescriptor]:
        for descriptor in self._tests:
            if descriptor.name == name and descriptor.source_file == source_file:
                return descriptor
        return None

    def filter(self, text: Optional[str]) -> List[TestDescriptor]:
        if text is None:
            return list(self._tests)
        return [descriptor for descriptor in self._tests if text in descriptor.name]

    def __iter__(self) -> Iterator[TestDescriptor]:
        return iter(self._tests)

    def __len__(self) -> int:
        return len(self._tests)


def _load_module_from_path(path: Path) -> Any:
    resolved = path.resolve()
    module_name = resolved.stem
    existing = sys.modules.get(module_name)
    if existing is not None and getattr(existing, "__file__", None) == str(resolved):
        return existing
    spec = importlib.util.spec_from_file_location(module_name, resolved)
    if spec is None or spec.loader is None:
        raise RegistryError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def load_registry(ref: str) -> TestRegistry:
    """Resolve ``module:attr`` or ``path/to/file.py:attr`` to a registry."""
    target, sep, attr = ref.rpartition(":")
    if not sep or not target:
        target, attr = ref, "registry"
    path = Path(target)
    try:
        if target.endswith(".py") or path.is_file():
            module = _load_module_from_path(path)
        else:
            module = importlib.import_module(target)
    except (ImportError, OSError) as exc:
        raise RegistryError(f"cannot import {target}: {exc}") from exc
    registry = getattr(module, attr, None)
    if not isinstance(registry, TestRegistry):
        raise RegistryError(f"{target}:{attr} is not a TestRegistry")
    return registry
