"""Minimal Ok/Err result type for operations that report failures as values.

Used where a failure is an expected outcome the caller must branch on
(e.g. a delivery attempt), rather than an exceptional condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeGuard, TypeVar

from typing_extensions import TypeAliasType

T = TypeVar('T')
E = TypeVar('E')


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    ok_value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False


@dataclass(slots=True, frozen=True)
class Err(Generic[E]):
    err_value: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True


Result = TypeAliasType('Result', Ok[T] | Err[E], type_params=(T, E))


def is_ok(result: Result[T, E]) -> TypeGuard[Ok[T]]:
    return isinstance(result, Ok)


def is_err(result: Result[T, E]) -> TypeGuard[Err[E]]:
    return isinstance(result, Err)
