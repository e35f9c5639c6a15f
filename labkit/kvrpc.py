"""Request and reply types shared by key/value clerks and servers."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

Tversion = int


class Err(str, Enum):
    """Outcome of a key/value operation."""

    OK = "OK"
    NO_KEY = "ErrNoKey"
    VERSION = "ErrVersion"
    # Returned by a clerk only, never by a server.
    MAYBE = "ErrMaybe"
    WRONG_LEADER = "ErrWrongLeader"
    WRONG_GROUP = "ErrWrongGroup"

    def __str__(self) -> str:
        return self.value


def _check_version(version: Tversion) -> None:
    if version < 0:
        raise ValueError(f"version must be non-negative, got {version}")


@dataclass(frozen=True)
class PutArgs:
    """Conditional write: install ``value`` if the key is at ``version``."""

    key: str = ""
    value: str = ""
    version: Tversion = 0

    def __post_init__(self) -> None:
        _check_version(self.version)


@dataclass(frozen=True)
class PutReply:
    err: Err = Err.OK


@dataclass(frozen=True)
class GetArgs:
    key: str = ""


@dataclass(frozen=True)
class GetReply:
    value: str = ""
    version: Tversion = 0
    err: Err = Err.OK

    def __post_init__(self) -> None:
        _check_version(self.version)