"""Shared test fixtures for cachemount."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence, Union

import pytest

from cachemount.actions import JobContext
from cachemount.runner import CommandResult

Response = Union[str, CommandResult, Callable[[list[str]], CommandResult]]


class FakeRunner:
    """Scripted stand-in for SubprocessRunner.

    Commands registered with ``add`` return their scripted result.
    Privileged commands (``sudo ...``) succeed silently by default;
    anything else unknown behaves like a missing executable.
    """

    def __init__(self) -> None:
        self.responses: dict[tuple[str, ...], Response] = {}
        self.calls: list[list[str]] = []

    def add(self, command: Sequence[str], response: Response) -> None:
        self.responses[tuple(command)] = response

    def run(self, command: Sequence[str]) -> CommandResult:
        argv = list(command)
        self.calls.append(argv)
        response = self.responses.get(tuple(argv))
        if response is None:
            if argv and argv[0] == "sudo":
                return CommandResult(stdout="", exit_code=0)
            return CommandResult(stdout="", exit_code=127, stderr=f"{argv[0]}: not found")
        if callable(response):
            return response(argv)
        if isinstance(response, CommandResult):
            return response
        return CommandResult(stdout=response, exit_code=0)

    def commands_starting(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A runner with no scripted commands."""
    return FakeRunner()


@pytest.fixture
def volume(tmp_path: Path) -> Path:
    """An empty, freshly attached cache volume."""
    root = tmp_path / "volume"
    root.mkdir()
    return root


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Directory the job's mount targets live under."""
    root = tmp_path / "work"
    root.mkdir()
    return root


@pytest.fixture
def job(tmp_path: Path) -> JobContext:
    """A job context collecting annotations instead of printing them."""
    lines: list[str] = []
    ctx = JobContext(output_file=tmp_path / "outputs.txt", state_file=tmp_path / "state.json")
    ctx.echo = lines.append
    ctx.lines = lines  # type: ignore[attr-defined]
    return ctx
