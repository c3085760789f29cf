"""Test doubles and output parsing shared by the test modules."""

import io
import json
from typing import List


class SequentialIDs:
    """Deterministic correlation ids: req-1, req-2, ..."""

    def __init__(self, prefix: str = "req"):
        self.prefix = prefix
        self.issued = 0

    def new_id(self) -> str:
        self.issued += 1
        return f"{self.prefix}-{self.issued}"


class ExitRecorder:
    """Stands in for os._exit and remembers the status codes."""

    def __init__(self):
        self.codes: List[int] = []

    def __call__(self, code: int) -> None:
        self.codes.append(code)


def lines(stream: io.StringIO) -> List[str]:
    return [line for line in stream.getvalue().splitlines() if line]


def records(stream: io.StringIO) -> List[dict]:
    return [json.loads(line) for line in lines(stream)]
