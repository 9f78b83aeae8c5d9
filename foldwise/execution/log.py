"""
foldwise Learner Log
=====================
The append-only record of everything a learner said while it was being
trained and asked for predictions: printed output, warnings, and errors.

Each entry is a ``LogRecord(stage, severity, message)``:
    - stage    — "train" or "predict"
    - severity — output < warning < error (ordered)
    - message  — the captured text

Logs are immutable. Appending returns a new ``Log`` and never reorders
existing records, so a log can be shared between a learner state and the
result envelope that produced it without anyone stepping on anyone.

Usage:
    >>> log = append_log(None, "train", "warning", ["step size too large"])
    >>> log = append_log(log, "predict", "output", ["No data to predict on"])
    >>> len(log), log.max_severity
    (2, <Severity.WARNING: 1>)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator, Optional, Sequence, Union

STAGES = ("train", "predict")


class Severity(IntEnum):
    """Ordered severity of a log record."""

    OUTPUT = 0
    WARNING = 1
    ERROR = 2

    @classmethod
    def coerce(cls, value: Union[str, int, "Severity"]) -> "Severity":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError(
                    f"Unknown severity: '{value}'. "
                    f"Choose from: output, warning, error"
                ) from None
        return cls(value)

    def __str__(self) -> str:
        return self.name.lower()


SeverityLike = Union[str, int, Severity]


@dataclass(frozen=True)
class LogRecord:
    stage: str
    severity: Severity
    message: str

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "severity": str(self.severity),
            "message": self.message,
        }


class Log:
    """
    Immutable, ordered sequence of ``LogRecord`` entries.

    Parameters
    ----------
    records : iterable of LogRecord, optional
        Initial records, kept in the given order.
    """

    __slots__ = ("_records",)

    def __init__(self, records: Optional[Iterable[LogRecord]] = None):
        self._records: tuple[LogRecord, ...] = tuple(records or ())

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(self._records)

    def __getitem__(self, idx: int) -> LogRecord:
        return self._records[idx]

    def __bool__(self) -> bool:
        return bool(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Log):
            return NotImplemented
        return self._records == other._records

    def __hash__(self) -> int:
        return hash(self._records)

    def __add__(self, other: "Log") -> "Log":
        """Concatenate two logs; the empty log is the identity."""
        if not isinstance(other, Log):
            return NotImplemented
        if not other:
            return self
        if not self:
            return other
        return Log(self._records + other._records)

    @property
    def records(self) -> tuple[LogRecord, ...]:
        return self._records

    @property
    def messages(self) -> list[str]:
        return [r.message for r in self._records]

    @property
    def errors(self) -> list[str]:
        """Messages of all error-severity records."""
        return [r.message for r in self._records if r.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[str]:
        """Messages of all warning-severity records."""
        return [r.message for r in self._records if r.severity == Severity.WARNING]

    @property
    def max_severity(self) -> Optional[Severity]:
        """Highest severity present, or None for an empty log."""
        if not self._records:
            return None
        return max(r.severity for r in self._records)

    def filter(
        self,
        stage: Optional[str] = None,
        severity: Optional[SeverityLike] = None,
    ) -> "Log":
        """Return the sub-log matching ``stage`` and/or ``severity``."""
        sev = Severity.coerce(severity) if severity is not None else None
        return Log(
            r for r in self._records
            if (stage is None or r.stage == stage)
            and (sev is None or r.severity == sev)
        )

    def to_records(self) -> list[dict]:
        return [r.to_dict() for r in self._records]

    def __repr__(self) -> str:
        if not self._records:
            return "Log(empty)"
        lines = [f"Log({len(self._records)} records)"]
        for r in self._records:
            lines.append(f"  [{r.stage}] {r.severity}: {r.message}")
        return "\n".join(lines)


def append_log(
    log: Optional[Log],
    stage: str,
    severity: Union[SeverityLike, Sequence[SeverityLike]],
    messages: Sequence[str] = (),
) -> Log:
    """
    Append one record per message to ``log``, preserving prior order.

    Parameters
    ----------
    log : Log or None
        The log to extend. None is treated as an empty log.
    stage : str
        "train" or "predict".
    severity : str, Severity, or sequence of these
        Either one severity applied to every message, or one severity
        per message.
    messages : sequence of str
        Messages to append. A single string is treated as one message.

    Returns
    -------
    Log
        A new log; ``log`` itself when ``messages`` is empty.

    Raises
    ------
    ValueError
        On an unknown stage or severity, or when the number of
        severities does not match the number of messages.
    """
    if log is None:
        log = Log()
    if stage not in STAGES:
        raise ValueError(
            f"Unknown stage: '{stage}'. Choose from: {', '.join(STAGES)}"
        )

    if isinstance(messages, str):
        messages = [messages]
    if len(messages) == 0:
        return log

    if isinstance(severity, (str, int)):
        severities = [Severity.coerce(severity)] * len(messages)
    else:
        severities = [Severity.coerce(s) for s in severity]
        if len(severities) != len(messages):
            raise ValueError(
                f"Got {len(severities)} severities for {len(messages)} messages"
            )

    new = tuple(
        LogRecord(stage=stage, severity=sev, message=str(msg))
        for sev, msg in zip(severities, messages)
    )
    return Log(log.records + new)
