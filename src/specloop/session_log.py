"""Per-loop transcript and raw event journal.

A :class:`LogSession` owns two append-only files under ``<spec>/logs``:

- ``<stamp>.log``: human-readable transcript (ANSI codes stripped)
- ``<stamp>.jsonl``: every structured stream-json line, byte-for-byte

Both are named after the loop start time so concurrent loops on the same spec
never share files.
"""

from __future__ import annotations

import datetime as dt
import logging
import sys
import threading
from pathlib import Path
from typing import IO, Any

from specloop.render import strip_ansi

logger = logging.getLogger(__name__)

LOGS_DIRNAME = "logs"
DEFAULT_TITLE = "Spec Loop Log"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _iso(moment: dt.datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def log_stamp(moment: dt.datetime) -> str:
    """Filesystem-safe timestamp used for log file names."""
    return moment.strftime("%Y-%m-%dT%H-%M-%S-%fZ")


class LogSession:
    """Console + file sinks for one loop invocation.

    A session created without paths only writes to the console. Writes from
    the stdout and stderr readers are serialized with a single lock.
    """

    def __init__(
        self,
        transcript_path: Path | None = None,
        journal_path: Path | None = None,
        *,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> None:
        self.transcript_path = transcript_path
        self.journal_path = journal_path
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()
        self._transcript: IO[str] | None = None
        self._journal: IO[str] | None = None
        self._closed = False
        if transcript_path is not None:
            self._transcript = transcript_path.open("a", encoding="utf-8")
        if journal_path is not None:
            try:
                self._journal = journal_path.open("a", encoding="utf-8")
            except OSError:
                if self._transcript is not None:
                    self._transcript.close()
                raise

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        spec_folder: str | Path | None,
        *,
        target: str | Path | None = None,
        title: str = DEFAULT_TITLE,
        stdout: IO[str] | None = None,
        stderr: IO[str] | None = None,
    ) -> LogSession | None:
        """Open a file-backed session under ``<spec_folder>/logs``.

        Returns ``None`` when no folder is given, it does not exist, or the
        log files cannot be created.
        """
        if spec_folder is None:
            return None
        folder = Path(spec_folder)
        if not folder.is_dir():
            logger.debug("Spec folder %s does not exist; file logging disabled", folder)
            return None

        started = _utc_now()
        logs_dir = folder / LOGS_DIRNAME
        stamp = log_stamp(started)
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            session = cls(
                logs_dir / f"{stamp}.log",
                logs_dir / f"{stamp}.jsonl",
                stdout=stdout,
                stderr=stderr,
            )
        except OSError as exc:
            logger.warning(
                "Could not open log files in %s; logging to console only: %s", logs_dir, exc
            )
            return None
        session._write_file(
            f"{title}\n"
            f"{'=' * len(title)}\n"
            f"Spec Path: {target if target is not None else folder}\n"
            f"Started: {_iso(started)}\n"
            "\n"
        )
        return session

    @classmethod
    def console(cls, *, stdout: IO[str] | None = None, stderr: IO[str] | None = None) -> LogSession:
        """Return a session with no file sinks."""
        return cls(stdout=stdout, stderr=stderr)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def write_line(self, text: str) -> None:
        """Print *text* and append it (without colors) to the transcript."""
        with self._lock:
            print(text, file=self._stdout or sys.stdout, flush=True)
            self._write_file(strip_ansi(text) + "\n")

    def write_stderr(self, text: str) -> None:
        """Forward one subprocess stderr line to stderr and the transcript."""
        with self._lock:
            print(text, file=self._stderr or sys.stderr, flush=True)
            self._write_file(text + "\n")

    def write_error(self, text: str) -> None:
        """Report a (possibly colored) failure on stderr and in the transcript."""
        with self._lock:
            print(text, file=self._stderr or sys.stderr, flush=True)
            self._write_file(strip_ansi(text) + "\n")

    def write_raw(self, line: str) -> None:
        """Append one undecoded protocol line to the journal."""
        with self._lock:
            if self._journal is None or self._closed:
                return
            try:
                self._journal.write(line.rstrip("\r\n") + "\n")
                self._journal.flush()
            except OSError as exc:
                logger.warning("Could not append to event journal %s: %s", self.journal_path, exc)
                self._journal = None

    def close(self) -> None:
        """Write the end marker and release both files. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._write_file(f"\nEnded: {_iso(_utc_now())}\n")
            self._closed = True
            for handle in (self._transcript, self._journal):
                if handle is None:
                    continue
                try:
                    handle.close()
                except OSError as exc:
                    logger.warning("Could not close log file: %s", exc)
            self._transcript = None
            self._journal = None

    def __enter__(self) -> LogSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write_file(self, text: str) -> None:
        if self._transcript is None or self._closed:
            return
        try:
            self._transcript.write(text)
            self._transcript.flush()
        except OSError as exc:
            logger.warning("Could not append to transcript %s: %s", self.transcript_path, exc)
            self._transcript = None
