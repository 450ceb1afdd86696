# Copyright 2020-present Kensho Technologies, LLC.
"""Accumulate pending writes and apply them to the graph in a single statement."""
import logging
from threading import RLock
from typing import Iterable, List, Optional

from .compiler.common import compile_pending_writes
from .compiler.patterns import AddFact, PendingWrite, PendingWriteList, RemoveFact
from .exceptions import MalformedPattern
from .settings import DEFAULT_SETTINGS, PushdownSettings
from .typedefs import QueryExecutor


logger = logging.getLogger(__name__)


class WriteBuffer(object):
    """A bounded, thread-safe queue of pending writes, flushed as one batch statement.

    Writes are kept in arrival order and are never deduplicated or simplified: adding and then
    removing the same fact sends both operations, and the database applies them in order.

    The buffer can also be used as a transaction:

        with WriteBuffer(execute) as buffer:
            buffer.enqueue(AddFact(...))
            buffer.enqueue(RemoveFact(...))

    flushes on a successful exit from the block, and discards the pending writes if the block
    raised an exception.
    """

    def __init__(self, execute: QueryExecutor, settings: Optional[PushdownSettings] = None) -> None:
        """Create a new, empty WriteBuffer.

        Args:
            execute: function that runs a Cypher statement with its parameters
            settings: optional PushdownSettings; max_buffered_writes bounds the number of
                      pending writes held before an implicit flush
        """
        self._execute = execute
        self._settings = settings if settings is not None else DEFAULT_SETTINGS
        self._pending_writes: PendingWriteList = []
        self._lock = RLock()

    def __len__(self) -> int:
        """Return the number of pending writes."""
        with self._lock:
            return len(self._pending_writes)

    @property
    def pending_writes(self) -> List[PendingWrite]:
        """Return a copy of the pending writes, in arrival order."""
        with self._lock:
            return list(self._pending_writes)

    def enqueue(self, pending_write: PendingWrite) -> None:
        """Append a write to the buffer, flushing first if the buffer is full.

        Raises:
            MalformedPattern: if the argument is not an AddFact or RemoveFact
            ExecutionFailure: if the implicit flush fails. The new write is then not enqueued,
                              and the buffer keeps its previous contents.
        """
        if not isinstance(pending_write, (AddFact, RemoveFact)):
            raise MalformedPattern(
                "Expected AddFact or RemoveFact, got: {}".format(pending_write)
            )

        with self._lock:
            if len(self._pending_writes) >= self._settings.max_buffered_writes:
                logger.debug(
                    "Write buffer reached its limit of %d pending writes, flushing.",
                    self._settings.max_buffered_writes,
                )
                self.flush()
            self._pending_writes.append(pending_write)

    def enqueue_all(self, pending_writes: Iterable[PendingWrite]) -> None:
        """Append every write, in order, without interleaving with writes of other threads."""
        with self._lock:
            for pending_write in pending_writes:
                self.enqueue(pending_write)

    def flush(self) -> int:
        """Apply every pending write in one statement, and return the number of writes applied.

        Flushing an empty buffer executes nothing and returns 0. The buffer is only cleared once
        the statement has executed successfully; if execution raises, the pending writes are
        kept so that the caller may retry the flush or discard them.
        """
        with self._lock:
            if not self._pending_writes:
                return 0

            flushed_count = len(self._pending_writes)
            compiled_query = compile_pending_writes(self._pending_writes, settings=self._settings)
            logger.debug("Flushing %d pending writes.", flushed_count)
            # The rows of a write statement carry no information, but they must be consumed
            # for lazy executors to run the statement.
            for _ in self._execute(compiled_query.query, compiled_query.parameters):
                pass

            self._pending_writes = []
            return flushed_count

    def discard(self) -> int:
        """Drop every pending write without applying it, and return how many were dropped."""
        with self._lock:
            discarded_count = len(self._pending_writes)
            self._pending_writes = []
            if discarded_count:
                logger.debug("Discarded %d pending writes.", discarded_count)
            return discarded_count

    def __enter__(self) -> "WriteBuffer":
        """Start a transaction. The lock is held until the transaction ends."""
        self._lock.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Flush on success, discard on error. Exceptions are never suppressed."""
        try:
            if exc_type is None:
                self.flush()
            else:
                self.discard()
        finally:
            self._lock.release()
        return False
