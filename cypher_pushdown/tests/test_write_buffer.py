# Copyright 2020-present Kensho Technologies, LLC.
import datetime
from threading import Thread
import unittest

from ..compiler.patterns import AddFact, Literal, RemoveFact, TriplePattern
from ..exceptions import ExecutionFailure, MalformedPattern
from ..settings import PushdownSettings
from ..write_buffer import WriteBuffer
from .test_data_tools.in_memory_graph import InMemoryGraph
from .test_helpers import ALICE, BIRTHDAY, BOB, CAROL, KNOWS, NAME, PERSON, RDF_TYPE


class WriteBufferTests(unittest.TestCase):
    def setUp(self) -> None:
        """Start every test from an empty graph."""
        self.maxDiff = None
        self.graph = InMemoryGraph()

    def test_writes_are_applied_in_order(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
        write_buffer.enqueue(RemoveFact(ALICE, KNOWS, BOB))
        write_buffer.enqueue(AddFact(ALICE, KNOWS, CAROL))

        self.assertEqual(3, write_buffer.flush())
        self.assertEqual({(ALICE, KNOWS, CAROL)}, self.graph.get_facts())
        self.assertEqual(1, len(self.graph.executed_queries))
        self.assertEqual(0, len(write_buffer))

    def test_removal_before_addition_keeps_fact(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        write_buffer.enqueue_all(
            [
                AddFact(ALICE, KNOWS, BOB),
                RemoveFact(ALICE, KNOWS, BOB),
                AddFact(ALICE, KNOWS, BOB),
            ]
        )
        write_buffer.flush()
        self.assertEqual({(ALICE, KNOWS, BOB)}, self.graph.get_facts())

    def test_writes_are_not_deduplicated(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        pending_writes = [AddFact(ALICE, KNOWS, BOB), AddFact(ALICE, KNOWS, BOB)]
        write_buffer.enqueue_all(pending_writes)
        self.assertEqual(pending_writes, write_buffer.pending_writes)

        write_buffer.flush()
        _, parameters = self.graph.executed_queries[0]
        self.assertEqual(2, len(parameters["ops"]))
        self.assertEqual({(ALICE, KNOWS, BOB)}, self.graph.get_facts())

    def test_flushing_empty_buffer_does_nothing(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        self.assertEqual(0, write_buffer.flush())
        self.assertEqual(0, write_buffer.flush())
        self.assertEqual([], self.graph.executed_queries)

    def test_failed_flush_keeps_pending_writes(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
        write_buffer.enqueue(AddFact(ALICE, RDF_TYPE, PERSON))

        self.graph.failures_remaining = 1
        with self.assertRaises(ExecutionFailure):
            write_buffer.flush()
        self.assertEqual(2, len(write_buffer))
        self.assertEqual(set(), self.graph.get_facts())

        self.assertEqual(2, write_buffer.flush())
        self.assertEqual(
            {(ALICE, KNOWS, BOB), (ALICE, RDF_TYPE, PERSON)}, self.graph.get_facts()
        )

    def test_full_buffer_flushes_implicitly(self) -> None:
        write_buffer = WriteBuffer(
            self.graph.execute, settings=PushdownSettings(max_buffered_writes=2)
        )
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
        write_buffer.enqueue(AddFact(BOB, KNOWS, CAROL))
        self.assertEqual([], self.graph.executed_queries)

        write_buffer.enqueue(AddFact(CAROL, KNOWS, ALICE))
        self.assertEqual(1, len(self.graph.executed_queries))
        self.assertEqual([AddFact(CAROL, KNOWS, ALICE)], write_buffer.pending_writes)
        self.assertEqual({(ALICE, KNOWS, BOB), (BOB, KNOWS, CAROL)}, self.graph.get_facts())

    def test_failed_implicit_flush_rejects_new_write(self) -> None:
        write_buffer = WriteBuffer(
            self.graph.execute, settings=PushdownSettings(max_buffered_writes=1)
        )
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))

        self.graph.failures_remaining = 1
        with self.assertRaises(ExecutionFailure):
            write_buffer.enqueue(AddFact(BOB, KNOWS, CAROL))
        self.assertEqual([AddFact(ALICE, KNOWS, BOB)], write_buffer.pending_writes)

    def test_invalid_write(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        with self.assertRaises(MalformedPattern):
            write_buffer.enqueue(TriplePattern(ALICE, KNOWS, BOB))
        self.assertEqual(0, len(write_buffer))

    def test_discard(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
        self.assertEqual(1, write_buffer.discard())
        self.assertEqual(0, write_buffer.flush())
        self.assertEqual([], self.graph.executed_queries)

    def test_transaction_flushes_on_success(self) -> None:
        with WriteBuffer(self.graph.execute) as write_buffer:
            write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
            self.assertEqual([], self.graph.executed_queries)
        self.assertEqual({(ALICE, KNOWS, BOB)}, self.graph.get_facts())

    def test_transaction_discards_on_error(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        with self.assertRaises(ValueError):
            with write_buffer:
                write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
                raise ValueError("Something went wrong.")
        self.assertEqual(0, len(write_buffer))
        self.assertEqual([], self.graph.executed_queries)

    def test_flush_is_logged(self) -> None:
        write_buffer = WriteBuffer(self.graph.execute)
        write_buffer.enqueue(AddFact(ALICE, KNOWS, BOB))
        with self.assertLogs("cypher_pushdown.write_buffer", level="DEBUG") as captured_logs:
            write_buffer.flush()
        self.assertEqual(
            ["DEBUG:cypher_pushdown.write_buffer:Flushing 1 pending writes."],
            captured_logs.output,
        )

    def test_concurrent_writers(self) -> None:
        write_buffer = WriteBuffer(
            self.graph.execute, settings=PushdownSettings(max_buffered_writes=7)
        )
        people = [ALICE, BOB, CAROL]

        def write_names(person) -> None:
            write_buffer.enqueue_all(
                AddFact(person, NAME, Literal("name {}".format(index))) for index in range(20)
            )

        threads = [Thread(target=write_names, args=(person,)) for person in people]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        write_buffer.flush()

        flushed_count = sum(
            len(parameters["ops"]) for _, parameters in self.graph.executed_queries
        )
        self.assertEqual(60, flushed_count)
        # Each writer's writes stay in order, so every person ends up with the last name.
        self.assertEqual(
            {(person, NAME, Literal("name 19")) for person in people}, self.graph.get_facts()
        )


class StoredFactTests(unittest.TestCase):
    def setUp(self) -> None:
        """Start every test from an empty graph."""
        self.graph = InMemoryGraph()
        self.write_buffer = WriteBuffer(self.graph.execute)

    def _apply(self, *pending_writes) -> None:
        self.write_buffer.enqueue_all(pending_writes)
        self.write_buffer.flush()

    def test_adding_literal_replaces_previous_value(self) -> None:
        self._apply(AddFact(ALICE, NAME, Literal("Al")), AddFact(ALICE, NAME, Literal("Alice")))
        self.assertEqual({(ALICE, NAME, Literal("Alice"))}, self.graph.get_facts())

    def test_removing_other_literal_value_does_nothing(self) -> None:
        self._apply(AddFact(ALICE, NAME, Literal("Alice")), RemoveFact(ALICE, NAME, Literal("Bob")))
        self.assertEqual({(ALICE, NAME, Literal("Alice"))}, self.graph.get_facts())

        self._apply(RemoveFact(ALICE, NAME, Literal("Alice")))
        self.assertEqual(set(), self.graph.get_facts())

    def test_literal_datatypes_are_stored(self) -> None:
        birthday = Literal(datetime.date(1980, 1, 2))
        self._apply(AddFact(ALICE, BIRTHDAY, birthday))

        self.assertEqual({(ALICE, BIRTHDAY, birthday)}, self.graph.get_facts())
        self.assertEqual(
            {
                "http://example.com/birthday": "1980-01-02",
                "http://example.com/birthday__datatype": "http://www.w3.org/2001/XMLSchema#date",
            },
            self.graph.properties[ALICE.uri],
        )

    def test_types_are_stored_as_labels(self) -> None:
        self._apply(AddFact(ALICE, RDF_TYPE, PERSON))
        self.assertEqual({PERSON.uri}, self.graph.labels[ALICE.uri])

        self._apply(RemoveFact(ALICE, RDF_TYPE, PERSON))
        self.assertEqual(set(), self.graph.labels[ALICE.uri])
        self.assertEqual(set(), self.graph.get_facts())
