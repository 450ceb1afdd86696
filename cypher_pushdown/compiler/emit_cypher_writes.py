# Copyright 2019-present Kensho Technologies, LLC.
"""Convert lists of pending writes into a single batched Cypher statement."""
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, List, Sequence, Tuple

from ..deserialization import serialize_literal
from ..settings import DEFAULT_SETTINGS, PushdownSettings
from .cypher_helpers import get_property_accessor, quote_identifier
from .cypher_query import CompiledQuery
from .patterns import AddFact, EntityRef, PendingWrite, RemoveFact


logger = logging.getLogger(__name__)

OPERATIONS_PARAMETER_NAME = "ops"


class FactKind(Enum):
    """How a fact is stored in the property graph."""

    RELATIONSHIP = "relationship"
    PROPERTY = "property"
    LABEL = "label"


@dataclass(frozen=True)
class WriteSlot:
    """One case of the batch statement: an action on one kind of fact with one predicate.

    Labels, relationship types and property keys cannot be parameterized in Cypher, so every
    distinct one gets its own case.
    """

    is_addition: bool
    fact_kind: FactKind
    # Relationship type or property key, or the class IRI for labels.
    name: str


def get_fact_kind(pending_write: PendingWrite, settings: PushdownSettings) -> FactKind:
    """Return how the fact of the pending write is stored."""
    if not isinstance(pending_write.object, EntityRef):
        return FactKind.PROPERTY
    elif pending_write.predicate.uri == settings.type_predicate:
        return FactKind.LABEL
    else:
        return FactKind.RELATIONSHIP


def _get_write_slot(pending_write: PendingWrite, settings: PushdownSettings) -> WriteSlot:
    """Return the slot applying the pending write."""
    if isinstance(pending_write, AddFact):
        is_addition = True
    elif isinstance(pending_write, RemoveFact):
        is_addition = False
    else:
        raise AssertionError(
            "Expected AddFact or RemoveFact, got: {} {}".format(
                type(pending_write).__name__, pending_write
            )
        )

    fact_kind = get_fact_kind(pending_write, settings)
    if fact_kind == FactKind.LABEL:
        name = pending_write.object.uri
    else:
        name = pending_write.predicate.uri
    return WriteSlot(is_addition, fact_kind, name)


def _make_operation(
    slot_index: int, pending_write: PendingWrite, fact_kind: FactKind
) -> Dict[str, Any]:
    """Return the element of the operations list describing the pending write."""
    operation: Dict[str, Any] = {"slot": slot_index, "s": pending_write.subject.uri}
    if fact_kind == FactKind.RELATIONSHIP:
        operation["o"] = pending_write.object.uri
    elif fact_kind == FactKind.PROPERTY:
        stored_value, stored_datatype = serialize_literal(pending_write.object)
        operation["v"] = stored_value
        operation["dt"] = stored_datatype
    return operation


def _emit_slot_body(slot: WriteSlot, settings: PushdownSettings) -> List[str]:
    """Return the clauses applying one operation of the given slot to the subject node _s."""
    resource_node_template = "MERGE (_o:{label} {{{uri}: _op.o}})".format(
        label=quote_identifier(settings.resource_label),
        uri=quote_identifier(settings.uri_property),
    )
    quoted_name = quote_identifier(slot.name)

    if slot.fact_kind == FactKind.RELATIONSHIP:
        if slot.is_addition:
            return [resource_node_template, "MERGE (_s)-[:{}]->(_o)".format(quoted_name)]
        else:
            return [
                resource_node_template,
                "MERGE (_s)-[_rel:{}]->(_o)".format(quoted_name),
                "DELETE _rel",
            ]
    elif slot.fact_kind == FactKind.PROPERTY:
        value_accessor = get_property_accessor("_s", slot.name)
        datatype_accessor = get_property_accessor("_s", settings.datatype_property(slot.name))
        if slot.is_addition:
            # Literal properties are single-valued, so adding replaces any previous value.
            return ["SET {} = _op.v, {} = _op.dt".format(value_accessor, datatype_accessor)]
        else:
            return [
                "FOREACH (_matches IN CASE WHEN {} = _op.v THEN [1] ELSE [] END |".format(
                    value_accessor
                ),
                "  SET {} = null, {} = null".format(value_accessor, datatype_accessor),
                ")",
            ]
    elif slot.fact_kind == FactKind.LABEL:
        if slot.is_addition:
            return ["SET _s:{}".format(quoted_name)]
        else:
            return ["REMOVE _s:{}".format(quoted_name)]
    else:
        raise AssertionError("Unreachable code reached: unknown fact kind {}".format(slot))


def _assign_slots(
    pending_writes: Sequence[PendingWrite], settings: PushdownSettings
) -> Tuple[List[WriteSlot], List[Dict[str, Any]]]:
    """Return the distinct slots in order of first use, and one operation per pending write."""
    slot_indexes: Dict[WriteSlot, int] = {}
    operations = []
    for pending_write in pending_writes:
        slot = _get_write_slot(pending_write, settings)
        if slot not in slot_indexes:
            slot_indexes[slot] = len(slot_indexes)
        operations.append(_make_operation(slot_indexes[slot], pending_write, slot.fact_kind))
    slots = sorted(slot_indexes, key=slot_indexes.__getitem__)
    return slots, operations


##############
# Public API #
##############


def emit_batch_write(
    pending_writes: Sequence[PendingWrite], settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    """Return one statement applying every pending write, in order.

    The statement walks the "ops" list parameter in order. Each element applies exactly one
    addition or removal, so its net effect equals applying the writes one at a time.
    Applying a write may leave behind an otherwise empty entity node, which describes no fact.

    Args:
        pending_writes: AddFact and RemoveFact objects, in arrival order. Must not be empty.
        settings: PushdownSettings describing how facts are laid out in the graph

    Returns:
        CompiledQuery with no result columns
    """
    if not pending_writes:
        raise AssertionError("Cannot emit a batch write with no pending writes.")

    slots, operations = _assign_slots(pending_writes, settings)

    query_data = [
        "FOREACH (_op IN ${} |".format(OPERATIONS_PARAMETER_NAME),
        "  MERGE (_s:{} {{{}: _op.s}})".format(
            quote_identifier(settings.resource_label), quote_identifier(settings.uri_property)
        ),
    ]
    for slot_index, slot in enumerate(slots):
        query_data.append(
            "  FOREACH (_ IN CASE WHEN _op.slot = {} THEN [1] ELSE [] END |".format(slot_index)
        )
        query_data.extend("    " + clause for clause in _emit_slot_body(slot, settings))
        query_data.append("  )")
    query_data.append(")")

    logger.debug(
        "Compiled %d pending writes into a batch statement with %d slots.",
        len(pending_writes),
        len(slots),
    )
    return CompiledQuery(
        query="\n".join(query_data),
        parameters={OPERATIONS_PARAMETER_NAME: operations},
        shape_name="BatchWrite",
    )
