# Copyright 2017-present Kensho Technologies, LLC.
"""Explicit configuration of how facts are laid out in the property graph."""
from dataclasses import dataclass


RDF_TYPE_URI = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"

DEFAULT_RESOURCE_LABEL = "Resource"
DEFAULT_URI_PROPERTY = "uri"
DEFAULT_DATATYPE_SUFFIX = "__datatype"

# Matches the bulk size the write path used before pending writes were batched per statement.
DEFAULT_MAX_BUFFERED_WRITES = 1000


@dataclass(frozen=True)
class PushdownSettings:
    """Describe the mapping between facts and the property graph.

    Attributes:
        resource_label: label carried by every node that represents an entity
        uri_property: name of the node property holding the entity's identifier
        type_predicate: predicate IRI whose facts are stored as node labels
        datatype_suffix: suffix of the companion property holding a literal's datatype
        max_buffered_writes: number of pending writes that triggers an implicit flush
    """

    resource_label: str = DEFAULT_RESOURCE_LABEL
    uri_property: str = DEFAULT_URI_PROPERTY
    type_predicate: str = RDF_TYPE_URI
    datatype_suffix: str = DEFAULT_DATATYPE_SUFFIX
    max_buffered_writes: int = DEFAULT_MAX_BUFFERED_WRITES

    def __post_init__(self) -> None:
        """Validate the settings."""
        if self.max_buffered_writes < 1:
            raise ValueError(
                "max_buffered_writes must be a positive integer, got: {}".format(
                    self.max_buffered_writes
                )
            )
        for attribute_name in ("resource_label", "uri_property", "type_predicate"):
            if not getattr(self, attribute_name):
                raise ValueError("Empty {} is not allowed.".format(attribute_name))
        if not self.datatype_suffix:
            raise ValueError("Empty datatype_suffix is not allowed.")

    def datatype_property(self, predicate_uri: str) -> str:
        """Return the name of the companion property storing a literal's datatype."""
        return predicate_uri + self.datatype_suffix


DEFAULT_SETTINGS = PushdownSettings()
