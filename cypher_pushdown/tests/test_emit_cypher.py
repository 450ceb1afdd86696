# Copyright 2020-present Kensho Technologies, LLC.
import datetime
from decimal import Decimal
from unittest import TestCase

from ..compiler.aggregation import Aggregate
from ..compiler.classifier import classify
from ..compiler.cypher_query import ColumnKind, ColumnPlan, ColumnSpec, CompiledQuery
from ..compiler.emit_cypher import emit_aggregation, emit_cypher, emit_union
from ..compiler.expressions import Comparison, FunctionCall
from ..compiler.patterns import XSD_DATE, Literal, PatternGroup, TriplePattern, Variable
from ..compiler.shapes import TypeQuery, Unsupported, VariableObjectSingleTriple
from ..exceptions import UnsupportedFilterKind, UnsupportedShape
from ..settings import DEFAULT_SETTINGS, RDF_TYPE_URI, PushdownSettings
from .test_helpers import (
    AGE,
    ALICE,
    BIRTHDAY,
    BOB,
    KNOWS,
    NAME,
    PERSON,
    RDF_TYPE,
    ROBOT,
    compare_cypher,
    ex,
)


x = Variable("x")
y = Variable("y")
z = Variable("z")


def _compile(
    group: PatternGroup, settings: PushdownSettings = DEFAULT_SETTINGS
) -> CompiledQuery:
    return emit_cypher(classify(group, settings=settings), group, settings=settings)


class EmitSinglePatternTests(TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_fixed_triple_relationship(self) -> None:
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, KNOWS, BOB),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[:`http://example.com/knows`]->
                  (_n1:`Resource` {`uri`: $p1})
            RETURN 1 AS `_exists` LIMIT 1
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri, "p1": BOB.uri}, compiled_query.parameters)
        self.assertEqual(
            ColumnPlan((ColumnSpec("_exists", None, ColumnKind.EXISTENCE),)),
            compiled_query.column_plan,
        )
        self.assertEqual("FixedTriple", compiled_query.shape_name)

    def test_fixed_triple_literal(self) -> None:
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, NAME, Literal("Alice")),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})
              WHERE _n0.`http://example.com/name` = $p1
            RETURN 1 AS `_exists` LIMIT 1
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri, "p1": "Alice"}, compiled_query.parameters)

    def test_fixed_triple_non_native_literal_checks_datatype(self) -> None:
        birthday = Literal(datetime.date(1980, 1, 2))
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, BIRTHDAY, birthday),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})
              WHERE _n0.`http://example.com/birthday` = $p1
                AND _n0.`http://example.com/birthday__datatype` = $p2
            RETURN 1 AS `_exists` LIMIT 1
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual(
            {"p0": ALICE.uri, "p1": "1980-01-02", "p2": XSD_DATE}, compiled_query.parameters
        )

    def test_type_query(self) -> None:
        compiled_query = _compile(PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),)))

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN `x`.`uri` AS `x`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({}, compiled_query.parameters)
        self.assertEqual(
            ColumnPlan((ColumnSpec("x", "x", ColumnKind.ENTITY),)), compiled_query.column_plan
        )

    def test_type_query_with_custom_settings(self) -> None:
        settings = PushdownSettings(resource_label="Node", uri_property="iri")
        compiled_query = _compile(
            PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),)), settings=settings
        )

        expected_cypher = """
            MATCH (`x`:`Node`:`http://example.com/Person`)
            RETURN `x`.`iri` AS `x`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)

    def test_variable_object_single_triple(self) -> None:
        name = Variable("name")
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, NAME, name),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[:`http://example.com/name`]->
                  (`name`:`Resource`)
            RETURN {uri: `name`.`uri`} AS `name`, null AS `_datatype_name`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})
              WHERE _n0.`http://example.com/name` IS NOT NULL
            RETURN _n0.`http://example.com/name` AS `name`,
                   _n0.`http://example.com/name__datatype` AS `_datatype_name`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri}, compiled_query.parameters)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec(
                        "name",
                        "name",
                        ColumnKind.LITERAL_OR_ENTITY,
                        datatype_column="_datatype_name",
                    ),
                )
            ),
            compiled_query.column_plan,
        )

    def test_variable_object_single_triple_with_filter(self) -> None:
        age = Variable("age")
        group = PatternGroup(
            (TriplePattern(ALICE, AGE, age),), filters=(Comparison(">", age, Literal(30)),)
        )
        compiled_query = _compile(group)

        # Entities are not ordered with respect to literals, so the first branch keeps no rows.
        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[:`http://example.com/age`]->(`age`:`Resource`)
              WHERE null
            RETURN {uri: `age`.`uri`} AS `age`, null AS `_datatype_age`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})
              WHERE _n0.`http://example.com/age` IS NOT NULL
                AND _n0.`http://example.com/age` > $p1
            RETURN _n0.`http://example.com/age` AS `age`,
                   _n0.`http://example.com/age__datatype` AS `_datatype_age`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri, "p1": 30}, compiled_query.parameters)

    def test_comparison_with_lexically_stored_literal_is_not_emitted(self) -> None:
        price = Variable("price")
        pattern = TriplePattern(ALICE, ex("price"), price)
        group = PatternGroup(
            (pattern,), filters=(Comparison(">", price, Literal(Decimal("10.5"))),)
        )
        with self.assertRaises(UnsupportedFilterKind):
            emit_cypher(VariableObjectSingleTriple(pattern), group)

    def test_self_loop_is_only_a_relationship(self) -> None:
        compiled_query = _compile(PatternGroup((TriplePattern(x, KNOWS, x),)))

        expected_cypher = """
            MATCH (`x`:`Resource`)-[:`http://example.com/knows`]->(`x`)
            RETURN `x`.`uri` AS `x`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)

    def test_variable_predicate_single_subject(self) -> None:
        p = Variable("p")
        o = Variable("o")
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, p, o),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[_r]->(`o`:`Resource`)
            RETURN type(_r) AS `p`, {uri: `o`.`uri`} AS `o`, null AS `_datatype_o`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})
            UNWIND keys(_n0) AS _key
            WITH _n0 AS _n0, _key AS _key
              WHERE _key <> "uri" AND NOT _key ENDS WITH "__datatype"
            RETURN _key AS `p`, _n0[_key] AS `o`, _n0[_key + "__datatype"] AS `_datatype_o`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})
            UNWIND labels(_n0) AS _label
            WITH _n0 AS _n0, _label AS _label
              WHERE _label <> "Resource"
            RETURN $p1 AS `p`, {uri: _label} AS `o`, null AS `_datatype_o`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri, "p1": RDF_TYPE_URI}, compiled_query.parameters)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec("p", "p", ColumnKind.PREDICATE),
                    ColumnSpec(
                        "o", "o", ColumnKind.LITERAL_OR_ENTITY, datatype_column="_datatype_o"
                    ),
                )
            ),
            compiled_query.column_plan,
        )

    def test_variable_predicate_with_literal_object_skips_entity_branches(self) -> None:
        p = Variable("p")
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, p, Literal("Alice")),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})
            UNWIND keys(_n0) AS _key
            WITH _n0 AS _n0, _key AS _key
              WHERE _key <> "uri" AND NOT _key ENDS WITH "__datatype" AND _n0[_key] = $p1
            RETURN _key AS `p`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": ALICE.uri, "p1": "Alice"}, compiled_query.parameters)

    def test_variable_predicate_with_bound_object_skips_property_branch(self) -> None:
        p = Variable("p")
        compiled_query = _compile(PatternGroup((TriplePattern(ALICE, p, PERSON),)))

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[_r]->(_n1:`Resource` {`uri`: $p1})
            RETURN type(_r) AS `p`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})
            UNWIND labels(_n0) AS _label
            WITH _n0 AS _n0, _label AS _label
              WHERE _label <> "Resource" AND _label = $p1
            RETURN $p2 AS `p`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual(
            {"p0": ALICE.uri, "p1": PERSON.uri, "p2": RDF_TYPE_URI}, compiled_query.parameters
        )
        self.assertEqual(
            ColumnPlan((ColumnSpec("p", "p", ColumnKind.PREDICATE),)), compiled_query.column_plan
        )


class EmitMultiplePatternTests(TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_closed_chain_with_literal_label_and_filter(self) -> None:
        group = PatternGroup(
            (
                TriplePattern(x, KNOWS, y),
                TriplePattern(y, NAME, Literal("Bob")),
                TriplePattern(x, RDF_TYPE, PERSON),
            ),
            filters=(Comparison("!=", x, BOB),),
        )
        compiled_query = _compile(group)

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)-[:`http://example.com/knows`]->
                  (`y`:`Resource`)
              WHERE `y`.`http://example.com/name` = $p0 AND `x`.`uri` <> $p1
            RETURN `x`.`uri` AS `x`, `y`.`uri` AS `y`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": "Bob", "p1": BOB.uri}, compiled_query.parameters)
        self.assertEqual("ClosedChain", compiled_query.shape_name)

    def test_multi_hop_with_variable_end(self) -> None:
        group = PatternGroup((TriplePattern(ALICE, KNOWS, y), TriplePattern(y, KNOWS, z)))
        compiled_query = _compile(group)

        expected_cypher = """
            MATCH (_n0:`Resource` {`uri`: $p0})-[:`http://example.com/knows`]->(`y`:`Resource`)
            MATCH (`y`)-[:`http://example.com/knows`]->(`z`:`Resource`)
            RETURN `y`.`uri` AS `y`, {uri: `z`.`uri`} AS `z`, null AS `_datatype_z`
            UNION ALL
            MATCH (_n0:`Resource` {`uri`: $p0})-[:`http://example.com/knows`]->(`y`:`Resource`)
              WHERE `y`.`http://example.com/knows` IS NOT NULL
            RETURN `y`.`uri` AS `y`,
                   `y`.`http://example.com/knows` AS `z`,
                   `y`.`http://example.com/knows__datatype` AS `_datatype_z`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual("MultiHop", compiled_query.shape_name)


class EmitOptionalJoinTests(TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_optional_literal_property(self) -> None:
        n = Variable("n")
        group = PatternGroup(
            (TriplePattern(x, RDF_TYPE, PERSON),),
            optional_groups=(PatternGroup((TriplePattern(x, NAME, n),)),),
        )
        compiled_query = _compile(group)

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN `x`.`uri` AS `x`,
                CASE WHEN `x`.`http://example.com/name` IS NOT NULL
                    THEN `x`.`http://example.com/name` END AS `n`,
                CASE WHEN `x`.`http://example.com/name` IS NOT NULL
                    THEN `x`.`http://example.com/name__datatype` END AS `_datatype_n`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec("x", "x", ColumnKind.ENTITY),
                    ColumnSpec(
                        "n", "n", ColumnKind.LITERAL, nullable=True, datatype_column="_datatype_n"
                    ),
                )
            ),
            compiled_query.column_plan,
        )

    def test_optional_relationship(self) -> None:
        m = Variable("m")
        group = PatternGroup(
            (TriplePattern(x, RDF_TYPE, PERSON),),
            optional_groups=(
                PatternGroup((TriplePattern(x, KNOWS, y), TriplePattern(y, NAME, m))),
            ),
        )
        compiled_query = _compile(group)

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            OPTIONAL MATCH (`x`)-[_opt0_r0:`http://example.com/knows`]->(`y`:`Resource`)
              WHERE `y`.`http://example.com/name` IS NOT NULL
            RETURN `x`.`uri` AS `x`,
                   `y`.`uri` AS `y`,
                   CASE WHEN _opt0_r0 IS NOT NULL THEN `y`.`http://example.com/name` END AS `m`,
                   CASE WHEN _opt0_r0 IS NOT NULL
                       THEN `y`.`http://example.com/name__datatype` END AS `_datatype_m`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual("OptionalJoin", compiled_query.shape_name)
        nullable_columns = [
            column.variable_name for column in compiled_query.column_plan.columns if column.nullable
        ]
        self.assertEqual(["y", "m"], nullable_columns)


class EmitUnionTests(TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_union_of_groups_with_the_same_variables(self) -> None:
        compiled_query = emit_union(
            [
                PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),)),
                PatternGroup((TriplePattern(x, RDF_TYPE, ROBOT),)),
            ]
        )

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN `x`.`uri` AS `x`
            UNION ALL
            MATCH (`x`:`Resource`:`http://example.com/Robot`)
            RETURN `x`.`uri` AS `x`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual("Union", compiled_query.shape_name)
        self.assertEqual(
            ColumnPlan((ColumnSpec("x", "x", ColumnKind.ENTITY),)), compiled_query.column_plan
        )

    def test_union_pads_missing_variables_with_nulls(self) -> None:
        compiled_query = emit_union(
            [
                PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),)),
                PatternGroup((TriplePattern(y, RDF_TYPE, ROBOT),)),
            ]
        )

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN `x`.`uri` AS `x`, null AS `y`
            UNION ALL
            MATCH (`y`:`Resource`:`http://example.com/Robot`)
            RETURN null AS `x`, `y`.`uri` AS `y`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec("x", "x", ColumnKind.ENTITY, nullable=True),
                    ColumnSpec("y", "y", ColumnKind.ENTITY, nullable=True),
                )
            ),
            compiled_query.column_plan,
        )

    def test_union_with_unsupported_group_is_unsupported(self) -> None:
        with self.assertRaises(UnsupportedShape):
            emit_union(
                [
                    PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),)),
                    PatternGroup((TriplePattern(x, KNOWS, y), TriplePattern(y, KNOWS, x))),
                ]
            )


class EmitAggregationTests(TestCase):
    def setUp(self) -> None:
        """Disable max diff limits for all tests."""
        self.maxDiff = None

    def test_counts_without_grouping(self) -> None:
        group = PatternGroup((TriplePattern(x, RDF_TYPE, PERSON),))
        aggregates = (
            Aggregate("count", None, Variable("people")),
            Aggregate("count", x, Variable("distinct_people"), distinct=True),
        )
        compiled_query = emit_aggregation(classify(group), group, (), aggregates)

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN count(*) AS `people`, count(DISTINCT `x`.`uri`) AS `distinct_people`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({}, compiled_query.parameters)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec("people", "people", ColumnKind.LITERAL),
                    ColumnSpec("distinct_people", "distinct_people", ColumnKind.LITERAL),
                )
            ),
            compiled_query.column_plan,
        )
        self.assertEqual("TypeQuery", compiled_query.shape_name)

    def test_grouped_aggregates_over_optional_join(self) -> None:
        n = Variable("n")
        a = Variable("a")
        group = PatternGroup(
            (TriplePattern(x, RDF_TYPE, PERSON),),
            optional_groups=(
                PatternGroup((TriplePattern(x, NAME, n),)),
                PatternGroup((TriplePattern(x, AGE, a),)),
            ),
        )
        aggregates = (
            Aggregate("count", x, Variable("people")),
            Aggregate("avg", a, Variable("mean_age")),
        )
        compiled_query = emit_aggregation(classify(group), group, (n,), aggregates)

        name_value = (
            "CASE WHEN `x`.`http://example.com/name` IS NOT NULL "
            "THEN `x`.`http://example.com/name` END"
        )
        age_value = (
            "CASE WHEN `x`.`http://example.com/age` IS NOT NULL "
            "THEN `x`.`http://example.com/age` END"
        )
        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN {name_value} AS `n`,
                CASE WHEN `x`.`http://example.com/name` IS NOT NULL
                    THEN `x`.`http://example.com/name__datatype` END AS `_datatype_n`,
                count(`x`.`uri`) AS `people`,
                avg(CASE WHEN {age_value} >= 0 OR {age_value} < 0 THEN {age_value} END)
                    AS `mean_age`
        """.format(
            name_value=name_value, age_value=age_value
        )
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual(
            ColumnPlan(
                (
                    ColumnSpec(
                        "n", "n", ColumnKind.LITERAL, nullable=True, datatype_column="_datatype_n"
                    ),
                    ColumnSpec("people", "people", ColumnKind.LITERAL),
                    ColumnSpec("mean_age", "mean_age", ColumnKind.LITERAL, nullable=True),
                )
            ),
            compiled_query.column_plan,
        )
        self.assertEqual("OptionalJoin", compiled_query.shape_name)

    def test_distinct_count_of_literals_compares_datatypes(self) -> None:
        n = Variable("n")
        group = PatternGroup(
            (TriplePattern(x, RDF_TYPE, PERSON),),
            optional_groups=(PatternGroup((TriplePattern(x, NAME, n),)),),
        )
        aggregates = (Aggregate("count", n, Variable("names"), distinct=True),)
        compiled_query = emit_aggregation(classify(group), group, (), aggregates)

        name_value = (
            "CASE WHEN `x`.`http://example.com/name` IS NOT NULL "
            "THEN `x`.`http://example.com/name` END"
        )
        name_datatype = (
            "CASE WHEN `x`.`http://example.com/name` IS NOT NULL "
            "THEN `x`.`http://example.com/name__datatype` END"
        )
        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
            RETURN count(DISTINCT CASE WHEN {value} IS NOT NULL THEN [{value}, {datatype}] END)
                AS `names`
        """.format(
            value=name_value, datatype=name_datatype
        )
        compare_cypher(self, expected_cypher, compiled_query.query)

    def test_filters_apply_before_aggregation(self) -> None:
        group = PatternGroup(
            (TriplePattern(x, RDF_TYPE, PERSON),), filters=(Comparison("!=", x, BOB),)
        )
        aggregates = (Aggregate("count", None, Variable("others")),)
        compiled_query = emit_aggregation(classify(group), group, (x,), aggregates)

        expected_cypher = """
            MATCH (`x`:`Resource`:`http://example.com/Person`)
              WHERE `x`.`uri` <> $p0
            RETURN `x`.`uri` AS `x`, count(*) AS `others`
        """
        compare_cypher(self, expected_cypher, compiled_query.query)
        self.assertEqual({"p0": BOB.uri}, compiled_query.parameters)

    def test_multiple_branches_are_not_aggregated(self) -> None:
        o = Variable("o")
        pattern = TriplePattern(ALICE, KNOWS, o)
        group = PatternGroup((pattern,))
        aggregates = (Aggregate("count", o, Variable("objects")),)
        with self.assertRaises(UnsupportedShape):
            emit_aggregation(VariableObjectSingleTriple(pattern), group, (), aggregates)

    def test_numeric_aggregate_of_entities_is_not_emitted(self) -> None:
        pattern = TriplePattern(x, RDF_TYPE, PERSON)
        group = PatternGroup((pattern,))
        aggregates = (Aggregate("max", x, Variable("largest")),)
        with self.assertRaises(UnsupportedShape):
            emit_aggregation(TypeQuery(pattern), group, (), aggregates)

    def test_unsupported_shape_is_not_aggregated(self) -> None:
        group = PatternGroup((TriplePattern(x, KNOWS, y), TriplePattern(y, KNOWS, x)))
        aggregates = (Aggregate("count", None, Variable("pairs")),)
        with self.assertRaises(UnsupportedShape):
            emit_aggregation(classify(group), group, (), aggregates)


class EmitErrorTests(TestCase):
    def test_unsupported_shape_raises(self) -> None:
        group = PatternGroup((TriplePattern(x, Variable("p"), y),))
        with self.assertRaises(UnsupportedShape):
            emit_cypher(Unsupported("no shape"), group)

    def test_untranslatable_filter_raises(self) -> None:
        o = Variable("o")
        pattern = TriplePattern(ALICE, NAME, o)
        group = PatternGroup((pattern,), filters=(FunctionCall("lang", (o,)),))
        with self.assertRaises(UnsupportedFilterKind):
            emit_cypher(VariableObjectSingleTriple(pattern), group)
