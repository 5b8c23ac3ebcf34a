import pytest

from openapi_codegen.shared.errors import UnbreakableCycleError
from openapi_codegen.validator_codegen.declarations import (
    DeclarationEntry,
    DeclarationSet,
    collect_references,
)
from openapi_codegen.validator_codegen.ordering import order_declarations, strongly_connected
from openapi_codegen.validator_codegen.translator import (
    ArrayValidator,
    FieldSpec,
    NamedRef,
    NullableValidator,
    ObjectValidator,
    StringValidator,
    UnionValidator,
)


def entry(name, validator):
    dependencies, eager = collect_references(validator)
    return DeclarationEntry(
        name=name,
        validator=validator,
        pointer=f"#/components/schemas/{name}",
        dependencies=dependencies,
        eager_dependencies=eager,
    )


def model(*fields):
    return ObjectValidator(fields=tuple(FieldSpec(key, validator, True) for key, validator in fields))


def names(components):
    return [[e.name for e in component] for component in components]


class TestStronglyConnected:
    def test_dependencies_first(self):
        declarations = DeclarationSet([
            entry("A", model(("b", NamedRef("B")))),
            entry("B", model(("c", NamedRef("C")))),
            entry("C", StringValidator()),
        ])
        assert names(strongly_connected(declarations)) == [["C"], ["B"], ["A"]]

    def test_independent_keep_declaration_order(self):
        declarations = DeclarationSet([
            entry("A", StringValidator()),
            entry("B", StringValidator()),
            entry("C", StringValidator()),
        ])
        assert names(strongly_connected(declarations)) == [["A"], ["B"], ["C"]]

    def test_cycle_is_one_component(self):
        declarations = DeclarationSet([
            entry("A", model(("b", NamedRef("B")))),
            entry("B", model(("a", NamedRef("A")), ("c", NamedRef("C")))),
            entry("C", StringValidator()),
        ])
        assert names(strongly_connected(declarations)) == [["C"], ["A", "B"]]

    def test_unknown_dependency_is_ignored(self):
        declarations = DeclarationSet([entry("A", model(("x", NamedRef("External"))))])
        assert names(strongly_connected(declarations)) == [["A"]]


class TestOrderDeclarations:
    def test_acyclic(self):
        declarations = DeclarationSet([
            entry("A", model(("b", NamedRef("B")))),
            entry("B", StringValidator()),
        ])
        components = order_declarations(declarations)

        assert names(components) == [["B"], ["A"]]
        assert not any(e.is_cyclic for e in declarations.entries)

    def test_self_reference_through_field(self):
        declarations = DeclarationSet([
            entry("Node", model(("children", ArrayValidator(NamedRef("Node"))))),
        ])
        order_declarations(declarations)
        assert declarations.get("Node").is_cyclic

    def test_self_reference_through_array_alias(self):
        declarations = DeclarationSet([entry("Tree", ArrayValidator(NamedRef("Tree")))])
        order_declarations(declarations)
        assert declarations.get("Tree").is_cyclic

    def test_mutual_models(self):
        declarations = DeclarationSet([
            entry("A", model(("b", NullableValidator(NamedRef("B"))))),
            entry("B", model(("a", NamedRef("A")))),
            entry("Leaf", StringValidator()),
        ])
        order_declarations(declarations)

        assert declarations.get("A").is_cyclic
        assert declarations.get("B").is_cyclic
        assert not declarations.get("Leaf").is_cyclic

    def test_cycle_through_union_and_model(self):
        declarations = DeclarationSet([
            entry("Expr", UnionValidator((StringValidator(), NamedRef("Call")))),
            entry("Call", model(("args", ArrayValidator(NamedRef("Expr"))))),
        ])
        order_declarations(declarations)
        assert declarations.get("Expr").is_cyclic
        assert declarations.get("Call").is_cyclic

    def test_eager_cycle_is_unbreakable(self):
        declarations = DeclarationSet([
            entry("A", UnionValidator((NamedRef("B"), StringValidator()))),
            entry("B", NullableValidator(NamedRef("A"))),
        ])
        with pytest.raises(UnbreakableCycleError) as exc_info:
            order_declarations(declarations)
        assert exc_info.value.names == ("A", "B", "A")
        assert exc_info.value.schema_path == "#/components/schemas/A"

    def test_eager_self_alias_is_unbreakable(self):
        declarations = DeclarationSet([entry("A", NamedRef("A"))])
        with pytest.raises(UnbreakableCycleError):
            order_declarations(declarations)

    def test_mixed_cycle_with_one_lazy_edge_is_breakable(self):
        declarations = DeclarationSet([
            entry("A", UnionValidator((NamedRef("B"), StringValidator()))),
            entry("B", model(("a", NamedRef("A")))),
        ])
        components = order_declarations(declarations)
        assert names(components) == [["A", "B"]]
