"""End-to-end tests: generate a module, import it and validate data with it."""

import pytest
from pydantic import TypeAdapter, ValidationError

from openapi_codegen.shared.errors import UnbreakableCycleError, UnresolvedReferenceError
from openapi_codegen.validator_codegen import (
    FormatRegistry,
    GeneratorConfig,
    generate_from_source,
    generate_validators,
)


def json_content(schema):
    return {"content": {"application/json": {"schema": schema}}}


USERS_API = {
    "openapi": "3.0.3",
    "info": {"title": "Users", "version": "1.0.0"},
    "paths": {
        "/users": {
            "post": {
                "requestBody": json_content({
                    "type": "object",
                    "properties": {
                        "email": {"type": "string", "format": "email"},
                        "name": {"type": "string", "minLength": 1},
                    },
                    "required": ["email"],
                }),
                "responses": {
                    "200": json_content({"$ref": "#/components/schemas/User"}),
                    "404": json_content({"$ref": "#/components/schemas/Error"}),
                },
            },
        },
        "/users/{id}": {
            "parameters": [{"name": "id", "in": "path", "schema": {"type": "string", "format": "uuid"}}],
            "get": {
                "parameters": [
                    {"name": "expand", "in": "query", "schema": {"type": "boolean"}},
                    {"name": "X-Trace", "in": "header", "required": True, "schema": {"type": "string"}},
                ],
                "responses": {"200": json_content({"$ref": "#/components/schemas/User"})},
            },
            "delete": {"responses": {"204": {"description": "Deleted"}}},
        },
    },
    "components": {
        "schemas": {
            "User": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "email": {"type": "string", "format": "email"},
                    "age": {"type": "integer", "minimum": 0},
                },
                "required": ["id", "email"],
            },
            "Error": {
                "type": "object",
                "properties": {"message": {"type": "string"}},
                "required": ["message"],
                "additionalProperties": False,
            },
        },
    },
}


class TestUsersApi:
    @pytest.fixture
    def module(self, generate):
        return generate(USERS_API)

    def test_body_accepts_valid_email(self, module):
        body = module.Request["/users"]["POST"]["body"]
        assert body.model_validate({"email": "a@example.com"}).email == "a@example.com"

    def test_body_rejects_invalid_email(self, module):
        body = module.Request["/users"]["POST"]["body"]
        with pytest.raises(ValidationError):
            body.model_validate({"email": "not-an-email"})

    def test_body_requires_email(self, module):
        with pytest.raises(ValidationError):
            module.Request["/users"]["POST"]["body"].model_validate({"name": "Ann"})

    def test_responses_are_distinct(self, module):
        ok = module.Response["/users"]["POST"]["200"]
        not_found = module.Response["/users"]["POST"]["404"]

        assert ok is module.UserSchema
        assert not_found is module.ErrorSchema
        assert ok is not not_found
        with pytest.raises(ValidationError):
            not_found.model_validate({"id": "1", "email": "a@example.com"})

    def test_shared_component(self, module):
        assert module.Response["/users/{id}"]["GET"]["200"] is module.Response["/users"]["POST"]["200"]

    def test_parameters(self, module):
        request = module.Request["/users/{id}"]["GET"]
        assert set(request) == {"params", "query", "headers"}

        request["params"].model_validate({"id": "123e4567-e89b-12d3-a456-426614174000"})
        with pytest.raises(ValidationError):
            request["params"].model_validate({"id": "123"})
        with pytest.raises(ValidationError):
            request["params"].model_validate({})

        assert request["query"].model_validate({}).expand is None
        headers = request["headers"].model_validate({"X-Trace": "abc"})
        assert headers.X_Trace == "abc"

    def test_no_content_response(self, module):
        assert module.Response["/users/{id}"]["DELETE"]["204"] is None
        # Path-level parameters apply to every operation of the path
        assert set(module.Request["/users/{id}"]["DELETE"]) == {"params"}

    def test_lookup_completeness(self, module):
        routes = {(path, method) for path, methods in module.Response.items() for method in methods}
        assert routes == {("/users", "POST"), ("/users/{id}", "GET"), ("/users/{id}", "DELETE")}
        assert {(p, m) for p, methods in module.Request.items() for m in methods} == routes

    def test_exports(self, module):
        assert "Request" in module.__all__
        assert "UserSchema" in module.__all__
        for name in module.__all__:
            assert hasattr(module, name)

    def test_idempotent(self):
        assert generate_validators(USERS_API) == generate_validators(USERS_API)

    def test_valid_python_header(self):
        source = generate_validators(USERS_API)
        assert source.startswith('"""')
        assert "Do not edit manually." in source
        assert "from pydantic import" in source


class TestCreateUserScenario:
    DOCUMENT = {"paths": {"/users": {"post": {
        "requestBody": json_content({
            "type": "object",
            "properties": {"id": {"type": "string"}, "email": {"type": "string", "format": "email"}},
            "required": ["id", "email"],
            "example": {"id": "1", "email": "a@b.com"},
        }),
        "responses": {
            "200": json_content({
                "type": "object",
                "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
            }),
            "404": json_content({
                "type": "object",
                "properties": {"error": {
                    "type": "object",
                    "properties": {"code": {"const": "NOT_FOUND"}},
                    "required": ["code"],
                }},
                "required": ["error"],
            }),
        },
    }}}}

    def test_body(self, generate):
        module = generate(self.DOCUMENT)
        body = module.PostUsersBodySchema

        assert module.Request["/users"]["POST"]["body"] is body
        body.model_validate(self.DOCUMENT["paths"]["/users"]["post"]["requestBody"]["content"]["application/json"]["schema"]["example"])
        with pytest.raises(ValidationError):
            body.model_validate({"id": "1", "email": "not-an-email"})

    def test_responses(self, generate):
        module = generate(self.DOCUMENT)
        ok = module.Response["/users"]["POST"]["200"]
        not_found = module.Response["/users"]["POST"]["404"]

        assert ok is not not_found
        assert ok.model_validate({"id": "1", "name": "Ann"}).name == "Ann"
        assert not_found.model_validate({"error": {"code": "NOT_FOUND"}}).error.code == "NOT_FOUND"
        with pytest.raises(ValidationError):
            not_found.model_validate({"error": {"code": "GONE"}})


class TestSemantics:
    def test_optional_is_not_nullable(self, generate):
        module = generate({"components": {"schemas": {"Profile": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "nick": {"type": "string", "nullable": True},
            },
            "required": ["nick"],
        }}}})
        profile = module.ProfileSchema

        assert profile.model_validate({"nick": None}).nick is None
        assert profile.model_validate({"nick": "x", "name": "y"}).name == "y"
        with pytest.raises(ValidationError):
            profile.model_validate({"nick": "x", "name": None})
        with pytest.raises(ValidationError):
            profile.model_validate({})

    def test_null_type_in_list(self, generate):
        module = generate({"openapi": "3.1.0", "components": {"schemas": {
            "MaybeCount": {"type": ["integer", "null"]},
        }}})
        adapter = TypeAdapter(module.MaybeCountSchema)
        assert adapter.validate_python(None) is None
        assert adapter.validate_python(3) == 3

    def test_strict_primitives(self, generate):
        module = generate({"components": {"schemas": {"Item": {
            "type": "object",
            "properties": {
                "count": {"type": "integer"},
                "flag": {"type": "boolean"},
                "label": {"type": "string"},
                "ratio": {"type": "number"},
            },
        }}}})
        item = module.ItemSchema

        item.model_validate({"count": 1, "flag": True, "label": "x", "ratio": 0.5})
        for bad in ({"count": "1"}, {"flag": 1}, {"label": 5}, {"count": True}):
            with pytest.raises(ValidationError):
                item.model_validate(bad)

    def test_closed_and_open_objects(self, generate):
        module = generate({"components": {"schemas": {
            "Closed": {"type": "object", "properties": {"a": {"type": "string"}}, "additionalProperties": False},
            "Open": {"type": "object", "properties": {"a": {"type": "string"}}},
            "Typed": {"type": "object", "properties": {"a": {"type": "string"}}, "additionalProperties": {"type": "integer"}},
        }}})

        with pytest.raises(ValidationError):
            module.ClosedSchema.model_validate({"a": "x", "b": 1})
        assert module.OpenSchema.model_validate({"a": "x", "b": 1}).model_extra == {"b": 1}
        assert module.TypedSchema.model_validate({"b": 2}).model_extra == {"b": 2}
        with pytest.raises(ValidationError):
            module.TypedSchema.model_validate({"b": "two"})

    def test_enum(self, generate):
        module = generate({"components": {"schemas": {"Status": {"type": "string", "enum": ["active", "disabled"]}}}})
        adapter = TypeAdapter(module.StatusSchema)
        assert adapter.validate_python("active") == "active"
        with pytest.raises(ValidationError):
            adapter.validate_python("deleted")

    def test_array_constraints(self, generate):
        module = generate({"components": {"schemas": {
            "Tags": {"type": "array", "items": {"type": "string"}, "minItems": 1, "uniqueItems": True},
        }}})
        adapter = TypeAdapter(module.TagsSchema)
        assert adapter.validate_python(["a", "b"]) == ["a", "b"]
        for bad in ([], ["a", "a"], [1]):
            with pytest.raises(ValidationError):
                adapter.validate_python(bad)

    def test_one_of_keeps_first_matching_branch(self, generate):
        module = generate({"components": {"schemas": {
            "Id": {"oneOf": [{"type": "integer"}, {"type": "string"}]},
        }}})
        adapter = TypeAdapter(module.IdSchema)
        assert adapter.validate_python(1) == 1
        assert adapter.validate_python("1") == "1"
        with pytest.raises(ValidationError):
            adapter.validate_python(1.5)

    def test_all_of_merges_objects(self, generate):
        module = generate({"components": {"schemas": {
            "Base": {"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]},
            "Named": {"allOf": [
                {"$ref": "#/components/schemas/Base"},
                {"type": "object", "properties": {"name": {"type": "string"}}, "required": ["name"]},
            ]},
        }}})
        named = module.NamedSchema
        assert named.model_validate({"id": "1", "name": "x"}).name == "x"
        with pytest.raises(ValidationError):
            named.model_validate({"name": "x"})

    def test_all_of_intersection(self, generate):
        module = generate({"components": {"schemas": {
            "Small": {"allOf": [
                {"type": "integer", "minimum": 0},
                {"type": "integer", "maximum": 10},
            ]},
        }}})
        adapter = TypeAdapter(module.SmallSchema)
        assert adapter.validate_python(5) == 5
        for bad in (-1, 11, "5"):
            with pytest.raises(ValidationError):
                adapter.validate_python(bad)

    def test_untyped_numeric_constraints(self, generate):
        module = generate({"components": {"schemas": {"Positive": {"minimum": 0}}}})
        adapter = TypeAdapter(module.PositiveSchema)
        assert adapter.validate_python(3) == 3
        assert adapter.validate_python("x") == "x"
        assert adapter.validate_python(None) is None
        with pytest.raises(ValidationError):
            adapter.validate_python(-5)

    def test_untyped_string_constraints(self, generate):
        module = generate({"components": {"schemas": {"Short": {"format": "email", "maxLength": 3}}}})
        adapter = TypeAdapter(module.ShortSchema)
        assert adapter.validate_python(5) == 5
        with pytest.raises(ValidationError):
            adapter.validate_python("not-an-email-and-too-long")

    def test_all_of_with_untyped_branch(self, generate):
        module = generate({"components": {"schemas": {"Counter": {
            "type": "object",
            "properties": {"v": {"allOf": [{"type": "integer"}, {"minimum": 3}]}},
        }}}})
        assert module.CounterSchema.model_validate({"v": 4}).v == 4
        for bad in (1, "4"):
            with pytest.raises(ValidationError):
                module.CounterSchema.model_validate({"v": bad})

    def test_look_around_pattern(self, generate):
        module = generate({"components": {"schemas": {"Account": {
            "type": "object",
            "properties": {"login": {"type": "string", "pattern": "^(?!admin).*$"}},
        }}}})
        assert module.AccountSchema.model_validate({"login": "user"}).login == "user"
        with pytest.raises(ValidationError):
            module.AccountSchema.model_validate({"login": "admin1"})

    def test_fractional_integer_constraints(self, generate):
        module = generate({"components": {"schemas": {
            "Half": {"type": "integer", "minimum": 0.5, "exclusiveMaximum": 9.5},
            "Step": {"type": "integer", "multipleOf": 1.5},
        }}})
        half = TypeAdapter(module.HalfSchema)
        assert half.validate_python(1) == 1
        assert half.validate_python(9) == 9
        for bad in (0, 10):
            with pytest.raises(ValidationError):
                half.validate_python(bad)

        step = TypeAdapter(module.StepSchema)
        assert step.validate_python(3) == 3
        with pytest.raises(ValidationError):
            step.validate_python(4)

    def test_enum_values_keep_their_type(self, generate):
        module = generate({"components": {"schemas": {
            "Level": {"enum": [1, 2]},
            "Label": {"type": "string", "enum": ["a", 1]},
        }}})
        level = TypeAdapter(module.LevelSchema)
        assert level.validate_python(1) == 1
        for bad in (True, 3, "1"):
            with pytest.raises(ValidationError):
                level.validate_python(bad)

        label = TypeAdapter(module.LabelSchema)
        assert label.validate_python("a") == "a"
        with pytest.raises(ValidationError):
            label.validate_python(1)

    def test_unique_items_tell_booleans_from_numbers(self, generate):
        module = generate({"components": {"schemas": {"Values": {"type": "array", "uniqueItems": True}}}})
        adapter = TypeAdapter(module.ValuesSchema)
        assert adapter.validate_python([1, True]) == [1, True]
        with pytest.raises(ValidationError):
            adapter.validate_python([1, 1])

    def test_nullable_component_model(self, generate):
        module = generate({"components": {"schemas": {"User": {
            "type": "object",
            "properties": {"id": {"type": "string"}},
            "required": ["id"],
            "nullable": True,
        }}}})
        adapter = TypeAdapter(module.UserSchema)
        assert adapter.validate_python(None) is None
        assert adapter.validate_python({"id": "1"}) == module.UserValueSchema(id="1")
        assert not hasattr(module, "UserSchema_2")

    def test_property_count(self, generate):
        module = generate({"components": {"schemas": {"Patch": {
            "type": "object",
            "properties": {"a": {"type": "string"}, "b": {"type": "string"}},
            "minProperties": 1,
        }}}})
        with pytest.raises(ValidationError):
            module.PatchSchema.model_validate({})
        assert module.PatchSchema.model_validate({"a": "x"}).a == "x"


class TestRecursion:
    def test_recursive_tree(self, generate):
        module = generate({"components": {"schemas": {"Node": {
            "type": "object",
            "properties": {
                "value": {"type": "integer"},
                "children": {"type": "array", "items": {"$ref": "#/components/schemas/Node"}},
            },
            "required": ["value"],
        }}}})
        tree = {"value": 0}
        for depth in range(1, 50):
            tree = {"value": depth, "children": [tree]}

        node = module.NodeSchema.model_validate(tree)
        assert node.value == 49
        with pytest.raises(ValidationError):
            module.NodeSchema.model_validate({"value": 1, "children": [{"value": "x"}]})

    def test_mutual_recursion(self, generate):
        module = generate({"components": {"schemas": {
            "Person": {"type": "object", "properties": {"employer": {"$ref": "#/components/schemas/Company"}}},
            "Company": {"type": "object", "properties": {"owner": {"$ref": "#/components/schemas/Person"}}},
        }}})
        person = module.PersonSchema.model_validate({"employer": {"owner": {"employer": {}}}})
        assert isinstance(person.employer, module.CompanySchema)
        with pytest.raises(ValidationError):
            module.PersonSchema.model_validate({"employer": {"owner": "nobody"}})

    def test_recursive_array_alias(self, generate):
        module = generate({"components": {"schemas": {
            "Tree": {"type": "array", "items": {"$ref": "#/components/schemas/Tree"}},
        }}})
        adapter = TypeAdapter(module.TreeSchema)
        assert adapter.validate_python([[], [[]]]) == [[], [[]]]
        with pytest.raises(ValidationError):
            adapter.validate_python([1])

    def test_recursive_union(self, generate):
        module = generate({"components": {"schemas": {
            "Json": {"oneOf": [
                {"type": "string"},
                {"type": "array", "items": {"$ref": "#/components/schemas/Json"}},
            ]},
        }}})
        adapter = TypeAdapter(module.JsonSchema)
        assert adapter.validate_python(["a", ["b"]]) == ["a", ["b"]]
        with pytest.raises(ValidationError):
            adapter.validate_python([1])

    def test_unbreakable_cycle(self):
        document = {"components": {"schemas": {
            "A": {"oneOf": [{"$ref": "#/components/schemas/B"}, {"type": "string"}]},
            "B": {"oneOf": [{"$ref": "#/components/schemas/A"}, {"type": "integer"}]},
        }}}
        with pytest.raises(UnbreakableCycleError):
            generate_validators(document)


class TestDeduplication:
    def test_identical_inline_objects_share_a_declaration(self, generate):
        shape = {"type": "object", "properties": {"id": {"type": "string"}}}
        module = generate({"paths": {
            "/a": {"get": {"responses": {"200": json_content(dict(shape))}}},
            "/b": {"get": {"responses": {"200": json_content(dict(shape))}}},
        }})
        assert module.Response["/a"]["GET"]["200"] is module.Response["/b"]["GET"]["200"]

    def test_component_names_survive(self, generate):
        module = generate({"components": {"schemas": {"user_profile": {"type": "string"}}}})
        assert TypeAdapter(module.user_profileSchema).validate_python("x") == "x"


class TestConfiguration:
    def test_no_routes(self, generate):
        module = generate(USERS_API, GeneratorConfig(include_routes=False))
        assert not hasattr(module, "Request")
        assert not hasattr(module, "Response")
        assert hasattr(module, "UserSchema")

    def test_name_prefix(self, generate):
        module = generate(USERS_API, GeneratorConfig(name_prefix="Api"))
        assert module.Response["/users"]["POST"]["200"] is module.ApiUserSchema
        assert all(name.startswith("Api") for name in module.__all__ if name not in {"Request", "Response"})

    def test_custom_format(self, generate):
        formats = FormatRegistry()
        formats.register("PhoneNumber", ["phone"])
        config = GeneratorConfig(
            formats=formats,
            extra_imports=("from pydantic import StrictStr as PhoneNumber",),
        )
        module = generate({"components": {"schemas": {"Contact": {
            "type": "object",
            "properties": {"phone": {"type": "string", "format": "phone"}},
            "required": ["phone"],
        }}}}, config)

        assert module.ContactSchema.model_validate({"phone": "+100"}).phone == "+100"
        with pytest.raises(ValidationError):
            module.ContactSchema.model_validate({"phone": 100})

    def test_unresolved_reference(self):
        document = {"components": {"schemas": {"A": {"$ref": "#/components/schemas/Missing"}}}}
        with pytest.raises(UnresolvedReferenceError):
            generate_validators(document)


class TestGenerateFromSource:
    def test_external_references(self, tmp_path, load_module):
        (tmp_path / "models.yaml").write_text(
            "components:\n"
            "  schemas:\n"
            "    Pet:\n"
            "      type: object\n"
            "      properties:\n"
            "        name:\n"
            "          type: string\n"
            "      required: [name]\n",
            encoding="utf-8",
        )
        (tmp_path / "openapi.yaml").write_text(
            "openapi: 3.0.3\n"
            "paths:\n"
            "  /pets:\n"
            "    get:\n"
            "      responses:\n"
            "        '200':\n"
            "          content:\n"
            "            application/json:\n"
            "              schema:\n"
            "                type: array\n"
            "                items:\n"
            "                  $ref: 'models.yaml#/components/schemas/Pet'\n",
            encoding="utf-8",
        )
        module = load_module(generate_from_source(tmp_path / "openapi.yaml"))

        pets = TypeAdapter(module.Response["/pets"]["GET"]["200"])
        assert pets.validate_python([{"name": "Rex"}])[0].name == "Rex"
        with pytest.raises(ValidationError):
            pets.validate_python([{}])
        assert hasattr(module, "PetSchema")
