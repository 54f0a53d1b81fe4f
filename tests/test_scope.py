"""Tests for restrun/variables/scope.py and context.py.

Covers store precedence, lazy in-place resolution, cycle detection and the
per-request system variable cache.
"""

import random

import pytest

from restrun.errors import VariableCycleError
from restrun.variables import InPlaceStore, MappingStore, RequestScopeContext, ScopeChain


def make_chain(**kwargs) -> ScopeChain:
    kwargs.setdefault("environ", {})
    kwargs.setdefault("rng", random.Random(99))
    return ScopeChain(**kwargs)


# =============================================================================
# Precedence
# =============================================================================


class TestPrecedence:
    """Tests for the fixed store order of the scope chain."""

    def test_programmatic_beats_everything(self):
        """Programmatic values override in-place, env files and OS environment."""
        chain = make_chain(
            programmatic={"host": "programmatic"},
            in_place={"host": "in-place"},
            private_env={"host": "private"},
            public_env={"host": "public"},
            environ={"host": "os"},
        )
        assert chain.lookup("host") == "programmatic"

    def test_in_place_beats_env_files(self):
        chain = make_chain(
            in_place={"host": "in-place"},
            private_env={"host": "private"},
            public_env={"host": "public"},
        )
        assert chain.lookup("host") == "in-place"

    def test_private_beats_public(self):
        chain = make_chain(private_env={"token": "private"}, public_env={"token": "public"})
        assert chain.lookup("token") == "private"

    def test_public_beats_os_environment(self):
        chain = make_chain(public_env={"USER": "public"}, environ={"USER": "os"})
        assert chain.lookup("USER") == "public"

    def test_os_environment_is_last_resort(self):
        chain = make_chain(environ={"USER": "os"})
        assert chain.lookup("USER") == "os"

    def test_unknown_name(self):
        assert make_chain().lookup("missing") is None

    def test_plain_name_with_arguments_is_unresolved(self):
        """Only system variables take arguments."""
        chain = make_chain(programmatic={"host": "x"})
        assert chain.resolve("host", ("extra",)) is None

    def test_store_order(self):
        chain = make_chain()
        assert [store.name for store in chain.stores] == [
            "programmatic",
            "in-place",
            "private environment",
            "public environment",
            "os environment",
        ]


# =============================================================================
# Substitution through the chain
# =============================================================================


class TestChainSubstitution:
    """Tests for ScopeChain.substitute."""

    def test_undefined_reference_is_kept_verbatim(self):
        """Unresolvable placeholders stay in the output unchanged."""
        chain = make_chain()
        assert chain.substitute("GET {{ missing }}/x") == "GET {{ missing }}/x"

    def test_programmatic_overrides_in_place_in_text(self):
        chain = make_chain(programmatic={"id": "7"}, in_place={"id": "1"})
        assert chain.substitute("/items/{{id}}") == "/items/7"

    def test_in_place_references_environment(self):
        """In-place expressions resolve through the whole chain."""
        chain = make_chain(
            in_place={"url": "https://{{host}}/api"},
            public_env={"host": "example.com"},
        )
        assert chain.substitute("{{url}}/users") == "https://example.com/api/users"

    def test_values_are_not_rescanned(self):
        """A substituted value containing braces is inserted literally."""
        chain = make_chain(programmatic={"a": "{{b}}", "b": "nope"})
        assert chain.substitute("{{a}}") == "{{b}}"


# =============================================================================
# In-place variables
# =============================================================================


class TestInPlaceStore:
    """Tests for lazy, memoized in-place resolution."""

    def test_uuid_definition_is_stable_across_requests(self):
        """@v = {{$uuid}} resolves once for the whole file."""
        chain = make_chain(in_place={"v": "{{$uuid}}"})
        first = chain.substitute("{{v}}", RequestScopeContext(label="r1"))
        second = chain.substitute("{{v}}", RequestScopeContext(label="r2"))
        assert first == second
        assert first != "{{$uuid}}"

    def test_definitions_share_file_context(self):
        """Identical system invocations in different definitions agree."""
        chain = make_chain(in_place={"a": "{{$uuid}}", "b": "{{$uuid}}"})
        assert chain.lookup("a") == chain.lookup("b")

    def test_resolution_is_lazy(self):
        """Nothing is resolved until first referenced."""
        chain = make_chain(in_place={"a": "{{$uuid}}"})
        assert chain.in_place._cache == {}
        chain.lookup("a")
        assert "a" in chain.in_place._cache

    def test_runtime_cycle_detection(self):
        chain = make_chain(in_place={"a": "{{b}}", "b": "{{a}}"})
        with pytest.raises(VariableCycleError) as exc_info:
            chain.lookup("a")
        assert exc_info.value.chain == ["a", "b", "a"]

    def test_static_cycle_detection(self):
        """validate() finds cycles without resolving anything."""
        chain = make_chain(in_place={"a": "x{{b}}", "b": "{{c}}", "c": "{{a}}"})
        with pytest.raises(VariableCycleError) as exc_info:
            chain.validate()
        assert "a → b → c → a" in str(exc_info.value)

    def test_self_reference_is_a_cycle(self):
        chain = make_chain(in_place={"a": "{{a}}"})
        with pytest.raises(VariableCycleError):
            chain.validate()

    def test_programmatic_value_breaks_cycle(self):
        """A reference served by a programmatic value is no edge."""
        chain = make_chain(programmatic={"b": "fixed"}, in_place={"a": "{{b}}", "b": "{{a}}"})
        chain.validate()
        assert chain.lookup("a") == "fixed"

    def test_acyclic_chain_validates(self):
        chain = make_chain(in_place={"a": "{{b}}", "b": "{{c}}", "c": "leaf"})
        chain.validate()
        assert chain.lookup("a") == "leaf"

    def test_push_pop(self):
        store = InPlaceStore({"a": "1"})
        store.push("a")
        with pytest.raises(VariableCycleError):
            store.push("a")
        assert store.pop() == "a"


class TestMappingStore:
    """Tests for MappingStore."""

    def test_values_are_stringified(self):
        store = MappingStore("test", {"n": 5})
        assert store.lookup("n", make_chain()) == "5"

    def test_missing(self):
        assert MappingStore("test").lookup("n", make_chain()) is None


# =============================================================================
# Request-scoped system variables
# =============================================================================


class TestRequestScopeContext:
    """Tests for per-request caching of system variable values."""

    def test_same_invocation_agrees_within_request(self):
        chain = make_chain()
        context = RequestScopeContext(label="one")
        text = chain.substitute("{{$uuid}} {{$uuid}}", context)
        first, second = text.split()
        assert first == second

    def test_sibling_requests_differ(self):
        chain = make_chain()
        first = chain.substitute("{{$uuid}}", RequestScopeContext(label="one"))
        second = chain.substitute("{{$uuid}}", RequestScopeContext(label="two"))
        assert first != second

    def test_arguments_are_part_of_the_key(self):
        """Different arguments are different invocations."""
        chain = make_chain()
        context = RequestScopeContext()
        chain.substitute("{{$randomInt 0 1000000}}", context)
        chain.substitute("{{$randomInt 0 10}}", context)
        assert ("$randomInt", ("0", "1000000")) in context
        assert ("$randomInt", ("0", "10")) in context

    def test_unresolved_values_are_not_cached(self):
        chain = make_chain()
        context = RequestScopeContext()
        assert chain.substitute("{{$randomInt 9 1}}", context) == "{{$randomInt 9 1}}"
        assert context.values == {}

    def test_without_context_every_call_is_fresh(self):
        chain = make_chain()
        assert chain.substitute("{{$uuid}}") != chain.substitute("{{$uuid}}")
