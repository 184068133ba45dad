"""Tests for ruleloom.runner.runner — dispatch, matching, exceptions, aggregation."""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Any

import pytest

from ruleloom.document import STDIN, Document, DocumentInventory
from ruleloom.results import Position, Severity
from ruleloom.ruleset.functions import FunctionResult, print_value, typed_enum
from ruleloom.ruleset.rule import PlainRule, PrecompiledRule, compile_rule
from ruleloom.runner.runner import (
    EXCEPT_BUT_STDIN_CODE,
    run_rules,
    run_rules_sync,
    select_rules,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from ruleloom.results import Diagnostic
    from ruleloom.ruleset.rule import Rule

STATUS_PATH = ("components", "schemas", "Pet", "properties", "status")


def _by_name(*rules: Rule) -> dict[str, Rule]:
    return {rule.name: rule for rule in rules}


def _codes(diagnostics: Iterable[Diagnostic]) -> list[str]:
    return sorted(d.code for d in diagnostics)


def echo_value(value: Any, options: dict[str, Any], context: Any) -> list[FunctionResult]:
    return [FunctionResult(print_value(value))]


def broken(value: Any, options: dict[str, Any], context: Any) -> None:
    raise RuntimeError("boom")


@pytest.fixture()
def stdin_inventory(petstore_yaml: str) -> DocumentInventory:
    return DocumentInventory(Document.parse(petstore_yaml, source=STDIN))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestSelectRules:
    def test_buckets(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        resolved = compile_rule(make_rule("resolved", "$.info"))
        unresolved = compile_rule(make_rule("unresolved", "$.info", resolved=False))
        plain = make_rule("plain", "$.tags[0:2]")

        buckets = select_rules([resolved, unresolved, plain], petstore_inventory)

        assert [r.name for r in buckets.resolved] == ["resolved"]
        assert [r.name for r in buckets.unresolved] == ["unresolved"]
        assert [r.name for r in buckets.plain] == ["plain"]
        assert len(buckets) == 3

    def test_disabled_and_format_mismatch_excluded(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rules = [
            make_rule("disabled", "$", enabled=False),
            make_rule("oas2-only", "$", formats=frozenset({"oas2"})),
            make_rule("oas3", "$", formats=frozenset({"oas3", "oas2"})),
            make_rule("any", "$"),
        ]
        buckets = select_rules(rules, petstore_inventory)
        assert [r.name for r in buckets.plain] == ["oas3", "any"]

    def test_hookup_once_per_run(
        self,
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls: Counter[str] = Counter()
        original = PrecompiledRule.hookup

        def counting(self: PrecompiledRule, callback: Any) -> None:
            calls[self.name] += 1
            original(self, callback)

        monkeypatch.setattr(PrecompiledRule, "hookup", counting)
        rules = _by_name(
            compile_rule(make_rule("a", "$.info")),
            compile_rule(make_rule("b", ("$.info", "$..title"), resolved=False)),
        )
        run_rules_sync(petstore_inventory, rules)
        assert calls == {"a": 1, "b": 1}


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatching:
    def test_precompiled_node_linted_once(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rule = compile_rule(make_rule("r", ("$.info", "$..info", "$.*")))
        assert isinstance(rule, PrecompiledRule)
        results = run_rules_sync(petstore_inventory, _by_name(rule))
        assert Counter(d.path for d in results)[("info",)] == 1

    def test_plain_node_linted_once(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rule = make_rule("r", ("$.info", "$.info"))
        results = run_rules_sync(petstore_inventory, _by_name(rule))
        assert [d.path for d in results] == [("info",)]

    def test_root_given_skips_query(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        def no_query(expression: str, tree: Any) -> list[Any]:
            raise AssertionError(f"query called for {expression}")

        results = run_rules_sync(
            petstore_inventory, _by_name(make_rule("root", "$")), path_query=no_query
        )
        assert [(d.code, d.path) for d in results] == [("root", ())]

    def test_injected_path_query(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        seen: list[str] = []

        def fake_query(expression: str, tree: Any) -> list[Any]:
            seen.append(expression)
            return [(("info", "title"), "Pets")]

        rule = make_rule("r", "$.info[?(@.title)]", echo_value)
        results = run_rules_sync(petstore_inventory, _by_name(rule), path_query=fake_query)
        assert seen == ["$.info[?(@.title)]"]
        assert [(d.path, d.message) for d in results] == [(("info", "title"), '"Pets"')]

    def test_resolved_and_unresolved_trees(self, make_rule: Callable[..., PlainRule]) -> None:
        doc = Document.parse("a:\n  $ref: '#/b'\nb: 1\n", source="doc.yaml")
        inventory = DocumentInventory(doc, resolved={"a": 1, "b": 1})
        rules = _by_name(
            compile_rule(make_rule("resolved", "$.a", echo_value)),
            compile_rule(make_rule("unresolved", "$.a", echo_value, resolved=False)),
            make_rule("plain-unresolved", "$.a", echo_value, resolved=False),
        )
        messages = {d.code: d.message for d in run_rules_sync(inventory, rules)}
        assert messages == {
            "resolved": "1",
            "unresolved": '{"$ref": "#/b"}',
            "plain-unresolved": '{"$ref": "#/b"}',
        }

    def test_results_are_deterministic(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rules = _by_name(
            compile_rule(make_rule("typed-enum", "$..properties.*", typed_enum)),
            make_rule("info", "$.info"),
            compile_rule(make_rule("titles", "$..title")),
        )

        def summary() -> Counter[tuple[Any, ...]]:
            return Counter(
                (d.code, d.path, d.message) for d in run_rules_sync(petstore_inventory, rules)
            )

        assert summary() == summary()


# ---------------------------------------------------------------------------
# Typed enum, end to end
# ---------------------------------------------------------------------------


class TestTypedEnum:
    def _assert_four(self, results: list[Diagnostic]) -> None:
        assert len(results) == 4
        by_path = {d.path: d for d in results}
        assert set(by_path) == {(*STATUS_PATH, "enum", i) for i in (1, 3, 4, 5)}

        first = by_path[(*STATUS_PATH, "enum", 1)]
        assert first.code == "typed-enum"
        assert first.severity is Severity.ERROR
        assert first.message == 'Enum value "abc" must be "integer".'
        assert first.range.start == Position(13, 14)
        assert first.range.end == Position(13, 17)
        assert first.source == "petstore.yaml"

    def test_precompiled(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rule = compile_rule(
            make_rule("typed-enum", "$..properties.*", typed_enum, severity=Severity.ERROR)
        )
        assert isinstance(rule, PrecompiledRule)
        self._assert_four(run_rules_sync(petstore_inventory, _by_name(rule)))

    def test_plain(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rule = make_rule(
            "typed-enum",
            "$.components.schemas.Pet.properties.status",
            typed_enum,
            severity=Severity.ERROR,
        )
        self._assert_four(run_rules_sync(petstore_inventory, _by_name(rule)))


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestExceptions:
    def test_stdin_emits_single_warning_and_no_suppression(
        self, stdin_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rules = _by_name(
            compile_rule(make_rule("a", "$.info")),
            make_rule("b", "$.info"),
        )
        results = run_rules_sync(
            stdin_inventory, rules, {"a": ["#/info"], "b": ["#/info"]}
        )

        assert _codes(results) == ["a", "b", EXCEPT_BUT_STDIN_CODE]
        [warning] = [d for d in results if d.code == EXCEPT_BUT_STDIN_CODE]
        assert warning.severity is Severity.WARNING
        assert warning.path == ()
        assert "stdin" in warning.message
        assert warning.range == stdin_inventory.document.full_range()

    def test_stdin_without_exceptions_has_no_warning(
        self, stdin_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        results = run_rules_sync(stdin_inventory, _by_name(make_rule("a", "$.info")), {})
        assert _codes(results) == ["a"]

    def test_suppression_applies_to_both_strategies(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rules = _by_name(
            compile_rule(make_rule("a", "$.*")),
            make_rule("b", "$.info"),
        )
        results = run_rules_sync(petstore_inventory, rules, {"a": ["#/info"], "b": ["#/info"]})
        assert ("a", ("info",)) not in {(d.code, d.path) for d in results}
        assert "b" not in _codes(results)
        assert ("a", ("openapi",)) in {(d.code, d.path) for d in results}

    def test_suppressed_enum_entry(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        rule = compile_rule(make_rule("typed-enum", "$..properties.*", typed_enum))
        exceptions = {
            "typed-enum": ["#/components/schemas/Pet/properties/status/enum/1"],
        }
        results = run_rules_sync(petstore_inventory, _by_name(rule), exceptions)
        assert len(results) == 3
        assert (*STATUS_PATH, "enum", 1) not in {d.path for d in results}

    def test_sourced_exceptions_resolved_against_base_dir(
        self, petstore_file: Path, make_rule: Callable[..., PlainRule]
    ) -> None:
        inventory = DocumentInventory(Document.from_path(petstore_file))
        rules = _by_name(make_rule("a", "$.info"), make_rule("b", "$.info"))
        exceptions = {"a": ["petstore.yaml#/info"], "b": ["other.yaml#/info"]}
        results = run_rules_sync(
            inventory, rules, exceptions, base_dir=petstore_file.parent
        )
        assert _codes(results) == ["b"]

    def test_exceptions_for_disabled_rules_are_not_reported_unknown(
        self,
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        rules = _by_name(make_rule("off", "$.info", enabled=False))
        with caplog.at_level(logging.WARNING):
            results = run_rules_sync(petstore_inventory, rules, {"off": ["#/info"]})
        assert results == []
        assert "unknown rule" not in caplog.text


# ---------------------------------------------------------------------------
# Failures and asynchronous checks
# ---------------------------------------------------------------------------


class TestFailures:
    def test_plain_rule_failure_is_isolated(
        self,
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        rules = _by_name(make_rule("broken", "$.info", broken), make_rule("ok", "$.info"))
        with caplog.at_level(logging.ERROR, logger="ruleloom.runner.runner"):
            results = run_rules_sync(petstore_inventory, rules)
        assert _codes(results) == ["ok"]
        assert "Rule 'broken' failed" in caplog.text

    def test_precompiled_rule_failure_is_isolated(
        self,
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        rules = _by_name(
            compile_rule(make_rule("broken", "$.info", broken)),
            compile_rule(make_rule("ok", "$.info")),
        )
        with caplog.at_level(logging.ERROR, logger="ruleloom.runner.traversal"):
            results = run_rules_sync(petstore_inventory, rules)
        assert _codes(results) == ["ok"]
        assert "Rule 'broken' failed" in caplog.text


class TestAsync:
    @pytest.mark.asyncio
    async def test_async_functions_are_awaited(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        async def later(value: Any, options: dict[str, Any], context: Any) -> Any:
            return [FunctionResult("later")]

        rules = _by_name(
            compile_rule(make_rule("compiled", "$.info", later)),
            make_rule("plain", "$.info", later),
        )
        results = await run_rules(petstore_inventory, rules)
        assert sorted((d.code, d.message) for d in results) == [
            ("compiled", "later"),
            ("plain", "later"),
        ]

    @pytest.mark.asyncio
    async def test_async_failure_keeps_other_results(
        self,
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        async def fails(value: Any, options: dict[str, Any], context: Any) -> Any:
            raise RuntimeError("remote check down")

        async def later(value: Any, options: dict[str, Any], context: Any) -> Any:
            return [FunctionResult("later")]

        rules = _by_name(
            compile_rule(make_rule("fails", "$.info", fails)),
            compile_rule(make_rule("async-ok", "$.info", later)),
            make_rule("sync-ok", "$.info"),
        )
        with caplog.at_level(logging.ERROR, logger="ruleloom.runner.runner"):
            results = await run_rules(petstore_inventory, rules)
        assert _codes(results) == ["async-ok", "sync-ok"]
        assert "remote check down" in caplog.text

    @pytest.mark.asyncio
    async def test_async_suppression(
        self, petstore_inventory: DocumentInventory, make_rule: Callable[..., PlainRule]
    ) -> None:
        async def later(value: Any, options: dict[str, Any], context: Any) -> Any:
            return [FunctionResult("later")]

        rules = _by_name(compile_rule(make_rule("a", "$.info", later)))
        results = await run_rules(petstore_inventory, rules, {"a": ["#/info"]})
        assert results == []


class TestRuleRemoval:
    @pytest.mark.parametrize(
        "change",
        [{"enabled": False}, {"formats": frozenset({"oas2", "asyncapi2"})}],
    )
    def test_removed_rule_leaves_others_unchanged(
        self,
        change: dict[str, Any],
        petstore_inventory: DocumentInventory,
        make_rule: Callable[..., PlainRule],
    ) -> None:
        typed = compile_rule(make_rule("typed-enum", "$..properties.*", typed_enum))
        kept = make_rule("info", "$.info")

        def run(*rules: Rule) -> Counter[tuple[Any, ...]]:
            return Counter(
                (d.code, d.path, d.message)
                for d in run_rules_sync(petstore_inventory, _by_name(*rules))
            )

        before = run(typed, kept)
        removed = compile_rule(make_rule("typed-enum", "$..properties.*", typed_enum, **change))
        after = run(removed, kept)

        assert after == Counter({k: v for k, v in before.items() if k[0] != "typed-enum"})
        assert sum(before.values()) == 5
