"""Tests for workflow execution against a recording backend."""

import json
import os
import sys
from unittest.mock import AsyncMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from rpa_dfs.core.errors import (
    BackendActionError,
    FrameworkError,
    InvalidNodeTypeError,
    IteratorSourceError,
)
from rpa_dfs.traverser.context import UserContext
from rpa_dfs.traverser.executor import AutomationBackend, Executor
from rpa_dfs.traverser.parser import WorkflowParser
from rpa_dfs.traverser.resolver import TemplateResolver
from rpa_dfs.traverser.selectors import SelectorRegistry
from rpa_dfs.traverser.types import Node, Workflow

from mock_backend import RecordingBackend


def load(graph):
    return WorkflowParser().load(json.dumps({
        "graph": graph,
        "metadata": {"name": "test", "version": "1.0"},
    }))


def chain(*nodes):
    """Link node dicts through ``next``, first to last."""
    head = None
    for node in reversed(nodes):
        node = dict(node)
        if head is not None:
            node["next"] = head
        head = node
    return head


def fill(selector, value):
    return {"nodeType": "fillField", "selector": selector, "value": value}


def click(selector):
    return {"nodeType": "clickButton", "selector": selector}


async def run(graph, data=None, backend=None, **kwargs):
    backend = backend or RecordingBackend()
    context = UserContext(data or {})
    executor = Executor(load(graph), context, backend, **kwargs)
    await executor.execute()
    return backend, context, executor


class TestActions:
    """Test effectful nodes."""

    @pytest.mark.asyncio
    async def test_form_chain_order(self):
        """A navigate, two fills and a click are issued once each, in order."""
        graph = chain(
            {"nodeType": "moveToPage", "url": "https://{{host}}/signup"},
            fill("#name", "{{name}}"),
            fill("#email", "{{email}}"),
            click("#submit"),
        )

        backend, _, executor = await run(graph, {
            "host": "example.com",
            "name": "Ada",
            "email": "ada@example.com",
        })

        assert backend.calls == [
            ("navigate_to", "https://example.com/signup"),
            ("fill_field", "#name", "Ada"),
            ("fill_field", "#email", "ada@example.com"),
            ("click_element", "#submit"),
        ]
        assert executor.actions_executed == 4
        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_selector_constants_and_files(self):
        graph = chain(
            click("LOGIN_SUBMIT"),
            {"nodeType": "sendFile", "selector": "FILE_INPUT", "filePath": "/data/{{doc}}"},
        )

        backend, _, _ = await run(graph, {"doc": "cv.pdf"})

        assert backend.calls == [
            ("click_element", "#loginButton"),
            ("send_file", "input[type='file']", "/data/cv.pdf"),
        ]

    @pytest.mark.asyncio
    async def test_custom_selector_registry(self):
        registry = SelectorRegistry({"SAVE_BUTTON": "#save"})
        backend, _, _ = await run(click("SAVE_BUTTON"), selectors=registry)
        assert backend.calls == [("click_element", "#save")]

    @pytest.mark.asyncio
    async def test_unresolved_placeholder_is_sent_verbatim(self):
        backend, _, executor = await run(fill("#x", "{{nope}}"))

        assert backend.calls == [("fill_field", "#x", "{{nope}}")]
        assert executor.resolver.diagnostics[0].kind == "resolution_miss"

    @pytest.mark.asyncio
    async def test_backend_failure_aborts_run(self):
        backend = RecordingBackend()
        backend.set_failure_for("fill_field", "element not found")
        graph = chain(
            {"nodeType": "moveToPage", "url": "https://example.com"},
            fill("#missing", "x"),
            click("#never"),
        )

        with pytest.raises(BackendActionError) as exc:
            await run(graph, backend=backend)

        assert "fillField failed" in str(exc.value)
        assert "element not found" in exc.value.message
        assert exc.value.node_type == "fillField"
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert backend.calls_of("navigate_to") == [("navigate_to", "https://example.com")]
        assert backend.calls_of("click_element") == []
        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_close_failure_is_not_raised(self):
        backend = RecordingBackend()
        backend.set_failure_for("close", "already gone")

        await run(click("#a"), backend=backend)

        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_wait_suspends_for_duration(self):
        graph = chain(click("#a"), {"nodeType": "wait", "duration": 250}, click("#b"))

        with patch("rpa_dfs.traverser.executor.asyncio.sleep", new_callable=AsyncMock) as sleep:
            backend, _, _ = await run(graph)

        sleep.assert_awaited_once_with(0.25)
        assert [c[1] for c in backend.calls] == ["#a", "#b"]

    @pytest.mark.asyncio
    async def test_long_chain(self):
        graph = None
        for i in range(3000):
            graph = Node(node_type="clickButton", selector=f"#b{i}", next=graph)

        backend = RecordingBackend()
        executor = Executor(Workflow(graph=graph), UserContext(), backend)
        await executor.execute()

        assert len(backend.calls) == 3000
        assert backend.calls[0] == ("click_element", "#b2999")

    @pytest.mark.asyncio
    async def test_unknown_node_type_at_runtime(self):
        backend = RecordingBackend()
        executor = Executor(Workflow(graph=Node(node_type="teleport")), UserContext(), backend)

        with pytest.raises(InvalidNodeTypeError):
            await executor.execute()
        assert backend.close_count == 1

    def test_recording_backend_satisfies_protocol(self):
        assert isinstance(RecordingBackend(), AutomationBackend)


class TestBranching:
    """Test conditional and question nodes."""

    @pytest.mark.asyncio
    async def test_minor_takes_no_branch(self):
        graph = {
            "nodeType": "moveToPage",
            "url": "{{user.website}}",
            "next": {
                "nodeType": "conditional",
                "conditionExpression": "{{user.age}} >= 18",
                "branches": {
                    "yes": fill("#age-category", "adult"),
                    "no": fill("#age-category", "minor"),
                },
            },
        }

        backend, _, _ = await run(graph, {"user": {"age": 16}})

        assert backend.calls_of("fill_field") == [("fill_field", "#age-category", "minor")]

    @pytest.mark.asyncio
    async def test_adult_with_dotted_paths(self):
        graph = {
            "nodeType": "conditional",
            "conditionExpression": "{{user.age}} >= 18",
            "branches": {
                "yes": fill("#age-category", "adult"),
                "no": fill("#age-category", "minor"),
            },
        }

        backend, _, _ = await run(graph, {"user": {"age": 42}}, dotted_paths=True)

        assert backend.calls == [("fill_field", "#age-category", "adult")]

    @pytest.mark.asyncio
    async def test_untaken_branch_has_no_effects(self):
        graph = {
            "nodeType": "conditional",
            "conditionExpression": "{{plan}} == pro",
            "branches": {
                "yes": chain(click("#pro"), fill("#seats", "10")),
                "no": chain(click("#free")),
            },
        }

        backend, _, _ = await run(graph, {"plan": "pro"})

        assert backend.calls == [("click_element", "#pro"), ("fill_field", "#seats", "10")]

    @pytest.mark.asyncio
    async def test_missing_branch_ends_path(self):
        graph = {
            "nodeType": "conditional",
            "conditionExpression": "1 > 0",
            "branches": {"no": click("#never")},
        }

        backend, _, _ = await run(graph)

        assert backend.calls == []
        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_condition_goes_no(self):
        graph = {
            "nodeType": "conditional",
            "conditionExpression": "{{flag}}",
            "branches": {"yes": click("#yes"), "no": click("#no")},
        }

        backend, _, executor = await run(graph, {"flag": True})

        assert backend.calls == [("click_element", "#no")]
        assert executor.resolver.diagnostics[-1].kind == "condition_unparseable"

    @pytest.mark.asyncio
    async def test_question_node(self):
        graph = {
            "nodeType": "question",
            "check": {"dataPath": "country", "operator": "equals", "expectedValue": "DE"},
            "branches": {"yes": click("#eu"), "no": click("#other")},
        }

        backend, _, _ = await run(graph, {"country": "DE"})
        assert backend.calls == [("click_element", "#eu")]

        backend, _, _ = await run(graph, {})
        assert backend.calls == [("click_element", "#other")]


class TestSequence:
    """Test sequence nodes."""

    @pytest.mark.asyncio
    async def test_children_run_with_their_own_next(self):
        graph = {
            "nodeType": "sequence",
            "sequence": [
                chain(click("#a1"), click("#a2")),
                chain(click("#b1"), click("#b2")),
            ],
            "next": click("#after"),
        }

        backend, _, _ = await run(graph)

        assert [c[1] for c in backend.calls] == ["#a1", "#a2", "#b1", "#b2", "#after"]

    @pytest.mark.asyncio
    async def test_child_failure_aborts(self):
        backend = RecordingBackend()
        backend.set_failure_for("click_element", "detached")
        graph = {
            "nodeType": "sequence",
            "sequence": [fill("#a", "1"), click("#b"), fill("#c", "3")],
            "next": fill("#after", "x"),
        }

        with pytest.raises(BackendActionError) as exc:
            await run(graph, backend=backend)

        assert exc.value.message == "sequence item 2 failed: clickButton failed: detached"
        assert backend.calls_of("fill_field") == [("fill_field", "#a", "1")]
        assert backend.close_count == 1


class TestForEach:
    """Test forEach loops."""

    @pytest.mark.asyncio
    async def test_runs_once_per_element(self):
        graph = {
            "nodeType": "forEach",
            "dataSourceIteratorParam": "user",
            "next": chain(fill("#name", "{{user}}"), click("#add")),
        }

        backend, context, _ = await run(graph, {"user": ["ada", "grace", "linus"]})

        assert backend.calls_of("fill_field") == [
            ("fill_field", "#name", "ada"),
            ("fill_field", "#name", "grace"),
            ("fill_field", "#name", "linus"),
        ]
        assert len(backend.calls_of("click_element")) == 3
        assert context.has("user")
        assert context.get("user") is None

    @pytest.mark.asyncio
    async def test_element_bound_during_iteration(self):
        seen = []

        class Observing(RecordingBackend):
            async def click_element(self, selector):
                seen.append(context.get("row"))
                await super().click_element(selector)

        context = UserContext({"row": [{"id": 1}, {"id": 2}]})
        graph = {"nodeType": "forEach", "dataSourceIteratorParam": "row", "next": click("#go")}
        await Executor(load(graph), context, Observing()).execute()

        assert seen == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_templates_read_the_loop_binding(self):
        graph = {"nodeType": "forEach", "dataSourceIteratorParam": "u", "next": fill("#n", "{{u}}")}
        backend, context, executor = await run(graph, {"u": ["a", "b"]})

        assert executor.resolver.context is context
        assert backend.calls_of("fill_field") == [
            ("fill_field", "#n", "a"),
            ("fill_field", "#n", "b"),
        ]

    def test_resolver_cannot_be_injected(self):
        workflow = load(click("#x"))
        resolver = TemplateResolver(UserContext({"u": ["a", "b"]}))

        with pytest.raises(TypeError):
            Executor(workflow, UserContext({}), RecordingBackend(), resolver=resolver)

    @pytest.mark.asyncio
    async def test_empty_list(self):
        graph = {"nodeType": "forEach", "dataSourceIteratorParam": "rows", "next": click("#x")}
        backend, context, _ = await run(graph, {"rows": []})
        assert backend.calls == []
        assert context.get("rows") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [{}, {"rows": "not a list"}, {"rows": {"a": 1}}])
    async def test_source_must_be_list(self, data):
        backend = RecordingBackend()
        graph = {"nodeType": "forEach", "dataSourceIteratorParam": "rows", "next": click("#x")}

        with pytest.raises(IteratorSourceError):
            await run(graph, data, backend=backend)

        assert backend.calls == []
        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_failure_carries_iteration_index(self):
        backend = RecordingBackend()
        backend.set_failure_for("click_element", "gone")
        graph = {"nodeType": "forEach", "dataSourceIteratorParam": "rows", "next": click("#x")}
        context = UserContext({"rows": ["a", "b"]})

        with pytest.raises(BackendActionError) as exc:
            await Executor(load(graph), context, backend).execute()

        assert exc.value.message == "forEach item 0 failed: clickButton failed: gone"
        assert isinstance(exc.value, FrameworkError)
        assert context.get("rows") is None
        assert backend.close_count == 1

    @pytest.mark.asyncio
    async def test_loop_terminates_path(self):
        """Nothing after the loop body runs once iteration ends."""
        graph = {
            "nodeType": "sequence",
            "sequence": [
                {"nodeType": "forEach", "dataSourceIteratorParam": "n", "next": click("#item")},
            ],
            "next": click("#done"),
        }

        backend, _, _ = await run(graph, {"n": [1, 2]})

        assert [c[1] for c in backend.calls] == ["#item", "#item", "#done"]
