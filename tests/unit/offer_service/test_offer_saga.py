"""
Saga Unit Tests

Usage:
    pytest tests/unit/offer_service/test_offer_saga.py -v
"""
import pytest

from microservices.offer_service.saga import Saga

pytestmark = [pytest.mark.unit]


class Recorder:
    def __init__(self):
        self.calls = []

    def action(self, name, result=None, error=None):
        async def _run(ctx):
            self.calls.append(name)
            if error:
                raise error
            return result
        return _run

    def compensation(self, name, error=None):
        async def _run(ctx):
            self.calls.append(f"undo:{name}")
            if error:
                raise error
        return _run


@pytest.mark.asyncio
class TestSaga:
    """Sequential steps with reverse-order compensation"""

    async def test_results_stored_by_step_name(self):
        rec = Recorder()
        saga = Saga("ok")
        saga.add_step("a", rec.action("a", result=1))
        saga.add_step("b", rec.action("b", result=2))

        ctx = await saga.execute()

        assert ctx["a"] == 1 and ctx["b"] == 2
        assert saga.completed_steps == ["a", "b"]
        assert rec.calls == ["a", "b"]

    async def test_failure_compensates_in_reverse(self):
        rec = Recorder()
        saga = Saga("fail")
        saga.add_step("a", rec.action("a"), rec.compensation("a"))
        saga.add_step("b", rec.action("b"), rec.compensation("b"))
        saga.add_step("c", rec.action("c", error=ValueError("boom")), rec.compensation("c"))
        saga.add_step("d", rec.action("d"))

        with pytest.raises(ValueError, match="boom"):
            await saga.execute()

        assert rec.calls == ["a", "b", "c", "undo:b", "undo:a"]
        assert isinstance(saga.context["error"], ValueError)

    async def test_compensate_on_failure_includes_failed_step(self):
        rec = Recorder()
        saga = Saga("partial")
        saga.add_step("a", rec.action("a"), rec.compensation("a"))
        saga.add_step("b", rec.action("b", error=RuntimeError("half done")), rec.compensation("b"),
                      compensate_on_failure=True)

        with pytest.raises(RuntimeError):
            await saga.execute()

        assert rec.calls == ["a", "b", "undo:b", "undo:a"]

    async def test_compensation_error_does_not_mask_original(self):
        rec = Recorder()
        saga = Saga("masked")
        saga.add_step("a", rec.action("a"), rec.compensation("a", error=KeyError("undo failed")))
        saga.add_step("b", rec.action("b"), rec.compensation("b"))
        saga.add_step("c", rec.action("c", error=ValueError("original")))

        with pytest.raises(ValueError, match="original"):
            await saga.execute()

        assert rec.calls == ["a", "b", "c", "undo:b", "undo:a"]
        assert [name for name, _ in saga.compensation_errors] == ["a"]

    async def test_steps_share_context(self):
        saga = Saga("ctx")

        async def first(ctx):
            ctx["offer"] = "o1"

        async def second(ctx):
            return ctx["offer"].upper()

        saga.add_step("first", first).add_step("second", second)
        ctx = await saga.execute()

        assert ctx["second"] == "O1"
