import threading
from pathlib import Path

import pytest

from fakes import FakeApplier, SleepRecorder
from kustomizepb.core.engine import ExecutionEngine
from kustomizepb.core.errors import ApplyError, ReadinessNotFulfilled, RunCancelled
from kustomizepb.core.events import EventKind, EventQueue
from kustomizepb.core.models import (
    Compare,
    Component,
    CustomResourceDefinitionExists,
    RunComponent,
    ScalarValue,
    ServiceReady,
)
from kustomizepb.core.run import Run

NEVER = Compare(ScalarValue("a"), ScalarValue("b"))
ALWAYS = Compare(ScalarValue("a"), ScalarValue("a"))


def make_run(*components):
    return Run(
        directory=Path("."),
        kustomization_path=Path("kustomization.yaml"),
        components=[RunComponent(component=c) for c in components],
    )


def kinds(events, component=None):
    return [e.kind for e in events if component is None or e.component == component]


@pytest.fixture
def events():
    return EventQueue()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def engine_factory(accessor, builder, events, sleeper):
    def factory(applier=None, cancel=None):
        return ExecutionEngine(
            accessor=accessor,
            builder=builder,
            applier=applier or FakeApplier(),
            events=events,
            cancel=cancel,
            sleep=sleeper,
        )
    return factory


def test_components_run_in_declared_order(engine_factory, builder, events):
    run = make_run(
        Component(name="base", manifest_spec={"resources": ["base.yaml"]}),
        Component(name="app", depends_on=["base"], manifest_spec={"resources": ["app.yaml"]}),
    )
    engine_factory().run(run)

    assert builder.specs == [{"resources": ["base.yaml"]}, {"resources": ["app.yaml"]}]
    assert all(c.applied and c.ready for c in run.components)
    assert run.all_components_applied()
    assert kinds(events.drain()) == [
        EventKind.COMPONENT_STARTED, EventKind.APPLYING, EventKind.READY,
        EventKind.COMPONENT_STARTED, EventKind.APPLYING, EventKind.READY,
    ]


def test_unfulfilled_apply_condition_skips_component(engine_factory, builder, events):
    run = make_run(Component(
        name="optional",
        apply_conditions=[CustomResourceDefinitionExists("absent.example.com")],
        readiness_conditions=[NEVER],
    ))
    engine_factory().run(run)

    rc = run.get_component("optional")
    assert rc.applied is True
    assert rc.ready is False
    assert builder.specs == []
    assert kinds(events.drain()) == [
        EventKind.COMPONENT_STARTED,
        EventKind.TESTING_APPLY_CONDITIONS,
        EventKind.APPLY_CONDITIONS_NOT_FULFILLED,
    ]


def test_fulfilled_apply_condition_applies(engine_factory, accessor, builder, events):
    accessor.crds = {"present.example.com"}
    run = make_run(Component(name="c", apply_conditions=[CustomResourceDefinitionExists("present.example.com")]))
    engine_factory().run(run)

    assert len(builder.specs) == 1
    assert EventKind.APPLY_CONDITIONS_NOT_FULFILLED not in kinds(events.drain())


def test_apply_retries_with_linear_backoff(engine_factory, events, sleeper):
    applier = FakeApplier(failures=2)
    run = make_run(Component(name="flaky"))
    engine_factory(applier=applier).run(run)

    assert applier.attempts == 3
    assert run.components[0].applied is True
    assert sleeper.sleeps == [0, 1]
    retries = [e for e in events.drain() if e.kind is EventKind.APPLY_RETRY]
    assert [e.attempt for e in retries] == [0, 1]
    assert retries[0].error == "apply attempt 1 failed"


def test_apply_exhaustion_raises_last_error(engine_factory, events, sleeper):
    applier = FakeApplier(failures=100)
    run = make_run(Component(name="broken"), Component(name="never"))

    with pytest.raises(ApplyError, match="apply attempt 16 failed"):
        engine_factory(applier=applier).run(run)

    assert applier.attempts == 16
    assert sleeper.sleeps == list(range(15))
    assert run.components[0].applied is False
    emitted = events.drain()
    assert kinds(emitted).count(EventKind.APPLY_RETRY) == 15
    assert kinds(emitted, "never") == []


def test_component_without_readiness_is_ready_immediately(engine_factory, sleeper):
    run = make_run(Component(name="c"))
    engine_factory().run(run)
    assert run.components[0].ready is True
    assert sleeper.sleeps == []


def test_readiness_polls_until_fulfilled(engine_factory, accessor, events):
    # the service becomes ready after the third wait
    def on_sleep(count):
        if count == 3:
            accessor.ready_services.add(("web", "web"))

    sleeper = SleepRecorder(on_sleep)
    engine = engine_factory()
    engine._sleep_fn = sleeper

    run = make_run(Component(name="web", readiness_conditions=[ServiceReady("web", "web")]))
    engine.run(run)

    assert run.components[0].ready is True
    assert sleeper.sleeps == [0, 1, 2]
    assert kinds(events.drain()) == [
        EventKind.COMPONENT_STARTED,
        EventKind.APPLYING,
        EventKind.TESTING_READINESS,
        EventKind.TESTING_READINESS,
        EventKind.TESTING_READINESS,
        EventKind.READY,
    ]


def test_readiness_exhaustion_is_a_known_error(engine_factory, builder, events, sleeper):
    run = make_run(
        Component(name="stuck", readiness_conditions=[ALWAYS, NEVER]),
        Component(name="after"),
    )
    with pytest.raises(ReadinessNotFulfilled, match="'stuck'"):
        engine_factory().run(run)

    stuck, after = run.components
    assert stuck.applied is True
    assert stuck.ready is False
    assert after.applied is False
    assert len(builder.specs) == 1
    assert sleeper.sleeps == list(range(40))
    assert kinds(events.drain()).count(EventKind.TESTING_READINESS) == 40


def test_cancellation_stops_at_next_boundary(engine_factory, events):
    cancel = threading.Event()
    applier = FakeApplier(failures=100)
    sleeper = SleepRecorder(lambda count: cancel.set())
    engine = engine_factory(applier=applier, cancel=cancel)
    engine._sleep_fn = sleeper

    with pytest.raises(RunCancelled):
        engine.run(make_run(Component(name="c")))

    assert applier.attempts == 1


def test_cancelled_before_start_does_nothing(engine_factory, builder, events):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RunCancelled):
        engine_factory(cancel=cancel).run(make_run(Component(name="c")))
    assert builder.specs == []
    assert events.drain() == []


def test_default_sleep_is_interrupted_by_cancel(accessor, builder, events):
    cancel = threading.Event()
    engine = ExecutionEngine(accessor, builder, FakeApplier(failures=100), events, cancel=cancel)
    cancel.set()
    with pytest.raises(RunCancelled):
        engine._sleep(30)


def test_bounded_queue_delivers_every_event(accessor, builder):
    events = EventQueue(maxsize=1)
    received = []

    def consume():
        received.extend(events)

    consumer = threading.Thread(target=consume)
    consumer.start()
    engine = ExecutionEngine(accessor, builder, FakeApplier(), events, sleep=SleepRecorder())
    engine.run(make_run(*[Component(name=f"c{i}") for i in range(5)]))
    events.close()
    consumer.join(5)

    assert len(received) == 15
    assert [e.component for e in received if e.kind is EventKind.READY] == ["c0", "c1", "c2", "c3", "c4"]
