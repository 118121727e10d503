import threading

from sqlalchemy import func, select

from reliefgrid.errors import ConflictError
from reliefgrid.persistence.tables import AllocationRow, ResourceRow


def _race(targets) -> tuple[list, list]:
    barrier = threading.Barrier(len(targets))
    successes: list = []
    failures: list = []
    lock = threading.Lock()

    def run(target) -> None:
        barrier.wait()
        try:
            result = target()
        except Exception as exc:
            with lock:
                failures.append(exc)
        else:
            with lock:
                successes.append(result)

    threads = [threading.Thread(target=run, args=(target,)) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return successes, failures


def test_concurrent_manual_allocations_never_oversubscribe(engine, seed, session_factory) -> None:
    resource_id = seed.resource(total=30)
    request_ids = [seed.request(quantity=10) for _ in range(5)]

    successes, failures = _race(
        [lambda rid=rid: engine.allocate_manual(rid, resource_id, actor_id=None) for rid in request_ids]
    )

    assert len(successes) == 3
    assert len(failures) == 2
    assert all(isinstance(exc, ConflictError) for exc in failures)

    resource = seed.get(ResourceRow, resource_id)
    assert resource.counters_balanced()
    assert (resource.quantity_available, resource.quantity_reserved) == (0, 30)
    with session_factory() as session:
        assert session.scalar(select(func.count()).select_from(AllocationRow)) == 3


def test_concurrent_auto_allocations_have_one_winner(engine, seed) -> None:
    resource_id = seed.resource(total=10)
    first = seed.request(quantity=10)
    second = seed.request(quantity=10)

    successes, failures = _race([lambda: engine.allocate_auto(first), lambda: engine.allocate_auto(second)])

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], ConflictError)
    resource = seed.get(ResourceRow, resource_id)
    assert resource.counters_balanced()
    assert (resource.quantity_available, resource.quantity_reserved) == (0, 10)
