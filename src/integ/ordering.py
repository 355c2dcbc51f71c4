"""
Ordered test steps.

Steps of a test class marked with ``@pytest.mark.ordered(n)`` run by ascending
``n``, one after the other. A step marked ``requires_previous=True`` is skipped
when an earlier ordered step of the same class failed.

Load the hooks from a conftest::

    from src.integ.ordering import (  # noqa: F401
        pytest_collection_modifyitems,
        pytest_configure,
        pytest_runtest_makereport,
        pytest_runtest_setup,
    )
"""

from collections import defaultdict

import pytest

_FAILED_STEP = pytest.StashKey[str]()


def _step_index(item) -> int | None:
    marker = item.get_closest_marker("ordered")
    if marker is None:
        return None
    if marker.args:
        return marker.args[0]
    return marker.kwargs.get("index")


def sort_ordered_steps(items: list) -> list:
    """
    Reorder the ordered steps of each class by index.

    Ordered steps keep the positions their class already occupied in the
    collection, so unmarked tests and other classes don't move. Steps with the
    same index keep their collection order.
    """
    positions: dict[object, list[int]] = defaultdict(list)
    for position, item in enumerate(items):
        if _step_index(item) is not None:
            positions[item.parent].append(position)

    result = list(items)
    for slots in positions.values():
        steps = sorted((items[p] for p in slots), key=_step_index)
        for slot, step in zip(slots, steps, strict=True):
            result[slot] = step
    return result


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "ordered(index, requires_previous=False): run the steps of a class in index order",
    )


def pytest_collection_modifyitems(session, config, items):
    items[:] = sort_ordered_steps(items)


@pytest.hookimpl(wrapper=True)
def pytest_runtest_makereport(item, call):
    report = yield
    if report.failed and _step_index(item) is not None:
        item.parent.stash.setdefault(_FAILED_STEP, item.name)
    return report


def pytest_runtest_setup(item):
    marker = item.get_closest_marker("ordered")
    if marker is None or not marker.kwargs.get("requires_previous", False):
        return
    failed = item.parent.stash.get(_FAILED_STEP, None)
    if failed is not None:
        pytest.skip(f"previous step {failed} failed")
