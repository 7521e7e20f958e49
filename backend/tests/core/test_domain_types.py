"""Domain Types - tier parsing, lifecycle transitions, exit codes."""

import pytest

from app.core.domain_types import (
    ExitCode, LifecycleState, Tier, can_transition,
)


@pytest.mark.parametrize("name", ["production", "PRODUCTION", " production "])
def test_production_names_map_to_production_tier(name):
    assert Tier.from_environment_name(name) is Tier.PRODUCTION


@pytest.mark.parametrize("name", ["development", "staging", "test", "", None])
def test_everything_else_is_non_production(name):
    assert Tier.from_environment_name(name) is Tier.NON_PRODUCTION


def test_lifecycle_happy_path_is_allowed():
    assert can_transition(LifecycleState.STARTING, LifecycleState.SERVING)
    assert can_transition(LifecycleState.SERVING, LifecycleState.DRAINING)
    assert can_transition(LifecycleState.DRAINING, LifecycleState.STOPPED)


def test_lifecycle_never_goes_backwards():
    assert not can_transition(LifecycleState.DRAINING, LifecycleState.SERVING)
    assert not can_transition(LifecycleState.STOPPED, LifecycleState.STARTING)
    assert not can_transition(LifecycleState.SERVING, LifecycleState.STOPPED)


def test_exit_codes_are_distinct():
    assert ExitCode.OK == 0
    assert len({int(c) for c in ExitCode}) == len(ExitCode)
    assert ExitCode.CONFIG_ERROR != 0 and ExitCode.POOL_FAULT != 0
