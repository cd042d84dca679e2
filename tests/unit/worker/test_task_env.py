"""Unit tests for worker task environment parsing and the entry point."""

from __future__ import annotations

import pydantic
import pytest

from rehydration.models.dataset import DatasetVersion, User
from rehydration.runners.base import TaskSpec
from rehydration.worker import __main__ as worker_main
from rehydration.worker.env import TaskEnv

REQUIRED = {
    "DATASET_ID": "5065",
    "DATASET_VERSION_ID": "2",
    "USER_NAME": "Ada Lovelace",
    "USER_EMAIL": "ada@example.com",
    "ENV": "dev",
    "IDEMPOTENCY_TABLE_NAME": "idempotency_records",
}
OPTIONAL = ("TRACKING_TABLE_NAME", "REGION")


@pytest.fixture
def task_env(monkeypatch):
    for key in OPTIONAL:
        monkeypatch.delenv(key, raising=False)
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_reads_required_variables(task_env):
    env = TaskEnv()

    assert env.dataset == DatasetVersion(5065, 2)
    assert env.user == User(name="Ada Lovelace", email="ada@example.com")
    assert env.env == "dev"
    assert env.idempotency_table_name == "idempotency_records"
    assert env.tracking_table_name is None
    assert env.region is None


def test_reads_optional_variables(task_env):
    task_env.setenv("TRACKING_TABLE_NAME", "tracking_entries")
    task_env.setenv("REGION", "us-east-1")

    env = TaskEnv()

    assert env.tracking_table_name == "tracking_entries"
    assert env.region == "us-east-1"


def test_blank_optional_variables_are_unset(task_env):
    task_env.setenv("TRACKING_TABLE_NAME", "  ")

    assert TaskEnv().tracking_table_name is None


@pytest.mark.parametrize("key", sorted(REQUIRED))
def test_missing_required_variable(task_env, key):
    task_env.delenv(key)

    with pytest.raises(pydantic.ValidationError):
        TaskEnv()


@pytest.mark.parametrize(
    "key,value",
    [("DATASET_ID", "abc"), ("DATASET_ID", "0"), ("DATASET_VERSION_ID", "-1"), ("USER_EMAIL", " ")],
)
def test_invalid_values(task_env, key, value):
    task_env.setenv(key, value)

    with pytest.raises(pydantic.ValidationError):
        TaskEnv()


def test_round_trips_task_spec_environment(task_env):
    spec = TaskSpec(
        dataset=DatasetVersion(7, 3),
        user=User(name="Grace", email="grace@example.com"),
        env="prod",
        idempotency_table="idem",
        tracking_table="track",
        region="eu-west-1",
    )
    for key, value in spec.environment().items():
        task_env.setenv(key, value)

    env = TaskEnv()

    assert env.dataset == spec.dataset
    assert env.user == spec.user
    assert (env.env, env.idempotency_table_name, env.tracking_table_name, env.region) == (
        "prod",
        "idem",
        "track",
        "eu-west-1",
    )


class TestMain:
    @pytest.fixture(autouse=True)
    def _quiet(self, monkeypatch):
        monkeypatch.setattr(worker_main, "configure_logging", lambda *args: None)

    def test_invalid_environment_exits_with_failure(self, task_env):
        task_env.delenv("DATASET_ID")

        with pytest.raises(SystemExit) as exc_info:
            worker_main.main()

        assert exc_info.value.code == 1

    def test_exit_code_comes_from_the_attempt(self, task_env, monkeypatch):
        seen = []

        async def fake_run_worker(env, settings):
            seen.append(env.dataset)
            return 0

        monkeypatch.setattr(worker_main, "run_worker", fake_run_worker)

        with pytest.raises(SystemExit) as exc_info:
            worker_main.main()

        assert exc_info.value.code == 0
        assert seen == [DatasetVersion(5065, 2)]
