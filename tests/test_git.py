"""Git poller tests."""

import asyncio

from devstream.errors import CommandError
from devstream.events import EventBroker, Topic
from devstream.lifecycle import GracefulShutdown
from devstream.monitor.git import GitPoller, run_git
from helpers import FakeRunner, collect

HEAD = ("git", "rev-parse", "HEAD")
BRANCH = ("git", "rev-parse", "--abbrev-ref", "HEAD")
MESSAGE = ("git", "log", "-1", "--pretty=%B")


def _repo(runner: FakeRunner, branch: str = "main", commit: str = "aaa111") -> None:
    runner.set(HEAD, stdout=f"{commit}\n")
    runner.set(BRANCH, stdout=f"{branch}\n")


async def test_run_git_returns_trimmed_stdout(runner: FakeRunner) -> None:
    """Output is stripped of surrounding whitespace."""
    runner.set(("git", "status"), stdout="  clean \n")
    assert await run_git(["status"], runner=runner) == "clean"


async def test_run_git_raises_on_failure(runner: FakeRunner) -> None:
    """A non-zero exit raises CommandError with stderr."""
    runner.set(HEAD, returncode=128, stderr="fatal: not a git repository")
    try:
        await run_git(["rev-parse", "HEAD"], runner=runner)
    except CommandError as e:
        assert e.returncode == 128
        assert "not a git repository" in str(e)
    else:
        raise AssertionError("CommandError not raised")


async def test_initialize_records_state(broker: EventBroker, runner: FakeRunner) -> None:
    """Initialization captures branch and HEAD."""
    _repo(runner)
    poller = GitPoller(broker, runner=runner)

    assert await poller.initialize() is True
    assert poller.last_branch == "main"
    assert poller.last_commit_hash == "aaa111"


async def test_not_a_repository_never_starts(broker: EventBroker, runner: FakeRunner) -> None:
    """run() returns immediately when the directory is not a repository."""
    runner.set(HEAD, returncode=128, stderr="fatal: not a git repository")
    poller = GitPoller(broker, runner=runner, interval=0.01)

    await asyncio.wait_for(poller.run(), timeout=1.0)

    assert runner.calls == [list(HEAD)]


async def test_unchanged_state_publishes_nothing(
    broker: EventBroker, runner: FakeRunner
) -> None:
    """A tick with no transitions is silent."""
    received = collect(broker, Topic.GIT_EVENTS)
    _repo(runner)
    poller = GitPoller(broker, runner=runner)
    await poller.initialize()

    await poller.poll_once()
    await broker.join()

    assert received == []


async def test_branch_switch_publishes_checkout(
    broker: EventBroker, runner: FakeRunner
) -> None:
    """A new branch name yields git.checkout."""
    received = collect(broker, Topic.GIT_EVENTS)
    _repo(runner)
    poller = GitPoller(broker, runner=runner)
    await poller.initialize()

    runner.set(BRANCH, stdout="feature/x\n")
    await poller.poll_once()
    await broker.join()

    assert [e.type for e in received] == ["git.checkout"]
    assert received[0].payload == {"operation": "checkout", "branch": "feature/x"}
    assert poller.last_branch == "feature/x"


async def test_new_commit_publishes_commit_with_message(
    broker: EventBroker, runner: FakeRunner
) -> None:
    """A new HEAD yields git.commit carrying branch, hash and message."""
    received = collect(broker, Topic.GIT_EVENTS)
    _repo(runner)
    poller = GitPoller(broker, runner=runner)
    await poller.initialize()

    runner.set(HEAD, stdout="bbb222\n")
    runner.set(MESSAGE, stdout="Fix flaky test\n\n")
    await poller.poll_once()
    await broker.join()

    assert [e.type for e in received] == ["git.commit"]
    assert received[0].payload == {
        "operation": "commit",
        "message": "Fix flaky test",
        "branch": "main",
        "hash": "bbb222",
    }
    assert poller.last_commit_hash == "bbb222"


async def test_checkout_and_commit_in_one_tick(
    broker: EventBroker, runner: FakeRunner
) -> None:
    """Both transitions are reported, checkout first."""
    received = collect(broker, Topic.GIT_EVENTS)
    _repo(runner)
    poller = GitPoller(broker, runner=runner)
    await poller.initialize()

    _repo(runner, branch="dev", commit="ccc333")
    await poller.poll_once()
    await broker.join()

    assert [e.type for e in received] == ["git.checkout", "git.commit"]
    assert received[1].payload["branch"] == "dev"


async def test_tick_failure_is_swallowed_and_polling_continues(
    broker: EventBroker, runner: FakeRunner
) -> None:
    """A failing git query does not stop the poller."""
    received = collect(broker, Topic.GIT_EVENTS)
    _repo(runner)
    poller = GitPoller(broker, runner=runner, interval=0.01)
    shutdown = GracefulShutdown()
    await poller.initialize()

    runner.fail(BRANCH, CommandError("git vanished", list(BRANCH)))
    task = asyncio.create_task(poller.run(shutdown))
    await asyncio.sleep(0.05)
    assert not task.done()

    runner.set(BRANCH, stdout="recovered\n")
    for _ in range(100):
        await broker.join()
        if received:
            break
        await asyncio.sleep(0.01)

    shutdown.trigger()
    await asyncio.wait_for(task, timeout=1.0)

    assert received[0].type == "git.checkout"
    assert received[0].payload["branch"] == "recovered"
