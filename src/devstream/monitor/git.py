"""Polling git for branch switches and new commits."""
import asyncio
from pathlib import Path

import structlog

from devstream.errors import CommandError
from devstream.events.bus import EventBroker
from devstream.events.types import EventType, GitEvent, Topic
from devstream.lifecycle import GracefulShutdown
from devstream.process import CommandRunner, run_command

logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 5.0


async def run_git(
    args: list[str],
    cwd: Path | str | None = None,
    runner: CommandRunner = run_command,
) -> str:
    """Run a git subcommand and return its trimmed stdout.

    Args:
        args: Arguments after ``git``.
        cwd: Repository working directory.
        runner: Command runner, replaced in tests.

    Returns:
        Standard output with surrounding whitespace removed.

    Raises:
        CommandError: If git cannot start or exits non-zero.
    """
    result = await runner(["git", *args], cwd=cwd)
    if not result.ok:
        raise CommandError(
            f"git {' '.join(args)} failed: {result.stderr.strip()}",
            result.argv,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result.stdout.strip()


class GitPoller:
    """Detects branch and commit transitions by polling git.

    Attributes:
        repo_dir: Working tree being polled.
        interval: Seconds between ticks.
        last_branch: Branch seen on the previous tick.
        last_commit_hash: HEAD hash seen on the previous tick.
    """

    def __init__(
        self,
        broker: EventBroker,
        repo_dir: Path | str = ".",
        interval: float = DEFAULT_POLL_INTERVAL,
        runner: CommandRunner = run_command,
    ) -> None:
        self._broker = broker
        self.repo_dir = Path(repo_dir)
        self.interval = interval
        self._runner = runner
        self.last_branch: str | None = None
        self.last_commit_hash: str | None = None

    async def _git(self, *args: str) -> str:
        return await run_git(list(args), cwd=self.repo_dir, runner=self._runner)

    async def initialize(self) -> bool:
        """Record the current branch and HEAD.

        Returns:
            False if the directory is not a git repository.
        """
        try:
            self.last_commit_hash = await self._git("rev-parse", "HEAD")
            self.last_branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        except CommandError as e:
            logger.debug("git_not_a_repository", path=str(self.repo_dir), error=str(e))
            return False
        logger.info(
            "git_poller_initialized",
            path=str(self.repo_dir),
            branch=self.last_branch,
            commit=self.last_commit_hash,
        )
        return True

    async def poll_once(self) -> None:
        """Run one tick; git failures are logged and swallowed."""
        try:
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
            if branch != self.last_branch:
                await self._broker.publish(
                    Topic.GIT_EVENTS,
                    EventType.GIT_CHECKOUT,
                    GitEvent(operation="checkout", branch=branch),
                )
                self.last_branch = branch

            commit_hash = await self._git("rev-parse", "HEAD")
            if commit_hash != self.last_commit_hash:
                message = await self._git("log", "-1", "--pretty=%B")
                await self._broker.publish(
                    Topic.GIT_EVENTS,
                    EventType.GIT_COMMIT,
                    GitEvent(
                        operation="commit",
                        message=message,
                        branch=branch,
                        hash=commit_hash,
                    ),
                )
                self.last_commit_hash = commit_hash
        except CommandError as e:
            logger.debug("git_poll_failed", path=str(self.repo_dir), error=str(e))

    async def run(self, shutdown: GracefulShutdown | None = None) -> None:
        """Initialize, then tick every ``interval`` seconds until stopped.

        Args:
            shutdown: Coordinator whose trigger ends the loop.
        """
        if self._broker.get_topic(Topic.GIT_EVENTS) is None:
            self._broker.create_topic(Topic.GIT_EVENTS)

        if not await self.initialize():
            return

        while True:
            if shutdown is None:
                await asyncio.sleep(self.interval)
            elif await shutdown.sleep(self.interval):
                break
            await self.poll_once()

        logger.info("git_poller_stopped", path=str(self.repo_dir))
