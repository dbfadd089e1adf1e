"""
SQL Server Query Store platform adapter.

Each database with Query Store in read-write mode, size-based cleanup enabled
and time-based cleanup disabled is one resource; its ceiling is
MAX_STORAGE_SIZE_MB.

All calls go through the `sqlcmd` client:
- Discovery and verification reads run synchronously with a timeout
- Mutations run as a detached sqlcmd process in its own session, because
  ALTER DATABASE does not honor SET LOCK_TIMEOUT and can block indefinitely
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Optional

from src.cleanup.entities import CapacityCommand, Priority, Resource, TaskState
from src.cleanup.errors import DiscoveryError, InvalidResourceIdError, PlatformError
from src.cleanup.platform import DetachedTask

from .commands import build_capacity_command, quote_identifier, validate_resource_id


logger = logging.getLogger(__name__)


# Upper bound for reaping a killed sqlcmd process
KILL_WAIT_SECONDS = 5.0

_SQLCMD_ERROR_RE = re.compile(
    r"Msg (?P<code>\d+), Level \d+, State \d+[^\n]*\n(?P<message>[^\n]*)"
)

LIST_QUERY_STORE_DATABASES = (
    "SELECT d.[name] FROM sys.databases d "
    "WHERE d.[is_query_store_on] = 1 AND d.[state] = 0 "
    "ORDER BY d.[name];"
)

ELIGIBLE_CAPACITY_QUERY = (
    "SELECT [max_storage_size_mb] FROM {database}.sys.database_query_store_options "
    "WHERE [actual_state] = 2 AND [stale_query_threshold_days] = 0 "
    "AND [size_based_cleanup_mode] = 1;"
)

CURRENT_CAPACITY_QUERY = (
    "SELECT [max_storage_size_mb] FROM {database}.sys.database_query_store_options;"
)


def parse_sqlcmd_error(output: str) -> tuple[Optional[int], Optional[str]]:
    """
    Extract the first server error from sqlcmd output.

    Example:
        "Msg 1222, Level 16, State 56, Server db1, Line 2\\n"
        "Lock request time out period exceeded."
        -> (1222, "Lock request time out period exceeded.")
    """
    match = _SQLCMD_ERROR_RE.search(output or "")
    if match is None:
        text = (output or "").strip()
        return None, (text.splitlines()[-1] if text else None)
    return int(match.group("code")), match.group("message").strip()


def _result_lines(output: str) -> list[str]:
    return [line.strip() for line in (output or "").splitlines() if line.strip()]


@dataclass
class SqlcmdSettings:
    """Connection settings for the sqlcmd client."""

    server: str
    database: str = "master"
    user: Optional[str] = None
    password: Optional[str] = None
    sqlcmd_path: str = "sqlcmd"
    login_timeout_seconds: int = 30
    read_timeout_seconds: float = 60.0

    def base_args(self) -> list[str]:
        args = [
            self.sqlcmd_path,
            "-S", self.server,
            "-d", self.database,
            "-l", str(self.login_timeout_seconds),
            "-b",
            "-h", "-1",
            "-W",
        ]
        if self.user:
            args.extend(["-U", self.user])
        else:
            args.append("-E")
        return args

    def env(self) -> dict[str, str]:
        """Process environment; the password never appears on the command line."""
        env = dict(os.environ)
        if self.password:
            env["SQLCMDPASSWORD"] = self.password
        return env


class SubprocessTask(DetachedTask):
    """
    A mutation running in a detached sqlcmd process.

    Terminating the client does not guarantee the server abandons the
    statement, so a cancelled task always ends UNKNOWN.
    """

    def __init__(self, command: CapacityCommand, process: subprocess.Popen):
        super().__init__(command)
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    def poll(self) -> TaskState:
        if self.state != TaskState.RUNNING:
            return self.state

        exit_code = self._process.poll()
        if exit_code is None:
            return self.state

        output, _ = self._process.communicate()
        self.state = TaskState.COMPLETED

        if exit_code != 0:
            code, message = parse_sqlcmd_error(output)
            self.error_code = code if code is not None else exit_code
            self.error_message = message or f"sqlcmd exited with code {exit_code}"

        return self.state

    def cancel(self, grace_seconds: float) -> TaskState:
        if self.state == TaskState.COMPLETED:
            return self.state

        self.state = TaskState.CANCEL_REQUESTED
        try:
            self._process.terminate()
            self._process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                f"sqlcmd (pid {self.pid}) for {self.command.resource_id} ignored "
                f"terminate after {grace_seconds}s, killing"
            )
            self._process.kill()
            try:
                self._process.wait(timeout=KILL_WAIT_SECONDS)
            except subprocess.TimeoutExpired:
                logger.error(
                    f"sqlcmd (pid {self.pid}) still running {KILL_WAIT_SECONDS}s after kill"
                )
        except ProcessLookupError:
            # exited between the deadline check and terminate()
            pass
        finally:
            if self._process.stdout is not None:
                self._process.stdout.close()

        self.state = TaskState.UNKNOWN
        return self.state


class QueryStorePlatform:
    """CapacityPlatform backed by SQL Server Query Store through sqlcmd."""

    def __init__(self, settings: SqlcmdSettings):
        self.settings = settings

    # =========================================================================
    # Synchronous queries
    # =========================================================================

    def run_query(self, query: str) -> list[str]:
        """
        Run a query and return its non-empty output lines.

        Raises:
            PlatformError: On a non-zero exit, a timeout, a missing client or
                undecodable output
        """
        cmd = self.settings.base_args() + ["-Q", f"SET NOCOUNT ON; {query}"]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.settings.read_timeout_seconds,
                env=self.settings.env(),
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise PlatformError(
                f"Query timed out after {self.settings.read_timeout_seconds}s",
                code="timeout",
            ) from e
        except OSError as e:
            raise PlatformError(f"Could not start sqlcmd: {e}") from e
        except UnicodeDecodeError as e:
            raise PlatformError(f"Undecodable sqlcmd output: {e}", code="decode_error") from e

        output = (proc.stdout or "") + (proc.stderr or "")
        if proc.returncode != 0:
            code, message = parse_sqlcmd_error(output)
            raise PlatformError(
                message or f"sqlcmd exited with code {proc.returncode}",
                code=code if code is not None else proc.returncode,
            )
        return _result_lines(proc.stdout)

    # =========================================================================
    # CapacityPlatform
    # =========================================================================

    def list_eligible_resources(self) -> list[Resource]:
        try:
            names = self.run_query(LIST_QUERY_STORE_DATABASES)
            resources = []
            for name in names:
                try:
                    database = quote_identifier(name)
                except InvalidResourceIdError as e:
                    logger.warning(f"Skipping database with unusable name: {e}")
                    continue
                rows = self.run_query(ELIGIBLE_CAPACITY_QUERY.format(database=database))
                if rows:
                    resources.append(
                        Resource(resource_id=name, original_capacity=int(rows[0]))
                    )
                else:
                    logger.debug(f"Skipping {name}: Query Store settings not eligible")
        except PlatformError as e:
            raise DiscoveryError(e.message, code=e.code) from e
        except ValueError as e:
            raise DiscoveryError(f"Unexpected discovery output: {e}") from e

        return resources

    def read_capacity(self, resource_id: str) -> int:
        rows = self.run_query(
            CURRENT_CAPACITY_QUERY.format(database=quote_identifier(resource_id))
        )
        if not rows:
            raise PlatformError(f"No Query Store options found for {resource_id}")
        try:
            return int(rows[0])
        except ValueError as e:
            raise PlatformError(
                f"Unexpected capacity value for {resource_id}: {rows[0]!r}"
            ) from e

    def build_command(
        self,
        resource_id: str,
        target_capacity: int,
        priority: Priority,
    ) -> CapacityCommand:
        return build_capacity_command(resource_id, target_capacity, priority)

    def submit(self, command: CapacityCommand) -> SubprocessTask:
        validate_resource_id(command.resource_id)
        cmd = self.settings.base_args() + ["-Q", command.statement]
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=self.settings.env(),
                start_new_session=True,
            )
        except OSError as e:
            raise PlatformError(f"Could not start sqlcmd: {e}") from e

        logger.debug(f"Started sqlcmd (pid {process.pid}) for {command.resource_id}")
        return SubprocessTask(command, process)
