"""
Launching and supervising mount helper processes.

A helper's stdout and stderr are combined into one pipe. One reader task
drains the pipe chunk by chunk until EOF, one watcher task awaits the exit and
reports it exactly once. Nothing here waits inline for the helper.
"""

import asyncio
import codecs
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from mount_agent.core.exceptions import DelegateImplementationError
from mount_agent.core.parameters import ParameterKeys, as_bool

OutputHandler = Callable[[str], None]
TerminationHandler = Callable[["HelperProcess"], Awaitable[None]]

NO_APPLE_DOUBLE_ARGUMENT = "-onoappledouble"
NEGATIVE_VNODE_CACHE_ARGUMENT = "-onegative_vncache"


@dataclass(frozen=True)
class LaunchSpec:
    executable: str
    arguments: List[str]
    environment: Dict[str, str] = field(default_factory=dict)


class HelperProcess:
    """Handle for one running helper and its supervision tasks."""

    def __init__(self, process: asyncio.subprocess.Process, spec: LaunchSpec):
        self._process = process
        self.spec = spec
        self.reader_task: Optional[asyncio.Task] = None
        self.watcher_task: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    def kill(self) -> None:
        """Force-kill (SIGKILL) the helper. No-op if it already exited."""
        if not self.is_running:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            logging.debug(f"Helper pid {self.pid} already gone")

    async def wait(self) -> int:
        return await self._process.wait()

    def __repr__(self) -> str:
        return f"<HelperProcess pid={self.pid} executable={self.spec.executable!r}>"


class ProcessSupervisor:
    def __init__(self, read_chunk_bytes: int = 4096, drain_timeout_seconds: float = 1.0):
        self._read_chunk_bytes = read_chunk_bytes
        self._drain_timeout = drain_timeout_seconds
        # Keeps fire-and-forget tasks referenced until they finish
        self._background_tasks: Set[asyncio.Task] = set()

    def build_launch_spec(
        self,
        parameters: Mapping[str, Any],
        implied_parameters: Mapping[str, Any],
        delegate,
    ) -> LaunchSpec:
        """
        Resolve executable, arguments and environment for a filesystem.

        Raises:
            DelegateImplementationError: no executable path, or no/empty arguments.
        """
        filesystem_id = parameters.get(ParameterKeys.UUID)

        executable = delegate.executable_path()
        if not executable:
            raise DelegateImplementationError(
                delegate.type_id, "returned no executable path", filesystem_id
            )

        delegate_arguments = delegate.task_arguments(implied_parameters)
        if not delegate_arguments:
            raise DelegateImplementationError(
                delegate.type_id, "returned no task arguments", filesystem_id
            )

        arguments = [str(argument) for argument in delegate_arguments]

        advanced_options = parameters.get(ParameterKeys.ADVANCED_OPTIONS) or ""
        arguments.extend(str(advanced_options).split())

        if as_bool(parameters.get(ParameterKeys.NO_APPLE_DOUBLE)):
            arguments.append(NO_APPLE_DOUBLE_ARGUMENT)
        if as_bool(parameters.get(ParameterKeys.NEGATIVE_VNODE_CACHE)):
            arguments.append(NEGATIVE_VNODE_CACHE_ARGUMENT)

        environment = delegate.task_environment(implied_parameters)
        if environment is None:
            environment = dict(os.environ)

        return LaunchSpec(
            executable=str(executable),
            arguments=arguments,
            environment={str(k): str(v) for k, v in environment.items()},
        )

    async def launch(
        self,
        spec: LaunchSpec,
        on_output: OutputHandler,
        on_terminated: TerminationHandler,
    ) -> HelperProcess:
        """
        Start the helper and its reader/watcher tasks.

        Raises:
            OSError: if the executable cannot be spawned.
        """
        logging.debug(f"Launching helper {spec.executable} with {len(spec.arguments)} argument(s)")
        process = await asyncio.create_subprocess_exec(
            spec.executable,
            *spec.arguments,
            env=spec.environment,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        helper = HelperProcess(process, spec)
        helper.reader_task = asyncio.create_task(
            self._read_output(process.stdout, on_output, helper),
            name=f"helper-output-{process.pid}",
        )
        helper.watcher_task = asyncio.create_task(
            self._watch_termination(helper, on_terminated),
            name=f"helper-watch-{process.pid}",
        )
        logging.info(f"Launched helper {spec.executable} (pid {process.pid})")
        return helper

    async def _read_output(
        self,
        stream: asyncio.StreamReader,
        on_output: OutputHandler,
        helper: HelperProcess,
    ) -> None:
        # Keeps a multibyte character split across two reads; invalid bytes are dropped
        decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")
        while True:
            chunk = await stream.read(self._read_chunk_bytes)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                logging.debug(f"[pid {helper.pid}] {text.rstrip()}")
                try:
                    on_output(text)
                except Exception as e:
                    logging.error(f"Output handler failed for pid {helper.pid}: {e}", exc_info=True)
            if not chunk:
                # Pipe closed
                return

    async def _watch_termination(
        self, helper: HelperProcess, on_terminated: TerminationHandler
    ) -> None:
        returncode = await helper.wait()

        # Let the reader drain what the helper wrote before exiting
        if helper.reader_task is not None:
            done, _ = await asyncio.wait({helper.reader_task}, timeout=self._drain_timeout)
            if not done:
                logging.debug(f"Output of pid {helper.pid} still open after exit")

        logging.info(f"Helper pid {helper.pid} exited with code {returncode}")
        try:
            await on_terminated(helper)
        except Exception as e:
            logging.error(f"Termination handler failed for pid {helper.pid}: {e}", exc_info=True)

    async def run_detached(self, command: List[str]) -> None:
        """
        Start a command without waiting for it. Its exit status is only logged.

        Raises:
            OSError: if the command cannot be spawned.
        """
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        task = asyncio.create_task(self._log_detached_exit(command, process))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _log_detached_exit(
        self, command: List[str], process: asyncio.subprocess.Process
    ) -> None:
        output, _ = await process.communicate()
        if process.returncode != 0:
            message = output.decode("utf-8", errors="replace").strip() if output else ""
            logging.warning(
                f"Command {' '.join(command)} exited with code {process.returncode}: {message}"
            )
        else:
            logging.debug(f"Command {' '.join(command)} completed")
