"""
Process supervision for the interchain e2e harness.
Child process construction, output streaming & lifetime ownership.
"""
import functools
import os
import subprocess
import threading
import typing as t
from pathlib import Path

from .errors import SetupError

HYP_ENV_PREFIX = "HYP_"


def _stream_output(
    label: str,
    stream: t.IO[str],
    keep: t.Optional[t.Callable[[str], bool]],
) -> None:
    """
    Echo a child's output line by line under its label.

    Keeps draining until EOF whatever the lines contain or the filter does.
    """
    for line in iter(stream.readline, ""):
        try:
            show = keep is None or keep(line)
        except Exception as e:
            print(f"[System] Log filter for {label} failed: {e}")
            show = True
        if show:
            print(f"[{label}] {line.rstrip()}")
    stream.close()


class AgentHandle:
    """
    A running child process plus the label its output is tagged with.
    """

    def __init__(
        self,
        label: str,
        proc: subprocess.Popen,
        reader: t.Optional[threading.Thread] = None,
    ) -> None:
        self.label = label
        self.proc = proc
        self._reader = reader
        self._terminated = False
        self._lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def terminated(self) -> bool:
        return self._terminated

    def is_running(self) -> bool:
        return self.proc.poll() is None

    def wait(self, timeout: t.Optional[float] = None) -> int:
        code = self.proc.wait(timeout=timeout)
        if self._reader is not None:
            self._reader.join(timeout=5.0)
        return code

    def terminate(self) -> None:
        """
        Send SIGTERM without waiting for the child to exit.

        Only the first call does anything.
        """
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
        if self.proc.poll() is None:
            self.proc.terminate()
            print(f"[System] Stopped {self.label} (PID: {self.proc.pid})")

    def kill(self, timeout: float = 5.0) -> None:
        """SIGTERM, wait, then SIGKILL."""
        self.terminate()
        try:
            self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait(timeout=timeout)
            print(f"[System] Killed {self.label} (PID: {self.proc.pid})")

    def __repr__(self) -> str:
        return f"AgentHandle(label={self.label!r}, pid={self.proc.pid})"


class TaskHandle:
    """
    A unit of work running on its own thread.

    join() hands back the work's result or re-raises its exception.
    terminate() stops whatever the work owns: the child of a blocking CLI
    step, or the AgentHandle a launch task produced.
    """

    def __init__(
        self,
        target: t.Callable[..., t.Any],
        args: t.Tuple[t.Any, ...] = (),
        kwargs: t.Optional[t.Dict[str, t.Any]] = None,
        name: t.Optional[str] = None,
        terminator: t.Optional[t.Callable[[], None]] = None,
    ) -> None:
        self._target = target
        self._args = args
        self._kwargs = kwargs or {}
        self._terminator = terminator
        self._result: t.Any = None
        self._error: t.Optional[BaseException] = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        try:
            self._result = self._target(*self._args, **self._kwargs)
        except BaseException as e:  # handed to the joiner
            self._error = e

    def start(self) -> "TaskHandle":
        self._thread.start()
        return self

    def join(self, timeout: t.Optional[float] = None) -> t.Any:
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Task {self._thread.name} still running after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    def terminate(self) -> None:
        if self._terminator is not None:
            self._terminator()
            return
        self._thread.join()
        if self._error is None and isinstance(self._result, AgentHandle):
            self._result.terminate()


def as_task(func: t.Callable[..., t.Any]) -> t.Callable[..., TaskHandle]:
    """Run `func` on its own thread; the wrapper returns a started TaskHandle."""

    @functools.wraps(func)
    def wrapper(*args: t.Any, **kwargs: t.Any) -> TaskHandle:
        return TaskHandle(func, args, kwargs, name=func.__name__).start()

    return wrapper


class Program:
    """
    Immutable builder for a child process invocation.

    Every builder method returns a new Program, so a partially configured
    base (binary + home flag, say) can be shared between many commands.

    Usage:
        handle = (
            Program("relayer")
            .env("CONFIG_FILES", "/tmp/config.json")
            .hyp_env("METRICSPORT", 9093)
            .spawn("RLY")
        )
    """

    def __init__(self, bin: t.Union[str, Path, None] = None) -> None:
        self._bin: t.Optional[str] = str(bin) if bin is not None else None
        self._args: t.List[str] = []
        self._env: t.Dict[str, str] = {}
        self._working_dir: t.Optional[str] = None
        self._log_filter: t.Optional[t.Callable[[str], bool]] = None

    def _clone(self) -> "Program":
        clone = Program(self._bin)
        clone._args = list(self._args)
        clone._env = dict(self._env)
        clone._working_dir = self._working_dir
        clone._log_filter = self._log_filter
        return clone

    # ---------- builder ----------
    def bin(self, path: t.Union[str, Path]) -> "Program":
        clone = self._clone()
        clone._bin = str(path)
        return clone

    def cmd(self, command: t.Any) -> "Program":
        clone = self._clone()
        clone._args.append(str(command))
        return clone

    def arg(self, flag: str, value: t.Any) -> "Program":
        clone = self._clone()
        clone._args.extend([f"--{flag}", str(value)])
        return clone

    def flag(self, flag: str) -> "Program":
        clone = self._clone()
        clone._args.append(f"--{flag}")
        return clone

    def env(self, key: str, value: t.Any) -> "Program":
        clone = self._clone()
        clone._env[key] = str(value)
        return clone

    def hyp_env(self, key: str, value: t.Any) -> "Program":
        """Agent settings are read from HYP_-prefixed variables."""
        return self.env(f"{HYP_ENV_PREFIX}{key}", value)

    def working_dir(self, path: t.Union[str, Path]) -> "Program":
        clone = self._clone()
        clone._working_dir = str(path)
        return clone

    def filter_logs(self, keep: t.Callable[[str], bool]) -> "Program":
        clone = self._clone()
        clone._log_filter = keep
        return clone

    # ---------- introspection ----------
    def create_command(self) -> t.List[str]:
        if self._bin is None:
            raise SetupError("Program has no binary set")
        return [self._bin, *self._args]

    def environment(self) -> t.Dict[str, str]:
        return {**os.environ, **self._env}

    def __str__(self) -> str:
        env = " ".join(f"{k}={v}" for k, v in self._env.items())
        cmd = " ".join(self.create_command()) if self._bin else "<no binary>"
        return f"{env} {cmd}".strip()

    # ---------- execution ----------
    def spawn(self, label: str) -> AgentHandle:
        """
        Start the child and return at once.

        Output is streamed by a daemon thread, each line prefixed with
        `[label]`.
        """
        command = self.create_command()
        print(f"[System] Spawning {label}: {' '.join(command)}")
        try:
            proc = subprocess.Popen(
                command,
                cwd=self._working_dir,
                env=self.environment(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise SetupError(f"Failed to spawn {label} ({self._bin}): {e}") from e

        reader = threading.Thread(
            target=_stream_output,
            args=(label, proc.stdout, self._log_filter),
            daemon=True,
        )
        reader.start()
        return AgentHandle(label, proc, reader)

    def run(self) -> TaskHandle:
        """
        Run to completion on a task thread, streaming output.

        join() raises SetupError on a non-zero exit code.
        """
        label = Path(self.create_command()[0]).name.upper()
        spawned: t.Dict[str, AgentHandle] = {}

        def step() -> None:
            handle = self.spawn(label)
            spawned["handle"] = handle
            code = handle.wait()
            if code != 0:
                raise SetupError(f"`{' '.join(self.create_command())}` exited with code {code}")

        def stop() -> None:
            handle = spawned.get("handle")
            if handle is not None:
                handle.terminate()

        return TaskHandle(step, name=label, terminator=stop).start()

    def run_with_output(self, stdin: t.Optional[str] = None, include_stderr: bool = False) -> str:
        """
        Run to completion and return captured stdout.

        Cobra-based CLIs print some results on stderr; pass include_stderr
        to get both streams.

        Raises:
            SetupError: the binary is missing or exited non-zero.
        """
        command = self.create_command()
        try:
            result = subprocess.run(
                command,
                cwd=self._working_dir,
                env=self.environment(),
                input=stdin,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise SetupError(f"Failed to run {self._bin}: {e}") from e
        if result.returncode != 0:
            raise SetupError(
                f"`{' '.join(command)}` failed with code {result.returncode}: "
                f"{(result.stderr or result.stdout).strip()}"
            )
        if include_stderr:
            return result.stdout + result.stderr
        return result.stdout


class ProcessStack:
    """
    Owns every long-running child of a test run.

    Releasing the stack sends SIGTERM to each adopted process exactly once,
    newest first. With `grace_secs` set it then waits that long for each
    process and SIGKILLs whatever is still running. Use it as a context
    manager so release happens on success, on timeout and on any exception
    raised during setup.

    Usage:
        with ProcessStack(grace_secs=10) as stack:
            stack.adopt(node_program.spawn("NODE"))
            stack.adopt_tasks([launch_validator(...), launch_relayer(...)])
            ...
    """

    def __init__(self, grace_secs: t.Optional[float] = None) -> None:
        self.grace_secs = grace_secs
        self._handles: t.List[AgentHandle] = []
        self._released = False
        self._lock = threading.Lock()

    @property
    def handles(self) -> t.List[AgentHandle]:
        with self._lock:
            return list(self._handles)

    @property
    def released(self) -> bool:
        return self._released

    def __len__(self) -> int:
        return len(self._handles)

    def adopt(self, handle: AgentHandle) -> AgentHandle:
        with self._lock:
            if not self._released:
                self._handles.append(handle)
                return handle
        # The stack is already gone; nothing will own this process.
        handle.terminate()
        return handle

    def adopt_tasks(self, tasks: t.Iterable[TaskHandle]) -> t.List[AgentHandle]:
        """
        Join every launch task and adopt what it produced.

        All tasks are joined even if one fails, so no launched process is
        left unowned. The first failure is re-raised afterwards.
        """
        handles: t.List[AgentHandle] = []
        first_error: t.Optional[BaseException] = None
        for task in tasks:
            try:
                handles.append(self.adopt(task.join()))
            except Exception as e:
                print(f"[System] Launch task failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return handles

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            handles = list(reversed(self._handles))
        for handle in handles:
            handle.terminate()
        if self.grace_secs is None:
            return
        for handle in handles:
            handle.kill(self.grace_secs)

    def __enter__(self) -> "ProcessStack":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False
