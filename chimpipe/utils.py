# File: chimpipe/utils.py
# Location: chimpipe/chimpipe/utils.py

"""
Utility functions module.

Provides the external command model, helpers for running command pipelines,
reading the first record of a tool's output, and checking tool availability.
"""

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger("chimpipe")


@dataclass(frozen=True)
class Command:
    """
    A shell-free description of an external command pipeline.

    Attributes
    ----------
    steps : Tuple[Tuple[str, ...], ...]
        Argument vectors; the stdout of each step feeds the stdin of the next.
    stdout : Path, optional
        File receiving the stdout of the last step. If None, stdout is captured.
    log : Path, optional
        File to which the stderr of every step is appended.
    cwd : Path, optional
        Working directory of every step.
    """

    steps: Tuple[Tuple[str, ...], ...]
    stdout: Optional[Path] = None
    log: Optional[Path] = None
    cwd: Optional[Path] = None

    @classmethod
    def pipe(cls, *steps: Sequence, **kwargs) -> "Command":
        """Build a command from argument lists, converting every argument to str."""
        return cls(tuple(tuple(str(arg) for arg in step) for step in steps), **kwargs)

    def render(self) -> str:
        """Return the shell-equivalent text of the command."""
        text = " | ".join(shlex.join(step) for step in self.steps)
        if self.stdout is not None:
            text += f" > {shlex.quote(str(self.stdout))}"
        if self.log is not None:
            text += f" 2>> {shlex.quote(str(self.log))}"
        if self.cwd is not None:
            text = f"cd {shlex.quote(str(self.cwd))} && {text}"
        return text

    def __str__(self) -> str:
        return self.render()


def run_command(command: Command, env: Optional[Dict[str, str]] = None) -> str:
    """
    Run a command pipeline and write stdout to its target if set, else return stdout.

    Parameters
    ----------
    command : Command
        The pipeline to run.
    env : dict, optional
        Variables added to the current environment for every step.

    Returns
    -------
    str
        The captured stdout when the command has no stdout target, otherwise
        the path of the stdout target.

    Raises
    ------
    subprocess.CalledProcessError
        If any step of the pipeline returns a non-zero exit code.
    """
    logger.debug("Running command: %s", command.render())

    process_env = os.environ.copy()
    if env:
        process_env.update(env)
    cwd = str(command.cwd) if command.cwd is not None else None

    if command.log is not None:
        stderr_handle = open(command.log, "ab")
    else:
        stderr_handle = tempfile.TemporaryFile()
    stdout_handle = open(command.stdout, "wb") if command.stdout is not None else None

    processes: List[subprocess.Popen] = []
    try:
        previous = None
        for index, argv in enumerate(command.steps):
            last = index == len(command.steps) - 1
            if last:
                step_stdout = stdout_handle if stdout_handle is not None else subprocess.PIPE
            else:
                step_stdout = subprocess.PIPE
            process = subprocess.Popen(
                list(argv),
                stdin=previous.stdout if previous is not None else None,
                stdout=step_stdout,
                stderr=stderr_handle,
                cwd=cwd,
                env=process_env,
            )
            if previous is not None:
                # Let the upstream step receive SIGPIPE if this one exits early
                previous.stdout.close()
            processes.append(process)
            previous = process

        output, _ = processes[-1].communicate()
        for process in processes[:-1]:
            process.wait()

        for argv, process in zip(command.steps, processes):
            if process.returncode != 0:
                stderr_text = ""
                if command.log is None:
                    stderr_handle.seek(0)
                    stderr_text = stderr_handle.read().decode("utf-8", errors="replace")
                logger.error(
                    "Command failed: %s\nError: %s", command.render(), stderr_text or command.log
                )
                raise subprocess.CalledProcessError(process.returncode, list(argv), stderr_text)
    finally:
        for process in processes:
            if process.poll() is None:
                process.kill()
                process.wait()
        stderr_handle.close()
        if stdout_handle is not None:
            stdout_handle.close()

    logger.debug("Command completed successfully.")
    if command.stdout is not None:
        return str(command.stdout)
    return output.decode("utf-8") if output else ""


def read_first_line(argv: Sequence[str], env: Optional[Dict[str, str]] = None) -> str:
    """
    Run a command and return the first line of its output, stopping the command.

    Parameters
    ----------
    argv : sequence of str
        Command and its arguments.
    env : dict, optional
        Variables added to the current environment.

    Returns
    -------
    str
        The first output line without its newline, or an empty string.

    Raises
    ------
    subprocess.CalledProcessError
        If the command fails before producing any output.
    """
    argv = [str(arg) for arg in argv]
    logger.debug("Reading first line of: %s", shlex.join(argv))
    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    process = subprocess.Popen(
        argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=process_env
    )
    try:
        line = process.stdout.readline().decode("utf-8")
    finally:
        if process.poll() is None:
            process.kill()
        _, stderr = process.communicate()

    if not line and process.returncode not in (0, None):
        raise subprocess.CalledProcessError(
            process.returncode, argv, stderr.decode("utf-8", errors="replace")
        )
    return line.rstrip("\n")


def find_nh_field(sam_line: str) -> Optional[int]:
    """
    Return the 1-based column holding the NH (number of hits) tag of a SAM record.

    Parameters
    ----------
    sam_line : str
        A tab-separated SAM alignment line.

    Returns
    -------
    int or None
        The column number, or None if the record has no NH tag.
    """
    for index, column in enumerate(sam_line.split("\t"), start=1):
        if index > 11 and column.startswith("NH:"):
            return index
    return None


def check_external_tools(tools: List[str]) -> bool:
    """
    Check if external tools are available in PATH.

    Parameters
    ----------
    tools : List[str]
        List of tool names to check for availability

    Returns
    -------
    bool
        True if all tools are available, False otherwise
    """
    for tool in tools:
        if not shutil.which(tool):
            logger.error(f"Required tool not found in PATH: {tool}")
            return False
        logger.debug(f"Found tool in PATH: {tool}")
    return True


def missing_external_tools(tools: List[str]) -> List[str]:
    """Return the tools from the list that cannot be found in PATH."""
    return [tool for tool in tools if not shutil.which(tool)]
