#!/usr/bin/env python3
"""Environment injection - Run a command with secrets as environment variables.

Example:
    secrets with-env '{BITSO_KEY: bitso/prod/key}' -- python my-script.py
"""

import os
import subprocess
from typing import Any, Dict, Mapping, Sequence

from .codec import parse_path
from .errors import MalformedInputError
from .paths import get_in


def resolve_env(tree: Mapping, mapping: Mapping[Any, Any]) -> Dict[str, str]:
    """Resolve {VAR_NAME: path} into {VAR_NAME: secret}.

    Paths may be strings (`a/b`, `[a, 1]`) or already-parsed sequences.

    Raises:
        MalformedInputError: If a path is missing or points at a branch

    """
    env = {}
    for name, path in mapping.items():
        if isinstance(path, str):
            path = parse_path(path)
        elif not isinstance(path, (list, tuple)):
            raise MalformedInputError(f"Path for {name} must be a string or sequence")

        value = get_in(tree, path)
        if value is None:
            raise MalformedInputError(f"No secret at {path} (for {name})")
        if isinstance(value, Mapping):
            raise MalformedInputError(f"Secret at {path} is a branch, not a value (for {name})")
        env[str(name)] = str(value)
    return env


def run_with_env(tree: Mapping, mapping: Mapping[Any, Any], command: Sequence[str]) -> int:
    """Run `command` with the resolved secrets merged into the environment.

    Returns:
        The child's exit status

    """
    if not command:
        raise MalformedInputError("No command specified")

    env = os.environ.copy()
    env.update(resolve_env(tree, mapping))
    return subprocess.run(list(command), env=env).returncode
