#!/usr/bin/env python3
"""External editor round trip for the decrypted secrets tree.

The tree is rendered as YAML into a private (0600) temporary file, the user's
editor is run on it, and the result is parsed back. The temporary file holds
plaintext secrets while the editor runs and is always removed afterwards.
"""

import os
import shlex
import subprocess
import tempfile
from typing import Any, Dict, Optional

from .codec import deserialize_tree, dump_tree
from .errors import EditorFailure, MalformedInputError

DEFAULT_EDITOR = "vi"


def get_editor() -> str:
    """Editor command from $VISUAL, then $EDITOR, else vi."""
    return os.environ.get("VISUAL") or os.environ.get("EDITOR") or DEFAULT_EDITOR


def edit_text(text: str, editor: Optional[str] = None, suffix: str = ".yaml") -> str:
    """Open `text` in an editor and return what was saved."""
    cmd = shlex.split(editor or get_editor())
    fd, tmp = tempfile.mkstemp(prefix="secrets-", suffix=suffix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)

        try:
            proc = subprocess.run(cmd + [tmp])
        except OSError as e:
            raise EditorFailure(f"Failed to launch editor {cmd[0]!r}: {e}") from e

        if proc.returncode != 0:
            raise EditorFailure(f"Editor {cmd[0]!r} exited with status {proc.returncode}")

        with open(tmp, encoding="utf-8") as f:
            return f.read()
    finally:
        os.unlink(tmp)


def edit_tree(tree: Dict[Any, Any], editor: Optional[str] = None) -> Dict[Any, Any]:
    """Let the user edit the tree; raise EditorFailure if the result won't parse."""
    edited = edit_text(dump_tree(tree), editor)
    try:
        return deserialize_tree(edited)
    except MalformedInputError as e:
        raise EditorFailure(f"Edited secrets could not be parsed: {e}") from e
