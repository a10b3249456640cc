"""Literal `{{NAME}}` substitution plus template loading and atomic output writes."""
from __future__ import annotations

import os
import re
import stat
import tempfile
from pathlib import Path
from typing import Mapping, Union

from weather_svg.errors import OutputWriteError, TemplateError
from weather_svg.providers import DisplayFields
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="weather_svg/renderer")

PLACEHOLDER_RE = re.compile(r"\{\{([A-Z0-9_]+)\}\}")


def render(
    template: str,
    values: Union[DisplayFields, Mapping[str, object]],
    *,
    strict: bool = False,
) -> str:
    """
    Replace every occurrence of each `{{NAME}}` that has a value.

    Replacement text is inserted as-is (no escaping, no second pass, so a
    value that itself looks like a placeholder stays literal). Placeholders
    without a value are left untouched unless `strict` is set, in which case
    TemplateError lists them.
    """
    mapping = values.placeholders() if isinstance(values, DisplayFields) else values
    unresolved: list[str] = []

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name in mapping:
            return str(mapping[name])
        unresolved.append(name)
        return match.group(0)

    rendered = PLACEHOLDER_RE.sub(substitute, template)

    if unresolved:
        names = sorted(set(unresolved))
        if strict:
            raise TemplateError(f"Template has placeholders without values: {', '.join(names)}")
        logger.warning("Leaving unknown placeholders in place: %s", ", ".join(names))
    return rendered


def load_template(path: Union[str, Path]) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateError(f"Cannot read template {path}: {exc}") from exc


def _output_mode(target: Path) -> int:
    """Mode for the new file: keep the existing file's mode, else 0666 minus the umask."""
    try:
        return stat.S_IMODE(os.stat(target).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def write_atomic(path: Union[str, Path], text: str) -> None:
    """
    Write `text` to `path` via a temp file in the same directory and a rename.

    Readers see either the previous file or the complete new one. The temp
    file is removed whenever the rename did not happen.
    """
    target = Path(path)
    tmp_name = None
    replaced = False
    try:
        mode = _output_mode(target)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
        replaced = True
    except (OSError, UnicodeError) as exc:
        raise OutputWriteError(f"Cannot write {target}: {exc}") from exc
    finally:
        if tmp_name is not None and not replaced:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
    logger.debug("Wrote %d characters to %s", len(text), target)
