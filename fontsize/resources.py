"""
Read and edit X resource files such as `~/.Xresources`.

A resource file holds `key: value` entries, one per line, with `!` comments,
`#` preprocessor directives, and `\\` line continuations. This module preserves
everything it does not edit verbatim. It also provides two font stores, which
persist new fonts either by editing the file directly or by running `xrdb`.
"""

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import suppress
import dataclasses
import logging
import os
from pathlib import Path
import stat
import subprocess
import tempfile
from typing import Any, Protocol, Self

from .role import FontRole


__all__ = (
    'FileStore',
    'FontStore',
    'PersistenceError',
    'ResourceDatabase',
    'XrdbStore',
    'format_entry',
)


_logger = logging.getLogger(__name__)


DEFAULT_MODE = 0o644


class PersistenceError(Exception):
    """An error indicating that fonts could not be persisted."""
    pass


def format_entry(key: str, value: str) -> str:
    """Format a resource entry the way `xrdb -edit` does."""
    return f'{key}:    {value}'


@dataclasses.dataclass(slots=True)
class _Line:
    text: str
    key: None | str = None
    value: None | str = None

    @classmethod
    def parse(cls, text: str) -> Self:
        content = text.replace('\\\n', '').strip()
        if not content or content.startswith(('!', '#')):
            return cls(text)
        key, colon, value = content.partition(':')
        if not colon:
            return cls(text)
        return cls(text, key.strip(), value.strip())


class ResourceDatabase:
    """An ordered, editable model of a resource file."""

    def __init__(self, lines: Sequence[_Line] = ()) -> None:
        self._lines = list(lines)

    @classmethod
    def parse(cls, text: str) -> Self:
        lines: list[_Line] = []
        pending = ''
        for physical in text.splitlines(keepends=True):
            pending += physical
            if physical.rstrip('\n').endswith('\\'):
                continue
            lines.append(_Line.parse(pending.rstrip('\n')))
            pending = ''
        if pending:
            lines.append(_Line.parse(pending.rstrip('\n')))
        return cls(lines)

    @classmethod
    def load(cls, path: str | Path) -> Self:
        """Load the resource file. A missing file yields an empty database."""
        path = Path(path).expanduser()
        try:
            text = path.read_text(encoding='utf8')
        except FileNotFoundError:
            _logger.info('resource file "%s" does not exist yet', path)
            return cls()
        except OSError as x:
            raise PersistenceError(f'unable to read resource file "{path}"') from x
        return cls.parse(text)

    def entries(self) -> Iterator[tuple[str, str]]:
        for line in self._lines:
            if line.key is not None and line.value is not None:
                yield line.key, line.value

    def get(self, key: str) -> None | str:
        """Get the value for the key. Like xrdb, the last entry wins."""
        value = None
        for k, v in self.entries():
            if k == key:
                value = v
        return value

    def set(self, key: str, value: str) -> Self:
        """Replace every entry for the key or, if there is none, append one."""
        found = False
        for line in self._lines:
            if line.key == key:
                line.text = format_entry(key, value)
                line.value = value
                found = True
        if not found:
            self._lines.append(_Line(format_entry(key, value), key, value))
        return self

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    @staticmethod
    def font_keys(namespace: str, role: FontRole) -> tuple[str, str]:
        """Get the tight and loose resource keys for the role."""
        # A tight binding with a dot takes precedence over a loose one.
        return f'{namespace}.{role.value}', role.key(namespace)

    def get_font(self, namespace: str, role: FontRole) -> None | str:
        for key in self.font_keys(namespace, role):
            if (value := self.get(key)) is not None:
                return value
        return None

    def set_font(self, namespace: str, role: FontRole, descriptor: str) -> Self:
        """
        Set the font for the role. An existing tight binding is updated as well,
        since it would otherwise shadow the new font.
        """
        tight, loose = self.font_keys(namespace, role)
        if self.get(tight) is not None:
            self.set(tight, descriptor)
        return self.set(loose, descriptor)

    def fonts(self, namespace: str) -> dict[FontRole, str]:
        """Get all fonts for the namespace."""
        fonts = {}
        for role in FontRole:
            if (font := self.get_font(namespace, role)) is not None:
                fonts[role] = font
        return fonts

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    def render(self) -> str:
        if not self._lines:
            return ''
        return '\n'.join(line.text for line in self._lines) + '\n'

    def save(self, path: str | Path) -> None:
        """
        Save the database, replacing the file atomically. A symbolic link is
        followed, so that its target is replaced, and the file keeps its mode.
        """
        path = Path(path).expanduser().resolve()
        tmp = None
        try:
            try:
                mode = stat.S_IMODE(path.stat().st_mode)
            except FileNotFoundError:
                mode = DEFAULT_MODE
            fd, tmp = tempfile.mkstemp(
                dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp'
            )
            with os.fdopen(fd, 'w', encoding='utf8') as file:
                file.write(self.render())
            os.chmod(tmp, mode)
            os.replace(tmp, path)
        except OSError as x:
            if tmp is not None:
                with suppress(FileNotFoundError):
                    os.unlink(tmp)
            raise PersistenceError(f'unable to write resource file "{path}"') from x
        _logger.info('saved resource file "%s"', path)


# --------------------------------------------------------------------------------------


class FontStore(Protocol):
    """The interface for persisting fonts."""

    def persist(self, fonts: Mapping[FontRole, str]) -> None:
        """Persist the fonts for their roles."""
        ...


class FileStore:
    """A font store that edits the resource file directly."""

    def __init__(self, path: str | Path, namespace: str) -> None:
        self._path = Path(path).expanduser()
        self._namespace = namespace

    def persist(self, fonts: Mapping[FontRole, str]) -> None:
        db = ResourceDatabase.load(self._path)
        for role, descriptor in fonts.items():
            db.set_font(self._namespace, role, descriptor)
        db.save(self._path)


Runner = Callable[..., subprocess.CompletedProcess[Any]]


class XrdbStore:
    """
    A font store that updates the X server's resource database and the file.
    It loads the file, merges the new fonts, and then edits the file with the
    merged resources.
    """

    def __init__(
        self,
        path: str | Path,
        namespace: str,
        runner: None | Runner = None,
    ) -> None:
        self._path = Path(path).expanduser()
        self._namespace = namespace
        self._runner = runner or subprocess.run

    def _xrdb(self, *args: str, input: None | str = None) -> None:
        command = ['xrdb', *args]
        _logger.info('running "%s"', ' '.join(command))
        try:
            self._runner(
                command,
                input=input,
                check=True,
                capture_output=True,
                encoding='utf8',
            )
        except subprocess.CalledProcessError as x:
            stderr = (x.stderr or '').strip()
            raise PersistenceError(
                f'"{" ".join(command)}" failed with status {x.returncode}'
                + (f': {stderr}' if stderr else '')
            ) from x
        except OSError as x:
            raise PersistenceError(f'unable to run "{" ".join(command)}"') from x

    def persist(self, fonts: Mapping[FontRole, str]) -> None:
        # Like FileStore, also merge an existing tight binding, which would
        # otherwise shadow the new font.
        db = ResourceDatabase.load(self._path)
        entries = ''
        for role, descriptor in fonts.items():
            tight, loose = db.font_keys(self._namespace, role)
            if db.get(tight) is not None:
                entries += format_entry(tight, descriptor) + '\n'
            entries += format_entry(loose, descriptor) + '\n'
        self._xrdb('-load', str(self._path))
        self._xrdb('-merge', input=entries)
        self._xrdb('-edit', str(self._path))
