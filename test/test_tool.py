from collections.abc import Iterator
from contextlib import contextmanager
import io
from pathlib import Path
import tempfile
from typing import Self
import unittest
from unittest import mock

from fontsize import __version__
from fontsize.resources import PersistenceError, ResourceDatabase
from fontsize.role import FontRole
from fontsize.tool import run
from fontsize.ui.terminal import Terminal
from fontsize.ui.termio import OSC, ST, join, TermIO

from test.test_resources import Runner
from test.test_termio import NotATerminal, ScriptedTermIO, rxvt, xterm


XRESOURCES = (
    'URxvt*font: xft:Monaco:pixelsize=10\n'
    'URxvt*boldFont: xft:Monaco:bold:pixelsize=10\n'
)


class FailingStore:
    def persist(self, fonts: object) -> None:
        raise PersistenceError('disk full')


class TtyTermIO(ScriptedTermIO):
    """A scripted terminal attached to a TTY."""

    def is_tty(self) -> bool:
        return True

    @contextmanager
    def cbreak_mode(self) -> Iterator[Self]:
        self._cbreak_mode = True
        try:
            yield self
        finally:
            self._cbreak_mode = False


def report(code: int, font: str) -> bytes:
    return join(OSC, code, ';', font, ST).encode('utf8')


class TestTool(unittest.TestCase):

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / '.Xresources'
        self.output = NotATerminal()
        self.termio = TermIO(
            NotATerminal(), self.output, Terminal.default()  # type: ignore
        )
        self.stdout = io.StringIO()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def fontsize(self, *arguments: str) -> int:
        return run(
            ['fontsize', '--resources', str(self.path), *arguments],
            termio=self.termio,
            stdout=self.stdout,
        )

    def test_increment(self) -> None:
        self.path.write_text(XRESOURCES, encoding='utf8')
        self.assertEqual(self.fontsize('increment'), 0)

        db = ResourceDatabase.load(self.path)
        self.assertEqual(
            db.fonts('URxvt'),
            {
                FontRole.NORMAL: 'xft:Monaco:pixelsize=11',
                FontRole.BOLD: 'xft:Monaco:bold:pixelsize=11',
            }
        )
        self.assertEqual(
            ''.join(self.output.written),
            join(
                OSC, '710;xft:Monaco:pixelsize=11', ST,
                OSC, '711;xft:Monaco:bold:pixelsize=11', ST,
            )
        )

    def test_any_other_command_decrements(self) -> None:
        self.path.write_text(XRESOURCES, encoding='utf8')
        self.assertEqual(self.fontsize('shrink', '--no-apply'), 0)
        self.assertEqual(
            ResourceDatabase.load(self.path).get('URxvt*font'),
            'xft:Monaco:pixelsize=9',
        )
        self.assertEqual(self.output.written, [])

    def test_explicit_font(self) -> None:
        status = self.fontsize(
            'increment',
            '--font', 'xft:DejaVu Sans Mono:pixelsize=12',
            '--no-apply',
            '--no-persist',
            '--print',
        )
        self.assertEqual(status, 0)
        self.assertEqual(
            self.stdout.getvalue(),
            'URxvt*font:    xft:DejaVu Sans Mono:pixelsize=13\n',
        )
        self.assertFalse(self.path.exists())

    def test_namespace(self) -> None:
        self.path.write_text('Rxvt*font: xft:Mono:pixelsize=10\n', encoding='utf8')
        self.assertEqual(self.fontsize('decrement', '--namespace', 'Rxvt'), 0)
        self.assertEqual(
            ResourceDatabase.load(self.path).get('Rxvt*font'), 'xft:Mono:pixelsize=9'
        )

    def test_no_fonts(self) -> None:
        self.assertEqual(self.fontsize('increment'), 1)
        self.assertIn('There are no fonts to resize.', ''.join(self.output.written))

    def test_malformed_font(self) -> None:
        status = self.fontsize(
            '--font', 'xft:Monaco:pixelsize=10:pixelsize=11', '--no-persist'
        )
        self.assertEqual(status, 1)
        written = ''.join(self.output.written)
        self.assertIn('Unable to resize malformed normal font', written)
        self.assertIn('In particular: font descriptor has more than one', written)

    def test_persistence_failure(self) -> None:
        status = run(
            ['fontsize', '--font', 'xft:Mono:pixelsize=10', '--no-apply'],
            termio=self.termio,
            stdout=self.stdout,
            store=FailingStore(),
        )
        self.assertEqual(status, 1)
        written = ''.join(self.output.written)
        self.assertIn('Unable to save the fonts', written)
        self.assertIn('In particular: disk full', written)

    def test_version(self) -> None:
        self.assertEqual(self.fontsize('--version'), 0)
        self.assertEqual(self.stdout.getvalue(), f'fontsize {__version__}\n')

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    def resize(self, termio: TermIO, *arguments: str) -> int:
        return run(
            ['fontsize', '--resources', str(self.path), *arguments],
            termio=termio,
            stdout=self.stdout,
        )

    def test_fonts_reported_by_terminal(self) -> None:
        self.path.write_text(XRESOURCES, encoding='utf8')
        termio = TtyTermIO(
            rxvt(),
            report(710, 'xft:Iosevka:pixelsize=14'),
            report(711, 'xft:Iosevka:bold:pixelsize=14'),
        )
        self.assertEqual(self.resize(termio, 'increment'), 0)

        self.assertEqual(
            termio.queries, [join(OSC, '710;?', ST), join(OSC, '711;?', ST)]
        )
        self.assertEqual(
            ''.join(termio.output.written),
            join(
                OSC, '710;xft:Iosevka:pixelsize=15', ST,
                OSC, '711;xft:Iosevka:bold:pixelsize=15', ST,
            )
        )
        self.assertEqual(
            ResourceDatabase.load(self.path).fonts('URxvt'),
            {
                FontRole.NORMAL: 'xft:Iosevka:pixelsize=15',
                FontRole.BOLD: 'xft:Iosevka:bold:pixelsize=15',
            }
        )

    def test_terminal_without_answer(self) -> None:
        self.path.write_text(XRESOURCES, encoding='utf8')
        termio = TtyTermIO(rxvt(), None, None)
        self.assertEqual(self.resize(termio, 'increment'), 0)

        self.assertEqual(len(termio.queries), 2)
        self.assertEqual(
            ResourceDatabase.load(self.path).fonts('URxvt'),
            {
                FontRole.NORMAL: 'xft:Monaco:pixelsize=11',
                FontRole.BOLD: 'xft:Monaco:bold:pixelsize=11',
            }
        )

    def test_partially_reported_fonts(self) -> None:
        # xterm only reports the normal font, so the bold one comes from the file.
        self.path.write_text(XRESOURCES, encoding='utf8')
        termio = TtyTermIO(xterm(), report(50, 'xft:Monaco:pixelsize=13'))
        self.assertEqual(self.resize(termio, 'decrement'), 0)

        self.assertEqual(termio.queries, [join(OSC, '50;?', ST)])
        self.assertEqual(
            ''.join(termio.output.written),
            join(OSC, '50;xft:Monaco:pixelsize=11', ST),
        )
        self.assertEqual(
            ResourceDatabase.load(self.path).fonts('URxvt'),
            {
                FontRole.NORMAL: 'xft:Monaco:pixelsize=11',
                FontRole.BOLD: 'xft:Monaco:bold:pixelsize=9',
            }
        )

    def test_no_query(self) -> None:
        self.path.write_text(XRESOURCES, encoding='utf8')
        termio = TtyTermIO(rxvt())
        self.assertEqual(self.resize(termio, 'increment', '--no-query'), 0)
        self.assertEqual(termio.queries, [])
        self.assertEqual(
            ResourceDatabase.load(self.path).get('URxvt*font'),
            'xft:Monaco:pixelsize=11',
        )

    def test_xrdb(self) -> None:
        runner = Runner()
        with mock.patch('fontsize.resources.subprocess.run', runner):
            status = self.fontsize(
                'increment', '--font', 'xft:Mono:pixelsize=10', '--no-apply', '--xrdb'
            )
        self.assertEqual(status, 0)
        self.assertEqual(runner.calls, [
            (['xrdb', '-load', str(self.path)], None),
            (['xrdb', '-merge'], 'URxvt*font:    xft:Mono:pixelsize=11\n'),
            (['xrdb', '-edit', str(self.path)], None),
        ])
