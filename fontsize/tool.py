"""
Fontsize's command line tool.
"""

import argparse
from collections.abc import Sequence
from contextlib import AbstractContextManager
import logging
import os
import sys
from textwrap import dedent
import traceback
from types import TracebackType
from typing import TextIO

from .command import Command
from .descriptor import DescriptorError, pixel_size, step_fontset
from .resources import (
    FileStore,
    FontStore,
    PersistenceError,
    ResourceDatabase,
    XrdbStore,
    format_entry,
)
from .role import FontRole
from .ui.termio import TermIO
from . import __version__


_logger = logging.getLogger(__name__)


ROLES: tuple[FontRole, ...] = (FontRole.NORMAL, FontRole.BOLD)

DEFAULT_RESOURCES = '~/.Xresources'
DEFAULT_NAMESPACE = 'URxvt'


# --------------------------------------------------------------------------------------


class UserError(Exception):
    """
    An error indicating invalid user input or an unusable environment. When
    code raises this error, it probably is *not* helpful to print an exception
    trace.
    """


class user_error(AbstractContextManager['user_error']):
    """
    A context manager to turn one or more exceptions into a user error. If the
    context manager tries to exit with one of the listed exception types, it
    instead raises a `UserError` with the message `msg.format(*args, **kwargs)`.
    """

    def __init__(
        self,
        exc_types: type[BaseException] | Sequence[type[BaseException]],
        msg: str,
        *args: object,
        **kwargs: object,
    ) -> None:
        if isinstance(exc_types, type):
            exc_types = (exc_types,)

        self._exc_types = tuple(exc_types)
        self._msg = msg
        self._args = args
        self._kwargs = kwargs

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        _: TracebackType | None,
    ) -> None:
        if exc_type is not None and issubclass(exc_type, self._exc_types):
            msg = self._msg.format(*self._args, **self._kwargs)
            raise UserError(msg) from exc_value


# --------------------------------------------------------------------------------------


def width_limited_formatter(prog: str) -> argparse.HelpFormatter:
    return argparse.RawTextHelpFormatter(prog, width=70)


def configure_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fontsize',
        description='Step the pixel size of the terminal font and persist it.',
        epilog=dedent("""
            Fontsize reads the current normal and bold fonts, steps their pixel
            sizes, applies the new fonts to the running terminal, and saves
            them to the resource file. Any command other than `increment`
            decrements. Fonts without a pixel size are left alone. Monaco only
            steps through the sizes it renders well.

            To resize with a keypress in bash, bind the command, e.g.:

              bind -x '"\\e[1;5A": fontsize increment'
              bind -x '"\\e[1;5B": fontsize decrement'

            Fontsize requires Python 3.11 or later.
        """),
        formatter_class=width_limited_formatter,
    )

    parser.add_argument(
        'command',
        nargs='?',
        default='increment',
        help='"increment" to grow the font, anything else to\nshrink it',
    )

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    font_group = parser.add_argument_group('select fonts')
    font_group.add_argument(
        '--font',
        help='step this normal font instead of the current one',
    )
    font_group.add_argument(
        '--bold-font',
        help='step this bold font instead of the current one',
    )
    font_group.add_argument(
        '--query',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='ask the terminal for its current fonts (default is\nto ask)',
    )

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    store_group = parser.add_argument_group('configure resources')
    store_group.add_argument(
        '--resources',
        default=os.getenv('FONTSIZE_RESOURCES', DEFAULT_RESOURCES),
        help='use this resource file (default is $FONTSIZE_RESOURCES\n'
        f'or {DEFAULT_RESOURCES})',
    )
    store_group.add_argument(
        '--namespace',
        default=os.getenv('FONTSIZE_NAMESPACE', DEFAULT_NAMESPACE),
        help='qualify resources with this namespace (default is\n'
        f'$FONTSIZE_NAMESPACE or {DEFAULT_NAMESPACE})',
    )
    store_group.add_argument(
        '--xrdb',
        action='store_true',
        help='persist with xrdb, which also updates the running\nX server',
    )

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~

    out_group = parser.add_argument_group('control output')
    out_group.add_argument(
        '--no-apply',
        action='store_false',
        dest='apply',
        help='do not change the running terminal\'s fonts',
    )
    out_group.add_argument(
        '--no-persist',
        action='store_false',
        dest='persist',
        help='do not save the fonts to the resource file',
    )
    out_group.add_argument(
        '--print',
        action='store_true',
        help='print the new fonts as resource entries',
    )
    out_group.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='use verbose mode to enable instructive logging',
    )
    out_group.add_argument(
        '--version', '-V',
        action='store_true',
        help='display the tool version and exit',
    )

    return parser


# --------------------------------------------------------------------------------------


def emit_error(termio: TermIO, message: str) -> None:
    if termio.is_tty():
        termio.style(1, '38;5;160').write(message).plain().writeln()
    else:
        termio.writeln(message)
    termio.flush()


def run(
    arguments: Sequence[str],
    termio: None | TermIO = None,
    stdout: None | TextIO = None,
    store: None | FontStore = None,
) -> int:
    # ---------------------------------------------------------- Parse the options
    parser = configure_parser()
    options = parser.parse_args(arguments[1:])

    logging.basicConfig(
        format='[%(levelname)s] %(name)s: %(message)s',
        level=logging.INFO if options.verbose else logging.WARNING,
    )

    termio = termio or TermIO()
    stdout = stdout or sys.stdout

    try:
        return process(options, termio, stdout, store)
    except UserError as x:
        emit_error(termio, x.args[0])
        if x.__cause__ and x.__cause__.args:
            termio.writeln(f'In particular: {x.__cause__.args[0]}').flush()
        return 1
    except Exception as x:
        emit_error(
            termio,
            'Fontsize encountered an unexpected error. For details, please see the\n'
            'exception trace below.\n'
        )
        termio.writeln('\n'.join(traceback.format_exception(x))).flush()
        return 1


def current_fonts(options: argparse.Namespace, termio: TermIO) -> dict[FontRole, str]:
    """
    Determine the fonts to step. Fonts given as options take precedence over
    the fonts reported by the terminal, which take precedence over the fonts in
    the resource file. Roles the terminal does not report, e.g., xterm's bold
    font, come from the resource file as well.
    """
    fonts: dict[FontRole, str] = {}
    if options.font:
        fonts[FontRole.NORMAL] = options.font
    if options.bold_font:
        fonts[FontRole.BOLD] = options.bold_font
    if fonts:
        return fonts

    if options.query and termio.is_tty():
        with termio.cbreak_mode():
            for role in ROLES:
                if (font := termio.request_font(role)) is not None:
                    fonts[role] = font
        for role in fonts:
            _logger.info(
                'using %s font reported by %s', role.name.lower(), termio.terminal
            )

    missing = [role for role in ROLES if role not in fonts]
    if not missing:
        return fonts

    db = ResourceDatabase.load(options.resources)
    for role in missing:
        if (font := db.get_font(options.namespace, role)) is not None:
            fonts[role] = font
            _logger.info(
                'using %s font from "%s"', role.name.lower(), options.resources
            )
    return fonts


def process(
    options: argparse.Namespace,
    termio: TermIO,
    stdout: TextIO,
    store: None | FontStore,
) -> int:
    # ------------------------------------------------- Perform tool house keeping
    if options.version:
        stdout.write(f'fontsize {__version__}\n')
        return 0

    command = Command.of(options.command)

    # --------------------------------------------------------- Determine fonts
    with user_error(PersistenceError, 'Unable to read the current fonts'):
        fonts = current_fonts(options, termio)
    if not fonts:
        key = FontRole.NORMAL.key(options.namespace)
        raise UserError(
            f'There are no fonts to resize. Maybe set "{key}"\n'
            f'in "{options.resources}" or pass "--font".'
        )

    # -------------------------------------------------------------- Step fonts
    stepped: dict[FontRole, str] = {}
    for role, font in fonts.items():
        with user_error(
            DescriptorError, 'Unable to resize malformed {} font', role.name.lower()
        ):
            stepped[role] = step_fontset(font, command.delta)
        _logger.info(
            '%s %s font from pixel size %s to %s',
            command.name.lower(),
            role.name.lower(),
            pixel_size(font.split(',')[0]),
            pixel_size(stepped[role].split(',')[0]),
        )

    # ------------------------------------------------------------- Apply fonts
    if options.apply:
        for role, font in stepped.items():
            termio.set_font(role, font)
        termio.flush()

    # ----------------------------------------------------------- Persist fonts
    if options.persist:
        if store is None:
            store = (
                XrdbStore(options.resources, options.namespace)
                if options.xrdb
                else FileStore(options.resources, options.namespace)
            )
        with user_error(
            PersistenceError, 'Unable to save the fonts to "{}"', options.resources
        ):
            store.persist(stepped)

    if options.print:
        for role, font in stepped.items():
            stdout.write(format_entry(role.key(options.namespace), font) + '\n')
        stdout.flush()

    # ---------------------------------------------------------------------- Done
    return 0
