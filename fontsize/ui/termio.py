from collections.abc import Iterator
from contextlib import contextmanager
import io
import logging
import os
import select
import shutil
import sys
import termios
import tty
from typing import cast, ClassVar, Never, Self, TextIO

from ..role import FontRole
from .terminal import Terminal


__all__ = (
    "BEL",
    "OSC",
    "ST",
    "TermIO",
    "join",
)


_logger = logging.getLogger(__name__)


BEL = "\a"
CSI = "\x1b["
OSC = "\x1b]"
ST = "\x1b\\"


def join(*parts: int | str) -> str:
    """Join the stringified parts of an escape sequence."""
    return "".join(str(p) for p in parts)


class TermIO:
    """
    A convenient interface for terminal I/O.

    In general, methods that write to the terminal do *not* flush the output.
    However, if a method name contains `request`, the method flushes the output
    after writing the request.
    """

    def __init__(
        self,
        input: None | TextIO = None,
        output: None | TextIO = None,
        terminal: None | Terminal = None,
    ) -> None:
        self._input = input or sys.__stdin__
        self._output = output or sys.__stderr__
        self._terminal = terminal or Terminal.current()
        self._cbreak_mode = False
        self._buffer_level = 0

    @property
    def terminal(self) -> Terminal:
        return self._terminal

    def is_tty(self) -> bool:
        """Determine whether both input and output are attached to a terminal."""
        return self._input.isatty() and self._output.isatty()

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~
    # Basic Support for Reading

    @contextmanager
    def cbreak_mode(self) -> Iterator[Self]:
        """
        Put the terminal into cbreak mode. Unlike for cooked mode, a terminal in
        cbreak mode does not wait for the end of line and forwards individual
        keystrokes. Unlike for raw more, a terminal in cbreak mode still handles
        special key combinations such as control-C. An application must enter
        cbreak mode before issuing requests.
        """
        if self._cbreak_mode:
            raise AssertionError("terminal already is in cbreak mode")

        fileno = self._input.fileno()
        settings = termios.tcgetattr(fileno)
        self._cbreak_mode = True
        tty.setcbreak(fileno)
        try:
            yield self
        finally:
            termios.tcsetattr(fileno, termios.TCSADRAIN, settings)
            self._cbreak_mode = False

    def check_cbreak_mode(self) -> Self:
        """Check that the terminal is in cbreak mode."""
        if not self._cbreak_mode:
            raise AssertionError("terminal not in cbreak mode")
        return self

    def read(self, /, length: int = 3, timeout: float = 0) -> bytes:
        """Read from this terminal, which must be in cbreak mode."""
        self.check_cbreak_mode()
        fileno = self._input.fileno()
        if timeout > 0:
            ready, _, _ = select.select([fileno], [], [], timeout)
            if not ready:
                raise TimeoutError()
        return os.read(fileno, length)

    ESCAPE_TIMEOUT: ClassVar[float] = 0.5

    def read_escape(self) -> bytes:
        """
        Read an escape sequence from this terminal, which must be in cbreak
        mode. Font reports are OSC sequences, which end in either BEL or ST.
        """
        self.check_cbreak_mode()
        buffer = bytearray()

        def next_byte() -> int:
            b = self.read(length=1, timeout=self.ESCAPE_TIMEOUT)[0]
            buffer.append(b)
            return b

        def bad_byte(b: int) -> Never:
            raise ValueError(f"unexpected key code 0x{b:02X}")

        b = next_byte()
        if b != 0x1B:
            bad_byte(b)

        # CSI Control Sequence
        # --------------------

        b = next_byte()
        if b == 0x5B:  # [
            b = next_byte()
            while 0x30 <= b <= 0x3F:
                b = next_byte()
            while 0x20 <= b <= 0x2F:
                b = next_byte()
            if 0x40 <= b <= 0x7E:
                return bytes(buffer)
            bad_byte(b)

        # DCS/SOS/OSC/PM/APC Control Sequence (Ending in BEL or ST)
        # ---------------------------------------------------------

        if b in (0x50, 0x58, 0x5D, 0x5E, 0x5F):  # P,X,],^,_
            b = next_byte()
            while b not in (0x07, 0x1B):
                b = next_byte()
            if b == 0x07:
                return bytes(buffer)
            b = next_byte()
            if b == 0x5C:  # \\
                return bytes(buffer)
            bad_byte(b)

        # Escape Sequence
        # ---------------

        while 0x20 <= b <= 0x2F:
            b = next_byte()
        if 0x30 <= b <= 0x7E:
            return bytes(buffer)
        bad_byte(b)

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~
    # Basic Support for Writing

    def _write(self, text: str) -> Self:
        expected = len(text)
        actual = self._output.write(text)
        assert expected == actual
        return self

    def write(self, text: str) -> Self:
        """Write out all of the text. Do not flush."""
        return self._write(text)

    def writeln(self, text: None | str = None) -> Self:
        """
        Write the text followed by a newline character. That character may cause
        the underlying stream to flush itself.
        """
        if text:
            self._write(text)
        return self._write("\n")

    def escape(self, *parts: int | str) -> Self:
        """
        Write the stringified and joined escape sequence to the terminal. Do not
        flush. This method must not be used for content, only escape sequences.
        """
        self._write(join(*parts))
        return self

    def flush(self) -> Self:
        """Flush the output."""
        self._output.flush()
        return self

    def style(self, *parameters: int | str) -> Self:
        """Modify the style, including text appearance and colors."""
        return self.escape(CSI, ";".join(str(p) for p in parameters), "m")

    def plain(self) -> Self:
        """Reset styles to plain."""
        return self.escape(CSI, "m")

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~
    # Basic Support for Requests and Reports

    def raw_request(self, *query: int | str) -> None | bytes:
        """
        Submit the given request and return the resulting report. This method
        does flush the output. It returns `None` upon timing out. The terminal
        must be in cbreak mode.
        """
        try:
            return (
                self
                .check_not_buffering()
                .check_cbreak_mode()
                .escape(*query)
                .flush()
                .read_escape()
            )
        except TimeoutError:
            return None

    def request_text(
        self, *query: int | str, prefix: str, suffixes: tuple[str, ...] = (ST,)
    ) -> None | str:
        """
        Submit the given request, convert the resulting report to Unicode, check
        the text for prefix and one of the suffixes, and return the intermediate
        text.
        """
        if (report := self.raw_request(*query)) is None:
            return None
        text = report.decode("utf8")
        if not text.startswith(prefix):
            return None
        for suffix in suffixes:
            if text.endswith(suffix):
                return text[len(prefix) : -len(suffix)]
        return None

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~
    # Fonts

    def supports(self, role: FontRole) -> bool:
        """Determine whether the terminal has a control sequence for the role."""
        return self._terminal.osc_code(role) is not None

    def set_font(self, role: FontRole, descriptor: str) -> Self:
        """
        Instruct the terminal to use the font for the role. Terminals without a
        control sequence for the role are left unchanged. Do not flush.
        """
        if (code := self._terminal.osc_code(role)) is None:
            _logger.info("%s has no control sequence for %s", self._terminal, role.name)
            return self
        _logger.info('setting %s font to "%s"', role.name.lower(), descriptor)
        return self.escape(OSC, code, ";", descriptor, ST)

    def request_font(self, role: FontRole) -> None | str:
        """
        Request the font currently used for the role. This method returns `None`
        if the terminal does not support the role or does not answer in time.
        The terminal must be in cbreak mode.
        """
        if (code := self._terminal.osc_code(role)) is None:
            return None
        try:
            font = self.request_text(
                OSC, code, ";?", ST, prefix=join(OSC, code, ";"), suffixes=(ST, BEL)
            )
        except ValueError as x:
            _logger.warning("malformed report for %s font: %s", role.name.lower(), x)
            return None
        return font or None

    # ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~ ~
    # Buffering

    def is_buffering(self) -> bool:
        """Determine whether this terminal is buffering."""
        return self._buffer_level > 0

    def check_not_buffering(self) -> Self:
        """Check that this terminal is not currently buffering."""
        if self._buffer_level > 0:
            raise AssertionError("terminal is buffering when it shouldn't")
        return self

    @contextmanager
    def buffer(self) -> Iterator[Self]:
        """
        Redirect all output, including control sequences, into a buffer. If the
        context manager exits normally, it writes the buffer's contents to the
        original output stream. Otherwise, it discards them.
        """
        saved_output = self._output
        self._buffer_level += 1
        self._output = io.StringIO()
        try:
            yield self
        except:
            self._output.close()  # discard buffer contents
            raise  # reraise exception
        finally:
            nested_output = cast(io.StringIO, self._output)
            self._output = saved_output
            self._buffer_level -= 1
            if not nested_output.closed:
                nested_output.seek(0)
                shutil.copyfileobj(nested_output, saved_output)

    def get_buffer(self) -> str:
        """Get the current buffer contents."""
        if not self.is_buffering():
            raise AssertionError('get_buffer() only works inside "with buffer()" block')
        return cast(io.StringIO, self._output).getvalue()
