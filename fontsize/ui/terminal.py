from collections.abc import Iterator, Mapping
import dataclasses
import os
import sys
from typing import ClassVar, Self

from ..role import FontRole


@dataclasses.dataclass(frozen=True, slots=True)
class Terminal:
    """A terminal emulator and the OSC codes it uses for changing fonts."""

    name: str
    prefixes: tuple[str, ...]
    codes: Mapping[FontRole, int] = dataclasses.field(hash=False)

    @property
    def display(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.display

    def osc_code(self, role: FontRole) -> None | int:
        """Get the OSC code for setting the role's font."""
        return self.codes.get(role)

    _registry: ClassVar[None | dict[str, Self]] = None

    @classmethod
    def registry(cls) -> dict[str, Self]:
        if cls._registry is None:
            cls._registry = {}

            for terminal in (
                # rxvt-unicode sets the normal, bold, italic, and bold italic
                # fonts with OSC 710 through 713. Its TERM is rxvt-unicode or,
                # with the 256 color patch, rxvt-unicode-256color.
                cls(
                    "rxvt-unicode",
                    ("rxvt-unicode", "rxvt"),
                    {
                        FontRole.NORMAL: 710,
                        FontRole.BOLD: 711,
                        FontRole.ITALIC: 712,
                        FontRole.BOLD_ITALIC: 713,
                    },
                ),
                # xterm derives bold from the normal font and only has OSC 50.
                cls("xterm", ("xterm",), {FontRole.NORMAL: 50}),
            ):
                for prefix in terminal.prefixes:
                    key = prefix.casefold()
                    if key in cls._registry:
                        raise AssertionError(f"duplicate terminal name {prefix}")
                    cls._registry[key] = terminal

        return cls._registry

    @classmethod
    def all(cls) -> Iterator[Self]:
        seen: set[str] = set()
        for terminal in cls.registry().values():
            if terminal.name in seen:
                continue
            seen.add(terminal.name)
            yield terminal

    @classmethod
    def resolve(cls, ident: str) -> None | Self:
        """
        Resolve the terminal from a TERM value. The longest registered prefix
        wins, so that `rxvt-unicode-256color` resolves to rxvt-unicode.
        """
        ident = ident.casefold()
        registry = cls.registry()
        for prefix in sorted(registry, key=len, reverse=True):
            if ident.startswith(prefix):
                return registry[prefix]
        return None

    @classmethod
    def default(cls) -> Self:
        terminal = cls.resolve("rxvt-unicode")
        assert terminal is not None
        return terminal

    @classmethod
    def from_env(cls) -> None | Self:
        """Resolve the terminal based on the `TERM` environment variable."""
        if (term := os.getenv("TERM")) is None:
            return None
        return cls.resolve(term)

    @classmethod
    def current(cls) -> Self:
        """Resolve the current terminal, falling back on rxvt-unicode."""
        if (terminal := cls.from_env()) is not None:
            return terminal
        return cls.default()


if __name__ == "__main__":
    for arg in sys.argv[1:]:
        if arg not in ("-a",):
            print("usage: python -m fontsize.ui.terminal [-a]")
            sys.exit(1)

    if "-a" in sys.argv[1:]:
        for terminal in Terminal.all():
            codes = ", ".join(
                f"{role.name.lower()}={code}" for role, code in terminal.codes.items()
            )
            print(f"{terminal.display}: {codes}")
    else:
        print(Terminal.current().display)
