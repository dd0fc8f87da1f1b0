from enum import Enum


__all__ = ('Command',)


class Command(Enum):
    """A font size command. Its value is the direction for stepping."""

    DECREMENT = -1
    INCREMENT = 1

    @classmethod
    def of(cls, text: 'str | Command') -> 'Command':
        """
        Decode the command. Only `increment` and its abbreviations, including
        `+`, increment. Every other value decrements.
        """
        if isinstance(text, Command):
            return text
        word = text.strip().lower()
        if word == '+' or (len(word) >= 3 and 'increment'.startswith(word)):
            return cls.INCREMENT
        return cls.DECREMENT

    @property
    def delta(self) -> int:
        return self.value

    @property
    def increment(self) -> bool:
        return self is Command.INCREMENT

    @property
    def decrement(self) -> bool:
        return self is Command.DECREMENT

    def flip(self) -> 'Command':
        if self is Command.INCREMENT:
            return Command.DECREMENT
        return Command.INCREMENT
