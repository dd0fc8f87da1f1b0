from enum import StrEnum


class FontRole(StrEnum):
    """
    The logical role of a font. Its value is the name of the corresponding
    resource, which is qualified with the terminal's resource namespace.
    """

    NORMAL = 'font'
    BOLD = 'boldFont'
    ITALIC = 'italicFont'
    BOLD_ITALIC = 'boldItalicFont'

    def key(self, namespace: str) -> str:
        """Get the resource key for this role, e.g., `URxvt*boldFont`."""
        return f'{namespace}*{self.value}'
