"""
Command Parser
Quote-aware tokenizer for chat commands
"""

from typing import List

QUOTE_CHARS = ("'", '"')


def parse_command_args(text: str) -> List[str]:
    """
    Split a command line into tokens.

    Whitespace separates tokens. Text between a matching pair of ``'`` or
    ``"`` belongs to the current token, spaces included. A quote without a
    closing partner is kept as a literal character.

        >>> parse_command_args('follow "Steve Smith"')
        ['follow', 'Steve Smith']
        >>> parse_command_args('say "hello world')
        ['say', '"hello', 'world']
    """
    tokens = []
    current = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]
        if char in QUOTE_CHARS:
            end = text.find(char, i + 1)
            if end == -1:
                current.append(char)
                i += 1
                continue
            current.append(text[i + 1:end])
            i = end + 1
        elif char.isspace():
            if current:
                tokens.append("".join(current))
                current = []
            i += 1
        else:
            current.append(char)
            i += 1

    if current:
        tokens.append("".join(current))
    return tokens
