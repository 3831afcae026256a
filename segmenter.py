import logging

logger = logging.getLogger(__name__)

# No line on the wire is ever longer than this
LINE_LIMIT = 90


def continuation_indent(line, limit=LINE_LIMIT):
    """
    Number of spaces that prefix every continuation line of `line`.

    Continuations line up one column past the "Name: " label, i.e. the
    first colon's index + 5. Lines without a colon, or whose label is too
    wide to leave room for text, continue with no indent at all.
    """
    colon = line.find(':')
    if colon < 0:
        return 0
    indent = colon + 5
    if indent >= limit:
        return 0
    return indent


def segment(line, limit=LINE_LIMIT):
    """
    Split `line` into wire lines of at most `limit` characters.

    The first wire line carries the first `limit` characters verbatim; every
    following one is the continuation indent plus the next chunk of text.
    """
    if len(line) <= limit:
        return [line]

    indent = continuation_indent(line, limit)
    chunk = limit - indent
    spaces = ' ' * indent

    parts = [line[:limit]]
    for i in range(limit, len(line), chunk):
        parts.append(spaces + line[i:i + chunk])

    logger.debug("Message cut up into %d pieces", len(parts))
    return parts


def reassemble(parts, limit=LINE_LIMIT):
    """Inverse of segment(): drop the continuation indent and join."""
    if not parts:
        return ''
    indent = continuation_indent(parts[0], limit)
    return parts[0] + ''.join(p[indent:] for p in parts[1:])


class Reassembler:
    """
    Collects wire lines until the blank line that ends every block, then
    hands back the original message.
    """

    def __init__(self, limit=LINE_LIMIT):
        self.limit = limit
        self.parts = []

    def feed(self, line):
        if line:
            self.parts.append(line)
            return None
        if not self.parts:
            # blank line with nothing buffered
            return None
        message = reassemble(self.parts, self.limit)
        self.parts = []
        return message

    def pending(self):
        return bool(self.parts)
