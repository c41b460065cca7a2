"""
Argbind parsing engine.

The engine works on tuples of raw tokens and never mutates them: every step
returns a new remainder. It knows nothing about help, callbacks or handle
bookkeeping; faults are raised as ParsingError subclasses and opened values
are reported through an optional hook(descriptor, value).

Pieces
- consume(): the arity consumer. Converts `count` tokens starting at an index
  and writes them through the descriptor's binding.
- match(): the flag matcher. Finds a descriptor's token (canonical name first,
  then the short form), splits an embedded 'name=value', consumes the values
  and excises the whole span.
- distribute(): the positional distributor. Hands the leading tokens of the
  remainder to positional descriptors in registration order.

    >>> from argbind import Slot, IntVar
    >>> level = Slot(0)
    >>> tokens, found = match(IntVar(level, "--level", short_flag="-l"), ("-l", "3", "rest"))
    >>> tokens, found, level.value
    (('rest',), True, 3)
"""
import io

from .descriptors import UNBOUNDED
from .faults import (
    EmptyAssignedValueError,
    InsufficientArgumentsError,
    InsufficientPositionalArgumentsError,
    MissingRequiredFlagError,
    MissingRequiredPositionalError,
    ParsingError,
)
from .utils import pluralize


def locate(tokens, name, /, *, assigned=False):
    """
    index of the first token equal to `name` or starting with 'name=', or -1.

    with assigned=True only the 'name=' form counts (bare positional labels
    are data, not names).
    """
    prefix = name + "="
    for index, token in enumerate(tokens):
        if (token == name and not assigned) or token.startswith(prefix):
            return index
    return -1


def consume(descriptor, tokens, start, count, /, *, hook=None):
    """
    convert `count` tokens from `start` and write them through `descriptor`.

    - count 0 is the presence toggle of a boolean flag: value_on_exist is
      written and nothing is consumed.
    - count UNBOUNDED takes everything from `start` onward.
    - every value is converted before the first write, so a conversion fault
      leaves the destination untouched and closes the handles already opened.
    - the hook sees each value right before it is written.

    returns the number of tokens consumed.
    """
    available = len(tokens) - start
    if count == UNBOUNDED:
        count = available

    if count > available:
        raise InsufficientArgumentsError(
            "%r expects %s, got %d" % (descriptor.name, pluralize("value", count), max(available, 0)),
            hint="pass %s after %s" % (pluralize("value", count), descriptor.name),
            descriptor=descriptor,
            index=start,
        )

    if count == 0:
        descriptor.put(descriptor.value_on_exist)
        return 0

    values = []
    try:
        for token in tokens[start:start + count]:
            values.append(descriptor.convert(token))
    except ParsingError:
        # handles opened before the failing token are never written anywhere
        for value in values:
            if isinstance(value, io.IOBase):
                value.close()
        raise

    for value in values:
        if hook is not None:
            hook(descriptor, value)
        descriptor.put(value)

    return count


def match(descriptor, tokens, /, *, hook=None):
    """
    match one descriptor by name and consume its values.

    flags are probed by canonical name, then by short form; positionals only
    match an assignment ('label=value'). returns (remainder, matched).
    """
    tokens = tuple(tokens)
    names = descriptor.flags if descriptor.named else (descriptor.name,)

    for name in names:
        if (index := locate(tokens, name, assigned=not descriptor.named)) >= 0:
            break
    else:
        if descriptor.named and descriptor.required:
            raise MissingRequiredFlagError(
                "missing required flag %s" % "/".join(names),
                hint="pass %s <%s>" % (names[0], descriptor.metavar) if descriptor.arity else "pass %s" % names[0],
                descriptor=descriptor,
            )
        return tokens, False

    count = descriptor.arity
    flag, separator, value = tokens[index].partition("=")
    if separator:
        if not value:
            raise EmptyAssignedValueError(
                "no value assigned to %s" % flag,
                hint="add a value after '=' (for example: %s=<%s>)" % (flag, descriptor.metavar),
                descriptor=descriptor,
                token=tokens[index],
                index=index,
            )
        tokens = tokens[:index] + (flag, value) + tokens[index + 1:]
        # an assignment supplies at least the embedded value
        if count in (0, UNBOUNDED):
            count = 1

    consumed = consume(descriptor, tokens, index + 1, count, hook=hook)
    return tokens[:index] + tokens[index + 1 + consumed:], True


def distribute(descriptors, tokens, /, *, widest_claim=False, hook=None):
    """
    assign the head of `tokens` to positional descriptors, in order.

    - scalar destinations take one token.
    - fixed arity k takes min(k, remaining); a required descriptor with fewer
      than k tokens left is a fault.
    - unbounded arity takes everything left.

    by default each descriptor starts where the previous one stopped. with
    widest_claim=True every descriptor reads from the same head and only the
    widest claim is removed from the remainder.

    returns the unconsumed remainder.
    """
    tokens = tuple(tokens)
    head = widest = 0

    for descriptor in descriptors:
        start = 0 if widest_claim else head
        available = len(tokens) - start

        if not descriptor.binding.collection:
            wanted = 1
        elif descriptor.arity == UNBOUNDED:
            wanted = available
        else:
            wanted = descriptor.arity

        # fixed-arity sequences report a short count, even when nothing is left
        fixed = descriptor.binding.collection and descriptor.arity != UNBOUNDED
        if descriptor.required and available == 0 and not fixed:
            raise MissingRequiredPositionalError(
                "missing required positional %s" % descriptor.metavar,
                hint="pass %s after the flags" % ("at least one value for %s" % descriptor.metavar if wanted == 0 else pluralize("value", wanted)),
                descriptor=descriptor,
                index=start,
            )
        if descriptor.required and available < wanted:
            raise InsufficientPositionalArgumentsError(
                "positional %s expects %s, got %d" % (descriptor.metavar, pluralize("value", wanted), available),
                hint="pass %s for %s" % (pluralize("value", wanted), descriptor.metavar),
                descriptor=descriptor,
                index=start,
            )

        taken = consume(descriptor, tokens, start, min(wanted, available), hook=hook) if available else 0
        head = start + taken
        widest = max(widest, taken)

    return tokens[widest if widest_claim else head:]


__all__ = (
    "locate",
    "consume",
    "match",
    "distribute",
)
