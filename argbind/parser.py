"""
Argbind parser: registration, the parse protocol, help and fault routing.

What this module provides
- ArgumentParser: owns the descriptor table and runs a parse in two phases:
  • flag matching: every named descriptor is matched (canonical name first,
    then short form), then positional assignments ('label=value');
  • help recognition: reserved tokens left over after flag matching print
    help and exit with status 0;
  • positional distribution: leading leftovers go to positional descriptors.
  What neither phase consumed is returned.
- fail(parser, fault): default failure callback (print, help, exit 1).
- reraise(parser, fault): failure callback for library-style use.

Quick start
    from argbind import ArgumentParser, Slot

    parser = ArgumentParser("tool", "does things")
    level = Slot(0)
    files = []
    parser.int_var(level, "--level", "verbosity", short_flag="-l", choices=range(4))
    parser.text_var(files, "files", "inputs", nargs=-1)
    rest = parser.parse(["-l", "2", "a.txt", "b.txt"])

Configuration
- Everything lives on the instance: help_flags, on_error, colorful, fancy and
  widest_claim are constructor keywords; on_error can be replaced later.
- Cosmetic host overrides: __styles__ (palette) and __prog__ (program name)
  in __main__.
"""
import os
import sys
from collections import defaultdict

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .descriptors import UNBOUNDED, Descriptor, IntVar, TextVar, BoolVar, FileVar
from .engine import match, distribute
from .faults import DuplicateDescriptorError, ParsingError, stamp
from .utils import *

TERMINATOR = "--"
"""
End-of-options marker.

The first bare `--` splits the input before any flag is matched, so it can
never be the value of a flag written as `--sep --`. Use the assignment form
(`--sep=--`) to pass it as a value.
"""



def fail(parser, fault, /):
    """
    default failure callback.

    prints the fault as one diagnostic line and the help text to stderr, then
    exits with status 1.
    """
    Console(stderr=True).print(fault)
    parser.print_help(stderr=True)
    sys.exit(1)


def reraise(parser, fault, /):
    """
    failure callback that hands the fault back to the caller of parse().
    """
    raise fault


class ArgumentParser:
    """
    Descriptor table plus the two-phase parse protocol.

    Parameters
    - prog: program name shown in help and diagnostics (defaults to the
      basename of sys.argv[0]).
    - description: one-line summary shown under the usage line.
    - help_flags: reserved tokens that request help (default: -h, --help).
    - on_error: callback(parser, fault) invoked for every parse fault. When it
      returns, the fault is raised to the caller of parse().
    - colorful / fancy: rendering switches for help and diagnostics.
    - widest_claim: when True, positional descriptors all read from the same
      head and only the widest claim is removed; by default their
      consumption is summed.
    """

    prog = mirror("prog")
    description = mirror("description")
    help_flags = mirror("help_flags")
    descriptors = mirror("descriptors")
    open_files = mirror("handles")
    colorful = mirror("colorful")
    fancy = mirror("fancy")
    widest_claim = mirror("widest_claim")

    def __init__(
            self,
            prog=Unset,
            description=Unset,
            /,
            *,
            help_flags=("-h", "--help"),
            on_error=Unset,
            colorful=True,
            fancy=False,
            widest_claim=False,
    ):
        if not isinstance(prog, str | Unset):
            raise TypeError("parser 'prog' must be a string")
        elif isinstance(prog, str) and not (prog := prog.strip()):
            raise ValueError("parser 'prog' cannot be empty")

        if not isinstance(description, str | Text | Unset):
            raise TypeError("parser 'description' must be a string")
        elif isinstance(description, str) and not (description := description.strip()):
            raise ValueError("parser 'description' cannot be empty")

        if isinstance(help_flags, str):
            raise TypeError("parser 'help_flags' must be an iterable of strings, not a string")
        help_flags = tuple(help_flags)
        if not all(isinstance(flag, str) and flag.startswith("-") for flag in help_flags):
            raise ValueError("parser 'help_flags' must only contain flag names")

        for name, value in (("colorful", colorful), ("fancy", fancy), ("widest_claim", widest_claim)):
            if not isinstance(value, bool):
                raise TypeError(f"parser {name!r} must be a boolean")

        self._prog = coalesce(prog, os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "argbind")
        self._description = coalesce(description)
        self._help_flags = help_flags
        self._colorful = colorful
        self._fancy = fancy
        self._widest_claim = widest_claim
        self._descriptors = {}
        self._handles = []
        self.on_error = coalesce(on_error, fail)

    @property
    def on_error(self):
        return self._on_error

    @on_error.setter
    def on_error(self, callback):
        if not callable(callback):
            raise TypeError("parser 'on_error' must be callable")
        self._on_error = callback

    def __repr__(self):
        return "argument-parser(prog=%r, descriptors=%r)" % (self._prog, tuple(self._descriptors))

    def __rich_repr__(self):
        yield "prog", self._prog
        yield "description", self._description
        yield "descriptors", tuple(self._descriptors.values())

    # --- registration -----------------------------------------------------

    def _claimed(self):
        for descriptor in self._descriptors.values():
            yield from descriptor.flags

    def _ensure_unique(self, name, short_flag=Unset, /):
        claimed = set(self._claimed())
        for candidate in (name, short_flag):
            if isinstance(candidate, str) and (candidate := candidate.strip()) in claimed:
                raise DuplicateDescriptorError(
                    "%r was already added to the parser" % candidate,
                    hint="register each name and short flag once",
                    name=candidate,
                )

    def register(self, descriptor, /):
        """
        add a prebuilt descriptor to the table and return it.

        names and short flags share one namespace; reusing either raises
        DuplicateDescriptorError.
        """
        if not isinstance(descriptor, Descriptor):
            raise TypeError("register() argument must be a descriptor")
        self._ensure_unique(descriptor.name, coalesce(descriptor.short_flag, Unset))
        self._descriptors[descriptor.name] = descriptor
        return descriptor

    def _add(self, cls, destination, name, help, options, /):
        # checked before construction so a duplicate never writes its default
        self._ensure_unique(name, options.get("short_flag", Unset))
        return self.register(cls(destination, name, help, **options))

    def int_var(self, destination, name, help=Unset, /, **options):
        """register an integer descriptor (see IntVar for options)."""
        return self._add(IntVar, destination, name, help, options)

    def text_var(self, destination, name, help=Unset, /, **options):
        """register a text descriptor (see TextVar for options)."""
        return self._add(TextVar, destination, name, help, options)

    def bool_var(self, destination, name, help=Unset, /, **options):
        """register a boolean descriptor (see BoolVar for options)."""
        return self._add(BoolVar, destination, name, help, options)

    def file_var(self, destination, name, help=Unset, /, **options):
        """register a file descriptor (see FileVar for options)."""
        return self._add(FileVar, destination, name, help, options)

    # --- parsing ----------------------------------------------------------

    def _track(self, descriptor, value, /):
        if isinstance(descriptor, FileVar) and descriptor.close_on_exit:
            self._handles.append(value)

    def _parse(self, tokens, /):
        # tokens after the terminator are never flags nor help requests
        if TERMINATOR in tokens:
            index = tokens.index(TERMINATOR)
            head, tail = tokens[:index], tokens[index + 1:]
        else:
            head, tail = tokens, ()

        named = [descriptor for descriptor in self._descriptors.values() if descriptor.named]
        positionals = [descriptor for descriptor in self._descriptors.values() if not descriptor.named]

        for descriptor in named:
            head, _ = match(descriptor, head, hook=self._track)

        # help is only recognized once flag values are gone
        if any(token in self._help_flags for token in head):
            self.print_help()
            sys.exit(0)

        pending = []
        for descriptor in positionals:
            head, assigned = match(descriptor, head, hook=self._track)
            if not assigned:
                pending.append(descriptor)

        return distribute(pending, head + tail, widest_claim=self._widest_claim, hook=self._track)

    def parse(self, args=Unset, /):
        """
        parse `args` (default: sys.argv[1:]) and return the unparsed remainder.

        faults go through on_error; if it returns, the fault is raised here.
        """
        tokens = tuple(sys.argv[1:] if args is Unset else args)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("parse() argument must be a sequence of strings")

        try:
            remainder = self._parse(tokens)
        except ParsingError as error:
            fault = error
        else:
            return list(remainder)

        self.trigger(fault)

    def trigger(self, fault, /):
        """
        route a parsing fault through on_error, then raise it.
        """
        if not isinstance(fault, ParsingError):
            raise TypeError("trigger() argument must be a parsing fault")
        stamped = stamp(fault, prog=self._prog, colorful=self._colorful, fancy=self._fancy)
        self._on_error(self, stamped)
        raise stamped.with_traceback(fault.__traceback__)

    def close_all_open_files(self):
        """
        close every tracked handle, in opening order.

        on the first failure the failing handle and the ones after it stay
        tracked and the error propagates.
        """
        while self._handles:
            self._handles[0].close()
            self._handles.pop(0)

    # --- help -------------------------------------------------------------

    def print_help(self, *, stderr=False):
        """
        Render the help text with rich.

        Palette keys
        - usage-label, program-name, usage-section, description-section
        - group-label, flag-name, positional-name, metavar, choice
        - required, default, help-text, panel-title

        Customization
        - Define a mapping named __styles__ in __main__ to override any palette entry.
        - When colorful is False, styling is suppressed.
        """
        console = Console(stderr=stderr)
        styles = defaultdict(str, {
            # === Head sections ===
            "usage-label": "bold #00E6FF",  # CYAN → signature info color
            "program-name": "bold #FF4D94",  # MAGENTA-PINK → brand pop
            "usage-section": "bold #36C5F0",  # SKY-BLUE → softer than cyan
            "description-section": "italic #A3A3A3",  # Neutral gray

            # === Groups / descriptors ===
            "group-label": "bold #FFFFFF",  # Pure white headers
            "flag-name": "bold #00E6FF",
            "positional-name": "bold #22C55E",
            "metavar": "bold #FFD600",  # AMBER for values
            "choice": "bold #FF4D94",  # MAGENTA → choices stand out
            "required": "bold #EF4444",
            "default": "#737373",
            "help-text": "#9CA3AF",  # Muted gray

            # === Fancy panel ===
            "panel-title": "bold #FF4D94",
        } | getattr(__import__("__main__"), "__styles__", {}))

        def styler(style):
            return styles[style] if self._colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not self._colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), style)

        prog = getattr(__import__("__main__"), "__prog__", self._prog)

        def values(descriptor):
            # choices replace the metavar; arity repeats it
            if getattr(descriptor, "choices", ()):
                one = Text.assemble("{", Text(",").join(text(repr(choice), styler("choice")) for choice in descriptor.choices), "}")
            else:
                one = text("<%s>" % descriptor.metavar, styler("metavar"))
            if descriptor.arity == 0:
                return Text("")
            if descriptor.arity == UNBOUNDED:
                return Text.assemble(one, " ...")
            return Text(" ").join([one] * descriptor.arity)

        def usage(descriptor):
            if descriptor.named:
                part = Text(" ").join(filter(None, [text(descriptor.name, styler("flag-name")), values(descriptor)]))
            else:
                part = values(descriptor)
            return part if descriptor.required else Text.assemble("[", part, "]")

        def notes(descriptor):
            parts = [text(descriptor.help, styler("help-text"))] if descriptor.help else []
            if descriptor.required:
                parts.append(text("(required)", styler("required")))
            elif not descriptor.binding.collection and descriptor.destination.value is not None:
                default = descriptor.destination.value
                parts.append(text("(default: %s)" % getattr(default, "name", repr(default)), styler("default")))
            return Text(" ").join(parts)

        renders = []

        named = [descriptor for descriptor in self._descriptors.values() if descriptor.named]
        positionals = [descriptor for descriptor in self._descriptors.values() if not descriptor.named]

        renders.append(Text(" ").join([
            text("usage:", styler("usage-label")),
            text(prog, styler("program-name")),
            *(text(usage(descriptor), styler("usage-section")) for descriptor in named),
            *(text(usage(descriptor), styler("usage-section")) for descriptor in positionals),
        ]))

        if self._description:
            renders.extend([Text(""), text(self._description, styler("description-section"))])

        if named or self._help_flags:
            table = Table.grid(padding=(0, 2))
            table.add_column(no_wrap=True)
            table.add_column()
            for descriptor in named:
                names = Text(", ").join(text(name, styler("flag-name")) for name in sorted(descriptor.flags, key=len))
                table.add_row(Text(" ").join(filter(None, [names, values(descriptor)])), notes(descriptor))
            if self._help_flags:
                table.add_row(
                    Text(", ").join(text(flag, styler("flag-name")) for flag in self._help_flags),
                    text("show this help message and exit", styler("help-text")),
                )
            renders.extend([Text(""), text("flags:", styler("group-label")), table])

        if positionals:
            table = Table.grid(padding=(0, 2))
            table.add_column(no_wrap=True)
            table.add_column()
            for descriptor in positionals:
                table.add_row(text(descriptor.metavar, styler("positional-name")), notes(descriptor))
            renders.extend([Text(""), text("positionals:", styler("group-label")), table])

        renderable = Group(*renders)
        if self._fancy:
            renderable = Panel(renderable, title=text(prog, styler("panel-title")), title_align="left")

        console.print(renderable)


__all__ = (
    "TERMINATOR",
    "ArgumentParser",
    "fail",
    "reraise",
)
