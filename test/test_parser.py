"""
ArgumentParser behavioral tests.

Scope
- Registration: typed helpers, duplicate names/short flags, structural faults.
- Parse protocol: flag matching, positional assignments and distribution, the
  '--' terminator, help recognition, remainder.
- Failure routing: reraise, the default fail() callback, returning callbacks.
- File handle bookkeeping and help rendering.

Conventions
- Parsers are built with on_error=reraise and colorful=False unless the test
  is about the failure callback or rendering.
"""
import contextlib
import io
import os
import tempfile
import unittest
from unittest import TestCase, mock

from argbind import ArgumentParser, Slot, TextVar, open_file, reraise
from argbind.faults import *


def make_parser(**options):
    return ArgumentParser("tool", "test tool", **{"on_error": reraise, "colorful": False} | options)


class RegistrationTest(TestCase):

    def setUp(self):
        self.parser = make_parser()

    def testHelpersReturnRegisteredDescriptors(self):
        descriptor = self.parser.int_var(Slot(0), "--level", "verbosity", short_flag="-l")
        self.assertEqual(self.parser.descriptors, {"--level": descriptor})
        self.assertEqual(type(descriptor).__typename__, "int-var")
        for helper, typename in (
                (self.parser.text_var, "text-var"),
                (self.parser.bool_var, "bool-var"),
                (self.parser.file_var, "file-var"),
        ):
            with self.subTest(helper=helper.__name__):
                descriptor = helper(Slot(), "--" + typename)
                self.assertEqual(type(descriptor).__typename__, typename)

    def testRegisterPrebuiltDescriptor(self):
        descriptor = self.parser.register(TextVar(Slot(), "source"))
        self.assertIn("source", self.parser.descriptors)
        self.assertIs(self.parser.descriptors["source"], descriptor)
        with self.assertRaises(TypeError):
            self.parser.register("source")

    def testDuplicateName(self):
        self.parser.int_var(Slot(0), "--level")
        with self.assertRaises(DuplicateDescriptorError):
            self.parser.text_var(Slot(), "--level")

    def testDuplicateShortFlag(self):
        self.parser.int_var(Slot(0), "--level", short_flag="-l")
        with self.assertRaises(DuplicateDescriptorError):
            self.parser.int_var(Slot(0), "--limit", short_flag="-l")
        with self.assertRaises(DuplicateDescriptorError):
            self.parser.int_var(Slot(0), "-l")

    def testDuplicateDoesNotWriteDefault(self):
        self.parser.int_var(Slot(0), "--level")
        slot = Slot(0)
        with self.assertRaises(DuplicateDescriptorError):
            self.parser.int_var(slot, "--level", default=7)
        self.assertEqual(slot.value, 0)

    def testStructuralFaultsBypassCallback(self):
        calls = []
        parser = make_parser(on_error=lambda parser, fault: calls.append(fault))
        with self.assertRaises(UnresolvableDestinationError):
            parser.int_var(["x"], "--level", nargs=2)
        with self.assertRaises(CollectionArityMismatchError):
            parser.int_var(Slot(0), "--point", nargs=2)
        with self.assertRaises(InvalidArityError):
            parser.int_var([], "--point", nargs=-1)
        self.assertEqual(calls, [])
        self.assertEqual(parser.descriptors, {})

    def testConstructorValidation(self):
        with self.assertRaises(TypeError):
            ArgumentParser(42)
        with self.assertRaises(ValueError):
            ArgumentParser("  ")
        with self.assertRaises(TypeError):
            ArgumentParser("tool", help_flags="-h")
        with self.assertRaises(ValueError):
            ArgumentParser("tool", help_flags=["help"])
        with self.assertRaises(TypeError):
            ArgumentParser("tool", colorful="yes")
        with self.assertRaises(TypeError):
            ArgumentParser("tool", on_error="ignore")

    def testOnErrorCanBeReplaced(self):
        self.parser.on_error = print
        self.assertIs(self.parser.on_error, print)
        with self.assertRaises(TypeError):
            self.parser.on_error = None


class ParseTest(TestCase):

    def setUp(self):
        self.parser = make_parser()
        self.integer = Slot(0)
        self.parser.int_var(self.integer, "--integer", "an integer", short_flag="-i", choices=[1, 2, 3, 4])

    def testEquivalentFlagForms(self):
        for args in (["--integer", "3"], ["--integer=3"], ["-i", "3"], ["-i=3"]):
            with self.subTest(args=args):
                self.integer.value = 0
                self.assertEqual(self.parser.parse(args), [])
                self.assertEqual(self.integer.value, 3)

    def testRemainderIsReturned(self):
        self.assertEqual(self.parser.parse(["-i", "2", "extra"]), ["extra"])
        self.assertEqual(self.integer.value, 2)

    def testDefaultStaysWhenAbsent(self):
        self.assertEqual(self.parser.parse(["a", "b"]), ["a", "b"])
        self.assertEqual(self.integer.value, 0)

    def testChoiceViolation(self):
        with self.assertRaises(ValueNotInChoicesError) as context:
            self.parser.parse(["-i", "5"])
        fault = context.exception
        self.assertEqual(fault.options["prog"], "tool")
        self.assertEqual(fault.options["token"], "5")
        self.assertEqual(self.integer.value, 0)

    def testInvalidValue(self):
        with self.assertRaises(InvalidValueError):
            self.parser.parse(["--integer", "two"])

    def testMissingValue(self):
        with self.assertRaises(InsufficientArgumentsError):
            self.parser.parse(["-i"])

    def testEmptyAssignedValue(self):
        with self.assertRaises(EmptyAssignedValueError):
            self.parser.parse(["--integer="])

    def testArgsMustBeStrings(self):
        with self.assertRaises(TypeError):
            self.parser.parse(["-i", 2])

    def testDefaultsToSysArgv(self):
        with mock.patch("sys.argv", ["tool", "-i", "4", "tail"]):
            self.assertEqual(self.parser.parse(), ["tail"])
        self.assertEqual(self.integer.value, 4)

    def testMissingRequiredFlag(self):
        self.parser.text_var(Slot(), "--name", required=True)
        with self.assertRaises(MissingRequiredFlagError):
            self.parser.parse(["-i", "1"])

    def testToggleAndLiteral(self):
        verbose = Slot()
        self.parser.bool_var(verbose, "--verbose", short_flag="-v")
        self.assertIs(verbose.value, False)
        self.parser.parse(["-v"])
        self.assertIs(verbose.value, True)
        self.parser.parse(["--verbose=false"])
        self.assertIs(verbose.value, False)

    def testBoolWithArity(self):
        flags = []
        self.parser.bool_var(flags, "--pair", nargs=2)
        self.assertEqual(self.parser.parse(["--pair", "t", "0", "x"]), ["x"])
        self.assertEqual(flags, [True, False])

    def testCanonicalNameWins(self):
        level = Slot(0)
        self.parser.int_var(level, "--level", short_flag="-l")
        self.assertEqual(self.parser.parse(["-l", "1", "--level", "2"]), ["-l", "1"])
        self.assertEqual(level.value, 2)

    def testNamedMatchedInRegistrationOrder(self):
        name = Slot()
        self.parser.text_var(name, "--name")
        # --integer is matched first and claims "-i 3", leaving --name without a value
        with self.assertRaises(InsufficientArgumentsError):
            self.parser.parse(["--name", "-i", "3"])
        self.assertIsNone(name.value)
        self.assertEqual(self.integer.value, 3)


class PositionalTest(TestCase):

    def setUp(self):
        self.parser = make_parser()
        self.verbose = Slot()
        self.source = Slot()
        self.target = Slot()
        self.parser.bool_var(self.verbose, "--verbose")
        self.parser.text_var(self.source, "source", "where from", required=True)
        self.parser.text_var(self.target, "target", "where to")

    def testDistribution(self):
        self.assertEqual(self.parser.parse(["a", "--verbose", "b", "c"]), ["c"])
        self.assertEqual((self.source.value, self.target.value), ("a", "b"))
        self.assertIs(self.verbose.value, True)

    def testAssignment(self):
        self.assertEqual(self.parser.parse(["target=b", "a"]), [])
        self.assertEqual((self.source.value, self.target.value), ("a", "b"))

    def testMissingRequired(self):
        with self.assertRaises(MissingRequiredPositionalError):
            self.parser.parse(["--verbose"])

    def testTerminator(self):
        self.assertEqual(self.parser.parse(["--", "--verbose", "x", "y"]), ["y"])
        self.assertEqual((self.source.value, self.target.value), ("--verbose", "x"))
        self.assertIs(self.verbose.value, False)

    def testTerminatorAsFlagValue(self):
        separator = Slot()
        self.parser.text_var(separator, "--sep")
        self.assertEqual(self.parser.parse(["--sep=--", "a"]), [])
        self.assertEqual((separator.value, self.source.value), ("--", "a"))
        # a bare "--" always ends the options, even right after a flag
        with self.assertRaises(InsufficientArgumentsError):
            self.parser.parse(["--sep", "--", "a"])

    def testOnlyFirstTerminatorSplits(self):

        self.assertEqual(self.parser.parse(["a", "--", "--", "b"]), ["b"])
        self.assertEqual((self.source.value, self.target.value), ("a", "--"))

    def testUnbounded(self):
        parser = make_parser()
        files = []
        parser.text_var(files, "files", nargs=-1)
        self.assertEqual(parser.parse(["a", "b", "c"]), [])
        self.assertEqual(files, ["a", "b", "c"])

    def testInsufficientRequired(self):
        parser = make_parser()
        parser.int_var([], "pair", nargs=2, required=True)
        with self.assertRaises(InsufficientPositionalArgumentsError):
            parser.parse(["1"])

    def testWidestClaim(self):
        parser = make_parser(widest_claim=True)
        source, rest = Slot(), []
        parser.text_var(source, "source")
        parser.text_var(rest, "rest", nargs=2)
        self.assertEqual(parser.parse(["a", "b", "c", "d"]), ["c", "d"])
        self.assertEqual(source.value, "a")
        self.assertEqual(rest, ["a", "b"])


class HelpTest(TestCase):

    def setUp(self):
        self.parser = make_parser()
        self.parser.int_var(Slot(0), "--integer", "an integer", short_flag="-i", choices=[1, 2, 3, 4])
        self.parser.text_var(Slot(), "--name", "your name", required=True)
        self.parser.text_var([], "files", "input files", nargs=-1)

    def render(self, **options):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            self.parser.print_help(**options)
        return stdout.getvalue()

    def testHelpExitsWithZero(self):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout), self.assertRaises(SystemExit) as context:
            self.parser.parse(["--name", "x", "--help"])
        self.assertEqual(context.exception.code, 0)
        self.assertIn("usage: tool", stdout.getvalue())

    def testHelpTokenAsFlagValue(self):
        name = Slot()
        parser = make_parser()
        parser.text_var(name, "--name")
        self.assertEqual(parser.parse(["--name", "--help"]), [])
        self.assertEqual(name.value, "--help")

    def testHelpAfterTerminatorIsData(self):
        self.assertEqual(make_parser().parse(["--", "-h"]), ["-h"])

    def testCustomHelpFlags(self):
        parser = make_parser(help_flags=["-?"])
        self.assertEqual(parser.parse(["-h"]), ["-h"])
        with contextlib.redirect_stdout(io.StringIO()), self.assertRaises(SystemExit):
            parser.parse(["-?"])

    def testContent(self):
        output = self.render()
        self.assertIn("usage: tool", output)
        self.assertIn("test tool", output)
        self.assertIn("flags:", output)
        self.assertIn("-i, --integer {1,2,3,4}", output)
        self.assertIn("(default: 0)", output)
        self.assertIn("(required)", output)
        self.assertIn("-h, --help", output)
        self.assertIn("positionals:", output)
        self.assertIn("FILES", output)
        self.assertIn("<FILES> ...", output)

    def testFancy(self):
        self.parser = make_parser(fancy=True)
        self.assertIn("╭", self.render())


class FailureTest(TestCase):

    def testDefaultCallbackExitsWithOne(self):
        parser = ArgumentParser("tool", colorful=False)
        parser.int_var(Slot(0), "--integer", short_flag="-i", choices=[1, 2, 3, 4])
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr), self.assertRaises(SystemExit) as context:
            parser.parse(["-i", "5"])
        self.assertEqual(context.exception.code, 1)
        self.assertIn("22122", stderr.getvalue())
        self.assertIn("usage: tool", stderr.getvalue())

    def testReturningCallbackStillRaises(self):
        calls = []
        parser = make_parser(on_error=lambda parser, fault: calls.append((parser, fault)))
        parser.text_var(Slot(), "--name", required=True)
        with self.assertRaises(MissingRequiredFlagError) as context:
            parser.parse([])
        self.assertEqual(len(calls), 1)
        self.assertIs(calls[0][0], parser)
        self.assertIs(calls[0][1], context.exception)

    def testCallbackCanRaiseItsOwnError(self):
        class Abort(Exception):
            pass

        def abort(parser, fault):
            raise Abort(fault.code)

        parser = make_parser(on_error=abort)
        parser.int_var(Slot(0), "--integer")
        with self.assertRaises(Abort) as context:
            parser.parse(["--integer", "x"])
        self.assertEqual(context.exception.args, (FaultCode.INVALID_VALUE,))

    def testTriggerRejectsConfigurationErrors(self):
        with self.assertRaises(TypeError):
            make_parser().trigger(DuplicateDescriptorError("dup"))


class FileHandleTest(TestCase):

    def setUp(self):
        self.directory = tempfile.TemporaryDirectory()
        self.addCleanup(self.directory.cleanup)
        self.path = os.path.join(self.directory.name, "input.txt")
        with open(self.path, "w") as file:
            file.write("payload")

    def testTrackedHandles(self):
        parser = make_parser()
        handle = Slot()
        parser.file_var(handle, "--input", close_on_exit=True)
        parser.parse(["--input", self.path])
        self.assertEqual(parser.open_files, (handle.value,))
        self.assertEqual(handle.value.read(), "payload")
        parser.close_all_open_files()
        self.assertTrue(handle.value.closed)
        self.assertEqual(parser.open_files, ())

    def testCloseFailureKeepsRemainingHandles(self):
        class Busy:
            closed = False

            def close(self):
                raise OSError("device busy")

        parser = make_parser()
        descriptor = parser.file_var(Slot(), "--input", close_on_exit=True)
        first, busy, last = open(self.path), Busy(), open(self.path)
        self.addCleanup(last.close)
        for handle in (first, busy, last):
            parser._track(descriptor, handle)
        with self.assertRaises(OSError):
            parser.close_all_open_files()
        self.assertTrue(first.closed)
        self.assertEqual(parser.open_files, (busy, last))

    def testUntrackedHandles(self):
        parser = make_parser()
        handles = []
        parser.file_var(handles, "inputs", nargs=-1)
        parser.parse([self.path, self.path])
        self.assertEqual(len(handles), 2)
        self.assertEqual(parser.open_files, ())
        for handle in handles:
            handle.close()

    def testOpenFailure(self):
        parser = make_parser()
        parser.file_var(Slot(), "--input", close_on_exit=True)
        with self.assertRaises(ResourceOpenError) as context:
            parser.parse(["--input", os.path.join(self.directory.name, "missing.txt")])
        self.assertIsInstance(context.exception.__cause__, FileNotFoundError)
        self.assertEqual(parser.open_files, ())

    def testPartialOpenFailureLeavesNothingOpen(self):
        parser = make_parser()
        files = []
        parser.file_var(files, "--inputs", nargs=2, close_on_exit=True)
        with self.assertRaises(ResourceOpenError):
            parser.parse(["--inputs", self.path, os.path.join(self.directory.name, "missing.txt")])
        self.assertEqual(files, [])
        self.assertEqual(parser.open_files, ())

    def testHelpShowsDefaultPath(self):
        parser = make_parser()
        handle = open_file(self.path)
        self.addCleanup(handle.close)
        parser.file_var(Slot(handle), "--input")
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            parser.print_help()
        self.assertIn("input.txt)", stdout.getvalue())

    @unittest.skipUnless(os.name == "posix", "permission bits are posix-only")

    def testWriteModeCreatesWithPerms(self):
        parser = make_parser()
        handle = Slot()
        path = os.path.join(self.directory.name, "output.txt")
        parser.file_var(handle, "--output", mode="w", perms=0o600, close_on_exit=True)
        parser.parse(["--output=" + path])
        handle.value.write("done")
        parser.close_all_open_files()
        self.assertEqual(os.stat(path).st_mode & 0o777, 0o600)
        with open(path) as file:
            self.assertEqual(file.read(), "done")


if __name__ == "__main__":
    unittest.main()
