"""
Session and context tests (registry, locks, resolution, run modes).

Scope
- Registration merges repeated declarations, first write wins per field.
- Lock rules for top-level options and sub-commands.
- Resolution: end-to-end values, command mismatch, bare-argument collection,
  strict mode, alias spelling in faults.
- Run modes: --help (static document or live collection), --generate-help.

Conventions
- Test method names follow CamelCase per project convention.
- Sessions are built with shell=False so faults raise and warnings are observable.
"""
import tempfile
import threading
import unittest
import warnings
from pathlib import Path
from unittest import TestCase, mock

from runopts import *


class RegistryTest(TestCase):
    """Context creation and option registration."""

    def setUp(self) -> None:
        self.session = Session([], shell=False)

    def testContextIsReused(self) -> None:
        first = self.session.context("Time Travel")
        second = self.session.context("Time Travel", "Travel through time")
        self.assertIs(first, second)
        # a missing description is filled, an existing one is kept
        self.assertEqual(first.description, "Travel through time")
        self.session.context("Time Travel", "Something else")
        self.assertEqual(first.description, "Travel through time")

    def testContextsKeepDeclarationOrder(self) -> None:
        for name in ("b", "a", "c"):
            self.session.context(name)
        self.assertEqual(list(self.session.contexts), ["b", "a", "c"])

    def testRepeatedRegistrationMerges(self) -> None:
        context = self.session.context("Time Travel")
        context.register("speed", OptionConfig(type="number", description="first"))
        merged = context.register("speed", OptionConfig(type="string", description="second", aliases=["s"]))
        self.assertEqual(merged.type, "number")
        self.assertEqual(merged.description, "first")
        self.assertEqual(merged.aliases, ("s",))
        self.assertIs(context.partitions[""]["speed"], merged)

    def testSubcommandPartitions(self) -> None:
        context = self.session.context("Time Travel")
        context.register("speed", command="advanced")
        self.assertEqual(list(context.partitions), ["", "advanced"])
        self.assertIn("speed", context.partitions["advanced"])
        self.assertNotIn("speed", context.partitions[""])

    def testDuplicatedCollectorRaises(self) -> None:
        context = self.session.context("Files")
        with self.assertRaises(DuplicatedCollectorError):
            context.declare({
                "input": OptionConfig(collect_not_prefixed_args=True),
                "output": OptionConfig(collect_not_prefixed_args=True),
            })

    def testCollectorsInDifferentCommandsAreAllowed(self) -> None:
        context = self.session.context("Files")
        context.register("input", OptionConfig(collect_not_prefixed_args=True))
        context.register("input", OptionConfig(collect_not_prefixed_args=True), command="copy")

    def testDuplicatedNameWarns(self) -> None:
        self.session.context("A").register("speed", OptionConfig(aliases=["s"]))
        with self.assertWarns(DuplicatedOptionWarning):
            self.session.context("B").register("s")

    def testOverloadSilencesDuplicates(self) -> None:
        self.session.context("A").register("speed")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.session.context("B").register("speed", OptionConfig(overload=True))
        self.assertEqual(caught, [])

    def testDuplicatesInOtherCommandsAreIgnored(self) -> None:
        self.session.context("A").register("speed", command="advanced")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.session.context("B").register("speed", command="basic")
        self.assertEqual(caught, [])

    def testTopLevelNameClashesWithCommandOption(self) -> None:
        # both are parsed from `advanced --speed 1`
        self.session.context("A").register("speed")
        with self.assertWarns(DuplicatedOptionWarning):
            self.session.context("B").register("speed", command="advanced")

    def testCommandOptionClashesWithTopLevelName(self) -> None:
        self.session.context("A").register("velocity", OptionConfig(aliases=["s"]), command="advanced")
        with self.assertWarns(DuplicatedOptionWarning):
            self.session.context("B").register("s")

    def testInvalidArguments(self) -> None:
        context = self.session.context("A")
        with self.assertRaises(ValueError):
            context.register("")
        with self.assertRaises(TypeError):
            context.register(42)
        with self.assertRaises(TypeError):
            context.register("speed", {"type": "number"})
        with self.assertRaises(TypeError):
            context.declare([("speed", OptionConfig())])
        with self.assertRaises(TypeError):
            Session("--help")

    def testInvalidOptionNamesRaise(self) -> None:
        context = self.session.context("A")
        with self.assertRaises(ValueError):
            context.register("foo bar")
        with self.assertRaises(ValueError):
            context.options({"speed!": OptionConfig()})
        with self.assertRaises(ValueError):
            context.option("--")
        self.assertEqual(dict(context.partitions[""]), {})
        # leading dashes are accepted and removed
        context.register("--dry-run")
        self.assertIn("dry-run", context.partitions[""])


class ConcurrencyTest(TestCase):
    """Debounced writes run on a timer thread while the program keeps declaring."""

    def testRenderWhileRegistering(self) -> None:
        session = Session([], shell=False)
        context = session.context("Bulk")
        errors = []
        done = threading.Event()

        def render():
            while not done.is_set():
                try:
                    session.render(session.markdown)
                except RuntimeError as error:
                    errors.append(error)
                    return

        thread = threading.Thread(target=render)
        thread.start()
        try:
            for index in range(300):
                session.context("Extra %d" % index).register("extra%d" % index)
                context.register("opt%d" % index)
                context.register("sub%d" % index, command="cmd%d" % index)
        finally:
            done.set()
            thread.join()

        self.assertEqual(errors, [])
        document = session.render(session.markdown)
        self.assertIn("`--opt299`", document)
        self.assertIn("### cmd299", document)


class LockTest(TestCase):
    """Closing scopes to other contexts."""

    def setUp(self) -> None:
        self.session = Session([], shell=False)
        self.owner = self.session.context("Owner")
        self.other = self.session.context("Other")

    def testGlobalLock(self) -> None:
        self.owner.declare({}, allow_other_options=False)
        with self.assertRaises(LockedOptionsError):
            self.other.register("speed")
        # the locking context itself and overloaded options are still accepted
        self.owner.register("speed")
        self.other.register("verbose", OptionConfig(type="boolean", overload=True))

    def testGlobalLockLeavesCommandsOpen(self) -> None:
        self.owner.declare({}, allow_other_options=False)
        self.other.register("speed", command="advanced")

    def testCommandLock(self) -> None:
        self.owner.declare({"speed": OptionConfig(type="number")}, command="advanced", allow_other_options=False)
        with self.assertRaises(LockedCommandError):
            self.other.register("speed", command="advanced")
        with self.assertRaises(LockedCommandError):
            self.other.declare({}, command="advanced", allow_other_options=False)
        # other commands and top-level options stay open
        self.other.register("speed", command="basic")
        self.other.register("verbose", OptionConfig(type="boolean"))


class ResolveTest(TestCase):
    """argv → typed values."""

    def testTimeTravel(self) -> None:
        session = Session(["--time", "June 28, 2009", "--traveler", "A", "--traveler", "B"], shell=False)
        values = session.context("Time Travel").options({
            "time": OptionConfig(type="string", required=True),
            "traveler": OptionConfig(type="string", required=True, multiple=True),
            "location": OptionConfig(type="string", default="X"),
        })
        self.assertEqual(values, {"time": "June 28, 2009", "traveler": ["A", "B"], "location": "X"})

    def testAdvancedCommand(self) -> None:
        session = Session(["advanced", "--speed", "4000", "--backup-location", "../backups/"], shell=False)
        values = session.context("Time Travel").command("advanced", {
            "speed": OptionConfig(type="number", default=100),
            "backup-location": OptionConfig(type="URL"),
        })
        self.assertEqual(values["speed"], 4000)
        self.assertEqual(values["backup-location"], (Path.cwd().parent / "backups").as_uri() + "/")

    def testCommandDefaults(self) -> None:
        session = Session(["advanced"], shell=False)
        values = session.context("Time Travel").command("advanced", {
            "speed": OptionConfig(type="number", default=100),
            "backup-location": OptionConfig(type="URL"),
        })
        self.assertEqual(values, {"speed": 100, "backup-location": None})

    def testCommandMismatchReturnsNone(self) -> None:
        session = Session(["basic"], shell=False)
        values = session.context("Time Travel").command("advanced", {
            "speed": OptionConfig(type="number", required=True),
        })
        self.assertIsNone(values)

    def testCommandNotGivenReturnsNone(self) -> None:
        session = Session(["--verbose"], shell=False)
        self.assertIsNone(session.context("Time Travel").command("advanced", {
            "speed": OptionConfig(required=True),
        }))

    def testInvokedCommandStillValidates(self) -> None:
        session = Session(["advanced"], shell=False)
        with self.assertRaises(MissingOptionError):
            session.context("Time Travel").command("advanced", {
                "speed": OptionConfig(type="number", required=True),
            })

    def testMissingRequiredRaises(self) -> None:
        session = Session([], shell=False)
        with self.assertRaises(MissingOptionError):
            session.context("Time Travel").options({"time": OptionConfig(required=True)})

    def testRequiredMultiple(self) -> None:
        session = Session([], shell=False)
        with self.assertRaises(MissingOptionError):
            session.context("A").options({"traveler": OptionConfig(required=True, multiple=True)})
        session = Session(["--traveler", "A"], shell=False)
        values = session.context("A").options({"traveler": OptionConfig(required=True, multiple=True)})
        self.assertEqual(values, {"traveler": ["A"]})

    def testAliasSpellingInFaults(self) -> None:
        session = Session(["-s", "fast"], shell=False)
        with self.assertRaises(InvalidNumberError) as context:
            session.context("A").options({"speed": OptionConfig(type="number", aliases=["s"])})
        self.assertIn("'-s'", context.exception.message)

    def testSingleBareArgument(self) -> None:
        session = Session(["notes.txt"], shell=False)
        values = session.context("Files").options({"input": OptionConfig(collect_not_prefixed_args=True)})
        self.assertEqual(values, {"input": "notes.txt"})

    def testTooManyBareArguments(self) -> None:
        session = Session(["a.txt", "b.txt"], shell=False)
        with self.assertRaises(TooManyArgumentsError):
            session.context("Files").options({"input": OptionConfig(collect_not_prefixed_args=True)})

    def testMultipleBareArguments(self) -> None:
        session = Session(["a.txt", "--verbose", "b.txt"], shell=False)
        values = session.context("Files").options({
            "input": OptionConfig(collect_not_prefixed_args=True, multiple=True),
            "verbose": OptionConfig(type="boolean"),
        })
        self.assertEqual(values, {"input": ["a.txt", "b.txt"], "verbose": True})

    def testStrictRejectsUnknownOptions(self) -> None:
        session = Session(["--bogus"], shell=False)
        with self.assertRaises(InvalidOptionError):
            session.context("A").options({"name": OptionConfig()}, allow_other_options=False)

    def testLenientIgnoresUnknownOptions(self) -> None:
        session = Session(["--bogus", "1", "--name", "x"], shell=False)
        values = session.context("A").options({"name": OptionConfig()})
        self.assertEqual(values, {"name": "x"})

    def testOptionReturnsSingleValue(self) -> None:
        session = Session(["-v"], shell=False)
        self.assertIs(session.context("A").option("verbose", OptionConfig(type="boolean", aliases=["v"])), True)

    def testResolveUsesMergedConfig(self) -> None:
        session = Session([], shell=False)
        context = session.context("A")
        context.register("speed", OptionConfig(type="number", default=100))
        self.assertEqual(context.resolve({"speed": OptionConfig(type="string")}), {"speed": 100})

    def testShellModeExits(self) -> None:
        session = Session([], prog="travel")
        with mock.patch("runopts.faults.console") as console:
            with self.assertRaises(SystemExit) as context:
                session.context("A").options({"time": OptionConfig(required=True)})
        self.assertEqual(context.exception.code, 1)
        fault = console.print.call_args.args[0]
        self.assertEqual(fault.options["prog"], "travel")
        self.assertTrue(fault.options["shell"])


class ModeTest(TestCase):
    """--help and --generate-help handling."""

    def setUp(self) -> None:
        self.directory = tempfile.TemporaryDirectory()
        self.path = Path(self.directory.name) / "RUN.md"

    def tearDown(self) -> None:
        self.directory.cleanup()

    def session(self, *argv, window=60):
        return Session(list(argv), shell=False, help_file=self.path, window=window)

    def testRunMode(self) -> None:
        session = self.session()
        general = session.bootstrap()
        self.assertIs(session.mode, Mode.RUN)
        self.assertFalse(session.collecting)
        self.assertEqual(general.name, DEFAULT_CONTEXT)
        self.assertIs(session.bootstrap(), general)
        # capture is a no-op while running
        session.capture()

    def testHelpFromStaticDocument(self) -> None:
        written = self.session()
        written.bootstrap()
        written.context("Time Travel").options({"time": OptionConfig(description="Arrival date")})
        written.write()

        session = self.session("--help")
        with mock.patch.object(Session, "print_help") as print_help:
            with self.assertRaises(SystemExit) as context:
                session.bootstrap()
        self.assertEqual(context.exception.code, EXIT_HELP)
        print_help.assert_called_once_with(keep_order=True)
        self.assertIn("time", session.contexts["Time Travel"].partitions[""])

    def testHelpWithoutStaticDocument(self) -> None:
        session = self.session("-h")
        with self.assertWarns(StaticHelpWarning), mock.patch("runopts.contexts.atexit") as hook:
            session.bootstrap()
        hook.register.assert_called_once_with(session._shutdown)
        self.assertIs(session.mode, Mode.HELP)
        self.assertTrue(session.collecting)

        # declarations are collected without validation
        values = session.context("Time Travel").options({"time": OptionConfig(required=True)})
        self.assertEqual(values, {"time": None})

        phases = []
        later = session.defer(lambda: phases.append(session.context("Backup")))
        with mock.patch.object(Session, "print_help") as print_help:
            with self.assertRaises(SystemExit) as context:
                session.capture()
        self.assertEqual(context.exception.code, EXIT_HELP)
        print_help.assert_called_once_with(keep_order=False)
        self.assertEqual(len(phases), 1)
        self.assertIn("Backup", session.contexts)
        # deferred phases run at most once
        later()
        self.assertEqual(len(phases), 1)

    def testGenerateHelp(self) -> None:
        session = self.session("--generate-help")
        with mock.patch("runopts.contexts.console"), mock.patch("runopts.contexts.atexit") as hook:
            session.bootstrap()
        self.assertIs(session.mode, Mode.GENERATE)
        hook.register.assert_called_once_with(session._shutdown)
        self.assertTrue(session.writer.pending)

        session.context("Time Travel").options({"time": OptionConfig(required=True, description="Arrival date")})
        with self.assertRaises(SystemExit) as context:
            session.capture()
        self.assertEqual(context.exception.code, EXIT_GENERATED)

        document = self.path.read_text(encoding="utf-8")
        self.assertIn("## Time Travel", document)
        self.assertIn("Arrival date", document)
        self.assertIn("`-h, --help`", document)
        self.assertNotIn("generate-help", document)
        self.assertLess(document.index("## Time Travel"), document.index("## General Options"))

    def testHelpPrintedAtExitWithoutCapture(self) -> None:
        session = self.session("--help")
        with self.assertWarns(StaticHelpWarning), mock.patch("runopts.contexts.atexit") as hook:
            session.bootstrap()
        session.context("Time Travel").options({"time": OptionConfig(required=True)})
        phases = []
        session.defer(lambda: phases.append("backup"))

        shutdown = hook.register.call_args.args[0]
        with mock.patch.object(Session, "print_help") as print_help, mock.patch("runopts.contexts.os._exit") as terminate:
            shutdown()
        print_help.assert_called_once_with(keep_order=False)
        terminate.assert_called_once_with(EXIT_HELP)
        self.assertEqual(phases, ["backup"])

    def testGenerateFinishesAtExitWithoutCapture(self) -> None:
        session = self.session("--generate-help")
        with mock.patch("runopts.contexts.console"), mock.patch("runopts.contexts.atexit") as hook:
            session.bootstrap()
        session.context("Time Travel").options({"time": OptionConfig(description="Arrival date")})

        shutdown = hook.register.call_args.args[0]
        with mock.patch("runopts.contexts.os._exit") as terminate:
            shutdown()
        terminate.assert_called_once_with(EXIT_GENERATED)
        self.assertIn("Arrival date", self.path.read_text(encoding="utf-8"))
        self.assertFalse(session.writer.pending)

    def testCaptureAndExitHookFinishOnce(self) -> None:
        session = self.session("--help")
        with self.assertWarns(StaticHelpWarning), mock.patch("runopts.contexts.atexit"):
            session.bootstrap()
        with mock.patch.object(Session, "print_help") as print_help, mock.patch("runopts.contexts.os._exit") as terminate:
            with self.assertRaises(SystemExit) as context:
                session.capture()
            session._shutdown()
        self.assertEqual(context.exception.code, EXIT_HELP)
        print_help.assert_called_once_with(keep_order=False)
        terminate.assert_called_once_with(EXIT_HELP)

    def testGenerateWithoutContextsWarns(self) -> None:
        session = self.session()
        with self.assertWarns(NoContextsWarning):
            self.assertFalse(session.generate())

    def testLoadWithoutDocumentWarns(self) -> None:
        session = self.session()
        with self.assertWarns(StaticHelpWarning):
            self.assertFalse(session.load())

    def testPrintHelp(self) -> None:
        session = self.session()
        session.context("Time Travel").options({"time": OptionConfig(description="Arrival date")})
        with mock.patch("runopts.contexts.Console") as console:
            session.print_help()
        text = console.return_value.print.call_args.args[0]
        self.assertIn("Arrival date", text.plain)


if __name__ == '__main__':
    unittest.main()
