# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Tests for Job and its status, output, and events."""
import copy
import os
import pickle
import re
import signal
import subprocess
import sys
import typing
import unittest

from .flags import JobConfiguration, Project
from .impl import (
    CallbackRaised,
    Job,
    JobEvent,
    Running,
    Stopped,
    status_display,
)
from .summary import Summary

# Timeout allows heavy OS load while also detecting complete breakage
TIMEOUT = 60.0


def spawn(code: str, **kwargs: typing.Any) -> subprocess.Popen:
    """Start the current interpreter running code with piped output."""
    kwargs.setdefault("stdout", subprocess.PIPE)
    kwargs.setdefault("stderr", subprocess.STDOUT)
    return subprocess.Popen([sys.executable, "-c", code], **kwargs)


class JobTest(unittest.TestCase):
    """Unit tests (doubling as examples) for Job."""

    def setUp(self) -> None:
        self.config = JobConfiguration("Run", "/tmp/b", "Linux")
        self.project = Project("/work/Game/Game.yyp", display_name="Game!")

    def make_job(self, code: str, **kwargs: typing.Any) -> Job:
        job = Job(self.config, spawn(code, **kwargs), self.project)
        self.addCleanup(self.helper_reap, job)
        return job

    @staticmethod
    def helper_reap(job: Job) -> None:
        """Ensure no process outlives its test."""
        job.stop()
        job.done(timeout=TIMEOUT)

    def test_output_accumulates(self) -> None:
        """Observers see the entire buffer each time without CRs?"""
        code = (
            "import sys, time\n"
            "sys.stdout.write('one\\r\\n'); sys.stdout.flush()\n"
            "time.sleep(0.2)\n"
            "sys.stdout.write('two\\r\\n')\n"
        )
        job = self.make_job(code)
        seen = []  # type: typing.List[str]
        job.on(JobEvent.STDOUT, seen.append)
        self.assertTrue(job.done(timeout=TIMEOUT))

        invocation = " ".join([sys.executable, "-c", code])
        self.assertEqual(invocation + "\n\none\ntwo\n", job.output)
        self.assertTrue(seen, "At least one event observed")
        self.assertEqual(job.output, seen[-1])
        for previous, current in zip(seen, seen[1:]):
            self.assertTrue(current.startswith(previous), "Never truncated")
        for output in seen:
            self.assertNotIn("\r", output)
            self.assertTrue(output.startswith(invocation + "\n\n"))

    def test_stderr_separate(self) -> None:
        """Separately piped stderr lands in the same buffer?"""
        code = (
            "import sys\n"
            "sys.stderr.write('to stderr\\n'); sys.stderr.flush()\n"
            "sys.stdout.write('to stdout\\n')\n"
        )
        job = self.make_job(code, stderr=subprocess.PIPE)
        self.assertEqual(2, len(job.waitables()))
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertIn("to stderr\n", job.output)
        self.assertIn("to stdout\n", job.output)
        self.assertEqual([], job.waitables(), "Streams released")

    def test_no_streams(self) -> None:
        """Jobs whose process has no pipes are still reaped?"""
        job = self.make_job("pass", stdout=None, stderr=None)
        self.assertEqual([], job.waitables())
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(Stopped(stopped_by_user=False, exit_code=0), job.status)

    def test_natural_exit(self) -> None:
        """Normal exit resolves finished() and reports Finished?"""
        job = self.make_job("print('Igor complete.')")
        self.assertEqual(Running(), job.status)
        self.assertEqual("", job.status_display)
        self.assertIsNone(job.summary)
        future = job.finished()
        self.assertFalse(future.done())

        summaries = []  # type: typing.List[typing.Any]
        job.on("stop", summaries.append)
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertTrue(job.done(timeout=0), "Multiple calls OK")

        status = future.result(timeout=0)
        self.assertEqual(Stopped(stopped_by_user=False, exit_code=0), status)
        self.assertEqual(status, job.status)
        self.assertEqual("Finished", job.status_display)
        self.assertEqual(1, len(summaries))
        self.assertIsInstance(summaries[0], Summary)
        self.assertTrue(summaries[0].completed)
        self.assertIs(job.summary, summaries[0])

    def test_failed_exit(self) -> None:
        """Exit code 2 without stop() is a Failed, not user-stopped, Job?"""
        job = self.make_job("import sys; sys.exit(2)")
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(Stopped(stopped_by_user=False, exit_code=2), job.status)
        self.assertEqual("Failed", job.status_display)

    def test_stop(self) -> None:
        """Status changes immediately on stop() and survives the exit?"""
        job = self.make_job("import time; time.sleep(60)")
        stops = []  # type: typing.List[typing.Any]
        job.on(JobEvent.STOP, stops.append)
        self.assertFalse(job.done(timeout=0))

        job.stop()
        self.assertEqual(Stopped(stopped_by_user=True, exit_code=0), job.status)
        self.assertEqual("", job.status_display, "Computed at exit")
        self.assertEqual([], stops, "Not until the process exits")
        self.assertTrue(job.finished().done(), "Resolved as already stopped")

        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(Stopped(stopped_by_user=True, exit_code=0), job.status)
        self.assertEqual("Stopped", job.status_display)
        self.assertEqual(1, len(stops))

        job.stop()
        self.assertEqual(Stopped(stopped_by_user=True, exit_code=0), job.status)
        self.assertEqual(1, len(stops), "No further events")

    def test_finished_once(self) -> None:
        """finished() resolves exactly once however often it is requested?"""
        job = self.make_job("import time; time.sleep(60)")
        first, second = job.finished(), job.finished()
        resolved = []  # type: typing.List[typing.Any]
        first.add_done_callback(resolved.append)
        job.stop()
        job.stop()
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(job.status, first.result(timeout=0))
        self.assertEqual(job.status, second.result(timeout=0))
        self.assertEqual([first], resolved)
        third = job.finished()
        self.assertEqual(job.status, third.result(timeout=0))

    def test_late_stop_observer(self) -> None:
        """STOP observers registered after reaping fire immediately?"""
        job = self.make_job("pass")
        self.assertTrue(job.done(timeout=TIMEOUT))
        late = []  # type: typing.List[typing.Any]
        job.on(JobEvent.STOP, late.append)
        self.assertEqual([job.summary], late)
        job.on(JobEvent.STDOUT, late.append)
        self.assertEqual([job.summary], late, "STDOUT never replays")

    def helper_check_semantics(self, job: Job, seen: typing.List[str]) -> None:
        """Helper checking Job semantics *inside* a STOP observer."""
        # Confirm that inside an observer the Job reports done()
        self.assertTrue(job.done(timeout=0))
        self.assertIsInstance(job.status, Stopped)
        self.assertNotEqual("", job.status_display)

        # Confirm that inside an observer more STOP observers wait their turn
        job.on(JobEvent.STOP, lambda _: seen.append("nested"))
        self.assertEqual([], seen)

    def test_observer_semantics(self) -> None:
        """Inside a STOP observer the Job reports it is done?"""
        job = self.make_job("print('x')")
        seen = []  # type: typing.List[str]
        job.on(JobEvent.STOP, lambda _: self.helper_check_semantics(job, seen))
        job.on(JobEvent.STDOUT, lambda _: job.done(timeout=0))
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(["nested"], seen)

    def test_duplicate_observers(self) -> None:
        """Registering an observer twice delivers the event twice?"""
        job = self.make_job("pass")
        stops = []  # type: typing.List[typing.Any]
        job.on(JobEvent.STOP, stops.append)
        job.on(JobEvent.STOP, stops.append)
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(2, len(stops))

    def test_snapshot_semantics(self) -> None:
        """Observers added during a broadcast miss the event in flight?"""
        job = self.make_job("print('x')")
        order = []  # type: typing.List[str]

        def first(output: str) -> None:
            order.append("first")
            job.on(JobEvent.STDOUT, lambda _: order.append("added"))

        job.on(JobEvent.STDOUT, first)
        job.on(JobEvent.STDOUT, lambda _: order.append("second"))
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(["first", "second"], order[:2])
        self.assertNotIn("added", order[:2])

    def test_stop_snapshot_semantics(self) -> None:
        """STOP observers added during the broadcast follow all earlier ones?"""
        job = self.make_job("pass")
        order = []  # type: typing.List[str]

        def first(summary: typing.Any) -> None:
            order.append("first")
            job.on(JobEvent.STOP, lambda _: order.append("added"))

        job.on(JobEvent.STOP, first)
        job.on(JobEvent.STOP, lambda _: order.append("second"))
        self.assertTrue(job.done(timeout=TIMEOUT))
        self.assertEqual(["first", "second", "added"], order)

        # Once the broadcast is over, late observers are again replayed
        job.on(JobEvent.STOP, lambda _: order.append("late"))
        self.assertEqual(["first", "second", "added", "late"], order)

    @staticmethod
    def helper_raise(data: typing.Any) -> None:
        raise ArithmeticError("observer failed")

    def test_callback_raised(self) -> None:
        """A raising observer is reported after the rest were notified?"""
        job = self.make_job("print('x')")
        after = []  # type: typing.List[typing.Any]
        job.on(JobEvent.STOP, self.helper_raise)
        job.on(JobEvent.STOP, after.append)
        with self.assertRaises(CallbackRaised) as cm:
            job.done(timeout=TIMEOUT)
        self.assertIsInstance(cm.exception.__cause__, ArithmeticError)
        self.assertEqual(1, len(after))
        self.assertTrue(job.done(timeout=0), "Job fully reaped regardless")
        with self.assertRaises(CallbackRaised):
            job.on(JobEvent.STOP, self.helper_raise)

    def test_unknown_event(self) -> None:
        """Only stdout and stop events may be observed?"""
        job = self.make_job("pass")
        with self.assertRaises(ValueError):
            job.on("output", print)

    def test_duplication(self) -> None:
        """Copying and pickling of Jobs is explicitly disallowed?"""
        job = self.make_job("pass")
        with self.assertRaises(NotImplementedError):
            copy.copy(job)
        with self.assertRaises(NotImplementedError):
            copy.deepcopy(job)
        with self.assertRaises(NotImplementedError):
            pickle.dumps(job)

    def test_properties(self) -> None:
        """Display details are drawn from the project and configuration?"""
        job = self.make_job("pass")
        self.assertEqual("Run", job.command)
        self.assertIs(self.config, job.config)
        self.assertEqual("Game", job.project_name)
        self.assertEqual("Game!", job.project_display_name)
        self.assertEqual("/work/Game", job.project_dir)
        self.assertEqual("/work/Game/Game.yyp", job.project_path)
        self.assertEqual(sys.executable, job.args[0])
        self.assertIsInstance(job.pid, int)
        self.assertIn("Game!", repr(job))

    def test_grandchild_holds_pipe(self) -> None:
        """Exit is noticed while a grandchild keeps the pipe open?"""
        code = (
            "import subprocess, sys\n"
            "p = subprocess.Popen([sys.executable, '-c',"
            " 'import time; time.sleep(60)'])\n"
            "print('grandchild=%d' % p.pid)\n"
        )
        job = self.make_job(code)
        try:
            self.assertTrue(job.done(timeout=TIMEOUT))
        finally:
            match = re.search(r"grandchild=(\d+)", job.output)
            if match:
                os.kill(int(match.group(1)), signal.SIGKILL)
        self.assertEqual("Finished", job.status_display)

    def test_status_display(self) -> None:
        """Labels follow from the status alone?"""
        self.assertEqual("", status_display(Running()))
        self.assertEqual("Stopped", status_display(Stopped(True, 0)))
        self.assertEqual("Stopped", status_display(Stopped(True, 3)))
        self.assertEqual("Failed", status_display(Stopped(False, 1)))
        self.assertEqual("Failed", status_display(Stopped(False, -15)))
        self.assertEqual("Finished", status_display(Stopped(False, 0)))
