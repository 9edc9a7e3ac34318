# dustat -- deduplicated disk and inode usage from stat metadata
# Copyright (C) 2017,2018,2019  Walter Doekes, OSSO B.V.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
#
#
# The old way of getting the same numbers: ask du(1) and find(1). These
# are used to check the walker against, and to benchmark it.
#
# Both commands run at idle I/O priority and lowest CPU priority, and are
# killed if they take longer than the timeout.
#
import subprocess
import warnings

from tempfile import TemporaryFile
from threading import Timer

from .dustat import InvalidArgument, OsWarning, UsageError

DEFAULT_TIMEOUT = 120  # seconds
NICE = ('ionice', '-c3', 'nice', '-n', '19')


class ExternalCommandFailed(UsageError):
    def __init__(self, message, args, stdout=b'', stderr=b'',
                 returncode=None):
        self.cmd = list(args)
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(
            '{} (cmd {}, exit {}): stdout: {!r}, stderr: {!r}'.format(
                message, self.cmd, returncode,
                _text(stdout), _text(stderr)))


class ByteCounter:
    "File-like sink that only counts how many bytes were written to it."

    def __init__(self):
        self.bytes_written = 0

    def write(self, data):
        self.bytes_written += len(data)
        return len(data)


def _text(data):
    return data.decode('utf-8', 'replace').strip()


class _Killer:
    """
    Kill proc when the timeout expires, unless cancelled first.

    Use as context manager around the wait, so the timer is always disarmed
    when the process finished on its own.
    """
    def __init__(self, proc, args, timeout):
        self._proc = proc
        self._args = args
        self._timeout = timeout
        self._timer = Timer(timeout, self._kill)
        self._timer.daemon = True
        self.fired = False

    def _kill(self):
        if self._proc.returncode is not None:
            return  # finished on its own, just before we got cancelled
        self.fired = True
        warnings.warn(
            'Killing cmd {} due to timeout ({}s)'.format(
                self._args, self._timeout), OsWarning)
        self._proc.kill()

    def __enter__(self):
        self._timer.start()
        return self

    def __exit__(self, *exc_info):
        self._timer.cancel()


def _start(args, stdout, stderr):
    try:
        return subprocess.Popen(args, stdout=stdout, stderr=stderr)
    except OSError as e:
        raise ExternalCommandFailed(
            'failed to exec {}: {}'.format(args[len(NICE)], e), args) from e


def _check(what, args, proc, killer, stdout, stderr):
    if killer.fired:
        raise ExternalCommandFailed(
            '{} killed after timeout'.format(what), args, stdout, stderr,
            proc.returncode)
    if proc.returncode != 0:
        raise ExternalCommandFailed(
            '{} command failed'.format(what), args, stdout, stderr,
            proc.returncode)
    if stderr:
        raise ExternalCommandFailed(
            '{} command wrote to stderr'.format(what), args, stdout, stderr,
            proc.returncode)


def du_usage(pathname, timeout=DEFAULT_TIMEOUT):
    "Return the allocated size of pathname in bytes, according to du -s."
    if not pathname:
        raise InvalidArgument('invalid directory {!r}'.format(pathname))

    args = NICE + ('du', '-s', pathname)
    proc = _start(args, subprocess.PIPE, subprocess.PIPE)
    with _Killer(proc, args, timeout) as killer:
        stdout, stderr = proc.communicate()
    _check('du', args, proc, killer, stdout, stderr)

    # "1234\t/srv\n"
    try:
        usage_in_kb = int(stdout.split()[0])
    except (IndexError, ValueError) as e:
        raise ExternalCommandFailed(
            'cannot parse du output: {}'.format(e), args, stdout, stderr,
            proc.returncode) from e
    return usage_in_kb * 1024


def find_inode_usage(pathname, timeout=DEFAULT_TIMEOUT):
    """
    Return the number of entries in pathname, according to find -xdev.

    find prints a single dot per entry; we only count the bytes. The output
    is streamed, so even huge trees don't end up in memory.
    """
    if not pathname:
        raise InvalidArgument('invalid directory {!r}'.format(pathname))

    args = NICE + ('find', pathname, '-xdev', '-printf', '.')
    counter = ByteCounter()
    # stderr to a file, so a chatty find can't block on a full pipe while
    # we're busy reading stdout.
    with TemporaryFile() as errfile:
        proc = _start(args, subprocess.PIPE, errfile)
        with _Killer(proc, args, timeout) as killer:
            with proc.stdout:
                for chunk in iter(lambda: proc.stdout.read(65536), b''):
                    counter.write(chunk)
            proc.wait()
        errfile.seek(0)
        stderr = errfile.read()
    _check('find', args, proc, killer, b'', stderr)

    return counter.bytes_written
